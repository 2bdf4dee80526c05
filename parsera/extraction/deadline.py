"""
Cancellable Deadline - bounds one attempt by a timeout and a caller cancellation
"""

import asyncio
from typing import Awaitable, Callable, Optional, Set, TypeVar

import structlog

from parsera.core.exceptions import CancelledException, RequestTimeoutException

logger = structlog.get_logger(__name__)

T = TypeVar('T')

TIMEOUT_MESSAGE = "Request timed out"
CANCELLED_MESSAGE = "Request was cancelled"


class CancellationToken:
    """Caller-owned signal that aborts in-flight and pending attempts"""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self):
        await self._event.wait()

    def raise_if_cancelled(self):
        if self.cancelled:
            raise CancelledException(CANCELLED_MESSAGE)


async def run_with_deadline(
    operation: Callable[[], Awaitable[T]],
    timeout: float,
    cancel_token: Optional[CancellationToken] = None
) -> T:
    """
    Run one transport call bound to a timeout and an optional cancellation token

    Args:
        operation: Zero-argument coroutine function performing the call
        timeout: Deadline in seconds
        cancel_token: External cancellation signal

    Returns:
        Result of the operation

    Raises:
        RequestTimeoutException: If the deadline elapsed first
        CancelledException: If the token fired first
        Exception: Any failure of the operation itself, unchanged
    """
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()

    call = asyncio.ensure_future(operation())
    pending: Set[asyncio.Future] = {call}
    cancel_waiter: Optional[asyncio.Future] = None
    if cancel_token is not None:
        cancel_waiter = asyncio.ensure_future(cancel_token.wait())
        pending.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(
            pending,
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        # asyncio.wait has released its timer here; abort whatever is still running
        for future in pending:
            if not future.done():
                await _abort(future)

    if call in done:
        return call.result()

    if cancel_waiter is not None and cancel_waiter in done:
        logger.info("Attempt cancelled by caller")
        raise CancelledException(CANCELLED_MESSAGE)

    logger.warning("Attempt deadline exceeded", timeout_seconds=timeout)
    raise RequestTimeoutException(TIMEOUT_MESSAGE, details={"timeout_seconds": timeout})


async def _abort(future: asyncio.Future):
    """Cancel a future and wait until it has actually finished"""
    future.cancel()
    await asyncio.wait({future})
    if not future.cancelled() and future.exception() is not None:
        logger.debug("Aborted call finished with an error",
                     error=str(future.exception()))
