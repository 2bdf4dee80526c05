"""
Retry Handler - exponential backoff over one logical extraction
"""

import asyncio
from typing import Awaitable, Callable, Optional, Tuple, Type

import httpx
import structlog

from parsera.core.exceptions import NetworkException, RequestTimeoutException
from parsera.extraction.deadline import CancellationToken
from parsera.extraction.events import EventBus, EventType
from parsera.extraction.models import RetryPolicy
from parsera.extraction.rate_limiter import RateLimiter

logger = structlog.get_logger(__name__)

RATE_LIMIT_STATUS = 429


class RetryHandler:
    """Drives attempts through the rate limiter and retries on 429 and transient failures"""

    def __init__(
        self,
        policy: RetryPolicy,
        rate_limiter: RateLimiter,
        events: EventBus,
        retry_on_timeout: bool = False
    ):
        self.policy = policy
        self.rate_limiter = rate_limiter
        self.events = events
        self.retry_on_timeout = retry_on_timeout

    @property
    def retryable_exceptions(self) -> Tuple[Type[Exception], ...]:
        if self.retry_on_timeout:
            return (NetworkException, RequestTimeoutException)
        return (NetworkException,)

    def is_retryable(self, error: Exception) -> bool:
        return isinstance(error, self.retryable_exceptions)

    async def execute(
        self,
        attempt: Callable[[], Awaitable[httpx.Response]],
        cancel_token: Optional[CancellationToken] = None
    ) -> httpx.Response:
        """
        Run attempts until one yields a final response or a terminal failure

        Args:
            attempt: Zero-argument coroutine function issuing one transport call
            cancel_token: Checked before every attempt and every backoff wait

        Returns:
            The first non-429 response, or the last 429 once retries are exhausted

        Raises:
            CancelledException: If the token fired between attempts
            Exception: Non-retryable failures, or the last failure once retries are exhausted
        """
        retry_count = 0

        while True:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            await self.rate_limiter.acquire(cancel_token)

            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            await self.events.emit(EventType.REQUEST_START,
                                   data={"attempt": retry_count + 1},
                                   retry_count=retry_count)
            try:
                response = await attempt()
            except Exception as e:
                logger.warning("Attempt failed",
                               retry_count=retry_count,
                               error=str(e),
                               error_type=type(e).__name__)

                if isinstance(e, RequestTimeoutException):
                    await self.events.emit(EventType.TIMEOUT, error=e, retry_count=retry_count)
                await self.events.emit(EventType.REQUEST_ERROR, error=e, retry_count=retry_count)

                if retry_count < self.policy.max_retries and self.is_retryable(e):
                    await self._schedule_retry(retry_count, cancel_token)
                    retry_count += 1
                    continue
                raise

            await self.events.emit(EventType.REQUEST_END,
                                   data={"status_code": response.status_code},
                                   retry_count=retry_count)

            if response.status_code == RATE_LIMIT_STATUS and retry_count < self.policy.max_retries:
                logger.warning("Rate limited by API", retry_count=retry_count)
                await self.events.emit(EventType.RATE_LIMIT,
                                       data={"retry_count": retry_count},
                                       retry_count=retry_count)
                await response.aclose()
                await self._schedule_retry(retry_count, cancel_token)
                retry_count += 1
                continue

            logger.debug("Attempt completed",
                         retry_count=retry_count,
                         status_code=response.status_code)
            return response

    async def _schedule_retry(self, retry_count: int, cancel_token: Optional[CancellationToken]):
        await self.events.emit(EventType.REQUEST_RETRY,
                               data={"retry_count": retry_count},
                               retry_count=retry_count)

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        delay = self.policy.backoff_delay(retry_count)
        logger.info("Retrying after delay",
                    next_attempt=retry_count + 2,
                    delay_seconds=delay)
        await self._wait_backoff(delay, cancel_token)

    async def _wait_backoff(self, delay: float, cancel_token: Optional[CancellationToken]):
        """Sleep for the backoff delay, waking early if the token fires"""
        if cancel_token is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_token.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        cancel_token.raise_if_cancelled()
