"""
Rate Limiter - minimum spacing between outbound attempts of one client
"""

import asyncio
import time
from typing import Callable, Optional

import structlog

from parsera.extraction.deadline import CancellationToken

logger = structlog.get_logger(__name__)

MIN_REQUEST_INTERVAL = 0.1  # seconds


class RateLimiter:
    """Spaces successive attempts of one client instance by a fixed interval"""

    def __init__(
        self,
        min_interval: float = MIN_REQUEST_INTERVAL,
        clock: Callable[[], float] = time.monotonic
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._last_request_time: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def last_request_time(self) -> Optional[float]:
        return self._last_request_time

    async def acquire(self, cancel_token: Optional[CancellationToken] = None) -> float:
        """
        Wait until this client may issue its next attempt

        The slot is reserved inside the critical section and the wait happens
        outside of it, so concurrent callers queue up one interval apart.

        Args:
            cancel_token: Ends the wait early when fired

        Returns:
            Seconds waited

        Raises:
            CancelledException: If the token fired during the wait
        """
        async with self._lock:
            now = self._clock()
            if self._last_request_time is None:
                release_at = now
            else:
                release_at = max(now, self._last_request_time + self.min_interval)
            self._last_request_time = release_at

        wait_time = release_at - now
        if wait_time > 0:
            logger.debug("Rate limit wait required", wait_time=wait_time)
            await self._sleep(wait_time, cancel_token)
        return wait_time

    @staticmethod
    async def _sleep(wait_time: float, cancel_token: Optional[CancellationToken]):
        if cancel_token is None:
            await asyncio.sleep(wait_time)
            return
        try:
            await asyncio.wait_for(cancel_token.wait(), timeout=wait_time)
        except asyncio.TimeoutError:
            return
        cancel_token.raise_if_cancelled()
