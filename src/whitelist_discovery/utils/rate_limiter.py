"""Request pacing for polite crawling of remote listings."""

import asyncio
from time import monotonic


class RateLimiter:
    """Spaces request starts at least ``delay_seconds`` apart.

    One limiter paces one remote. A 429 doubles the delay through
    ``back_off``, and successful fetches halve it again towards the
    configured value through ``ease_off``.
    """

    _MAX_DELAY = 30.0

    def __init__(self, delay_seconds: float = 0.1):
        self.delay_seconds = delay_seconds
        self._configured_delay = delay_seconds
        self._last_start: float | None = None
        self._lock = asyncio.Lock()
        self.backoff_count = 0

    async def acquire(self) -> None:
        """Wait until the next request may start."""
        await self._lock.acquire()
        try:
            if self._last_start is not None:
                wait = self.delay_seconds - (monotonic() - self._last_start)
                if wait > 0:
                    await asyncio.sleep(wait)
            self._last_start = monotonic()
        except BaseException:
            self._lock.release()
            raise

    def release(self) -> None:
        self._lock.release()

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    def back_off(self) -> None:
        """Double the delay, capped at _MAX_DELAY."""
        self.delay_seconds = min(max(self.delay_seconds, 0.1) * 2, self._MAX_DELAY)
        self.backoff_count += 1

    def ease_off(self) -> None:
        self.delay_seconds = max(self.delay_seconds / 2, self._configured_delay)

    @property
    def is_throttled(self) -> bool:
        return self.delay_seconds > self._configured_delay
