"""Rate limiting for remote API calls.

Bounds outbound calls to an hourly quota with a sliding window and retries
rate-limited calls with exponential backoff. Any other failure propagates
immediately.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from ..config import RateLimitConfig
from ..exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)

T = TypeVar("T")

WINDOW_SECONDS = 3600.0


def is_rate_limit_error(exc: BaseException) -> bool:
    """True when ``exc`` carries the remote's rate-limit signal."""
    return bool(getattr(exc, "rate_limited", False))


class RateLimiter:
    """Sliding-window rate limiter with backoff on rate-limit errors.

    One instance is shared by every request a client makes. The
    check-and-record step on the request window runs under an asyncio lock
    so two concurrent callers can never both claim the last free slot; the
    wrapped operations themselves run concurrently.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        is_rate_limited: Callable[[BaseException], bool] = is_rate_limit_error,
    ) -> None:
        config = config or RateLimitConfig()
        self.requests_per_hour = config.requests_per_hour
        self.retry_delay = config.retry_delay
        self.max_retries = config.max_retries

        self._clock = clock
        self._sleep = sleep
        self._is_rate_limited = is_rate_limited
        self._request_times: deque[float] = deque()
        self._lock = asyncio.Lock()

    async def execute_with_rate_limit(
        self,
        operation: Callable[[], Awaitable[T]],
        context_msg: str = "",
    ) -> T:
        """Run ``operation`` within the quota, retrying on rate-limit errors.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            context_msg: Extra context for log messages (e.g. request path)

        Returns:
            Result of the operation

        Raises:
            RateLimitExceededError: If every attempt was rate limited
            Exception: Any non-rate-limit failure, unretried
        """
        ctx = f" [{context_msg}]" if context_msg else ""
        attempts = 0

        while True:
            await self._acquire_slot()
            try:
                return await operation()
            except Exception as exc:
                if not self._is_rate_limited(exc):
                    raise

                attempts += 1
                if attempts >= self.max_retries:
                    logger.warning(
                        "RATE_LIMIT_EXHAUSTED: attempts=%d/%d%s: %s",
                        attempts,
                        self.max_retries,
                        ctx,
                        exc,
                    )
                    raise RateLimitExceededError(attempts, cause=exc) from exc

                delay = self.retry_delay * (2**attempts)
                logger.warning(
                    "THROTTLED: attempt=%d/%d, retrying in %.1fs%s: %s",
                    attempts,
                    self.max_retries,
                    delay,
                    ctx,
                    exc,
                )
                await self._sleep(delay)

    async def _acquire_slot(self) -> None:
        """Wait until the window has room, then record a request."""
        async with self._lock:
            now = self._clock()
            self._prune(now)
            while len(self._request_times) >= self.requests_per_hour:
                wait = self._request_times[0] + WINDOW_SECONDS - now
                if wait > 0:
                    logger.info(
                        "Hourly quota of %d requests reached, waiting %.1fs",
                        self.requests_per_hour,
                        wait,
                    )
                    await self._sleep(wait)
                now = self._clock()
                self._prune(now)
            self._request_times.append(now)

    def _prune(self, now: float) -> None:
        cutoff = now - WINDOW_SECONDS
        while self._request_times and self._request_times[0] <= cutoff:
            self._request_times.popleft()

    def remaining(self) -> int:
        """Requests still available in the current window."""
        self._prune(self._clock())
        return max(0, self.requests_per_hour - len(self._request_times))

    def stats(self) -> dict[str, Any]:
        return {
            "requests_per_hour": self.requests_per_hour,
            "in_window": len(self._request_times),
            "remaining": self.remaining(),
        }
