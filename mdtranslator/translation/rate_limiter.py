"""
Sliding-window rate limiter shared by every running translation.
"""

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Optional

from mdtranslator.logger import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Admit at most max_requests provider calls per window_ms.

    One instance is shared across all translation ids of the process;
    acquire() serializes admission decisions with an asyncio.Lock so waiters
    are admitted in arrival order.
    """

    def __init__(
        self,
        max_requests: int = 60,
        window_ms: int = 60000,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_requests <= 0 or window_ms <= 0:
            raise ValueError("max_requests and window_ms must be positive")
        self.max_requests = max_requests
        self.window = window_ms / 1000.0
        self._clock = clock
        self._sleep = sleep
        self._requests: Deque[float] = deque()
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: dict) -> "RateLimiter":
        rate_config = config.get('rate_limit', {})
        return cls(
            max_requests=rate_config.get('max_requests', 60),
            window_ms=rate_config.get('window_ms', 60000),
        )

    def _prune(self, now: float) -> None:
        while self._requests and now - self._requests[0] >= self.window:
            self._requests.popleft()

    def can_admit(self) -> bool:
        self._prune(self._clock())
        return len(self._requests) < self.max_requests

    def wait_time(self) -> float:
        """Seconds until the next request may be admitted (0 when below capacity)."""
        now = self._clock()
        self._prune(now)
        if len(self._requests) < self.max_requests:
            return 0.0
        return max(0.0, self._requests[0] + self.window - now)

    def record(self) -> None:
        self._requests.append(self._clock())

    async def acquire(self, cancel_event: Optional[asyncio.Event] = None) -> bool:
        """
        Suspend until a slot is free, then record the admitted request.

        Returns False without recording anything when cancel_event is set
        before admission, so a cancelled caller does not hold a slot.
        """
        async with self._lock:
            wait = self.wait_time()
            while wait > 0:
                if cancel_event is not None and cancel_event.is_set():
                    return False
                logger.info(f"Rate limit reached, waiting {wait:.1f}s")
                await self._sleep(wait)
                wait = self.wait_time()
            if cancel_event is not None and cancel_event.is_set():
                return False
            self.record()
            return True

    @property
    def in_window(self) -> int:
        self._prune(self._clock())
        return len(self._requests)
