"""Login attempt throttling.

A fixed-window counter per client identity (normally the source address).
The check runs before any credential lookup, so guesses against unknown
usernames are throttled exactly like guesses against real ones.

State lives in process memory only and is lost on restart. That is fine
for dampening abuse on a single-process deployment; a multi-process
deployment needs a ``RateLimiter`` backed by a shared store. Expired
windows are swept out as time passes, so memory follows recent identities
only.
"""
from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from stagebox.config import get_config

logger = logging.getLogger(__name__)


class RateDecision(str, Enum):
    ALLOWED = "allowed"
    LIMITED = "limited"


class RateLimiter(ABC):
    """Interface the login route depends on."""

    @abstractmethod
    def check_and_record(self, identity: str) -> RateDecision:
        """Record one attempt for *identity* and decide whether it may proceed."""

    def allow(self, identity: str) -> bool:
        return self.check_and_record(identity) is RateDecision.ALLOWED

    def reset(self) -> None:
        """Forget all recorded attempts."""


@dataclass
class RateWindow:
    identity:     str
    count:        int
    window_start: float


class InMemoryRateLimiter(RateLimiter):
    """Fixed-window limiter: at most *max_attempts* per *window_seconds*."""

    def __init__(
        self,
        max_attempts: int = 5,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, RateWindow] = {}
        self._lock = threading.Lock()
        self._last_sweep: Optional[float] = None

    def check_and_record(self, identity: str) -> RateDecision:
        now = self._clock()
        with self._lock:
            self._sweep(now)
            window = self._windows.get(identity)
            if window is None or now - window.window_start >= self.window_seconds:
                self._windows[identity] = RateWindow(identity=identity, count=1, window_start=now)
                return RateDecision.ALLOWED
            window.count += 1
            if window.count > self.max_attempts:
                logger.warning("Login rate limit hit for %s (%d attempts)", identity, window.count)
                return RateDecision.LIMITED
            return RateDecision.ALLOWED

    def _sweep(self, now: float) -> None:
        """Drop expired windows, at most once per window length. Caller holds the lock."""
        if self._last_sweep is not None and now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        expired = [key for key, w in self._windows.items() if now - w.window_start >= self.window_seconds]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug("Evicted %d expired rate windows", len(expired))

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
            self._last_sweep = None


_limiter: Optional[RateLimiter] = None


def get_login_limiter() -> RateLimiter:
    global _limiter
    if _limiter is None:
        cfg = get_config().rate_limit
        _limiter = InMemoryRateLimiter(cfg.max_attempts, cfg.window_seconds)
    return _limiter


def set_login_limiter(limiter: Optional[RateLimiter]) -> None:
    global _limiter
    _limiter = limiter
