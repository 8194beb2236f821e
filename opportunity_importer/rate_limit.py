"""Utilities for pacing outreach delivery and bounding collaborator calls."""
from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")


class CallTimeoutError(TimeoutError):
    """Raised when a collaborator call does not return within its time budget."""

    def __init__(self, label: str, timeout: float) -> None:
        super().__init__(f"{label} did not complete within {timeout:g} seconds")
        self.label = label
        self.timeout = timeout


class RateLimiter:
    """Enforces a minimum interval between consecutive calls to :meth:`acquire`."""

    def __init__(self, calls_per_minute: Optional[float]) -> None:
        self._interval = 60.0 / float(calls_per_minute) if calls_per_minute else 0.0
        self._lock = threading.Lock()
        self._next_available = 0.0

    @classmethod
    def from_delay_ms(cls, delay_ms: int) -> "RateLimiter":
        if delay_ms <= 0:
            return cls(None)
        return cls(60_000.0 / float(delay_ms))

    @property
    def interval(self) -> float:
        return self._interval

    def acquire(self) -> None:
        if self._interval <= 0:
            return
        with self._lock:
            now = time.monotonic()
            if now < self._next_available:
                time.sleep(self._next_available - now)
                now = time.monotonic()
            self._next_available = now + self._interval


class CallGuard:
    """Runs collaborator calls on a reusable worker and gives up waiting after ``timeout`` seconds.

    The call itself is not interrupted; a late result is discarded. A worker
    left busy by a hung call is abandoned and the next call gets a fresh one.
    With ``timeout=None`` calls run directly on the current thread.
    """

    def __init__(self, timeout: Optional[float], *, name: str = "collaborator-call") -> None:
        self.timeout = timeout
        self._name = name
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None

    def call(self, func: Callable[..., T], *args: Any, label: str, **kwargs: Any) -> T:
        if self.timeout is None:
            return func(*args, **kwargs)

        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=self._name)
            executor = self._executor
        future = executor.submit(func, *args, **kwargs)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError as exc:
            self._discard(executor)
            raise CallTimeoutError(label, self.timeout) from exc

    def close(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False)

    def _discard(self, executor: ThreadPoolExecutor) -> None:
        with self._lock:
            if self._executor is executor:
                self._executor = None
        executor.shutdown(wait=False)


__all__ = ["CallGuard", "CallTimeoutError", "RateLimiter"]
