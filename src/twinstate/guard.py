"""
Re-entrancy guard for compute paths that can call back into themselves.

A store write can synchronously trigger a listener whose callback re-runs the
computation that made the write. When such a chain loops (e.g. a free-cooling
limit that feeds a value which feeds the free-cooling limit), the guard
short-circuits the inner call and returns the last completed result instead
of recursing.
"""
import functools
import logging
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ReentrancyGuard(Generic[T]):
    """
    Named guard that lets one call run at a time and caches its result.

    Example:
        guard = ReentrancyGuard("free cooling", fallback=0.0)

        @guard
        def free_cooling_limit(accessor):
            ...

        # A re-entrant call made while free_cooling_limit is running
        # returns the cached value of the last completed call.
    """

    def __init__(self, name: str, fallback: Optional[T] = None):
        self.name = name
        self.fallback = fallback
        self._active = False
        self._has_result = False
        self._last: Optional[T] = None
        self.calls = 0
        self.short_circuits = 0

    def __repr__(self) -> str:
        return f"ReentrancyGuard({self.name!r}, active={self._active})"

    @property
    def active(self) -> bool:
        return self._active

    @property
    def last_value(self) -> Optional[T]:
        return self._last if self._has_result else self.fallback

    def run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Optional[T]:
        """Call fn unless already inside this guard; on re-entry return the cached value."""
        if self._active:
            self.short_circuits += 1
            logger.debug(f"Re-entry into {self.name!r} short-circuited, returning cached value")
            return self.last_value

        self._active = True
        self.calls += 1
        try:
            result = fn(*args, **kwargs)
            self._last = result
            self._has_result = True
            return result
        finally:
            self._active = False

    def __call__(self, fn: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Optional[T]:
            return self.run(fn, *args, **kwargs)
        wrapper.guard = self  # type: ignore[attr-defined]
        return wrapper

    def reset(self) -> None:
        """Forget the cached value and counters."""
        self._has_result = False
        self._last = None
        self.calls = 0
        self.short_circuits = 0
