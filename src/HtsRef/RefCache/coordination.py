"""Per-key call coordination for callers that must not duplicate fetches."""

from __future__ import annotations

import threading
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

__all__ = ["SingleFlight"]

T = TypeVar("T")


class _Call(Generic[T]):
    __slots__ = ("done", "result", "error")

    def __init__(self) -> None:
        self.done = threading.Event()
        self.result: Optional[T] = None
        self.error: Optional[BaseException] = None


class SingleFlight(Generic[T]):
    """Run at most one in-flight call per key; concurrent callers share its outcome.

    Examples:
        >>> flight = SingleFlight()
        >>> flight.do("k", lambda: 42)
        (42, False)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: Dict[str, _Call[T]] = {}

    def in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._calls

    def do(self, key: str, fn: Callable[[], T]) -> Tuple[T, bool]:
        """Call ``fn`` unless a call for ``key`` is already running.

        Returns:
            ``(result, shared)`` where ``shared`` is ``True`` when the result
            was produced by another caller's invocation.

        Raises:
            Whatever ``fn`` raised, for the leader and every waiting caller.
        """

        with self._lock:
            call = self._calls.get(key)
            leader = call is None
            if leader:
                call = _Call()
                self._calls[key] = call

        if not leader:
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.result, True  # type: ignore[return-value]

        try:
            call.result = fn()
        except BaseException as exc:
            call.error = exc
            raise
        finally:
            with self._lock:
                self._calls.pop(key, None)
            call.done.set()
        return call.result, False
