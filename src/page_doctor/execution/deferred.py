"""Single-settlement result handles for CLI invocations."""

from __future__ import annotations

import threading
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class DeferredState(str, Enum):
    """Lifecycle of a deferred handle."""

    PENDING = "pending"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class Deferred(Generic[T]):
    """Result handle that settles exactly once.

    The same handle is shared by an invocation and its retried continuation,
    so whoever waits on it observes the final outcome. Settling an already
    settled handle is a no-op and reports ``False``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._settled = threading.Event()
        self._state = DeferredState.PENDING
        self._value: T | None = None
        self._error: BaseException | None = None

    @property
    def state(self) -> DeferredState:
        return self._state

    @property
    def done(self) -> bool:
        return self._settled.is_set()

    def resolve(self, value: T) -> bool:
        with self._lock:
            if self._state is not DeferredState.PENDING:
                return False
            self._value = value
            self._state = DeferredState.RESOLVED
        self._settled.set()
        return True

    def reject(self, error: BaseException) -> bool:
        with self._lock:
            if self._state is not DeferredState.PENDING:
                return False
            self._error = error
            self._state = DeferredState.REJECTED
        self._settled.set()
        return True

    def result(self, timeout: float | None = None) -> T:
        """Wait for settlement and return the value or raise the rejection error."""

        if not self._settled.wait(timeout):
            raise TimeoutError("Deferred result was not settled in time.")
        error = self._error
        if error is not None:
            raise error
        return self._value  # type: ignore[return-value]


class CompletionGuard:
    """First-event-wins settlement for one streamed process.

    Output events arrive from independent readers; only the first terminating
    event settles the bound handle and every later event is ignored.
    """

    def __init__(self, deferred: Deferred[str]) -> None:
        self._deferred = deferred
        self._lock = threading.Lock()
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def succeed(self, value: str) -> bool:
        with self._lock:
            if self._finished:
                return False
            self._finished = True
        return self._deferred.resolve(value)

    def fail(self, error: BaseException) -> bool:
        with self._lock:
            if self._finished:
                return False
            self._finished = True
        return self._deferred.reject(error)
