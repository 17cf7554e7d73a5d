from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, TypeVar

from budget_api.errors import BudgetApiError


logger = logging.getLogger(__name__)

T = TypeVar("T")

Callback = Callable[[Any], None]


class Observable:
    """
    Tiny synchronous change notifier.

    `subscribe(cb)` registers `cb(source)` and returns an unsubscribe callable.
    Subscribers run in registration order; one failing subscriber is logged and
    does not prevent the rest from being notified.
    """

    def __init__(self) -> None:
        self._subscribers: List[Callback] = []

    def subscribe(self, callback: Callback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def _notify(self) -> None:
        for cb in list(self._subscribers):
            try:
                cb(self)
            except Exception:
                logger.exception("Subscriber %r failed", cb)


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Outcome of one session/store operation, returned instead of raising."""

    value: Optional[T] = None
    error: Optional[BudgetApiError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: BudgetApiError) -> "OperationResult[T]":
        return cls(error=error)


class ClientStatus(Observable):
    """
    Shared "last known status" for UI binding.

    - `is_loading` is True while at least one operation is in flight.
    - `last_error` holds the most recent failure. It is cleared when an
      operation starts with nothing else in flight, so a failure inside a
      batch (e.g. load-all) stays visible until the next user action.
    """

    def __init__(self) -> None:
        super().__init__()
        self._in_flight = 0
        self._last_error: Optional[BudgetApiError] = None

    @property
    def is_loading(self) -> bool:
        return self._in_flight > 0

    @property
    def last_error(self) -> Optional[BudgetApiError]:
        return self._last_error

    def begin(self) -> None:
        before = (self.is_loading, self._last_error)
        if self._in_flight == 0:
            self._last_error = None
        self._in_flight += 1
        self._changed(before)

    def finish(self, error: Optional[BudgetApiError] = None) -> None:
        before = (self.is_loading, self._last_error)
        if self._in_flight > 0:
            self._in_flight -= 1
        if error is not None:
            self._last_error = error
        self._changed(before)

    def fail(self, error: BudgetApiError) -> None:
        """Record a failure that did not go through begin/finish (fail-fast guards)."""
        before = (self.is_loading, self._last_error)
        self._last_error = error
        self._changed(before)

    def clear_error(self) -> None:
        before = (self.is_loading, self._last_error)
        self._last_error = None
        self._changed(before)

    def _changed(self, before: tuple) -> None:
        was_loading, previous_error = before
        if was_loading != self.is_loading or previous_error is not self._last_error:
            self._notify()


__all__ = ["ClientStatus", "Observable", "OperationResult"]
