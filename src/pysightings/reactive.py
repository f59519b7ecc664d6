"""Observable single-value holders driving the refresh pipeline."""

from __future__ import annotations

import logging
import operator
from collections.abc import Callable
from typing import Any, Generic, TypeVar

T = TypeVar("T")

_logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class ReactiveValue(Generic[T]):
    """Holds a current value and tells subscribers when it changes.

    ``set`` is a no-op when the new value equals the current one under
    ``equals``; otherwise the value is stored and every subscriber is
    called synchronously, with no arguments, exactly once. Subscribers
    re-read :attr:`value`. Nothing is buffered or queued.

    Parameters
    ----------
    initial
        Starting value. Subscribers are never called for it.
    equals
        Domain equality used to detect changes.
    coerce
        Optional conversion applied to every value passed to ``set``
        (e.g. parsing a string encoding) before comparison.
    """

    def __init__(
        self,
        initial: T,
        *,
        equals: Callable[[T, T], bool] = operator.eq,
        coerce: Callable[[Any], T] | None = None,
    ) -> None:
        self._value = initial
        self._equals = equals
        self._coerce = coerce
        self._subscribers: list[Callable[[], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, new_value: Any) -> bool:
        """Store *new_value*; return True if subscribers were notified."""
        if self._coerce is not None:
            new_value = self._coerce(new_value)
        if self._equals(self._value, new_value):
            return False
        self._value = new_value
        # Snapshot so (un)subscribing from a callback does not affect this round.
        for callback in list(self._subscribers):
            callback()
        return True

    def subscribe(self, callback: Callable[[], None]) -> Unsubscribe:
        """Register *callback*; the returned callable removes it again."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                _logger.debug("Subscriber already removed")

        return unsubscribe

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"
