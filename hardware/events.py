"""Minimal typed publish/subscribe channel."""

from __future__ import annotations

import logging
import threading
from itertools import count
from typing import Callable, Dict, Generic, Optional, TypeVar

T = TypeVar("T")
Unsubscribe = Callable[[], None]


class EventChannel(Generic[T]):
    """Delivers each emitted value to every subscriber in registration order.

    Subscribers run on the emitting thread. An exception raised by one
    subscriber is logged and does not prevent delivery to the others.
    """

    def __init__(self, name: str, logger: Optional[logging.Logger] = None) -> None:
        self.name = name
        self._logger = logger or logging.getLogger("finisher.events")
        self._counter = count(1)
        self._listeners: Dict[int, Callable[[T], None]] = {}
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[T], None]) -> Unsubscribe:
        if callback is None:
            raise ValueError("callback must not be None")
        token = next(self._counter)
        with self._lock:
            self._listeners[token] = callback

        def _unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(token, None)

        return _unsubscribe

    def emit(self, value: T) -> None:
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener(value)
            except Exception:
                self._logger.exception("Listener on %s raised", self.name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)


__all__ = ["EventChannel", "Unsubscribe"]
