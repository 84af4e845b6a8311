"""Minimal listener lists used in place of signal/slot connections."""

import logging
import threading
from collections.abc import Callable
from typing import Any

from core.logging.utilities import log_exception

logger = logging.getLogger(__name__)


class EventHook:
    """
    Ordered list of listeners invoked synchronously by :meth:`emit`.

    Listeners run outside the internal lock, so a listener may connect or
    disconnect listeners (or emit other events) without deadlocking.
    Exceptions raised by a listener are logged and do not stop delivery
    to the remaining listeners.
    """

    def __init__(self, name: str):
        self.name = name
        self._listeners: list[Callable[..., Any]] = []
        self._lock = threading.Lock()

    def connect(self, listener: Callable[..., Any]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def disconnect(self, listener: Callable[..., Any]) -> bool:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return False
            return True

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

    def emit(self, *args: Any) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(*args)
            except Exception as e:
                log_exception(
                    logger,
                    e,
                    f"Listener for '{self.name}' raised",
                    callback_error=type(e).__name__,
                )
