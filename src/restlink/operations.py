"""
Operation ids and the pending-operation table.

Every issued request gets an operation id from a process-wide monotonic
generator. The pending table maps a live reply to (operation id, handler);
every removal hands the entry to exactly one caller, which is what makes
completion, error and cancellation mutually exclusive per operation.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from restlink.transport import NetworkReply

ReplyHandler = Callable[[int, NetworkReply], Any]


class OperationIdGenerator:
    """Thread-safe monotonic id source. Zero is never produced."""

    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError(f"start must be >= 0, got {start}")
        self._last = start
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            self._last += 1
            return self._last

    def peek(self) -> int:
        """Last id handed out (0 if none yet)."""
        with self._lock:
            return self._last


_default_generator = OperationIdGenerator()


def get_default_id_generator() -> OperationIdGenerator:
    return _default_generator


@dataclass(frozen=True)
class PendingOperation:
    operation_id: int
    handler: ReplyHandler


class PendingOperations:
    """
    Replies awaiting a terminal outcome.

    All methods hold a single lock for the duration of the table access
    only. Handlers are returned to the caller, never invoked here.
    """

    def __init__(self):
        self._entries: dict[NetworkReply, PendingOperation] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, reply: object) -> bool:
        with self._lock:
            return reply in self._entries

    def add(self, reply: NetworkReply, operation_id: int, handler: ReplyHandler) -> None:
        with self._lock:
            if reply in self._entries:
                raise ValueError(f"Reply already registered: {reply!r}")
            self._entries[reply] = PendingOperation(operation_id, handler)

    def operation_id_for(self, reply: NetworkReply) -> int:
        with self._lock:
            entry = self._entries.get(reply)
            return entry.operation_id if entry else 0

    def take(self, reply: NetworkReply) -> PendingOperation | None:
        with self._lock:
            return self._entries.pop(reply, None)

    def take_by_operation_id(
        self, operation_id: int
    ) -> tuple[NetworkReply, PendingOperation] | None:
        # Replies are the key, so lookup by operation id is a linear scan
        with self._lock:
            for reply, entry in self._entries.items():
                if entry.operation_id == operation_id:
                    del self._entries[reply]
                    return reply, entry
            return None

    def take_all(self) -> list[tuple[NetworkReply, PendingOperation]]:
        with self._lock:
            entries = list(self._entries.items())
            self._entries.clear()
            return entries


__all__ = [
    "ReplyHandler",
    "OperationIdGenerator",
    "get_default_id_generator",
    "PendingOperation",
    "PendingOperations",
]
