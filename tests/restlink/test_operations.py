"""Tests for operation ids and the pending-operation table."""

import threading

import pytest
from yarl import URL

from restlink.operations import (
    OperationIdGenerator,
    PendingOperation,
    PendingOperations,
    get_default_id_generator,
)
from restlink.transport import NetworkReply


def _reply(path="/items"):
    return NetworkReply("GET", URL("https://api.example.com") / path.lstrip("/"))


def _handler(operation_id, reply):
    pass


class TestOperationIdGenerator:

    def test_first_id_is_one(self):
        generator = OperationIdGenerator()
        assert generator.peek() == 0
        assert generator.next_id() == 1
        assert generator.next_id() == 2
        assert generator.peek() == 2

    def test_custom_start(self):
        assert OperationIdGenerator(start=41).next_id() == 42

    def test_negative_start_rejected(self):
        with pytest.raises(ValueError, match="start must be >= 0"):
            OperationIdGenerator(start=-1)

    def test_ids_unique_across_threads(self):
        generator = OperationIdGenerator()
        ids = []
        lock = threading.Lock()

        def worker():
            local = [generator.next_id() for _ in range(500)]
            with lock:
                ids.extend(local)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(ids) == 4000
        assert len(set(ids)) == 4000
        assert min(ids) == 1

    def test_default_generator_is_shared(self):
        assert get_default_id_generator() is get_default_id_generator()


class TestPendingOperations:

    def test_add_and_lookup(self):
        pending = PendingOperations()
        reply = _reply()
        pending.add(reply, 7, _handler)

        assert reply in pending
        assert len(pending) == 1
        assert pending.operation_id_for(reply) == 7
        assert pending.operation_id_for(_reply("/other")) == 0

    def test_duplicate_reply_rejected(self):
        pending = PendingOperations()
        reply = _reply()
        pending.add(reply, 1, _handler)

        with pytest.raises(ValueError, match="already registered"):
            pending.add(reply, 2, _handler)

    def test_take_removes_exactly_once(self):
        pending = PendingOperations()
        reply = _reply()
        pending.add(reply, 3, _handler)

        assert pending.take(reply) == PendingOperation(3, _handler)
        assert pending.take(reply) is None
        assert reply not in pending

    def test_take_by_operation_id(self):
        pending = PendingOperations()
        first, second = _reply("/a"), _reply("/b")
        pending.add(first, 1, _handler)
        pending.add(second, 2, _handler)

        reply, entry = pending.take_by_operation_id(2)

        assert reply is second
        assert entry.operation_id == 2
        assert pending.take_by_operation_id(2) is None
        assert len(pending) == 1

    def test_take_all_clears(self):
        pending = PendingOperations()
        replies = [_reply(f"/{i}") for i in range(3)]
        for operation_id, reply in enumerate(replies, start=1):
            pending.add(reply, operation_id, _handler)

        entries = pending.take_all()

        assert [entry.operation_id for _, entry in entries] == [1, 2, 3]
        assert len(pending) == 0
        assert pending.take_all() == []

    def test_concurrent_takes_yield_one_winner(self):
        pending = PendingOperations()
        reply = _reply()
        pending.add(reply, 9, _handler)
        winners = []
        barrier = threading.Barrier(6)

        def racer(use_id):
            barrier.wait()
            result = pending.take_by_operation_id(9) if use_id else pending.take(reply)
            if result is not None:
                winners.append(result)

        threads = [threading.Thread(target=racer, args=(i % 2 == 0,)) for i in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(winners) == 1
