"""Tests for EventHook listener lists."""

import logging

from restlink.events import EventHook


class TestEventHook:

    def test_emit_calls_listeners_in_order(self):
        hook = EventHook("changed")
        calls = []
        hook.connect(lambda value: calls.append(("a", value)))
        hook.connect(lambda value: calls.append(("b", value)))

        hook.emit(1)

        assert calls == [("a", 1), ("b", 1)]

    def test_disconnect(self):
        hook = EventHook("changed")
        calls = []

        def listener():
            calls.append(True)

        hook.connect(listener)
        assert hook.disconnect(listener) is True
        assert hook.disconnect(listener) is False
        hook.emit()

        assert calls == []
        assert len(hook) == 0

    def test_listener_exception_is_logged_and_delivery_continues(self, caplog):
        hook = EventHook("changed")
        calls = []

        def broken():
            raise RuntimeError("listener bug")

        hook.connect(broken)
        hook.connect(lambda: calls.append(True))

        with caplog.at_level(logging.ERROR, logger="restlink.events"):
            hook.emit()

        assert calls == [True]
        assert "Listener for 'changed' raised" in caplog.text

    def test_listener_may_disconnect_itself_during_emit(self):
        hook = EventHook("changed")
        calls = []

        def once():
            calls.append("once")
            hook.disconnect(once)

        hook.connect(once)
        hook.connect(lambda: calls.append("always"))

        hook.emit()
        hook.emit()

        assert calls == ["once", "always", "always"]

    def test_clear(self):
        hook = EventHook("changed")
        hook.connect(lambda: None)
        hook.clear()
        assert len(hook) == 0
