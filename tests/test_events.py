import pytest

from lugha.client.events import EventEmitter


def test_listeners_receive_payload_in_registration_order():
    emitter = EventEmitter(("message", "error"))
    received = []
    emitter.on("message", lambda payload: received.append(("first", payload)))
    emitter.on("message", lambda payload: received.append(("second", payload)))

    emitter.emit("message", "Sopa")

    assert received == [("first", "Sopa"), ("second", "Sopa")]


def test_unsubscribe_handle():
    emitter = EventEmitter(("message",))
    received = []
    unsubscribe = emitter.on("message", received.append)

    unsubscribe()
    unsubscribe()
    emitter.emit("message", "lost")

    assert received == []
    assert emitter.listener_count("message") == 0


def test_failing_listener_does_not_block_others():
    emitter = EventEmitter(("error",))
    received = []

    def broken(_payload):
        raise RuntimeError("listener bug")

    emitter.on("error", broken)
    emitter.on("error", received.append)

    emitter.emit("error", "Connection error")

    assert received == ["Connection error"]


def test_unknown_event_rejected():
    emitter = EventEmitter(("message",))

    with pytest.raises(ValueError, match="Unknown event"):
        emitter.on("typing", print)
