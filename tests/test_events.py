"""Tests for the per-manager event bus."""

import logging

import pytest

from embermug.interfaces.ble.events import EVENTS, EventBus, topic_name
from embermug.interfaces.ble.exceptions import ErrorKind
from embermug.models import DeviceState

from test_mug_fixtures import EventRecorder


class Exploding:
    def __init__(self):
        self.calls = 0

    def on_state_change(self, state):
        self.calls += 1
        raise RuntimeError("listener bug")


def test_topic_names():
    assert topic_name("state_change") == "embermug.state_change"
    assert set(EVENTS) == {
        "scanning",
        "device_found",
        "connected",
        "disconnected",
        "state_change",
        "error",
    }


def test_every_event_is_delivered_in_order():
    bus = EventBus()
    recorder = EventRecorder(bus)
    state = DeviceState(battery_level=40)

    bus.emit_scanning(True)
    bus.emit_device_found("Ember Ceramic Mug")
    bus.emit_connected()
    bus.emit_state_change(state)
    bus.emit_disconnected()
    bus.emit_error(ErrorKind.CONNECTION_FAILED, "gave up")

    assert recorder.events == [
        ("scanning", True),
        ("device_found", "Ember Ceramic Mug"),
        ("connected", None),
        ("state_change", state),
        ("disconnected", None),
        ("error", (ErrorKind.CONNECTION_FAILED, "gave up")),
    ]


def test_buses_are_isolated():
    first, second = EventBus(), EventBus()
    recorder = EventRecorder(first)

    second.emit_connected()

    assert recorder.events == []


def test_unknown_event_rejected():
    bus = EventBus()
    recorder = EventRecorder(bus)
    with pytest.raises(ValueError, match="Unknown event"):
        bus.subscribe("stateChange", recorder.on_state_change)


def test_failing_listener_does_not_break_dispatch(caplog):
    bus = EventBus()
    exploding = Exploding()
    bus.subscribe("state_change", exploding.on_state_change)
    recorder = EventRecorder(bus)

    with caplog.at_level(logging.ERROR, logger="embermug.ble"):
        bus.emit_state_change(DeviceState())

    assert exploding.calls == 1
    assert len(recorder.of("state_change")) == 1
    assert "listener bug" in caplog.text


def test_unsubscribe():
    bus = EventBus()
    recorder = EventRecorder(bus)
    bus.unsubscribe("connected", recorder.on_connected)

    bus.emit_connected()
    bus.emit_disconnected()

    assert recorder.names() == ["disconnected"]

    bus.unsubscribe_all()
    bus.emit_disconnected()
    assert recorder.names() == ["disconnected"]
