"""Typed event channels for manager consumers."""

from typing import Callable

from pubsub.core import Publisher

from embermug.interfaces.ble.constants import logger
from embermug.interfaces.ble.exceptions import ErrorKind
from embermug.models import DeviceState

TOPIC_ROOT = "embermug"

SCANNING = "scanning"
DEVICE_FOUND = "device_found"
CONNECTED = "connected"
DISCONNECTED = "disconnected"
STATE_CHANGE = "state_change"
ERROR = "error"


# Prototype listeners; their signatures define each topic's message data.
def _proto_root():
    pass


def _proto_scanning(scanning: bool):
    pass


def _proto_device_found(name: str):
    pass


def _proto_connected():
    pass


def _proto_disconnected():
    pass


def _proto_state_change(state: DeviceState):
    pass


def _proto_error(kind: ErrorKind, message: str):
    pass


_PROTOTYPES = {
    SCANNING: _proto_scanning,
    DEVICE_FOUND: _proto_device_found,
    CONNECTED: _proto_connected,
    DISCONNECTED: _proto_disconnected,
    STATE_CHANGE: _proto_state_change,
    ERROR: _proto_error,
}

EVENTS = tuple(_PROTOTYPES)


def topic_name(event: str) -> str:
    return f"{TOPIC_ROOT}.{event}"


def _log_listener_exception(listener_id: str, topic_obj) -> None:
    """Keep a failing listener from breaking delivery to the others."""
    logger.exception(
        "Listener %s raised while handling %s", listener_id, topic_obj.getName()
    )


class EventBus:
    """
    Per-manager publisher with one topic per event kind.

    Each manager owns its own pypubsub :class:`Publisher`, so two managers in
    one process never see each other's events. Like all pypubsub listeners,
    subscribed callables are held weakly: keep a reference for as long as
    you want to receive events.
    """

    def __init__(self):
        self._publisher = Publisher()
        self._publisher.setListenerExcHandler(_log_listener_exception)
        topic_mgr = self._publisher.getTopicMgr()
        topic_mgr.getOrCreateTopic(TOPIC_ROOT, _proto_root)
        for event, proto in _PROTOTYPES.items():
            topic_mgr.getOrCreateTopic(topic_name(event), proto)

    def subscribe(self, event: str, listener: Callable) -> None:
        """Register `listener` for `event` (one of :data:`EVENTS`)."""
        if event not in _PROTOTYPES:
            raise ValueError(f"Unknown event {event!r}; expected one of {EVENTS}")
        self._publisher.subscribe(listener, topic_name(event))

    def unsubscribe(self, event: str, listener: Callable) -> None:
        self._publisher.unsubscribe(listener, topic_name(event))

    def unsubscribe_all(self) -> None:
        self._publisher.unsubAll()

    def emit_scanning(self, scanning: bool) -> None:
        self._publisher.sendMessage(topic_name(SCANNING), scanning=scanning)

    def emit_device_found(self, name: str) -> None:
        self._publisher.sendMessage(topic_name(DEVICE_FOUND), name=name)

    def emit_connected(self) -> None:
        self._publisher.sendMessage(topic_name(CONNECTED))

    def emit_disconnected(self) -> None:
        self._publisher.sendMessage(topic_name(DISCONNECTED))

    def emit_state_change(self, state: DeviceState) -> None:
        self._publisher.sendMessage(topic_name(STATE_CHANGE), state=state)

    def emit_error(self, kind: ErrorKind, message: str) -> None:
        logger.debug("Emitting error %s: %s", kind.value, message)
        self._publisher.sendMessage(topic_name(ERROR), kind=kind, message=message)
