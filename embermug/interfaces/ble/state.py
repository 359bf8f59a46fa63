"""BLE connection state management."""

import asyncio
import itertools
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from embermug.interfaces.ble.constants import logger
from embermug.interfaces.ble.gatt import CharacteristicRegistry

if TYPE_CHECKING:
    from embermug.interfaces.ble.client import ScannedDevice
    from embermug.interfaces.ble.notifications import PushEventDispatcher


class ConnectionState(Enum):
    """Enum for managing the manager's connection lifecycle."""

    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    SETTING_UP = "setting_up"
    READY = "ready"
    DISCONNECTING = "disconnecting"


_VALID_TRANSITIONS = {
    ConnectionState.IDLE: {
        ConnectionState.SCANNING,
        ConnectionState.CONNECTING,
    },
    ConnectionState.SCANNING: {
        ConnectionState.IDLE,
        ConnectionState.CONNECTING,
    },
    ConnectionState.CONNECTING: {
        ConnectionState.SETTING_UP,
        ConnectionState.DISCONNECTING,
        ConnectionState.IDLE,
    },
    ConnectionState.SETTING_UP: {
        ConnectionState.READY,
        ConnectionState.DISCONNECTING,
        ConnectionState.IDLE,
    },
    ConnectionState.READY: {
        ConnectionState.DISCONNECTING,
        ConnectionState.IDLE,
    },
    ConnectionState.DISCONNECTING: {
        ConnectionState.IDLE,
    },
}


class Session:
    """One connection to one mug.

    Owns the handle registry, poll task and notification subscription for the
    lifetime of a link. Once :meth:`close` has run, every coroutine holding a
    reference sees `active` as False and must stop touching shared state.
    """

    _generations = itertools.count(1)

    def __init__(self, device: "ScannedDevice"):
        self.device = device
        self.generation = next(Session._generations)
        self.registry = CharacteristicRegistry()
        self.poll_task: Optional["asyncio.Task[Any]"] = None
        self.dispatcher: Optional["PushEventDispatcher"] = None
        self.notifying = False
        self.ready = False
        self.authorized = False
        self.writes_functional = True
        self._closed = False

    @property
    def active(self) -> bool:
        return not self._closed

    def close(self) -> None:
        """Invalidate the session, cancel its timers and drop its handles."""
        self._closed = True
        self.ready = False
        self.notifying = False
        if self.poll_task is not None and not self.poll_task.done():
            self.poll_task.cancel()
        self.poll_task = None
        if self.dispatcher is not None:
            self.dispatcher.cancel_pending()
            self.dispatcher = None
        self.registry.clear()

    def __repr__(self):
        return (
            f"Session(gen={self.generation}, device={self.device.name!r}, "
            f"active={self.active}, ready={self.ready})"
        )


class BLEStateManager:
    """State machine for the connection lifecycle.

    Replaces boolean flags with explicit states, and owns the single live
    :class:`Session` so "is this still the active session" is answered in one
    place.
    """

    def __init__(self):
        """Initialize state manager in the IDLE state with no session."""
        self._state = ConnectionState.IDLE
        self._session: Optional[Session] = None

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == ConnectionState.READY

    @property
    def is_busy(self) -> bool:
        """True while a connection attempt or live session exists."""
        return self._state in (
            ConnectionState.CONNECTING,
            ConnectionState.SETTING_UP,
            ConnectionState.READY,
            ConnectionState.DISCONNECTING,
        )

    @property
    def session(self) -> Optional[Session]:
        return self._session

    def is_current(self, session: Optional[Session]) -> bool:
        """Return True if `session` is the live one and has not been closed."""
        return session is not None and session is self._session and session.active

    def open_session(self, device: "ScannedDevice") -> Session:
        """Replace any previous session with a fresh one for `device`."""
        if self._session is not None:
            self._session.close()
        self._session = Session(device)
        return self._session

    def close_session(self, session: Optional[Session] = None) -> Optional[Session]:
        """Close `session` (or whichever is live) and forget it.

        Returns the closed session, or None if `session` was already stale.
        """
        target = self._session if session is None else session
        if target is None:
            return None
        target.close()
        if target is self._session:
            self._session = None
            return target
        return None

    def transition_to(self, new_state: ConnectionState) -> bool:
        """State transition with validation.

        Args:
        ----
            new_state: Target state to transition to

        Returns:
        -------
            True if transition was valid and applied, False otherwise

        """
        if new_state == self._state:
            return True
        if new_state in _VALID_TRANSITIONS.get(self._state, set()):
            old_state = self._state
            self._state = new_state
            logger.debug("State transition: %s → %s", old_state.value, new_state.value)
            return True
        logger.warning(
            "Invalid state transition: %s → %s", self._state.value, new_state.value
        )
        return False
