"""Tests for BLEStateManager state machine functionality."""

import asyncio

import pytest

from embermug.interfaces.ble.client import ScannedDevice
from embermug.interfaces.ble.gatt import DiscoveredCharacteristic
from embermug.interfaces.ble.constants import Field
from embermug.interfaces.ble.state import BLEStateManager, ConnectionState, Session

DEVICE = ScannedDevice(name="Ember Ceramic Mug", address="C0:FF:EE:00:00:01")


class TestBLEStateManager:
    """Test cases for BLEStateManager class."""

    def test_initial_state(self):
        manager = BLEStateManager()
        assert manager.state == ConnectionState.IDLE
        assert not manager.is_ready
        assert not manager.is_busy
        assert manager.session is None

    def test_state_properties(self):
        manager = BLEStateManager()

        manager._state = ConnectionState.READY
        assert manager.is_ready
        assert manager.is_busy

        manager._state = ConnectionState.DISCONNECTING
        assert not manager.is_ready
        assert manager.is_busy

        manager._state = ConnectionState.SCANNING
        assert not manager.is_busy

    def test_full_lifecycle_transitions(self):
        manager = BLEStateManager()

        for state in (
            ConnectionState.SCANNING,
            ConnectionState.CONNECTING,
            ConnectionState.SETTING_UP,
            ConnectionState.READY,
            ConnectionState.DISCONNECTING,
            ConnectionState.IDLE,
        ):
            assert manager.transition_to(state)
            assert manager.state == state

    @pytest.mark.parametrize(
        "start",
        [ConnectionState.CONNECTING, ConnectionState.SETTING_UP, ConnectionState.READY],
    )
    def test_failure_edges_return_to_idle(self, start):
        manager = BLEStateManager()
        manager._state = start
        assert manager.transition_to(ConnectionState.IDLE)

    def test_invalid_transitions(self, caplog):
        manager = BLEStateManager()

        assert not manager.transition_to(ConnectionState.READY)
        assert manager.state == ConnectionState.IDLE
        assert "Invalid state transition" in caplog.text

        manager._state = ConnectionState.DISCONNECTING
        assert not manager.transition_to(ConnectionState.CONNECTING)
        assert manager.state == ConnectionState.DISCONNECTING

    def test_same_state_transition_is_noop(self):
        manager = BLEStateManager()
        assert manager.transition_to(ConnectionState.IDLE)
        assert manager.state == ConnectionState.IDLE


class TestSessions:
    """Tests for the one-live-session bookkeeping."""

    def test_open_session_replaces_previous(self):
        manager = BLEStateManager()
        first = manager.open_session(DEVICE)
        second = manager.open_session(DEVICE)

        assert second.generation > first.generation
        assert not first.active
        assert manager.is_current(second)
        assert not manager.is_current(first)

    def test_close_session_returns_none_for_stale(self):
        manager = BLEStateManager()
        stale = manager.open_session(DEVICE)
        live = manager.open_session(DEVICE)

        assert manager.close_session(stale) is None
        assert manager.session is live
        assert manager.close_session(live) is live
        assert manager.session is None

    def test_is_current_false_after_session_close(self):
        manager = BLEStateManager()
        session = manager.open_session(DEVICE)
        session.close()
        assert not manager.is_current(session)
        assert not manager.is_current(None)

    def test_close_clears_registry_and_cancels_poll(self):
        async def _run():
            session = Session(DEVICE)
            session.registry.load([DiscoveredCharacteristic(Field.NAME.uuid, frozenset({"read"}))])
            session.poll_task = asyncio.get_running_loop().create_task(asyncio.sleep(60))
            task = session.poll_task
            session.ready = True

            session.close()
            await asyncio.sleep(0)
            return session, task

        session, task = asyncio.run(_run())
        assert task.cancelled()
        assert session.poll_task is None
        assert len(session.registry) == 0
        assert not session.ready
        assert "active=False" in repr(session)
