"""Tests for the poll scheduler and name-filtered discovery."""

import asyncio

import pytest

from embermug.interfaces.ble.client import ScannedDevice
from embermug.interfaces.ble.constants import Field
from embermug.interfaces.ble.discovery import DiscoveryManager
from embermug.interfaces.ble.polling import PollScheduler
from embermug.interfaces.ble.state import BLEStateManager

DEVICE = ScannedDevice(name="Ember Ceramic Mug", address="C0:FF:EE:00:00:01")


class TestPollScheduler:
    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            PollScheduler(lambda s, f: None, lambda s: True, interval=0)

    def test_polls_current_temp_then_liquid_state(self):
        state_manager = BLEStateManager()
        session = state_manager.open_session(DEVICE)
        reads = []

        async def refresh(polled_session, field):
            assert polled_session is session
            reads.append(field)
            if len(reads) == 4:
                session.close()

        async def _run():
            poller = PollScheduler(refresh, state_manager.is_current, interval=0.001)
            task = poller.start(session)
            await asyncio.wait_for(asyncio.gather(task, return_exceptions=True), 1.0)
            return task

        task = asyncio.run(_run())

        assert reads == [Field.CURRENT_TEMP, Field.LIQUID_STATE] * 2
        assert task.get_name() == f"embermug-poll-{session.generation}"

    def test_stop_cancels_task(self):
        state_manager = BLEStateManager()
        session = state_manager.open_session(DEVICE)

        async def refresh(polled_session, field):
            pass

        async def _run():
            poller = PollScheduler(refresh, state_manager.is_current, interval=60)
            task = poller.start(session)
            PollScheduler.stop(session)
            await asyncio.gather(task, return_exceptions=True)
            return task

        task = asyncio.run(_run())
        assert task.cancelled()
        assert session.poll_task is None

    def test_failing_read_keeps_polling(self):
        state_manager = BLEStateManager()
        session = state_manager.open_session(DEVICE)
        attempts = []

        async def refresh(polled_session, field):
            attempts.append(field)
            if len(attempts) >= 3:
                session.close()
            raise OSError("read failed")

        async def _run():
            poller = PollScheduler(refresh, state_manager.is_current, interval=0.001)
            task = poller.start(session)
            await asyncio.wait_for(asyncio.gather(task, return_exceptions=True), 1.0)

        asyncio.run(_run())
        assert len(attempts) == 3


class TestDiscoveryManager:
    def test_first_match_only(self, mug_factory):
        mug = mug_factory(nearby_devices=("Pixel Buds", "Ember Tumbler", "Fitbit"))
        matches = []

        async def _run():
            discovery = DiscoveryManager(mug, "ember")
            await discovery.start(matches.append)
            assert discovery.scanning
            await asyncio.sleep(0.01)
            await discovery.stop()
            return discovery

        discovery = asyncio.run(_run())

        assert [device.name for device in matches] == ["Ember Tumbler"]
        assert discovery.matched.name == "Ember Tumbler"
        assert not discovery.scanning
        assert not mug.scanning

    def test_failing_callback_is_contained(self, mug):
        def explode(device):
            raise RuntimeError("consumer bug")

        async def _run():
            discovery = DiscoveryManager(mug)
            await discovery.start(explode)
            await asyncio.sleep(0.01)
            await discovery.stop()
            return discovery

        assert asyncio.run(_run()).matched is not None

    def test_stop_when_idle(self, mug):
        asyncio.run(DiscoveryManager(mug).stop())
