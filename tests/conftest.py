"""
Shared pytest fixtures for mug client tests.
"""

import asyncio
from typing import List

import pytest  # type: ignore[import-untyped]  # pylint: disable=E0401

from embermug.interfaces.ble import utils
from embermug.interfaces.simulator import SimulatedMug, SimulatorConfig


@pytest.fixture(autouse=True)
def sleep_calls(monkeypatch):
    """
    Replace the protocol sleep with one that records the requested delay and only yields.

    Returns:
        list: Every delay passed to `utils._sleep`, in call order.
    """
    calls: List[float] = []

    async def _fake_sleep(delay):
        calls.append(delay)
        await asyncio.sleep(0)

    monkeypatch.setattr(utils, "_sleep", _fake_sleep)
    return calls


@pytest.fixture
def mug():
    """A well-behaved simulated mug."""
    return SimulatedMug()


@pytest.fixture
def mug_factory():
    """Build simulated mugs with custom SimulatorConfig fields."""

    def _make(**overrides) -> SimulatedMug:
        return SimulatedMug(SimulatorConfig(**overrides))

    return _make
