"""Tests for write authorization, the capability probe and echo checks."""

import asyncio

import pytest

from embermug.interfaces.ble.authorization import WriteVerificationGate, perturb_color
from embermug.interfaces.ble.client import ScannedDevice
from embermug.interfaces.ble.codec import decode_temperature, encode_temperature
from embermug.interfaces.ble.constants import SERVICE_UUID, BLEConfig, Field
from embermug.interfaces.ble.exceptions import UnexpectedDisconnect, WriteNotApplied
from embermug.interfaces.ble.gatt import CharacteristicRegistry
from embermug.interfaces.ble.transport import FieldTransport
from embermug.models import RGBAColor

DEVICE = ScannedDevice(name="Ember Ceramic Mug", address="C0:FF:EE:00:00:01")


def _run_with_gate(mug, action):
    """Connect `mug`, build a gate over it and await `action(gate)`."""

    async def _run():
        await mug.connect(DEVICE, lambda: None)
        registry = CharacteristicRegistry()
        registry.load(await mug.discover_service(SERVICE_UUID))
        return await action(WriteVerificationGate(FieldTransport(mug, registry)))

    return asyncio.run(_run())


def _udsk_writes(mug):
    return [data for field, data in mug.writes if field is Field.UDSK]


class TestPerturbColor:
    def test_moves_red_by_one(self):
        assert perturb_color(RGBAColor(10, 20, 30, 40)) == RGBAColor(11, 20, 30, 40)

    def test_steps_down_at_the_top(self):
        assert perturb_color(RGBAColor(255, 0, 0)) == RGBAColor(254, 0, 0)


class TestEnable:
    def test_existing_key_is_kept(self, mug_factory):
        mug = mug_factory(initial_udsk=bytes([7]) * 20)

        assert _run_with_gate(mug, lambda gate: gate.enable()) is True
        assert _udsk_writes(mug) == []

    def test_fresh_key_is_written(self, mug):
        assert _run_with_gate(mug, lambda gate: gate.enable()) is True

        [key] = _udsk_writes(mug)
        assert len(key) == 20
        assert mug.udsk == key

    def test_unsupported_mug_downgrades_to_read_only(self, mug_factory, caplog):
        mug = mug_factory(authorization_supported=False)

        assert _run_with_gate(mug, lambda gate: gate.enable()) is False
        assert len(_udsk_writes(mug)) == 1
        assert "Re-enroll" in caplog.text

    def test_rejected_key_write(self, mug_factory):
        mug = mug_factory(reject_writes=True)
        assert _run_with_gate(mug, lambda gate: gate.enable()) is False

    def test_mug_without_key_characteristic(self, mug_factory):
        mug = mug_factory(missing_fields=frozenset({Field.UDSK}))
        assert _run_with_gate(mug, lambda gate: gate.enable()) is True
        assert mug.writes == []


class TestProbe:
    def test_functional_mug(self, mug, sleep_calls):
        assert _run_with_gate(mug, lambda gate: gate.probe()) is True

        assert sleep_calls == [BLEConfig.WRITE_SETTLE_DELAY]
        assert mug.color == RGBAColor(255, 147, 41, 255)

    def test_mug_ignoring_writes(self, mug_factory):
        mug = mug_factory(apply_writes=False)

        assert _run_with_gate(mug, lambda gate: gate.probe()) is False
        # probe write plus the restore
        assert [field for field, _ in mug.writes] == [Field.LED_COLOR, Field.LED_COLOR]
        assert mug.color == RGBAColor(255, 147, 41, 255)

    def test_transport_failure_means_not_functional(self, mug_factory):
        mug = mug_factory(reject_writes=True)
        assert _run_with_gate(mug, lambda gate: gate.probe()) is False

    def test_restores_original_color(self, mug_factory):
        mug = mug_factory(initial_color=RGBAColor(0, 128, 255, 200))

        assert _run_with_gate(mug, lambda gate: gate.probe()) is True
        assert mug.writes[-1] == (Field.LED_COLOR, bytes([0, 128, 255, 200]))
        assert mug.color == RGBAColor(0, 128, 255, 200)

    def test_missing_led_skips_probe(self, mug_factory):
        mug = mug_factory(missing_fields=frozenset({Field.LED_COLOR}))

        assert _run_with_gate(mug, lambda gate: gate.probe()) is True
        assert mug.writes == []


class TestWriteVerified:
    def test_returns_echo(self, mug):
        echoed = _run_with_gate(
            mug,
            lambda gate: gate.write_verified(
                Field.TARGET_TEMP,
                encode_temperature(58.0),
                decode_temperature,
                lambda value: abs(value - 58.0) <= 0.5,
                "Target temperature",
                "58.00",
            ),
        )
        assert echoed == 58.0

    def test_mismatch_raises(self, mug_factory):
        mug = mug_factory(apply_writes=False)

        with pytest.raises(WriteNotApplied, match=r"expected 58\.00, got 55\.0"):
            _run_with_gate(
                mug,
                lambda gate: gate.write_verified(
                    Field.TARGET_TEMP,
                    encode_temperature(58.0),
                    decode_temperature,
                    lambda value: abs(value - 58.0) <= 0.5,
                    "Target temperature",
                    "58.00",
                ),
            )

    def test_lost_link_is_reported_as_disconnect(self, mug):
        async def _write(gate):
            gate.is_live = lambda: False
            return await gate.write_verified(
                Field.TARGET_TEMP,
                encode_temperature(58.0),
                decode_temperature,
                lambda value: abs(value - 58.0) <= 0.5,
                "Target temperature",
                "58.00",
            )

        with pytest.raises(UnexpectedDisconnect):
            _run_with_gate(mug, _write)
        assert mug.target_temp == 58.0
        assert mug.reads == []

    def test_ensure_writable(self):
        WriteVerificationGate.ensure_writable(True)
        with pytest.raises(WriteNotApplied, match="not accepting writes"):
            WriteVerificationGate.ensure_writable(False)
