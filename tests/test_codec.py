"""Tests for the characteristic byte layouts."""

import pytest

from embermug.interfaces.ble import codec
from embermug.models import LiquidState, RGBAColor, TemperatureUnit


class TestTemperature:
    def test_known_encoding(self):
        assert codec.encode_temperature(55.0) == bytes([0x7C, 0x15])

    def test_decodes_little_endian_centidegrees(self):
        assert codec.decode_temperature(bytes([0x7C, 0x15])) == 55.0
        assert codec.decode_temperature(bytes([0x9C, 0x15, 0xFF])) == 55.32

    @pytest.mark.parametrize("value", [0.0, 0.01, 49.99, 50.0, 55.56, 62.99, 63.0, 655.35])
    def test_round_trips_hundredths(self, value):
        assert codec.decode_temperature(codec.encode_temperature(value)) == value

    def test_rounds_to_nearest_hundredth(self):
        assert codec.encode_temperature(55.555) in (
            codec.encode_temperature(55.55),
            codec.encode_temperature(55.56),
        )

    @pytest.mark.parametrize("value", [-0.5, 655.36])
    def test_rejects_unencodable(self, value):
        with pytest.raises(ValueError):
            codec.encode_temperature(value)

    @pytest.mark.parametrize("data", [None, b"", b"\x7c"])
    def test_short_payload_decodes_to_none(self, data):
        assert codec.decode_temperature(data) is None


class TestBattery:
    def test_level_and_charging_flag(self):
        assert codec.decode_battery(bytes([80, 1])) == (80, True)
        assert codec.decode_battery(bytes([80, 0])) == (80, False)

    def test_charging_flag_must_be_exactly_one(self):
        assert codec.decode_battery(bytes([50, 2])) == (50, False)

    def test_level_capped_at_100(self):
        assert codec.decode_battery(bytes([250, 0])) == (100, False)

    def test_short_payload(self):
        assert codec.decode_battery(bytes([80])) is None

    def test_encode(self):
        assert codec.encode_battery(74.6, True) == bytes([75, 1])


class TestEnums:
    def test_liquid_state(self):
        assert codec.decode_liquid_state(bytes([5])) is LiquidState.HEATING
        assert codec.encode_liquid_state(LiquidState.STABLE) == bytes([6])

    @pytest.mark.parametrize("raw", [0, 3, 7, 255])
    def test_unknown_liquid_state_ignored(self, raw):
        assert codec.decode_liquid_state(bytes([raw])) is None

    def test_temperature_unit(self):
        assert codec.decode_temperature_unit(b"\x01") is TemperatureUnit.FAHRENHEIT
        assert codec.decode_temperature_unit(b"\x02") is None
        assert codec.encode_temperature_unit(TemperatureUnit.CELSIUS) == b"\x00"
        assert codec.encode_temperature_unit(1) == b"\x01"


class TestMisc:
    def test_color(self):
        assert codec.decode_color(bytes([1, 2, 3, 4])) == RGBAColor(1, 2, 3, 4)
        assert codec.decode_color(bytes([1, 2, 3])) is None
        assert codec.encode_color(RGBAColor(255, 147, 41)) == bytes([255, 147, 41, 255])

    def test_name_strips_nuls(self):
        assert codec.decode_name(b"Ember Mug\x00\x00") == "Ember Mug"
        assert codec.decode_name(b"\x00\x00") is None
        assert codec.decode_name(None) is None

    def test_push_event(self):
        assert codec.decode_push_event(b"\x05\x00") == 5
        assert codec.decode_push_event(b"") is None

    @pytest.mark.parametrize(
        "data, expected",
        [(None, True), (b"", True), (bytes(20), True), (b"\x00" * 19 + b"\x01", False)],
    )
    def test_is_zero_key(self, data, expected):
        assert codec.is_zero_key(data) is expected
