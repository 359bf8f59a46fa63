"""Binary layouts of the mug's characteristics.

Temperatures are little-endian uint16 in hundredths of a degree Celsius,
battery is (percent, charging flag), liquid state and unit are single
validated bytes and the LED color is four raw RGBA bytes. Decoders return
None for payloads that are too short or hold an unknown value; such reads
are ignored by the caller rather than treated as errors.
"""

import struct
from typing import Optional, Tuple, Union

from embermug.models import LiquidState, RGBAColor, TemperatureUnit

_UINT16_LE = struct.Struct("<H")
TEMPERATURE_SCALE = 100


def encode_temperature(celsius: float) -> bytes:
    """Encode °C as centi-degrees; 55.00 encodes to b'\\x7c\\x15'."""
    raw = int(round(float(celsius) * TEMPERATURE_SCALE))
    if not 0 <= raw <= 0xFFFF:
        raise ValueError(f"temperature {celsius!r} out of encodable range")
    return _UINT16_LE.pack(raw)


def decode_temperature(data: Optional[bytes]) -> Optional[float]:
    if data is None or len(data) < 2:
        return None
    (raw,) = _UINT16_LE.unpack_from(data, 0)
    return raw / TEMPERATURE_SCALE


def decode_battery(data: Optional[bytes]) -> Optional[Tuple[int, bool]]:
    """Return (level percent, charging) or None."""
    if data is None or len(data) < 2:
        return None
    return min(int(data[0]), 100), data[1] == 1


def encode_battery(level: float, charging: bool) -> bytes:
    return bytes((max(0, min(100, int(round(level)))), 1 if charging else 0))


def decode_liquid_state(data: Optional[bytes]) -> Optional[LiquidState]:
    if not data:
        return None
    try:
        return LiquidState(data[0])
    except ValueError:
        return None


def encode_liquid_state(state: LiquidState) -> bytes:
    return bytes((int(state),))


def decode_temperature_unit(data: Optional[bytes]) -> Optional[TemperatureUnit]:
    if not data:
        return None
    try:
        return TemperatureUnit(data[0])
    except ValueError:
        return None


def encode_temperature_unit(unit: Union[TemperatureUnit, int]) -> bytes:
    return bytes((int(TemperatureUnit(unit)),))


def decode_color(data: Optional[bytes]) -> Optional[RGBAColor]:
    if data is None or len(data) < 4:
        return None
    return RGBAColor(data[0], data[1], data[2], data[3])


def encode_color(color: RGBAColor) -> bytes:
    return color.as_bytes()


def decode_name(data: Optional[bytes]) -> Optional[str]:
    if not data:
        return None
    name = bytes(data).decode("utf-8", errors="replace").replace("\x00", "").strip()
    return name or None


def decode_push_event(data: Optional[bytes]) -> Optional[int]:
    if not data:
        return None
    return data[0]


def is_zero_key(data: Optional[bytes]) -> bool:
    """True for an absent, empty or all-zero secret key."""
    return not data or not any(data)
