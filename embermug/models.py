"""Device state model shared by the protocol client and its consumers."""

from dataclasses import dataclass, field, replace
from enum import IntEnum

MIN_TEMP_CELSIUS = 50.0
MAX_TEMP_CELSIUS = 63.0


class LiquidState(IntEnum):
    """Contents/thermal status reported by the mug."""

    EMPTY = 1
    FILLING = 2
    COOLING = 4
    HEATING = 5
    STABLE = 6


class TemperatureUnit(IntEnum):
    """Display unit stored on the mug."""

    CELSIUS = 0
    FAHRENHEIT = 1


@dataclass(frozen=True)
class RGBAColor:
    """LED color, one byte per channel."""

    r: int
    g: int
    b: int
    a: int = 255

    def __post_init__(self):
        for channel in ("r", "g", "b", "a"):
            value = getattr(self, channel)
            if not isinstance(value, int) or not 0 <= value <= 255:
                raise ValueError(f"{channel} must be an int in 0..255, got {value!r}")

    def same_rgb(self, other: "RGBAColor") -> bool:
        """Compare color channels only; the mug may adjust alpha on its own."""
        return (self.r, self.g, self.b) == (other.r, other.g, other.b)

    def as_bytes(self) -> bytes:
        return bytes((self.r, self.g, self.b, self.a))


DEFAULT_COLOR = RGBAColor(255, 255, 255, 255)


def clamp_temperature(celsius: float) -> float:
    """Clamp a target temperature into the range the mug accepts."""
    return max(MIN_TEMP_CELSIUS, min(MAX_TEMP_CELSIUS, float(celsius)))


def celsius_to_fahrenheit(celsius: float) -> float:
    return celsius * 9.0 / 5.0 + 32.0


def fahrenheit_to_celsius(fahrenheit: float) -> float:
    return (fahrenheit - 32.0) * 5.0 / 9.0


@dataclass
class DeviceState:
    """Canonical in-memory mirror of the mug.

    Only the manager mutates an instance; everything handed to callers is a
    copy made with :meth:`copy`.
    """

    connected: bool = False
    battery_level: int = 0
    is_charging: bool = False
    current_temp: float = 0.0
    target_temp: float = MIN_TEMP_CELSIUS
    liquid_state: LiquidState = LiquidState.EMPTY
    temperature_unit: TemperatureUnit = TemperatureUnit.CELSIUS
    color: RGBAColor = field(default=DEFAULT_COLOR)
    device_name: str = ""

    def copy(self) -> "DeviceState":
        # RGBAColor is frozen, so a shallow copy is already independent.
        return replace(self)
