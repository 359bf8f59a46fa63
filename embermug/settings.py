"""
Persisted user settings.

A small JSON document holding presets, the preferred unit and LED color, the
last chosen target temperature and notification preferences. The protocol
client only ever reads `last_target_temp`; the rest belongs to front ends.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from embermug.models import RGBAColor, TemperatureUnit, clamp_temperature

logger = logging.getLogger("embermug.settings")

SETTINGS_ENV_VAR = "EMBERMUG_SETTINGS"


@dataclass
class Preset:
    id: str
    name: str
    temperature: float


DEFAULT_PRESETS = (
    Preset("1", "Latte", 52.0),
    Preset("2", "Coffee", 55.56),
    Preset("3", "Tea", 60.0),
)
DEFAULT_LED_COLOR = RGBAColor(255, 147, 41, 255)
DEFAULT_TARGET_TEMP = 55.0


def default_settings_path() -> Path:
    """`$EMBERMUG_SETTINGS`, else `~/.config/embermug/settings.json`."""
    override = os.getenv(SETTINGS_ENV_VAR)
    if override:
        return Path(override).expanduser()
    base = os.getenv("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return Path(base) / "embermug" / "settings.json"


@dataclass
class Settings:
    """User preferences with defaults for every key."""

    presets: List[Preset] = field(default_factory=lambda: [Preset(**asdict(p)) for p in DEFAULT_PRESETS])
    temperature_unit: TemperatureUnit = TemperatureUnit.CELSIUS
    led_color: RGBAColor = DEFAULT_LED_COLOR
    last_target_temp: float = DEFAULT_TARGET_TEMP
    notify_on_temperature_reached: bool = True
    notify_at_battery_percentage: int = 15
    path: Optional[Path] = field(default=None, repr=False, compare=False)

    @classmethod
    def load(cls, path: Union[str, Path, None] = None) -> "Settings":
        """
        Load settings from `path` (default: :func:`default_settings_path`).

        A missing file yields defaults. Unreadable files and bad values are
        logged and replaced by defaults rather than raised.
        """
        path = Path(path) if path is not None else default_settings_path()
        if not path.exists():
            logger.debug("Settings file %s not found, using defaults", path)
            return cls(path=path)
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read settings from %s: %s; using defaults", path, e)
            return cls(path=path)
        if not isinstance(data, dict):
            logger.warning("Settings file %s is not a JSON object; using defaults", path)
            return cls(path=path)
        return cls._from_dict(data, path)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any], path: Optional[Path]) -> "Settings":
        settings = cls(path=path)
        presets = data.get("presets")
        if isinstance(presets, list):
            try:
                settings.presets = [
                    Preset(str(p["id"]), str(p["name"]), float(p["temperature"]))
                    for p in presets
                ]
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Ignoring malformed presets: %s", e)
        try:
            settings.temperature_unit = TemperatureUnit(
                data.get("temperatureUnit", settings.temperature_unit)
            )
        except ValueError:
            logger.warning("Ignoring unknown temperature unit %r", data.get("temperatureUnit"))
        color = data.get("ledColor")
        if isinstance(color, dict):
            try:
                settings.led_color = RGBAColor(
                    int(color["r"]), int(color["g"]), int(color["b"]), int(color.get("a", 255))
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Ignoring malformed LED color: %s", e)
        try:
            settings.last_target_temp = float(
                data.get("lastTargetTemp", settings.last_target_temp)
            )
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed lastTargetTemp %r", data.get("lastTargetTemp"))
        settings.notify_on_temperature_reached = bool(
            data.get("notifyOnTemperatureReached", settings.notify_on_temperature_reached)
        )
        try:
            settings.notify_at_battery_percentage = int(
                data.get("notifyAtBatteryPercentage", settings.notify_at_battery_percentage)
            )
        except (TypeError, ValueError):
            logger.warning(
                "Ignoring malformed notifyAtBatteryPercentage %r",
                data.get("notifyAtBatteryPercentage"),
            )
        return settings

    def to_dict(self) -> Dict[str, Any]:
        return {
            "presets": [asdict(p) for p in self.presets],
            "temperatureUnit": int(self.temperature_unit),
            "ledColor": {
                "r": self.led_color.r,
                "g": self.led_color.g,
                "b": self.led_color.b,
                "a": self.led_color.a,
            },
            "lastTargetTemp": self.last_target_temp,
            "notifyOnTemperatureReached": self.notify_on_temperature_reached,
            "notifyAtBatteryPercentage": self.notify_at_battery_percentage,
        }

    def save(self, path: Union[str, Path, None] = None) -> Path:
        """Write the settings as JSON, creating parent directories."""
        target = Path(path) if path is not None else (self.path or default_settings_path())
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_suffix(target.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        os.replace(tmp, target)
        self.path = target
        logger.debug("Saved settings to %s", target)
        return target

    @property
    def default_target_temp(self) -> float:
        """Last chosen target, clamped into the range the mug accepts."""
        return clamp_temperature(self.last_target_temp)

    def add_preset(self, name: str, temperature: float) -> Preset:
        next_id = str(max((int(p.id) for p in self.presets if p.id.isdigit()), default=0) + 1)
        preset = Preset(next_id, name, float(temperature))
        self.presets.append(preset)
        return preset

    def remove_preset(self, preset_id: str) -> bool:
        before = len(self.presets)
        self.presets = [p for p in self.presets if p.id != preset_id]
        return len(self.presets) != before

    def find_preset(self, name_or_id: str) -> Optional[Preset]:
        wanted = name_or_id.strip().lower()
        for preset in self.presets:
            if preset.id == name_or_id or preset.name.lower() == wanted:
                return preset
        return None

    def reset(self) -> None:
        """Restore every default, keeping the file location."""
        defaults = Settings(path=self.path)
        for name in self.__dataclass_fields__:
            setattr(self, name, getattr(defaults, name))
