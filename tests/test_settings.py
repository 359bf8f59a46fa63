"""Tests for the persisted settings store."""

import json

import pytest

from embermug.models import RGBAColor, TemperatureUnit
from embermug.settings import (
    DEFAULT_LED_COLOR,
    SETTINGS_ENV_VAR,
    Settings,
    default_settings_path,
)


@pytest.fixture
def settings_file(tmp_path):
    return tmp_path / "embermug" / "settings.json"


class TestDefaults:
    def test_missing_file_gives_defaults(self, settings_file):
        settings = Settings.load(settings_file)

        assert [p.name for p in settings.presets] == ["Latte", "Coffee", "Tea"]
        assert settings.temperature_unit is TemperatureUnit.CELSIUS
        assert settings.led_color == DEFAULT_LED_COLOR
        assert settings.last_target_temp == 55.0
        assert settings.notify_on_temperature_reached
        assert settings.notify_at_battery_percentage == 15
        assert settings.path == settings_file

    def test_env_var_overrides_path(self, monkeypatch, tmp_path):
        monkeypatch.setenv(SETTINGS_ENV_VAR, str(tmp_path / "custom.json"))
        assert default_settings_path() == tmp_path / "custom.json"

    def test_xdg_config_home(self, monkeypatch, tmp_path):
        monkeypatch.delenv(SETTINGS_ENV_VAR, raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert default_settings_path() == tmp_path / "embermug" / "settings.json"

    def test_instances_do_not_share_presets(self):
        first, second = Settings(), Settings()
        first.add_preset("Cocoa", 58.0)
        assert len(second.presets) == 3


class TestPersistence:
    def test_save_and_load(self, settings_file):
        settings = Settings.load(settings_file)
        settings.temperature_unit = TemperatureUnit.FAHRENHEIT
        settings.led_color = RGBAColor(1, 2, 3, 4)
        settings.last_target_temp = 58.5
        settings.add_preset("Cocoa", 58.0)
        settings.save()

        loaded = Settings.load(settings_file)
        assert loaded == settings
        assert loaded.find_preset("cocoa").id == "4"

    def test_file_uses_camel_case_keys(self, settings_file):
        Settings().save(settings_file)
        data = json.loads(settings_file.read_text(encoding="utf-8"))
        assert set(data) == {
            "presets",
            "temperatureUnit",
            "ledColor",
            "lastTargetTemp",
            "notifyOnTemperatureReached",
            "notifyAtBatteryPercentage",
        }
        assert data["ledColor"] == {"r": 255, "g": 147, "b": 41, "a": 255}

    def test_malformed_json_falls_back(self, settings_file, caplog):
        settings_file.parent.mkdir(parents=True)
        settings_file.write_text("{not json", encoding="utf-8")

        settings = Settings.load(settings_file)

        assert settings.last_target_temp == 55.0
        assert "Could not read settings" in caplog.text

    def test_bad_values_are_ignored_individually(self, settings_file):
        settings_file.parent.mkdir(parents=True)
        settings_file.write_text(
            json.dumps(
                {
                    "temperatureUnit": 7,
                    "ledColor": {"r": 300, "g": 0, "b": 0},
                    "lastTargetTemp": "hot",
                    "presets": [{"id": "9", "name": "Matcha", "temperature": 57}],
                }
            ),
            encoding="utf-8",
        )

        settings = Settings.load(settings_file)

        assert settings.temperature_unit is TemperatureUnit.CELSIUS
        assert settings.led_color == DEFAULT_LED_COLOR
        assert settings.last_target_temp == 55.0
        assert [p.name for p in settings.presets] == ["Matcha"]

    def test_non_object_document(self, settings_file):
        settings_file.parent.mkdir(parents=True)
        settings_file.write_text("[1, 2]", encoding="utf-8")
        assert Settings.load(settings_file).presets[0].name == "Latte"


class TestPresets:
    def test_find_by_name_or_id(self):
        settings = Settings()
        assert settings.find_preset("Tea").temperature == 60.0
        assert settings.find_preset(" coffee ").temperature == 55.56
        assert settings.find_preset("1").name == "Latte"
        assert settings.find_preset("Espresso") is None

    def test_remove(self):
        settings = Settings()
        assert settings.remove_preset("2")
        assert not settings.remove_preset("2")
        assert [p.name for p in settings.presets] == ["Latte", "Tea"]

    def test_default_target_is_clamped(self):
        assert Settings(last_target_temp=70.0).default_target_temp == 63.0
        assert Settings(last_target_temp=20.0).default_target_temp == 50.0

    def test_reset_keeps_path(self, settings_file):
        settings = Settings(path=settings_file, last_target_temp=60.0)
        settings.remove_preset("1")
        settings.reset()
        assert settings.last_target_temp == 55.0
        assert len(settings.presets) == 3
        assert settings.path == settings_file
