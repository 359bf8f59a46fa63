"""Command line front end.

Usage examples:

    embermug scan
    embermug status
    embermug set-temp 57.5
    embermug set-temp Tea
    embermug set-unit F
    embermug set-color ff9329
    embermug watch
    embermug repair
    embermug presets add Cocoa 58
    embermug --mock dump

`--mock` (or `EMBER_MOCK=1`) talks to an in-process simulated mug instead of
real hardware. `--debug` (or `EMBER_DEBUG=1`) turns on protocol traces.
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Dict, List, Optional, Sequence

from bleak.exc import BleakError
from tabulate import tabulate

from embermug import __version__
from embermug.interfaces.ble import (
    BLEAK_VERSION,
    BLEConfig,
    BleakAdapter,
    ErrorKind,
    Field,
    MugError,
    MugManager,
    ScannedDevice,
)
from embermug.interfaces.ble.constants import ERROR_READ_ONLY
from embermug.interfaces.ble.utils import name_matches
from embermug.interfaces.simulator import SimulatedMug, SimulatorConfig
from embermug.models import (
    DeviceState,
    RGBAColor,
    TemperatureUnit,
    celsius_to_fahrenheit,
    clamp_temperature,
    fahrenheit_to_celsius,
)
from embermug.settings import Settings

logger = logging.getLogger("embermug.cli")

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in _TRUTHY


def parse_color(text: str) -> RGBAColor:
    """Accept `rrggbb`, `rrggbbaa` (optionally with '#') or `r,g,b[,a]`."""
    raw = text.strip()
    if "," in raw:
        parts = [int(p) for p in raw.split(",")]
        if len(parts) not in (3, 4):
            raise ValueError(f"expected 3 or 4 channels, got {len(parts)}")
        return RGBAColor(*parts)
    raw = raw.lstrip("#")
    if len(raw) not in (6, 8):
        raise ValueError(f"expected rrggbb or rrggbbaa, got {text!r}")
    channels = [int(raw[i : i + 2], 16) for i in range(0, len(raw), 2)]
    return RGBAColor(*channels)


def parse_unit(text: str) -> TemperatureUnit:
    key = text.strip().upper()
    if key in ("C", "CELSIUS"):
        return TemperatureUnit.CELSIUS
    if key in ("F", "FAHRENHEIT"):
        return TemperatureUnit.FAHRENHEIT
    raise ValueError(f"unknown unit {text!r}; use C or F")


def format_temp(celsius: float, unit: TemperatureUnit) -> str:
    if unit == TemperatureUnit.FAHRENHEIT:
        return f"{celsius_to_fahrenheit(celsius):.1f} °F"
    return f"{celsius:.1f} °C"


def state_rows(state: DeviceState) -> List[List[str]]:
    unit = state.temperature_unit
    color = state.color
    return [
        ["Name", state.device_name or "N/A"],
        ["Connected", "yes" if state.connected else "no"],
        ["Current", format_temp(state.current_temp, unit)],
        ["Target", format_temp(state.target_temp, unit)],
        ["Liquid", state.liquid_state.name.title()],
        ["Battery", f"{state.battery_level}%" + (" (charging)" if state.is_charging else "")],
        ["Unit", unit.name.title()],
        ["LED", f"#{color.r:02x}{color.g:02x}{color.b:02x} (alpha {color.a})"],
    ]


def make_adapter(mock: bool):
    if mock:
        logger.info("Using the simulated mug")
        return SimulatedMug(SimulatorConfig(auto_physics=True, scan_delay=0.5))
    return BleakAdapter()


async def connect(manager: MugManager, timeout: float) -> bool:
    """Scan, connect and wait for setup; False on error or timeout."""
    done = asyncio.Event()
    outcome: Dict[str, Optional[str]] = {"error": None}

    def on_connected():
        done.set()

    def on_error(kind, message):
        if kind != ErrorKind.UNEXPECTED_DISCONNECT:
            outcome["error"] = message
            done.set()

    def on_found(name):
        print(f"Found {name}, connecting...", file=sys.stderr)

    manager.events.subscribe("connected", on_connected)
    manager.events.subscribe("error", on_error)
    manager.events.subscribe("device_found", on_found)
    try:
        if not await manager.start_scanning():
            return False
        try:
            await asyncio.wait_for(done.wait(), timeout)
        except asyncio.TimeoutError:
            print(f"No mug connected within {timeout:.0f}s", file=sys.stderr)
            return False
        if outcome["error"]:
            print(outcome["error"], file=sys.stderr)
            return False
        return True
    finally:
        manager.events.unsubscribe("connected", on_connected)
        manager.events.unsubscribe("error", on_error)
        manager.events.unsubscribe("device_found", on_found)


async def cmd_scan(args, adapter) -> int:
    seen: Dict[str, ScannedDevice] = {}

    def on_detect(device: ScannedDevice):
        if args.all or name_matches(device.name, args.name_filter):
            seen[device.address] = device

    if not adapter.is_ready() and not await adapter.wait_until_ready(
        BLEConfig.ADAPTER_READY_TIMEOUT
    ):
        print(f"Bluetooth adapter unavailable ({adapter.power_state})", file=sys.stderr)
        return 1
    try:
        await adapter.start_scan(on_detect)
        await asyncio.sleep(args.duration)
    finally:
        await adapter.stop_scan()
    if not seen:
        print("No mugs found")
        return 1
    rows = [
        {"Name": d.name, "Address": d.address, "RSSI": d.rssi}
        for d in sorted(seen.values(), key=lambda d: -(d.rssi or -999))
    ]
    print(tabulate(rows, headers="keys", missingval="N/A", tablefmt="fancy_grid"))
    return 0


async def cmd_status(args, manager: MugManager, settings: Settings) -> int:
    print(tabulate(state_rows(manager.get_state()), tablefmt="fancy_grid"))
    if not manager.writes_available:
        print(
            "Note: this mug is not accepting writes. "
            "Re-enroll it in the vendor app, then run `embermug repair`."
        )
    return 0


async def cmd_set_temp(args, manager: MugManager, settings: Settings) -> int:
    preset = settings.find_preset(args.value)
    if preset is not None:
        celsius = preset.temperature
    else:
        try:
            value = float(args.value)
        except ValueError:
            print(f"{args.value!r} is neither a number nor a preset", file=sys.stderr)
            return 2
        unit = manager.get_state().temperature_unit if args.unit is None else parse_unit(args.unit)
        celsius = fahrenheit_to_celsius(value) if unit == TemperatureUnit.FAHRENHEIT else value
    applied = await manager.set_target_temp(celsius)
    settings.last_target_temp = applied
    settings.save()
    print(f"Target set to {format_temp(applied, manager.get_state().temperature_unit)}")
    return 0


async def cmd_set_unit(args, manager: MugManager, settings: Settings) -> int:
    unit = await manager.set_temperature_unit(parse_unit(args.unit))
    settings.temperature_unit = unit
    settings.save()
    print(f"Unit set to {unit.name.title()}")
    return 0


async def cmd_set_color(args, manager: MugManager, settings: Settings) -> int:
    color = await manager.set_color(parse_color(args.color))
    settings.led_color = color
    settings.save()
    print(f"LED color set to #{color.r:02x}{color.g:02x}{color.b:02x}")
    return 0


async def cmd_dump(args, manager: MugManager, settings: Settings) -> int:
    registry = manager.characteristics
    rows = []
    for field in Field:
        handle = registry.get(field) if registry is not None else None
        if handle is None:
            rows.append({"Field": field.name, "UUID": field.uuid, "Properties": "missing"})
            continue
        value = None
        if handle.readable:
            try:
                value = bytes(await manager.adapter.read(handle.uuid)).hex()
            except (BleakError, OSError) as e:
                value = f"unreadable ({e})"
        rows.append(
            {
                "Field": field.name,
                "UUID": handle.uuid,
                "Properties": ", ".join(sorted(handle.properties)),
                "Value": value,
            }
        )
    print(tabulate(rows, headers="keys", missingval="", tablefmt="fancy_grid"))
    if registry is not None and registry.unknown_uuids:
        print("Unrecognized characteristics: " + ", ".join(registry.unknown_uuids))
    return 0


async def cmd_watch(args, manager: MugManager, settings: Settings) -> int:
    stopped = asyncio.Event()

    def on_state(state: DeviceState):
        unit = state.temperature_unit
        print(
            f"{format_temp(state.current_temp, unit)} -> {format_temp(state.target_temp, unit)}"
            f"  {state.liquid_state.name.title():8}  battery {state.battery_level}%"
            + (" charging" if state.is_charging else "")
        )

    def on_disconnected():
        stopped.set()

    manager.events.subscribe("state_change", on_state)
    manager.events.subscribe("disconnected", on_disconnected)
    try:
        if args.duration:
            try:
                await asyncio.wait_for(stopped.wait(), args.duration)
            except asyncio.TimeoutError:
                pass
        else:
            await stopped.wait()
    finally:
        manager.events.unsubscribe("state_change", on_state)
        manager.events.unsubscribe("disconnected", on_disconnected)
    return 0


async def cmd_repair(args, manager: MugManager, settings: Settings) -> int:
    name = manager.get_state().device_name or "your mug"
    was_connected = manager.is_connected
    await manager.forget_and_repair()
    steps = [
        [1, "Disconnect", f"Disconnected from {name}" if was_connected else "Nothing to disconnect"],
        [2, "Re-enroll", "Set the mug up again in the vendor app if writes were ignored"],
        [3, "Forget device", "Remove the mug in the system Bluetooth settings"],
        [4, "Reconnect", "Scan again and accept the pairing request"],
    ]
    print(tabulate(steps, headers=["#", "Step", "What to do"], tablefmt="fancy_grid"))
    if not args.yes:
        try:
            await asyncio.get_running_loop().run_in_executor(
                None, input, "Press Enter once the mug is forgotten... "
            )
        except EOFError:
            print("Repair cancelled", file=sys.stderr)
            return 1
    if not await connect(manager, args.timeout):
        return 1
    if not manager.writes_available:
        print(ERROR_READ_ONLY, file=sys.stderr)
        return 1
    print(f"Re-paired with {manager.get_state().device_name or name}; writes are working")
    return 0


def cmd_presets(args, settings: Settings) -> int:
    if args.action == "add":
        unit = parse_unit(args.unit) if args.unit else settings.temperature_unit
        celsius = args.temperature
        if unit == TemperatureUnit.FAHRENHEIT:
            celsius = fahrenheit_to_celsius(celsius)
        preset = settings.add_preset(args.name, clamp_temperature(celsius))
        settings.save()
        shown = format_temp(preset.temperature, settings.temperature_unit)
        print(f"Added preset {preset.name} ({shown})")
        return 0
    if args.action == "remove":
        preset = settings.find_preset(args.name)
        if preset is None or not settings.remove_preset(preset.id):
            print(f"No preset named {args.name!r}", file=sys.stderr)
            return 1
        settings.save()
        print(f"Removed preset {preset.name}")
        return 0
    if args.action == "reset":
        settings.reset()
        settings.save()
        print("Settings restored to defaults")
        return 0
    rows = [
        [p.id, p.name, format_temp(p.temperature, settings.temperature_unit)]
        for p in settings.presets
    ]
    print(tabulate(rows, headers=["ID", "Name", "Temperature"], tablefmt="fancy_grid"))
    return 0


_CONNECTED_COMMANDS = {
    "status": cmd_status,
    "set-temp": cmd_set_temp,
    "set-unit": cmd_set_unit,
    "set-color": cmd_set_color,
    "dump": cmd_dump,
    "watch": cmd_watch,
    "repair": cmd_repair,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="embermug", description="Control an Ember smart mug over Bluetooth LE."
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__} (bleak {BLEAK_VERSION})",
    )
    parser.add_argument("--mock", action="store_true", help="use a simulated mug")
    parser.add_argument("--debug", action="store_true", help="log protocol traces")
    parser.add_argument(
        "--timeout", type=float, default=30.0, help="seconds to wait for a connection"
    )
    parser.add_argument(
        "--name-filter",
        default=BLEConfig.DEVICE_NAME_FILTER,
        help="advertised-name substring to look for (default: %(default)s)",
    )
    parser.add_argument("--settings", help="path of the settings file")
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="list nearby mugs")
    scan.add_argument("--duration", type=float, default=5.0)
    scan.add_argument("--all", action="store_true", help="list every device, not only mugs")

    sub.add_parser("status", help="show the mug's state")

    set_temp = sub.add_parser("set-temp", help="set the target temperature")
    set_temp.add_argument("value", help="temperature or preset name")
    set_temp.add_argument("--unit", help="unit of VALUE (default: the mug's unit)")

    set_unit = sub.add_parser("set-unit", help="set the display unit")
    set_unit.add_argument("unit", help="C or F")

    set_color = sub.add_parser("set-color", help="set the LED color")
    set_color.add_argument("color", help="rrggbb, rrggbbaa or r,g,b[,a]")

    sub.add_parser("dump", help="list the mug service's characteristics")

    watch = sub.add_parser("watch", help="print state changes as they arrive")
    watch.add_argument("--duration", type=float, default=0.0, help="stop after N seconds")

    repair = sub.add_parser("repair", help="forget the mug and pair with it again")
    repair.add_argument("--yes", action="store_true", help="rescan without waiting for Enter")

    presets = sub.add_parser("presets", help="list or edit temperature presets")
    actions = presets.add_subparsers(dest="action")
    actions.add_parser("list", help="show the presets (default)")
    add = actions.add_parser("add", help="add a preset")
    add.add_argument("name")
    add.add_argument("temperature", type=float)
    add.add_argument("--unit", help="unit of TEMPERATURE (default: the preferred unit)")
    remove = actions.add_parser("remove", help="remove a preset by name or id")
    remove.add_argument("name")
    actions.add_parser("reset", help="restore every setting to its default")
    return parser


async def run(args: argparse.Namespace) -> int:
    if args.command == "presets":
        try:
            return cmd_presets(args, Settings.load(args.settings))
        except ValueError as e:
            print(f"Invalid value: {e}", file=sys.stderr)
            return 2

    mock = args.mock or _env_flag("EMBER_MOCK")
    adapter = make_adapter(mock)
    if args.command == "scan":
        return await cmd_scan(args, adapter)

    settings = Settings.load(args.settings)
    manager = MugManager(
        adapter,
        name_filter=args.name_filter,
        default_target_temp=settings.default_target_temp,
    )
    try:
        if not await connect(manager, args.timeout) and args.command != "repair":
            return 1
        return await _CONNECTED_COMMANDS[args.command](args, manager, settings)
    except MugError as e:
        print(str(e), file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Invalid value: {e}", file=sys.stderr)
        return 2
    finally:
        await manager.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    debug = args.debug or _env_flag("EMBER_DEBUG")
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
