"""In-memory mug that speaks the adapter binding contract.

`SimulatedMug` stands in for :class:`BleakAdapter` in tests and in the CLI's
mock mode. It stores the same byte layouts the real firmware exposes, runs a
small heating/battery model and can be told to misbehave: fail connections,
hang, drop the link, ignore writes or refuse the secret key.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from bleak.exc import BleakError

from embermug.interfaces.ble.client import (
    AdapterBinding,
    DetectionCallback,
    DisconnectCallback,
    NotifyCallback,
    ScannedDevice,
)
from embermug.interfaces.ble.codec import (
    decode_color,
    decode_temperature,
    decode_temperature_unit,
    encode_battery,
    encode_color,
    encode_liquid_state,
    encode_temperature,
    encode_temperature_unit,
)
from embermug.interfaces.ble.constants import SERVICE_UUID, UDSK_LENGTH, Field, logger
from embermug.interfaces.ble.gatt import (
    NOTIFY,
    READ,
    WRITE,
    DiscoveredCharacteristic,
)
from embermug.interfaces.ble.utils import sanitize_uuid
from embermug.models import LiquidState, RGBAColor, TemperatureUnit

# Battery rates in percent per minute
BATTERY_CHARGE_RATE = 1.5
BATTERY_DRAIN_RATE_HEATING = 0.5
BATTERY_DRAIN_RATE_HOLDING = 0.2

PUSH_BATTERY_CHANGED = 1
PUSH_CHARGING = 2
PUSH_NOT_CHARGING = 3
PUSH_TARGET_TEMP = 4
PUSH_CURRENT_TEMP = 5
PUSH_LIQUID_STATE = 8

_PROPERTIES: Dict[Field, FrozenSet[str]] = {
    Field.NAME: frozenset({READ, WRITE}),
    Field.CURRENT_TEMP: frozenset({READ}),
    Field.TARGET_TEMP: frozenset({READ, WRITE}),
    Field.TEMP_UNIT: frozenset({READ, WRITE}),
    Field.BATTERY: frozenset({READ}),
    Field.LIQUID_STATE: frozenset({READ}),
    Field.FIRMWARE: frozenset({READ}),
    Field.MUG_ID: frozenset({READ}),
    Field.DSK: frozenset({READ}),
    Field.UDSK: frozenset({READ, WRITE}),
    Field.PUSH_EVENTS: frozenset({NOTIFY}),
    Field.LED_COLOR: frozenset({READ, WRITE}),
}

_FIELDS_BY_UUID = {sanitize_uuid(f.uuid): f for f in Field}


@dataclass
class SimulatorConfig:
    """Starting conditions and failure knobs for :class:`SimulatedMug`."""

    initial_battery: float = 75.0
    initial_current_temp: float = 45.0
    initial_target_temp: float = 55.0
    initial_liquid_state: LiquidState = LiquidState.COOLING
    initially_charging: bool = False
    initial_color: RGBAColor = RGBAColor(255, 147, 41, 255)
    initial_unit: TemperatureUnit = TemperatureUnit.CELSIUS
    initial_udsk: bytes = bytes(UDSK_LENGTH)
    name: str = "Ember Ceramic Mug"
    address: str = "C0:FF:EE:00:00:01"
    rssi: int = -55
    nearby_devices: Tuple[str, ...] = ()
    scan_delay: float = 0.0
    connect_delay: float = 0.0
    temp_change_rate: float = 0.5
    update_interval: float = 1.0
    auto_physics: bool = False
    push_on_tick: bool = True
    apply_writes: bool = True
    authorization_supported: bool = True
    reject_writes: bool = False
    connect_failures: int = 0
    hang_on_connect: bool = False
    fail_scan: bool = False
    powered: bool = True
    power_on_delay: Optional[float] = None
    include_service: bool = True
    missing_fields: FrozenSet[Field] = field(default_factory=frozenset)
    firmware: bytes = b"\x00\x02\x01\x00"
    mug_id: bytes = b"SIMMUG"


class SimulatedMug(AdapterBinding):
    """A fake mug plus the BLE adapter that reaches it."""

    def __init__(self, config: Optional[SimulatorConfig] = None):
        self.config = config or SimulatorConfig()
        cfg = self.config
        self.battery = float(cfg.initial_battery)
        self.charging = cfg.initially_charging
        self.current_temp = float(cfg.initial_current_temp)
        self.target_temp = float(cfg.initial_target_temp)
        self.liquid_state = cfg.initial_liquid_state
        self.unit = cfg.initial_unit
        self.color = cfg.initial_color
        self.name = cfg.name
        self.udsk = bytes(cfg.initial_udsk)
        self.dsk = bytes(UDSK_LENGTH)
        self.powered = cfg.powered
        self._connect_failures = cfg.connect_failures

        self.connected = False
        self.scanning = False
        self.connect_attempts = 0
        self.reads: List[Field] = []
        self.writes: List[Tuple[Field, bytes]] = []
        self._scan_handles: List[asyncio.TimerHandle] = []
        self._disconnected_callback: Optional[DisconnectCallback] = None
        self._notify: Dict[Field, NotifyCallback] = {}
        self._physics_task: Optional["asyncio.Task[None]"] = None
        self._hangs: Set["asyncio.Future[None]"] = set()

    def __repr__(self):
        return f"SimulatedMug(name={self.name!r}, connected={self.connected})"

    # ------------------------------------------------------------------
    # Adapter power

    @property
    def power_state(self) -> str:
        return "ready" if self.powered else "poweredOff"

    async def wait_until_ready(self, timeout: float) -> bool:
        if self.powered:
            return True
        delay = self.config.power_on_delay
        if delay is not None and delay <= timeout:
            await asyncio.sleep(delay)
            self.powered = True
            return True
        await asyncio.sleep(timeout)
        return self.powered

    # ------------------------------------------------------------------
    # Scanning

    async def start_scan(self, callback: DetectionCallback) -> None:
        if not self.powered:
            raise BleakError("Bluetooth adapter is powered off")
        if self.config.fail_scan:
            raise BleakError("Simulated scan failure")
        await self.stop_scan()
        self.scanning = True
        loop = asyncio.get_running_loop()
        cfg = self.config
        adverts = [
            ScannedDevice(name=name, address=f"AA:BB:CC:00:00:{i:02X}", rssi=-80)
            for i, name in enumerate(cfg.nearby_devices)
        ]
        adverts.append(ScannedDevice(name=self.name, address=cfg.address, rssi=cfg.rssi))
        for device in adverts:
            self._scan_handles.append(
                loop.call_later(cfg.scan_delay, self._advertise, callback, device)
            )

    def _advertise(self, callback: DetectionCallback, device: ScannedDevice) -> None:
        if self.scanning:
            callback(device)

    async def stop_scan(self) -> None:
        self.scanning = False
        for handle in self._scan_handles:
            handle.cancel()
        self._scan_handles.clear()

    # ------------------------------------------------------------------
    # Link

    async def connect(
        self, device: ScannedDevice, disconnected_callback: DisconnectCallback
    ) -> None:
        if not self.powered:
            raise BleakError("Bluetooth adapter is powered off")
        self.connect_attempts += 1
        if self.config.hang_on_connect:
            hang = asyncio.get_running_loop().create_future()
            self._hangs.add(hang)
            try:
                await hang
            finally:
                self._hangs.discard(hang)
        if self.config.connect_delay:
            await asyncio.sleep(self.config.connect_delay)
        if self._connect_failures > 0:
            self._connect_failures -= 1
            raise BleakError(f"Simulated connection failure to {device.address}")
        self._disconnected_callback = disconnected_callback
        self.connected = True
        logger.debug("Simulator: %s connected", self.name)
        if self.config.auto_physics:
            self.start_physics()

    async def disconnect(self) -> None:
        if self.connected:
            self._link_down()

    def drop_connection(self) -> None:
        """Simulate the mug walking out of range."""
        if self.connected:
            logger.debug("Simulator: dropping link")
            self._link_down()

    def _link_down(self) -> None:
        self.connected = False
        self._notify.clear()
        self.stop_physics()
        callback, self._disconnected_callback = self._disconnected_callback, None
        if callback is not None:
            callback()

    @property
    def is_connected(self) -> bool:
        return self.connected

    def _require_link(self) -> None:
        if not self.connected:
            raise BleakError("Not connected")

    def _field_for(self, uuid: str) -> Field:
        found = _FIELDS_BY_UUID.get(sanitize_uuid(uuid))
        if found is None or found in self.config.missing_fields:
            raise BleakError(f"Characteristic {uuid} not found")
        return found

    # ------------------------------------------------------------------
    # GATT

    async def discover_service(
        self, service_uuid: str
    ) -> Optional[List[DiscoveredCharacteristic]]:
        self._require_link()
        if not self.config.include_service:
            return None
        if sanitize_uuid(service_uuid) != sanitize_uuid(SERVICE_UUID):
            return None
        return [
            DiscoveredCharacteristic(uuid=f.uuid.upper(), properties=_PROPERTIES[f])
            for f in Field
            if f not in self.config.missing_fields
        ]

    def value_of(self, target: Field) -> bytes:
        """Current wire value of `target`."""
        if target is Field.CURRENT_TEMP:
            return encode_temperature(round(self.current_temp, 2))
        if target is Field.TARGET_TEMP:
            return encode_temperature(round(self.target_temp, 2))
        if target is Field.BATTERY:
            return encode_battery(self.battery, self.charging)
        if target is Field.LIQUID_STATE:
            return encode_liquid_state(self.liquid_state)
        if target is Field.TEMP_UNIT:
            return encode_temperature_unit(self.unit)
        if target is Field.LED_COLOR:
            return encode_color(self.color)
        if target is Field.NAME:
            return self.name.encode("utf-8")
        if target is Field.UDSK:
            return self.udsk
        if target is Field.DSK:
            return self.dsk
        if target is Field.FIRMWARE:
            return self.config.firmware
        if target is Field.MUG_ID:
            return self.config.mug_id
        return b"\x00"

    async def read(self, uuid: str) -> bytes:
        self._require_link()
        target = self._field_for(uuid)
        if READ not in _PROPERTIES[target]:
            raise BleakError(f"{target.name} is not readable")
        self.reads.append(target)
        return self.value_of(target)

    async def write(self, uuid: str, data: bytes, *, response: bool = True) -> None:
        self._require_link()
        target = self._field_for(uuid)
        if WRITE not in _PROPERTIES[target]:
            raise BleakError(f"{target.name} is not writable")
        if self.config.reject_writes:
            raise BleakError(f"Simulated write failure on {target.name}")
        self.writes.append((target, bytes(data)))
        if not self.config.apply_writes:
            return
        self._apply_write(target, bytes(data))

    def _apply_write(self, target: Field, data: bytes) -> None:
        if target is Field.TARGET_TEMP:
            value = decode_temperature(data)
            if value is not None:
                self.target_temp = value
        elif target is Field.TEMP_UNIT:
            unit = decode_temperature_unit(data)
            if unit is not None:
                self.unit = unit
        elif target is Field.LED_COLOR:
            color = decode_color(data)
            if color is not None:
                self.color = color
        elif target is Field.UDSK:
            if self.config.authorization_supported:
                self.udsk = data
        elif target is Field.NAME:
            self.name = data.decode("utf-8", errors="replace")

    async def start_notify(self, uuid: str, callback: NotifyCallback) -> None:
        self._require_link()
        target = self._field_for(uuid)
        if NOTIFY not in _PROPERTIES[target]:
            raise BleakError(f"{target.name} does not notify")
        self._notify[target] = callback

    async def stop_notify(self, uuid: str) -> None:
        self._require_link()
        self._notify.pop(self._field_for(uuid), None)

    # ------------------------------------------------------------------
    # Test and demo helpers

    @property
    def subscribed(self) -> bool:
        return Field.PUSH_EVENTS in self._notify

    def push(self, code: int) -> bool:
        """Send a push event; False when nobody is subscribed."""
        callback = self._notify.get(Field.PUSH_EVENTS)
        if not self.connected or callback is None:
            return False
        callback(bytes((code & 0xFF,)))
        return True

    def set_charging(self, charging: bool) -> None:
        self.charging = charging
        self.push(PUSH_CHARGING if charging else PUSH_NOT_CHARGING)

    def fill(self, temperature: float = 70.0) -> None:
        """Pour in a drink at `temperature` °C."""
        self.current_temp = float(temperature)
        self.liquid_state = (
            LiquidState.COOLING if temperature > self.target_temp else LiquidState.HEATING
        )
        self.push(PUSH_LIQUID_STATE)
        self.push(PUSH_CURRENT_TEMP)

    def empty(self) -> None:
        self.liquid_state = LiquidState.EMPTY
        self.push(PUSH_LIQUID_STATE)

    def tick(self, seconds: float) -> List[int]:
        """
        Advance the heating and battery model by `seconds`.

        Returns the push codes the mug would send for what changed; they are
        also sent when `push_on_tick` is set and a subscriber exists.
        """
        codes: List[int] = []
        if self.liquid_state != LiquidState.EMPTY:
            diff = self.target_temp - self.current_temp
            if abs(diff) > 0.1:
                step = min(abs(diff), self.config.temp_change_rate * seconds)
                self.current_temp = round(self.current_temp + (step if diff > 0 else -step), 2)
                codes.append(PUSH_CURRENT_TEMP)
                new_state = self.liquid_state
                if diff > 0.5:
                    new_state = LiquidState.HEATING
                elif diff < -0.5:
                    new_state = LiquidState.COOLING
                if new_state != self.liquid_state:
                    self.liquid_state = new_state
                    codes.append(PUSH_LIQUID_STATE)
            elif self.liquid_state != LiquidState.STABLE:
                self.liquid_state = LiquidState.STABLE
                codes.append(PUSH_LIQUID_STATE)

        before = int(round(self.battery))
        minutes = seconds / 60.0
        if self.charging:
            self.battery = min(100.0, self.battery + BATTERY_CHARGE_RATE * minutes)
        elif self.liquid_state == LiquidState.HEATING:
            self.battery = max(0.0, self.battery - BATTERY_DRAIN_RATE_HEATING * minutes)
        elif self.liquid_state == LiquidState.STABLE:
            self.battery = max(0.0, self.battery - BATTERY_DRAIN_RATE_HOLDING * minutes)
        if int(round(self.battery)) != before:
            codes.append(PUSH_BATTERY_CHANGED)

        if self.config.push_on_tick:
            for code in codes:
                self.push(code)
        return codes

    def start_physics(self) -> None:
        if self._physics_task is None or self._physics_task.done():
            self._physics_task = asyncio.get_running_loop().create_task(self._physics())

    def stop_physics(self) -> None:
        task, self._physics_task = self._physics_task, None
        if task is not None and not task.done():
            task.cancel()

    async def _physics(self) -> None:
        interval = self.config.update_interval
        while self.connected:
            await asyncio.sleep(interval)
            self.tick(interval)
