"""Main mug manager class."""

import asyncio
from typing import Callable, Dict, Optional, Tuple, Union

from bleak.exc import BleakError

from embermug.interfaces.ble import utils
from embermug.interfaces.ble.authorization import WriteVerificationGate
from embermug.interfaces.ble.client import AdapterBinding, ScannedDevice
from embermug.interfaces.ble.codec import (
    decode_battery,
    decode_color,
    decode_liquid_state,
    decode_name,
    decode_temperature,
    decode_temperature_unit,
    encode_color,
    encode_temperature,
    encode_temperature_unit,
)
from embermug.interfaces.ble.connection import ConnectionOrchestrator
from embermug.interfaces.ble.constants import (
    BLEConfig,
    ERROR_ADAPTER_UNAVAILABLE,
    ERROR_NOT_CONNECTED,
    ERROR_SCAN_FAILED,
    ERROR_UNEXPECTED_DISCONNECT,
    Field,
    logger,
)
from embermug.interfaces.ble.discovery import DiscoveryManager
from embermug.interfaces.ble.events import EventBus
from embermug.interfaces.ble.exceptions import ErrorKind, NotConnected
from embermug.interfaces.ble.notifications import NotificationManager
from embermug.interfaces.ble.polling import PollScheduler
from embermug.interfaces.ble.state import BLEStateManager, ConnectionState, Session
from embermug.interfaces.ble.transport import FieldTransport
from embermug.models import (
    DeviceState,
    RGBAColor,
    TemperatureUnit,
    clamp_temperature,
)

ColorLike = Union[RGBAColor, Tuple[int, int, int], Tuple[int, int, int, int]]


class MugManager:
    """
    Protocol client for one smart mug.

    Discovers the mug, keeps one connection to it, negotiates write access and
    mirrors its state from push events and a fallback poll. Consumers observe
    it through :attr:`events` and drive it through the coroutine commands.

    Architecture:
        - BLEStateManager: lifecycle state machine and the single live Session
        - DiscoveryManager: name-filtered scan, first match wins
        - ConnectionOrchestrator: connect, setup pipeline, retries, teardown
        - WriteVerificationGate: authorization, write probe, echo checks
        - PushEventDispatcher / PollScheduler: targeted re-reads
        - EventBus: per-manager pypubsub publisher

    All methods must be called from the event loop that runs the manager.
    """

    def __init__(
        self,
        adapter: AdapterBinding,
        *,
        poll_interval: float = BLEConfig.POLL_INTERVAL,
        name_filter: str = BLEConfig.DEVICE_NAME_FILTER,
        max_retries: int = BLEConfig.CONNECT_MAX_RETRIES,
        default_target_temp: float = 55.0,
        connection_timeout: float = BLEConfig.CONNECTION_TIMEOUT,
        adapter_ready_timeout: float = BLEConfig.ADAPTER_READY_TIMEOUT,
    ) -> None:
        """
        Parameters:
            adapter (AdapterBinding): BLE stack to drive; a BleakAdapter or a SimulatedMug.
            poll_interval (float): Seconds between fallback polls of temperature and liquid state.
            name_filter (str): Case-insensitive substring an advertised name must contain.
            max_retries (int): Connection attempts per connect_with_retry call.
            default_target_temp (float): Target shown before the first read, usually the last one chosen.
            connection_timeout (float): Seconds allowed for link establishment.
            adapter_ready_timeout (float): Seconds to wait once for the adapter to power up.
        """
        self.adapter = adapter
        self.events = EventBus()
        self.max_retries = max_retries
        self.adapter_ready_timeout = adapter_ready_timeout
        self._state = DeviceState(target_temp=clamp_temperature(default_target_temp))

        self._state_manager = BLEStateManager()
        self._notification_manager = NotificationManager()
        self._discovery_manager = DiscoveryManager(adapter, name_filter)
        self._poller = PollScheduler(
            self._refresh_field, self._state_manager.is_current, poll_interval
        )
        self._connection_orchestrator = ConnectionOrchestrator(
            self,
            adapter,
            self._state_manager,
            self._notification_manager,
            self._poller,
            connection_timeout=connection_timeout,
        )

        self._device: Optional[ScannedDevice] = None
        self._pending: Optional["asyncio.Task[bool]"] = None

    def __repr__(self):
        return (
            f"MugManager(adapter={type(self.adapter).__name__}, "
            f"state={self._state_manager.state.value})"
        )

    async def __aenter__(self) -> "MugManager":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Introspection

    @property
    def connection_state(self) -> ConnectionState:
        return self._state_manager.state

    @property
    def is_connected(self) -> bool:
        return self._state_manager.is_ready

    @property
    def writes_available(self) -> bool:
        """True when connected and the write probe saw the mug apply a write."""
        session = self._state_manager.session
        return self._state_manager.is_ready and session is not None and session.writes_functional

    @property
    def device(self) -> Optional[ScannedDevice]:
        """The retained device identity, reused by the next scan."""
        return self._device

    @property
    def pending_connection(self) -> Optional["asyncio.Task[bool]"]:
        """Background connection task started by a scan match, if any."""
        return self._pending

    @property
    def characteristics(self):
        """Registry of the live session, or None while disconnected."""
        session = self._state_manager.session
        return session.registry if session is not None else None

    def get_state(self) -> DeviceState:
        """Synchronous snapshot; mutating it does not affect the manager."""
        return self._state.copy()

    # ------------------------------------------------------------------
    # Scanning and connecting

    async def start_scanning(self) -> bool:
        """
        Find a mug and connect to it in the background.

        Returns False when the adapter is unavailable or the scan could not
        start; both cases are also reported as `error` events. When a device
        from an earlier scan is retained it is reconnected without scanning.
        """
        sm = self._state_manager
        if sm.state == ConnectionState.SCANNING:
            logger.debug("Already scanning")
            return True
        if sm.is_busy or self._connection_in_progress():
            logger.debug("start_scanning ignored: %s", sm.state.value)
            return True

        if not self.adapter.is_ready():
            logger.info("Waiting for the Bluetooth adapter to power on")
            ready = await self.adapter.wait_until_ready(self.adapter_ready_timeout)
            if not ready:
                message = ERROR_ADAPTER_UNAVAILABLE.format(self.adapter.power_state)
                logger.error(message)
                self.events.emit_error(ErrorKind.ADAPTER_UNAVAILABLE, message)
                return False

        if self._device is not None:
            logger.info("Reconnecting to known device %s", self._device.name)
            self._pending = asyncio.get_running_loop().create_task(
                self._connect_known(self._device)
            )
            return True

        if not sm.transition_to(ConnectionState.SCANNING):
            return False
        try:
            await self._discovery_manager.start(self._on_device_found)
        except (BleakError, OSError, RuntimeError) as e:
            sm.transition_to(ConnectionState.IDLE)
            message = ERROR_SCAN_FAILED.format(e)
            logger.error(message)
            self.events.emit_error(ErrorKind.SCAN_FAILURE, message)
            return False
        self.events.emit_scanning(True)
        return True

    async def stop_scanning(self) -> None:
        if not self._discovery_manager.scanning:
            return
        await self._discovery_manager.stop()
        if self._state_manager.state == ConnectionState.SCANNING:
            self._state_manager.transition_to(ConnectionState.IDLE)
        self.events.emit_scanning(False)

    def _on_device_found(self, device: ScannedDevice) -> None:
        self._device = device
        self.events.emit_device_found(device.name)
        self._pending = asyncio.get_running_loop().create_task(
            self._connect_after_scan(device)
        )

    async def _connect_after_scan(self, device: ScannedDevice) -> bool:
        await self.stop_scanning()
        await utils._sleep(BLEConfig.POST_SCAN_DELAY)
        return await self._connect_known(device)

    async def _connect_known(self, device: ScannedDevice) -> bool:
        session = await self._connection_orchestrator.connect_with_retry(
            device, self.max_retries
        )
        return session is not None

    def _connection_in_progress(self) -> bool:
        return self._pending is not None and not self._pending.done()

    async def connect_with_retry(self, max_retries: Optional[int] = None) -> bool:
        """
        Connect to the retained device, retrying with backoff.

        Returns True once connected. Exhausted retries emit one
        `ConnectionFailed` error event and return False.
        """
        if self._state_manager.is_ready:
            return True
        if self._device is None:
            logger.warning("No known mug to connect to; call start_scanning() first")
            return False
        return (
            await self._connection_orchestrator.connect_with_retry(
                self._device, max_retries or self.max_retries
            )
            is not None
        )

    # ------------------------------------------------------------------
    # Disconnecting

    async def disconnect(self) -> None:
        """
        Stop polling, drop the link and broadcast the disconnected state.

        A background connection attempt is cancelled as well. Calling this
        while already disconnected does nothing.
        """
        await self._cancel_pending()
        session = self._state_manager.session
        if session is None:
            logger.debug("disconnect() while not connected; ignoring")
            return
        was_ready = session.ready
        if not await self._connection_orchestrator.teardown(session):
            return
        if was_ready:
            self._state.connected = False
            self.events.emit_disconnected()
            self._broadcast()

    async def forget_and_repair(self) -> None:
        """Disconnect, cancel any scan and forget the device so the next scan starts fresh."""
        await self.stop_scanning()
        await self.disconnect()
        self._device = None
        logger.info(
            "Forgot the mug. Remove it from the system Bluetooth settings, "
            "then scan again to pair."
        )

    async def close(self) -> None:
        """Stop all activity; the retained device identity is kept."""
        await self.stop_scanning()
        await self.disconnect()

    async def _cancel_pending(self) -> None:
        task, self._pending = self._pending, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    def _handle_link_lost(self, session: Session) -> None:
        """Adapter callback for a link that went down without being asked to."""
        sm = self._state_manager
        if not sm.is_current(session):
            return
        if not session.ready:
            logger.debug("Link dropped during setup of %r", session)
            session.close()
            return
        logger.warning("Connection to %s lost", session.device.name)
        if not self._connection_orchestrator.drop_session(session):
            return
        self._state.connected = False
        self.events.emit_disconnected()
        self._broadcast()
        self.events.emit_error(ErrorKind.UNEXPECTED_DISCONNECT, ERROR_UNEXPECTED_DISCONNECT)

    # ------------------------------------------------------------------
    # Commands

    def _require_ready(self) -> Session:
        session = self._state_manager.session
        if not self._state_manager.is_ready or not self._state_manager.is_current(session):
            raise NotConnected(ERROR_NOT_CONNECTED)
        return session  # type: ignore[return-value]

    def _gate_for(self, session: Session) -> WriteVerificationGate:
        WriteVerificationGate.ensure_writable(session.writes_functional)
        return WriteVerificationGate(
            FieldTransport(self.adapter, session.registry),
            is_live=lambda: self._state_manager.is_current(session),
        )

    async def set_target_temp(self, celsius: float) -> float:
        """
        Set the target temperature, clamped into the supported range.

        Returns the temperature the mug reports after the write.

        Raises:
            NotConnected: No mug is connected.
            WriteRejected: The write or its read-back failed at the transport level.
            WriteNotApplied: The mug reported a different value after the write.
            UnexpectedDisconnect: The link dropped before the write was confirmed.
        """
        session = self._require_ready()
        gate = self._gate_for(session)
        target = clamp_temperature(celsius)
        if target != celsius:
            logger.debug("Clamped target %.2f to %.2f", celsius, target)
        echoed = await gate.write_verified(
            Field.TARGET_TEMP,
            encode_temperature(target),
            decode_temperature,
            lambda value: abs(value - target) <= BLEConfig.TEMPERATURE_TOLERANCE,
            "Target temperature",
            f"{target:.2f}",
        )
        if self._state_manager.is_current(session):
            self._state.target_temp = clamp_temperature(echoed)
            self._broadcast()
        return echoed

    async def set_temperature_unit(self, unit: Union[TemperatureUnit, int]) -> TemperatureUnit:
        session = self._require_ready()
        gate = self._gate_for(session)
        unit = TemperatureUnit(unit)
        echoed = await gate.write_verified(
            Field.TEMP_UNIT,
            encode_temperature_unit(unit),
            decode_temperature_unit,
            lambda value: value == unit,
            "Temperature unit",
            unit.name,
        )
        if self._state_manager.is_current(session):
            self._state.temperature_unit = echoed
            self._broadcast()
        return echoed

    async def set_color(self, color: ColorLike) -> RGBAColor:
        """Set the LED color; alpha is not compared because the mug may adjust it."""
        session = self._require_ready()
        gate = self._gate_for(session)
        if not isinstance(color, RGBAColor):
            color = RGBAColor(*color)
        echoed = await gate.write_verified(
            Field.LED_COLOR,
            encode_color(color),
            decode_color,
            color.same_rgb,
            "LED color",
            color,
        )
        if self._state_manager.is_current(session):
            self._state.color = echoed
            self._broadcast()
        return echoed

    # ------------------------------------------------------------------
    # State store

    def _broadcast(self) -> None:
        self.events.emit_state_change(self._state.copy())

    def _mark_connected(self) -> None:
        self._state.connected = True
        self.events.emit_connected()
        self._broadcast()

    def _set_device_name(self, name: Optional[str]) -> None:
        if name:
            self._state.device_name = name

    async def _refresh_field(self, session: Session, field: Field) -> None:
        """Re-read one field for `session` and broadcast if it decoded."""
        if not self._state_manager.is_current(session):
            return
        data = await FieldTransport(self.adapter, session.registry).read(field)
        if not self._state_manager.is_current(session):
            return
        if self._apply_reading(field, data):
            self._broadcast()

    def _apply_reading(self, field: Field, data: Optional[bytes]) -> bool:
        """Decode `data` into the state store; False when nothing was applied."""
        applier = self._APPLIERS.get(field)
        if applier is None or data is None:
            return False
        applied = applier(self, data)
        if not applied:
            logger.debug("Ignoring undecodable %s value [%s]", field.name, data.hex())
        return applied

    def _apply_current_temp(self, data: bytes) -> bool:
        value = decode_temperature(data)
        if value is None:
            return False
        self._state.current_temp = value
        return True

    def _apply_target_temp(self, data: bytes) -> bool:
        value = decode_temperature(data)
        if value is None:
            return False
        self._state.target_temp = clamp_temperature(value)
        return True

    def _apply_battery(self, data: bytes) -> bool:
        value = decode_battery(data)
        if value is None:
            return False
        self._state.battery_level, self._state.is_charging = value
        return True

    def _apply_liquid_state(self, data: bytes) -> bool:
        value = decode_liquid_state(data)
        if value is None:
            return False
        self._state.liquid_state = value
        return True

    def _apply_temp_unit(self, data: bytes) -> bool:
        value = decode_temperature_unit(data)
        if value is None:
            return False
        self._state.temperature_unit = value
        return True

    def _apply_color(self, data: bytes) -> bool:
        value = decode_color(data)
        if value is None:
            return False
        self._state.color = value
        return True

    def _apply_name(self, data: bytes) -> bool:
        value = decode_name(data)
        if value is None:
            return False
        self._state.device_name = value
        return True

    _APPLIERS: Dict[Field, Callable[["MugManager", bytes], bool]] = {
        Field.CURRENT_TEMP: _apply_current_temp,
        Field.TARGET_TEMP: _apply_target_temp,
        Field.BATTERY: _apply_battery,
        Field.LIQUID_STATE: _apply_liquid_state,
        Field.TEMP_UNIT: _apply_temp_unit,
        Field.LED_COLOR: _apply_color,
        Field.NAME: _apply_name,
    }
