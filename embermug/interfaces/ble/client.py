"""Adapter binding contract and its bleak implementation."""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from embermug.interfaces.ble import utils
from embermug.interfaces.ble.constants import ERROR_TIMEOUT, logger
from embermug.interfaces.ble.gatt import DiscoveredCharacteristic

NotifyCallback = Callable[[bytes], None]
DisconnectCallback = Callable[[], None]
DetectionCallback = Callable[["ScannedDevice"], None]


@dataclass
class ScannedDevice:
    """A peripheral seen during a scan."""

    name: str
    address: str
    rssi: Optional[int] = None
    native: Any = field(default=None, repr=False, compare=False)


class AdapterBinding(ABC):
    """
    Everything the client needs from a BLE stack.

    Implemented by :class:`BleakAdapter` for real hardware and by
    :class:`embermug.interfaces.simulator.SimulatedMug` for tests. One binding
    serves at most one connected peripheral at a time.
    """

    @staticmethod
    async def _with_timeout(awaitable, timeout: Optional[float], label: str):
        """
        Await an awaitable, applying an optional timeout.

        Raises:
            asyncio.TimeoutError: With a message naming `label` if the timeout elapses.
        """
        if timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise asyncio.TimeoutError(ERROR_TIMEOUT.format(label, timeout)) from exc

    @property
    @abstractmethod
    def power_state(self) -> str:
        """Human-readable adapter state, "ready" when usable."""

    def is_ready(self) -> bool:
        return self.power_state == "ready"

    @abstractmethod
    async def wait_until_ready(self, timeout: float) -> bool:
        """Wait for the adapter to become ready; False if it never does."""

    @abstractmethod
    async def start_scan(self, callback: DetectionCallback) -> None:
        """Begin scanning, calling `callback` for every advertisement."""

    @abstractmethod
    async def stop_scan(self) -> None:
        """Stop an active scan; a no-op when not scanning."""

    @abstractmethod
    async def connect(
        self, device: ScannedDevice, disconnected_callback: DisconnectCallback
    ) -> None:
        """Open a link to `device`.

        `disconnected_callback` is installed before the link is reported up
        and fires on every later drop of that link.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the current link, if any."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the link is currently up."""

    @abstractmethod
    async def discover_service(
        self, service_uuid: str
    ) -> Optional[List[DiscoveredCharacteristic]]:
        """Characteristics of `service_uuid`, or None if the service is absent."""

    @abstractmethod
    async def read(self, uuid: str) -> bytes:
        """Read a characteristic value."""

    @abstractmethod
    async def write(self, uuid: str, data: bytes, *, response: bool = True) -> None:
        """Write a characteristic value."""

    @abstractmethod
    async def start_notify(self, uuid: str, callback: NotifyCallback) -> None:
        """Subscribe to notifications on `uuid`."""

    @abstractmethod
    async def stop_notify(self, uuid: str) -> None:
        """Cancel a notification subscription."""


class BleakAdapter(AdapterBinding):
    """
    :class:`AdapterBinding` backed by bleak.

    bleak has no adapter power-state event, so readiness is probed by briefly
    starting a scanner and retried until the timeout elapses.
    """

    READY_PROBE_INTERVAL = 0.5

    def __init__(self, **client_kwargs) -> None:
        """
        Parameters:
            **client_kwargs: Forwarded to every `BleakClient` (for example `adapter="hci1"`).
        """
        self._client_kwargs = client_kwargs
        self._scanner: Optional[BleakScanner] = None
        self._client: Optional[BleakClient] = None
        self._power_state = "unknown"

    @property
    def power_state(self) -> str:
        return self._power_state

    async def _probe_adapter(self) -> bool:
        scanner = BleakScanner(**self._client_kwargs)
        try:
            await scanner.start()
            await scanner.stop()
        except (BleakError, OSError) as e:
            self._power_state = str(e) or type(e).__name__
            logger.debug("Bluetooth adapter probe failed: %s", e)
            return False
        self._power_state = "ready"
        return True

    async def wait_until_ready(self, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        while True:
            if await self._probe_adapter():
                return True
            if time.monotonic() >= deadline:
                return False
            await utils._sleep(self.READY_PROBE_INTERVAL)

    async def start_scan(self, callback: DetectionCallback) -> None:
        def _on_detect(device, advertisement_data):
            name = getattr(advertisement_data, "local_name", None) or device.name or ""
            callback(
                ScannedDevice(
                    name=name,
                    address=device.address,
                    rssi=getattr(advertisement_data, "rssi", None),
                    native=device,
                )
            )

        await self.stop_scan()
        # No service UUID filter: the mug does not reliably advertise it.
        self._scanner = BleakScanner(detection_callback=_on_detect, **self._client_kwargs)
        await self._scanner.start()
        self._power_state = "ready"

    async def stop_scan(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is not None:
            await scanner.stop()

    async def connect(
        self, device: ScannedDevice, disconnected_callback: DisconnectCallback
    ) -> None:
        target = device.native if device.native is not None else device.address
        client = BleakClient(
            target,
            disconnected_callback=lambda _client: disconnected_callback(),
            **self._client_kwargs,
        )
        self._client = client
        await client.connect()

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.disconnect()

    @property
    def is_connected(self) -> bool:
        return self._client is not None and bool(self._client.is_connected)

    def _require_client(self) -> BleakClient:
        if self._client is None:
            raise BleakError("Not connected")
        return self._client

    async def discover_service(
        self, service_uuid: str
    ) -> Optional[List[DiscoveredCharacteristic]]:
        client = self._require_client()
        service = client.services.get_service(service_uuid)
        if service is None:
            return None
        return [
            DiscoveredCharacteristic(uuid=char.uuid, properties=frozenset(char.properties))
            for char in service.characteristics
        ]

    async def read(self, uuid: str) -> bytes:
        return bytes(await self._require_client().read_gatt_char(uuid))

    async def write(self, uuid: str, data: bytes, *, response: bool = True) -> None:
        await self._require_client().write_gatt_char(uuid, data, response=response)

    async def start_notify(self, uuid: str, callback: NotifyCallback) -> None:
        await self._require_client().start_notify(
            uuid, lambda _sender, data: callback(bytes(data))
        )

    async def stop_notify(self, uuid: str) -> None:
        await self._require_client().stop_notify(uuid)
