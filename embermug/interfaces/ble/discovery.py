"""BLE device discovery by advertised name."""

from typing import Callable, Optional

from embermug.interfaces.ble.client import AdapterBinding, ScannedDevice
from embermug.interfaces.ble.constants import BLEConfig, logger
from embermug.interfaces.ble.errors import BLEErrorHandler
from embermug.interfaces.ble.utils import name_matches


class DiscoveryManager:
    """
    Scan until the first mug shows up.

    The mug does not reliably advertise its service UUID, so candidates are
    picked by a case-insensitive substring of the advertised name. Only the
    first match is reported per scan; later advertisements are ignored until
    the next :meth:`start`.
    """

    def __init__(
        self,
        adapter: AdapterBinding,
        name_filter: str = BLEConfig.DEVICE_NAME_FILTER,
    ):
        self.adapter = adapter
        self.name_filter = name_filter
        self._scanning = False
        self._matched: Optional[ScannedDevice] = None
        self._on_match: Optional[Callable[[ScannedDevice], None]] = None

    @property
    def scanning(self) -> bool:
        return self._scanning

    @property
    def matched(self) -> Optional[ScannedDevice]:
        return self._matched

    async def start(self, on_match: Callable[[ScannedDevice], None]) -> None:
        """
        Begin scanning; `on_match` is called once with the first matching device.

        Raises whatever the adapter raises when the scan cannot start.
        """
        self._matched = None
        self._on_match = on_match
        await self.adapter.start_scan(self._on_detection)
        self._scanning = True
        logger.debug("Scanning for devices named like %r", self.name_filter)

    async def stop(self) -> None:
        """Stop an active scan; safe to call when idle."""
        self._on_match = None
        if not self._scanning:
            return
        self._scanning = False
        await BLEErrorHandler.safe_cleanup_async(
            self.adapter.stop_scan(), "stop scan", timeout=BLEConfig.DISCONNECT_TIMEOUT
        )
        logger.debug("Scan stopped")

    def _on_detection(self, device: ScannedDevice) -> None:
        if self._matched is not None or self._on_match is None:
            return
        if not name_matches(device.name, self.name_filter):
            return
        logger.info("Found %s (%s, rssi %s)", device.name, device.address, device.rssi)
        self._matched = device
        callback = self._on_match
        BLEErrorHandler.safe_execute(
            lambda: callback(device), error_msg="Device-found handler failed"
        )
