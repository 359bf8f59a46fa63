"""BLE constants and configuration."""

import importlib.metadata
import logging
from enum import Enum
from typing import Dict

logger = logging.getLogger("embermug.ble")

# Reported by `embermug --version`
BLEAK_VERSION = importlib.metadata.version("bleak")


def _vendor_uuid(short: str) -> str:
    """Expand a 16-bit vendor id into the mug's 128-bit UUID."""
    return f"fc54{short}-236c-4c94-8fa9-944a3e5353fa"


# BLE Service UUID
SERVICE_UUID = _vendor_uuid("3622")


class Field(Enum):
    """Logical characteristic names; all reads and writes go through these."""

    NAME = _vendor_uuid("0001")
    CURRENT_TEMP = _vendor_uuid("0002")
    TARGET_TEMP = _vendor_uuid("0003")
    TEMP_UNIT = _vendor_uuid("0004")
    BATTERY = _vendor_uuid("0007")
    LIQUID_STATE = _vendor_uuid("0008")
    FIRMWARE = _vendor_uuid("000c")
    MUG_ID = _vendor_uuid("000d")
    DSK = _vendor_uuid("000e")
    UDSK = _vendor_uuid("000f")
    PUSH_EVENTS = _vendor_uuid("0012")
    LED_COLOR = _vendor_uuid("0014")

    @property
    def uuid(self) -> str:
        return self.value


# Push event code -> field to re-read
PUSH_EVENT_FIELDS: Dict[int, Field] = {
    1: Field.BATTERY,  # battery level changed
    2: Field.BATTERY,  # started charging
    3: Field.BATTERY,  # stopped charging
    4: Field.TARGET_TEMP,
    5: Field.CURRENT_TEMP,
    8: Field.LIQUID_STATE,
}

# Fields read once after setup, in order
INITIAL_READ_FIELDS = (
    Field.CURRENT_TEMP,
    Field.TARGET_TEMP,
    Field.BATTERY,
    Field.LIQUID_STATE,
    Field.TEMP_UNIT,
    Field.LED_COLOR,
)

# Fields re-read on every poll tick
POLLED_FIELDS = (Field.CURRENT_TEMP, Field.LIQUID_STATE)

# Protected fields read to coax the OS into pairing
PAIRING_TRIGGER_FIELDS = (Field.NAME, Field.DSK, Field.UDSK)

UDSK_LENGTH = 20


class BLEConfig:
    """Configuration constants for BLE operations."""

    DEVICE_NAME_FILTER = "ember"
    ADAPTER_READY_TIMEOUT = 10.0
    POST_SCAN_DELAY = 0.5
    CONNECTION_TIMEOUT = 10.0
    CONNECT_MAX_RETRIES = 3
    CONNECT_RETRY_INITIAL_DELAY = 1.0
    CONNECT_RETRY_BACKOFF = 2.0
    CONNECT_RETRY_MAX_DELAY = 8.0
    DISCONNECT_TIMEOUT = 5.0
    GATT_IO_TIMEOUT = 10.0
    AUTH_WRITE_TIMEOUT = 2.0
    PAIRING_SETTLE_DELAY = 0.5
    WRITE_SETTLE_DELAY = 0.3
    POLL_INTERVAL = 2.0
    TEMPERATURE_TOLERANCE = 0.5


# Error message constants
ERROR_TIMEOUT = "{0} timed out after {1:.1f} seconds"
ERROR_ADAPTER_UNAVAILABLE = (
    "Bluetooth adapter is not available (state: {0}). "
    "Make sure Bluetooth is switched on and this process may use it."
)
ERROR_SCAN_FAILED = "Failed to start scanning: {0}"
ERROR_CONNECTION_TIMEOUT = (
    "Connection timed out. Make sure your mug is nearby and awake."
)
ERROR_CONNECTION_FAILED = "Connection failed after {0} attempts: {1}"
ERROR_SERVICE_NOT_FOUND = "Mug service {0} not found on device"
ERROR_CHARACTERISTIC_MISSING = (
    "Characteristic {0} is not available on this mug. Available: {1}"
)
ERROR_WRITE_REJECTED = "Writing {0} failed: {1}"
ERROR_ECHO_UNREADABLE = "Could not read {0} back to confirm the write"
ERROR_WRITE_NOT_APPLIED = (
    "{0} write succeeded but the value didn't change (expected {1}, got {2}). "
    "This usually means the mug needs to be re-enrolled via the vendor app "
    "and then re-paired."
)
ERROR_READ_ONLY = (
    "The mug is not accepting writes. Re-enroll it via the vendor app, "
    "then forget and re-pair it with `embermug repair`."
)
ERROR_NOT_CONNECTED = "Not connected to a mug"
ERROR_UNEXPECTED_DISCONNECT = "Lost connection to the mug"
