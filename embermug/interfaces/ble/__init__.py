"""BLE protocol client for Ember mugs."""

from embermug.interfaces.ble.constants import (
    BLEAK_VERSION,
    BLEConfig,
    INITIAL_READ_FIELDS,
    PAIRING_TRIGGER_FIELDS,
    POLLED_FIELDS,
    PUSH_EVENT_FIELDS,
    SERVICE_UUID,
    UDSK_LENGTH,
    Field,
    logger,
)
from embermug.interfaces.ble.exceptions import *
from embermug.interfaces.ble.errors import BLEErrorHandler
from embermug.interfaces.ble.state import BLEStateManager, ConnectionState, Session
from embermug.interfaces.ble.policies import ReconnectPolicy, RetryPolicy
from embermug.interfaces.ble.gatt import (
    CharacteristicHandle,
    CharacteristicRegistry,
    DiscoveredCharacteristic,
)
from embermug.interfaces.ble.client import AdapterBinding, BleakAdapter, ScannedDevice
from embermug.interfaces.ble.transport import FieldTransport
from embermug.interfaces.ble.authorization import WriteVerificationGate
from embermug.interfaces.ble.notifications import NotificationManager, PushEventDispatcher
from embermug.interfaces.ble.polling import PollScheduler
from embermug.interfaces.ble.discovery import DiscoveryManager
from embermug.interfaces.ble.events import EVENTS, EventBus
from embermug.interfaces.ble.connection import ConnectionOrchestrator
from embermug.interfaces.ble.interface import MugManager
from embermug.interfaces.ble.utils import _sleep

__all__ = [
    # Core classes
    "MugManager",
    "AdapterBinding",
    "BleakAdapter",
    "ScannedDevice",
    "BLEConfig",
    "ConnectionState",
    "BLEStateManager",
    "Session",
    "BLEErrorHandler",
    "ReconnectPolicy",
    "RetryPolicy",
    "CharacteristicHandle",
    "CharacteristicRegistry",
    "DiscoveredCharacteristic",
    "FieldTransport",
    "WriteVerificationGate",
    "NotificationManager",
    "PushEventDispatcher",
    "PollScheduler",
    "DiscoveryManager",
    "ConnectionOrchestrator",
    "EventBus",
    # Errors
    "AdapterUnavailable",
    "CharacteristicMissing",
    "ConnectionFailed",
    "ConnectionTimeout",
    "ErrorKind",
    "MugError",
    "NotConnected",
    "ScanFailure",
    "ServiceNotFound",
    "UnexpectedDisconnect",
    "WriteNotApplied",
    "WriteRejected",
    # Constants/helpers
    "BLEAK_VERSION",
    "EVENTS",
    "Field",
    "INITIAL_READ_FIELDS",
    "PAIRING_TRIGGER_FIELDS",
    "POLLED_FIELDS",
    "PUSH_EVENT_FIELDS",
    "SERVICE_UUID",
    "UDSK_LENGTH",
    "_sleep",
    "logger",
]
