"""Exception taxonomy for the mug protocol client."""

from enum import Enum


class ErrorKind(Enum):
    """Identifies a failure in `error` events without shipping the exception."""

    ADAPTER_UNAVAILABLE = "AdapterUnavailable"
    SCAN_FAILURE = "ScanFailure"
    CONNECTION_TIMEOUT = "ConnectionTimeout"
    CONNECTION_FAILED = "ConnectionFailed"
    SERVICE_NOT_FOUND = "ServiceNotFound"
    CHARACTERISTIC_MISSING = "CharacteristicMissing"
    WRITE_REJECTED = "WriteRejected"
    WRITE_NOT_APPLIED = "WriteNotApplied"
    UNEXPECTED_DISCONNECT = "UnexpectedDisconnect"
    NOT_CONNECTED = "NotConnected"


class MugError(Exception):
    """Base class for every error surfaced by the client."""

    kind: ErrorKind


class AdapterUnavailable(MugError):
    kind = ErrorKind.ADAPTER_UNAVAILABLE


class ScanFailure(MugError):
    kind = ErrorKind.SCAN_FAILURE


class ConnectionTimeout(MugError):
    kind = ErrorKind.CONNECTION_TIMEOUT


class ConnectionFailed(MugError):
    """Raised once every connection attempt has been used up."""

    kind = ErrorKind.CONNECTION_FAILED


class ServiceNotFound(MugError):
    kind = ErrorKind.SERVICE_NOT_FOUND


class CharacteristicMissing(MugError):
    kind = ErrorKind.CHARACTERISTIC_MISSING


class WriteRejected(MugError):
    """The transport refused the write."""

    kind = ErrorKind.WRITE_REJECTED


class WriteNotApplied(MugError):
    """The write was acknowledged but the mug's value did not change."""

    kind = ErrorKind.WRITE_NOT_APPLIED


class UnexpectedDisconnect(MugError):
    kind = ErrorKind.UNEXPECTED_DISCONNECT


class NotConnected(MugError):
    kind = ErrorKind.NOT_CONNECTED


__all__ = [
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
]
