"""Characteristic registry mapping logical fields to discovered handles."""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional

from embermug.interfaces.ble.constants import Field, logger
from embermug.interfaces.ble.utils import sanitize_uuid

# Property names as reported by bleak
READ = "read"
WRITE = "write"
WRITE_WITHOUT_RESPONSE = "write-without-response"
NOTIFY = "notify"

_FIELDS_BY_UUID: Dict[str, Field] = {sanitize_uuid(f.uuid): f for f in Field}  # type: ignore[misc]


@dataclass(frozen=True)
class DiscoveredCharacteristic:
    """A characteristic as reported by the adapter binding."""

    uuid: str
    properties: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class CharacteristicHandle:
    """Opaque handle for one logical field on the connected mug."""

    field: Field
    uuid: str
    properties: FrozenSet[str]

    @property
    def readable(self) -> bool:
        return READ in self.properties

    @property
    def writable(self) -> bool:
        return bool({WRITE, WRITE_WITHOUT_RESPONSE} & self.properties)

    @property
    def write_with_response(self) -> bool:
        """Prefer acknowledged writes whenever the characteristic supports them."""
        return WRITE in self.properties or WRITE_WITHOUT_RESPONSE not in self.properties

    @property
    def notifies(self) -> bool:
        return NOTIFY in self.properties


class CharacteristicRegistry:
    """
    Lookup table from :class:`Field` to :class:`CharacteristicHandle`.

    Rebuilt wholesale from discovery results on each connect and cleared
    wholesale on disconnect; there is no incremental update.
    """

    def __init__(self):
        self._handles: Dict[Field, CharacteristicHandle] = {}
        self._unknown: List[str] = []

    def load(self, characteristics: Iterable[DiscoveredCharacteristic]) -> None:
        """Replace the table with handles built from `characteristics`."""
        handles: Dict[Field, CharacteristicHandle] = {}
        unknown: List[str] = []
        for char in characteristics:
            normalized = sanitize_uuid(char.uuid)
            field = _FIELDS_BY_UUID.get(normalized or "")
            if field is None:
                unknown.append(char.uuid)
                continue
            handles[field] = CharacteristicHandle(
                field=field, uuid=char.uuid, properties=frozenset(char.properties)
            )
        self._handles = handles
        self._unknown = unknown
        logger.debug(
            "Registered %d characteristics (%s); %d unrecognized",
            len(handles),
            ", ".join(f.name for f in handles),
            len(unknown),
        )

    def clear(self) -> None:
        self._handles = {}
        self._unknown = []

    def get(self, field: Field) -> Optional[CharacteristicHandle]:
        """Return the handle for `field`, or None when the firmware lacks it."""
        return self._handles.get(field)

    def __contains__(self, field: object) -> bool:
        return field in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    @property
    def fields(self) -> List[Field]:
        return list(self._handles)

    @property
    def unknown_uuids(self) -> List[str]:
        return list(self._unknown)

    def describe(self) -> str:
        """Comma-separated field names, for error messages."""
        return ", ".join(f.name for f in self._handles) or "none"
