"""Field-level reads and writes on top of an adapter binding."""

import asyncio
from typing import Optional

from bleak.exc import BleakError

from embermug.interfaces.ble.client import AdapterBinding
from embermug.interfaces.ble.constants import (
    BLEConfig,
    ERROR_CHARACTERISTIC_MISSING,
    ERROR_WRITE_REJECTED,
    Field,
    logger,
)
from embermug.interfaces.ble.errors import BLEErrorHandler
from embermug.interfaces.ble.exceptions import CharacteristicMissing, WriteRejected
from embermug.interfaces.ble.gatt import CharacteristicRegistry


class FieldTransport:
    """Resolve logical fields through the registry and perform GATT I/O."""

    def __init__(self, adapter: AdapterBinding, registry: CharacteristicRegistry):
        self.adapter = adapter
        self.registry = registry

    async def read(
        self, field: Field, *, timeout: Optional[float] = BLEConfig.GATT_IO_TIMEOUT
    ) -> Optional[bytes]:
        """
        Read `field`, returning None when it is unmapped or the read fails.

        An unmapped field means "unsupported on this firmware"; a failed read
        is a transient condition. Neither is an error for the caller.
        """
        handle = self.registry.get(field)
        if handle is None:
            logger.debug("Read of %s skipped: not present on this mug", field.name)
            return None
        return await BLEErrorHandler.safe_await(
            AdapterBinding._with_timeout(
                self.adapter.read(handle.uuid), timeout, f"read {field.name}"
            ),
            error_msg=f"Failed to read {field.name}",
        )

    async def write(
        self,
        field: Field,
        data: bytes,
        *,
        timeout: Optional[float] = BLEConfig.GATT_IO_TIMEOUT,
    ) -> None:
        """
        Write `data` to `field`.

        Raises:
            CharacteristicMissing: The field was not discovered on this mug.
            WriteRejected: The transport failed or timed out.
        """
        handle = self.registry.get(field)
        if handle is None:
            raise CharacteristicMissing(
                ERROR_CHARACTERISTIC_MISSING.format(field.name, self.registry.describe())
            )
        logger.debug(
            "Writing %s: [%s] (%d bytes)", field.name, bytes(data).hex(), len(data)
        )
        try:
            await AdapterBinding._with_timeout(
                self.adapter.write(
                    handle.uuid, bytes(data), response=handle.write_with_response
                ),
                timeout,
                f"write {field.name}",
            )
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            logger.debug("Write to %s failed: %s", field.name, e)
            raise WriteRejected(ERROR_WRITE_REJECTED.format(field.name, e)) from e
