"""BLE notification management and push-event dispatch."""

import asyncio
from typing import Awaitable, Callable, Dict, Optional, Set

from embermug.interfaces.ble.client import AdapterBinding, NotifyCallback
from embermug.interfaces.ble.codec import decode_push_event
from embermug.interfaces.ble.constants import (
    BLEConfig,
    PUSH_EVENT_FIELDS,
    Field,
    logger,
)
from embermug.interfaces.ble.errors import BLEErrorHandler


class NotificationManager:
    """
    Track notification subscriptions so teardown can stop them cleanly.
    """

    def __init__(self):
        self._active_subscriptions: Dict[str, NotifyCallback] = {}

    async def subscribe(
        self,
        adapter: AdapterBinding,
        uuid: str,
        callback: NotifyCallback,
        *,
        timeout: Optional[float] = BLEConfig.GATT_IO_TIMEOUT,
    ) -> None:
        """
        Start notifications on `uuid` and remember the subscription.

        Raises whatever the adapter raises; a failed subscription aborts setup.
        """
        await AdapterBinding._with_timeout(
            adapter.start_notify(uuid, callback), timeout, "start notify"
        )
        self._active_subscriptions[uuid] = callback

    async def unsubscribe_all(self, adapter: AdapterBinding) -> None:
        """Best-effort stop of every tracked subscription."""
        uuids = list(self._active_subscriptions)
        self._active_subscriptions.clear()
        for uuid in uuids:
            await BLEErrorHandler.safe_cleanup_async(
                adapter.stop_notify(uuid),
                f"stop notify {uuid}",
                timeout=BLEConfig.DISCONNECT_TIMEOUT,
            )

    def cleanup_all(self) -> None:
        """Forget all subscriptions without touching the adapter (link already gone)."""
        self._active_subscriptions.clear()


class PushEventDispatcher:
    """
    Turn push-event bytes into targeted re-reads.

    Each recognized code schedules exactly one re-read of one field through
    `refresh`. Unknown codes and empty payloads are logged and dropped.
    """

    def __init__(self, refresh: Callable[[Field], Awaitable[None]]):
        self._refresh = refresh
        self._pending: Set["asyncio.Task[None]"] = set()

    def handle(self, data: bytes) -> Optional[Field]:
        """Notification callback; returns the field scheduled for re-read, if any."""
        code = decode_push_event(data)
        if code is None:
            logger.debug("Ignoring empty push event")
            return None
        field = PUSH_EVENT_FIELDS.get(code)
        if field is None:
            logger.debug("Push event: unknown type %d, ignoring", code)
            return None
        logger.debug("Push event %d: re-reading %s", code, field.name)
        task = asyncio.get_running_loop().create_task(self._run(field))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return field

    async def _run(self, field: Field) -> None:
        await BLEErrorHandler.safe_await(
            self._refresh(field), error_msg=f"Push-triggered read of {field.name} failed"
        )

    @property
    def pending(self) -> Set["asyncio.Task[None]"]:
        return set(self._pending)

    def cancel_pending(self) -> None:
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
