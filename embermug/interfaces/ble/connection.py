"""Connection establishment, setup pipeline and teardown."""

import asyncio
from typing import TYPE_CHECKING, Optional

from bleak.exc import BleakError

from embermug.interfaces.ble import utils
from embermug.interfaces.ble.authorization import WriteVerificationGate
from embermug.interfaces.ble.client import AdapterBinding, ScannedDevice
from embermug.interfaces.ble.codec import decode_name
from embermug.interfaces.ble.constants import (
    BLEConfig,
    ERROR_CONNECTION_FAILED,
    ERROR_CONNECTION_TIMEOUT,
    ERROR_SERVICE_NOT_FOUND,
    ERROR_UNEXPECTED_DISCONNECT,
    INITIAL_READ_FIELDS,
    PAIRING_TRIGGER_FIELDS,
    SERVICE_UUID,
    Field,
    logger,
)
from embermug.interfaces.ble.errors import BLEErrorHandler
from embermug.interfaces.ble.exceptions import (
    ConnectionFailed,
    ConnectionTimeout,
    ErrorKind,
    MugError,
    ServiceNotFound,
)
from embermug.interfaces.ble.notifications import (
    NotificationManager,
    PushEventDispatcher,
)
from embermug.interfaces.ble.policies import RetryPolicy
from embermug.interfaces.ble.polling import PollScheduler
from embermug.interfaces.ble.state import BLEStateManager, ConnectionState, Session
from embermug.interfaces.ble.transport import FieldTransport

if TYPE_CHECKING:
    from embermug.interfaces.ble.interface import MugManager


class ConnectionOrchestrator:
    """
    Coordinate link establishment, the setup pipeline and teardown.

    Owns no device state itself: decoded readings and events go through the
    :class:`MugManager` it was created for.
    """

    def __init__(
        self,
        manager: "MugManager",
        adapter: AdapterBinding,
        state_manager: BLEStateManager,
        notifications: NotificationManager,
        poller: PollScheduler,
        connection_timeout: float = BLEConfig.CONNECTION_TIMEOUT,
    ):
        self.manager = manager
        self.adapter = adapter
        self.state_manager = state_manager
        self.notifications = notifications
        self.poller = poller
        self.connection_timeout = connection_timeout

    async def connect_with_retry(
        self, device: ScannedDevice, max_retries: int = BLEConfig.CONNECT_MAX_RETRIES
    ) -> Optional[Session]:
        """
        Try :meth:`connect` up to `max_retries` times with exponential backoff.

        Individual failures are only logged. Once every attempt has failed a
        single `ConnectionFailed` error event is emitted and None is returned.
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        policy = RetryPolicy.CONNECT
        last_error: Optional[MugError] = None
        for attempt in range(max_retries):
            try:
                return await self.connect(device)
            except MugError as e:
                last_error = e
                logger.warning(
                    "Connection attempt %d/%d to %s failed: %s",
                    attempt + 1,
                    max_retries,
                    device.name,
                    e,
                )
            if attempt + 1 < max_retries:
                delay = await policy.sleep_with_backoff(attempt)
                logger.debug("Waited %.1fs before retrying", delay)

        message = ERROR_CONNECTION_FAILED.format(max_retries, last_error)
        logger.error(message)
        self.manager.events.emit_error(ErrorKind.CONNECTION_FAILED, message)
        return None

    async def connect(self, device: ScannedDevice) -> Session:
        """
        Open a link to `device` and run the setup pipeline.

        Raises:
            ConnectionTimeout: The link did not come up in time.
            ServiceNotFound: The mug service is missing.
            ConnectionFailed: Any other failure, including a drop during setup.
        """
        sm = self.state_manager
        if sm.is_busy or not sm.transition_to(ConnectionState.CONNECTING):
            raise ConnectionFailed(
                f"Cannot connect while {sm.state.value}; disconnect first"
            )
        session = sm.open_session(device)
        logger.info("Connecting to %s (%s)", device.name, device.address)

        def _on_disconnect() -> None:
            BLEErrorHandler.safe_execute(
                lambda: self.manager._handle_link_lost(session),
                error_msg="Disconnect handler failed",
            )

        try:
            await AdapterBinding._with_timeout(
                self.adapter.connect(device, _on_disconnect),
                self.connection_timeout,
                "connect",
            )
        except asyncio.TimeoutError as e:
            logger.debug("Link establishment timed out: %s", e)
            await self._abort(session)
            raise ConnectionTimeout(ERROR_CONNECTION_TIMEOUT) from e
        except asyncio.CancelledError:
            await self._abort(session)
            raise
        except (BleakError, OSError) as e:
            await self._abort(session)
            raise ConnectionFailed(str(e) or type(e).__name__) from e

        try:
            self._ensure_current(session)
            sm.transition_to(ConnectionState.SETTING_UP)
            await self._setup(session)
        except asyncio.CancelledError:
            await self._abort(session)
            raise
        except MugError:
            await self._abort(session)
            raise
        except Exception as e:
            logger.debug("Setup failed", exc_info=True)
            await self._abort(session)
            raise ConnectionFailed(str(e) or type(e).__name__) from e
        logger.info("Connected to %s", self.manager.get_state().device_name or device.name)
        return session

    def _ensure_current(self, session: Session) -> None:
        if not self.state_manager.is_current(session):
            raise ConnectionFailed(f"{ERROR_UNEXPECTED_DISCONNECT} during setup")

    async def _setup(self, session: Session) -> None:
        """Strictly sequential setup; every step re-checks the session."""
        manager = self.manager
        transport = FieldTransport(self.adapter, session.registry)

        # 1. service and characteristic discovery
        characteristics = await AdapterBinding._with_timeout(
            self.adapter.discover_service(SERVICE_UUID),
            BLEConfig.GATT_IO_TIMEOUT,
            "service discovery",
        )
        self._ensure_current(session)
        if characteristics is None:
            raise ServiceNotFound(ERROR_SERVICE_NOT_FOUND.format(SERVICE_UUID))
        session.registry.load(characteristics)
        manager._set_device_name(session.device.name)

        # 2. protected reads to coax the platform into pairing
        for field in PAIRING_TRIGGER_FIELDS:
            data = await transport.read(field)
            self._ensure_current(session)
            if field is Field.NAME:
                manager._set_device_name(decode_name(data))
        await utils._sleep(BLEConfig.PAIRING_SETTLE_DELAY)
        self._ensure_current(session)

        # 3. and 4. write authorization and capability probe
        gate = WriteVerificationGate(transport)
        session.authorized = await gate.enable()
        self._ensure_current(session)
        session.writes_functional = await gate.probe()
        self._ensure_current(session)

        # 5. push events
        handle = session.registry.get(Field.PUSH_EVENTS)
        if handle is None or not handle.notifies:
            logger.debug("Push events unavailable; relying on polling")
        else:
            dispatcher = PushEventDispatcher(
                lambda field: manager._refresh_field(session, field)
            )
            session.dispatcher = dispatcher
            await self.notifications.subscribe(self.adapter, handle.uuid, dispatcher.handle)
            session.notifying = True
            self._ensure_current(session)

        # 6. full read
        for field in INITIAL_READ_FIELDS:
            data = await transport.read(field)
            self._ensure_current(session)
            manager._apply_reading(field, data)

        # 7. poll timer
        self.poller.start(session)

        # 8. ready
        self.state_manager.transition_to(ConnectionState.READY)
        session.ready = True
        manager._mark_connected()

    async def _abort(self, session: Session) -> None:
        """Tear down a session whose connection attempt failed."""
        owned = self.state_manager.close_session(session) is not None
        await self.notifications.unsubscribe_all(self.adapter)
        await BLEErrorHandler.safe_cleanup_async(
            self.adapter.disconnect(),
            "disconnect after failed attempt",
            timeout=BLEConfig.DISCONNECT_TIMEOUT,
        )
        if owned:
            self.state_manager.transition_to(ConnectionState.IDLE)

    async def teardown(self, session: Session) -> bool:
        """
        Orderly disconnect of `session`.

        Returns False when `session` is no longer the live one (someone else
        already tore it down).
        """
        sm = self.state_manager
        if not sm.is_current(session):
            return False
        sm.transition_to(ConnectionState.DISCONNECTING)
        # Close first so poll ticks and push reads racing the awaits below bail out.
        sm.close_session(session)
        await self.notifications.unsubscribe_all(self.adapter)
        await BLEErrorHandler.safe_cleanup_async(
            self.adapter.disconnect(), "disconnect", timeout=BLEConfig.DISCONNECT_TIMEOUT
        )
        sm.transition_to(ConnectionState.IDLE)
        logger.info("Disconnected from %s", session.device.name)
        return True

    def drop_session(self, session: Session) -> bool:
        """Synchronous teardown after the link went away on its own."""
        sm = self.state_manager
        if not sm.is_current(session):
            return False
        sm.transition_to(ConnectionState.DISCONNECTING)
        sm.close_session(session)
        self.notifications.cleanup_all()
        sm.transition_to(ConnectionState.IDLE)
        return True
