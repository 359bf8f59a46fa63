"""Fixed-interval fallback poll for fields without reliable notifications."""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from embermug.interfaces.ble.constants import BLEConfig, POLLED_FIELDS, Field, logger
from embermug.interfaces.ble.errors import BLEErrorHandler
from embermug.interfaces.ble.state import Session

RefreshFunc = Callable[[Session, Field], Awaitable[Any]]
IsCurrentFunc = Callable[[Session], bool]


class PollScheduler:
    """
    Re-read current temperature and liquid state every `interval` seconds.

    The poll task belongs to its session: it is stored on
    `Session.poll_task`, cancelled by `Session.close()`, and re-checks that
    the session is still current after every await so a tick racing teardown
    never touches state.
    """

    def __init__(
        self,
        refresh: RefreshFunc,
        is_current: IsCurrentFunc,
        interval: float = BLEConfig.POLL_INTERVAL,
    ):
        if interval <= 0:
            raise ValueError(f"poll interval must be > 0, got {interval}")
        self._refresh = refresh
        self._is_current = is_current
        self.interval = interval

    def start(self, session: Session) -> "asyncio.Task[None]":
        """Start polling for `session`, replacing any earlier poll task it had."""
        self.stop(session)
        task = asyncio.get_running_loop().create_task(
            self._run(session), name=f"embermug-poll-{session.generation}"
        )
        session.poll_task = task
        logger.debug("Polling every %.1fs for %r", self.interval, session)
        return task

    @staticmethod
    def stop(session: Optional[Session]) -> None:
        if session is None or session.poll_task is None:
            return
        if not session.poll_task.done():
            session.poll_task.cancel()
        session.poll_task = None

    async def _run(self, session: Session) -> None:
        while self._is_current(session):
            await asyncio.sleep(self.interval)
            for field in POLLED_FIELDS:
                if not self._is_current(session):
                    logger.debug("Poll for %r stopped: session ended", session)
                    return
                await BLEErrorHandler.safe_await(
                    self._refresh(session, field),
                    error_msg=f"Poll read of {field.name} failed",
                )
