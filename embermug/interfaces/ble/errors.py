"""Error handling utilities for BLE operations."""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from bleak.exc import BleakError

from embermug.interfaces.ble.constants import logger

__all__ = ["BLEErrorHandler"]

_EXPECTED_ERRORS = (BleakError, asyncio.TimeoutError, OSError)


class BLEErrorHandler:
    """Helper class for consistent error handling in BLE operations.

    This class provides static methods for standardized error handling patterns
    throughout the BLE client. Expected transport failures are logged at debug
    level; anything else is logged with a traceback.

    Features:
        - Safe execution with fallback return values
        - Async variants for awaiting GATT operations
        - Cleanup operations that never raise exceptions
    """

    @staticmethod
    def safe_execute(
        func: Callable[[], Any],
        default_return=None,
        log_error: bool = True,
        error_msg: str = "Error in operation",
        reraise: bool = False,
    ):
        """Execute a callable and return its result while converting handled exceptions into a default value.

        Args:
        ----
            func (callable): A zero-argument callable to execute.
            default_return: Value to return if execution fails; defaults to None.
            log_error (bool): If True, log caught exceptions; defaults to True.
            error_msg (str): Message used when logging errors.
            reraise (bool): If True, re-raise any caught exception instead of returning default_return.

        Returns:
        -------
            The value returned by `func()` on success, or `default_return` if an exception occurs.

        """
        try:
            return func()
        except _EXPECTED_ERRORS as e:
            if log_error:
                logger.debug("%s: %s", error_msg, e)
            if reraise:
                raise
            return default_return
        except Exception:
            if log_error:
                logger.exception("%s", error_msg)
            if reraise:
                raise
            return default_return

    @staticmethod
    async def safe_await(
        awaitable: Awaitable[Any],
        default_return=None,
        log_error: bool = True,
        error_msg: str = "Error in operation",
    ):
        """Await `awaitable`, returning `default_return` instead of raising.

        Cancellation is never swallowed so teardown can still interrupt the caller.
        """
        try:
            return await awaitable
        except asyncio.CancelledError:
            raise
        except _EXPECTED_ERRORS as e:
            if log_error:
                logger.debug("%s: %s", error_msg, e)
            return default_return
        except Exception:
            if log_error:
                logger.exception("%s", error_msg)
            return default_return

    @staticmethod
    async def safe_cleanup_async(
        awaitable: Awaitable[Any],
        cleanup_name: str = "cleanup operation",
        timeout: Optional[float] = None,
    ) -> None:
        """Await a cleanup coroutine, optionally bounded by `timeout`, and log instead of raising."""
        try:
            if timeout is None:
                await awaitable
            else:
                await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001 - cleanup paths must not raise
            logger.debug("Error during %s: %s", cleanup_name, e)
