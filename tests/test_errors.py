"""Tests for BLEErrorHandler."""

import asyncio
import logging

import pytest
from bleak.exc import BleakError

from embermug.interfaces.ble.errors import BLEErrorHandler


def _raise(exc):
    def _inner():
        raise exc

    return _inner


class TestSafeExecute:
    def test_returns_result(self):
        assert BLEErrorHandler.safe_execute(lambda: 42) == 42

    def test_expected_error_logged_at_debug(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="embermug.ble"):
            result = BLEErrorHandler.safe_execute(
                _raise(BleakError("gone")), default_return="fallback", error_msg="Read failed"
            )
        assert result == "fallback"
        assert "Read failed: gone" in caplog.text
        assert all(record.levelno == logging.DEBUG for record in caplog.records)

    def test_unexpected_error_logged_with_traceback(self, caplog):
        result = BLEErrorHandler.safe_execute(_raise(KeyError("boom")))
        assert result is None
        assert caplog.records[-1].levelno == logging.ERROR
        assert caplog.records[-1].exc_info is not None

    def test_reraise(self):
        with pytest.raises(BleakError):
            BLEErrorHandler.safe_execute(_raise(BleakError("gone")), reraise=True)


class TestSafeAwait:
    def test_returns_default_on_failure(self):
        async def failing():
            raise OSError("adapter busy")

        assert asyncio.run(BLEErrorHandler.safe_await(failing(), default_return=b"")) == b""

    def test_cancellation_propagates(self):
        async def _run():
            task = asyncio.get_running_loop().create_task(
                BLEErrorHandler.safe_await(asyncio.sleep(60))
            )
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(_run())


class TestCleanup:
    def test_safe_cleanup_async_times_out_quietly(self):
        asyncio.run(BLEErrorHandler.safe_cleanup_async(asyncio.sleep(60), timeout=0.01))
