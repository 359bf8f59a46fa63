"""Tests for the backoff policy used by the connection manager."""

import asyncio
import random

import pytest

from embermug.interfaces.ble import BLEConfig, ReconnectPolicy, RetryPolicy


class TestReconnectPolicy:
    """Unit tests for the ReconnectPolicy helper."""

    def test_initialization_defaults(self):
        policy = ReconnectPolicy()

        assert policy.initial_delay == 1.0
        assert policy.max_delay == 30.0
        assert policy.backoff == 2.0
        assert policy.jitter_ratio == 0.1

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"initial_delay": 0},
            {"initial_delay": 2.0, "max_delay": 1.0},
            {"backoff": 1.0},
            {"jitter_ratio": 1.5},
        ],
    )
    def test_rejects_invalid_configuration(self, kwargs):
        with pytest.raises(ValueError):
            ReconnectPolicy(**kwargs)

    def test_delay_calculation_without_jitter(self):
        policy = ReconnectPolicy(
            initial_delay=1.0, max_delay=100.0, backoff=2.0, jitter_ratio=0.0
        )

        assert policy.get_delay(0) == 1.0
        assert policy.get_delay(1) == 2.0
        assert policy.get_delay(2) == 4.0

    def test_delay_respects_maximum(self):
        policy = ReconnectPolicy(
            initial_delay=1.0, max_delay=5.0, backoff=3.0, jitter_ratio=0.0
        )

        assert policy.get_delay(1) == 3.0
        assert policy.get_delay(2) == 5.0  # capped at max_delay

    def test_delay_includes_jitter(self):
        policy = ReconnectPolicy(
            initial_delay=10.0,
            max_delay=20.0,
            jitter_ratio=0.5,
            random_source=random.Random(0),
        )

        assert 5.0 <= policy.get_delay(0) <= 15.0

    def test_sleep_with_backoff_uses_patched_sleep(self, sleep_calls):
        policy = ReconnectPolicy(jitter_ratio=0.0)

        delay = asyncio.run(policy.sleep_with_backoff(2))

        assert delay == 4.0
        assert sleep_calls == [4.0]


class TestRetryPolicy:
    def test_connect_policy(self):
        policy = RetryPolicy.CONNECT
        assert policy.initial_delay == BLEConfig.CONNECT_RETRY_INITIAL_DELAY
        assert policy.jitter_ratio == 0.0
        assert [policy.get_delay(n) for n in range(2)] == [1.0, 2.0]
