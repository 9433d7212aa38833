"""
Unit tests for the reconnect policy helpers.
"""

import pytest

from glasslink.config.models import EventChannelConfig
from glasslink.utils.retry_utils import Bounded, RetryUtils, Unbounded


class TestBackoffDelay:
    def test_fixed_delay_when_factor_is_one(self):
        policy = Bounded(max_attempts=5, delay=1.0, max_delay=5.0, backoff_factor=1.0)
        assert [RetryUtils.delay_after(policy, n) for n in range(1, 5)] == [1.0, 1.0, 1.0, 1.0]

    def test_exponential_delay_is_capped(self):
        policy = Unbounded(delay=1.0, max_delay=5.0, backoff_factor=2.0)
        delays = [RetryUtils.delay_after(policy, n) for n in range(1, 6)]
        assert delays == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_calculate_backoff_delay(self):
        assert RetryUtils.calculate_backoff_delay(0, 0.5, 10.0, 2.0) == 0.5
        assert RetryUtils.calculate_backoff_delay(3, 0.5, 10.0, 2.0) == 4.0
        assert RetryUtils.calculate_backoff_delay(10, 0.5, 10.0, 2.0) == 10.0


class TestCanRetry:
    def test_bounded_counts_first_attempt(self):
        policy = Bounded(max_attempts=3, delay=0.0)
        assert RetryUtils.can_retry(policy, 1)
        assert RetryUtils.can_retry(policy, 2)
        assert not RetryUtils.can_retry(policy, 3)

    def test_unbounded_always_retries(self):
        policy = Unbounded(delay=0.0)
        assert RetryUtils.can_retry(policy, 10_000)

    def test_describe(self):
        assert "unbounded" in RetryUtils.describe(Unbounded(delay=5.0))
        assert "max_attempts=5" in RetryUtils.describe(Bounded(max_attempts=5, delay=1.0))


class TestPolicyFromConfig:
    def test_bounded_policy_in_seconds(self):
        config = EventChannelConfig(reconnect_base_delay_ms=1000, reconnect_max_attempts=5)
        policy = config.reconnect_policy()
        assert isinstance(policy, Bounded)
        assert policy.max_attempts == 5
        assert policy.delay == 1.0

    def test_unbounded_policy(self):
        config = EventChannelConfig(reconnect_max_attempts=None)
        assert isinstance(config.reconnect_policy(), Unbounded)

    def test_base_delay_override(self):
        config = EventChannelConfig(reconnect_base_delay_ms=1000, reconnect_max_delay_ms=2000)
        policy = config.reconnect_policy(base_delay_ms=5000)
        assert policy.delay == 5.0
        assert policy.max_delay == 5.0

    def test_policies_are_immutable(self):
        policy = Bounded(max_attempts=2, delay=1.0)
        with pytest.raises(Exception):
            policy.delay = 2.0
