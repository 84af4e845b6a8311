"""Tests for retry budget and backoff configuration."""

import pytest

from core.resilience.retry import TOKEN_RETRY, RetryConfig


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_default_values(self):
        """Test default configuration values."""
        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.base_delay == 1.0
        assert config.max_delay == 30.0
        assert config.exponential_base == 2.0
        assert config.jitter is True

    def test_type_conversion_from_strings(self):
        """Test that config handles string inputs (e.g., from YAML)."""
        config = RetryConfig(
            max_attempts="5",
            base_delay="2.5",
            max_delay="60",
            exponential_base="3",
            jitter="false",
        )
        assert config.max_attempts == 5
        assert config.base_delay == 2.5
        assert config.max_delay == 60.0
        assert config.exponential_base == 3.0
        assert config.jitter is False

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError, match="max_attempts must be >= 1"):
            RetryConfig(max_attempts=0)

    def test_exponential_backoff_without_jitter(self):
        """Test exponential delay calculation."""
        config = RetryConfig(base_delay=1.0, exponential_base=2.0, max_delay=5.0, jitter=False)
        assert [config.get_delay(attempt) for attempt in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_within_equal_jitter_bounds(self):
        config = RetryConfig(base_delay=2.0, exponential_base=2.0, max_delay=30.0)
        for _ in range(50):
            assert 2.0 <= config.get_delay(1) <= 4.0

    def test_should_retry_respects_budget(self):
        config = RetryConfig(max_attempts=3)
        assert config.should_retry(0)
        assert config.should_retry(1)
        assert not config.should_retry(2)

    def test_should_retry_respects_classification(self):
        assert not RetryConfig(max_attempts=3).should_retry(0, retriable=False)


class TestFixedSpacing:

    def test_fixed(self):
        config = RetryConfig.fixed(retries=4, interval=2.0)
        assert config.retries == 4
        assert config.max_attempts == 5
        assert [config.get_delay(attempt) for attempt in range(4)] == [2.0] * 4

    def test_zero_interval(self):
        assert RetryConfig.fixed(retries=2, interval=0).get_delay(1) == 0.0

    def test_token_retry_defaults(self):
        assert TOKEN_RETRY.retries == 4
        assert TOKEN_RETRY.get_delay(0) == 2.0
