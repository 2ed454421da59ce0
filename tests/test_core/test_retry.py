"""Tests for the retry backoff policy."""

from datetime import datetime, timedelta

from orchestrator.core.retry import BACKOFF_EXPONENTIAL, BACKOFF_FIXED, BackoffPolicy


class TestDelaySeconds:
    """Tests for BackoffPolicy.delay_seconds."""

    def test_exponential_doubles_per_attempt(self):
        """Should double the base delay for every failed attempt."""
        policy = BackoffPolicy(backoff=BACKOFF_EXPONENTIAL, base_seconds=30)

        assert policy.delay_seconds(1) == 30
        assert policy.delay_seconds(2) == 60
        assert policy.delay_seconds(3) == 120

    def test_exponential_is_capped(self):
        """Should never exceed max_seconds."""
        policy = BackoffPolicy(base_seconds=30, max_seconds=100)

        assert policy.delay_seconds(10) == 100

    def test_fixed_ignores_attempts(self):
        """Fixed backoff should always wait base_seconds."""
        policy = BackoffPolicy(backoff=BACKOFF_FIXED, base_seconds=5)

        assert policy.delay_seconds(1) == 5
        assert policy.delay_seconds(4) == 5

    def test_jitter_stays_within_bounds(self):
        """Jitter should keep the delay between 50% and 150% of the nominal value."""
        policy = BackoffPolicy(backoff=BACKOFF_FIXED, base_seconds=10, jitter=True)

        for _ in range(50):
            assert 5 <= policy.delay_seconds(1) <= 15

    def test_next_run_at(self):
        """Should shift now by the computed delay."""
        policy = BackoffPolicy(base_seconds=30)
        now = datetime(2026, 10, 18, 12, 0, 0)

        assert policy.next_run_at(now, 2) == now + timedelta(seconds=60)


class TestWithOverrides:
    """Tests for per-job retry overrides."""

    def test_none_returns_same_policy(self):
        policy = BackoffPolicy()
        assert policy.with_overrides(None) is policy

    def test_backoff_and_base_ms(self):
        """Should apply backoff kind and base delay from the payload."""
        policy = BackoffPolicy(backoff=BACKOFF_EXPONENTIAL, base_seconds=30)

        overridden = policy.with_overrides({"backoff": "fixed", "base_ms": 1500})

        assert overridden.backoff == BACKOFF_FIXED
        assert overridden.base_seconds == 1.5
        assert overridden.max_seconds == policy.max_seconds

    def test_unknown_backoff_is_ignored(self):
        """Unknown backoff kinds should keep the configured one."""
        policy = BackoffPolicy(backoff=BACKOFF_FIXED)

        assert policy.with_overrides({"backoff": "linear"}).backoff == BACKOFF_FIXED

    def test_invalid_base_ms_is_ignored(self):
        policy = BackoffPolicy(base_seconds=30)

        assert policy.with_overrides({"base_ms": -5}).base_seconds == 30
        assert policy.with_overrides({"base_ms": "soon"}).base_seconds == 30


class TestIsRetryable:
    """Tests for status code classification."""

    def test_everything_retryable_by_default(self):
        """With no configured codes, every failure is retried."""
        policy = BackoffPolicy()

        assert policy.is_retryable(500)
        assert policy.is_retryable(400)
        assert policy.is_retryable(599)
        assert policy.is_retryable(None)

    def test_configured_codes_are_not_retryable(self):
        policy = BackoffPolicy(non_retryable_status_codes=frozenset({400, 422}))

        assert not policy.is_retryable(400)
        assert not policy.is_retryable(422)
        assert policy.is_retryable(500)
