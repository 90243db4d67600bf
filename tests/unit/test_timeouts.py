"""Unit tests for TimeoutPolicy, Deadline and run_with_retry.

Sleeps are injected, so no test waits on real time.
"""

import pytest

from unitlink.config import Settings
from unitlink.errors import AmbiguousMatch, TimeoutExceeded
from unitlink.resolver.timeouts import Deadline, RetryConfig, TimeoutPolicy, run_with_retry


class Flaky:
    """Coroutine function failing a fixed number of times."""

    def __init__(self, failures: int, error: Exception | None = None, result="ok"):
        self.failures = failures
        self.error = error or RuntimeError("transient")
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


class TestAdaptiveTimeout:
    """Tests for category timeouts."""

    def test_normal_profile_uses_base(self):
        policy = TimeoutPolicy()

        assert policy.adaptive_timeout("element") == 2500
        assert policy.adaptive_timeout("page_load") == 8000

    def test_profile_multiplier(self):
        assert TimeoutPolicy(profile="fast").adaptive_timeout("element") == 1250
        assert TimeoutPolicy(profile="critical").adaptive_timeout("page_load") == 16000

    def test_context_multiplier(self):
        assert TimeoutPolicy().adaptive_timeout("element", context_multiplier=2.0) == 5000

    def test_unknown_category_uses_default(self):
        assert TimeoutPolicy().adaptive_timeout("something_else") == 3000

    def test_clamped(self):
        assert TimeoutPolicy(profile="ultra_fast").adaptive_timeout("click") == 500
        assert TimeoutPolicy(profile="critical").adaptive_timeout("link_unit", 3.0) == 30000

    def test_unknown_profile_rejected(self):
        with pytest.raises(ValueError):
            TimeoutPolicy(profile="turbo")

    def test_from_settings(self):
        settings = Settings(_env_file=None, timeout_profile="slow", timeout_min_ms=100)

        policy = TimeoutPolicy.from_settings(settings)

        assert policy.profile == "slow"
        assert policy.adaptive_timeout("type") == 240


class TestProgressiveTimeout:
    """Tests for attempt-based timeout growth."""

    @pytest.mark.parametrize(
        "attempt, expected",
        [(0, 1000), (1, 1000), (2, 1300), (3, 1600), (6, 2500), (10, 2500)],
    )
    def test_growth_is_capped(self, attempt, expected):
        assert TimeoutPolicy().progressive_timeout(1000, attempt) == expected

    def test_monotonic(self):
        policy = TimeoutPolicy()
        values = [policy.progressive_timeout(700, n) for n in range(1, 12)]

        assert values == sorted(values)


class TestSelfTuning:
    """Tests for profile re-evaluation from recorded performance."""

    def test_fast_responses_select_fast_profile(self):
        policy = TimeoutPolicy()

        for _ in range(10):
            policy.record_performance(100, success=True)

        assert policy.profile == "ultra_fast"

    def test_failures_select_critical_profile(self):
        policy = TimeoutPolicy()

        for _ in range(10):
            policy.record_performance(5000, success=False)

        assert policy.profile == "critical"

    def test_jittery_latency_scores_lower_than_steady(self):
        """Test that latency spread lowers the score at the same mean."""
        steady, jittery = TimeoutPolicy(), TimeoutPolicy()

        for i in range(10):
            steady.record_performance(1100, success=True)
            jittery.record_performance(100 if i % 2 else 2100, success=True)

        assert steady.profile == "fast"
        assert jittery.profile == "normal"

    def test_not_reevaluated_before_ten_samples(self):
        policy = TimeoutPolicy()

        for _ in range(9):
            policy.record_performance(100, success=True)

        assert policy.profile == "normal"

    def test_disabled(self):
        policy = TimeoutPolicy(adaptive=False)

        for _ in range(20):
            policy.record_performance(5000, success=False)

        assert policy.profile == "normal"
        assert policy.stats()["samples"] == 20


class TestDeadline:
    """Tests for Deadline."""

    def test_remaining_and_expired(self, clock):
        deadline = Deadline(1000, operation="verify", clock=clock)

        clock.advance(0.4)
        assert deadline.remaining_ms() == 600
        assert deadline.expired is False
        deadline.check()

        clock.advance(0.7)
        assert deadline.remaining_ms() == 0
        assert deadline.expired is True

    def test_check_raises(self, clock):
        deadline = Deadline(1000, operation="verify", clock=clock)
        clock.advance(2)

        with pytest.raises(TimeoutExceeded) as exc_info:
            deadline.check("scan")

        assert exc_info.value.operation == "verify:scan"
        assert exc_info.value.budget_ms == 1000
        assert exc_info.value.elapsed_ms == 2000


class TestRetryConfig:
    """Tests for backoff delays."""

    def test_exponential_and_capped(self):
        config = RetryConfig(base_delay_ms=1000, backoff=2.0, max_delay_ms=3000)

        assert [config.delay_for(n) for n in (1, 2, 3)] == [1000, 2000, 3000]

    def test_jitter(self):
        config = RetryConfig(base_delay_ms=1000, jitter=0.2)

        assert config.delay_for(1, rng=lambda: 1.0) == 1100
        assert config.delay_for(1, rng=lambda: 0.0) == 900


class TestRunWithRetry:
    """Tests for run_with_retry."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self, sleep):
        operation = Flaky(failures=2)

        result = await run_with_retry(operation, max_attempts=3, base_delay_ms=500, sleep=sleep)

        assert result == "ok"
        assert operation.calls == 3
        assert sleep.calls == [0.5, 0.75]

    @pytest.mark.asyncio
    async def test_rethrows_last_failure(self, sleep):
        operation = Flaky(failures=10, error=ValueError("still broken"))

        with pytest.raises(ValueError, match="still broken"):
            await run_with_retry(operation, max_attempts=3, sleep=sleep)

        assert operation.calls == 3
        assert len(sleep.calls) == 2

    @pytest.mark.asyncio
    async def test_on_attempt_callback(self, sleep):
        operation = Flaky(failures=1)
        seen = []

        await run_with_retry(
            operation,
            on_attempt=lambda attempt, error: seen.append((attempt, type(error))),
            sleep=sleep,
        )

        assert seen == [(1, type(None)), (2, RuntimeError)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            AmbiguousMatch("Campinas", ["a", "b"], [0.9, 0.9]),
            TimeoutExceeded("resolve", 1000, 1200),
        ],
    )
    async def test_never_retries_terminal_errors(self, sleep, error):
        operation = Flaky(failures=10, error=error)

        with pytest.raises(type(error)):
            await run_with_retry(operation, max_attempts=5, sleep=sleep)

        assert operation.calls == 1
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_deadline_aborts_with_attempts_left(self, clock, sleep):
        """Test that a retry delay past the deadline raises TimeoutExceeded."""
        operation = Flaky(failures=10)
        deadline = Deadline(1000, operation="resolve", clock=clock)

        with pytest.raises(TimeoutExceeded):
            await run_with_retry(
                operation,
                max_attempts=5,
                base_delay_ms=500,
                deadline=deadline,
                sleep=sleep,
                name="resolve",
            )

        # 500ms wait fits the budget, the following 750ms does not
        assert operation.calls == 2
        assert sleep.calls == [0.5]

    @pytest.mark.asyncio
    async def test_expired_deadline_before_first_attempt(self, clock, sleep):
        operation = Flaky(failures=0)
        deadline = Deadline(100, clock=clock)
        clock.advance(1)

        with pytest.raises(TimeoutExceeded):
            await run_with_retry(operation, deadline=deadline, sleep=sleep)

        assert operation.calls == 0

    @pytest.mark.asyncio
    async def test_policy_binding_uses_policy_sleep(self, timeouts, sleep):
        operation = Flaky(failures=1)

        result = await timeouts.run_with_retry(
            operation, config=RetryConfig(base_delay_ms=200)
        )

        assert result == "ok"
        assert sleep.calls == [0.2]
