"""Adaptive timeouts, deadlines and bounded retries.

Timeouts are computed as base(category) x profile multiplier x context
multiplier and clamped. The profile can tune itself from observed response
times. All waiting happens through the injected ``sleep`` coroutine on the
caller's own task; nothing runs in the background.
"""

import asyncio
import random
import statistics
import time
from collections import deque
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import BaseModel, Field

from ..config import Settings, TimeoutProfileName
from ..errors import AmbiguousMatch, TimeoutExceeded
from ..logging import get_context_logger, log_retry_attempt

logger = get_context_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]
Clock = Callable[[], float]

PROFILE_MULTIPLIERS: dict[str, float] = {
    "ultra_fast": 0.3,
    "fast": 0.5,
    "normal": 1.0,
    "slow": 1.2,
    "very_slow": 1.5,
    "critical": 2.0,
}

# Base timeouts in milliseconds
BASE_TIMEOUTS_MS: dict[str, int] = {
    "page_load": 8000,
    "element": 2500,
    "modal": 1500,
    "click": 400,
    "type": 200,
    "dropdown_open": 1500,
    "dropdown_options": 3000,
    "panel_expand": 1000,
    "unit_search": 8000,
    "link_unit": 15000,
    "verify_link": 1500,
    "confirm": 1200,
    "scan": 15000,
}

DEFAULT_BASE_TIMEOUT_MS = 3000

PROGRESSIVE_STEP = 0.3
PROGRESSIVE_CAP = 2.5

HISTORY_SIZE = 50
REEVALUATE_EVERY = 10
MIN_SAMPLES = 5


class Deadline:
    """Elapsed-time budget for a multi-step operation.

    Args:
        budget_ms: Total budget in milliseconds
        operation: Name used in TimeoutExceeded messages
        clock: Monotonic clock returning seconds
    """

    def __init__(
        self,
        budget_ms: int,
        operation: str = "operation",
        clock: Clock = time.monotonic,
    ):
        self.budget_ms = budget_ms
        self.operation = operation
        self._clock = clock
        self._started = clock()

    @property
    def elapsed_ms(self) -> int:
        return int((self._clock() - self._started) * 1000)

    def remaining_ms(self) -> int:
        return max(0, self.budget_ms - self.elapsed_ms)

    @property
    def expired(self) -> bool:
        return self.elapsed_ms >= self.budget_ms

    def check(self, step: str | None = None) -> None:
        """Raise TimeoutExceeded if the budget is spent."""
        if self.expired:
            name = f"{self.operation}:{step}" if step else self.operation
            raise TimeoutExceeded(name, self.budget_ms, self.elapsed_ms)

    def exceeded(self, step: str | None = None) -> TimeoutExceeded:
        name = f"{self.operation}:{step}" if step else self.operation
        return TimeoutExceeded(name, self.budget_ms, self.elapsed_ms)


class RetryConfig(BaseModel):
    """Configuration for retry behavior."""

    max_attempts: int = Field(default=3, ge=1)
    base_delay_ms: int = Field(default=500, ge=0)
    max_delay_ms: int = Field(default=10000, ge=0)
    backoff: float = Field(default=1.5, ge=1.0)
    jitter: float = Field(default=0.0, ge=0.0, le=1.0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryConfig":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay_ms=settings.retry_base_delay_ms,
            max_delay_ms=settings.retry_max_delay_ms,
            backoff=settings.retry_backoff,
            jitter=settings.retry_jitter,
        )

    def delay_for(self, attempt: int, rng: Callable[[], float] = random.random) -> int:
        """Delay after the given failed attempt (1-based), in milliseconds."""
        delay = self.base_delay_ms * (self.backoff ** (attempt - 1))
        delay = min(delay, self.max_delay_ms)
        if self.jitter:
            delay *= 1 + self.jitter * (rng() - 0.5)
        return max(0, round(delay))


def _never_retry(error: BaseException) -> bool:
    return isinstance(error, (TimeoutExceeded, AmbiguousMatch))


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay_ms: int = 500,
    on_attempt: Callable[[int, Exception | None], Any] | None = None,
    deadline: Deadline | None = None,
    *,
    config: RetryConfig | None = None,
    sleep: Sleep = asyncio.sleep,
    name: str = "operation",
) -> T:
    """Execute an async operation with bounded retries.

    Args:
        operation: Zero-argument coroutine function
        max_attempts: Attempts before giving up (ignored when config is given)
        base_delay_ms: Delay after the first failure (ignored when config is given)
        on_attempt: Called before each attempt with (attempt, last_error)
        deadline: Global budget wrapping the whole sequence
        config: Full retry configuration
        sleep: Coroutine used to wait between attempts
        name: Operation name for logs and timeout errors

    Returns:
        The operation result

    Raises:
        TimeoutExceeded: The deadline elapsed, even if attempts remain
        Exception: The last failure once attempts are exhausted
    """
    if config is None:
        config = RetryConfig(max_attempts=max_attempts, base_delay_ms=base_delay_ms)

    last_exception: Exception | None = None

    for attempt in range(1, config.max_attempts + 1):
        if deadline is not None:
            deadline.check(name)

        if on_attempt is not None:
            on_attempt(attempt, last_exception)

        try:
            if deadline is None:
                return await operation()
            return await asyncio.wait_for(
                operation(), timeout=deadline.remaining_ms() / 1000
            )
        except asyncio.TimeoutError as e:
            if deadline is not None and deadline.expired:
                raise deadline.exceeded(name) from e
            last_exception = e
        except Exception as e:
            if _never_retry(e):
                raise
            last_exception = e

        if attempt == config.max_attempts:
            logger.error(f"All {config.max_attempts} attempts of {name} failed")
            raise last_exception

        delay_ms = config.delay_for(attempt)
        if deadline is not None and delay_ms >= deadline.remaining_ms():
            raise deadline.exceeded(name) from last_exception

        log_retry_attempt(
            name, attempt, config.max_attempts, delay_ms, str(last_exception)
        )
        await sleep(delay_ms / 1000)


class TimeoutPolicy:
    """Per-session timeout calculator.

    Args:
        profile: Starting environment profile
        min_ms: Lower clamp for adaptive timeouts
        max_ms: Upper clamp for adaptive timeouts
        adaptive: Re-evaluate the profile from recorded performance
        base_timeouts: Overrides for BASE_TIMEOUTS_MS
        sleep: Coroutine used for every wait in the session
        clock: Monotonic clock for deadlines
    """

    def __init__(
        self,
        profile: TimeoutProfileName = "normal",
        min_ms: int = 500,
        max_ms: int = 30000,
        adaptive: bool = True,
        base_timeouts: dict[str, int] | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ):
        if profile not in PROFILE_MULTIPLIERS:
            raise ValueError(f"Unknown timeout profile: {profile}")
        self.profile = profile
        self.min_ms = min_ms
        self.max_ms = max_ms
        self.adaptive = adaptive
        self.base_timeouts = {**BASE_TIMEOUTS_MS, **(base_timeouts or {})}
        self.sleep = sleep
        self.clock = clock
        self._samples: deque[tuple[int, bool]] = deque(maxlen=HISTORY_SIZE)
        self._recorded = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ) -> "TimeoutPolicy":
        return cls(
            profile=settings.timeout_profile,
            min_ms=settings.timeout_min_ms,
            max_ms=settings.timeout_max_ms,
            adaptive=settings.adaptive_timeouts,
            sleep=sleep,
            clock=clock,
        )

    @property
    def multiplier(self) -> float:
        return PROFILE_MULTIPLIERS[self.profile]

    def adaptive_timeout(self, category: str, context_multiplier: float = 1.0) -> int:
        """Timeout for a category scaled by profile and context, clamped."""
        base = self.base_timeouts.get(category, DEFAULT_BASE_TIMEOUT_MS)
        value = round(base * self.multiplier * context_multiplier)
        return max(self.min_ms, min(self.max_ms, value))

    def progressive_timeout(self, base_ms: int, attempt: int) -> int:
        """Grow a timeout with the attempt number (capped at 2.5x)."""
        factor = min(1 + PROGRESSIVE_STEP * max(attempt - 1, 0), PROGRESSIVE_CAP)
        return round(base_ms * factor)

    def deadline(self, budget_ms: int, operation: str = "operation") -> Deadline:
        return Deadline(budget_ms, operation=operation, clock=self.clock)

    async def pause(self, ms: int) -> None:
        """Cooperative wait on the caller's task."""
        if ms > 0:
            await self.sleep(ms / 1000)

    async def run_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        config: RetryConfig,
        on_attempt: Callable[[int, Exception | None], Any] | None = None,
        deadline: Deadline | None = None,
        name: str = "operation",
    ) -> T:
        """run_with_retry bound to this policy's sleep."""
        return await run_with_retry(
            operation,
            on_attempt=on_attempt,
            deadline=deadline,
            config=config,
            sleep=self.sleep,
            name=name,
        )

    # =========================
    # Self-tuning
    # =========================

    def record_performance(self, duration_ms: int, success: bool = True) -> None:
        """Record an observed response time; may switch the profile."""
        self._samples.append((duration_ms, success))
        self._recorded += 1
        if self.adaptive and self._recorded % REEVALUATE_EVERY == 0:
            self._reevaluate()

    def _reevaluate(self) -> None:
        if len(self._samples) < MIN_SAMPLES:
            return

        recent = list(self._samples)[-20:]
        durations = [d for d, _ in recent]
        mean = sum(durations) / len(durations)
        success_rate = sum(1 for _, ok in self._samples if ok) / len(self._samples)
        stdev = statistics.stdev(durations) if len(durations) > 1 else 0.0
        stability = 1 / (1 + stdev / 1000)

        score = _latency_points(mean) + success_rate * 4 + stability * 2

        if score >= 9 and success_rate >= 0.98:
            new_profile = "ultra_fast"
        elif score >= 7 and success_rate >= 0.92:
            new_profile = "fast"
        elif score >= 5 and success_rate >= 0.8:
            new_profile = "normal"
        elif score >= 3 and success_rate >= 0.6:
            new_profile = "slow"
        elif success_rate >= 0.4:
            new_profile = "very_slow"
        else:
            new_profile = "critical"

        if new_profile != self.profile:
            logger.info(
                f"Timeout profile {self.profile} -> {new_profile}",
                extra={
                    "score": round(score, 2),
                    "mean_ms": round(mean),
                    "success_rate": round(success_rate, 3),
                },
            )
            self.profile = new_profile

    def stats(self) -> dict[str, Any]:
        return {
            "profile": self.profile,
            "multiplier": self.multiplier,
            "samples": len(self._samples),
        }


def _latency_points(mean_ms: float) -> int:
    if mean_ms < 300:
        return 4
    if mean_ms < 600:
        return 3
    if mean_ms < 1200:
        return 2
    if mean_ms < 2500:
        return 1
    return 0

