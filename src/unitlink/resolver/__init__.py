"""Control resolution: locator ladders, timeouts and retries."""

from .locators import (
    DEFAULT_TARGETS,
    TIER_ORDER,
    ContextRule,
    LocatorPattern,
    LocatorRegistry,
    TargetDefinition,
    Tier,
)
from .resolver import ResolvedTarget, Resolver, ResolverConfig
from .timeouts import (
    BASE_TIMEOUTS_MS,
    PROFILE_MULTIPLIERS,
    Deadline,
    RetryConfig,
    TimeoutPolicy,
    run_with_retry,
)

__all__ = [
    "DEFAULT_TARGETS",
    "TIER_ORDER",
    "ContextRule",
    "LocatorPattern",
    "LocatorRegistry",
    "TargetDefinition",
    "Tier",
    "ResolvedTarget",
    "Resolver",
    "ResolverConfig",
    "BASE_TIMEOUTS_MS",
    "PROFILE_MULTIPLIERS",
    "Deadline",
    "RetryConfig",
    "TimeoutPolicy",
    "run_with_retry",
]
