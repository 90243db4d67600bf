"""Per-session wiring of the verification and resolution components.

One LinkSession serves one subject being processed. Every mutable object it
builds (canonicalizer caches, verification cache, timeout profile) belongs to
that session alone; parallel workers each construct their own session and
share at most the append-only history store.
"""

import asyncio
import time
from typing import Sequence

from .collaborators import HistoryCollaborator, QueryCollaborator, ScanCollaborator
from .config import Settings, get_settings
from .history import JsonLinesHistory
from .logging import get_context_logger
from .matching import Canonicalizer, EquivalenceDecider, EquivalenceThresholds, SimilarityScorer
from .resolver import Deadline, LocatorRegistry, ResolvedTarget, Resolver, ResolverConfig, TimeoutPolicy
from .resolver.timeouts import Clock, Sleep
from .verification import (
    BatchResult,
    LinkStateCache,
    LinkStateVerifier,
    VerificationResult,
    VerifierConfig,
)
from .verification.verifier import ProgressCallback


class LinkSession:
    """Facade over LinkStateVerifier and Resolver for one session.

    Args:
        scanner: Enumerates linked units
        query: Locates and acts on controls
        history: Optional shared append-only store; defaults to a
            JsonLinesHistory at settings.history_path when set
        settings: Defaults to get_settings()
        registry: Locator ladders; defaults to settings.locator_config_path
            or the built-in targets
        name: Session name carried in every log record
        sleep: Coroutine used for all waits
        clock: Monotonic clock used for deadlines and elapsed times
    """

    def __init__(
        self,
        scanner: ScanCollaborator,
        query: QueryCollaborator,
        history: HistoryCollaborator | None = None,
        settings: Settings | None = None,
        registry: LocatorRegistry | None = None,
        name: str = "session",
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self.name = name
        self.logger = get_context_logger(__name__, session=name)

        self.canonicalizer = Canonicalizer(cache_capacity=self.settings.token_cache_capacity)
        self.decider = EquivalenceDecider(
            scorer=SimilarityScorer(self.canonicalizer),
            thresholds=EquivalenceThresholds.from_settings(self.settings),
        )
        self.timeouts = TimeoutPolicy.from_settings(self.settings, sleep=sleep, clock=clock)
        self.cache = LinkStateCache(self.canonicalizer)

        if history is None and self.settings.history_path:
            history = JsonLinesHistory(self.settings.history_path)
        if registry is None:
            path = self.settings.locator_config_path
            registry = LocatorRegistry.from_file(path) if path else LocatorRegistry.default()

        self.verifier = LinkStateVerifier(
            scanner,
            decider=self.decider,
            cache=self.cache,
            config=VerifierConfig.from_settings(self.settings),
            history=history,
            timeouts=self.timeouts,
            session=name,
        )
        self.resolver = Resolver(
            query,
            registry=registry,
            timeouts=self.timeouts,
            config=ResolverConfig.from_settings(self.settings),
            decider=self.decider,
            session=name,
        )

    def deadline(self, budget_ms: int, operation: str = "operation") -> Deadline:
        """Deadline measured with this session's clock."""
        return self.timeouts.deadline(budget_ms, operation)

    async def verify(
        self,
        unit_name: str,
        role: str,
        deadline: Deadline | None = None,
    ) -> VerificationResult:
        return await self.verifier.verify(unit_name, role, deadline)

    async def verify_batch(
        self,
        units: Sequence[str],
        role: str,
        on_progress: ProgressCallback | None = None,
        deadline: Deadline | None = None,
    ) -> BatchResult:
        return await self.verifier.verify_batch(units, role, on_progress, deadline)

    async def resolve(
        self,
        target_kind: str,
        expected: str | None = None,
        deadline: Deadline | None = None,
    ) -> ResolvedTarget:
        return await self.resolver.resolve(target_kind, expected, deadline)

    def mark_linked(self, unit_name: str, role: str) -> VerificationResult:
        return self.verifier.mark_linked(unit_name, role)

    def clear_cache(self) -> None:
        self.verifier.clear_cache()

    def get_cache_stats(self) -> dict[str, int]:
        return self.cache.stats()

    def report(self) -> dict:
        """Verification, cache and timeout statistics."""
        return {
            "session": self.name,
            "verification": self.verifier.report(),
            "cache": self.cache.stats(),
            "timeouts": self.timeouts.stats(),
        }
