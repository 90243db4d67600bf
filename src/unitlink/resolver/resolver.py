"""Tiered control resolution.

resolve() walks a target's locator ladder, most specific tier first, and
returns the first visible, contextually valid element. When nothing
matches and the target lives in a collapsible panel, the panel is expanded
once and the ladder rerun. Whole-ladder failures are retried with backoff
and finally reported as ResolverExhausted; the resolver never guesses.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..collaborators import EXPANDED_KEY, QueryCollaborator
from ..config import Settings
from ..errors import ResolverExhausted, TimeoutExceeded
from ..logging import get_context_logger, log_resolution_attempt, log_resolution_result
from ..matching.canonical import normalize_text
from ..matching.equivalence import EquivalenceDecider
from .locators import ContextRule, LocatorPattern, LocatorRegistry, TargetDefinition, Tier
from .timeouts import Deadline, RetryConfig, TimeoutPolicy


class ResolverConfig(BaseModel):
    """Resolver tuning."""

    retry: RetryConfig = Field(default_factory=RetryConfig)
    visibility_category: str = "element"
    expansion_settle_ms: int = Field(default=500, ge=0)
    max_handles_per_pattern: int = Field(default=10, ge=1)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResolverConfig":
        return cls(
            retry=RetryConfig.from_settings(settings),
            expansion_settle_ms=settings.expansion_settle_ms,
            max_handles_per_pattern=settings.max_handles_per_pattern,
        )


class ResolvedTarget(BaseModel):
    """A located control and how it was found."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    handle: Any
    tier: Tier
    pattern: LocatorPattern
    strategy_id: str
    attempt: int = 1
    elapsed_ms: int = 0


_Hit = tuple[Any, Tier, LocatorPattern]


def _is_expanded(context: dict[str, Any]) -> bool:
    """True when the context reports an open panel (aria-expanded="true")."""
    value = context.get(EXPANDED_KEY)
    return value is True or str(value).lower() == "true"


class Resolver:
    """Finds on-screen controls through a QueryCollaborator.

    Args:
        query: Host element queries and actions
        registry: Locator ladders per target kind
        timeouts: Session timeout policy
        config: Retry, visibility and expansion tuning
        decider: Equivalence decisions for expected-text context checks
        session: Session name used in logs
    """

    def __init__(
        self,
        query: QueryCollaborator,
        registry: LocatorRegistry | None = None,
        timeouts: TimeoutPolicy | None = None,
        config: ResolverConfig | None = None,
        decider: EquivalenceDecider | None = None,
        session: str | None = None,
    ):
        self.query = query
        self.registry = registry if registry is not None else LocatorRegistry.default()
        self.timeouts = timeouts or TimeoutPolicy()
        self.config = config or ResolverConfig()
        self.decider = decider or EquivalenceDecider()
        self.session = session
        self.logger = get_context_logger(__name__, session=session)

    async def resolve(
        self,
        target_kind: str,
        expected: str | None = None,
        deadline: Deadline | None = None,
    ) -> ResolvedTarget:
        """Locate a control of the given kind.

        Args:
            target_kind: Registered target kind ("addButton", "unitSelector", ...)
            expected: Text the control's context must contain or match, for
                patterns whose rule sets require_expected
            deadline: Optional global budget

        Returns:
            ResolvedTarget for the first valid hit

        Raises:
            KeyError: Unknown target kind
            ResolverExhausted: Every tier failed on every attempt
            TimeoutExceeded: The deadline elapsed
        """
        target = self.registry.get(target_kind)
        started = self.timeouts.clock()
        attempted: dict[str, None] = {}
        state = {"attempt": 0, "expanded": False}

        async def run_ladder_once() -> tuple[_Hit, int]:
            state["attempt"] += 1
            attempt = state["attempt"]

            hit = await self._run_ladder(target, expected, attempt, attempted, deadline)
            if hit is None and target.expand_via and not state["expanded"]:
                state["expanded"] = True
                if await self._expand(target, attempted, deadline):
                    hit = await self._run_ladder(target, expected, attempt, attempted, deadline)

            if hit is None:
                raise ResolverExhausted(target_kind, list(attempted), attempt)
            return hit, attempt

        try:
            (handle, tier, pattern), attempt = await self.timeouts.run_with_retry(
                run_ladder_once,
                config=self.config.retry,
                deadline=deadline,
                name=f"resolve:{target_kind}",
            )
        except ResolverExhausted:
            elapsed_ms = self._elapsed_ms(started)
            self.timeouts.record_performance(elapsed_ms, success=False)
            log_resolution_result(
                target_kind, None, None, state["attempt"], elapsed_ms, session=self.session
            )
            raise

        elapsed_ms = self._elapsed_ms(started)
        self.timeouts.record_performance(elapsed_ms, success=True)
        log_resolution_result(
            target_kind, tier.value, pattern.strategy_id, attempt, elapsed_ms, session=self.session
        )
        return ResolvedTarget(
            handle=handle,
            tier=tier,
            pattern=pattern,
            strategy_id=pattern.strategy_id,
            attempt=attempt,
            elapsed_ms=elapsed_ms,
        )

    async def _run_ladder(
        self,
        target: TargetDefinition,
        expected: str | None,
        attempt: int,
        attempted: dict[str, None],
        deadline: Deadline | None,
    ) -> _Hit | None:
        base_ms = self.timeouts.adaptive_timeout(self.config.visibility_category)
        visible_ms = self.timeouts.progressive_timeout(base_ms, attempt)

        for tier, pattern in target.ladder():
            if deadline is not None:
                deadline.check(f"resolve:{target.kind}")
                visible_ms = min(visible_ms, deadline.remaining_ms())

            attempted.setdefault(pattern.label, None)

            try:
                handle, outcome = await self._try_pattern(pattern, expected, visible_ms)
            except TimeoutExceeded:
                raise
            except Exception as e:
                self.logger.warning(
                    f"Locator {pattern.label} failed for {target.kind}: {e}",
                    extra={"target_kind": target.kind, "strategy_id": pattern.strategy_id},
                )
                log_resolution_attempt(
                    target.kind, tier.value, pattern.strategy_id, "error", session=self.session
                )
                continue

            log_resolution_attempt(
                target.kind, tier.value, pattern.strategy_id, outcome, session=self.session
            )
            if handle is not None:
                return handle, tier, pattern

        return None

    async def _try_pattern(
        self,
        pattern: LocatorPattern,
        expected: str | None,
        visible_ms: int,
    ) -> tuple[Any | None, str]:
        handles = await self.query.query(pattern)
        if not handles:
            return None, "no_match"

        outcome = "hidden"
        for handle in list(handles)[: self.config.max_handles_per_pattern]:
            if not await self.query.is_visible(handle, visible_ms):
                continue
            if pattern.rule is None or await self._context_valid(handle, pattern.rule, expected):
                return handle, "hit"
            outcome = "invalid_context"

        return None, outcome

    async def _context_valid(
        self,
        handle: Any,
        rule: ContextRule,
        expected: str | None,
    ) -> bool:
        context = await self.query.extract_context(handle)
        text = normalize_text(
            " ".join(str(v) for k, v in context.items() if v and k != EXPANDED_KEY)
        )
        if not text or not rule.accepts_phrases(text):
            return False

        if rule.require_expected and expected:
            wanted = normalize_text(expected)
            if wanted and wanted in text:
                return True
            return self.decider.equivalent(expected, text)

        return True

    async def _expand(
        self,
        target: TargetDefinition,
        attempted: dict[str, None],
        deadline: Deadline | None,
    ) -> bool:
        """Act once on the control that reveals target; True if it was acted on.

        A panel whose context reports it open is left alone.
        """
        panel = self.registry.get(target.expand_via)
        hit = await self._run_ladder(panel, None, 1, attempted, deadline)
        if hit is None:
            self.logger.info(f"No {panel.kind} found to expand for {target.kind}")
            return False

        handle, tier, pattern = hit
        try:
            if _is_expanded(await self.query.extract_context(handle)):
                self.logger.info(
                    f"{panel.kind} already expanded; not toggling it for {target.kind}",
                    extra={"target_kind": target.kind, "strategy_id": pattern.strategy_id},
                )
                return False
            await self.query.act(handle, target.expand_action)
        except TimeoutExceeded:
            raise
        except Exception as e:
            self.logger.warning(
                f"Expanding {panel.kind} via {pattern.label} failed: {e}",
                extra={"target_kind": target.kind},
            )
            return False

        self.logger.info(
            f"Expanded {panel.kind} ({tier.value}) to reveal {target.kind}",
            extra={"target_kind": target.kind, "strategy_id": pattern.strategy_id},
        )
        await self.timeouts.pause(self.config.expansion_settle_ms)
        return True

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self.timeouts.clock() - started) * 1000))
