"""Link-state verification.

Before linking a subject to a unit, the caller asks whether the unit is
already linked and with which role. The verifier scans the current
associations once per (unit, role), classifies the pair and memoizes the
result for the rest of the session.

Verification fails open: when the scan cannot be completed the result says
the link may be applied. Deadline overruns always propagate.
"""

import asyncio
from collections import Counter
from typing import Any, Awaitable, Callable, Sequence

from pydantic import BaseModel, Field

from ..collaborators import HistoryCollaborator, ScanCollaborator
from ..config import Settings
from ..errors import ScanFailure, TimeoutExceeded
from ..logging import get_context_logger, log_batch_progress, log_verification_result
from ..matching.equivalence import EquivalenceDecider
from ..resolver.timeouts import Deadline, TimeoutPolicy
from .cache import LinkStateCache
from .models import (
    BatchItem,
    BatchResult,
    LinkRecord,
    LinkState,
    VerificationResult,
)
from .roles import RoleExtractor

ProgressCallback = Callable[[str, int], Any]

REASON_NOT_LINKED = "not linked"
REASON_ROLE_UNDETECTED = "role undetected, linking allowed for safety"


class VerifierConfig(BaseModel):
    """Verifier tuning."""

    scan_timeout_ms: int = Field(default=15000, ge=1)
    batch_pause_ms: int = Field(default=100, ge=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "VerifierConfig":
        return cls(
            scan_timeout_ms=settings.scan_timeout_ms,
            batch_pause_ms=settings.batch_pause_ms,
        )


class _ScanSnapshot:
    """Linked units scanned once and shared by a batch."""

    def __init__(self, scan: Callable[[Deadline | None], Awaitable[list[LinkRecord]]]):
        self._scan = scan
        self._records: list[LinkRecord] | None = None
        self._failure: ScanFailure | None = None

    async def records(self, deadline: Deadline | None) -> list[LinkRecord]:
        if self._failure is not None:
            raise ScanFailure(self._failure.reason)
        if self._records is None:
            try:
                self._records = await self._scan(deadline)
            except ScanFailure as e:
                self._failure = e
                raise
        return self._records


class LinkStateVerifier:
    """Classifies (unit, role) pairs against the scanned associations.

    Args:
        scanner: Enumerates currently linked units
        decider: Equivalence decisions (shares the session's Canonicalizer)
        cache: Session cache of results
        config: Scan timeout and batch pacing
        history: Optional append-only outcome store
        role_extractor: Finds role text inside row text
        timeouts: Session timeout policy (clock, sleep, performance samples)
        session: Session name used in logs
    """

    def __init__(
        self,
        scanner: ScanCollaborator,
        decider: EquivalenceDecider | None = None,
        cache: LinkStateCache | None = None,
        config: VerifierConfig | None = None,
        history: HistoryCollaborator | None = None,
        role_extractor: RoleExtractor | None = None,
        timeouts: TimeoutPolicy | None = None,
        session: str | None = None,
    ):
        self.scanner = scanner
        self.decider = decider or EquivalenceDecider()
        self.cache = cache if cache is not None else LinkStateCache(self.decider.canonicalizer)
        self.config = config or VerifierConfig()
        self.history = history
        self.role_extractor = role_extractor or RoleExtractor()
        self.timeouts = timeouts or TimeoutPolicy()
        self.session = session
        self.logger = get_context_logger(__name__, session=session)

        self._calls = 0
        self._outcomes: Counter[str] = Counter()

    # =========================
    # Single verification
    # =========================

    async def verify(
        self,
        unit_name: str,
        desired_role: str,
        deadline: Deadline | None = None,
    ) -> VerificationResult:
        """Classify whether unit_name is linked and with which role.

        Args:
            unit_name: Unit to look for
            desired_role: Role the caller intends to apply
            deadline: Optional global budget

        Returns:
            VerificationResult; cache hits return the stored object

        Raises:
            TimeoutExceeded: The deadline elapsed during the scan
        """
        return await self._verify(unit_name, desired_role, deadline, self._scan)

    async def _verify(
        self,
        unit_name: str,
        desired_role: str,
        deadline: Deadline | None,
        scan: Callable[[Deadline | None], Awaitable[list[LinkRecord]]],
    ) -> VerificationResult:
        self._calls += 1
        key = self.cache.key(unit_name, desired_role)

        cached = self.cache.get(key)
        if cached is not None:
            self.logger.debug(f"Cache hit for {unit_name} ({desired_role})")
            return cached

        if deadline is not None:
            deadline.check("verify")

        started = self.timeouts.clock()

        try:
            records = await scan(deadline)
        except ScanFailure as e:
            self.logger.warning(
                f"Scan failed while verifying {unit_name}; linking allowed: {e.reason}",
                extra={"unit_name": unit_name, "reason": e.reason},
            )
            result = self._fail_open(unit_name, desired_role, self._elapsed_ms(started))
            await self._finish(unit_name, result)
            return result

        result = self._classify(unit_name, desired_role, records, self._elapsed_ms(started))
        self.cache.put(key, result)
        await self._finish(unit_name, result)
        return result

    async def _scan(self, deadline: Deadline | None) -> list[LinkRecord]:
        timeout_ms = self.config.scan_timeout_ms
        if deadline is not None:
            timeout_ms = min(timeout_ms, deadline.remaining_ms())

        started = self.timeouts.clock()
        try:
            records = await asyncio.wait_for(
                self.scanner.list_candidates(), timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError as e:
            self.timeouts.record_performance(self._elapsed_ms(started), success=False)
            if deadline is not None and deadline.expired:
                raise deadline.exceeded("scan") from e
            raise ScanFailure(f"scan timed out after {timeout_ms}ms") from e
        except TimeoutExceeded:
            raise
        except Exception as e:
            self.timeouts.record_performance(self._elapsed_ms(started), success=False)
            raise ScanFailure(str(e) or type(e).__name__) from e

        self.timeouts.record_performance(self._elapsed_ms(started), success=True)
        return list(records or [])

    def _classify(
        self,
        unit_name: str,
        desired_role: str,
        records: list[LinkRecord],
        elapsed_ms: int,
    ) -> VerificationResult:
        base = {"unit_name": unit_name, "role": desired_role, "elapsed_ms": elapsed_ms}

        if not records:
            return VerificationResult(
                state=LinkState.NOT_FOUND, reason=REASON_NOT_LINKED, **base
            )

        record = self._match(unit_name, desired_role, records)
        if record is None:
            return VerificationResult(
                state=LinkState.NOT_FOUND,
                reason=f"{REASON_NOT_LINKED} (no match among {len(records)} linked units)",
                **base,
            )

        existing_role = self._existing_role(record)
        if existing_role is None:
            return VerificationResult(
                state=LinkState.FOUND_ROLE_MISMATCH,
                already_linked=True,
                role_matches=False,
                matched_unit=record.unit_name_raw,
                can_apply=True,
                reason=REASON_ROLE_UNDETECTED,
                **base,
            )

        if self.decider.roles_equivalent(existing_role, desired_role):
            return VerificationResult(
                state=LinkState.FOUND_ROLE_MATCH,
                already_linked=True,
                role_matches=True,
                existing_role=existing_role,
                matched_unit=record.unit_name_raw,
                can_apply=False,
                reason=f"already linked as {existing_role}",
                **base,
            )

        return VerificationResult(
            state=LinkState.FOUND_ROLE_MISMATCH,
            already_linked=True,
            role_matches=False,
            existing_role=existing_role,
            matched_unit=record.unit_name_raw,
            can_apply=True,
            reason=f"linked with a different role: {existing_role}",
            **base,
        )

    def _match(
        self,
        unit_name: str,
        desired_role: str,
        records: list[LinkRecord],
    ) -> LinkRecord | None:
        """Best equivalent record; among equal scores prefer one with the desired role."""
        matches: list[tuple[float, LinkRecord]] = []
        for record in records:
            if self.decider.equivalent(unit_name, record.unit_name_raw):
                score = self.decider.score(unit_name, record.unit_name_raw).combined_score
                matches.append((score, record))

        if not matches:
            return None

        top = max(score for score, _ in matches)
        leaders = [record for score, record in matches if score == top]
        for record in leaders:
            if self.decider.roles_equivalent(self._existing_role(record), desired_role):
                return record
        return leaders[0]

    def _existing_role(self, record: LinkRecord) -> str | None:
        if record.role_raw and record.role_raw.strip():
            return record.role_raw.strip()
        if not record.row_text:
            return None
        # The unit name itself may contain role words ("Secretaria da ...").
        row = record.row_text.replace(record.unit_name_raw, " ")
        return self.role_extractor.extract(row)

    def _fail_open(self, unit_name: str, desired_role: str, elapsed_ms: int = 0) -> VerificationResult:
        return VerificationResult(
            unit_name=unit_name,
            role=desired_role,
            state=LinkState.ERROR,
            can_apply=True,
            reason=REASON_NOT_LINKED,
            elapsed_ms=elapsed_ms,
        )

    async def _finish(self, unit_name: str, result: VerificationResult) -> None:
        self._outcomes[result.state.value] += 1

        if self.history is not None:
            try:
                await self.history.record(unit_name, result.to_outcome())
            except Exception as e:
                self.logger.warning(
                    f"History record failed for {unit_name}: {e}",
                    extra={"unit_name": unit_name},
                )

        log_verification_result(
            unit_name,
            result.role,
            result.state.value,
            result.can_apply,
            result.elapsed_ms,
            session=self.session,
        )

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self.timeouts.clock() - started) * 1000))

    # =========================
    # Batch verification
    # =========================

    async def verify_batch(
        self,
        units: Sequence[str],
        desired_role: str,
        on_progress: ProgressCallback | None = None,
        deadline: Deadline | None = None,
    ) -> BatchResult:
        """Verify several units sequentially against one scan.

        Linked units are scanned at most once per batch, on the first unit
        missing from the cache; every other unit is classified against that
        snapshot. A failed scan leaves each uncached unit applicable. A
        failing unit is recorded in its own item and the batch goes on;
        only TimeoutExceeded aborts the batch.

        Args:
            units: Unit names to verify
            desired_role: Role the caller intends to apply to each unit
            on_progress: Called with (message, percent) before each unit
            deadline: Optional global budget for the whole batch

        Returns:
            BatchResult with items bucketed by outcome
        """
        batch = BatchResult()
        total = len(units)
        started = self.timeouts.clock()
        snapshot = _ScanSnapshot(self._scan)

        self.logger.info(f"Verifying {total} units for role {desired_role}")

        for index, unit_name in enumerate(units):
            if on_progress is not None:
                on_progress(
                    f"Verifying {unit_name} ({index + 1}/{total})",
                    round(index * 100 / total),
                )

            if index > 0:
                await self.timeouts.pause(self.config.batch_pause_ms)

            try:
                result = await self._verify(unit_name, desired_role, deadline, snapshot.records)
                item = BatchItem(unit_name=unit_name, role=desired_role, result=result)
            except TimeoutExceeded:
                raise
            except Exception as e:
                self.logger.error(
                    f"Verification of {unit_name} failed: {e}",
                    extra={"unit_name": unit_name},
                )
                item = BatchItem(
                    unit_name=unit_name,
                    role=desired_role,
                    result=self._fail_open(unit_name, desired_role),
                    error=str(e) or type(e).__name__,
                )

            batch.add(item)
            log_batch_progress(index + 1, total, len(batch.to_link), session=self.session)

        if on_progress is not None:
            on_progress("Verification complete", 100)

        batch.elapsed_ms = self._elapsed_ms(started)
        self.logger.info(
            f"Batch verified: {len(batch.matched_correct)} already linked, "
            f"{len(batch.matched_different_role)} with another role, "
            f"{len(batch.to_link)} to link",
            extra=batch.stats(),
        )
        return batch

    # =========================
    # Cache management
    # =========================

    def mark_linked(self, unit_name: str, role: str) -> VerificationResult:
        """Record a link the caller has just performed."""
        self.cache.invalidate_unit(unit_name)
        result = VerificationResult(
            unit_name=unit_name,
            role=role,
            state=LinkState.FOUND_ROLE_MATCH,
            already_linked=True,
            role_matches=True,
            existing_role=role,
            matched_unit=unit_name,
            can_apply=False,
            reason="linked in this session",
        )
        self.cache.put(self.cache.key(unit_name, role), result)
        return result

    def clear_cache(self) -> None:
        self.cache.clear()

    def report(self) -> dict[str, Any]:
        """Verification statistics for this session."""
        scanned = sum(self._outcomes.values())
        linked = (
            self._outcomes[LinkState.FOUND_ROLE_MATCH.value]
            + self._outcomes[LinkState.FOUND_ROLE_MISMATCH.value]
        )
        return {
            "total": self._calls,
            "scanned": scanned,
            "cache_hits": self.cache.hits,
            "outcomes": dict(self._outcomes),
            "reuse_rate": round(linked / scanned, 3) if scanned else 0.0,
        }
