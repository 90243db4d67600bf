"""Error taxonomy for unitlink.

Verification-path errors are absorbed into conservative results by the
verifier; resolution-path errors and deadline overruns propagate to the caller.
"""

from typing import Any


class UnitLinkError(Exception):
    """Base error carrying a diagnostics dict."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AmbiguousMatch(UnitLinkError):
    """Two or more candidates are statistically indistinguishable."""

    def __init__(self, target: str, candidates: list[str], scores: list[float]):
        options = " | ".join(candidates)
        super().__init__(
            f'Multiple options match "{target}": {options}',
            details={"target": target, "candidates": candidates, "scores": scores},
        )
        self.target = target
        self.candidates = candidates
        self.scores = scores


class ScanFailure(UnitLinkError):
    """The scan collaborator could not enumerate linked units."""

    def __init__(self, reason: str):
        super().__init__(f"Scan failed: {reason}", details={"reason": reason})
        self.reason = reason


class ResolverExhausted(UnitLinkError):
    """Every locator tier failed for a target kind."""

    def __init__(self, target_kind: str, attempted: list[str], attempts: int = 1):
        super().__init__(
            f"Could not resolve '{target_kind}' after {attempts} attempt(s); "
            f"{len(attempted)} pattern(s) tried",
            details={
                "target_kind": target_kind,
                "attempted": attempted,
                "attempts": attempts,
            },
        )
        self.target_kind = target_kind
        self.attempted = attempted
        self.attempts = attempts


class TimeoutExceeded(UnitLinkError):
    """A global deadline elapsed mid-operation."""

    def __init__(self, operation: str, budget_ms: int, elapsed_ms: int):
        super().__init__(
            f"{operation} exceeded its {budget_ms}ms budget ({elapsed_ms}ms elapsed)",
            details={
                "operation": operation,
                "budget_ms": budget_ms,
                "elapsed_ms": elapsed_ms,
            },
        )
        self.operation = operation
        self.budget_ms = budget_ms
        self.elapsed_ms = elapsed_ms
