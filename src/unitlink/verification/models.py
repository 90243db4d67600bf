"""Data models for link-state verification."""

from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..matching.canonical import normalize_text


class LinkState(str, Enum):
    """States of a verification.

    NOT_CHECKED -> SCANNING -> {FOUND_ROLE_MATCH, FOUND_ROLE_MISMATCH,
    NOT_FOUND} -> CACHED. ERROR is reachable from SCANNING and is never
    cached. Results carry one of the terminal states or ERROR.
    """

    NOT_CHECKED = "not_checked"
    SCANNING = "scanning"
    FOUND_ROLE_MATCH = "found_role_match"
    FOUND_ROLE_MISMATCH = "found_role_mismatch"
    NOT_FOUND = "not_found"
    CACHED = "cached"
    ERROR = "error"


class CacheKey(NamedTuple):
    """Normalized (unit, role) pair."""

    unit: str
    role: str


class LinkRecord(BaseModel):
    """One unit/role association read from the external surface.

    source_ref points back at the on-screen element the record came from;
    the record never owns it and it is excluded from serialization.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    unit_name_raw: str
    unit_name_normalized: str = ""
    role_raw: str | None = None
    role_normalized: str = ""
    row_text: str | None = None
    source_ref: Any = Field(default=None, exclude=True, repr=False)

    @model_validator(mode="after")
    def _fill_normalized(self) -> "LinkRecord":
        if not self.unit_name_normalized:
            self.unit_name_normalized = normalize_text(self.unit_name_raw)
        if not self.role_normalized and self.role_raw:
            self.role_normalized = normalize_text(self.role_raw)
        return self


class VerificationResult(BaseModel):
    """Classification of a (unit, role) pair.

    Frozen: cached results are handed out as the same object.
    """

    model_config = ConfigDict(frozen=True)

    unit_name: str
    role: str
    state: LinkState
    already_linked: bool = False
    role_matches: bool = False
    existing_role: str | None = None
    matched_unit: str | None = None
    can_apply: bool = True
    reason: str = ""
    elapsed_ms: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_invariants(self) -> "VerificationResult":
        if self.role_matches and not self.already_linked:
            raise ValueError("role_matches requires already_linked")
        if not self.already_linked and not self.can_apply:
            raise ValueError("an unlinked unit must be applicable")
        return self

    def to_outcome(self) -> dict[str, Any]:
        """JSON-serializable form for history stores."""
        return self.model_dump(mode="json")


class BatchItem(BaseModel):
    """Per-unit entry of a batch verification."""

    unit_name: str
    role: str
    result: VerificationResult
    error: str | None = None


class BatchResult(BaseModel):
    """Aggregated outcome of verify_batch."""

    items: list[BatchItem] = Field(default_factory=list)
    matched_correct: list[BatchItem] = Field(default_factory=list)
    matched_different_role: list[BatchItem] = Field(default_factory=list)
    to_link: list[BatchItem] = Field(default_factory=list)
    errors: list[BatchItem] = Field(default_factory=list)
    elapsed_ms: int = 0

    @property
    def total(self) -> int:
        return len(self.items)

    def add(self, item: BatchItem) -> None:
        """Append an item to the matching bucket."""
        self.items.append(item)
        if item.error:
            self.errors.append(item)

        result = item.result
        if result.already_linked and result.role_matches:
            self.matched_correct.append(item)
        elif result.already_linked:
            self.matched_different_role.append(item)
        else:
            self.to_link.append(item)

    def units_to_link(self) -> list[str]:
        """Units the caller should act on (unlinked or linked with another role)."""
        return [
            item.unit_name
            for item in self.items
            if item.result.can_apply
        ]

    def stats(self) -> dict[str, int]:
        return {
            "total": self.total,
            "matched_correct": len(self.matched_correct),
            "matched_different_role": len(self.matched_different_role),
            "to_link": len(self.to_link),
            "errors": len(self.errors),
            "elapsed_ms": self.elapsed_ms,
        }
