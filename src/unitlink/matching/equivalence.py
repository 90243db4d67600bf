"""Equivalence decisions over similarity metrics.

A single metric is brittle against abbreviation-heavy names and against
near-duplicate but distinct names, so a pair is equivalent when any of
several criteria holds:

1. Exact normalized match
2. Both token coverages reach the dual coverage floor
3. Combined score reaches the threshold
4. High Jaccard together with high one-way coverage
5. Containment: a short name occurs whole-word inside the longer one

Two vetoes apply before criteria 2-5: empty names never match, and names
that mention different numbers ("1ª" / "2ª Vara") never match.

Choosing among several candidates never falls back to an arbitrary
tie-break: indistinguishable candidates raise AmbiguousMatch.
"""

import re
from typing import Any, Callable, Sequence, TypeVar

from pydantic import BaseModel, Field

from ..config import Settings
from ..errors import AmbiguousMatch
from ..logging import get_context_logger
from .canonical import Canonicalizer
from .similarity import SimilarityResult, SimilarityScorer

logger = get_context_logger(__name__)

C = TypeVar("C")

# Normalized spellings; each set is one family of interchangeable roles.
ROLE_FAMILIES: list[frozenset[str]] = [
    frozenset({"secretario", "secretaria", "secretario de audiencia"}),
    frozenset({"assessor", "assessora"}),
    frozenset({"analista", "analista judiciario"}),
    frozenset({"tecnico", "tecnico judiciario"}),
]


class EquivalenceThresholds(BaseModel):
    """Named, overridable thresholds for equivalence decisions."""

    threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    dual_coverage_floor: float = Field(default=0.95, ge=0.0, le=1.0)
    jaccard_floor: float = Field(default=0.85, ge=0.0, le=1.0)
    jaccard_coverage_floor: float = Field(default=0.90, ge=0.0, le=1.0)
    ambiguity_margin: float = Field(default=0.95, ge=0.0, le=1.0)
    role_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    containment_min_length: int = Field(default=5, ge=1)
    containment_max_tokens: int = Field(default=1, ge=0)
    numeral_guard: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "EquivalenceThresholds":
        return cls(
            threshold=settings.equivalence_threshold,
            dual_coverage_floor=settings.dual_coverage_floor,
            jaccard_floor=settings.jaccard_floor,
            jaccard_coverage_floor=settings.jaccard_coverage_floor,
            ambiguity_margin=settings.ambiguity_margin,
            role_threshold=settings.role_threshold,
            containment_min_length=settings.containment_min_length,
            containment_max_tokens=settings.containment_max_tokens,
            numeral_guard=settings.numeral_guard,
        )


class EquivalenceVerdict(BaseModel):
    """Outcome of comparing a target against one or more candidates."""

    equivalent: bool
    score: float = Field(ge=0.0, le=1.0)
    best: str | None = None
    ambiguous_with: list[str] = Field(default_factory=list)

    @property
    def is_ambiguous(self) -> bool:
        return bool(self.ambiguous_with)


class EquivalenceDecider:
    """Turns similarity metrics into equivalence verdicts.

    Args:
        scorer: Similarity scorer (shares the session's Canonicalizer)
        thresholds: Decision thresholds
    """

    def __init__(
        self,
        scorer: SimilarityScorer | None = None,
        thresholds: EquivalenceThresholds | None = None,
    ):
        self.scorer = scorer or SimilarityScorer()
        self.thresholds = thresholds or EquivalenceThresholds()

    @property
    def canonicalizer(self) -> Canonicalizer:
        return self.scorer.canonicalizer

    def score(self, a: str, b: str) -> SimilarityResult:
        return self.scorer.score(a, b)

    def equivalent(self, a: str, b: str, threshold: float | None = None) -> bool:
        """Check whether two texts denote the same entity."""
        return self._decide(a, b, self.scorer.score(a, b), threshold)

    def _decide(
        self,
        a: str,
        b: str,
        result: SimilarityResult,
        threshold: float | None = None,
    ) -> bool:
        t = self.thresholds
        limit = t.threshold if threshold is None else threshold

        if result.exact_match:
            return True

        norm_a = self.canonicalizer.normalize(a)
        norm_b = self.canonicalizer.normalize(b)
        if not norm_a or not norm_b:
            return False

        if t.numeral_guard and self._numerals_conflict(a, b):
            return False

        if (
            result.coverage_a_to_b >= t.dual_coverage_floor
            and result.coverage_b_to_a >= t.dual_coverage_floor
        ):
            return True

        if result.combined_score >= limit:
            return True

        if result.jaccard >= t.jaccard_floor and result.max_coverage >= t.jaccard_coverage_floor:
            return True

        return self._contained(norm_a, norm_b, result)

    def _numerals_conflict(self, a: str, b: str) -> bool:
        numbers_a = self.canonicalizer.digit_groups(a)
        numbers_b = self.canonicalizer.digit_groups(b)
        return bool(numbers_a) and bool(numbers_b) and numbers_a != numbers_b

    def _contained(self, norm_a: str, norm_b: str, result: SimilarityResult) -> bool:
        t = self.thresholds
        if len(norm_a) <= len(norm_b):
            shorter, longer = norm_a, norm_b
            tokens, own_coverage = result.tokens_a, result.coverage_a_to_b
        else:
            shorter, longer = norm_b, norm_a
            tokens, own_coverage = result.tokens_b, result.coverage_b_to_a

        if len(shorter) < t.containment_min_length:
            return False
        if not tokens or len(tokens) > t.containment_max_tokens:
            return False
        if own_coverage < 1.0:
            return False

        pattern = rf"(?<![a-z0-9]){re.escape(shorter)}(?![a-z0-9])"
        return re.search(pattern, longer) is not None

    def roles_equivalent(self, a: str | None, b: str | None) -> bool:
        """Compare role texts using the role families, then equivalence."""
        norm_a = self.canonicalizer.normalize(a)
        norm_b = self.canonicalizer.normalize(b)
        if not norm_a or not norm_b:
            return False
        if norm_a == norm_b:
            return True

        for family in ROLE_FAMILIES:
            if norm_a in family and norm_b in family:
                return True

        return self.equivalent(a, b, self.thresholds.role_threshold)

    # =========================
    # Multi-candidate decisions
    # =========================

    def evaluate(
        self,
        target: str,
        candidates: Sequence[str],
        threshold: float | None = None,
    ) -> EquivalenceVerdict:
        """Compare a target against candidates without raising.

        Returns:
            Verdict naming the best candidate, its score, whether it is
            equivalent and which other candidates are indistinguishable
        """
        scored = self._rank(target, list(candidates), key=lambda c: c)
        if not scored:
            return EquivalenceVerdict(equivalent=False, score=0.0)

        best_text, best_result = scored[0][1], scored[0][2]
        ambiguous = self._ambiguous_texts(target, best_text, best_result, scored[1:])

        return EquivalenceVerdict(
            equivalent=self._decide(target, best_text, best_result, threshold),
            score=best_result.combined_score,
            best=best_text,
            ambiguous_with=ambiguous,
        )

    def pick_best(
        self,
        candidates: Sequence[C],
        target: str,
        threshold: float | None = None,
        key: Callable[[C], str] | None = None,
    ) -> C | None:
        """Select the equivalent candidate with the highest combined score.

        Args:
            candidates: Candidate objects (strings unless key is given)
            target: Text to match
            threshold: Override of the combined-score threshold
            key: Extracts the comparable text from a candidate

        Returns:
            The best candidate, or None when it is not equivalent

        Raises:
            AmbiguousMatch: Another candidate scores within the ambiguity
                margin
        """
        get_text = key or (lambda c: c)
        scored = self._rank(target, list(candidates), key=get_text)
        if not scored:
            return None

        best, best_text, best_result = scored[0]
        if not self._decide(target, best_text, best_result, threshold):
            return None

        self._raise_if_ambiguous(target, best_text, best_result, scored[1:])
        return best

    def ambiguity_check(
        self,
        candidates: Sequence[str],
        target: str,
        best: str,
        margin: float | None = None,
    ) -> None:
        """Raise AmbiguousMatch if a rival scores close to the best candidate."""
        best_result = self.scorer.score(target, best)
        others = [
            (c, c, self.scorer.score(target, c))
            for c in candidates
            if c != best
        ]
        self._raise_if_ambiguous(target, best, best_result, others, margin)

    def _raise_if_ambiguous(
        self,
        target: str,
        best_text: str,
        best_result: SimilarityResult,
        others: list[tuple[Any, str, SimilarityResult]],
        margin: float | None = None,
    ) -> None:
        ambiguous = self._ambiguous_texts(target, best_text, best_result, others, margin)
        if not ambiguous:
            return

        by_text = {text: result.combined_score for _, text, result in others}
        options = [best_text, *ambiguous]
        scores = [best_result.combined_score] + [by_text[text] for text in ambiguous]
        logger.warning(
            f'Ambiguous match for "{target}": {" | ".join(options)}',
            extra={"target": target, "candidates": options, "scores": scores},
        )
        raise AmbiguousMatch(target, options, scores)

    def _rank(
        self,
        target: str,
        candidates: list[Any],
        key: Callable[[Any], str],
    ) -> list[tuple[Any, str, SimilarityResult]]:
        scored = []
        for candidate in candidates:
            text = key(candidate)
            scored.append((candidate, text, self.scorer.score(target, text)))
        # Stable sort keeps the first-seen candidate ahead on equal scores.
        scored.sort(key=lambda item: item[2].combined_score, reverse=True)
        return scored

    def _ambiguous_texts(
        self,
        target: str,
        best_text: str,
        best_result: SimilarityResult,
        others: list[tuple[Any, str, SimilarityResult]],
        margin: float | None = None,
    ) -> list[str]:
        factor = self.thresholds.ambiguity_margin if margin is None else margin
        best_norm = self.canonicalizer.normalize(best_text)
        floor = best_result.combined_score * factor

        ambiguous: list[str] = []
        seen = {best_norm}
        for _, text, result in others:
            norm = self.canonicalizer.normalize(text)
            # Repeats of the best text are the same entity, not a rival.
            if norm in seen:
                continue
            if result.combined_score < floor or result.combined_score == 0.0:
                continue
            # A differing unit number rules the rival out ("2ª Vara" never rivals "1ª Vara").
            if self.thresholds.numeral_guard and self._numerals_conflict(target, text):
                continue
            seen.add(norm)
            ambiguous.append(text)
        return ambiguous
