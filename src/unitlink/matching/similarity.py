"""Multi-metric similarity between two free-text names.

Metrics:
1. Exact match of the normalized texts
2. Token coverage in both directions
3. Jaccard index over the token sets
4. Normalized Levenshtein similarity (RapidFuzz)

The combined score is 1.0 on exact match, otherwise a weighted sum of the
best coverage, Jaccard and edit similarity.
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from rapidfuzz.distance import Levenshtein

from .canonical import Canonicalizer, TokenSet


class ScoreWeights(BaseModel):
    """Weights of the combined score; they should sum to 1."""

    coverage: float = 0.4
    jaccard: float = 0.3
    edit: float = 0.3


class SimilarityResult(BaseModel):
    """Similarity metrics for a pair of texts."""

    model_config = ConfigDict(frozen=True)

    exact_match: bool
    coverage_a_to_b: float = Field(ge=0.0, le=1.0)
    coverage_b_to_a: float = Field(ge=0.0, le=1.0)
    jaccard: float = Field(ge=0.0, le=1.0)
    edit_similarity: float = Field(ge=0.0, le=1.0)
    combined_score: float = Field(ge=0.0, le=1.0)
    tokens_a: TokenSet = ()
    tokens_b: TokenSet = ()

    @model_validator(mode="after")
    def _exact_match_scores_one(self) -> "SimilarityResult":
        if self.exact_match and self.combined_score != 1.0:
            raise ValueError("exact_match requires combined_score == 1.0")
        return self

    @property
    def max_coverage(self) -> float:
        return max(self.coverage_a_to_b, self.coverage_b_to_a)


def coverage(tokens_a: TokenSet, tokens_b: TokenSet) -> float:
    """Share of tokens_a that also appear in tokens_b."""
    if not tokens_a:
        return 0.0
    in_b = set(tokens_b)
    return sum(1 for t in tokens_a if t in in_b) / len(tokens_a)


def jaccard(tokens_a: TokenSet, tokens_b: TokenSet) -> float:
    """Jaccard index of two token sets (0 when both are empty)."""
    set_a, set_b = set(tokens_a), set(tokens_b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


class SimilarityScorer:
    """Computes SimilarityResult for pairs of raw texts."""

    def __init__(
        self,
        canonicalizer: Canonicalizer | None = None,
        weights: ScoreWeights | None = None,
    ):
        self.canonicalizer = canonicalizer or Canonicalizer()
        self.weights = weights or ScoreWeights()

    def score(self, a: str, b: str) -> SimilarityResult:
        """Score two raw texts.

        Args:
            a: First text (typically the target)
            b: Second text (typically a candidate)

        Returns:
            SimilarityResult; all zeros when either side normalizes to empty
        """
        norm_a = self.canonicalizer.normalize(a)
        norm_b = self.canonicalizer.normalize(b)

        if not norm_a or not norm_b:
            return SimilarityResult(
                exact_match=False,
                coverage_a_to_b=0.0,
                coverage_b_to_a=0.0,
                jaccard=0.0,
                edit_similarity=0.0,
                combined_score=0.0,
            )

        tokens_a = self.canonicalizer.tokenize(a)
        tokens_b = self.canonicalizer.tokenize(b)

        exact = norm_a == norm_b
        cov_ab = coverage(tokens_a, tokens_b)
        cov_ba = coverage(tokens_b, tokens_a)
        jac = jaccard(tokens_a, tokens_b)
        edit = Levenshtein.normalized_similarity(norm_a, norm_b)

        if exact:
            combined = 1.0
        else:
            combined = (
                self.weights.coverage * max(cov_ab, cov_ba)
                + self.weights.jaccard * jac
                + self.weights.edit * edit
            )
            combined = min(max(combined, 0.0), 1.0)

        return SimilarityResult(
            exact_match=exact,
            coverage_a_to_b=cov_ab,
            coverage_b_to_a=cov_ba,
            jaccard=jac,
            edit_similarity=edit,
            combined_score=combined,
            tokens_a=tokens_a,
            tokens_b=tokens_b,
        )
