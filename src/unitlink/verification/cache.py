"""Session-scoped memo of verification results.

Entries live until explicitly invalidated; there is no TTL. One cache
belongs to one automation session and is never shared.
"""

from ..logging import get_context_logger
from ..matching.canonical import Canonicalizer
from .models import CacheKey, VerificationResult

logger = get_context_logger(__name__)


class LinkStateCache:
    """Map of CacheKey -> VerificationResult with hit/miss counters."""

    def __init__(self, canonicalizer: Canonicalizer | None = None):
        self.canonicalizer = canonicalizer or Canonicalizer()
        self._entries: dict[CacheKey, VerificationResult] = {}
        self.hits = 0
        self.misses = 0

    def key(self, unit_name: str, role: str) -> CacheKey:
        """Build the normalized key for a (unit, role) pair."""
        return CacheKey(
            self.canonicalizer.normalize(unit_name),
            self.canonicalizer.normalize(role),
        )

    def get(self, key: CacheKey) -> VerificationResult | None:
        result = self._entries.get(key)
        if result is None:
            self.misses += 1
        else:
            self.hits += 1
        return result

    def put(self, key: CacheKey, result: VerificationResult) -> None:
        self._entries[key] = result

    def invalidate(self, key: CacheKey) -> bool:
        """Remove one entry. Returns True if it existed."""
        return self._entries.pop(key, None) is not None

    def invalidate_unit(self, unit_name: str) -> int:
        """Remove every entry of a unit, whatever the role."""
        unit = self.canonicalizer.normalize(unit_name)
        stale = [k for k in self._entries if k.unit == unit]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def clear(self) -> None:
        size = len(self._entries)
        self._entries.clear()
        self.hits = 0
        self.misses = 0
        logger.info(f"Verification cache cleared ({size} entries)")

    def stats(self) -> dict[str, int]:
        return {"size": len(self._entries), "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
