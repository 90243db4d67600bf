"""Link-state verification with a session-scoped cache."""

from .cache import LinkStateCache
from .models import (
    BatchItem,
    BatchResult,
    CacheKey,
    LinkRecord,
    LinkState,
    VerificationResult,
)
from .roles import RoleExtractor
from .verifier import LinkStateVerifier, VerifierConfig

__all__ = [
    "LinkStateCache",
    "BatchItem",
    "BatchResult",
    "CacheKey",
    "LinkRecord",
    "LinkState",
    "VerificationResult",
    "RoleExtractor",
    "LinkStateVerifier",
    "VerifierConfig",
]
