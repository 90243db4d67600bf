"""unitlink - identity resolution and link verification for court units.

Decides whether a free-text unit name denotes an entity already linked to a
subject, with which role, and locates the controls needed to act on it.
"""

from .errors import (
    AmbiguousMatch,
    ResolverExhausted,
    ScanFailure,
    TimeoutExceeded,
    UnitLinkError,
)
from .session import LinkSession

__version__ = "0.1.0"

__all__ = [
    "AmbiguousMatch",
    "ResolverExhausted",
    "ScanFailure",
    "TimeoutExceeded",
    "UnitLinkError",
    "LinkSession",
]
