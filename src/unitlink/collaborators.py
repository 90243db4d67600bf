"""Interfaces the hosting automation layer implements.

The core never drives the browser itself: it enumerates linked units through
a ScanCollaborator, locates controls through a QueryCollaborator and reports
outcomes to an optional HistoryCollaborator.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .resolver.locators import LocatorPattern
    from .verification.models import LinkRecord

# extract_context key reporting whether a collapsible header is open.
EXPANDED_KEY = "expanded"


class ScanCollaborator(ABC):
    """Enumerates the unit/role associations currently visible."""

    @abstractmethod
    async def list_candidates(self) -> list["LinkRecord"]:
        """Return one LinkRecord per visible linked unit."""
        ...


class QueryCollaborator(ABC):
    """Locates and minimally interacts with on-screen controls."""

    @abstractmethod
    async def query(self, pattern: "LocatorPattern") -> list[Any]:
        """Return element handles matching a locator pattern (may be empty)."""
        ...

    @abstractmethod
    async def is_visible(self, handle: Any, timeout_ms: int) -> bool:
        """Wait up to timeout_ms for the handle to become visible."""
        ...

    @abstractmethod
    async def text(self, handle: Any) -> str:
        """Visible text of the handle."""
        ...

    @abstractmethod
    async def act(self, handle: Any, action_kind: str) -> None:
        """Perform an action such as "click" on the handle."""
        ...

    async def extract_context(self, handle: Any) -> dict[str, Any]:
        """Metadata used to validate a match.

        The default returns the element text; implementations may add
        surrounding text (row, panel, label) under "context" and, for
        collapsible headers, the aria-expanded state under EXPANDED_KEY.
        """
        return {"text": await self.text(handle)}


class HistoryCollaborator(ABC):
    """Append-only store of past outcomes, read by external tooling."""

    @abstractmethod
    async def record(self, unit_name: str, outcome: dict[str, Any]) -> None:
        """Persist a JSON-serializable outcome."""
        ...
