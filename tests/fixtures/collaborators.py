"""Fake collaborators standing in for the browser automation layer."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable

from unitlink.collaborators import EXPANDED_KEY, QueryCollaborator, ScanCollaborator
from unitlink.resolver.locators import LocatorPattern
from unitlink.verification.models import LinkRecord

__all__ = ["FakeClock", "InstantSleep", "FakeScanner", "FakeElement", "FakeQuery"]


class FakeClock:
    """Monotonic clock advanced by hand (seconds)."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InstantSleep:
    """Records requested sleeps and advances an optional FakeClock."""

    def __init__(self, clock: FakeClock | None = None):
        self.clock = clock
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


class FakeScanner(ScanCollaborator):
    """Returns a fixed list of LinkRecords and counts calls."""

    def __init__(
        self,
        records: list[LinkRecord] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ):
        self.records = list(records or [])
        self.error = error
        self.delay = delay
        self.calls = 0

    async def list_candidates(self) -> list[LinkRecord]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.records)


@dataclass(eq=False)
class FakeElement:
    """On-screen element as seen through FakeQuery."""

    text: str
    visible: bool = True
    context: str = ""
    expanded: bool | None = None
    on_act: Callable[["FakeQuery"], None] | None = None


@dataclass
class FakeQuery(QueryCollaborator):
    """Elements keyed by locator strategy_id.

    Strategy ids listed in ``failing`` raise on query, like a closed page.
    """

    elements: dict[str, list[FakeElement]] = field(default_factory=dict)
    failing: set[str] = field(default_factory=set)
    queries: list[str] = field(default_factory=list)
    actions: list[tuple[FakeElement, str]] = field(default_factory=list)

    async def query(self, pattern: LocatorPattern) -> list[Any]:
        self.queries.append(pattern.strategy_id)
        if pattern.strategy_id in self.failing:
            raise RuntimeError("Target page, context or browser has been closed")
        return list(self.elements.get(pattern.strategy_id, []))

    async def is_visible(self, handle: FakeElement, timeout_ms: int) -> bool:
        return handle.visible

    async def text(self, handle: FakeElement) -> str:
        return handle.text

    async def extract_context(self, handle: FakeElement) -> dict[str, Any]:
        context = {"text": handle.text, "context": handle.context}
        if handle.expanded is not None:
            context[EXPANDED_KEY] = handle.expanded
        return context

    async def act(self, handle: FakeElement, action_kind: str) -> None:
        self.actions.append((handle, action_kind))
        if handle.on_act is not None:
            handle.on_act(self)
