"""Reference history stores.

Several sessions may append to the same store concurrently; entries are
never rewritten or read back by the core.
"""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .collaborators import HistoryCollaborator


class InMemoryHistory(HistoryCollaborator):
    """History kept in a list, for development and tests."""

    def __init__(self):
        self.entries: list[dict[str, Any]] = []
        self._lock = asyncio.Lock()

    async def record(self, unit_name: str, outcome: dict[str, Any]) -> None:
        async with self._lock:
            self.entries.append(_entry(unit_name, outcome))


class JsonLinesHistory(HistoryCollaborator):
    """History appended to a JSON-lines file.

    Each entry is written with a single append-mode write, so lines from
    different processes do not interleave.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def record(self, unit_name: str, outcome: dict[str, Any]) -> None:
        line = json.dumps(_entry(unit_name, outcome), default=str, ensure_ascii=False)
        async with self._lock:
            await asyncio.to_thread(self._append, line + "\n")

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(line)

    def read_all(self) -> list[dict[str, Any]]:
        """Load every entry (for external tooling and tests)."""
        if not self.path.exists():
            return []
        with self.path.open(encoding="utf-8") as fh:
            return [json.loads(line) for line in fh if line.strip()]


def _entry(unit_name: str, outcome: dict[str, Any]) -> dict[str, Any]:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "unit_name": unit_name,
        "outcome": outcome,
    }
