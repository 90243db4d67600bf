"""Unit tests for the LinkSession facade."""

import json

import pytest

from unitlink import LinkSession
from unitlink.history import InMemoryHistory, JsonLinesHistory
from unitlink.resolver import Tier
from unitlink.verification import LinkState

from tests.fixtures import (
    ASSESSOR,
    SAO_PAULO_1,
    SECRETARIO_AUDIENCIA,
    FakeElement,
    FakeQuery,
    FakeScanner,
    InstantSleep,
    sample_records,
)


@pytest.fixture
def session(scanner, query, settings, sleep, clock) -> LinkSession:
    return LinkSession(scanner, query, settings=settings, name="worker-1", sleep=sleep, clock=clock)


class TestLinkSession:
    """Tests for LinkSession."""

    @pytest.mark.asyncio
    async def test_verify_and_cache_stats(self, session, scanner):
        assert session.get_cache_stats() == {"size": 0, "hits": 0, "misses": 0}

        first = await session.verify(SAO_PAULO_1, SECRETARIO_AUDIENCIA)
        second = await session.verify(SAO_PAULO_1, SECRETARIO_AUDIENCIA)

        assert first.state == LinkState.FOUND_ROLE_MATCH
        assert second is first
        assert scanner.calls == 1
        assert session.get_cache_stats() == {"size": 1, "hits": 1, "misses": 1}

    @pytest.mark.asyncio
    async def test_clear_cache(self, session, scanner):
        await session.verify(SAO_PAULO_1, ASSESSOR)

        session.clear_cache()
        await session.verify(SAO_PAULO_1, ASSESSOR)

        assert scanner.calls == 2
        assert session.get_cache_stats()["size"] == 1

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self, query, settings):
        """Test that parallel sessions never share cached state."""
        first_scanner = FakeScanner(sample_records())
        second_scanner = FakeScanner(sample_records())
        first = LinkSession(first_scanner, query, settings=settings, name="a", sleep=InstantSleep())
        second = LinkSession(second_scanner, query, settings=settings, name="b", sleep=InstantSleep())

        await first.verify(SAO_PAULO_1, ASSESSOR)
        await second.verify(SAO_PAULO_1, ASSESSOR)

        assert first.canonicalizer is not second.canonicalizer
        assert first_scanner.calls == 1
        assert second_scanner.calls == 1
        assert second.get_cache_stats()["hits"] == 0

    @pytest.mark.asyncio
    async def test_shared_history(self, query, settings):
        history = InMemoryHistory()
        sessions = [
            LinkSession(FakeScanner(sample_records()), query, history=history, settings=settings, name=n)
            for n in ("a", "b")
        ]

        for s in sessions:
            await s.verify(SAO_PAULO_1, ASSESSOR)

        assert len(history.entries) == 2

    @pytest.mark.asyncio
    async def test_history_from_settings(self, scanner, query, settings, tmp_path):
        path = tmp_path / "history.jsonl"
        custom = settings.model_copy(update={"history_path": path})
        session = LinkSession(scanner, query, settings=custom)

        await session.verify(SAO_PAULO_1, ASSESSOR)

        entries = JsonLinesHistory(path).read_all()
        assert [e["unit_name"] for e in entries] == [SAO_PAULO_1]

    @pytest.mark.asyncio
    async def test_verify_batch(self, session):
        progress = []

        batch = await session.verify_batch(
            [SAO_PAULO_1, "Vara de Sorocaba"],
            SECRETARIO_AUDIENCIA,
            on_progress=lambda message, percent: progress.append(message),
        )

        assert len(batch.matched_correct) == 1
        assert len(batch.to_link) == 1
        assert progress[-1] == "Verification complete"

    @pytest.mark.asyncio
    async def test_mark_linked(self, session, scanner):
        session.mark_linked("Vara de Sorocaba", ASSESSOR)

        result = await session.verify("Vara de Sorocaba", ASSESSOR)

        assert result.role_matches is True
        assert scanner.calls == 0

    @pytest.mark.asyncio
    async def test_resolve(self, session, query):
        button = FakeElement("Adicionar Órgão Julgador ao Perito")
        query.elements["add-unit-to-expert"] = [button]

        resolved = await session.resolve("addButton")

        assert resolved.handle is button
        assert resolved.tier == Tier.SPECIFIC

    @pytest.mark.asyncio
    async def test_deadline_uses_session_clock(self, session, clock):
        deadline = session.deadline(1000, "link")
        clock.advance(0.25)

        assert deadline.remaining_ms() == 750

    def test_thresholds_from_settings(self, scanner, query, settings):
        custom = settings.model_copy(update={"equivalence_threshold": 0.9, "numeral_guard": False})

        session = LinkSession(scanner, query, settings=custom)

        assert session.decider.thresholds.threshold == 0.9
        assert session.decider.thresholds.numeral_guard is False

    def test_registry_from_locator_file(self, scanner, query, settings, tmp_path):
        path = tmp_path / "locators.json"
        path.write_text(
            json.dumps(
                {"targets": [{"kind": "custom", "tiers": {"specific": [{"strategy_id": "c", "selector": "#c"}]}}]}
            ),
            encoding="utf-8",
        )
        custom = settings.model_copy(update={"locator_config_path": path})

        session = LinkSession(scanner, query, settings=custom)

        assert session.resolver.registry.kinds == ["custom"]

    @pytest.mark.asyncio
    async def test_report(self, session):
        await session.verify(SAO_PAULO_1, SECRETARIO_AUDIENCIA)

        report = session.report()

        assert report["session"] == "worker-1"
        assert report["verification"]["scanned"] == 1
        assert report["cache"]["size"] == 1
        assert report["timeouts"]["profile"] == "normal"
