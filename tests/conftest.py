"""Shared pytest fixtures for unitlink tests."""

import pytest

from unitlink.config import Settings
from unitlink.matching import Canonicalizer, EquivalenceDecider, SimilarityScorer
from unitlink.resolver.timeouts import TimeoutPolicy

from tests.fixtures import FakeClock, FakeQuery, FakeScanner, InstantSleep, sample_records


@pytest.fixture
def canonicalizer() -> Canonicalizer:
    return Canonicalizer()


@pytest.fixture
def decider(canonicalizer) -> EquivalenceDecider:
    return EquivalenceDecider(scorer=SimilarityScorer(canonicalizer))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep(clock) -> InstantSleep:
    return InstantSleep(clock)


@pytest.fixture
def timeouts(sleep, clock) -> TimeoutPolicy:
    """Timeout policy that never waits on real time."""
    return TimeoutPolicy(sleep=sleep, clock=clock)


@pytest.fixture
def scanner() -> FakeScanner:
    return FakeScanner(sample_records())


@pytest.fixture
def query() -> FakeQuery:
    return FakeQuery()


@pytest.fixture
def settings() -> Settings:
    """Settings independent of the developer's environment."""
    return Settings(_env_file=None, batch_pause_ms=0, expansion_settle_ms=0)
