import asyncio
from typing import List, Optional

import pytest

from alert_intelligence.core.enums import AlertCategory, AlertPriority
from alert_intelligence.core.models import CandidateAlert
from alert_intelligence.core.runner import AgentRunner
from alert_intelligence.deduplication.alert_deduplicator import AlertDeduplicator
from alert_intelligence.persistence.store import InMemoryAlertStore
from alert_intelligence.policy.retry_policy import LinearBackoffPolicy
from alert_intelligence.registry import DEFAULT_AGENT_RECORDS


def make_candidate(**overrides) -> CandidateAlert:
    data = {
        "category": AlertCategory.COMPETITIVE,
        "priority": AlertPriority.HIGH,
        "title": "Ryanair 25% Price Drop - LGW-BCN",
        "description": "Competitor reduced prices by 25% on LGW-BCN.",
        "confidence": 0.9,
        "route": "LGW-BCN",
        "metadata": {"competitor": "Ryanair", "priceChange": -25},
    }
    data.update(overrides)
    return CandidateAlert(**data)


class StaticAgent:
    """Returns the same candidates on every run."""

    def __init__(self, agent_id: str, candidates: Optional[List[CandidateAlert]] = None, name: str = "Static"):
        self.agent_id = agent_id
        self.name = name
        self.candidates = candidates or []
        self.calls = 0

    async def detect(self, context):
        self.calls += 1
        return list(self.candidates)


class FailingAgent:
    """Raises on every attempt."""

    def __init__(self, agent_id: str = "competitive", error: Optional[Exception] = None):
        self.agent_id = agent_id
        self.name = "Failing"
        self.error = error or ConnectionError("analysis backend unreachable")
        self.calls = 0

    async def detect(self, context):
        self.calls += 1
        raise self.error


class FlakyAgent:
    """Fails `failures` times, then returns its candidates."""

    def __init__(self, agent_id: str, failures: int, candidates: List[CandidateAlert]):
        self.agent_id = agent_id
        self.name = "Flaky"
        self.failures = failures
        self.candidates = candidates
        self.calls = 0

    async def detect(self, context):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"transient failure #{self.calls}")
        return list(self.candidates)


class BlockingAgent:
    """Never returns unless cancelled."""

    def __init__(self, agent_id: str = "network"):
        self.agent_id = agent_id
        self.name = "Blocking"
        self.started = asyncio.Event()

    async def detect(self, context):
        self.started.set()
        await asyncio.Event().wait()


class SlowAgent:
    """Returns its candidates after `delay` seconds."""

    def __init__(self, agent_id: str, delay: float, candidates: Optional[List[CandidateAlert]] = None):
        self.agent_id = agent_id
        self.name = "Slow"
        self.delay = delay
        self.candidates = candidates or []
        self.completed = False

    async def detect(self, context):
        await asyncio.sleep(self.delay)
        self.completed = True
        return list(self.candidates)


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


async def seed_agents(store):
    for record in DEFAULT_AGENT_RECORDS:
        await store.ensure_agent(record)


@pytest.fixture
def store():
    return InMemoryAlertStore()


@pytest.fixture
def deduplicator(store):
    return AlertDeduplicator(store)


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


@pytest.fixture
def runner(store, deduplicator, fake_sleep):
    return AgentRunner(
        store,
        deduplicator,
        retry_policy=LinearBackoffPolicy(max_retries=2, base_delay=1.0),
        attempt_timeout_seconds=1.0,
        sleep=fake_sleep,
    )
