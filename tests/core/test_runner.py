"""
Tests for AgentRunner: retry bounds, backoff schedule, timeouts, persistence
failures and counter attribution.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from alert_intelligence.core.agent import DetectionContext
from alert_intelligence.core.enums import ActivityType, ExecutionOutcome
from alert_intelligence.core.runner import AgentRunner
from alert_intelligence.policy.retry_policy import LinearBackoffPolicy
from alert_intelligence.utils.error_handling import AlertIntelligenceError, StoreError
from tests.conftest import (
    FailingAgent,
    FlakyAgent,
    RecordingSleep,
    SlowAgent,
    StaticAgent,
    make_candidate,
    seed_agents,
)


class FatalDetectionError(AlertIntelligenceError):
    fatal = True


class SyncAgent:
    agent_id = "performance"
    name = "Sync"

    def detect(self, context):
        return [
            {
                "category": "performance",
                "priority": "medium",
                "title": "Load factor below forecast on LGW-AMS",
                "description": "Load factor trailing forecast by 12 points.",
                "confidence": 0.8,
                "route": "LGW-AMS",
            }
        ]


@pytest.mark.asyncio
async def test_successful_run_persists_alerts_and_updates_counters(store, runner):
    await seed_agents(store)
    agent = StaticAgent("competitive", [make_candidate()])

    result = await runner.run(agent)

    assert result.succeeded
    assert result.record.attempts == 1
    assert result.record.alerts_emitted == 1
    assert len(await store.list_recent()) == 1

    record = await store.get_agent("competitive")
    assert record.total_analyses == 1
    assert record.alerts_generated == 1
    assert record.last_active is not None

    activities = await store.list_activities()
    assert [a.type for a in activities] == [ActivityType.ALERT]
    assert activities[0].metadata["alert_id"] == result.alerts[0].id


@pytest.mark.asyncio
async def test_always_failing_agent_stops_after_max_attempts(store, runner):
    await seed_agents(store)
    agent = FailingAgent("competitive")

    result = await runner.run(agent)

    assert agent.calls == 3
    assert result.record.outcome == ExecutionOutcome.FAILED
    assert result.record.attempts == 3
    assert result.record.error_category == "network"
    assert "unreachable" in result.record.last_error
    assert await store.list_recent() == []


@pytest.mark.asyncio
async def test_each_invocation_records_exactly_one_execution(store, runner):
    await seed_agents(store)
    agent = FailingAgent("competitive")

    for _ in range(4):
        await runner.run(agent)

    executions = await store.list_executions(agent_id="competitive")
    assert len(executions) == 4
    assert all(e.is_finalized for e in executions)
    assert (await store.get_agent("competitive")).total_analyses == 4


@pytest.mark.asyncio
async def test_backoff_is_linear(runner, fake_sleep):
    await runner.run(FailingAgent("competitive"))
    assert fake_sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_flaky_agent_recovers_within_budget(store, runner, fake_sleep):
    await seed_agents(store)
    agent = FlakyAgent("competitive", failures=2, candidates=[make_candidate()])

    result = await runner.run(agent)

    assert result.succeeded
    assert result.record.attempts == 3
    assert result.record.last_error is None
    assert len(result.alerts) == 1
    assert fake_sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_fatal_error_is_not_retried(runner, fake_sleep):
    agent = FailingAgent("competitive", error=FatalDetectionError("bad configuration"))

    result = await runner.run(agent)

    assert agent.calls == 1
    assert result.record.attempts == 1
    assert result.record.outcome == ExecutionOutcome.FAILED
    assert fake_sleep.delays == []


@pytest.mark.asyncio
async def test_zero_retries_means_single_attempt(store, deduplicator, fake_sleep):
    runner = AgentRunner(store, deduplicator, retry_policy=LinearBackoffPolicy(max_retries=0), sleep=fake_sleep)
    agent = FailingAgent("competitive")

    result = await runner.run(agent)

    assert agent.calls == 1
    assert result.record.attempts == 1


@pytest.mark.asyncio
async def test_slow_attempts_time_out(store, deduplicator, fake_sleep):
    runner = AgentRunner(
        store,
        deduplicator,
        retry_policy=LinearBackoffPolicy(max_retries=1, base_delay=0.0),
        attempt_timeout_seconds=0.05,
        sleep=fake_sleep,
    )
    agent = SlowAgent("network", delay=5.0, candidates=[make_candidate()])

    result = await runner.run(agent)

    assert result.record.outcome == ExecutionOutcome.TIMED_OUT
    assert result.record.attempts == 2
    assert result.record.error_category == "timeout"
    assert not agent.completed
    assert await store.list_recent() == []


@pytest.mark.asyncio
async def test_persistence_failure_fails_the_run(store, runner):
    await seed_agents(store)
    store.create = AsyncMock(side_effect=StoreError("disk full"))
    agent = StaticAgent("competitive", [make_candidate()])

    result = await runner.run(agent)

    assert agent.calls == 1
    assert result.record.outcome == ExecutionOutcome.FAILED
    assert result.record.attempts == 1
    assert result.record.alerts_emitted == 0
    assert result.record.error_category == "store"
    assert len(await store.list_executions()) == 1


@pytest.mark.asyncio
async def test_activity_failure_keeps_stored_alert_accounted(store, runner):
    await seed_agents(store)
    store.append_activity = AsyncMock(side_effect=StoreError("activity log full"))
    agent = StaticAgent("competitive", [make_candidate()])

    result = await runner.run(agent)

    stored = await store.list_recent()
    assert len(stored) == 1
    assert [a.id for a in result.alerts] == [stored[0].id]
    assert result.record.alerts_emitted == 1
    assert result.record.outcome == ExecutionOutcome.FAILED
    assert result.record.error_category == "store"
    assert (await store.get_agent("competitive")).alerts_generated == 1


@pytest.mark.asyncio
async def test_duplicate_candidates_are_counted_not_persisted(store, runner):
    await seed_agents(store)
    agent = StaticAgent("competitive", [make_candidate()])

    first = await runner.run(agent)
    second = await runner.run(agent)

    assert first.record.alerts_emitted == 1
    assert second.succeeded
    assert second.record.alerts_emitted == 0
    assert second.record.duplicates_suppressed == 1
    assert len(await store.list_recent()) == 1


@pytest.mark.asyncio
async def test_sync_detector_runs_in_worker_thread(store, runner):
    await seed_agents(store)

    result = await runner.run(SyncAgent())

    assert result.succeeded
    assert result.alerts[0].route == "LGW-AMS"
    assert result.alerts[0].confidence == 0.8


@pytest.mark.asyncio
async def test_invalid_candidate_counts_as_failed_attempt(runner):
    class BadAgent:
        agent_id = "competitive"
        name = "Bad"

        async def detect(self, context):
            return [{"category": "competitive", "priority": "high", "title": "x",
                     "description": "y", "confidence": 3.0}]

    result = await runner.run(BadAgent())

    assert result.record.outcome == ExecutionOutcome.FAILED
    assert result.record.attempts == 3
    assert result.record.error_category == "validation"


@pytest.mark.asyncio
async def test_scenario_alerts_credit_their_source_agent(store, runner):
    await seed_agents(store)
    candidate = make_candidate(agent_id="performance", category="performance",
                               title="Demand surge on LGW-AMS")
    generator = StaticAgent("scenario:demand", [candidate])

    result = await runner.run(generator)

    assert result.succeeded
    assert result.alerts[0].agent_id == "performance"
    assert (await store.get_agent("performance")).alerts_generated == 1
    assert (await store.get_agent("performance")).total_analyses == 0
    assert result.record.agent_id == "scenario:demand"


@pytest.mark.asyncio
async def test_unknown_agent_record_still_completes(store, runner):
    result = await runner.run(StaticAgent("unregistered", [make_candidate()]))

    assert result.succeeded
    assert result.alerts[0].agent_id == "unregistered"


@pytest.mark.asyncio
async def test_cycle_id_is_stamped_on_record(runner):
    context = DetectionContext(agent_id="competitive", cycle_id="cycle-42")

    result = await runner.run(StaticAgent("competitive"), context)

    assert result.record.cycle_id == "cycle-42"


@pytest.mark.asyncio
async def test_cancellation_propagates(store, deduplicator):
    runner = AgentRunner(store, deduplicator, attempt_timeout_seconds=None, sleep=RecordingSleep())
    agent = SlowAgent("network", delay=10.0)

    task = asyncio.create_task(runner.run(agent))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert await store.list_executions() == []


@pytest.mark.asyncio
async def test_metrics_are_reported(store, deduplicator, fake_sleep):
    metrics = MagicMock()
    runner = AgentRunner(store, deduplicator, metrics=metrics, sleep=fake_sleep)

    await runner.run(StaticAgent("competitive", [make_candidate()]))

    metrics.record_alert.assert_called_once_with("competitive", "competitive", "high")
    assert metrics.record_agent_run.call_args.args[:3] == ("competitive", "completed", 1)
