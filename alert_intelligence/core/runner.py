"""
Agent Runner - one detector invocation with bounded retry.

Detection attempts are retried by tenacity under the configured
RetryPolicy; persistence is not retried. Every invocation ends with exactly
one finalized ExecutionRecord, and a failing agent never raises into the
caller (only cancellation propagates).
"""

import asyncio
import inspect
from collections import Counter
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from alert_intelligence.core.agent import Agent, DetectionContext
from alert_intelligence.core.enums import ActivityType, ExecutionOutcome
from alert_intelligence.core.models import Activity, Alert, CandidateAlert, ExecutionRecord
from alert_intelligence.policy.retry_policy import LinearBackoffPolicy, RetryContext, RetryPolicy
from alert_intelligence.utils.error_handling import (
    AgentNotFoundError,
    AgentTimeoutError,
    classify_error,
)
from alert_intelligence.utils.structured_logging import LogContext, StructuredLogger

logger = StructuredLogger(__name__)


@dataclass
class RunResult:
    record: ExecutionRecord
    alerts: List[Alert] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.record.outcome == ExecutionOutcome.COMPLETED


class AgentRunner:
    """
    Executes one Agent with retries, deduplicates and persists its candidates,
    then records counters and the ExecutionRecord.
    """

    def __init__(
        self,
        store,
        deduplicator,
        retry_policy: Optional[RetryPolicy] = None,
        attempt_timeout_seconds: Optional[float] = 60.0,
        metrics=None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.deduplicator = deduplicator
        self.retry_policy = retry_policy or LinearBackoffPolicy()
        self.attempt_timeout_seconds = attempt_timeout_seconds
        self.metrics = metrics
        self._sleep = sleep

    async def _attempt(self, agent: Agent, context: DetectionContext) -> List[CandidateAlert]:
        if inspect.iscoroutinefunction(agent.detect):
            pending = agent.detect(context)
        else:
            pending = asyncio.to_thread(agent.detect, context)
        try:
            result = await asyncio.wait_for(pending, timeout=self.attempt_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise AgentTimeoutError(agent.agent_id, self.attempt_timeout_seconds) from e
        return [
            c if isinstance(c, CandidateAlert) else CandidateAlert.model_validate(c)
            for c in (result or [])
        ]

    def _retry_context(self, agent_id: str, retry_state: RetryCallState) -> RetryContext:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        return RetryContext(
            agent_id=agent_id,
            attempt=retry_state.attempt_number,
            error=error,
            cycle_id=LogContext.get_cycle_id() or None,
        )

    def _retrying(self, agent_id: str) -> AsyncRetrying:
        policy = self.retry_policy

        def should_retry(retry_state: RetryCallState) -> bool:
            if not retry_state.outcome.failed:
                return False
            return policy.should_retry(self._retry_context(agent_id, retry_state))

        def wait(retry_state: RetryCallState) -> float:
            return policy.next_delay(self._retry_context(agent_id, retry_state))

        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            logger.warning(
                f"Detection attempt {retry_state.attempt_number} failed, retrying",
                {
                    "error": str(error),
                    "error_category": classify_error(error),
                    "delay_seconds": retry_state.next_action.sleep if retry_state.next_action else None,
                },
            )

        return AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait,
            retry=should_retry,
            before_sleep=before_sleep,
            sleep=self._sleep,
            reraise=True,
        )

    async def _detect(self, agent: Agent, context: DetectionContext):
        """Returns (candidates, attempts, last_error)."""
        attempts = 0
        try:
            async for attempt in self._retrying(agent.agent_id):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    candidates = await self._attempt(agent, context)
            return candidates, attempts, None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return [], attempts, e

    async def _persist(self, agent: Agent, candidate: CandidateAlert):
        """Returns the stored Alert, or None when the candidate was suppressed."""
        key = self.deduplicator.generate_deduplication_key(agent.agent_id, candidate)
        async with self.deduplicator.guard(key):
            decision = await self.deduplicator.check(agent.agent_id, candidate)
            if not decision.accepted:
                return None
            alert = Alert.from_candidate(candidate, agent.agent_id)
            await self.store.create(alert)
        return alert

    async def _append_alert_activity(self, alert: Alert) -> None:
        await self.store.append_activity(Activity(
            type=ActivityType.ALERT,
            title=f"New {alert.priority.value} alert: {alert.title}",
            description=alert.description,
            agent_id=alert.agent_id,
            metadata={"alert_id": alert.id, "category": alert.category.value},
        ))

    async def _update_counters(self, agent: Agent, alerts: Sequence[Alert]) -> None:
        own = agent.agent_id
        per_agent = Counter(a.agent_id for a in alerts)
        try:
            await self.store.update_agent(own, lambda r: r.record_run(per_agent.pop(own, 0)))
        except AgentNotFoundError:
            per_agent.pop(own, None)
            logger.debug(f"No agent record for '{own}', run counters not tracked")
        for attributed_id, count in per_agent.items():
            try:
                await self.store.update_agent(attributed_id, lambda r, n=count: r.record_alerts(n))
            except AgentNotFoundError:
                logger.debug(f"No agent record for attributed agent '{attributed_id}'")

    async def run(self, agent: Agent, context: Optional[DetectionContext] = None) -> RunResult:
        context = context or DetectionContext(agent_id=agent.agent_id)
        record = ExecutionRecord(agent_id=agent.agent_id, cycle_id=context.cycle_id)
        agent_token = LogContext.set_agent_id(agent.agent_id)
        execution_token = LogContext.set_execution_id(record.execution_id)
        try:
            return await self._run(agent, context, record)
        finally:
            LogContext.reset_execution_id(execution_token)
            LogContext.reset_agent_id(agent_token)

    async def _run(self, agent: Agent, context: DetectionContext, record: ExecutionRecord) -> RunResult:
        candidates, attempts, last_error = await self._detect(agent, context)

        if last_error is not None:
            outcome = (
                ExecutionOutcome.TIMED_OUT
                if isinstance(last_error, AgentTimeoutError)
                else ExecutionOutcome.FAILED
            )
            logger.error(
                f"Agent '{agent.agent_id}' exhausted {attempts} attempt(s)",
                {"error": str(last_error), "error_category": classify_error(last_error)},
            )
        else:
            outcome = ExecutionOutcome.COMPLETED

        persisted: List[Alert] = []
        duplicates = 0
        for candidate in candidates:
            try:
                alert = await self._persist(agent, candidate)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Known gap: the candidate is lost; detection is not re-run for it.
                outcome = ExecutionOutcome.FAILED
                last_error = e
                logger.error(
                    f"Failed to persist alert '{candidate.title}'",
                    {"error": str(e), "error_category": classify_error(e)},
                )
                continue
            if alert is None:
                duplicates += 1
                continue
            persisted.append(alert)
            logger.audit("alert_created", alert.id, "success", {"priority": alert.priority.value})
            if self.metrics:
                self.metrics.record_alert(alert.agent_id, alert.category.value, alert.priority.value)
            try:
                await self._append_alert_activity(alert)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # The alert is stored; only its activity entry is missing.
                outcome = ExecutionOutcome.FAILED
                last_error = e
                logger.error(
                    f"Failed to record activity for alert '{alert.id}'",
                    {"error": str(e), "error_category": classify_error(e)},
                )

        try:
            await self._update_counters(agent, persisted)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            outcome = ExecutionOutcome.FAILED
            last_error = e
            logger.error("Failed to update agent counters", {"error": str(e)})

        record = record.finalize(
            outcome=outcome,
            attempts=attempts,
            alerts_emitted=len(persisted),
            duplicates_suppressed=duplicates,
            last_error=str(last_error) if last_error is not None else None,
            error_category=classify_error(last_error) if last_error is not None else None,
        )
        try:
            await self.store.record_execution(record)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Failed to store execution record", {"error": str(e)})

        if self.metrics:
            self.metrics.record_agent_run(
                agent.agent_id, record.outcome.value, record.attempts, record.latency_seconds or 0.0
            )
        logger.info(
            f"Agent '{agent.agent_id}' finished: {record.outcome.value}",
            {
                "attempts": record.attempts,
                "alerts_emitted": record.alerts_emitted,
                "duplicates_suppressed": record.duplicates_suppressed,
                "latency_seconds": record.latency_seconds,
            },
        )
        return RunResult(record=record, alerts=persisted)
