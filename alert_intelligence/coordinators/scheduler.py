"""
Alert Scheduler - periodic driver of the detector roster.

Each cycle selects agents by per-agent probability, optionally adds a
scenario generator, runs every selection as its own task through the
AgentRunner and joins on all of them. Timer ticks and manual triggers share
one cycle path; a trigger that arrives while a cycle is in flight joins
that cycle instead of starting another.
"""

import asyncio
import dataclasses
import random
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Deque, Dict, List, Mapping, Optional, Sequence, Set

from alert_intelligence.agents.scenarios import ScenarioCatalogue, ScenarioGenerator
from alert_intelligence.core.agent import Agent, DetectionContext
from alert_intelligence.core.enums import AgentStatus, CycleOutcome, SchedulerState, TriggerSource
from alert_intelligence.core.models import AgentRecord, CycleSummary, SchedulerStatus, utcnow
from alert_intelligence.core.runner import AgentRunner, RunResult
from alert_intelligence.policy.dispatch_policy import DispatchPolicy, FixedProbabilityPolicy
from alert_intelligence.utils.error_handling import SchedulerStoppedError
from alert_intelligence.utils.structured_logging import LogContext, StructuredLogger

logger = StructuredLogger(__name__)

SCENARIO_DOUBLE_CHANCE = 0.3


@dataclass(frozen=True)
class CycleHandle:
    """Reference to a started (or joined) cycle."""
    cycle_id: str
    trigger: TriggerSource
    coalesced: bool
    task: "asyncio.Task[CycleSummary]"
    dispatched: asyncio.Event

    async def wait(self) -> CycleSummary:
        """Wait for the cycle to finish without cancelling it if the caller is cancelled."""
        return await asyncio.shield(self.task)


class AlertScheduler:
    """
    Explicit scheduler instance: idle -> running -> idle, and stopped after
    shutdown.

    Runner tasks outlive a cycle that hits its timeout; they are tracked
    and awaited on graceful stop, cancelled on hard stop.
    """

    def __init__(
        self,
        store,
        runner: AgentRunner,
        agents: Sequence[Agent],
        dispatch_policy: Optional[DispatchPolicy] = None,
        catalogue: Optional[ScenarioCatalogue] = None,
        interval_minutes: float = 45.0,
        cycle_timeout_seconds: Optional[float] = 900.0,
        scenario_probability: float = 0.4,
        rng: Optional[random.Random] = None,
        metrics=None,
        clock: Callable[[], datetime] = utcnow,
        history_size: int = 50,
    ):
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")
        if not 0.0 <= scenario_probability <= 1.0:
            raise ValueError("scenario_probability must be within [0, 1]")
        ids = [a.agent_id for a in agents]
        if len(ids) != len(set(ids)):
            raise ValueError(f"duplicate agent ids in roster: {ids}")

        self.store = store
        self.runner = runner
        self.agents: List[Agent] = list(agents)
        self.dispatch_policy = dispatch_policy or FixedProbabilityPolicy()
        self.catalogue = catalogue
        self.interval_minutes = interval_minutes
        # 0 or negative means unbounded, matching SCHEDULER_CYCLE_TIMEOUT_SECONDS
        if cycle_timeout_seconds is not None and cycle_timeout_seconds <= 0:
            cycle_timeout_seconds = None
        self.cycle_timeout_seconds = cycle_timeout_seconds
        self.scenario_probability = scenario_probability
        self.metrics = metrics
        self.clock = clock
        self._rng = rng or random.Random()

        self._timer_task: Optional[asyncio.Task] = None
        self._current: Optional[CycleHandle] = None
        self._inflight: Set[asyncio.Task] = set()
        self._history: Deque[CycleSummary] = deque(maxlen=history_size)
        self._stopped = False
        self._last_run_time: Optional[datetime] = None
        self._next_run_time: Optional[datetime] = None

        if cycle_timeout_seconds is None:
            logger.warning("Cycle timeout disabled: a hung agent can delay the next tick indefinitely")

    # introspection

    @property
    def interval_seconds(self) -> float:
        return self.interval_minutes * 60.0

    @property
    def is_running(self) -> bool:
        return not self._stopped and self._timer_task is not None and not self._timer_task.done()

    @property
    def cycle_in_progress(self) -> bool:
        return self._current is not None and not self._current.task.done()

    @property
    def state(self) -> SchedulerState:
        if self._stopped:
            return SchedulerState.STOPPED
        return SchedulerState.RUNNING if self.cycle_in_progress else SchedulerState.IDLE

    @property
    def history(self) -> List[CycleSummary]:
        return list(self._history)

    @property
    def inflight_runs(self) -> int:
        return len(self._inflight)

    def get_status(self) -> SchedulerStatus:
        next_run = None
        if self.is_running:
            next_run = self._next_run_time
            if next_run is None and self._last_run_time is not None:
                next_run = self._last_run_time + timedelta(minutes=self.interval_minutes)
        return SchedulerStatus(
            is_running=self.is_running,
            state=self.state,
            interval_minutes=self.interval_minutes,
            last_run_time=self._last_run_time,
            next_run_time=next_run,
            cycle_in_progress=self.cycle_in_progress,
            last_cycle_outcome=self._history[-1].outcome if self._history else None,
        )

    # lifecycle

    def start(self, run_immediately: bool = True) -> None:
        """Start the timer; must be called from a running event loop."""
        if self._stopped:
            raise SchedulerStoppedError("Scheduler has been stopped and cannot be restarted")
        if self.is_running:
            logger.warning("Scheduler already running")
            return
        self._timer_task = asyncio.create_task(self._timer_loop(run_immediately), name="alert-scheduler-timer")
        logger.info(
            f"Scheduler started: every {self.interval_minutes} minutes",
            {"agents": [a.agent_id for a in self.agents], "run_immediately": run_immediately},
        )

    async def stop(self, hard: bool = False) -> None:
        """
        Stop dispatching new cycles.

        Graceful stop lets in-flight runners finish persisting; hard stop
        cancels them.
        """
        if self._stopped:
            return
        self._stopped = True
        self._next_run_time = None

        if self._timer_task is not None and not self._timer_task.done():
            self._timer_task.cancel()
            await asyncio.gather(self._timer_task, return_exceptions=True)

        if hard:
            for task in list(self._inflight):
                task.cancel()
        pending = list(self._inflight)
        if self._current is not None:
            pending.append(self._current.task)
        if pending:
            logger.info(f"Waiting for {len(pending)} in-flight task(s)", {"hard": hard})
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Scheduler stopped")

    async def _timer_loop(self, run_immediately: bool) -> None:
        loop = asyncio.get_running_loop()
        next_start = loop.time() if run_immediately else loop.time() + self.interval_seconds
        while not self._stopped:
            delay = next_start - loop.time()
            self._next_run_time = self.clock() + timedelta(seconds=max(delay, 0.0))
            if delay > 0:
                await asyncio.sleep(delay)
            if self._stopped:
                break
            handle = self._start_cycle(TriggerSource.TIMER)
            await handle.wait()
            # Cadence is anchored to scheduled starts; an overrun starts the next cycle at once.
            next_start = max(next_start + self.interval_seconds, loop.time())

    # cycles

    async def trigger_manual_run(self) -> CycleHandle:
        """
        Start a cycle now, or join the one in flight.

        Returns once dispatch has been initiated; await `handle.wait()` for
        the summary.
        """
        handle = self._start_cycle(TriggerSource.MANUAL)
        await handle.dispatched.wait()
        return handle

    async def run_cycle(self, trigger: TriggerSource = TriggerSource.MANUAL) -> CycleSummary:
        """Run (or join) one cycle and wait for its summary."""
        return await self._start_cycle(trigger).wait()

    def _start_cycle(self, trigger: TriggerSource) -> CycleHandle:
        if self._stopped:
            raise SchedulerStoppedError("Scheduler is stopped")
        if self.cycle_in_progress:
            logger.info(f"{trigger.value} trigger joined in-flight cycle {self._current.cycle_id}")
            return dataclasses.replace(self._current, coalesced=True)

        cycle_id = LogContext.new_cycle_id()
        dispatched = asyncio.Event()
        task = asyncio.create_task(self._run_cycle(cycle_id, trigger, dispatched), name=cycle_id)
        self._current = CycleHandle(
            cycle_id=cycle_id,
            trigger=trigger,
            coalesced=False,
            task=task,
            dispatched=dispatched,
        )
        return self._current

    def select_agents(self, records: Mapping[str, AgentRecord]) -> List[Agent]:
        """One independent draw per agent against its dispatch probability."""
        selected = []
        for agent in self.agents:
            record = records.get(agent.agent_id)
            if record is not None and record.status == AgentStatus.DISABLED:
                continue
            if self._rng.random() < self.dispatch_policy.probability(agent.agent_id, record):
                selected.append(agent)
        return selected

    def select_scenarios(self) -> List[ScenarioGenerator]:
        if self.catalogue is None or not len(self.catalogue):
            return []
        if self._rng.random() >= self.scenario_probability:
            return []
        scenario_type = self._rng.choice(self.catalogue.types)
        count = 2 if self._rng.random() < SCENARIO_DOUBLE_CHANCE else 1
        return [ScenarioGenerator(self.catalogue, scenario_type, count)]

    def _dispatch(self, agent: Agent, context: DetectionContext) -> "asyncio.Task[RunResult]":
        task = asyncio.create_task(
            self.runner.run(agent, context),
            name=f"{context.cycle_id}:{agent.agent_id}",
        )
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _run_cycle(self, cycle_id: str, trigger: TriggerSource, dispatched: asyncio.Event) -> CycleSummary:
        token = LogContext.set_cycle_id(cycle_id)
        loop = asyncio.get_running_loop()
        started_at = self.clock()
        started = loop.time()
        master_seed = self._rng.randrange(2 ** 31)
        self._last_run_time = started_at
        summary = CycleSummary(
            cycle_id=cycle_id,
            trigger=trigger,
            started_at=started_at,
            finished_at=started_at,
            master_seed=master_seed,
        )
        try:
            summary = await self._execute_cycle(summary, dispatched)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Cycle {cycle_id} failed", {"error": str(e), "error_type": type(e).__name__})
            summary = summary.model_copy(update={"outcome": CycleOutcome.FAILED, "error": str(e)})
        finally:
            dispatched.set()
            LogContext.reset_cycle_id(token)

        summary = summary.model_copy(update={
            "finished_at": started_at + timedelta(seconds=loop.time() - started),
        })
        self._history.append(summary)
        if self.metrics:
            self.metrics.record_cycle(summary.outcome.value, trigger.value, summary.duration_seconds)
        logger.info(
            f"Cycle {cycle_id} {summary.outcome.value}",
            {
                "trigger": trigger.value,
                "agents": summary.agents_dispatched,
                "scenarios": summary.scenarios_dispatched,
                "alerts_emitted": summary.alerts_emitted,
                "failed_runs": summary.failed_runs,
                "pending_runs": summary.pending_runs,
                "duration_seconds": round(summary.duration_seconds, 3),
            },
        )
        return summary

    async def _execute_cycle(self, summary: CycleSummary, dispatched: asyncio.Event) -> CycleSummary:
        records: Dict[str, AgentRecord] = {r.id: r for r in await self.store.list_agents()}
        agents = self.select_agents(records)
        scenarios = self.select_scenarios()

        tasks: List[asyncio.Task] = []
        for n, agent in enumerate([*agents, *scenarios]):
            context = DetectionContext(
                agent_id=agent.agent_id,
                cycle_id=summary.cycle_id,
                now=summary.started_at,
                rng=random.Random(summary.master_seed + n),
                agent_record=records.get(agent.agent_id),
            )
            tasks.append(self._dispatch(agent, context))
        dispatched.set()
        logger.info(
            f"Dispatched {len(tasks)} run(s)",
            {"agents": [a.agent_id for a in agents], "scenarios": [s.agent_id for s in scenarios]},
        )

        done: Set[asyncio.Task] = set()
        pending: Set[asyncio.Task] = set()
        if tasks:
            done, pending = await asyncio.wait(tasks, timeout=self.cycle_timeout_seconds)

        alerts_emitted = 0
        failed_runs = 0
        for task in done:
            if task.cancelled():
                failed_runs += 1
                continue
            error = task.exception()
            if error is not None:
                failed_runs += 1
                logger.error(f"Runner {task.get_name()} raised", {"error": str(error)})
                continue
            result: RunResult = task.result()
            alerts_emitted += len(result.alerts)
            if not result.succeeded:
                failed_runs += 1

        if pending:
            logger.warning(
                f"Cycle timeout after {self.cycle_timeout_seconds}s; {len(pending)} run(s) still pending",
                {"pending": sorted(t.get_name() for t in pending)},
            )
            outcome = CycleOutcome.TIMED_OUT
        elif failed_runs:
            outcome = CycleOutcome.PARTIAL
        else:
            outcome = CycleOutcome.COMPLETED

        return summary.model_copy(update={
            "agents_dispatched": [a.agent_id for a in agents],
            "scenarios_dispatched": [s.agent_id for s in scenarios],
            "alerts_emitted": alerts_emitted,
            "failed_runs": failed_runs,
            "pending_runs": len(pending),
            "outcome": outcome,
        })
