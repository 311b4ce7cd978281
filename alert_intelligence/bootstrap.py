"""
Composition root: wires store, deduplicator, runner, scheduler and
feedback ledger from a Config.
"""

import logging
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

from alert_intelligence.agents.scenarios import ScenarioCatalogue
from alert_intelligence.config import Config, get_config
from alert_intelligence.coordinators.scheduler import AlertScheduler
from alert_intelligence.core.agent import Agent
from alert_intelligence.core.models import AgentRecord
from alert_intelligence.core.runner import AgentRunner
from alert_intelligence.deduplication.alert_deduplicator import AlertDeduplicator
from alert_intelligence.persistence.store import create_store
from alert_intelligence.policy.dispatch_policy import AccuracyBiasedPolicy, FixedProbabilityPolicy
from alert_intelligence.policy.retry_policy import LinearBackoffPolicy
from alert_intelligence.registry import AgentRegistry, initialize_agents, load_builtin_agents
from alert_intelligence.services.feedback_ledger import FeedbackLedger
from alert_intelligence.services.metrics_service import MetricsService

logger = logging.getLogger(__name__)


@dataclass
class System:
    config: Config
    store: object
    registry: AgentRegistry
    catalogue: ScenarioCatalogue
    deduplicator: AlertDeduplicator
    runner: AgentRunner
    scheduler: AlertScheduler
    feedback_ledger: FeedbackLedger
    metrics: Optional[MetricsService] = None

    async def initialize(self) -> List[AgentRecord]:
        """Check the store and seed the default agent records."""
        await self.store.ping()
        records = await initialize_agents(self.store)
        if self.metrics:
            for record in records:
                self.metrics.set_agent_accuracy(record.id, record.accuracy)
        return records

    def start(self) -> None:
        self.scheduler.start(run_immediately=self.config.scheduler.run_on_start)

    async def shutdown(self, hard: bool = False) -> None:
        await self.scheduler.stop(hard=hard)
        close = getattr(self.store, "close", None)
        if close is not None:
            close()


def build_system(
    config: Optional[Config] = None,
    store=None,
    agents: Optional[Sequence[Agent]] = None,
    rng: Optional[random.Random] = None,
) -> System:
    """
    Build every component from configuration.

    `store`, `agents` and `rng` override the configured collaborators
    (tests inject in-memory stores, stub agents and seeded RNGs).
    """
    config = config or get_config()
    metrics = MetricsService() if config.metrics.enabled else None
    store = store if store is not None else create_store(config.store.backend, config.store.sqlite_path)

    catalogue = ScenarioCatalogue()
    registry = load_builtin_agents()
    roster = list(agents) if agents is not None else registry.create_all(catalogue=catalogue)

    deduplicator = AlertDeduplicator(
        store,
        lookback_hours=config.dedup.lookback_hours,
        max_records=config.dedup.max_records,
        similarity_threshold=config.dedup.similarity_threshold,
        enabled=config.dedup.enabled,
        metrics=metrics,
    )
    runner = AgentRunner(
        store,
        deduplicator,
        retry_policy=LinearBackoffPolicy(
            max_retries=config.runner.max_retries,
            base_delay=config.runner.base_delay_seconds,
        ),
        attempt_timeout_seconds=config.runner.attempt_timeout_seconds,
        metrics=metrics,
    )

    scheduler_config = config.scheduler
    if scheduler_config.accuracy_bias:
        dispatch_policy = AccuracyBiasedPolicy(
            scheduler_config.dispatch_probabilities,
            default_probability=scheduler_config.default_probability,
            bias_floor=scheduler_config.bias_floor,
        )
    else:
        dispatch_policy = FixedProbabilityPolicy(
            scheduler_config.dispatch_probabilities,
            default_probability=scheduler_config.default_probability,
        )
    if rng is None and scheduler_config.seed is not None:
        rng = random.Random(scheduler_config.seed)

    scheduler = AlertScheduler(
        store,
        runner,
        roster,
        dispatch_policy=dispatch_policy,
        catalogue=catalogue,
        interval_minutes=scheduler_config.interval_minutes,
        cycle_timeout_seconds=scheduler_config.cycle_timeout_seconds,
        scenario_probability=scheduler_config.scenario_probability,
        rng=rng,
        metrics=metrics,
        history_size=scheduler_config.history_size,
    )
    feedback_ledger = FeedbackLedger(
        store,
        window_days=config.feedback.window_days,
        positive_rating=config.feedback.positive_rating,
        metrics=metrics,
    )

    logger.info(
        f"System built: store={config.store.backend} agents={[a.agent_id for a in roster]} "
        f"dispatch={dispatch_policy.__class__.__name__}"
    )
    return System(
        config=config,
        store=store,
        registry=registry,
        catalogue=catalogue,
        deduplicator=deduplicator,
        runner=runner,
        scheduler=scheduler,
        feedback_ledger=feedback_ledger,
        metrics=metrics,
    )
