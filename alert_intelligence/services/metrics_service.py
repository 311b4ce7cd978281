"""
Metrics Service - Prometheus observability for the alert-generation core.
Exposes cycle, agent-run, deduplication and accuracy metrics.
"""

import logging

from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


class MetricsService:
    """
    Handles Prometheus metrics for the alert scheduler.
    """

    # Singleton instance; prometheus collectors can only be registered once.
    _instance = None

    def __new__(cls, *args, **kwargs):
        if not cls._instance:
            cls._instance = super(MetricsService, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        # 1. Cycle Metrics
        self.cycles_total = Counter(
            'alert_scheduler_cycles_total',
            'Scheduler cycles by outcome and trigger',
            ['outcome', 'trigger']
        )
        self.cycle_duration = Histogram(
            'alert_scheduler_cycle_duration_seconds',
            'Wall-clock duration of a scheduler cycle',
            buckets=[0.1, 0.5, 1, 5, 15, 60, 300, 900]
        )

        # 2. Agent Run Metrics
        self.agent_runs_total = Counter(
            'alert_agent_runs_total',
            'Agent runner invocations by outcome',
            ['agent_id', 'outcome']
        )
        self.agent_run_attempts = Histogram(
            'alert_agent_run_attempts',
            'Detection attempts per agent run',
            ['agent_id'],
            buckets=[1, 2, 3, 4, 5]
        )
        self.agent_run_duration = Histogram(
            'alert_agent_run_duration_seconds',
            'Agent runner latency',
            ['agent_id']
        )

        # 3. Alert Metrics
        self.alerts_persisted_total = Counter(
            'alert_alerts_persisted_total',
            'Alerts persisted after deduplication',
            ['agent_id', 'category', 'priority']
        )
        self.deduplication_events = Counter(
            'alert_deduplication_total',
            'Deduplication decisions',
            ['action']  # new, skip_duplicate
        )

        # 4. Feedback Metrics
        self.feedback_total = Counter(
            'alert_feedback_total',
            'Feedback events accepted',
            ['agent_id', 'sentiment']  # positive, negative
        )
        self.agent_accuracy = Gauge(
            'alert_agent_accuracy_percent',
            'Rolling agent accuracy',
            ['agent_id']
        )

        self._initialized = True
        logger.info("[METRICS] Initialized Prometheus metrics")

    def record_cycle(self, outcome: str, trigger: str, duration: float):
        self.cycles_total.labels(outcome=outcome, trigger=trigger).inc()
        self.cycle_duration.observe(duration)

    def record_agent_run(self, agent_id: str, outcome: str, attempts: int, duration: float):
        self.agent_runs_total.labels(agent_id=agent_id, outcome=outcome).inc()
        self.agent_run_attempts.labels(agent_id=agent_id).observe(attempts)
        self.agent_run_duration.labels(agent_id=agent_id).observe(duration)

    def record_alert(self, agent_id: str, category: str, priority: str):
        self.alerts_persisted_total.labels(agent_id=agent_id, category=category, priority=priority).inc()

    def record_dedup(self, action: str):
        self.deduplication_events.labels(action=action).inc()

    def record_feedback(self, agent_id: str, positive: bool):
        self.feedback_total.labels(agent_id=agent_id, sentiment="positive" if positive else "negative").inc()

    def set_agent_accuracy(self, agent_id: str, accuracy: float):
        self.agent_accuracy.labels(agent_id=agent_id).set(accuracy)
