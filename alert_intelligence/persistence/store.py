"""
Persistence boundary for the alert-generation core.

Alerts, agents, execution records and feedback events are independent
collections related by agent id and alert id; the activity log is a fifth,
append-only collection. Failures are raised as StoreError subclasses and
are never reported as an empty result.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Protocol, runtime_checkable

from alert_intelligence.core.enums import AlertStatus
from alert_intelligence.core.models import (
    Activity,
    AgentRecord,
    Alert,
    AlertFilter,
    ExecutionRecord,
    FeedbackEvent,
)
from alert_intelligence.utils.error_handling import (
    AgentNotFoundError,
    AlertNotFoundError,
    StoreError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

AgentMutator = Callable[[AgentRecord], AgentRecord]


@runtime_checkable
class AlertStore(Protocol):
    """Async store contract consumed by the runner, scheduler and feedback ledger."""

    async def ping(self) -> None: ...

    # alerts
    async def create(self, alert: Alert) -> str: ...
    async def get(self, alert_id: str) -> Optional[Alert]: ...
    async def list_recent(self, alert_filter: Optional[AlertFilter] = None, limit: int = 50) -> List[Alert]: ...
    async def update_status(self, alert_id: str, status: AlertStatus) -> Alert: ...

    # agents
    async def ensure_agent(self, record: AgentRecord) -> AgentRecord: ...
    async def get_agent(self, agent_id: str) -> Optional[AgentRecord]: ...
    async def list_agents(self) -> List[AgentRecord]: ...
    async def update_agent(self, agent_id: str, mutate: AgentMutator) -> AgentRecord: ...

    # execution records
    async def record_execution(self, record: ExecutionRecord) -> None: ...
    async def list_executions(self, agent_id: Optional[str] = None, limit: int = 100) -> List[ExecutionRecord]: ...

    # feedback
    async def add_feedback(self, event: FeedbackEvent) -> None: ...
    async def list_feedback(self, agent_id: str, since: Optional[datetime] = None) -> List[FeedbackEvent]: ...

    # activity log
    async def append_activity(self, activity: Activity) -> None: ...
    async def list_activities(self, limit: int = 50) -> List[Activity]: ...


class InMemoryAlertStore:
    """
    Process-local store. All mutations happen under one asyncio.Lock and
    callers always receive copies, so no caller can mutate stored state.
    """

    def __init__(self):
        self._alerts: Dict[str, Alert] = {}
        self._agents: Dict[str, AgentRecord] = {}
        self._executions: List[ExecutionRecord] = []
        self._feedback: List[FeedbackEvent] = []
        self._activities: List[Activity] = []
        self._lock = asyncio.Lock()
        self.available = True

    def _check_available(self) -> None:
        if not self.available:
            raise StoreUnavailableError("In-memory store marked unavailable")

    async def ping(self) -> None:
        self._check_available()

    async def create(self, alert: Alert) -> str:
        async with self._lock:
            self._check_available()
            if alert.id in self._alerts:
                raise StoreError(f"Alert id already exists: {alert.id}")
            self._alerts[alert.id] = alert.model_copy(deep=True)
            return alert.id

    async def get(self, alert_id: str) -> Optional[Alert]:
        self._check_available()
        alert = self._alerts.get(alert_id)
        return alert.model_copy(deep=True) if alert else None

    async def list_recent(self, alert_filter: Optional[AlertFilter] = None, limit: int = 50) -> List[Alert]:
        self._check_available()
        alert_filter = alert_filter or AlertFilter()
        matching = [a for a in self._alerts.values() if alert_filter.matches(a)]
        matching.sort(key=lambda a: a.created_at, reverse=True)
        return [a.model_copy(deep=True) for a in matching[:limit]]

    async def update_status(self, alert_id: str, status: AlertStatus) -> Alert:
        async with self._lock:
            self._check_available()
            current = self._alerts.get(alert_id)
            if current is None:
                raise AlertNotFoundError(alert_id)
            updated = current.transition_to(status)
            self._alerts[alert_id] = updated
            return updated.model_copy(deep=True)

    async def ensure_agent(self, record: AgentRecord) -> AgentRecord:
        async with self._lock:
            self._check_available()
            existing = self._agents.get(record.id)
            if existing is None:
                self._agents[record.id] = record.model_copy(deep=True)
                existing = self._agents[record.id]
            return existing.model_copy(deep=True)

    async def get_agent(self, agent_id: str) -> Optional[AgentRecord]:
        self._check_available()
        record = self._agents.get(agent_id)
        return record.model_copy(deep=True) if record else None

    async def list_agents(self) -> List[AgentRecord]:
        self._check_available()
        return [r.model_copy(deep=True) for _, r in sorted(self._agents.items())]

    async def update_agent(self, agent_id: str, mutate: AgentMutator) -> AgentRecord:
        async with self._lock:
            self._check_available()
            current = self._agents.get(agent_id)
            if current is None:
                raise AgentNotFoundError(agent_id)
            updated = mutate(current.model_copy(deep=True))
            self._agents[agent_id] = updated
            return updated.model_copy(deep=True)

    async def record_execution(self, record: ExecutionRecord) -> None:
        if not record.is_finalized:
            raise StoreError(f"Execution {record.execution_id} must be finalized before it is recorded")
        async with self._lock:
            self._check_available()
            self._executions.append(record)

    async def list_executions(self, agent_id: Optional[str] = None, limit: int = 100) -> List[ExecutionRecord]:
        self._check_available()
        records = [r for r in self._executions if agent_id is None or r.agent_id == agent_id]
        records.sort(key=lambda r: r.started_at, reverse=True)
        return records[:limit]

    async def add_feedback(self, event: FeedbackEvent) -> None:
        async with self._lock:
            self._check_available()
            self._feedback.append(event)

    async def list_feedback(self, agent_id: str, since: Optional[datetime] = None) -> List[FeedbackEvent]:
        self._check_available()
        return [
            e for e in self._feedback
            if e.agent_id == agent_id and (since is None or e.created_at >= since)
        ]

    async def append_activity(self, activity: Activity) -> None:
        async with self._lock:
            self._check_available()
            self._activities.append(activity.model_copy(deep=True))

    async def list_activities(self, limit: int = 50) -> List[Activity]:
        self._check_available()
        ordered = sorted(self._activities, key=lambda a: a.created_at, reverse=True)
        return [a.model_copy(deep=True) for a in ordered[:limit]]


def create_store(backend: str = "memory", sqlite_path: Optional[str] = None) -> AlertStore:
    """Build the configured store backend."""
    if backend == "memory":
        return InMemoryAlertStore()
    if backend == "sqlite":
        from alert_intelligence.persistence.sqlite_store import SQLiteAlertStore
        return SQLiteAlertStore(sqlite_path or "alert_intelligence.db")
    raise ValueError(f"Unknown store backend: {backend}")
