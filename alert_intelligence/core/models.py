import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from alert_intelligence.utils.error_handling import InvalidStatusTransitionError
from .enums import (
    ActivityType,
    AgentStatus,
    AlertCategory,
    AlertPriority,
    AlertStatus,
    CycleOutcome,
    ExecutionOutcome,
    SchedulerState,
    TriggerSource,
)

MAX_METADATA_KEYS = 64
MAX_METADATA_DEPTH = 4
MAX_METADATA_BYTES = 16_384

_PRIMITIVES = (str, int, float, bool, type(None))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _check_metadata_value(value: Any, depth: int, path: str) -> None:
    if isinstance(value, _PRIMITIVES):
        return
    if depth >= MAX_METADATA_DEPTH:
        raise ValueError(f"metadata nested deeper than {MAX_METADATA_DEPTH} levels at '{path}'")
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValueError(f"metadata keys must be strings (got {type(key).__name__} at '{path}')")
            _check_metadata_value(item, depth + 1, f"{path}.{key}")
        return
    if isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            _check_metadata_value(item, depth + 1, f"{path}[{index}]")
        return
    raise ValueError(f"metadata value at '{path}' has unsupported type {type(value).__name__}")


def validate_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Validate an open-ended metadata bag.

    Keys are strings; values are primitives or lists/maps of primitives,
    nested at most MAX_METADATA_DEPTH levels, and the JSON encoding of the
    whole bag stays under MAX_METADATA_BYTES.
    """
    if metadata is None:
        return {}
    if not isinstance(metadata, dict):
        raise ValueError("metadata must be a mapping")
    if len(metadata) > MAX_METADATA_KEYS:
        raise ValueError(f"metadata has more than {MAX_METADATA_KEYS} keys")
    _check_metadata_value(metadata, 0, "metadata")
    if len(json.dumps(metadata)) > MAX_METADATA_BYTES:
        raise ValueError(f"metadata exceeds {MAX_METADATA_BYTES} bytes when encoded")
    return dict(metadata)


class CandidateAlert(BaseModel):
    """An unpersisted alert proposal returned by Agent.detect()."""
    model_config = ConfigDict(frozen=True)

    category: AlertCategory
    priority: AlertPriority
    title: str = Field(..., min_length=1, max_length=300)
    description: str = Field(..., min_length=1)
    confidence: float = Field(..., ge=0.0, le=1.0)
    route: Optional[str] = None
    alert_type: Optional[str] = None
    impact_score: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    # Attribution override; scenario generators credit the scenario's source agent.
    agent_id: Optional[str] = None

    @field_validator("metadata", mode="before")
    @classmethod
    def _validate_metadata(cls, v):
        return validate_metadata(v)


class Alert(BaseModel):
    """A persisted alert."""

    agent_id: str
    category: AlertCategory
    priority: AlertPriority
    title: str
    description: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    route: Optional[str] = None
    alert_type: Optional[str] = None
    impact_score: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    status: AlertStatus = AlertStatus.ACTIVE
    id: str = Field(default_factory=_new_id)
    created_at: datetime = Field(default_factory=utcnow)
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    @field_validator("metadata", mode="before")
    @classmethod
    def _validate_metadata(cls, v):
        return validate_metadata(v)

    @classmethod
    def from_candidate(cls, candidate: CandidateAlert, agent_id: str) -> "Alert":
        return cls(
            agent_id=candidate.agent_id or agent_id,
            category=candidate.category,
            priority=candidate.priority,
            title=candidate.title,
            description=candidate.description,
            confidence=candidate.confidence,
            route=candidate.route,
            alert_type=candidate.alert_type,
            impact_score=candidate.impact_score,
            metadata=dict(candidate.metadata),
        )

    def transition_to(self, status: AlertStatus, at: Optional[datetime] = None) -> "Alert":
        """Return a copy moved to `status`; only forward moves are allowed."""
        status = AlertStatus(status)
        if status.rank <= self.status.rank:
            raise InvalidStatusTransitionError(self.id, self.status.value, status.value)
        at = at or utcnow()
        update: Dict[str, Any] = {"status": status}
        if status == AlertStatus.ACKNOWLEDGED:
            update["acknowledged_at"] = at
        elif status == AlertStatus.RESOLVED:
            update["resolved_at"] = at
            if self.acknowledged_at is None:
                update["acknowledged_at"] = at
        return self.model_copy(update=update)


class AlertFilter(BaseModel):
    """Query for AlertStore.list_recent; unset fields do not constrain."""
    agent_id: Optional[str] = None
    category: Optional[AlertCategory] = None
    # Match on route only when match_route is set; None then means "no route".
    route: Optional[str] = None
    match_route: bool = False
    statuses: Optional[Set[AlertStatus]] = None
    since: Optional[datetime] = None

    def matches(self, alert: Alert) -> bool:
        if self.agent_id is not None and alert.agent_id != self.agent_id:
            return False
        if self.category is not None and alert.category != self.category:
            return False
        if self.match_route and alert.route != self.route:
            return False
        if self.statuses is not None and alert.status not in self.statuses:
            return False
        if self.since is not None and alert.created_at < self.since:
            return False
        return True


class AgentRecord(BaseModel):
    """Persistent state of a detector."""
    id: str
    name: str
    status: AgentStatus = AgentStatus.ACTIVE
    accuracy: float = Field(0.0, ge=0.0, le=100.0)
    total_analyses: int = 0
    alerts_generated: int = 0
    successful_predictions: int = 0
    configuration: Dict[str, Any] = Field(default_factory=dict)
    last_active: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)

    def record_run(self, alerts_generated: int, at: Optional[datetime] = None) -> "AgentRecord":
        at = at or utcnow()
        return self.model_copy(update={
            "total_analyses": self.total_analyses + 1,
            "alerts_generated": self.alerts_generated + alerts_generated,
            "last_active": at,
            "updated_at": at,
        })

    def record_alerts(self, alerts_generated: int, at: Optional[datetime] = None) -> "AgentRecord":
        """Credit alerts produced on this agent's behalf by another runner."""
        return self.model_copy(update={
            "alerts_generated": self.alerts_generated + alerts_generated,
            "updated_at": at or utcnow(),
        })

    def with_accuracy(self, accuracy: float, successful_predictions: int,
                      at: Optional[datetime] = None) -> "AgentRecord":
        return self.model_copy(update={
            "accuracy": max(0.0, min(100.0, accuracy)),
            "successful_predictions": successful_predictions,
            "updated_at": at or utcnow(),
        })


class ExecutionRecord(BaseModel):
    """Audit entry for one AgentRunner invocation; immutable once finalized."""
    model_config = ConfigDict(frozen=True)

    agent_id: str
    cycle_id: Optional[str] = None
    execution_id: str = Field(default_factory=_new_id)
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    outcome: Optional[ExecutionOutcome] = None
    attempts: int = 0
    alerts_emitted: int = 0
    duplicates_suppressed: int = 0
    last_error: Optional[str] = None
    error_category: Optional[str] = None

    @property
    def is_finalized(self) -> bool:
        return self.outcome is not None

    @property
    def latency_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def finalize(self, outcome: ExecutionOutcome, attempts: int, alerts_emitted: int = 0,
                 duplicates_suppressed: int = 0, last_error: Optional[str] = None,
                 error_category: Optional[str] = None,
                 finished_at: Optional[datetime] = None) -> "ExecutionRecord":
        if self.is_finalized:
            raise ValueError(f"Execution {self.execution_id} is already finalized")
        return self.model_copy(update={
            "outcome": outcome,
            "attempts": attempts,
            "alerts_emitted": alerts_emitted,
            "duplicates_suppressed": duplicates_suppressed,
            "last_error": last_error,
            "error_category": error_category,
            "finished_at": finished_at or utcnow(),
        })


class FeedbackSubmission(BaseModel):
    """Inbound operator feedback, validated at the ingestion boundary."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    alert_id: str = Field(..., min_length=1)
    agent_id: str = Field(..., min_length=1)
    rater_id: str = Field(..., min_length=1)
    # strict: "5", 4.0, True and "yes" are rejected rather than coerced
    rating: int = Field(..., ge=1, le=5, strict=True)
    comment: Optional[str] = Field(None, max_length=2000)
    action_taken: bool = Field(False, strict=True)
    impact_realized: Optional[float] = None


class FeedbackEvent(BaseModel):
    """Stored feedback; immutable."""
    model_config = ConfigDict(frozen=True)

    alert_id: str
    agent_id: str
    rater_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    action_taken: bool = False
    impact_realized: Optional[float] = None
    id: str = Field(default_factory=_new_id)
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_submission(cls, submission: FeedbackSubmission,
                        at: Optional[datetime] = None) -> "FeedbackEvent":
        return cls(
            alert_id=submission.alert_id,
            agent_id=submission.agent_id,
            rater_id=submission.rater_id,
            rating=submission.rating,
            comment=submission.comment,
            action_taken=submission.action_taken,
            impact_realized=submission.impact_realized,
            created_at=at or utcnow(),
        )


class Activity(BaseModel):
    """Audit-trail entry shown in the dashboard's activity feed."""
    type: ActivityType
    title: str
    description: Optional[str] = None
    agent_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    id: str = Field(default_factory=_new_id)
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("metadata", mode="before")
    @classmethod
    def _validate_metadata(cls, v):
        return validate_metadata(v)


class CycleSummary(BaseModel):
    """Outcome of one scheduler dispatch-and-join pass."""
    cycle_id: str
    trigger: TriggerSource
    started_at: datetime
    finished_at: datetime
    master_seed: int
    agents_dispatched: List[str] = Field(default_factory=list)
    scenarios_dispatched: List[str] = Field(default_factory=list)
    alerts_emitted: int = 0
    failed_runs: int = 0
    pending_runs: int = 0
    outcome: CycleOutcome = CycleOutcome.COMPLETED
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def runs_dispatched(self) -> int:
        return len(self.agents_dispatched) + len(self.scenarios_dispatched)


class SchedulerStatus(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_running: bool
    state: SchedulerState
    interval_minutes: float
    last_run_time: Optional[datetime] = None
    next_run_time: Optional[datetime] = None
    cycle_in_progress: bool = False
    last_cycle_outcome: Optional[CycleOutcome] = None
