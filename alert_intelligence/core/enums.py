from enum import Enum


class AlertCategory(str, Enum):
    """Closed set of alert categories."""
    COMPETITIVE = "competitive"
    PERFORMANCE = "performance"
    NETWORK = "network"
    OTHER = "other"


class AlertPriority(str, Enum):
    """Closed set of alert priorities."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AlertStatus(str, Enum):
    """Alert lifecycle. Transitions only move forward: active -> acknowledged -> resolved."""
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    AlertStatus.ACTIVE: 0,
    AlertStatus.ACKNOWLEDGED: 1,
    AlertStatus.RESOLVED: 2,
}


class AgentStatus(str, Enum):
    """Operational state of a detector."""
    ACTIVE = "active"
    LEARNING = "learning"
    DISABLED = "disabled"


class ExecutionOutcome(str, Enum):
    """Final outcome of one AgentRunner invocation."""
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class TriggerSource(str, Enum):
    """What started a scheduling cycle."""
    TIMER = "timer"
    MANUAL = "manual"


class CycleOutcome(str, Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"        # at least one runner failed
    TIMED_OUT = "timed_out"    # cycle timeout elapsed with runners still pending
    FAILED = "failed"          # the cycle itself raised


class ScenarioType(str, Enum):
    """Families of pre-authored exemplar alerts."""
    COMPETITIVE = "competitive"
    DEMAND = "demand"
    OPERATIONAL = "operational"
    SYSTEM = "system"
    ECONOMIC = "economic"


class ActivityType(str, Enum):
    ALERT = "alert"
    ANALYSIS = "analysis"
    FEEDBACK = "feedback"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
