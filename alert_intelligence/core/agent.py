import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Protocol, Sequence, runtime_checkable

from .models import AgentRecord, CandidateAlert, utcnow


@dataclass
class DetectionContext:
    """Everything a detector may read during one invocation."""
    agent_id: str
    cycle_id: Optional[str] = None
    now: datetime = field(default_factory=utcnow)
    rng: random.Random = field(default_factory=random.Random)
    agent_record: Optional[AgentRecord] = None
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def configuration(self) -> Dict[str, Any]:
        if self.agent_record is None:
            return {}
        return self.agent_record.configuration


@runtime_checkable
class Agent(Protocol):
    """
    A named detector.

    detect() returns zero or more candidates and never writes to the store.
    It may be a coroutine function or a plain function; plain functions are
    run in a worker thread. Failures are raised, not returned.
    """
    agent_id: str
    name: str

    def detect(self, context: DetectionContext) -> Sequence[CandidateAlert]:
        ...
