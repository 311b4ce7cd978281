"""Per-agent dispatch probabilities used by the scheduler's selection step."""

from abc import ABC, abstractmethod
import hashlib
from typing import Any, Dict, Mapping, Optional

from alert_intelligence.core.enums import AgentStatus
from alert_intelligence.core.models import AgentRecord


class DispatchPolicy(ABC):
    """Decides the probability that an agent is dispatched in a cycle."""
    version: str = "1.0"
    logic_hash: str = "undefined"

    @abstractmethod
    def probability(self, agent_id: str, record: Optional[AgentRecord] = None) -> float:
        """Probability in [0, 1]; disabled agents always get 0."""
        pass

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        pass


class FixedProbabilityPolicy(DispatchPolicy):
    """
    Distinct fixed probability per agent, so each cycle mixes alert types
    differently.
    """
    version = "1.0"

    def __init__(self, probabilities: Optional[Mapping[str, float]] = None,
                 default_probability: float = 0.5):
        self.probabilities = dict(probabilities or {})
        self.default_probability = default_probability
        for agent_id, p in list(self.probabilities.items()) + [("<default>", default_probability)]:
            if not 0.0 <= p <= 1.0:
                raise ValueError(f"dispatch probability for {agent_id} must be within [0, 1], got {p}")
        logic_str = f"{self.__class__.__name__}-{self.version}-{sorted(self.probabilities.items())}-{self.default_probability}"
        self.logic_hash = hashlib.sha256(logic_str.encode("utf-8")).hexdigest()

    def base_probability(self, agent_id: str) -> float:
        return self.probabilities.get(agent_id, self.default_probability)

    def probability(self, agent_id: str, record: Optional[AgentRecord] = None) -> float:
        if record is not None and record.status == AgentStatus.DISABLED:
            return 0.0
        return self.base_probability(agent_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "policy_name": self.__class__.__name__,
            "policy_version": self.version,
            "logic_hash": self.logic_hash,
            "parameters": {
                "probabilities": dict(self.probabilities),
                "default_probability": self.default_probability,
            },
        }


class AccuracyBiasedPolicy(FixedProbabilityPolicy):
    """
    Scales each base probability by the agent's current accuracy:

        p = base * (bias_floor + (1 - bias_floor) * accuracy / 100)

    An agent at 100% accuracy keeps its base probability; one at 0% keeps
    `bias_floor` of it. Accuracy is read from the record at dispatch time.
    """
    version = "1.0"

    def __init__(self, probabilities: Optional[Mapping[str, float]] = None,
                 default_probability: float = 0.5, bias_floor: float = 0.5):
        if not 0.0 <= bias_floor <= 1.0:
            raise ValueError("bias_floor must be within [0, 1]")
        self.bias_floor = bias_floor
        super().__init__(probabilities, default_probability)
        logic_str = f"{self.logic_hash}-{self.bias_floor}"
        self.logic_hash = hashlib.sha256(logic_str.encode("utf-8")).hexdigest()

    def probability(self, agent_id: str, record: Optional[AgentRecord] = None) -> float:
        base = super().probability(agent_id, record)
        if record is None or base == 0.0:
            return base
        weight = self.bias_floor + (1.0 - self.bias_floor) * (record.accuracy / 100.0)
        return max(0.0, min(1.0, base * weight))

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["parameters"]["bias_floor"] = self.bias_floor
        return data
