from abc import ABC, abstractmethod
import hashlib
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class RetryContext:
    """Encapsulates the data needed for a retry decision."""
    agent_id: str
    attempt: int
    error: Optional[BaseException] = None
    cycle_id: Optional[str] = None


class RetryPolicy(ABC):
    """
    Abstract base class for serializable and versionable retry policies.
    """
    version: str = "1.0"
    logic_hash: str = "undefined"
    max_attempts: int = 1

    @abstractmethod
    def should_retry(self, context: RetryContext) -> bool:
        """Determines if another attempt should follow the failed one."""
        pass

    @abstractmethod
    def next_delay(self, context: RetryContext) -> float:
        """Delay in seconds before the attempt after `context.attempt`."""
        pass

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """Serializes the policy's configuration."""
        pass

    def _compute_logic_hash(self, *parameters: Any) -> str:
        logic_str = "-".join(
            [self.__class__.__name__, self.version] + [str(p) for p in parameters]
        )
        return hashlib.sha256(logic_str.encode("utf-8")).hexdigest()


class LinearBackoffPolicy(RetryPolicy):
    """
    Bounded retries with linear backoff: after failed attempt n the runner
    waits n * base_delay seconds.
    """
    version = "1.0"

    def __init__(self, max_retries: int = 2, base_delay: float = 1.0):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_attempts = max_retries + 1
        self.logic_hash = self._compute_logic_hash(self.max_retries, self.base_delay)

    def should_retry(self, context: RetryContext) -> bool:
        # Agents signal non-retryable errors with a truthy `fatal` attribute.
        if context.error is not None:
            if not isinstance(context.error, Exception):
                return False
            if getattr(context.error, "fatal", False):
                return False
        return context.attempt < self.max_attempts

    def next_delay(self, context: RetryContext) -> float:
        return context.attempt * self.base_delay

    def to_dict(self) -> Dict[str, Any]:
        return {
            "policy_name": self.__class__.__name__,
            "policy_version": self.version,
            "logic_hash": self.logic_hash,
            "parameters": {
                "max_retries": self.max_retries,
                "base_delay": self.base_delay,
            },
        }
