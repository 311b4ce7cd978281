"""
Error Handling Utilities

Provides:
- The exception taxonomy shared by stores, runner, scheduler and feedback ledger
- Error classification for execution records
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class AlertIntelligenceError(Exception):
    """Base class for errors raised by the alert-generation core."""
    fatal: bool = False


class StoreError(AlertIntelligenceError):
    """Raised when the store rejects a write or a query fails."""
    pass


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be reached at all."""
    pass


class AlertNotFoundError(AlertIntelligenceError):
    """Raised when an alert id does not exist."""

    def __init__(self, alert_id: str):
        super().__init__(f"Alert not found: {alert_id}")
        self.alert_id = alert_id


class AgentNotFoundError(AlertIntelligenceError):
    """Raised when an agent id does not exist."""

    def __init__(self, agent_id: str):
        super().__init__(f"Agent not found: {agent_id}")
        self.agent_id = agent_id


class InvalidStatusTransitionError(AlertIntelligenceError):
    """Raised when an alert status change would move backwards."""

    def __init__(self, alert_id: str, current: str, requested: str):
        super().__init__(
            f"Alert {alert_id} cannot move from '{current}' to '{requested}'"
        )
        self.alert_id = alert_id
        self.current = current
        self.requested = requested


class FeedbackValidationError(AlertIntelligenceError):
    """Raised when a feedback payload is malformed."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


class AgentTimeoutError(AlertIntelligenceError):
    """Raised when a single detection attempt exceeds its timeout."""

    def __init__(self, agent_id: str, timeout_seconds: float):
        super().__init__(f"Agent '{agent_id}' timed out after {timeout_seconds}s")
        self.agent_id = agent_id
        self.timeout_seconds = timeout_seconds


class SchedulerStoppedError(AlertIntelligenceError):
    """Raised when a cycle is requested from a stopped scheduler."""
    pass


def classify_error(error: BaseException) -> str:
    """
    Classify an error for execution records and metrics labels.

    Args:
        error: Exception to classify.

    Returns:
        Error category string.
    """
    if isinstance(error, (AgentTimeoutError, asyncio.TimeoutError, TimeoutError)):
        return "timeout"
    if isinstance(error, StoreError):
        return "store"
    if isinstance(error, FeedbackValidationError):
        return "validation"

    error_name = type(error).__name__.lower()
    error_msg = str(error).lower()

    if any(x in error_name for x in ["connection", "network", "socket"]):
        return "network"
    if any(x in error_msg for x in ["connection refused", "network unreachable"]):
        return "network"
    if "timeout" in error_name or "timed out" in error_msg:
        return "timeout"
    if "validation" in error_name:
        return "validation"

    return "unknown"
