# Utils Package
"""
Cross-cutting utilities.

- error_handling.py: exception taxonomy and error classification
- structured_logging.py: JSON logging with cycle/agent context
"""

from alert_intelligence.utils.error_handling import (
    AlertIntelligenceError,
    StoreError,
    StoreUnavailableError,
    AlertNotFoundError,
    AgentNotFoundError,
    InvalidStatusTransitionError,
    FeedbackValidationError,
    AgentTimeoutError,
    SchedulerStoppedError,
    classify_error,
)
from alert_intelligence.utils.structured_logging import StructuredLogger, LogContext

__all__ = [
    "AlertIntelligenceError",
    "StoreError",
    "StoreUnavailableError",
    "AlertNotFoundError",
    "AgentNotFoundError",
    "InvalidStatusTransitionError",
    "FeedbackValidationError",
    "AgentTimeoutError",
    "SchedulerStoppedError",
    "classify_error",
    "StructuredLogger",
    "LogContext",
]
