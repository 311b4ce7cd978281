from alert_intelligence.services.feedback_ledger import FeedbackLedger, FeedbackResult
from alert_intelligence.services.metrics_service import MetricsService

__all__ = ["FeedbackLedger", "FeedbackResult", "MetricsService"]
