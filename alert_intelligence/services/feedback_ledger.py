"""
Feedback Ledger - operator feedback to rolling agent accuracy.

Each accepted FeedbackEvent is appended to the store, then the agent's
accuracy is recomputed from the events inside a trailing window:

    accuracy = positive_events / window_events * 100

An empty window leaves the stored accuracy untouched. Alerts are never
modified here.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import ValidationError

from alert_intelligence.core.enums import ActivityType
from alert_intelligence.core.models import (
    Activity,
    AgentRecord,
    FeedbackEvent,
    FeedbackSubmission,
    utcnow,
)
from alert_intelligence.utils.error_handling import (
    AgentNotFoundError,
    AlertNotFoundError,
    FeedbackValidationError,
)

logger = logging.getLogger(__name__)


@dataclass
class FeedbackResult:
    event: FeedbackEvent
    agent: AgentRecord


def parse_submission(payload: Union[FeedbackSubmission, Mapping[str, Any]]) -> FeedbackSubmission:
    """Validate a raw payload; malformed input never reaches the ledger."""
    if isinstance(payload, FeedbackSubmission):
        return payload
    if not isinstance(payload, Mapping):
        raise FeedbackValidationError("Feedback payload must be an object")
    try:
        return FeedbackSubmission.model_validate(dict(payload))
    except ValidationError as e:
        raise FeedbackValidationError(
            "Malformed feedback payload",
            errors=e.errors(include_url=False, include_context=False),
        ) from e


class FeedbackLedger:
    """Records feedback events and maintains each agent's rolling accuracy."""

    def __init__(
        self,
        store,
        window_days: int = 30,
        positive_rating: int = 4,
        metrics=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if window_days <= 0:
            raise ValueError("window_days must be positive")
        if not 1 <= positive_rating <= 5:
            raise ValueError("positive_rating must be between 1 and 5")
        self.store = store
        self.window_days = window_days
        self.positive_rating = positive_rating
        self.metrics = metrics
        self.clock = clock

    def is_positive(self, event: FeedbackEvent) -> bool:
        return event.rating >= self.positive_rating

    async def submit(self, payload: Union[FeedbackSubmission, Mapping[str, Any]]) -> FeedbackResult:
        """
        Validate, append and apply one feedback event.

        Raises:
            FeedbackValidationError: malformed payload, or agent does not
                match the alert's originating agent
            AlertNotFoundError / AgentNotFoundError: unknown references
            StoreError: the store failed
        """
        submission = parse_submission(payload)

        alert = await self.store.get(submission.alert_id)
        if alert is None:
            raise AlertNotFoundError(submission.alert_id)
        if await self.store.get_agent(submission.agent_id) is None:
            raise AgentNotFoundError(submission.agent_id)
        if alert.agent_id != submission.agent_id:
            raise FeedbackValidationError(
                f"Alert {alert.id} was generated by '{alert.agent_id}', not '{submission.agent_id}'",
                errors=[{"loc": ["agentId"], "msg": "agent does not match alert", "type": "value_error"}],
            )

        event = FeedbackEvent.from_submission(submission, at=self.clock())
        await self.store.add_feedback(event)
        agent = await self.recompute_accuracy(submission.agent_id)

        positive = self.is_positive(event)
        await self.store.append_activity(Activity(
            type=ActivityType.FEEDBACK,
            title=f"Feedback received for {agent.name}",
            description=f"Rating {event.rating}/5" + (f": {event.comment}" if event.comment else ""),
            agent_id=agent.id,
            metadata={"alert_id": event.alert_id, "rating": event.rating, "action_taken": event.action_taken},
        ))
        if self.metrics:
            self.metrics.record_feedback(agent.id, positive)

        logger.info(
            f"Feedback applied: agent={agent.id} alert={event.alert_id} "
            f"rating={event.rating} accuracy={agent.accuracy:.1f}"
        )
        return FeedbackResult(event=event, agent=agent)

    async def recompute_accuracy(self, agent_id: str, now: Optional[datetime] = None) -> AgentRecord:
        """Recompute accuracy from the trailing window and persist it."""
        now = now or self.clock()
        window = await self.store.list_feedback(agent_id, since=now - timedelta(days=self.window_days))
        if not window:
            agent = await self.store.get_agent(agent_id)
            if agent is None:
                raise AgentNotFoundError(agent_id)
            return agent

        positive = sum(1 for event in window if self.is_positive(event))
        accuracy = positive / len(window) * 100.0
        agent = await self.store.update_agent(
            agent_id, lambda record: record.with_accuracy(accuracy, positive, at=now)
        )
        if self.metrics:
            self.metrics.set_agent_accuracy(agent_id, agent.accuracy)
        return agent
