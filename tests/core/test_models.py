"""
Tests for the core data model: metadata bounds, status lifecycle,
execution record finalization and the feedback ingestion schema.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from alert_intelligence.core.enums import AlertStatus, ExecutionOutcome
from alert_intelligence.core.models import (
    Alert,
    CandidateAlert,
    ExecutionRecord,
    FeedbackSubmission,
    MAX_METADATA_DEPTH,
    MAX_METADATA_KEYS,
    validate_metadata,
)
from alert_intelligence.utils.error_handling import InvalidStatusTransitionError
from tests.conftest import make_candidate


class TestCandidateAlert:

    def test_confidence_outside_unit_interval_rejected(self):
        with pytest.raises(ValidationError):
            make_candidate(confidence=1.01)
        with pytest.raises(ValidationError):
            make_candidate(confidence=-0.1)

    def test_unknown_category_rejected(self):
        with pytest.raises(ValidationError):
            make_candidate(category="weather")

    def test_empty_title_rejected(self):
        with pytest.raises(ValidationError):
            make_candidate(title="")

    def test_candidate_is_immutable(self):
        candidate = make_candidate()
        with pytest.raises(ValidationError):
            candidate.confidence = 0.1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("confidence", [0.0, 0.3333333333333333, 0.94, 1.0])
    async def test_persisting_never_changes_confidence(self, store, confidence):
        candidate = make_candidate(confidence=confidence)
        alert = Alert.from_candidate(candidate, "competitive")
        await store.create(alert)

        stored = await store.get(alert.id)
        assert stored.confidence == candidate.confidence

    def test_attribution_override(self):
        candidate = make_candidate(agent_id="performance")
        alert = Alert.from_candidate(candidate, "scenario:demand")
        assert alert.agent_id == "performance"
        assert alert.status == AlertStatus.ACTIVE


class TestMetadata:

    def test_accepts_nested_primitives(self):
        metadata = {"routes": ["LGW-AMS", "LGW-BRU"], "impact": {"weekly": 87500.0, "flag": True}}
        assert validate_metadata(metadata) == metadata

    def test_none_becomes_empty(self):
        assert validate_metadata(None) == {}

    def test_rejects_too_many_keys(self):
        metadata = {f"k{i}": i for i in range(MAX_METADATA_KEYS + 1)}
        with pytest.raises(ValueError, match="keys"):
            validate_metadata(metadata)

    def test_rejects_deep_nesting(self):
        metadata = value = {}
        for _ in range(MAX_METADATA_DEPTH + 1):
            value["next"] = {}
            value = value["next"]
        with pytest.raises(ValueError, match="deeper"):
            validate_metadata(metadata)

    def test_rejects_non_string_keys(self):
        with pytest.raises(ValueError, match="strings"):
            validate_metadata({"outer": {1: "x"}})

    def test_rejects_objects(self):
        with pytest.raises(ValueError, match="unsupported type"):
            validate_metadata({"when": datetime.now(timezone.utc)})

    def test_rejects_oversized_payload(self):
        with pytest.raises(ValueError, match="bytes"):
            validate_metadata({"blob": "x" * 20_000})

    def test_candidate_metadata_validated(self):
        with pytest.raises(ValidationError):
            make_candidate(metadata={"when": object()})


class TestStatusLifecycle:

    def test_forward_transitions(self):
        alert = Alert.from_candidate(make_candidate(), "competitive")
        acknowledged = alert.transition_to(AlertStatus.ACKNOWLEDGED)
        resolved = acknowledged.transition_to(AlertStatus.RESOLVED)

        assert acknowledged.acknowledged_at is not None
        assert resolved.status == AlertStatus.RESOLVED
        assert resolved.resolved_at >= resolved.acknowledged_at

    def test_resolved_alert_cannot_return_to_active(self):
        alert = Alert.from_candidate(make_candidate(), "competitive")
        resolved = alert.transition_to(AlertStatus.ACKNOWLEDGED).transition_to(AlertStatus.RESOLVED)

        for status in (AlertStatus.ACTIVE, AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED):
            with pytest.raises(InvalidStatusTransitionError):
                resolved.transition_to(status)

    def test_direct_resolve_stamps_acknowledgement(self):
        alert = Alert.from_candidate(make_candidate(), "competitive")
        resolved = alert.transition_to(AlertStatus.RESOLVED)
        assert resolved.acknowledged_at == resolved.resolved_at

    def test_same_status_is_rejected(self):
        alert = Alert.from_candidate(make_candidate(), "competitive")
        with pytest.raises(InvalidStatusTransitionError):
            alert.transition_to(AlertStatus.ACTIVE)


class TestExecutionRecord:

    def test_finalize_once(self):
        record = ExecutionRecord(agent_id="competitive")
        assert not record.is_finalized
        assert record.latency_seconds is None

        final = record.finalize(ExecutionOutcome.COMPLETED, attempts=1, alerts_emitted=2)
        assert final.is_finalized
        assert final.latency_seconds >= 0

        with pytest.raises(ValueError, match="already finalized"):
            final.finalize(ExecutionOutcome.FAILED, attempts=2)

    def test_record_is_frozen(self):
        record = ExecutionRecord(agent_id="competitive")
        with pytest.raises(ValidationError):
            record.attempts = 5


class TestFeedbackSubmission:

    def test_accepts_camel_case(self):
        submission = FeedbackSubmission.model_validate({
            "alertId": "a1", "agentId": "competitive", "raterId": "analyst-7",
            "rating": 5, "actionTaken": True,
        })
        assert submission.alert_id == "a1"
        assert submission.action_taken is True

    def test_accepts_snake_case(self):
        submission = FeedbackSubmission(alert_id="a1", agent_id="network", rater_id="u", rating=2)
        assert submission.rating == 2

    @pytest.mark.parametrize("payload", [
        {"agentId": "competitive", "raterId": "u", "rating": 4},
        {"alertId": "a1", "raterId": "u", "rating": 4},
        {"alertId": "a1", "agentId": "competitive", "raterId": "u"},
        {"alertId": "a1", "agentId": "competitive", "raterId": "u", "rating": 0},
        {"alertId": "a1", "agentId": "competitive", "raterId": "u", "rating": 6},
        {"alertId": "a1", "agentId": "competitive", "raterId": "u", "rating": 3.5},
        {"alertId": "a1", "agentId": "competitive", "raterId": "u", "rating": True},
        {"alertId": "a1", "agentId": "competitive", "raterId": "u", "rating": "5"},
        {"alertId": "a1", "agentId": "competitive", "raterId": "u", "rating": 4.0},
        {"alertId": "a1", "agentId": "competitive", "raterId": "u", "rating": 4, "actionTaken": "yes"},
        {"alertId": "a1", "agentId": "competitive", "raterId": "u", "rating": 4, "actionTaken": 1},
        {"alertId": "", "agentId": "competitive", "raterId": "u", "rating": 4},
    ])
    def test_rejects_malformed(self, payload):
        with pytest.raises(ValidationError):
            FeedbackSubmission.model_validate(payload)


def test_candidate_from_dict_roundtrip_through_model_validate():
    candidate = CandidateAlert.model_validate({
        "category": "network",
        "priority": "medium",
        "title": "Capacity Reallocation Opportunity",
        "description": "Move capacity from LGW-MAD to STN-BCN.",
        "confidence": 0.82,
    })
    assert candidate.route is None
    assert candidate.metadata == {}
