import asyncio

import pytest

from alert_intelligence.core.enums import AgentStatus
from alert_intelligence.core.models import AgentRecord
from alert_intelligence.policy.dispatch_policy import AccuracyBiasedPolicy, FixedProbabilityPolicy
from alert_intelligence.policy.retry_policy import LinearBackoffPolicy, RetryContext


class FatalError(Exception):
    fatal = True


class TestLinearBackoffPolicy:

    def test_retries_until_budget_exhausted(self):
        policy = LinearBackoffPolicy(max_retries=2)
        error = RuntimeError("boom")
        assert policy.should_retry(RetryContext(agent_id="a", attempt=1, error=error))
        assert policy.should_retry(RetryContext(agent_id="a", attempt=2, error=error))
        assert not policy.should_retry(RetryContext(agent_id="a", attempt=3, error=error))

    def test_delay_grows_linearly(self):
        policy = LinearBackoffPolicy(max_retries=3, base_delay=1.5)
        delays = [policy.next_delay(RetryContext(agent_id="a", attempt=n)) for n in (1, 2, 3)]
        assert delays == [1.5, 3.0, 4.5]

    def test_fatal_errors_are_not_retried(self):
        policy = LinearBackoffPolicy(max_retries=5)
        assert not policy.should_retry(RetryContext(agent_id="a", attempt=1, error=FatalError()))

    def test_cancellation_is_not_retried(self):
        policy = LinearBackoffPolicy(max_retries=5)
        assert not policy.should_retry(RetryContext(agent_id="a", attempt=1, error=asyncio.CancelledError()))

    @pytest.mark.parametrize("kwargs", [{"max_retries": -1}, {"base_delay": -0.1}])
    def test_rejects_negative_parameters(self, kwargs):
        with pytest.raises(ValueError):
            LinearBackoffPolicy(**kwargs)

    def test_logic_hash_tracks_parameters(self):
        assert LinearBackoffPolicy(2, 1.0).logic_hash == LinearBackoffPolicy(2, 1.0).logic_hash
        assert LinearBackoffPolicy(2, 1.0).logic_hash != LinearBackoffPolicy(3, 1.0).logic_hash

    def test_to_dict(self):
        data = LinearBackoffPolicy(max_retries=2, base_delay=1.0).to_dict()
        assert data["policy_name"] == "LinearBackoffPolicy"
        assert data["parameters"] == {"max_retries": 2, "base_delay": 1.0}


class TestDispatchPolicies:

    def test_fixed_probability_per_agent(self):
        policy = FixedProbabilityPolicy({"competitive": 0.7, "network": 0.5}, default_probability=0.2)
        assert policy.probability("competitive") == 0.7
        assert policy.probability("network") == 0.5
        assert policy.probability("unknown") == 0.2

    def test_disabled_agent_never_dispatched(self):
        policy = FixedProbabilityPolicy({"competitive": 1.0})
        record = AgentRecord(id="competitive", name="C", status=AgentStatus.DISABLED)
        assert policy.probability("competitive", record) == 0.0

    def test_rejects_out_of_range_probability(self):
        with pytest.raises(ValueError):
            FixedProbabilityPolicy({"competitive": 1.2})

    @pytest.mark.parametrize("accuracy,expected", [(100.0, 0.8), (50.0, 0.6), (0.0, 0.4)])
    def test_accuracy_bias(self, accuracy, expected):
        policy = AccuracyBiasedPolicy({"competitive": 0.8}, bias_floor=0.5)
        record = AgentRecord(id="competitive", name="C", accuracy=accuracy)
        assert policy.probability("competitive", record) == pytest.approx(expected)

    def test_accuracy_bias_without_record_uses_base(self):
        policy = AccuracyBiasedPolicy({"competitive": 0.8})
        assert policy.probability("competitive") == 0.8

    def test_biased_to_dict_includes_floor(self):
        data = AccuracyBiasedPolicy({"competitive": 0.8}, bias_floor=0.25).to_dict()
        assert data["parameters"]["bias_floor"] == 0.25
        assert data["parameters"]["probabilities"] == {"competitive": 0.8}
