"""
Test suite for configuration management.

Verifies that config loading, validation, and environment-based settings work correctly.
"""

import os

import pytest
from pydantic import ValidationError

from alert_intelligence import config as config_module
from alert_intelligence.config import Config, SchedulerConfig, reload_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Isolate each test from variables set in the calling shell."""
    for prefix in ("SCHEDULER_", "RUNNER_", "DEDUP_", "FEEDBACK_", "STORE_", "API_", "METRICS_"):
        for key in list(os.environ):
            if key.startswith(prefix):
                monkeypatch.delenv(key)
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    yield
    config_module._config = None


class TestConfiguration:
    """Test the configuration system."""

    def test_config_loads_defaults(self):
        config = Config()

        assert config.environment == "development"
        assert config.debug is False
        assert config.scheduler.interval_minutes == 45.0
        assert config.scheduler.cycle_timeout_seconds == 900.0
        assert config.scheduler.dispatch_probabilities == {
            "competitive": 0.7, "performance": 0.6, "network": 0.5,
        }
        assert config.runner.max_retries == 2
        assert config.runner.base_delay_seconds == 1.0
        assert config.dedup.lookback_hours == 24.0
        assert config.dedup.similarity_threshold == 0.7
        assert config.feedback.window_days == 30
        assert config.store.backend == "memory"
        assert config.api.port == 8000

    def test_config_loads_from_env_vars(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "staging")
        monkeypatch.setenv("SCHEDULER_INTERVAL_MINUTES", "10")
        monkeypatch.setenv("SCHEDULER_DISPATCH_PROBABILITIES", '{"competitive": 0.9}')
        monkeypatch.setenv("SCHEDULER_SEED", "42")
        monkeypatch.setenv("RUNNER_MAX_RETRIES", "4")
        monkeypatch.setenv("DEDUP_ENABLED", "false")
        monkeypatch.setenv("STORE_BACKEND", "SQLite")
        monkeypatch.setenv("API_PORT", "9000")

        config = Config()

        assert config.environment == "staging"
        assert config.scheduler.interval_minutes == 10.0
        assert config.scheduler.dispatch_probabilities == {"competitive": 0.9}
        assert config.scheduler.seed == 42
        assert config.runner.max_retries == 4
        assert config.dedup.enabled is False
        assert config.store.backend == "sqlite"
        assert config.api.port == 9000

    def test_config_validates_environment(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "invalid_env")

        with pytest.raises(ValidationError) as exc_info:
            Config()

        assert "environment" in str(exc_info.value).lower()

    def test_config_validates_log_level(self, monkeypatch):
        monkeypatch.setenv("API_LOG_LEVEL", "INVALID_LEVEL")

        with pytest.raises(ValidationError) as exc_info:
            Config()

        assert "log_level" in str(exc_info.value).lower()

    def test_config_validates_store_backend(self, monkeypatch):
        monkeypatch.setenv("STORE_BACKEND", "postgres")

        with pytest.raises(ValidationError):
            Config()

    @pytest.mark.parametrize("value", ["0", "-5"])
    def test_non_positive_cycle_timeout_means_unbounded(self, monkeypatch, value):
        monkeypatch.setenv("SCHEDULER_CYCLE_TIMEOUT_SECONDS", value)
        assert SchedulerConfig().cycle_timeout_seconds is None

    def test_rejects_out_of_range_probability(self):
        with pytest.raises(ValidationError):
            SchedulerConfig(dispatch_probabilities={"competitive": 1.5})
        with pytest.raises(ValidationError):
            SchedulerConfig(scenario_probability=-0.1)

    def test_production_requires_durable_store(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")

        with pytest.raises(ValueError, match="durable"):
            reload_config()

        monkeypatch.setenv("STORE_BACKEND", "sqlite")
        assert reload_config().store.backend == "sqlite"
