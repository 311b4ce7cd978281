"""
Centralized Configuration Management for the alert scheduler

Uses Pydantic Settings for type-safe environment variable loading.
Each section reads its own environment prefix; the root Config also reads
a .env file.
"""

from typing import Dict, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_dispatch_probabilities() -> Dict[str, float]:
    return {"competitive": 0.7, "performance": 0.6, "network": 0.5}


class SchedulerConfig(BaseSettings):
    """Cycle cadence and agent selection."""

    interval_minutes: float = Field(
        default=45.0,
        gt=0,
        description="Minutes between cycle starts"
    )
    run_on_start: bool = Field(
        default=True,
        description="Run one cycle immediately when the scheduler starts"
    )
    cycle_timeout_seconds: Optional[float] = Field(
        default=900.0,
        description="Upper bound on one cycle's join; 0 or unset means unbounded"
    )
    scenario_probability: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Chance per cycle of dispatching a scenario generator"
    )
    dispatch_probabilities: Dict[str, float] = Field(
        default_factory=_default_dispatch_probabilities,
        description="Per-agent dispatch probability (JSON object in the environment)"
    )
    default_probability: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Dispatch probability for agents missing from dispatch_probabilities"
    )
    accuracy_bias: bool = Field(
        default=False,
        description="Scale dispatch probability by agent accuracy"
    )
    bias_floor: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Fraction of the base probability kept at 0% accuracy"
    )
    seed: Optional[int] = Field(
        default=None,
        description="Seed for the scheduler RNG (reproducible runs)"
    )
    history_size: int = Field(
        default=50,
        ge=1,
        description="Number of cycle summaries kept for introspection"
    )

    @field_validator("cycle_timeout_seconds")
    @classmethod
    def zero_means_unbounded(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            return None
        return v

    @field_validator("dispatch_probabilities")
    @classmethod
    def validate_probabilities(cls, v: Dict[str, float]) -> Dict[str, float]:
        for agent_id, p in v.items():
            if not 0.0 <= p <= 1.0:
                raise ValueError(f"dispatch probability for {agent_id} must be within [0, 1]")
        return v

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        case_sensitive=False
    )


class RunnerConfig(BaseSettings):
    """Per-agent retry and timeout."""

    max_retries: int = Field(
        default=2,
        ge=0,
        description="Additional attempts after the first"
    )
    base_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Linear backoff unit: attempt n waits n * base_delay"
    )
    attempt_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Timeout of a single detection attempt"
    )

    model_config = SettingsConfigDict(
        env_prefix="RUNNER_",
        case_sensitive=False
    )


class DeduplicationConfig(BaseSettings):
    """Duplicate suppression window."""

    enabled: bool = Field(default=True)
    lookback_hours: float = Field(default=24.0, gt=0)
    max_records: int = Field(default=50, ge=1)
    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(
        env_prefix="DEDUP_",
        case_sensitive=False
    )


class FeedbackConfig(BaseSettings):
    """Rolling accuracy window."""

    window_days: int = Field(default=30, ge=1)
    positive_rating: int = Field(default=4, ge=1, le=5)

    model_config = SettingsConfigDict(
        env_prefix="FEEDBACK_",
        case_sensitive=False
    )


class StoreConfig(BaseSettings):
    """Persistence backend."""

    backend: str = Field(
        default="memory",
        description="memory or sqlite"
    )
    sqlite_path: str = Field(
        default="alert_intelligence.db",
        description="SQLite database file"
    )

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        valid_backends = ["memory", "sqlite"]
        if v.lower() not in valid_backends:
            raise ValueError(f"backend must be one of {valid_backends}")
        return v.lower()

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False
    )


class APIConfig(BaseSettings):
    """FastAPI server configuration."""

    host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    port: int = Field(
        default=8000,
        description="API server port"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    enable_cors: bool = Field(
        default=True,
        description="Enable CORS"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    model_config = SettingsConfigDict(
        env_prefix="API_",
        case_sensitive=False
    )


class MetricsConfig(BaseSettings):
    """Prometheus metrics."""

    enabled: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_prefix="METRICS_",
        case_sensitive=False
    )


class Config(BaseSettings):
    """Main application configuration."""

    # Environment
    environment: str = Field(
        default="development",
        description="Application environment: development, staging, production"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Sub-configurations
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    dedup: DeduplicationConfig = Field(default_factory=DeduplicationConfig)
    feedback: FeedbackConfig = Field(default_factory=FeedbackConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        valid_envs = ["development", "staging", "production"]
        if v.lower() not in valid_envs:
            raise ValueError(f"environment must be one of {valid_envs}")
        return v.lower()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def validate_required(self) -> None:
        """Validate that production does not run on throwaway state."""
        if self.environment == "production":
            if self.store.backend == "memory":
                raise ValueError("STORE_BACKEND must be a durable backend in production")


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
        _config.validate_required()
    return _config


def reload_config() -> Config:
    """Reload configuration from environment (useful for testing)."""
    global _config
    _config = Config()
    _config.validate_required()
    return _config
