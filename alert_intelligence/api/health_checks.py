"""
Health Checks - readiness and liveness of the alert-generation core.

The store is the only cross-cutting dependency: an unreachable store makes
the application UNHEALTHY. A scheduler that is not running, or whose last
cycle failed, makes it DEGRADED. Single-agent failures never show up here.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from alert_intelligence.core.enums import CycleOutcome, HealthStatus

logger = logging.getLogger(__name__)


class ServiceHealth(BaseModel):
    """Health of one dependency."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Service name")
    status: HealthStatus = Field(..., description="Health status")
    response_time_ms: float = Field(..., ge=0, description="Check duration in ms")
    last_check: datetime = Field(..., description="Check timestamp")
    error: Optional[str] = Field(None, description="Error message when not healthy")


class ApplicationHealth(BaseModel):
    """Aggregated application health."""
    model_config = ConfigDict(frozen=True)

    status: HealthStatus = Field(..., description="Overall status")
    timestamp: datetime = Field(..., description="Check timestamp")
    uptime_seconds: float = Field(..., ge=0, description="Seconds since start")
    services: Dict[str, ServiceHealth] = Field(..., description="Per-service health")


class HealthChecker:
    """Builds the readiness signal from the store and the scheduler."""

    def __init__(self, store=None, scheduler=None, check_timeout_seconds: float = 5.0):
        self.store = store
        self.scheduler = scheduler
        self.check_timeout_seconds = check_timeout_seconds
        self.start_time = datetime.now(timezone.utc)

    def check_liveness(self) -> HealthStatus:
        """The process is answering; no dependency is consulted."""
        return HealthStatus.HEALTHY

    async def check_readiness(self) -> ApplicationHealth:
        services = {}
        if self.store is not None:
            services["store"] = await self._check_store()
        if self.scheduler is not None:
            services["scheduler"] = self._check_scheduler()

        statuses = [s.status for s in services.values()]
        if all(s == HealthStatus.HEALTHY for s in statuses):
            overall_status = HealthStatus.HEALTHY
        elif any(s == HealthStatus.UNHEALTHY for s in statuses):
            overall_status = HealthStatus.UNHEALTHY
        else:
            overall_status = HealthStatus.DEGRADED

        health = ApplicationHealth(
            status=overall_status,
            timestamp=datetime.now(timezone.utc),
            uptime_seconds=(datetime.now(timezone.utc) - self.start_time).total_seconds(),
            services=services,
        )
        if overall_status != HealthStatus.HEALTHY:
            logger.warning(f"Readiness check: {overall_status.value}")
        return health

    async def _check_store(self) -> ServiceHealth:
        start_time = time.monotonic()
        try:
            await asyncio.wait_for(self.store.ping(), timeout=self.check_timeout_seconds)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Store health check failed: {e}")
            return ServiceHealth(
                name="store",
                status=HealthStatus.UNHEALTHY,
                response_time_ms=(time.monotonic() - start_time) * 1000,
                last_check=datetime.now(timezone.utc),
                error=str(e) or type(e).__name__,
            )
        return ServiceHealth(
            name="store",
            status=HealthStatus.HEALTHY,
            response_time_ms=(time.monotonic() - start_time) * 1000,
            last_check=datetime.now(timezone.utc),
        )

    def _check_scheduler(self) -> ServiceHealth:
        status = self.scheduler.get_status()
        error = None
        if not status.is_running:
            error = f"scheduler is {status.state.value}"
        elif status.last_cycle_outcome == CycleOutcome.FAILED:
            error = "last cycle failed"
        return ServiceHealth(
            name="scheduler",
            status=HealthStatus.DEGRADED if error else HealthStatus.HEALTHY,
            response_time_ms=0.0,
            last_check=datetime.now(timezone.utc),
            error=error,
        )
