"""
HTTP surface of the alert-generation core.

The lifespan seeds agent records and starts the scheduler; shutdown stops
it gracefully so in-flight writes complete.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from alert_intelligence import __version__
from alert_intelligence.api.health_checks import HealthChecker
from alert_intelligence.bootstrap import System, build_system
from alert_intelligence.core.enums import AlertCategory, AlertStatus, HealthStatus
from alert_intelligence.core.models import AlertFilter
from alert_intelligence.utils.error_handling import (
    AgentNotFoundError,
    AlertNotFoundError,
    FeedbackValidationError,
    InvalidStatusTransitionError,
    SchedulerStoppedError,
    StoreError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)


class StatusUpdate(BaseModel):
    status: AlertStatus


def create_app(system: Optional[System] = None, start_scheduler: bool = True) -> FastAPI:
    system = system or build_system()
    health_checker = HealthChecker(store=system.store, scheduler=system.scheduler)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await system.initialize()
        if start_scheduler:
            system.start()
        yield
        await system.shutdown()

    app = FastAPI(
        title="Alert Intelligence",
        version=__version__,
        description="Scheduled alert generation with deduplication and feedback-driven accuracy",
        lifespan=lifespan,
    )
    app.state.system = system

    if system.config.api.enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error(f"Store failure on {request.url.path}: {exc}")
        status_code = 503 if isinstance(exc, StoreUnavailableError) else 500
        return JSONResponse(status_code=status_code, content={"detail": "Alert store failure"})

    # health

    @app.get("/health")
    async def health_check():
        health = await health_checker.check_readiness()
        status_code = 503 if health.status == HealthStatus.UNHEALTHY else 200
        return JSONResponse(status_code=status_code, content=health.model_dump(mode="json"))

    @app.get("/health/live")
    async def liveness():
        return {"status": health_checker.check_liveness().value}

    @app.get("/metrics")
    async def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # scheduler

    @app.get("/api/scheduler/status")
    async def scheduler_status():
        return system.scheduler.get_status().model_dump(mode="json", by_alias=True)

    @app.get("/api/scheduler/history")
    async def scheduler_history():
        return [s.model_dump(mode="json") for s in reversed(system.scheduler.history)]

    @app.post("/api/scheduler/trigger", status_code=202)
    async def trigger_cycle():
        try:
            handle = await system.scheduler.trigger_manual_run()
        except SchedulerStoppedError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return {"cycleId": handle.cycle_id, "coalesced": handle.coalesced, "trigger": handle.trigger.value}

    # feedback

    @app.post("/api/feedback", status_code=201)
    async def submit_feedback(payload: Dict[str, Any] = Body(...)):
        try:
            result = await system.feedback_ledger.submit(payload)
        except FeedbackValidationError as e:
            return JSONResponse(status_code=422, content={"detail": str(e), "errors": e.errors})
        except (AlertNotFoundError, AgentNotFoundError) as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {
            "feedback": result.event.model_dump(mode="json"),
            "agent": {"id": result.agent.id, "accuracy": result.agent.accuracy},
        }

    # alerts

    @app.get("/api/alerts")
    async def list_alerts(
        agent_id: Optional[str] = None,
        category: Optional[AlertCategory] = None,
        status: Optional[AlertStatus] = None,
        limit: int = Query(50, ge=1, le=500),
    ):
        alert_filter = AlertFilter(
            agent_id=agent_id,
            category=category,
            statuses={status} if status else None,
        )
        alerts = await system.store.list_recent(alert_filter, limit=limit)
        return [a.model_dump(mode="json") for a in alerts]

    @app.get("/api/alerts/{alert_id}")
    async def get_alert(alert_id: str):
        alert = await system.store.get(alert_id)
        if alert is None:
            raise HTTPException(status_code=404, detail=f"Alert not found: {alert_id}")
        return alert.model_dump(mode="json")

    @app.patch("/api/alerts/{alert_id}/status")
    async def update_alert_status(alert_id: str, update: StatusUpdate):
        try:
            alert = await system.store.update_status(alert_id, update.status)
        except AlertNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except InvalidStatusTransitionError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return alert.model_dump(mode="json")

    # agents and audit trail

    @app.get("/api/agents")
    async def list_agents():
        return [a.model_dump(mode="json") for a in await system.store.list_agents()]

    @app.get("/api/executions")
    async def list_executions(agent_id: Optional[str] = None, limit: int = Query(100, ge=1, le=1000)):
        records = await system.store.list_executions(agent_id=agent_id, limit=limit)
        return [r.model_dump(mode="json") for r in records]

    @app.get("/api/activities")
    async def list_activities(limit: int = Query(50, ge=1, le=500)):
        return [a.model_dump(mode="json") for a in await system.store.list_activities(limit=limit)]

    @app.get("/api/scenarios/stats")
    async def scenario_stats():
        return system.catalogue.stats()

    return app
