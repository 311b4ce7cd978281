"""SQLite-backed AlertStore: one table per collection, metadata stored as JSON text."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, List, Optional, TypeVar

from alert_intelligence.core.enums import AlertStatus
from alert_intelligence.core.models import (
    Activity,
    AgentRecord,
    Alert,
    AlertFilter,
    ExecutionRecord,
    FeedbackEvent,
)
from alert_intelligence.utils.error_handling import (
    AgentNotFoundError,
    AlertNotFoundError,
    StoreError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS alerts (
    id TEXT PRIMARY KEY,
    agent_id TEXT NOT NULL,
    category TEXT NOT NULL,
    priority TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    route TEXT,
    alert_type TEXT,
    impact_score REAL,
    confidence REAL NOT NULL,
    metadata TEXT NOT NULL DEFAULT '{}',
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT NOT NULL,
    acknowledged_at TEXT,
    resolved_at TEXT
);

CREATE TABLE IF NOT EXISTS agents (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    accuracy REAL NOT NULL DEFAULT 0,
    total_analyses INTEGER NOT NULL DEFAULT 0,
    alerts_generated INTEGER NOT NULL DEFAULT 0,
    successful_predictions INTEGER NOT NULL DEFAULT 0,
    configuration TEXT NOT NULL DEFAULT '{}',
    last_active TEXT,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS execution_records (
    execution_id TEXT PRIMARY KEY,
    agent_id TEXT NOT NULL,
    cycle_id TEXT,
    started_at TEXT NOT NULL,
    finished_at TEXT NOT NULL,
    outcome TEXT NOT NULL,
    attempts INTEGER NOT NULL,
    alerts_emitted INTEGER NOT NULL,
    duplicates_suppressed INTEGER NOT NULL,
    last_error TEXT,
    error_category TEXT
);

CREATE TABLE IF NOT EXISTS feedback (
    id TEXT PRIMARY KEY,
    alert_id TEXT NOT NULL,
    agent_id TEXT NOT NULL,
    rater_id TEXT NOT NULL,
    rating INTEGER NOT NULL,
    comment TEXT,
    action_taken INTEGER NOT NULL DEFAULT 0,
    impact_realized REAL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS activities (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    agent_id TEXT,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_alerts_agent_created ON alerts(agent_id, created_at);
CREATE INDEX IF NOT EXISTS idx_alerts_status ON alerts(status);
CREATE INDEX IF NOT EXISTS idx_executions_agent ON execution_records(agent_id, started_at);
CREATE INDEX IF NOT EXISTS idx_feedback_agent_created ON feedback(agent_id, created_at);
"""


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_alert(row: sqlite3.Row) -> Alert:
    return Alert(
        id=row["id"],
        agent_id=row["agent_id"],
        category=row["category"],
        priority=row["priority"],
        title=row["title"],
        description=row["description"],
        route=row["route"],
        alert_type=row["alert_type"],
        impact_score=row["impact_score"],
        confidence=row["confidence"],
        metadata=json.loads(row["metadata"]),
        status=row["status"],
        created_at=_parse_ts(row["created_at"]),
        acknowledged_at=_parse_ts(row["acknowledged_at"]),
        resolved_at=_parse_ts(row["resolved_at"]),
    )


def _row_to_agent(row: sqlite3.Row) -> AgentRecord:
    return AgentRecord(
        id=row["id"],
        name=row["name"],
        status=row["status"],
        accuracy=row["accuracy"],
        total_analyses=row["total_analyses"],
        alerts_generated=row["alerts_generated"],
        successful_predictions=row["successful_predictions"],
        configuration=json.loads(row["configuration"]),
        last_active=_parse_ts(row["last_active"]),
        updated_at=_parse_ts(row["updated_at"]),
    )


def _row_to_execution(row: sqlite3.Row) -> ExecutionRecord:
    return ExecutionRecord(
        execution_id=row["execution_id"],
        agent_id=row["agent_id"],
        cycle_id=row["cycle_id"],
        started_at=_parse_ts(row["started_at"]),
        finished_at=_parse_ts(row["finished_at"]),
        outcome=row["outcome"],
        attempts=row["attempts"],
        alerts_emitted=row["alerts_emitted"],
        duplicates_suppressed=row["duplicates_suppressed"],
        last_error=row["last_error"],
        error_category=row["error_category"],
    )


def _row_to_feedback(row: sqlite3.Row) -> FeedbackEvent:
    return FeedbackEvent(
        id=row["id"],
        alert_id=row["alert_id"],
        agent_id=row["agent_id"],
        rater_id=row["rater_id"],
        rating=row["rating"],
        comment=row["comment"],
        action_taken=bool(row["action_taken"]),
        impact_realized=row["impact_realized"],
        created_at=_parse_ts(row["created_at"]),
    )


def _row_to_activity(row: sqlite3.Row) -> Activity:
    return Activity(
        id=row["id"],
        type=row["type"],
        title=row["title"],
        description=row["description"],
        agent_id=row["agent_id"],
        metadata=json.loads(row["metadata"]),
        created_at=_parse_ts(row["created_at"]),
    )


class SQLiteAlertStore:
    """
    Durable AlertStore on a single SQLite file.

    Blocking sqlite3 calls run in worker threads; a threading lock
    serializes them on the shared connection. Agent read-modify-write runs
    inside one IMMEDIATE transaction, so concurrent writers from other
    processes resolve as last-write-wins.
    """

    def __init__(self, db_path: str | Path = "alert_intelligence.db"):
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            conn = None
            try:
                if self.db_path != ":memory:":
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode=WAL")
                conn.executescript(SCHEMA_SQL)
                conn.execute(f"PRAGMA user_version={SCHEMA_VERSION}")
            except (sqlite3.Error, OSError) as e:
                if conn is not None:
                    conn.close()
                raise StoreUnavailableError(f"Cannot open SQLite store at {self.db_path}: {e}") from e
            self._conn = conn
        return self._conn

    async def _run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        def _locked() -> T:
            with self._lock:
                try:
                    conn = self._connect()
                    return fn(conn)
                except sqlite3.OperationalError as e:
                    raise StoreUnavailableError(str(e)) from e
                except sqlite3.Error as e:
                    raise StoreError(str(e)) from e
        return await asyncio.to_thread(_locked)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    async def ping(self) -> None:
        await self._run(lambda conn: conn.execute("SELECT 1").fetchone())

    # alerts

    async def create(self, alert: Alert) -> str:
        def _insert(conn: sqlite3.Connection) -> str:
            conn.execute(
                """INSERT INTO alerts (id, agent_id, category, priority, title, description,
                   route, alert_type, impact_score, confidence, metadata, status, created_at,
                   acknowledged_at, resolved_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    alert.id, alert.agent_id, alert.category.value, alert.priority.value,
                    alert.title, alert.description, alert.route, alert.alert_type,
                    alert.impact_score, alert.confidence, json.dumps(alert.metadata),
                    alert.status.value, _ts(alert.created_at), _ts(alert.acknowledged_at),
                    _ts(alert.resolved_at),
                ),
            )
            return alert.id
        return await self._run(_insert)

    async def get(self, alert_id: str) -> Optional[Alert]:
        def _select(conn: sqlite3.Connection) -> Optional[Alert]:
            row = conn.execute("SELECT * FROM alerts WHERE id = ?", (alert_id,)).fetchone()
            return _row_to_alert(row) if row else None
        return await self._run(_select)

    async def list_recent(self, alert_filter: Optional[AlertFilter] = None, limit: int = 50) -> List[Alert]:
        alert_filter = alert_filter or AlertFilter()
        clauses: List[str] = []
        params: List[Any] = []
        if alert_filter.agent_id is not None:
            clauses.append("agent_id = ?")
            params.append(alert_filter.agent_id)
        if alert_filter.category is not None:
            clauses.append("category = ?")
            params.append(alert_filter.category.value)
        if alert_filter.match_route:
            if alert_filter.route is None:
                clauses.append("route IS NULL")
            else:
                clauses.append("route = ?")
                params.append(alert_filter.route)
        if alert_filter.statuses is not None:
            if not alert_filter.statuses:
                return []
            clauses.append(f"status IN ({', '.join('?' for _ in alert_filter.statuses)})")
            params.extend(s.value for s in alert_filter.statuses)
        if alert_filter.since is not None:
            clauses.append("created_at >= ?")
            params.append(_ts(alert_filter.since))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        query = f"SELECT * FROM alerts {where} ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        def _select(conn: sqlite3.Connection) -> List[Alert]:
            return [_row_to_alert(r) for r in conn.execute(query, params).fetchall()]
        return await self._run(_select)

    async def update_status(self, alert_id: str, status: AlertStatus) -> Alert:
        def _update(conn: sqlite3.Connection) -> Alert:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute("SELECT * FROM alerts WHERE id = ?", (alert_id,)).fetchone()
                if row is None:
                    raise AlertNotFoundError(alert_id)
                updated = _row_to_alert(row).transition_to(status)
                conn.execute(
                    "UPDATE alerts SET status = ?, acknowledged_at = ?, resolved_at = ? WHERE id = ?",
                    (updated.status.value, _ts(updated.acknowledged_at), _ts(updated.resolved_at), alert_id),
                )
                conn.execute("COMMIT")
                return updated
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        return await self._run(_update)

    # agents

    async def ensure_agent(self, record: AgentRecord) -> AgentRecord:
        def _upsert(conn: sqlite3.Connection) -> AgentRecord:
            conn.execute(
                """INSERT OR IGNORE INTO agents (id, name, status, accuracy, total_analyses,
                   alerts_generated, successful_predictions, configuration, last_active, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.id, record.name, record.status.value, record.accuracy,
                    record.total_analyses, record.alerts_generated, record.successful_predictions,
                    json.dumps(record.configuration), _ts(record.last_active), _ts(record.updated_at),
                ),
            )
            row = conn.execute("SELECT * FROM agents WHERE id = ?", (record.id,)).fetchone()
            return _row_to_agent(row)
        return await self._run(_upsert)

    async def get_agent(self, agent_id: str) -> Optional[AgentRecord]:
        def _select(conn: sqlite3.Connection) -> Optional[AgentRecord]:
            row = conn.execute("SELECT * FROM agents WHERE id = ?", (agent_id,)).fetchone()
            return _row_to_agent(row) if row else None
        return await self._run(_select)

    async def list_agents(self) -> List[AgentRecord]:
        def _select(conn: sqlite3.Connection) -> List[AgentRecord]:
            return [_row_to_agent(r) for r in conn.execute("SELECT * FROM agents ORDER BY id").fetchall()]
        return await self._run(_select)

    async def update_agent(self, agent_id: str, mutate: Callable[[AgentRecord], AgentRecord]) -> AgentRecord:
        def _rmw(conn: sqlite3.Connection) -> AgentRecord:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute("SELECT * FROM agents WHERE id = ?", (agent_id,)).fetchone()
                if row is None:
                    raise AgentNotFoundError(agent_id)
                updated = mutate(_row_to_agent(row))
                conn.execute(
                    """UPDATE agents SET name = ?, status = ?, accuracy = ?, total_analyses = ?,
                       alerts_generated = ?, successful_predictions = ?, configuration = ?,
                       last_active = ?, updated_at = ? WHERE id = ?""",
                    (
                        updated.name, updated.status.value, updated.accuracy, updated.total_analyses,
                        updated.alerts_generated, updated.successful_predictions,
                        json.dumps(updated.configuration), _ts(updated.last_active),
                        _ts(updated.updated_at), agent_id,
                    ),
                )
                conn.execute("COMMIT")
                return updated
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        return await self._run(_rmw)

    # execution records

    async def record_execution(self, record: ExecutionRecord) -> None:
        if not record.is_finalized:
            raise StoreError(f"Execution {record.execution_id} must be finalized before it is recorded")

        def _insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                """INSERT INTO execution_records (execution_id, agent_id, cycle_id, started_at,
                   finished_at, outcome, attempts, alerts_emitted, duplicates_suppressed,
                   last_error, error_category)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.execution_id, record.agent_id, record.cycle_id, _ts(record.started_at),
                    _ts(record.finished_at), record.outcome.value, record.attempts,
                    record.alerts_emitted, record.duplicates_suppressed, record.last_error,
                    record.error_category,
                ),
            )
        await self._run(_insert)

    async def list_executions(self, agent_id: Optional[str] = None, limit: int = 100) -> List[ExecutionRecord]:
        def _select(conn: sqlite3.Connection) -> List[ExecutionRecord]:
            if agent_id is None:
                rows = conn.execute(
                    "SELECT * FROM execution_records ORDER BY started_at DESC LIMIT ?", (limit,)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM execution_records WHERE agent_id = ? ORDER BY started_at DESC LIMIT ?",
                    (agent_id, limit),
                ).fetchall()
            return [_row_to_execution(r) for r in rows]
        return await self._run(_select)

    # feedback

    async def add_feedback(self, event: FeedbackEvent) -> None:
        def _insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                """INSERT INTO feedback (id, alert_id, agent_id, rater_id, rating, comment,
                   action_taken, impact_realized, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    event.id, event.alert_id, event.agent_id, event.rater_id, event.rating,
                    event.comment, int(event.action_taken), event.impact_realized,
                    _ts(event.created_at),
                ),
            )
        await self._run(_insert)

    async def list_feedback(self, agent_id: str, since: Optional[datetime] = None) -> List[FeedbackEvent]:
        def _select(conn: sqlite3.Connection) -> List[FeedbackEvent]:
            if since is None:
                rows = conn.execute(
                    "SELECT * FROM feedback WHERE agent_id = ? ORDER BY created_at", (agent_id,)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM feedback WHERE agent_id = ? AND created_at >= ? ORDER BY created_at",
                    (agent_id, _ts(since)),
                ).fetchall()
            return [_row_to_feedback(r) for r in rows]
        return await self._run(_select)

    # activity log

    async def append_activity(self, activity: Activity) -> None:
        def _insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                """INSERT INTO activities (id, type, title, description, agent_id, metadata, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    activity.id, activity.type.value, activity.title, activity.description,
                    activity.agent_id, json.dumps(activity.metadata), _ts(activity.created_at),
                ),
            )
        await self._run(_insert)

    async def list_activities(self, limit: int = 50) -> List[Activity]:
        def _select(conn: sqlite3.Connection) -> List[Activity]:
            rows = conn.execute(
                "SELECT * FROM activities ORDER BY created_at DESC LIMIT ?", (limit,)
            ).fetchall()
            return [_row_to_activity(r) for r in rows]
        return await self._run(_select)
