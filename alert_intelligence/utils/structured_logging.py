"""
Structured Logging - JSON logging with cycle and agent context

Runners for different agents execute concurrently inside one scheduling
cycle; every structured line carries the cycle, agent and execution ids
taken from context variables so interleaved output can be told apart.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

cycle_id_var: ContextVar[str] = ContextVar("cycle_id", default="")
agent_id_var: ContextVar[str] = ContextVar("agent_id", default="")
execution_id_var: ContextVar[str] = ContextVar("execution_id", default="")


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StructuredLogger:
    """Logger that renders each message as a JSON document with the current context."""

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)

    def _get_context(self) -> Dict[str, str]:
        return {
            "cycle_id": cycle_id_var.get(),
            "agent_id": agent_id_var.get(),
            "execution_id": execution_id_var.get(),
        }

    def _format_message(self,
                        level: LogLevel,
                        message: str,
                        extra: Optional[Dict[str, Any]] = None) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level.value,
            "logger": self.name,
            "message": message,
            "context": self._get_context(),
        }

        if extra:
            log_entry["extra"] = extra

        return json.dumps(log_entry, ensure_ascii=False, default=str)

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None):
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(self._format_message(LogLevel.DEBUG, message, extra))

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self.logger.info(self._format_message(LogLevel.INFO, message, extra))

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self.logger.warning(self._format_message(LogLevel.WARNING, message, extra))

    def error(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self.logger.error(self._format_message(LogLevel.ERROR, message, extra))

    def audit(self,
              action: str,
              resource: str,
              result: str,
              extra: Optional[Dict[str, Any]] = None):
        """Audit line for state changes (alert persisted, accuracy updated)."""
        audit_data = {
            "action": action,
            "resource": resource,
            "result": result,
        }

        if extra:
            audit_data.update(extra)

        self.info(f"AUDIT: {action} on {resource}", audit_data)


class LogContext:
    """Setters for the context variables read by StructuredLogger."""

    @staticmethod
    def new_cycle_id() -> str:
        return f"cycle_{uuid.uuid4().hex[:12]}"

    @staticmethod
    def set_cycle_id(cycle_id: str):
        return cycle_id_var.set(cycle_id)

    @staticmethod
    def get_cycle_id() -> str:
        return cycle_id_var.get()

    @staticmethod
    def set_agent_id(agent_id: str):
        return agent_id_var.set(agent_id)

    @staticmethod
    def get_agent_id() -> str:
        return agent_id_var.get()

    @staticmethod
    def set_execution_id(execution_id: str):
        return execution_id_var.set(execution_id)

    @staticmethod
    def get_execution_id() -> str:
        return execution_id_var.get()

    @staticmethod
    def reset_cycle_id(token):
        cycle_id_var.reset(token)

    @staticmethod
    def reset_agent_id(token):
        agent_id_var.reset(token)

    @staticmethod
    def reset_execution_id(token):
        execution_id_var.reset(token)


def setup_logging(log_level: str = "INFO") -> None:
    """Configure process-wide logging for the application."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
    )
