"""
Structured JSON logging and the audit trail.

Application logs go to stderr and a rotating ``concierge.log``; audit
events (guardrail decisions, workflow outcomes, agent runs, chat turns)
go to ``audit.jsonl`` only. Records emitted inside a workflow span carry
its trace and span ids.
"""

import json
import logging
import logging.config
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from opentelemetry import trace

from concierge.lib.config import LoggingConfig


AUDIT_LOGGER_NAME = "concierge.audit"

# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "taskName"}


class StructuredFormatter(logging.Formatter):
    """Renders each record as one JSON object."""

    def __init__(self, include_trace: bool = True, static_fields: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.include_trace = include_trace
        self.static_fields = static_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        if self.include_trace:
            span_context = trace.get_current_span().get_span_context()
            if span_context.is_valid:
                entry["trace_id"] = format(span_context.trace_id, "032x")
                entry["span_id"] = format(span_context.span_id, "016x")

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        entry.update((key, value) for key, value in vars(record).items() if key not in _RECORD_ATTRS)
        entry.update(self.static_fields)

        return json.dumps(entry, ensure_ascii=False, default=str)


class AuditLogger:
    """Writes audit events to the ``concierge.audit`` logger."""

    def __init__(self, logger_name: str = AUDIT_LOGGER_NAME):
        self.logger = logging.getLogger(logger_name)

    def _emit(self, audit_type: str, event_type: str, message: str,
              level: int = logging.INFO, **fields: Any) -> None:
        self.logger.log(level, message, extra={"audit_type": audit_type, "event_type": event_type, **fields})

    def log_guardrail_event(
        self,
        event_type: str,
        checks: List[str],
        tripped_checks: List[str],
        failed_checks: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Record which checks ran, which tripped and which could not execute."""
        self._emit(
            "guardrail", event_type,
            f"Guardrails {', '.join(tripped_checks)} tripped" if tripped_checks else "Guardrails passed",
            level=logging.WARNING if tripped_checks else logging.INFO,
            checks=checks,
            tripped_checks=tripped_checks,
            failed_checks=failed_checks or [],
            metadata=metadata or {},
        )

    def log_workflow_event(
        self,
        event_type: str,
        outcome: str,
        intent: Optional[str] = None,
        agent_name: Optional[str] = None,
        duration_ms: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        self._emit(
            "workflow", event_type, f"Workflow {outcome}",
            outcome=outcome,
            intent=intent,
            agent_name=agent_name,
            duration_ms=duration_ms,
            metadata=metadata or {},
        )

    def log_agent_event(
        self,
        event_type: str,
        agent_name: str,
        result: str,
        execution_time_ms: Optional[int] = None,
        tools_used: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        self._emit(
            "agent", event_type, f"{agent_name} run {result}",
            agent_name=agent_name,
            result=result,
            execution_time_ms=execution_time_ms,
            tools_used=tools_used or [],
            metadata=metadata or {},
        )

    def log_session_event(
        self,
        event_type: str,
        session_id: str,
        action: Optional[str] = None,
        result: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        self._emit(
            "session", event_type, f"Session {session_id}: {action or event_type}",
            session_id=session_id,
            action=action,
            result=result,
            metadata=metadata or {},
        )


def setup_logging(config: LoggingConfig, level: Optional[str] = None) -> None:
    """
    Configure the console, application and audit handlers.

    Args:
        config: Logging section of the concierge configuration
        level: Overrides ``config.level`` (the CLI passes DEBUG for --debug)
    """
    log_level = (level or config.level).upper()
    log_dir = Path(config.directory).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)

    def rotating(filename: str, handler_level: str) -> Dict[str, Any]:
        return {
            "class": "logging.handlers.RotatingFileHandler",
            "level": handler_level,
            "formatter": "structured",
            "filename": str(log_dir / filename),
            "maxBytes": config.max_file_size,
            "backupCount": config.backup_count,
            "encoding": "utf-8",
        }

    dependency_logger = {"level": "WARNING", "handlers": ["console", "application_file"], "propagate": False}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": StructuredFormatter,
                "include_trace": config.include_trace,
                "static_fields": {"service": "concierge", "environment": config.environment},
            },
            "simple": {"format": "%(asctime)s %(levelname)-8s %(name)s: %(message)s"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": config.format,
                "stream": sys.stderr,
            },
            "application_file": rotating("concierge.log", log_level),
            "audit_file": rotating("audit.jsonl", "INFO"),
        },
        "loggers": {
            "concierge": {"level": log_level, "handlers": ["console", "application_file"], "propagate": False},
            AUDIT_LOGGER_NAME: {"level": "INFO", "handlers": ["audit_file"], "propagate": False},
            "openai": dependency_logger,
            "httpx": dependency_logger,
            "opentelemetry": dependency_logger,
        },
        "root": {"level": log_level, "handlers": ["console"]},
    })

    logging.getLogger("concierge.logging").debug(
        f"Logging to {log_dir} at {log_level} ({config.format} console)"
    )


def get_audit_logger() -> AuditLogger:
    return AuditLogger()
