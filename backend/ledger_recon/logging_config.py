"""
Ledger Reconciliation - Structured JSON Logging

Provides structured logging for reconciliation runs.
Outputs JSON format for log aggregation (Datadog, CloudWatch, etc.)
"""

import logging
import json
import sys
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import traceback


_RESERVED_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName"
}


class JSONFormatter(logging.Formatter):
    """
    Custom formatter that outputs JSON logs.
    Compatible with log aggregation services.
    """

    def __init__(self, service_name: str = "ledger-recon"):
        super().__init__()
        self.service_name = service_name
        self.environment = os.environ.get("ENVIRONMENT", "development")
        self.hostname = os.environ.get("HOSTNAME", "unknown")

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "environment": self.environment,
            "hostname": self.hostname,
        }

        log_data["location"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info) if record.exc_info[0] else None,
            }

        extra_fields = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)


class RunContextFilter(logging.Filter):
    """
    Stamps the active reconciliation run id on log records.
    """

    def __init__(self):
        super().__init__()
        self._run_id: Optional[str] = None

    @property
    def run_id(self) -> Optional[str]:
        return self._run_id

    def set_run_context(self, run_id: Optional[str] = None):
        self._run_id = run_id

    def clear_run_context(self):
        self._run_id = None

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = self._run_id
        return True


# Global run context filter instance
_run_context_filter = RunContextFilter()


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    service_name: str = "ledger-recon"
) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True for production)
        service_name: Service name for log aggregation

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))

    if json_format:
        handler.setFormatter(JSONFormatter(service_name=service_name))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [run=%(run_id)s] %(message)s"
        ))

    handler.addFilter(_run_context_filter)
    root_logger.addHandler(handler)

    return root_logger


def configure_logging(settings, service_name: str = "ledger-recon") -> logging.Logger:
    """Configure logging from engine settings. Production always logs JSON."""
    return setup_logging(
        level=settings.LOG_LEVEL,
        json_format=settings.LOG_JSON or settings.is_production,
        service_name=service_name
    )


def set_run_context(run_id: Optional[str] = None):
    """Set reconciliation run context for logging."""
    _run_context_filter.set_run_context(run_id)


def clear_run_context():
    """Clear reconciliation run context."""
    _run_context_filter.clear_run_context()


def get_run_context() -> Optional[str]:
    """Return the run id currently stamped on log records."""
    return _run_context_filter.run_id
