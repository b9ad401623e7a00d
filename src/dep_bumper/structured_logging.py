"""
Structured logging configuration for dep-bumper.

Emits one JSON object per event so that update runs in CI can be inspected
and aggregated by machine.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_RESERVED_RECORD_KEYS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "getMessage",
    "exc_info",
    "exc_text",
    "stack_info",
}


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class EventLogger:
    """Structured logger for update-run events."""

    def __init__(self, name: str = "dep_bumper"):
        self.logger = logging.getLogger(f"dep_bumper.{name}")
        self._setup_logger()
        self.run_context: Dict[str, Any] = {}

    def _setup_logger(self) -> None:
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.WARNING)
            self.logger.propagate = False

    def set_run_context(self, run_id: Optional[str] = None, **kwargs) -> None:
        """Set context attached to every event of the current run."""
        self.run_context = {k: v for k, v in kwargs.items() if v is not None}
        if run_id:
            self.run_context["run_id"] = run_id

    def clear_run_context(self) -> None:
        self.run_context.clear()

    def _log(self, level: str, event_type: str, **kwargs) -> None:
        log_data = {"event_type": event_type, **self.run_context, **kwargs}
        getattr(self.logger, level)("", extra=log_data)

    def info(self, event_type: str, **kwargs) -> None:
        self._log("info", event_type, **kwargs)

    def warning(self, event_type: str, **kwargs) -> None:
        self._log("warning", event_type, **kwargs)

    def error(self, event_type: str, **kwargs) -> None:
        self._log("error", event_type, **kwargs)

    def debug(self, event_type: str, **kwargs) -> None:
        self._log("debug", event_type, **kwargs)


_registry_logger = EventLogger("registry")
_resolver_logger = EventLogger("resolver")
_collector_logger = EventLogger("collector")
_commit_logger = EventLogger("commit")

_ALL_LOGGERS = [_registry_logger, _resolver_logger, _collector_logger, _commit_logger]


def get_registry_logger() -> EventLogger:
    """Get registry request logger."""
    return _registry_logger


def get_resolver_logger() -> EventLogger:
    """Get version resolution logger."""
    return _resolver_logger


def get_collector_logger() -> EventLogger:
    """Get update collection logger."""
    return _collector_logger


def get_commit_logger() -> EventLogger:
    """Get commit sequence logger."""
    return _commit_logger


def log_registry_request(
    registry: str,
    package_name: str,
    method: str,
    status_code: Optional[int] = None,
    response_time_ms: Optional[float] = None,
) -> None:
    """Log a single outbound registry request."""
    log_data: Dict[str, Any] = {
        "registry": registry,
        "package_name": package_name,
        "method": method,
    }
    if status_code is not None:
        log_data["status_code"] = status_code
    if response_time_ms is not None:
        log_data["response_time_ms"] = response_time_ms

    _registry_logger.debug("registry_request", **log_data)


def log_resolution(
    package_name: str,
    current: Optional[str],
    latest: Optional[str],
    cached: bool = False,
) -> None:
    """Log the outcome of resolving one dependency."""
    if latest is None:
        _resolver_logger.debug(
            "dependency_up_to_date",
            package_name=package_name,
            current=current,
            cached=cached,
        )
    else:
        _resolver_logger.info(
            "dependency_update_found",
            package_name=package_name,
            current=current,
            latest=latest,
            cached=cached,
        )


def log_collect_complete(
    entrypoints: int, occurrences: int, updates: int, duration_ms: int
) -> None:
    """Log completion of an update collection."""
    _collector_logger.info(
        "collect_completed",
        entrypoints=entrypoints,
        occurrences=occurrences,
        updates=updates,
        duration_ms=duration_ms,
    )


def log_commit(position: int, group: str, message: str, files: int) -> None:
    """Log a commit created by the commit sequence."""
    _commit_logger.info(
        "commit_created",
        position=position,
        group=group,
        commit_message=message,
        files=files,
    )


def set_run_context(run_id: Optional[str] = None, **kwargs) -> None:
    """Set global run context for all loggers."""
    for logger in _ALL_LOGGERS:
        logger.set_run_context(run_id, **kwargs)


def clear_run_context() -> None:
    """Clear global run context."""
    for logger in _ALL_LOGGERS:
        logger.clear_run_context()


def configure_logging(log_level: str = "WARNING") -> None:
    """Configure logging level for all event loggers."""
    level = getattr(logging, log_level.upper(), logging.WARNING)
    for logger in _ALL_LOGGERS:
        logger.logger.setLevel(level)
