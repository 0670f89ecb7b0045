"""
Structured logging for sync workflows.

Every line logged while a workflow runs carries its workflow id, taken from a
context variable, so the lines of concurrent workflows can be told apart.
Production logs are JSON (one object per line); LOG_JSON=false switches to a
compact console format for local runs.
"""
import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

workflow_id_var: ContextVar[str] = ContextVar("workflow_id", default="")

# LogRecord attributes that are not caller-supplied extras
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def _extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    Fields: timestamp (UTC, ISO 8601), level, logger, message, workflow_id,
    exception (when present) and extra (the ``extra=`` dict of the call).
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "workflow_id": workflow_id_var.get(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        extra = _extras(record)
        if extra:
            log_data["extra"] = extra
        # Enums and datetimes in extras are rendered with str()
        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored single-line output: level, logger, message, workflow id and extras."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        line = f"{color}[{record.levelname}]{self.RESET} {record.name}: {record.getMessage()}"
        workflow_id = workflow_id_var.get()
        if workflow_id:
            line += f" | workflow_id={workflow_id}"
        for key, value in _extras(record).items():
            line += f" {key}={value}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    handler: logging.Handler | None = None,
) -> None:
    """
    Configure the root logger for the pipeline.

    Args:
        level: Logging level name
        json_output: JSON lines when True, console format otherwise
        handler: Handler to install (a stdout StreamHandler by default)
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(log_level)
    handler.setFormatter(JSONFormatter() if json_output else ConsoleFormatter())
    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


@contextmanager
def workflow_context(workflow_id: str) -> Iterator[None]:
    """Tag every line logged inside the block with workflow_id."""
    token = workflow_id_var.set(workflow_id)
    try:
        yield
    finally:
        workflow_id_var.reset(token)


def current_workflow_id() -> str:
    """The running workflow's id, or "" outside a workflow."""
    return workflow_id_var.get()
