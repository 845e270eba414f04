"""
Consistent logging configuration for Campaign Forge.

Provides:
- Structured JSON logging with consistent schema
- Root logger configuration
- Per-module log level configuration
- Campaign correlation IDs carried through every record of a build
"""

import contextvars
import json
import logging
import sys
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# Context variable for the campaign currently being built
campaign_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "campaign_id", default=None
)


def get_campaign_id() -> str | None:
    """Get the campaign ID bound to the current context."""
    return campaign_id_var.get()


@contextmanager
def campaign_context(campaign_id: str) -> Iterator[None]:
    """Bind a campaign ID to every log record emitted inside the block."""
    token = campaign_id_var.set(campaign_id)
    try:
        yield
    finally:
        campaign_id_var.reset(token)


class LogEventType(str, Enum):
    """Standard event types for categorization."""

    # Build lifecycle
    BUILD_START = "build.start"
    BUILD_COMPLETE = "build.complete"
    BUILD_CANCELLED = "build.cancelled"

    # Pipeline steps
    TOPOLOGY_GENERATED = "topology.generated"
    MOVEMENT_PLANNED = "movement.planned"
    STAGE_SYNTHESIZED = "stage.synthesized"
    DETECTION_SIMULATED = "detection.simulated"
    CORRELATION_COMPLETE = "correlation.complete"
    TIMELINE_ASSEMBLED = "timeline.assembled"

    # Degraded results
    STEP_FAILED = "step.failed"

    # Output
    BATCH_WRITTEN = "batch.written"


class LogSchema(BaseModel):
    """
    Consistent schema for all log messages.

    All logged messages conform to this schema so simulation runs can be
    ingested back into the same SIEM the data is generated for.
    """

    timestamp: str = Field(description="ISO 8601 timestamp in UTC")
    level: str = Field(description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
    message: str = Field(description="Human-readable log message")
    logger: str = Field(description="Logger name (module path)")

    event_type: str | None = Field(
        default=None, description="Categorized event type from LogEventType enum"
    )
    campaign_id: str | None = Field(
        default=None, description="Campaign being built when the record was emitted"
    )
    stage_id: str | None = Field(default=None, description="Stage identifier")
    technique: str | None = Field(default=None, description="ATT&CK technique ID")

    error_type: str | None = Field(default=None, description="Exception class name")
    error_message: str | None = Field(default=None, description="Exception message")
    stack_trace: str | None = Field(default=None, description="Full stack trace")

    duration_ms: float | None = Field(
        default=None, description="Operation duration in milliseconds"
    )
    extra: dict[str, Any] | None = Field(
        default=None, description="Additional structured data"
    )

    source_file: str | None = Field(default=None, description="Source file name")
    source_line: int | None = Field(default=None, description="Source line number")
    source_function: str | None = Field(default=None, description="Function name")


_RESERVED_RECORD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
})


class StructuredLogFormatter(logging.Formatter):
    """
    Formatter that outputs structured JSON logs.

    Conforms to the LogSchema for consistent parsing.
    """

    def __init__(self, include_source: bool = True):
        super().__init__()
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as structured JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        campaign_id = get_campaign_id()
        if campaign_id:
            log_entry["campaign_id"] = campaign_id

        extra_fields = {}
        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_ATTRS:
                continue
            if key in LogSchema.model_fields:
                log_entry[key] = value
            else:
                extra_fields[key] = value

        if extra_fields:
            log_entry["extra"] = extra_fields

        if self.include_source:
            log_entry["source_file"] = record.filename
            log_entry["source_line"] = record.lineno
            log_entry["source_function"] = record.funcName

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            if exc_type:
                log_entry["error_type"] = exc_type.__name__
            if exc_value:
                log_entry["error_message"] = str(exc_value)
            log_entry["stack_trace"] = record.exc_text or self.formatException(
                record.exc_info
            )

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for console output.

    Includes colors and the active campaign ID when one is bound.
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record for human readability."""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        level = record.levelname
        if self.use_colors and level in self.COLORS:
            level = f"{self.COLORS[level]}{level:8}{self.RESET}"
        else:
            level = f"{level:8}"

        message = record.getMessage()
        output = f"{timestamp} | {level} | {record.name:40} | {message}"

        campaign_id = get_campaign_id()
        if campaign_id:
            output = f"{timestamp} | {level} | [{campaign_id}] {record.name:30} | {message}"

        if record.exc_info:
            output += "\n" + "".join(traceback.format_exception(*record.exc_info))

        return output


class LogConfig(BaseModel):
    """Configuration for the logging system."""

    level: str = Field(default="INFO", description="Default log level")
    format: str = Field(default="json", description="Output format: 'json' or 'human'")
    include_source: bool = Field(default=True, description="Include source file/line info")
    use_colors: bool = Field(default=True, description="Use colors in human format")

    module_levels: dict[str, str] = Field(
        default_factory=lambda: {
            "faker": "WARNING",
            "campaign_forge": "INFO",
            "campaign_forge.simulation": "INFO",
        },
        description="Per-module log level overrides",
    )


def configure_logging(config: LogConfig | None = None) -> None:
    """
    Configure the root logger and all module loggers.

    Call this once at application startup.
    """
    if config is None:
        config = LogConfig()

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Allow all, filter at handler level
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(getattr(logging, config.level.upper()))

    if config.format == "json":
        formatter: logging.Formatter = StructuredLogFormatter(
            include_source=config.include_source,
        )
    else:
        formatter = HumanReadableFormatter(use_colors=config.use_colors)

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    for module, level in config.module_levels.items():
        logging.getLogger(module).setLevel(getattr(logging, level.upper()))
