"""Loguru setup with a readable console sink and a structured JSON sink.

The console formatter renders request and invocation context inline
(correlation id, destination, action, tenant) so a developer can follow a
call as it crosses cells. The JSON formatter emits one object per line for
log collectors. Standard library loggers, including uvicorn and SQLAlchemy,
are routed into Loguru through ``InterceptHandler``.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Final, Protocol, cast

from loguru import logger

from cellgate.core.config import get_settings
from cellgate.core.constants import REDACTED


class _LoggingState:
    """Tracks whether logging has been configured for this process."""

    def __init__(self) -> None:
        self.configured = False


_state = _LoggingState()


class LogConfigProtocol(Protocol):
    """Protocol for log configuration objects."""

    @property
    def log_level(self) -> str:
        """Logging level."""
        ...

    @property
    def log_formatter_type(self) -> str | None:
        """Log formatter type."""
        ...


class SettingsProtocol(Protocol):
    """Protocol for settings objects that setup_logging can accept."""

    @property
    def debug(self) -> bool:
        """Debug mode flag."""
        ...

    @property
    def log_config(self) -> LogConfigProtocol:
        """Log configuration."""
        ...


DEFAULT_LOG_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)
CORRELATION_ID_DISPLAY_LENGTH: Final[int] = 8
MAX_FIELD_VALUE_LENGTH: Final[int] = 100

# Shown first, in this order, when present on a record
PRIORITY_FIELDS: Final[tuple[str, ...]] = (
    "correlation_id",
    "request_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "destination",
    "action",
    "channel",
    "tenant_id",
)


def _escape(text: str) -> str:
    return text.replace("{", "{{").replace("}", "}}")


def _format_priority_field(field: str, value: object) -> str:
    """Format a priority field for display."""
    if field == "correlation_id" and len(str(value)) > CORRELATION_ID_DISPLAY_LENGTH:
        value = str(value)[:CORRELATION_ID_DISPLAY_LENGTH]
    elif field == "duration_ms":
        value = f"{value}ms"
    elif field == "status_code":
        status_str = str(value)
        if status_str.startswith("2"):
            value = f"<green>{value}</green>"
        elif status_str.startswith(("4", "5")):
            value = f"<red>{value}</red>"
    return _escape(str(value))


def _format_extra_field(key: str, value: object) -> str:
    """Format an extra field as ``key=value``, redacting and truncating."""
    str_value = str(value)
    if key in get_settings().log_config.sensitive_fields:
        str_value = REDACTED
    elif len(str_value) > MAX_FIELD_VALUE_LENGTH:
        str_value = str_value[: MAX_FIELD_VALUE_LENGTH - 3] + "..."
    return f"{_escape(str(key))}={_escape(str_value)}"


def _format_context_fields(extra: dict[str, Any]) -> list[str]:
    context_parts = [
        f"<yellow>{_format_priority_field(field, extra[field])}</yellow>"
        for field in PRIORITY_FIELDS
        if extra.get(field) is not None
    ]
    context_parts.extend(
        f"<dim>{_format_extra_field(key, value)}</dim>"
        for key, value in extra.items()
        if key not in PRIORITY_FIELDS and not key.startswith("_") and value is not None
    )
    return context_parts


def format_console_with_context(record: dict[str, Any]) -> str:
    """Format a log record for the console with its context inline.

    Args:
        record: Loguru record to format.

    Returns:
        str: Loguru format template for this record.
    """
    try:
        time_str = record["time"].strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        level_name = record["level"].name
        location = f"{record['name']}:{record['function']}:{record['line']}"

        parts = [
            f"<green>{time_str}</green>",
            f"<level>{level_name: <8}</level>",
            f"<cyan>{_escape(str(location))}</cyan>",
        ]

        context_parts = _format_context_fields(record.get("extra", {}))
        if context_parts:
            parts.append(" ".join(f"[{part}]" for part in context_parts))

        parts.append(_escape(str(record.get("message", ""))))

        if record.get("exception"):
            parts.append("\n{exception}")

        return " | ".join(parts) + "\n"
    except (AttributeError, TypeError, ValueError, KeyError):
        return DEFAULT_LOG_FORMAT + "\n"


def serialize_for_json(record: dict[str, Any]) -> str:
    """Format a log record as a single JSON line.

    Args:
        record: Loguru record to format.

    Returns:
        str: JSON-formatted log entry with newline.
    """
    log_entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }

    if extra := record.get("extra", {}):
        log_entry.update({k: v for k, v in extra.items() if not k.startswith("_")})

    if exc := record.get("exception"):
        log_entry["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": str(exc.value) if exc.value else None,
        }

    return json.dumps(log_entry, default=str) + "\n"


class InterceptHandler(logging.Handler):
    """Redirect standard library logging records to Loguru."""

    # LogRecord attributes that are not user-supplied extras
    _SKIP_FIELDS: Final[frozenset[str]] = frozenset(
        {
            "name",
            "msg",
            "args",
            "created",
            "msecs",
            "relativeCreated",
            "thread",
            "threadName",
            "processName",
            "process",
            "pathname",
            "filename",
            "module",
            "lineno",
            "funcName",
            "levelname",
            "levelno",
            "exc_info",
            "exc_text",
            "stack_info",
            "color_message",
            "taskName",
            "scope",
        }
    )

    def emit(self, record: logging.LogRecord) -> None:
        """Forward log record to Loguru."""
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module so Loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        extra: dict[str, Any] = {}
        if record.name == "uvicorn.access" and hasattr(record, "scope"):
            scope = record.scope
            extra["method"] = scope.get("method", "")
            extra["path"] = scope.get("path", "")

        extra.update(
            {
                key: value
                for key, value in record.__dict__.items()
                if key not in self._SKIP_FIELDS and not key.startswith("_")
            }
        )

        logger.opt(depth=depth, exception=record.exc_info).bind(**extra).log(
            level, record.getMessage()
        )


def setup_logging(settings: SettingsProtocol) -> None:
    """Configure Loguru once per process.

    Args:
        settings: Application settings containing log configuration.
    """
    if _state.configured:
        return

    logger.remove()

    formatter_type = settings.log_config.log_formatter_type or "console"

    if formatter_type == "json":

        def structured_sink(message: object) -> None:
            record = getattr(message, "record", None)
            if record is not None:
                sys.stdout.write(serialize_for_json(record))
                sys.stdout.flush()

        logger.add(
            structured_sink,
            level=settings.log_config.log_level,
            enqueue=True,
            diagnose=False,
            backtrace=False,
        )
    else:
        logger.add(
            sys.stdout,
            format=cast("Any", format_console_with_context),
            level=settings.log_config.log_level,
            enqueue=True,
            colorize=True,
            diagnose=settings.debug,
            backtrace=settings.debug,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = [InterceptHandler()]
        uvicorn_logger.propagate = False

    logger.info(
        "Logging configured with {} formatter",
        formatter_type,
        log_level=settings.log_config.log_level,
    )

    _state.configured = True
