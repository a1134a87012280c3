"""Structured logging with Loguru.

The gateway logs every request (access step), every failure (error
boundary) and every lifecycle transition. This module configures a single
Loguru pipeline for all of them:

- **console**: Human-readable with inline request context (development)
- **json**: Generic structured format (self-hosted, production default)
- **gcp**: Google Cloud Logging structured format
- **aws**: CloudWatch Logs Insights friendly format

Standard-library loggers (uvicorn, SQLAlchemy, asyncio) are intercepted and
forwarded to Loguru so that one formatter governs the whole process.
"""

from __future__ import annotations

import inspect
import logging
import os
import sys
from collections.abc import Callable
from typing import Any, Final, Protocol, cast

import orjson
from loguru import logger


class _LoggingState:
    """Simple state holder to track if logging has been configured."""

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
    def app_name(self) -> str:
        """Application name."""
        ...

    @property
    def app_version(self) -> str:
        """Application version."""
        ...

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
MAX_FIELD_VALUE_LENGTH: Final[int] = 200

# Fields shown first, in this order, by the console formatter
PRIORITY_FIELDS: Final[tuple[str, ...]] = (
    "correlation_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "client_host",
)


def _escape(value: object) -> str:
    """Escape braces so Loguru does not treat them as format fields."""
    return str(value).replace("{", "{{").replace("}", "}}")


def _format_priority_field(field: str, value: object) -> str:
    """Format a priority field for display."""
    if field == "correlation_id" and len(str(value)) > CORRELATION_ID_DISPLAY_LENGTH:
        value = str(value)[:CORRELATION_ID_DISPLAY_LENGTH]
    elif field == "duration_ms":
        value = f"{value}ms"
    return _escape(value)


def _format_extra_field(key: str, value: object) -> str:
    """Format an extra field as ``key=value``, truncating long values."""
    str_value = str(value)
    if len(str_value) > MAX_FIELD_VALUE_LENGTH:
        str_value = str_value[: MAX_FIELD_VALUE_LENGTH - 3] + "..."
    return f"{_escape(key)}={_escape(str_value)}"


def format_console_with_context(record: dict[str, Any]) -> str:
    """Format log record for console with all context fields visible.

    Args:
        record: Loguru record to format.

    Returns:
        str: Format string for Loguru, with the message and context inlined.
    """
    try:
        extra = record.get("extra", {})
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

        parts = [
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green>",
            "<level>{level: <8}</level>",
            "<cyan>{name}:{function}:{line}</cyan>",
        ]
        if context_parts:
            parts.append(" ".join(f"[{part}]" for part in context_parts))
        parts.append(_escape(record.get("message", "")))

        suffix = "\n{exception}" if record.get("exception") else ""
        return " | ".join(parts) + suffix + "\n"
    except (AttributeError, TypeError, ValueError, KeyError):
        return DEFAULT_LOG_FORMAT + "\n"


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        """Forward log record to Loguru.

        Args:
            record: Standard library LogRecord to forward.
        """
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _base_entry(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }


def _public_extra(record: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in record.get("extra", {}).items() if not k.startswith("_")}


def _exception_info(record: dict[str, Any]) -> dict[str, Any] | None:
    exc = record.get("exception")
    if not exc:
        return None
    return {
        "type": exc.type.__name__ if exc.type else None,
        "value": str(exc.value) if exc.value else None,
        "traceback": exc.traceback is not None,
    }


def _dumps(entry: dict[str, Any]) -> str:
    return orjson.dumps(entry, default=str).decode() + "\n"


def serialize_for_json(record: dict[str, Any]) -> str:
    """Format log record as generic JSON."""
    entry = _base_entry(record)
    entry.update(_public_extra(record))
    if exception := _exception_info(record):
        entry["exception"] = exception
    return _dumps(entry)


def serialize_for_gcp(record: dict[str, Any], service: dict[str, str]) -> str:
    """Format log record for GCP Cloud Logging structured ingestion."""
    severity_mapping = {
        "TRACE": "DEBUG",
        "SUCCESS": "INFO",
    }
    level_name = record["level"].name
    extra = _public_extra(record)
    entry: dict[str, Any] = {
        "severity": severity_mapping.get(level_name, level_name),
        "message": record["message"],
        "timestamp": record["time"].isoformat(),
        "serviceContext": service,
        "logging.googleapis.com/labels": {
            "function": record["function"],
            "line": str(record["line"]),
        },
    }
    if correlation_id := extra.pop("correlation_id", None):
        entry["logging.googleapis.com/trace"] = correlation_id
    if extra:
        entry["jsonPayload"] = extra
    if record.get("exception") or level_name in {"ERROR", "CRITICAL"}:
        entry["logging.googleapis.com/sourceLocation"] = {
            "file": record["file"].path,
            "line": str(record["line"]),
            "function": record["function"],
        }
    return _dumps(entry)


def serialize_for_aws(record: dict[str, Any]) -> str:
    """Format log record for AWS CloudWatch Logs Insights."""
    entry = _base_entry(record)
    extra = _public_extra(record)
    if correlation_id := extra.pop("correlation_id", None):
        entry["traceId"] = correlation_id
    for key, value in extra.items():
        entry.setdefault(key, value)
    if exception := _exception_info(record):
        entry["error"] = exception
    return _dumps(entry)


def detect_environment() -> str:
    """Auto-detect the log formatter from the deployment platform."""
    if os.getenv("K_SERVICE"):  # Cloud Run
        return "gcp"
    if os.getenv("AWS_EXECUTION_ENV"):  # AWS Lambda/ECS
        return "aws"
    return "console"


def _formatter_for(
    formatter_type: str, settings: SettingsProtocol
) -> Callable[[dict[str, Any]], str]:
    if formatter_type == "gcp":
        service = {"service": settings.app_name, "version": settings.app_version}
        return lambda record: serialize_for_gcp(record, service)
    if formatter_type == "aws":
        return serialize_for_aws
    return serialize_for_json


def setup_logging(settings: SettingsProtocol) -> None:
    """Configure Loguru with the formatter selected by the settings.

    Args:
        settings: Application settings containing log configuration.

    Note:
        This function ensures it's only called once using module state.
    """
    if _state.configured:
        return

    logger.remove()

    formatter_type = settings.log_config.log_formatter_type or detect_environment()

    if formatter_type == "console":
        logger.add(
            sys.stdout,
            format=cast("Any", format_console_with_context),
            level=settings.log_config.log_level,
            enqueue=True,
            colorize=True,
            diagnose=settings.debug,
            backtrace=settings.debug,
        )
    else:
        formatter = _formatter_for(formatter_type, settings)

        def structured_sink(message: Any) -> None:  # noqa: ANN401 - loguru Message
            sys.stdout.write(formatter(message.record))
            sys.stdout.flush()

        logger.add(
            structured_sink,
            level=settings.log_config.log_level,
            enqueue=True,
            diagnose=False,
            backtrace=False,
        )

    # Route standard library logging (uvicorn, sqlalchemy, asyncio) to Loguru
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        std_logger = logging.getLogger(logger_name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False

    logger.info(
        "Logging configured with {} formatter",
        formatter_type,
        log_level=settings.log_config.log_level,
    )

    _state.configured = True


# Passed to uvicorn so its loggers go through InterceptHandler from the start
UVICORN_LOG_CONFIG: Final[dict[str, Any]] = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "default": {"class": "health_gateway.core.logging.InterceptHandler"},
    },
    "loggers": {
        "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
        "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
        "uvicorn.access": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
    },
}
