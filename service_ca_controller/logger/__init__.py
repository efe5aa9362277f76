"""
Structured logging for the service CA controller.

This module provides:
- Structured logging with JSON output (python-json-logger) or console output
- Per-request context (kind, namespace, name) bound through contextvars
- Timing of reconcile passes
"""

import logging
import logging.config
import sys
import time
import traceback
from typing import Any

import structlog
from pythonjsonlogger import jsonlogger

from ..config import LogLevel
from ..exceptions import ConfigurationError

# LogRecord attributes that cannot be passed through ``extra``
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys() | {"message", "asctime"}
)


class ServiceInfoProcessor:
    """Processor to add service information to log records."""

    def __init__(self, service_name: str, service_version: str):
        self.service_name = service_name
        self.service_version = service_version

    def __call__(self, logger, method_name, event_dict):
        event_dict["service_name"] = self.service_name
        event_dict["service_version"] = self.service_version
        return event_dict


class ExceptionProcessor:
    """Processor to format exceptions in log records."""

    def __call__(self, logger, method_name, event_dict):
        exc_info = event_dict.pop("exc_info", None)
        if exc_info:
            if exc_info is True:
                exc_info = sys.exc_info()
            elif isinstance(exc_info, BaseException):
                exc_info = (type(exc_info), exc_info, exc_info.__traceback__)

            if exc_info[0] is not None:
                event_dict["exception"] = {
                    "type": exc_info[0].__name__,
                    "message": str(exc_info[1]),
                    "traceback": "".join(traceback.format_tb(exc_info[2]))
                    if exc_info[2]
                    else "",
                }
        return event_dict


def _rename_reserved(logger, method_name, event_dict):
    # "name" is both a LogRecord attribute and our favourite context key
    for key in list(event_dict):
        if key in _RESERVED_ATTRS and key != "event":
            event_dict[f"k8s_{key}"] = event_dict.pop(key)
    return event_dict


class LogConfig:
    """Configuration class for logging setup."""

    def __init__(
        self,
        service_name: str,
        service_version: str = "0.1.0",
        level: LogLevel = LogLevel.INFO,
        format_type: str = "json",
    ):
        self.service_name = service_name
        self.service_version = service_version
        self.level = level
        self.format_type = format_type


def setup_logging(config: LogConfig) -> None:
    """
    Setup structured logging with the given configuration.

    Args:
        config: LogConfig instance with logging configuration
    """
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        ServiceInfoProcessor(config.service_name, config.service_version),
        ExceptionProcessor(),
    ]

    if config.format_type == "json":
        processors.extend([_rename_reserved, structlog.stdlib.render_to_log_kwargs])
        formatter = "json"
    else:
        processors.append(structlog.dev.ConsoleRenderer())
        formatter = "standard"

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": jsonlogger.JsonFormatter,
                "format": "%(name)s %(levelname)s %(message)s",
            },
            "standard": {
                "format": "%(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": config.level.value,
                "formatter": formatter,
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "": {
                "handlers": ["console"],
                "level": config.level.value,
                "propagate": False,
            },
            # urllib3 debug output drowns the reconcile logs
            "urllib3": {"level": "WARNING"},
            "kubernetes": {"level": "WARNING"},
        },
    }

    try:
        logging.config.dictConfig(logging_config)
    except (ValueError, TypeError, AttributeError, ImportError) as e:
        raise ConfigurationError(f"Failed to configure logging: {e}")


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name, typically __name__

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def bind_request(kind: str, namespace: str | None, name: str) -> None:
    """Bind the object being reconciled to every log line of the current task."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(kind=kind, namespace=namespace, name=name)


def clear_request() -> None:
    """Clear the bound request context."""
    structlog.contextvars.clear_contextvars()


class ReconcileLogger:
    """Context manager logging the outcome and duration of one reconcile pass."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        kind: str,
        namespace: str | None,
        name: str,
        **kwargs: Any,
    ):
        self.logger = logger
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.extra_context = kwargs
        self.start_time: float | None = None

    @property
    def duration(self) -> float:
        return time.monotonic() - (self.start_time or time.monotonic())

    def __enter__(self):
        self.start_time = time.monotonic()
        bind_request(self.kind, self.namespace, self.name)
        self.logger.debug("Reconcile started", **self.extra_context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = round(self.duration * 1000, 2)

        if exc_type is None:
            self.logger.debug(
                "Reconcile finished", duration_ms=duration_ms, **self.extra_context
            )
        else:
            self.logger.error(
                "Reconcile failed",
                duration_ms=duration_ms,
                error_type=exc_type.__name__,
                error_message=str(exc_val),
                **self.extra_context,
            )

        clear_request()
