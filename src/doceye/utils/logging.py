"""Structured logging setup using structlog."""

import logging
import sys
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import FilteringBoundLogger


def setup_logging(
    log_level: str = "INFO", json_logs: bool = False, include_caller_info: bool = False
) -> None:
    """Configure structured logging with appropriate processors."""

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _safe_add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if include_caller_info:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            )
        )

    processors.extend(
        [
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
        ]
    )

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _safe_add_logger_name(logger, method_name: str, event_dict):
    """Add the logger name, tolerating WriteLogger instances without one."""
    name = getattr(logger, "name", None)
    if name is None and hasattr(logger, "_logger"):
        name = getattr(logger._logger, "name", None)
    event_dict.setdefault("logger", name or "doceye")
    return event_dict


def get_logger(name: str) -> FilteringBoundLogger:
    """Get a configured structlog logger."""
    return structlog.get_logger(name)


@contextmanager
def logging_context(**context: Any):
    """Bind context variables for every log line emitted inside the block."""
    with structlog.contextvars.bound_contextvars(**context):
        yield


class StructuredLogger:
    """Wrapper for structured logging with convenience methods."""

    def __init__(self, name: str):
        self.logger = get_logger(name)
        self.name = name

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, logger=self.name, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, logger=self.name, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, logger=self.name, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.logger.error(message, logger=self.name, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self.logger.exception(message, logger=self.name, **kwargs)

    def bind(self, **kwargs: Any) -> "StructuredLogger":
        """Create a new logger with bound context."""
        bound_logger = StructuredLogger(self.name)
        bound_logger.logger = self.logger.bind(**kwargs)
        return bound_logger


def get_structured_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
