"""Shared utilities for DocEye."""

from .async_utils import AsyncContextManager, retry_async, run_with_timeout
from .logging import get_logger, get_structured_logger, logging_context, setup_logging
from .types import AsyncTimeoutError, UtilityError

__all__ = [
    "setup_logging",
    "get_logger",
    "get_structured_logger",
    "logging_context",
    "run_with_timeout",
    "retry_async",
    "AsyncContextManager",
    "AsyncTimeoutError",
    "UtilityError",
]
