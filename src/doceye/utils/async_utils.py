"""Async utility functions and helpers."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Optional, TypeVar

from .logging import get_structured_logger
from .types import AsyncTimeoutError

logger = get_structured_logger(__name__)

T = TypeVar("T")


async def run_with_timeout(
    coro: Awaitable[T], timeout: float, timeout_message: Optional[str] = None
) -> T:
    """Run a coroutine with a timeout."""
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError as e:
        msg = timeout_message or f"Operation timed out after {timeout}s"
        logger.warning(msg)
        raise AsyncTimeoutError(msg) from e


async def retry_async(
    coro_func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (Exception,),
    linear: bool = False,
) -> T:
    """Retry an async callable.

    ``coro_func`` is called once per attempt, so it must build a fresh
    awaitable every time. The wait before attempt ``n + 1`` is
    ``delay * backoff_factor ** n`` (exponential) or ``delay * (n + 1)``
    when ``linear`` is set.
    """
    last_exception: Optional[BaseException] = None

    for attempt in range(max_retries + 1):
        try:
            return await coro_func()
        except exceptions as e:
            last_exception = e

            if attempt == max_retries:
                logger.warning(
                    "All attempts failed", attempts=max_retries + 1, error=str(e)
                )
                break

            if linear:
                current_delay = delay * (attempt + 1)
            else:
                current_delay = delay * (backoff_factor**attempt)

            logger.info(
                "Attempt failed, retrying",
                attempt=attempt + 1,
                retries=max_retries,
                delay=current_delay,
                error=str(e),
            )
            await asyncio.sleep(current_delay)

    raise last_exception


class AsyncContextManager:
    """Base class for async context managers."""

    async def __aenter__(self):
        await self.setup()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any):
        await self.cleanup()

    async def setup(self) -> None:
        """Setup the context manager."""
        pass

    async def cleanup(self) -> None:
        """Cleanup the context manager."""
        pass
