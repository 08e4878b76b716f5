""" Async utilities for running synchronous code in thread pool."""
import asyncio
import logging
from functools import partial
from typing import TypeVar, Callable, Any, Awaitable, Tuple
from concurrent.futures import ThreadPoolExecutor

logger = logging.getLogger(__name__)

T = TypeVar('T')

_executor = ThreadPoolExecutor(max_workers=5, thread_name_prefix="sync_")

TRANSIENT_ERROR_MARKERS: Tuple[str, ...] = ("timeout", "connection")


async def run_sync(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking call (database, vendor SDK) without blocking the event loop."""
    loop = asyncio.get_running_loop()

    if kwargs:
        func_with_kwargs = partial(func, *args, **kwargs)
        return await loop.run_in_executor(_executor, func_with_kwargs)

    return await loop.run_in_executor(_executor, func, *args)


def is_transient_error(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_ERROR_MARKERS)


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay_ms: int = 500,
    max_delay_ms: int = 5000,
) -> T:
    """
    Await ``operation`` and retry it on timeout/connection errors.
    Backoff doubles from ``base_delay_ms`` and is capped at ``max_delay_ms``.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            attempt += 1
            if attempt >= max_retries or not is_transient_error(e):
                raise
            delay_ms = min(base_delay_ms * (2 ** (attempt - 1)), max_delay_ms)
            logger.warning(f"Transient error (attempt {attempt}/{max_retries}), retrying in {delay_ms}ms: {e}")
            await asyncio.sleep(delay_ms / 1000)


def shutdown_executor():
    _executor.shutdown(wait=True)
