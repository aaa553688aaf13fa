"""Async helpers for running blocking backend calls."""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, Optional, TypeVar

from corpus_agent.core.config import settings

# Shared pool for blocking protocol clients (ftplib, smbclient, GitPython...)
_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()

T = TypeVar("T")


def get_executor() -> ThreadPoolExecutor:
    """Get or create the shared thread pool."""
    global _executor

    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(
                max_workers=settings.THREAD_POOL_SIZE, thread_name_prefix="corpus-agent-io"
            )

    return _executor


async def run_in_thread_pool(func: Callable[..., T], *args, **kwargs) -> T:
    """Run a synchronous function in the shared thread pool.

    Args:
        func: Blocking callable
        *args: Positional arguments
        **kwargs: Keyword arguments

    Returns:
        Whatever ``func`` returns
    """
    loop = asyncio.get_running_loop()
    if kwargs:
        func = partial(func, **kwargs)
    return await loop.run_in_executor(get_executor(), func, *args)


def shutdown_executor() -> None:
    """Shut the shared pool down, waiting for running calls."""
    global _executor

    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=True)
            _executor = None
