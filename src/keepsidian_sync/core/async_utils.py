"""Async utilities for bridging blocking I/O into the sync pipelines."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used to wrap blocking ``requests`` calls and ``pathlib`` file access so
    the pipelines can ``await`` every I/O operation in sequence.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        client = KeepClient(config)
        page = await run_sync(client.fetch_notes, 0, 50)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
