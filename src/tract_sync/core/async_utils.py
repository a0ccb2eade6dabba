"""Async utilities for bridging the synchronous sync engine to MCP handlers."""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Sync operations hold per-ticket locks and make blocking HTTP and git
    calls, so every MCP handler goes through this wrapper.

    Example:
        result = await run_sync(service.handle_remote_event, payload)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
