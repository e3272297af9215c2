import asyncio
from typing import Any, Awaitable, List, Set

# Long-lived background loops (update poller) and per-update handler tasks.
# Kept in a separate module so main and tests share the same registry.
workers: List[asyncio.Task] = []
inflight: Set[asyncio.Task] = set()


def spawn(coro: Awaitable[Any]) -> asyncio.Task:
    task = asyncio.ensure_future(coro)
    inflight.add(task)
    task.add_done_callback(inflight.discard)
    return task
