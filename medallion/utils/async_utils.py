"""Helpers for the batch-concurrent stages."""
import asyncio
import functools
from collections import defaultdict
from typing import Any, Callable, Dict, TypeVar

T = TypeVar('T')


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking call in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


class KeyedLocks:
    """
    One asyncio.Lock per key, created on demand.

    Must be created per run: locks are bound to the event loop that first
    awaits them.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def lock_for(self, key: str) -> asyncio.Lock:
        return self._locks[key]
