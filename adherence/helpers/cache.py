from collections import OrderedDict
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from functools import wraps
from typing import Any

from aiojobs import Scheduler


@asynccontextmanager
async def get_scheduler(close_timeout: float = 45) -> AsyncGenerator[Scheduler]:
    """
    Get the scheduler for async background tasks.

    It is closed automatically, waiting `close_timeout` secs for tasks to finish.
    """
    async with Scheduler(
        close_timeout=close_timeout,
    ) as scheduler:
        yield scheduler


def lru_cache(maxsize: int = 128):
    """
    Caches a sync function's return value each time it is called.

    If the maxsize is reached, the least recently used value is removed.
    """

    def decorator(func):
        cache: OrderedDict[tuple, Any] = OrderedDict()

        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            # Create a cache key from args and kwargs, using frozenset for kwargs to ensure hashability
            key = (
                args,
                frozenset(kwargs.items()),
            )

            if key in cache:
                # Move the recently accessed key to the end (most recently used)
                cache.move_to_end(key)
                return cache[key]

            # Compute the value since it's not cached
            value = func(*args, **kwargs)
            cache[key] = value

            # Remove the least recently used key if the cache is full
            if len(cache) > maxsize:
                cache.popitem(last=False)

            return value

        return wrapper

    return decorator
