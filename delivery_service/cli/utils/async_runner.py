"""Run async click commands and release the database engine afterwards."""

import asyncio
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

T = TypeVar("T")


def coro(f: Callable[..., Awaitable[T]]) -> Callable[..., T]:
    """Run an async command on a fresh event loop.

    The engine is bound to the loop it was created on, so it is disposed
    before ``asyncio.run`` closes that loop, including when the command
    exits through ``sys.exit``.

    Usage:
        @dlq.command()
        @coro
        async def stats() -> None:
            async with get_async_session() as session:
                ...
    """

    async def run(*args: Any, **kwargs: Any) -> T:
        from delivery_service.infra.database import close_database

        try:
            return await f(*args, **kwargs)
        finally:
            await close_database()

    @wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        return asyncio.run(run(*args, **kwargs))

    return wrapper
