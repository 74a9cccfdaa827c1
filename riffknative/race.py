"""Run several asynchronous tasks and take the outcome of whichever finishes first."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

Task = Callable[[], Awaitable[object]]


async def run(timeout: float, *args: Task) -> None:
    """Start every task and settle on the first one to finish.

    ``timeout`` is in seconds and bounds the whole race. If the first task to
    finish raised, its exception is raised here; if it returned, this returns
    ``None``. When nothing finishes in time, ``TimeoutError`` is raised. The
    tasks still running are cancelled before this returns.
    """
    if not args:
        await asyncio.sleep(timeout)
        raise TimeoutError(f"no task finished within {timeout}s")

    running = [asyncio.ensure_future(task()) for task in args]
    try:
        done, _ = await asyncio.wait(
            running, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
        if not done:
            raise TimeoutError(f"no task finished within {timeout}s")
        winner = next(future for future in running if future in done)
        winner.result()
    finally:
        for future in running:
            if not future.done():
                future.cancel()
        await asyncio.gather(*running, return_exceptions=True)