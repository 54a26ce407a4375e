"""
Task utilities for managing asyncio tasks and background operations.
"""

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from utils.logging import get_logger

logger = get_logger(__name__)


def spawn(coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
    """
    Spawn a coroutine as a background task.

    The task logs its own exception when it fails, so fire-and-forget callers
    never lose an error silently.
    """
    try:
        task = asyncio.create_task(coro, name=name)
        task.add_done_callback(_log_task_exception)
        return task
    except Exception as e:
        logger.exception(f"Failed to spawn task: {e}")
        raise


def _log_task_exception(task: asyncio.Task[Any]) -> None:
    """Log exceptions from completed tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.error(f"Task {task.get_name()} failed with exception", exc_info=exc)


async def run_periodically(
    label: str,
    interval_seconds: float,
    func: Callable[[], Awaitable[Any]],
    *,
    is_closed: Callable[[], bool] = lambda: False,
) -> None:
    """
    Run ``func`` every ``interval_seconds`` until cancelled or ``is_closed()``.

    A failing iteration is logged and the loop keeps going.
    """
    while not is_closed():
        await asyncio.sleep(interval_seconds)
        try:
            await func()
        except asyncio.CancelledError:
            logger.info("Periodic task %s cancelled", label)
            raise
        except Exception as exc:
            logger.exception("Periodic task %s failed", label, exc_info=exc)
