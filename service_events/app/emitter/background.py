"""
Best-effort background tasks: failures are logged, never raised to the caller.
"""

import asyncio
from typing import Any, Coroutine, Set

from shared.logging import get_logger

logger = get_logger("events.emitter.background")

# Strong references so the event loop does not garbage-collect running tasks.
_active_tasks: Set[asyncio.Task] = set()


def spawn_best_effort(coro: Coroutine[Any, Any, Any], name: str, **context: Any) -> asyncio.Task:
    """Schedule ``coro`` detached from the caller's control flow."""
    task = asyncio.get_running_loop().create_task(coro, name=name)
    _active_tasks.add(task)

    def _done(finished: asyncio.Task) -> None:
        _active_tasks.discard(finished)
        if finished.cancelled():
            logger.debug("Best-effort task cancelled", task=name, **context)
            return
        exc = finished.exception()
        if exc is not None:
            logger.error(
                "Best-effort task failed",
                task=name,
                error=str(exc),
                exc_info=exc,
                **context
            )

    task.add_done_callback(_done)
    return task


def active_task_count() -> int:
    return len(_active_tasks)


async def drain(timeout: float = 5.0) -> None:
    """Wait for in-flight best-effort tasks, e.g. on shutdown."""
    pending = [task for task in _active_tasks if not task.done()]
    if not pending:
        return
    done, still_pending = await asyncio.wait(pending, timeout=timeout)
    for task in still_pending:
        task.cancel()
    if still_pending:
        logger.warning("Cancelled best-effort tasks on shutdown", count=len(still_pending))
