"""
Safe background task execution with error handling.

Notification delivery runs detached from the accessor call, so failures
would otherwise vanish. Every task scheduled here:
- Logs its error with a stack trace
- Is tracked until done so it is not garbage collected
"""

import asyncio
import logging
from typing import Coroutine, Any

logger = logging.getLogger(__name__)

# Track active tasks to prevent garbage collection
_active_background_tasks: set = set()


async def safe_background_task(coro: Coroutine, task_name: str) -> Any:
    """
    Wrapper for background tasks with error handling.

    Args:
        coro: Coroutine to execute
        task_name: Human-readable task name for logging

    Returns:
        Result of the coroutine if successful, None on error
    """
    try:
        result = await coro
        logger.info(f"✓ Background task completed: {task_name}")
        return result
    except Exception as e:
        logger.error(
            f"✗ Background task failed: {task_name} - {e}",
            exc_info=True
        )
        return None


def create_safe_task(coro: Coroutine, task_name: str) -> asyncio.Task:
    """
    Create a background task with error handling.

    Args:
        coro: Coroutine to execute
        task_name: Human-readable task name

    Returns:
        asyncio.Task object

    Example:
        task = create_safe_task(
            sink.deliver(user_id, "task_assigned", title, message),
            "notify-task_assigned-42"
        )
    """
    task = asyncio.create_task(
        safe_background_task(coro, task_name)
    )

    # Store reference to prevent garbage collection
    _active_background_tasks.add(task)

    # Remove from tracking when done
    task.add_done_callback(_active_background_tasks.discard)

    logger.debug(f"Created safe background task: {task_name}")
    return task


def pending_background_tasks() -> int:
    """Number of scheduled tasks that have not finished yet."""
    return sum(1 for t in _active_background_tasks if not t.done())


async def drain_background_tasks() -> None:
    """Wait until every scheduled background task has finished."""
    while True:
        pending = [t for t in _active_background_tasks if not t.done()]
        if not pending:
            return
        await asyncio.gather(*pending)
