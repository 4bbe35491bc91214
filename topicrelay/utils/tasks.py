"""Background tasks that run alongside the relay server."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any
from typing import AsyncIterator
from typing import Coroutine

logger = logging.getLogger(__name__)


def _exit_on_failure(task: asyncio.Task[Any]) -> None:
    if task.cancelled() or task.exception() is None:
        return
    logger.error(
        f'Background task {task.get_name()!r} failed, stopping the server',
        exc_info=task.exception(),
    )
    raise SystemExit(1)


@contextlib.asynccontextmanager
async def background_task(
    coro: Coroutine[Any, Any, None],
    name: str,
) -> AsyncIterator[asyncio.Task[None]]:
    """Run a coroutine in a task for the lifetime of the context.

    A failing task is never silent: its traceback is logged and the process
    exits with `SystemExit(1)` rather than continuing to serve without,
    for example, its periodic topic logging. A task that returns normally
    simply finishes.

    On exit from the context the task is cancelled, if still running, and
    awaited so shutdown does not leave pending tasks on the event loop.

    Example:
        ```python
        async with background_task(periodic_topic_logger(relay), 'logger'):
            await stop
        ```

    Args:
        coro: Coroutine to run as a task.
        name: Name of the task used in logs.

    Yields:
        The running task.
    """
    task = asyncio.create_task(coro, name=name)
    task.add_done_callback(_exit_on_failure)
    try:
        yield task
    finally:
        task.remove_done_callback(_exit_on_failure)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug(f'Stopped background task {name!r}')
