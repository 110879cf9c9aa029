"""Registry of fire-and-forget background tasks.

Background revalidation and prefetch jobs are spawned through a
BackgroundTasks instance so callers can wait for them (tests, shutdown)
instead of leaving them orphaned on the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Coroutine

logger = logging.getLogger(__name__)


class BackgroundTasks:
    def __init__(self) -> None:
        self._active: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
        """Schedule a coroutine and track it until it finishes."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._active.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._active.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning('Background task %s failed: %s', task.get_name(), exc)

    @property
    def pending(self) -> int:
        return len(self._active)

    async def join(self) -> None:
        """Wait until every task (including ones spawned meanwhile) is done."""
        while self._active:
            await asyncio.gather(*list(self._active), return_exceptions=True)

    async def cancel_all(self) -> None:
        tasks = list(self._active)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
