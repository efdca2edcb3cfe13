from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

_log = logging.getLogger(__name__)


class BackgroundTasks:
    """Tracked set of detached tasks.

    At most ``limit`` run at once; extra tasks wait inside themselves, so
    ``spawn`` never blocks the caller. Failures are logged when a task ends.
    """

    def __init__(self, *, limit: int = 8, logger: logging.Logger | None = None) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self._sem = asyncio.Semaphore(limit)
        self._tasks: set[asyncio.Task[Any]] = set()
        self._log = logger or _log

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(self._run(coro), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def track(self, task: asyncio.Task[Any]) -> None:
        """Adopt an already running task; it does not count against ``limit``."""
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    async def _run(self, coro: Coroutine[Any, Any, Any]) -> Any:
        try:
            async with self._sem:
                return await coro
        except asyncio.CancelledError:
            coro.close()
            raise

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self._log.debug("Background task %s cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            self._log.error("Background task %s failed", task.get_name(), exc_info=exc)

    async def wait(self) -> None:
        """Wait until every tracked task (including ones spawned meanwhile) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel(self) -> int:
        pending = [t for t in self._tasks if not t.done()]
        for t in pending:
            t.cancel()
        return len(pending)
