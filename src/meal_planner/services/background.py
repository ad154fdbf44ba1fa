"""Detached background work whose failures are only logged."""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

_logger = logging.getLogger(__name__)


@dataclass
class BackgroundTasks:
    """Runs fire-and-forget coroutines and keeps them referenced until done."""

    _tasks: set[asyncio.Task[Any]] = field(default_factory=set)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, label: str) -> asyncio.Task[Any]:
        """Schedule ``coro`` on the running loop without awaiting it."""
        task = asyncio.get_running_loop().create_task(self._guard(coro, label))
        self._tasks.add(task)
        task.add_done_callback(self._forget)
        return task

    def run_sync(self, func: Callable[[], Any], *, label: str) -> asyncio.Task[Any]:
        """Schedule blocking work on a worker thread without awaiting it."""
        return self.spawn(asyncio.to_thread(func), label=label)

    async def drain(self) -> None:
        """Wait for all pending background work, including work it spawns."""
        while self._tasks:
            snapshot = set(self._tasks)
            await asyncio.wait(snapshot)
            self._tasks.difference_update(task for task in snapshot if task.done())

    def _forget(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @staticmethod
    async def _guard(coro: Coroutine[Any, Any, Any], label: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception:
            _logger.exception("Background task failed: %s", label)
