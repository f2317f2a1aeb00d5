# app/services/task_registry.py
import asyncio
import logging
from typing import Any, Callable, Coroutine, Dict, Hashable, Optional, Tuple

logger = logging.getLogger("app.services.task_registry")  # Logger for this module


class TaskRegistry:
    """
    Keeps at most one asyncio task per slot ("poll", "timer", "summary").

    `ensure()` is idempotent for the same key and replaces the task when the
    key changes, so a (re)start never leaves two loops running for one slot.
    Tasks are kept here rather than on the session snapshot, which stays a plain model.
    """

    def __init__(self, owner: str):
        self.owner = owner
        self._tasks: Dict[str, Tuple[Hashable, asyncio.Task]] = {}

    def ensure(self, slot: str, key: Hashable, factory: Callable[[], Coroutine[Any, Any, Any]]) -> asyncio.Task:
        current = self._tasks.get(slot)
        if current and current[0] == key and not current[1].done():
            return current[1]
        if current:
            logger.debug(f"{self.owner} - Replacing '{slot}' task (key {current[0]!r} -> {key!r}).")
        self.cancel(slot)
        task = asyncio.create_task(factory(), name=f"{self.owner}:{slot}")
        self._tasks[slot] = (key, task)
        task.add_done_callback(lambda finished, s=slot: self._forget(s, finished))
        return task

    def _forget(self, slot: str, finished: asyncio.Task):
        current = self._tasks.get(slot)
        if current and current[1] is finished:
            del self._tasks[slot]
        if not finished.cancelled() and finished.exception() is not None:
            logger.error(f"{self.owner} - Background task '{slot}' crashed: {finished.exception()!r}")

    def cancel(self, slot: str) -> bool:
        current = self._tasks.pop(slot, None)
        if not current:
            return False
        task = current[1]
        if task.done():
            return False
        try:
            running = asyncio.current_task()
        except RuntimeError:
            running = None
        if task is running:
            # A loop asking to stop itself just returns on its own
            return True
        task.cancel()
        logger.debug(f"{self.owner} - '{slot}' task cancelled.")
        return True

    def cancel_all(self):
        for slot in list(self._tasks.keys()):
            self.cancel(slot)

    def get(self, slot: str) -> Optional[asyncio.Task]:
        current = self._tasks.get(slot)
        return current[1] if current else None

    def key_for(self, slot: str) -> Optional[Hashable]:
        current = self._tasks.get(slot)
        return current[0] if current else None

    def is_running(self, slot: str) -> bool:
        task = self.get(slot)
        return task is not None and not task.done()
