# scheduler.py - Delayed tasks for retry backoff and approval escalation
# Every task is owned by an execution id so finalizing or cancelling an
# execution cancels whatever it still has pending.

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

class StepScheduler:
    """Runs callbacks after a delay, tracked per execution and cancellable."""

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._sleep = sleep
        # Tasks still waiting out their delay, by execution id then key
        self._pending: Dict[str, Dict[str, asyncio.Task]] = {}
        # Every task not yet done, including those already running their callback
        self._live: Set[asyncio.Task] = set()

    def schedule(self, execution_id: str, key: str, delay: float,
                 callback: Callable[[], Awaitable[None]]) -> asyncio.Task:
        """Run `callback` after `delay` seconds. Re-scheduling a pending key replaces it."""
        self.cancel(execution_id, key)

        async def run_later():
            await self._sleep(delay)
            # From here on the task is running, not pending, and can no longer be cancelled by key
            self._release(execution_id, key, task)
            try:
                await callback()
            except Exception as e:
                logger.error(f"Scheduled task {key} for execution {execution_id} failed: {str(e)}")

        task = asyncio.create_task(run_later())
        self._pending.setdefault(execution_id, {})[key] = task
        self._live.add(task)
        task.add_done_callback(self._live.discard)
        logger.info(f"Scheduled {key} for execution {execution_id} in {delay}s")
        return task

    def _release(self, execution_id: str, key: str, task: asyncio.Task):
        owned = self._pending.get(execution_id)
        if owned is not None and owned.get(key) is task:
            del owned[key]
            if not owned:
                del self._pending[execution_id]

    def cancel(self, execution_id: str, key: str) -> bool:
        """Cancel a single pending task."""
        owned = self._pending.get(execution_id)
        if not owned or key not in owned:
            return False
        task = owned.pop(key)
        if not owned:
            del self._pending[execution_id]
        task.cancel()
        return True

    def cancel_execution(self, execution_id: str) -> int:
        """Cancel every pending task of an execution."""
        owned = self._pending.pop(execution_id, {})
        for task in owned.values():
            task.cancel()
        if owned:
            logger.info(f"Cancelled {len(owned)} pending task(s) for execution {execution_id}")
        return len(owned)

    def pending(self, execution_id: Optional[str] = None) -> List[str]:
        """Keys of pending tasks, optionally for one execution."""
        if execution_id is not None:
            return list(self._pending.get(execution_id, {}).keys())
        return [key for owned in self._pending.values() for key in owned]

    async def drain(self):
        """Wait until no task is live, including tasks scheduled while waiting."""
        while self._live:
            await asyncio.gather(*list(self._live), return_exceptions=True)

    async def shutdown(self):
        """Cancel all pending tasks."""
        for execution_id in list(self._pending.keys()):
            self.cancel_execution(execution_id)
