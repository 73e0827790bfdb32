"""Deferred one-shot jobs keyed by message id."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class DeliveryScheduler:
    """Runs a job once after a delay, one job per key.

    Jobs are independent asyncio tasks: they are not tied to any connection,
    can be cancelled individually, and are never retried.
    """

    def __init__(self):
        self._tasks: dict[str, asyncio.Task] = {}

    def schedule(self, key: str, delay: float, job: Callable[[], Awaitable[None]]) -> asyncio.Task:
        existing = self._tasks.get(key)
        if existing is not None and not existing.done():
            logger.debug(f"[DELIVERY] Job for {key} already scheduled")
            return existing
        task = asyncio.create_task(self._run(key, delay, job), name=f"delivery-{key}")
        self._tasks[key] = task
        return task

    async def _run(self, key: str, delay: float, job: Callable[[], Awaitable[None]]) -> None:
        try:
            await asyncio.sleep(delay)
            await job()
        except asyncio.CancelledError:
            logger.debug(f"[DELIVERY] Job for {key} cancelled")
            raise
        except Exception as e:
            logger.error(f"[DELIVERY] Job for {key} failed: {type(e).__name__}: {e}")
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]

    def cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def is_scheduled(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks.values() if not t.done())

    async def wait_all(self, timeout: Optional[float] = None) -> None:
        """Wait for every currently scheduled job to finish."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"[DELIVERY] Cancelled {len(tasks)} pending jobs")
