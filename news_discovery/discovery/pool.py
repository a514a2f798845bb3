"""
Bounded worker pool for fetch tasks.

Each admitted job runs as its own asyncio task while holding one slot of an
asyncio.Semaphore sized to the concurrency bound, so no more than
``capacity`` jobs are ever active. Jobs are keyed (by source id) and a key
already in flight is refused, which keeps fetches for one source mutually
exclusive.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

JobFactory = Callable[[], Awaitable[Any]]


class PoolClosedError(RuntimeError):
    """Raised by submit() once the pool no longer admits work."""


class WorkerPool:
    """
    Semaphore-guarded task spawner.

    Usage:
        pool = WorkerPool(capacity=5)
        if not await pool.try_submit(source_id, lambda: executor.execute(source, now)):
            ...  # saturated, retry later
        pool.close()
        finished = await pool.drain(timeout=60)
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._semaphore = asyncio.Semaphore(capacity)
        self._tasks: dict[str, asyncio.Task] = {}
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def active(self) -> int:
        """Jobs currently holding a slot."""
        return len(self._tasks)

    @property
    def available(self) -> int:
        return self._capacity - len(self._tasks)

    @property
    def closed(self) -> bool:
        return self._closed

    def is_running(self, key: str) -> bool:
        return key in self._tasks

    async def try_submit(self, key: str, factory: JobFactory) -> bool:
        """
        Start a job if a slot is free right now.

        Returns:
            False if the pool is closed, saturated, or ``key`` is in flight
        """
        if self._closed or key in self._tasks or self._semaphore.locked():
            return False
        await self._semaphore.acquire()
        self._spawn(key, factory)
        return True

    async def submit(self, key: str, factory: JobFactory) -> asyncio.Task:
        """
        Start a job, waiting for a free slot if needed.

        Raises:
            PoolClosedError: If the pool is closed
            ValueError: If ``key`` is already in flight
        """
        if self._closed:
            raise PoolClosedError("worker pool is closed")
        if key in self._tasks:
            raise ValueError(f"job {key} already running")
        await self._semaphore.acquire()
        if self._closed:
            self._semaphore.release()
            raise PoolClosedError("worker pool is closed")
        return self._spawn(key, factory)

    def _spawn(self, key: str, factory: JobFactory) -> asyncio.Task:
        task = asyncio.create_task(self._run(key, factory), name=f"fetch_{key}")
        self._tasks[key] = task
        return task

    async def _run(self, key: str, factory: JobFactory) -> Any:
        try:
            return await factory()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Worker job failed", key=key, error=str(e))
            return None
        finally:
            self._tasks.pop(key, None)
            self._semaphore.release()

    def close(self) -> None:
        """Stop admitting new jobs; running jobs continue."""
        self._closed = True

    async def drain(self, timeout: float | None = None) -> bool:
        """
        Wait for all outstanding jobs.

        Jobs still running when the timeout expires are left alone (not
        cancelled).

        Returns:
            True if every job finished within the timeout
        """
        pending = set(self._tasks.values())
        if not pending:
            return True
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        return not still_pending
