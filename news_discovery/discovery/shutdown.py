"""Shutdown coordination.

Three triggers reach the coordinator:

- CANCEL: the caller's cancellation token fired (or the run task was
  cancelled); treated as a graceful stop.
- STOP: explicit ``DiscoveryService.stop()``.
- RELOAD: accepted and logged; currently performs no action.

The first CANCEL/STOP sets the stop event the scheduler watches and closes
the worker pool, so nothing is admitted after it. Draining then waits for
outstanding fetches up to the shutdown deadline. Fetches still running at
the deadline are abandoned, not cancelled; their own fetch timeout bounds
them.
"""

import asyncio
import enum
import time

import structlog

from news_discovery.discovery.config import SHUTDOWN_TIMEOUT_SECONDS
from news_discovery.discovery.pool import WorkerPool

logger = structlog.get_logger(__name__)


class ShutdownTrigger(enum.Enum):
    """Inputs accepted by the shutdown coordinator."""

    CANCEL = "cancel"
    STOP = "stop"
    RELOAD = "reload"


class ShutdownCoordinator:
    """Turns shutdown triggers into a stop event and a bounded drain."""

    def __init__(
        self,
        timeout_seconds: float = SHUTDOWN_TIMEOUT_SECONDS,
        pool: WorkerPool | None = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._pool = pool
        self._stop_event = asyncio.Event()
        self._trigger: ShutdownTrigger | None = None
        self._reloads = 0

    @property
    def stop_event(self) -> asyncio.Event:
        return self._stop_event

    @property
    def trigger(self) -> ShutdownTrigger | None:
        """The trigger that initiated shutdown, if any."""
        return self._trigger

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    @property
    def reload_count(self) -> int:
        return self._reloads

    def request(self, trigger: ShutdownTrigger) -> None:
        """Handle a trigger. Repeated stop triggers are ignored."""
        if trigger is ShutdownTrigger.RELOAD:
            self._reloads += 1
            logger.info("Reload requested; nothing to reload")
            return

        if self._stop_event.is_set():
            logger.debug("Shutdown already requested", trigger=trigger.value)
            return

        self._trigger = trigger
        self._stop_event.set()
        if self._pool is not None:
            self._pool.close()
        logger.info("Shutdown requested", trigger=trigger.value)

    async def watch(self, cancel_event: asyncio.Event) -> None:
        """Convert an external cancellation token into a CANCEL trigger."""
        await cancel_event.wait()
        self.request(ShutdownTrigger.CANCEL)

    async def drain(self, pool: WorkerPool) -> bool:
        """
        Stop admissions and wait for in-flight fetches.

        Returns:
            True if every fetch finished before the shutdown deadline
        """
        pool.close()
        in_flight = pool.active
        if in_flight == 0:
            return True

        logger.info(
            "Waiting for in-flight fetches",
            in_flight=in_flight,
            timeout_seconds=self._timeout,
        )
        start = time.monotonic()
        finished = await pool.drain(timeout=self._timeout)
        elapsed = round(time.monotonic() - start, 2)

        if finished:
            logger.info("In-flight fetches drained", elapsed_seconds=elapsed)
        else:
            logger.warning(
                "Shutdown deadline reached, abandoning in-flight fetches",
                abandoned=pool.active,
                elapsed_seconds=elapsed,
            )
        return finished
