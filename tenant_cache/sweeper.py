# tenant_cache/sweeper.py

import asyncio
import logging
from contextlib import suppress

from tenant_cache.config import CACHE_SWEEP_INTERVAL_SECONDS
from tenant_cache.services.local_backend import LocalFallbackBackend

logger = logging.getLogger(__name__)

class ExpirySweeper:
    """Periodic background worker that purges expired entries from the local fallback cache."""

    def __init__(self, backend: LocalFallbackBackend, interval_seconds: float | None = None) -> None:
        # interval_seconds: fixed period, independent of request traffic
        self.backend = backend
        self.interval_seconds = interval_seconds or CACHE_SWEEP_INTERVAL_SECONDS
        self._task: asyncio.Task | None = None
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background sweep task."""
        if self._task is not None:
            return  # Already started
        self._stop = asyncio.Event()
        logger.info("Starting ExpirySweeper (interval=%s sec)...", self.interval_seconds)
        self._task = asyncio.create_task(self._run(), name="cache-expiry-sweeper")

    async def stop(self) -> None:
        """Signal the sweeper to stop and wait for it to finish."""
        if self._task is None:
            return
        logger.info("Stopping ExpirySweeper...")
        self._stop.set()
        try:
            await asyncio.wait_for(self._task, timeout=5)
        except asyncio.TimeoutError:
            logger.warning("Expiry sweeper did not stop in time; cancelling...")
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        finally:
            self._task = None
        logger.info("ExpirySweeper stopped.")

    async def _run(self) -> None:
        """Main loop: purge, then sleep until the next tick or until stop is requested."""
        try:
            while not self._stop.is_set():
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
                except asyncio.TimeoutError:
                    pass
                if self._stop.is_set():
                    break
                try:
                    purged = self.backend.purge_expired()
                    if purged:
                        logger.debug("Expiry sweep purged %s entries", purged)
                except Exception:
                    logger.exception("Expiry sweep failed with an exception.")
        finally:
            logger.debug("ExpirySweeper loop exiting.")
