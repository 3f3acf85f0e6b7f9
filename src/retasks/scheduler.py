"""Periodic background sync for a task provider."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from .engine import TaskProvider
from .errors import SyncCancelledError
from .models import SyncResult

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[SyncResult], None]
ErrorCallback = Callable[[Exception], None]


class SyncScheduler:
    """Keep a provider in sync while the app runs.

    Syncs once on start and then every ``interval_s`` seconds. Hosts call
    ``notify_online`` when connectivity returns and ``notify_visible`` when
    the app comes back to the foreground.

    Failures are logged and handed to ``on_error``; the loop keeps going.
    """

    def __init__(
        self,
        provider: TaskProvider,
        interval_s: float = 300.0,
        on_update: UpdateCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self.provider = provider
        self.interval_s = interval_s
        self._on_update = on_update
        self._on_error = on_error
        self._loop_task: asyncio.Task[None] | None = None
        self._wakeup = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        """Start the loop. Must be called from a running event loop."""
        if self.running:
            return
        self._wakeup = asyncio.Event()
        self._loop_task = asyncio.create_task(self._run())
        logger.info(
            "Background sync started for %s (every %.0fs)", self.provider.key, self.interval_s
        )

    async def stop(self) -> None:
        """Stop the loop and wait for it to exit."""
        task = self._loop_task
        self._loop_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Background sync stopped for %s", self.provider.key)

    def notify_online(self) -> None:
        """Connectivity came back: sync now."""
        logger.debug("Network available; waking sync for %s", self.provider.key)
        self._wakeup.set()

    def notify_visible(self) -> None:
        """The app is visible again: sync only if the cache is stale."""
        if self.provider.is_cache_stale():
            logger.debug("Cache stale on return; waking sync for %s", self.provider.key)
            self._wakeup.set()

    async def sync_now(self) -> SyncResult | None:
        """Run one sync, reporting the outcome through the callbacks.

        Returns:
            The result, or None if the sync failed or was cancelled.
        """
        try:
            result = await self.provider.sync()
        except SyncCancelledError:
            logger.debug("Sync for %s was cancelled", self.provider.key)
            return None
        except Exception as e:
            logger.warning("Background sync for %s failed: %s", self.provider.key, e)
            if self._on_error is not None:
                self._on_error(e)
            return None

        if self._on_update is not None:
            try:
                self._on_update(result)
            except Exception:
                logger.exception("Sync update callback raised")
        return result

    async def _run(self) -> None:
        while True:
            self._wakeup.clear()
            await self.sync_now()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.interval_s)
            except TimeoutError:
                pass
