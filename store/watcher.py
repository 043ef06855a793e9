"""
Hot reload of the strategy file.

An APScheduler interval job polls the store file's mtime. When it changes,
the file is validated and handed to the target's reload_strategies(), which
swaps the catalog in one step. A bad file is logged and ignored; the running
catalog stays as it was until the next valid write.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import settings
from behavior.errors import StrategyImportError, ValidationError

from .file_io import file_mtime
from .strategy_store import StrategyStore

logger = logging.getLogger("companion.store.watcher")


class StrategyWatcher:
    """
    Polls a StrategyStore and pushes changes into a scheduler.

    Usage:
        watcher = StrategyWatcher(store, scheduler)
        watcher.start()      # inside a running event loop
        ...
        watcher.stop()
    """

    def __init__(self, store: StrategyStore, target, interval_seconds: Optional[float] = None):
        """
        Args:
            store: Where the strategy file lives
            target: Anything with reload_strategies(records), normally a BehaviorScheduler
            interval_seconds: Poll period (defaults to settings.hot_reload_interval_seconds)
        """
        self.store = store
        self.target = target
        self.interval_seconds = interval_seconds or settings.hot_reload_interval_seconds
        self.scheduler = AsyncIOScheduler()
        self._last_mtime = file_mtime(store.path)
        self._running = False
        self.reload_count = 0

    def check_now(self) -> bool:
        """Reload if the file changed since the last look. Returns True when reloaded."""
        mtime = file_mtime(self.store.path)
        if mtime is None or mtime == self._last_mtime:
            return False
        self._last_mtime = mtime

        try:
            records = self.store.load_records()
            self.target.reload_strategies(records)
        except (StrategyImportError, ValidationError) as e:
            logger.error(f"Ignoring strategy file change: {e}")
            return False

        self.reload_count += 1
        logger.info(f"Hot-reloaded {len(records)} strategies from {self.store.path}")
        return True

    async def _poll(self) -> None:
        self.check_now()

    def start(self) -> None:
        """Start polling. Must be called with an asyncio loop running."""
        if self._running:
            return

        self.scheduler.add_job(
            self._poll,
            IntervalTrigger(seconds=self.interval_seconds),
            id="strategy_hot_reload",
            name=f"Strategy hot reload ({self.interval_seconds}s)",
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        self._running = True
        logger.info(f"Watching {self.store.path} for strategy changes")

    def stop(self) -> None:
        if not self._running:
            return

        self.scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Strategy watcher stopped")

    @property
    def running(self) -> bool:
        return self._running
