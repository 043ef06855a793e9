#!/usr/bin/env python3
"""
Companion Engine

Entry point that wires the behavior engine together for a host process.

Loads the strategy file into a scheduler, optionally watches the file for
changes, and keeps running until SIGTERM/SIGINT.

Usage:
    python companion.py                          # Run with hot reload if enabled
    python companion.py --status                 # Show catalog and strategy file status
    python companion.py --simulate hover happy   # Run one schedule() and print the result
"""

import argparse
import asyncio
import json
import logging
import signal
from typing import Optional

from config import settings, configure_logging
from behavior.errors import StrategyImportError
from behavior.models import EmotionType, PetState
from behavior.scheduler import BehaviorScheduler
from behavior.stats import ExecutionStatsTracker
from store.strategy_store import StrategyStore
from store.watcher import StrategyWatcher

logger = logging.getLogger("companion.engine")


class CompanionEngine:
    """
    Owns the long-lived pieces of one companion: store, scheduler, watcher.

    boot() is safe to call from tests; start() boots and then waits for
    stop().
    """

    def __init__(
        self,
        store: Optional[StrategyStore] = None,
        scheduler: Optional[BehaviorScheduler] = None,
        hot_reload: Optional[bool] = None,
    ):
        self.store = store or StrategyStore()
        self.scheduler = scheduler or BehaviorScheduler(stats=ExecutionStatsTracker(path=settings.stats_file))
        self.hot_reload = settings.hot_reload_enabled if hot_reload is None else hot_reload
        self.watcher: Optional[StrategyWatcher] = None
        self._running = False
        self._shutdown_event = asyncio.Event()

    def load_strategies(self) -> int:
        """Replace the scheduler's record-backed strategies with the store file.

        A bad file is logged and the built-in strategies stay in place.
        """
        try:
            records = self.store.load_records()
        except StrategyImportError as e:
            logger.error(f"Keeping built-in strategies, strategy file unusable: {e}")
            return 0
        self.scheduler.reload_strategies(records)
        return len(records)

    def _on_store_change(self, records: list[dict]) -> None:
        """Store listener: every successful write reaches the running catalog."""
        self.scheduler.reload_strategies(records)

    async def boot(self) -> None:
        if self._running:
            return

        logger.info("Companion engine starting")
        self.store.initialize()
        count = self.load_strategies()
        logger.info(f"Loaded {count} strategies from {self.store.path}")
        self.store.add_listener(self._on_store_change)

        if self.hot_reload:
            self.watcher = StrategyWatcher(self.store, self.scheduler)
            self.watcher.start()

        self._running = True
        logger.info("Companion engine ready")

    async def start(self) -> None:
        """Boot, then block until stop() is called."""
        await self.boot()
        await self._shutdown_event.wait()

    async def stop(self) -> None:
        if not self._running:
            return

        logger.info("Companion engine shutting down...")
        self.store.remove_listener(self._on_store_change)
        if self.watcher:
            self.watcher.stop()
            self.watcher = None
        self.scheduler.destroy()
        self._running = False
        self._shutdown_event.set()
        logger.info("Companion engine stopped")

    @property
    def running(self) -> bool:
        return self._running


def setup_signal_handlers(engine: CompanionEngine) -> None:
    """Set up graceful shutdown on SIGTERM/SIGINT."""
    loop = asyncio.get_running_loop()

    def handle_signal():
        logger.info("Received shutdown signal")
        asyncio.create_task(engine.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal)


async def run_engine() -> None:
    engine = CompanionEngine()
    setup_signal_handlers(engine)
    await engine.start()


async def run_simulation(state: str, emotion: str) -> dict:
    """Boot an engine without hot reload, run one schedule() call and return the result."""
    engine = CompanionEngine(hot_reload=False)
    await engine.boot()
    try:
        result = await engine.scheduler.schedule(PetState(state), EmotionType(emotion))
    finally:
        await engine.stop()
    return result.to_dict()


def show_status() -> None:
    store = StrategyStore()
    print("Companion Engine Status")
    print("=" * 40)
    print(f"Strategy file: {store.path}")

    if not store.path.exists():
        print("Status: no strategy file yet (built-in strategies will be seeded)")
        return

    try:
        strategies = store.load_strategies()
    except StrategyImportError as e:
        print(f"Status: strategy file unusable ({e})")
        return

    enabled = sum(1 for s in strategies if s.enabled)
    print(f"Strategies: {len(strategies)} ({enabled} enabled)")
    print(f"Backups: {len(store.list_backups())}")
    print(f"Hot reload: {'on' if settings.hot_reload_enabled else 'off'}")


def main():
    parser = argparse.ArgumentParser(description="Companion behavior engine")
    parser.add_argument("--status", action="store_true", help="Show strategy file status")
    parser.add_argument("--simulate", nargs=2, metavar=("STATE", "EMOTION"),
                        help="Run one schedule() call and print the result")
    args = parser.parse_args()

    configure_logging()

    if args.status:
        show_status()
    elif args.simulate:
        print(json.dumps(asyncio.run(run_simulation(*args.simulate)), indent=2))
    else:
        asyncio.run(run_engine())


if __name__ == "__main__":
    main()
