"""
Strategy persistence.

StrategyStore reads and writes the strategy file; StrategyWatcher pushes
changes to a running scheduler.

Usage:
    from store import StrategyStore, StrategyWatcher

    store = StrategyStore()
    store.initialize()
    store.load_into(scheduler.catalog)
"""

from store.file_io import atomic_json_write, read_json, read_json_or_default
from store.strategy_store import StrategyStore, build_document, extract_records
from store.watcher import StrategyWatcher

__all__ = [
    "atomic_json_write",
    "read_json",
    "read_json_or_default",
    "StrategyStore",
    "build_document",
    "extract_records",
    "StrategyWatcher",
]
