"""
Execution Statistics

Per-strategy telemetry: how often each rule fired, how long its behaviors
took, how often they succeeded, and the last few errors. Only the executor
writes here; queries never do.

Concurrent batches may update the same id in any order. The numbers are
advisory, so last write wins.
"""

import logging
from collections import deque
from pathlib import Path
from typing import Callable, Iterable, Optional

from config import settings
from store.file_io import atomic_json_write, read_json_or_default

from .models import StrategyExecutionStats, now_ms

logger = logging.getLogger("companion.behavior.stats")


class ExecutionStatsTracker:
    """
    Tracks StrategyExecutionStats keyed by strategy id.

    Optionally persisted to a JSON file (loaded on construction, saved after
    every update) the same way other engine state is. clear() only forgets
    the in-memory copy; reset() also wipes the file.
    """

    def __init__(
        self,
        ring_size: Optional[int] = None,
        path: Optional[Path] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.ring_size = ring_size or settings.error_ring_size
        self.path = Path(path) if path else None
        self.clock = clock
        self._stats: dict[str, StrategyExecutionStats] = {}
        if self.path:
            self._load()

    def _new(self, strategy_id: str) -> StrategyExecutionStats:
        return StrategyExecutionStats(strategy_id=strategy_id, errors=deque(maxlen=self.ring_size))

    def _load(self) -> None:
        data = read_json_or_default(self.path, default={})
        for strategy_id, raw in data.items():
            stats = self._new(strategy_id)
            stats.execution_count = int(raw.get("execution_count", 0))
            stats.last_executed_at = int(raw.get("last_executed_at", 0))
            stats.rolling_avg_duration_ms = float(raw.get("rolling_avg_duration_ms", 0.0))
            stats.success_rate = float(raw.get("success_rate", 1.0))
            stats.errors.extend(raw.get("errors", []))
            self._stats[strategy_id] = stats

    def _save(self) -> None:
        if not self.path:
            return
        try:
            atomic_json_write(self.path, {sid: s.to_dict() for sid, s in self._stats.items()})
        except Exception as e:
            logger.error(f"Failed to save execution stats: {e}")

    def record_execution(
        self,
        strategy_id: str,
        duration_ms: float,
        success: bool,
        errors: Iterable[str] = (),
        now: Optional[int] = None,
    ) -> StrategyExecutionStats:
        """Fold one attempt into the running numbers."""
        stats = self._stats.get(strategy_id)
        if stats is None:
            stats = self._stats[strategy_id] = self._new(strategy_id)

        stats.execution_count += 1
        n = stats.execution_count
        stats.last_executed_at = now if now is not None else self.clock()
        stats.rolling_avg_duration_ms = (stats.rolling_avg_duration_ms * (n - 1) + duration_ms) / n
        stats.success_rate = (stats.success_rate * (n - 1) + (1.0 if success else 0.0)) / n
        for message in errors:
            stats.errors.append(message)

        self._save()
        return stats

    def get(self, strategy_id: str) -> Optional[StrategyExecutionStats]:
        return self._stats.get(strategy_id)

    def get_all(self) -> list[StrategyExecutionStats]:
        return list(self._stats.values())

    def forget(self, strategy_id: str) -> None:
        if self._stats.pop(strategy_id, None) is not None:
            self._save()

    def clear(self) -> None:
        """Drop the in-memory numbers. The backing file, if any, is left as it is."""
        self._stats.clear()

    def reset(self) -> None:
        """Wipe every strategy's numbers, on disk too."""
        self._stats.clear()
        self._save()
        logger.info("Execution stats reset")
