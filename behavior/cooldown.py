"""Per-strategy cooldown and execution-cap tracking."""

from typing import Optional


class CooldownTracker:
    """
    Remembers when each strategy last fired and how many times.

    A strategy may fire when it never fired before, or when
    now - last_fired >= cooldown_ms. The boundary is inclusive, so a
    zero or missing cooldown never blocks. max_executions caps the total
    number of fires; None or a value <= 0 means unlimited.
    """

    def __init__(self):
        self._last_fired: dict[str, int] = {}
        self._fire_counts: dict[str, int] = {}

    def may_fire(self, strategy, now: int) -> bool:
        strategy_id = strategy.id
        max_executions = getattr(strategy, "max_executions", None)
        if max_executions is not None and max_executions > 0:
            if self._fire_counts.get(strategy_id, 0) >= max_executions:
                return False

        cooldown_ms = getattr(strategy, "cooldown_ms", None)
        if not cooldown_ms:
            return True

        last = self._last_fired.get(strategy_id)
        if last is None:
            return True
        return now - last >= cooldown_ms

    def record_fire(self, strategy_id: str, now: int) -> None:
        """Mark a strategy as fired. Last write wins across concurrent batches."""
        self._last_fired[strategy_id] = now
        self._fire_counts[strategy_id] = self._fire_counts.get(strategy_id, 0) + 1

    def last_fired(self, strategy_id: str) -> Optional[int]:
        return self._last_fired.get(strategy_id)

    def fire_count(self, strategy_id: str) -> int:
        return self._fire_counts.get(strategy_id, 0)

    def remaining_ms(self, strategy, now: int) -> int:
        """How long until the cooldown expires (0 when it may fire)."""
        cooldown_ms = getattr(strategy, "cooldown_ms", None)
        last = self._last_fired.get(strategy.id)
        if not cooldown_ms or last is None:
            return 0
        return max(0, cooldown_ms - (now - last))

    def forget(self, strategy_id: str) -> None:
        self._last_fired.pop(strategy_id, None)
        self._fire_counts.pop(strategy_id, None)

    def clear(self) -> None:
        self._last_fired.clear()
        self._fire_counts.clear()
