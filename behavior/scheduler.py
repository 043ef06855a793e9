"""
Behavior Scheduler

The orchestrator. Not a long-lived state machine: every schedule() call is a
one-shot pipeline.

    build context -> StrategyManager (strategies + code rules)
                  -> legacy table if nothing matched
                  -> dedup / sort by priority
                  -> sequential executor
                  -> ExecutionResult

Overlapping schedule() calls do not wait for each other. Two calls issued
back to back (a double click, say) each evaluate strategies and cooldowns
at their own instant and may interleave. States listed in exclusive_states
opt out of that: calls for such a state are serialized with a lock.

Usage:
    scheduler = BehaviorScheduler()
    result = await scheduler.schedule(PetState.HOVER, EmotionType.HAPPY)
"""

import asyncio
import itertools
import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Optional

from config import settings, get_exclusive_states

from .catalog import StrategyCatalog
from .cooldown import CooldownTracker
from .errors import ValidationError
from .events import SCHEDULE_COMPLETED, EventBus
from .executor import BatchState, BehaviorExecutor
from .legacy import LegacyRule, build_legacy_rules
from .manager import StrategyManager
from .models import (
    Behavior,
    EmotionContext,
    EmotionType,
    Environment,
    ExecutionContext,
    ExecutionResult,
    PetState,
    Strategy,
    StrategyExecutionStats,
    now_ms,
    time_of_day_for_hour,
)
from .plugins import PluginRegistry
from .rules import BehaviorRule, get_default_rules
from .stats import ExecutionStatsTracker

logger = logging.getLogger("companion.behavior.scheduler")

# Advisory pacing: next_schedule_hint = now + base x state x emotion
STATE_MULTIPLIERS: dict[PetState, float] = {
    PetState.IDLE: 2.0,
    PetState.HOVER: 0.5,
    PetState.AWAKEN: 0.3,
    PetState.CONTROL: 0.8,
}

EMOTION_MULTIPLIERS: dict[EmotionType, float] = {
    EmotionType.EXCITED: 0.5,
    EmotionType.SLEEPY: 2.0,
    EmotionType.FOCUSED: 1.5,
}

# Milliseconds since the last interaction -> user_activity
ACTIVE_WITHIN_MS = 60_000
IDLE_WITHIN_MS = 300_000


class BehaviorScheduler:
    """
    Decides and performs behaviors for one companion instance.

    Everything the engine remembers (catalog, cooldowns, statistics, rhythm)
    hangs off an instance of this class. Pass collaborators in to share or
    isolate them; anything left out is built with defaults.
    """

    def __init__(
        self,
        manager: Optional[StrategyManager] = None,
        legacy_rules: Optional[list[LegacyRule]] = None,
        plugins: Optional[PluginRegistry] = None,
        bus: Optional[EventBus] = None,
        rhythm=None,
        stats: Optional[ExecutionStatsTracker] = None,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        session_id: Optional[str] = None,
        exclusive_states: Optional[Iterable] = None,
        base_interval_ms: Optional[int] = None,
        system_load_probe: Optional[Callable[[], float]] = None,
    ):
        self.clock = clock
        self.bus = bus or EventBus()

        if manager is None:
            catalog = StrategyCatalog.with_defaults()
            for rule in get_default_rules():
                catalog.register_rule(rule)
            manager = StrategyManager(catalog, clock=clock)
        self.manager = manager

        self.legacy_rules: list[LegacyRule] = build_legacy_rules() if legacy_rules is None else list(legacy_rules)
        self.plugins = plugins or PluginRegistry()
        self.stats = stats or ExecutionStatsTracker(clock=clock)
        self.executor = BehaviorExecutor(
            plugins=self.plugins,
            cooldowns=self.manager.cooldowns,
            stats=self.stats,
            bus=self.bus,
            clock=clock,
            sleep=sleep,
        )

        if rhythm is None:
            from rhythm.engine import RhythmAdaptationEngine
            rhythm = RhythmAdaptationEngine(bus=self.bus, clock=clock)
        self.rhythm = rhythm

        self.session_id = session_id or f"session-{uuid.uuid4().hex[:12]}"
        self.base_interval_ms = base_interval_ms or settings.base_schedule_interval_ms
        self._system_load_probe = system_load_probe
        self._last_interaction = clock()

        states = get_exclusive_states() if exclusive_states is None else exclusive_states
        self._locks: dict[PetState, asyncio.Lock] = {PetState(s): asyncio.Lock() for s in states}

        self._batches: dict[int, BatchState] = {}
        self._batch_ids = itertools.count(1)
        self._schedule_count = 0

        logger.info(
            f"Behavior scheduler ready: {len(self.catalog)} rules, "
            f"{len(self.legacy_rules)} legacy fallbacks, session {self.session_id}"
        )

    @property
    def catalog(self) -> StrategyCatalog:
        return self.manager.catalog

    @property
    def cooldowns(self) -> CooldownTracker:
        return self.manager.cooldowns

    # -- context --------------------------------------------------------

    def update_last_interaction(self, timestamp: Optional[int] = None) -> None:
        self._last_interaction = self.clock() if timestamp is None else int(timestamp)

    def _user_activity(self, now: int) -> str:
        since = now - self._last_interaction
        if since < ACTIVE_WITHIN_MS:
            return "active"
        if since < IDLE_WITHIN_MS:
            return "idle"
        return "away"

    def _system_load(self) -> float:
        if self._system_load_probe is None:
            return 0.0
        try:
            return float(self._system_load_probe())
        except Exception as e:
            logger.debug(f"System load probe failed: {e}")
            return 0.0

    def build_context(
        self,
        state: PetState,
        emotion: EmotionType,
        emotion_context: Optional[EmotionContext] = None,
        metadata: Optional[dict] = None,
    ) -> ExecutionContext:
        """Snapshot everything a decision needs at the current instant."""
        now = self.clock()
        if emotion_context is None:
            emotion_context = EmotionContext(
                current_emotion=emotion,
                intensity=settings.default_emotion_intensity,
                duration_ms=settings.default_emotion_duration_ms,
            )

        environment = Environment(
            time_of_day=time_of_day_for_hour(datetime.fromtimestamp(now / 1000).hour),
            system_load=self._system_load(),
            user_activity=self._user_activity(now),
        )
        return ExecutionContext(
            state=PetState(state),
            emotion=emotion_context,
            timestamp=now,
            session_id=self.session_id,
            environment=environment,
            metadata={"last_interaction": self._last_interaction, **(metadata or {})},
        )

    def _align_context(self, ctx: ExecutionContext, state: PetState, emotion: EmotionType) -> ExecutionContext:
        """The explicit state/emotion arguments win over a stale ctx."""
        if ctx.state == state and ctx.emotion_type == emotion:
            return ctx
        return replace(ctx, state=state, emotion=replace(ctx.emotion, current_emotion=emotion))

    def next_schedule_hint(self, state: PetState, emotion: EmotionType, now: Optional[int] = None) -> int:
        now = self.clock() if now is None else now
        factor = STATE_MULTIPLIERS.get(state, 1.0) * EMOTION_MULTIPLIERS.get(emotion, 1.0)
        return int(now + self.base_interval_ms * factor)

    # -- decision + execution -------------------------------------------

    def decide(self, ctx: ExecutionContext) -> tuple[list[Behavior], str]:
        """Behaviors for ctx and where they came from ("strategies", "legacy" or "none")."""
        behaviors = self.manager.generate_behaviors(ctx)
        if behaviors:
            return behaviors, "strategies"

        fallback = []
        for rule in self.legacy_rules:
            if rule.enabled and rule.can_apply(ctx):
                fallback.append(rule)
        behaviors = self.manager.generate_from(fallback, ctx)
        if behaviors:
            return behaviors, "legacy"
        return [], "none"

    async def schedule(
        self,
        state: PetState,
        emotion: EmotionType,
        ctx: Optional[ExecutionContext] = None,
        emotion_context: Optional[EmotionContext] = None,
    ) -> ExecutionResult:
        """Decide and perform behaviors for (state, emotion). Never raises for "nothing to do"."""
        state = PetState(state)
        emotion = EmotionType(emotion)
        if ctx is None:
            ctx = self.build_context(state, emotion, emotion_context)
        else:
            ctx = self._align_context(ctx, state, emotion)

        lock = self._locks.get(state)
        if lock is None:
            return await self._run(ctx)
        async with lock:
            return await self._run(ctx)

    async def _run(self, ctx: ExecutionContext) -> ExecutionResult:
        started = self.clock()
        self._schedule_count += 1
        hint = self.next_schedule_hint(ctx.state, ctx.emotion_type, now=started)

        behaviors, source = self.decide(ctx)
        if not behaviors:
            result = ExecutionResult.nothing_matched(
                f"No strategy or fallback rule for {ctx.state.value}/{ctx.emotion_type.value}",
                elapsed_ms=self.clock() - started,
            )
            result.next_schedule_hint = hint
            logger.info(result.message)
            self._publish_completed(ctx, result)
            return result

        logger.debug(f"Scheduling {len(behaviors)} behaviors from {source} for {ctx.state.value}/{ctx.emotion_type.value}")

        batch = BatchState(batch_id=next(self._batch_ids), ctx=ctx)
        batch.task = asyncio.ensure_future(self.executor.execute(behaviors, batch))
        self._batches[batch.batch_id] = batch
        try:
            await batch.task
        except asyncio.CancelledError:
            # Only swallow cancellations issued by clear_scheduled()
            if not batch.cleared:
                raise
        finally:
            self._batches.pop(batch.batch_id, None)

        if batch.cleared:
            message = f"Cancelled after {len(batch.executed)} of {len(behaviors)} behaviors"
        else:
            message = f"Executed {len(batch.executed)} of {len(behaviors)} behaviors ({source})"
            if batch.errors:
                message += f", {len(batch.errors)} failed"

        result = ExecutionResult(
            success=True,
            executed_behaviors=list(batch.executed),
            elapsed_ms=self.clock() - started,
            message=message,
            next_schedule_hint=hint,
            errors=list(batch.errors),
            cancelled=batch.cleared,
        )
        self._publish_completed(ctx, result)
        return result

    def _publish_completed(self, ctx: ExecutionContext, result: ExecutionResult) -> None:
        self.bus.publish(
            SCHEDULE_COMPLETED,
            state=ctx.state.value,
            emotion=ctx.emotion_type.value,
            session_id=ctx.session_id,
            result=result.to_dict(),
        )

    def clear_scheduled(self) -> int:
        """Cancel every pending delay/duration of every in-flight batch. Returns how many."""
        cancelled = 0
        for batch in list(self._batches.values()):
            if batch.task is not None and not batch.task.done():
                batch.cleared = True
                batch.task.cancel()
                cancelled += 1
        if cancelled:
            logger.info(f"Cleared {cancelled} scheduled batches")
        return cancelled

    # -- catalog passthrough --------------------------------------------

    def register_strategy(self, strategy: Any) -> Strategy:
        return self.catalog.register_strategy(strategy)

    def register_rule(self, rule: BehaviorRule) -> None:
        self.catalog.register_rule(rule)

    def remove_strategy(self, strategy_id: str) -> bool:
        return self.catalog.remove_strategy(strategy_id)

    def set_enabled(self, strategy_id: str, enabled: bool) -> bool:
        return self.catalog.set_enabled(strategy_id, enabled)

    def reload_strategies(self, records: list[dict]) -> list[Strategy]:
        """Hot-reload hook: swap the record-backed catalog for records in one step.

        Raises:
            ValidationError: nothing is changed when any record is invalid
        """
        try:
            strategies = self.catalog.replace_strategies(records)
        except ValidationError as e:
            logger.error(f"Strategy reload rejected, keeping current catalog: {e}")
            raise
        logger.info(f"Reloaded {len(strategies)} strategies")
        return strategies

    def get_matching_strategies(
        self,
        state: PetState,
        emotion: EmotionType,
        ctx: Optional[ExecutionContext] = None,
    ) -> list[Strategy]:
        return self.manager.get_matching_strategies(PetState(state), EmotionType(emotion), ctx)

    def add_legacy_rule(self, state: PetState, emotion: EmotionType, behavior: Behavior) -> None:
        """Append a behavior to the fallback table cell for (state, emotion)."""
        state = PetState(state)
        emotion = EmotionType(emotion)
        for rule in self.legacy_rules:
            if rule.state == state and rule.emotion == emotion:
                rule.add(behavior)
                return
        self.legacy_rules.append(LegacyRule(state, emotion, [behavior]))

    # -- observability --------------------------------------------------

    def get_execution_stats(self) -> list[StrategyExecutionStats]:
        return self.stats.get_all()

    def get_behavior_stats(self) -> dict:
        return {
            "session_id": self.session_id,
            "schedule_calls": self._schedule_count,
            "in_flight_batches": len(self._batches),
            "catalog": self.catalog.counts(),
            "legacy_rules": len(self.legacy_rules),
            "exclusive_states": [s.value for s in self._locks],
            "last_interaction": self._last_interaction,
            "rhythm": self.rhythm.get_current_rhythm().value,
        }

    # -- rhythm passthrough ---------------------------------------------

    def update_rhythm_by_context(
        self,
        state: PetState,
        emotion: EmotionType,
        timestamp: Optional[int] = None,
        is_interaction: bool = True,
    ):
        if is_interaction:
            self.update_last_interaction(timestamp)
        return self.rhythm.update_rhythm_by_context(state, emotion, timestamp, is_interaction)

    def get_current_rhythm(self):
        return self.rhythm.get_current_rhythm()

    # -- teardown -------------------------------------------------------

    def reset_stats(self) -> None:
        """Wipe execution statistics, including a persisted stats file."""
        self.stats.reset()

    def destroy(self) -> None:
        """Cancel pending work and forget all runtime state.

        Persisted statistics stay on disk; use reset_stats() to wipe them.
        """
        self.clear_scheduled()
        self.stats.clear()
        self.cooldowns.clear()
        self.rhythm.reset()
        logger.info(f"Behavior scheduler {self.session_id} destroyed")


# Default shared instance: a plain BehaviorScheduler built on first use
_scheduler: Optional[BehaviorScheduler] = None


def get_scheduler() -> BehaviorScheduler:
    """Get the shared scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = BehaviorScheduler()
    return _scheduler


def init_scheduler(**kwargs) -> BehaviorScheduler:
    """Replace the shared instance with one built from kwargs."""
    global _scheduler
    if _scheduler is not None:
        _scheduler.destroy()
    _scheduler = BehaviorScheduler(**kwargs)
    return _scheduler


def shutdown_scheduler() -> None:
    """Tear down the shared instance."""
    global _scheduler
    if _scheduler:
        _scheduler.destroy()
        _scheduler = None
