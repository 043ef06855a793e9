"""
Executor - performs a decided batch of behaviors in order.

Per behavior:
    delay_ms > 0     -> await asyncio.sleep before performing it
    perform          -> its own effect if it has one, else the handler for its type
    duration_ms > 0  -> await asyncio.sleep before the next behavior starts

Sleeps only suspend this batch; other schedule() calls and the rhythm engine
keep running. An effect that raises is wrapped in ActionExecutionError,
recorded against the rule that produced it, and the batch moves on.

The executor is the only writer of cooldowns and execution statistics.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from .cooldown import CooldownTracker
from .errors import ActionExecutionError
from .events import BEHAVIOR_EXECUTED, EventBus
from .models import Behavior, BehaviorType, ExecutionContext, now_ms
from .plugins import PluginRegistry
from .stats import ExecutionStatsTracker

logger = logging.getLogger("companion.behavior.executor")

Handler = Callable[[Behavior, ExecutionContext], Any]


@dataclass
class BatchState:
    """What one in-flight batch has done so far (readable after cancellation)."""

    batch_id: int
    ctx: ExecutionContext
    executed: list[Behavior] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    cleared: bool = False
    task: Optional[asyncio.Task] = None


@dataclass
class _SourceRun:
    started_at: int
    elapsed_ms: int = 0
    errors: list[str] = field(default_factory=list)


class BehaviorExecutor:
    """Sequential async executor for one batch at a time (many batches may run concurrently)."""

    def __init__(
        self,
        plugins: Optional[PluginRegistry] = None,
        cooldowns: Optional[CooldownTracker] = None,
        stats: Optional[ExecutionStatsTracker] = None,
        bus: Optional[EventBus] = None,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.plugins = plugins or PluginRegistry()
        self.cooldowns = cooldowns or CooldownTracker()
        self.stats = stats or ExecutionStatsTracker(clock=clock)
        self.bus = bus or EventBus()
        self.clock = clock
        self._sleep = sleep
        self._handlers: dict[str, Handler] = {
            BehaviorType.PLUGIN_TRIGGER.value: self._handle_plugin_trigger,
        }

    def register_handler(self, behavior_type, handler: Handler) -> None:
        """Override how a behavior type is performed (e.g. by the UI layer)."""
        key = behavior_type.value if isinstance(behavior_type, BehaviorType) else str(behavior_type)
        self._handlers[key] = handler

    # -- handlers -------------------------------------------------------

    async def _handle_plugin_trigger(self, behavior: Behavior, ctx: ExecutionContext) -> Any:
        plugin_id = behavior.plugin_id
        payload = {k: v for k, v in behavior.payload.items() if k != "plugin_id"}
        payload.update({
            "state": ctx.state.value,
            "emotion": ctx.emotion_type.value,
            "intensity": ctx.emotion.intensity,
            "session_id": ctx.session_id,
            "timestamp": ctx.timestamp,
            "behavior_type": behavior.type,
        })

        if not plugin_id:
            results = await self.plugins.trigger_by_state(ctx.state, payload)
            failed = [pid for pid, r in results.items() if not r.success]
            logger.info(
                f"Triggered {len(results)} plugins for state {ctx.state.value}"
                + (f", failed: {', '.join(failed)}" if failed else "")
            )
            return results

        result = await self.plugins.execute(plugin_id, payload)
        if result.success:
            logger.info(f"Plugin {plugin_id} ok: {result.message or 'done'}")
        else:
            logger.warning(f"Plugin {plugin_id} reported failure: {result.message}")
        return result

    def _handle_generic(self, behavior: Behavior, ctx: ExecutionContext) -> None:
        parts = [f"[{behavior.type}]"]
        if behavior.animation:
            parts.append(f"animation={behavior.animation}")
        if behavior.message:
            parts.append(behavior.message)
        logger.info(" ".join(parts))

    async def _perform(self, behavior: Behavior, ctx: ExecutionContext) -> None:
        if behavior.effect is not None:
            result = behavior.effect(behavior, ctx)
        else:
            handler = self._handlers.get(behavior.type, self._handle_generic)
            result = handler(behavior, ctx)
        if inspect.isawaitable(result):
            await result

    # -- batch ----------------------------------------------------------

    async def execute(self, behaviors: list[Behavior], batch: BatchState) -> BatchState:
        """Run behaviors in order, recording into batch as it goes.

        Statistics are folded in even when the batch is cancelled mid-way.
        """
        ctx = batch.ctx
        runs: dict[str, _SourceRun] = {}
        try:
            for behavior in behaviors:
                source = behavior.source_id or "unknown"
                run = runs.get(source)
                step_started = self.clock()

                if behavior.delay_ms > 0:
                    await self._sleep(behavior.delay_ms / 1000)

                if run is None:
                    # First behavior of this rule in the batch: this is when it fired
                    run = runs[source] = _SourceRun(started_at=self.clock())
                    self.cooldowns.record_fire(source, run.started_at)

                try:
                    await self._perform(behavior, ctx)
                except Exception as e:
                    err = ActionExecutionError(behavior.type, behavior.source_id, e)
                    logger.warning(f"Behavior {behavior.type} from {source!r} failed: {err}")
                    run.errors.append(str(err))
                    batch.errors.append(str(err))
                else:
                    batch.executed.append(behavior)
                    self.bus.publish(
                        BEHAVIOR_EXECUTED,
                        behavior=behavior.to_dict(),
                        state=ctx.state.value,
                        emotion=ctx.emotion_type.value,
                        session_id=ctx.session_id,
                        batch_id=batch.batch_id,
                    )

                if behavior.duration_ms > 0:
                    await self._sleep(behavior.duration_ms / 1000)

                run.elapsed_ms += max(0, self.clock() - step_started)
        finally:
            for source, run in runs.items():
                self.stats.record_execution(
                    source,
                    duration_ms=run.elapsed_ms,
                    success=not run.errors,
                    errors=run.errors,
                    now=run.started_at,
                )
        return batch
