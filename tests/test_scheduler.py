"""
Tests for the behavior scheduler and its executor.

Async paths are driven with asyncio.run inside plain test functions.
"""

import asyncio

import pytest

from behavior import scheduler as scheduler_module
from behavior.catalog import StrategyCatalog
from behavior.errors import ValidationError
from behavior.events import BEHAVIOR_EXECUTED, SCHEDULE_COMPLETED
from behavior.manager import StrategyManager
from behavior.models import ActionSpec, Behavior, EmotionContext, EmotionType, PetState, Strategy
from behavior.scheduler import BehaviorScheduler, get_scheduler, shutdown_scheduler


def _record(strategy_id, states=("idle",), emotions=("calm",), priority=5, actions=None, **extra):
    record = {
        "id": strategy_id,
        "name": strategy_id,
        "states": list(states),
        "emotions": list(emotions),
        "priority": priority,
        "actions": actions or [{"type": "idle_animation", "message": strategy_id}],
    }
    record.update(extra)
    return record


def _build(clock, records=(), legacy_rules=(), fake_sleep=True, **kwargs):
    """Scheduler with an explicit catalog and (by default) a clock-advancing sleep."""
    catalog = StrategyCatalog()
    for record in records:
        catalog.register_strategy(record)
    manager = StrategyManager(catalog, clock=clock)

    if fake_sleep:
        async def sleep(seconds):
            clock.advance(int(seconds * 1000))
            await asyncio.sleep(0)
        kwargs["sleep"] = sleep

    kwargs.setdefault("exclusive_states", [])
    return BehaviorScheduler(
        manager=manager,
        legacy_rules=None if legacy_rules is None else list(legacy_rules),
        clock=clock,
        **kwargs,
    )


class TestScenarios:
    """End-to-end decision scenarios."""

    def test_zero_cooldown_never_blocks(self, clock):
        """Back-to-back calls both succeed when cooldown is zero."""
        sched = _build(clock, [_record("calm_idle", priority=2, cooldownMs=0)])

        async def run():
            first = await sched.schedule(PetState.IDLE, EmotionType.CALM)
            second = await sched.schedule(PetState.IDLE, EmotionType.CALM)
            return first, second

        first, second = asyncio.run(run())
        assert first.success and second.success
        assert len(first.executed_behaviors) == 1
        assert len(second.executed_behaviors) == 1

    def test_cooldown_excludes_within_window(self, clock):
        """A second query within 1s no longer lists a strategy with a 5s cooldown."""
        sched = _build(clock, [_record("burst", states=["awaken"], emotions=["excited"], priority=9, cooldownMs=5000)])

        result = asyncio.run(sched.schedule(PetState.AWAKEN, EmotionType.EXCITED))
        assert result.success

        clock.advance(800)
        assert sched.get_matching_strategies(PetState.AWAKEN, EmotionType.EXCITED) == []

        second = asyncio.run(sched.schedule(PetState.AWAKEN, EmotionType.EXCITED))
        assert not second.success

        clock.advance(5000)
        assert [s.id for s in sched.get_matching_strategies(PetState.AWAKEN, EmotionType.EXCITED)] == ["burst"]

    def test_empty_match(self, clock):
        """No strategy and no fallback: success is False and nothing ran."""
        sched = _build(clock)
        result = asyncio.run(sched.schedule(PetState.HOVER, EmotionType.SLEEPY))

        assert result.success is False
        assert result.executed_behaviors == []
        assert "hover/sleepy" in result.message
        assert result.next_schedule_hint is not None

    def test_legacy_fallback(self, clock):
        """With nothing in the catalog the legacy table answers."""
        sched = _build(clock, legacy_rules=None)
        result = asyncio.run(sched.schedule(PetState.IDLE, EmotionType.CALM))

        assert result.success
        assert [b.type for b in result.executed_behaviors] == ["idle_animation"]
        assert result.executed_behaviors[0].source_id == "legacy:idle:calm"
        assert "legacy" in result.message

    def test_strategies_win_over_legacy(self, clock):
        sched = _build(clock, [_record("mine", actions=[{"type": "user_prompt"}])], legacy_rules=None)
        result = asyncio.run(sched.schedule(PetState.IDLE, EmotionType.CALM))
        assert [b.source_id for b in result.executed_behaviors] == ["mine"]

    def test_add_legacy_rule(self, clock):
        sched = _build(clock)
        sched.add_legacy_rule(PetState.HOVER, EmotionType.CALM, Behavior("hover_feedback", 3))
        result = asyncio.run(sched.schedule(PetState.HOVER, EmotionType.CALM))
        assert result.success
        assert result.executed_behaviors[0].type == "hover_feedback"


class TestExecution:
    """Tests for the sequential executor behind schedule()."""

    def test_order_by_priority(self, clock):
        performed = []
        sched = _build(clock, [
            _record("low", priority=1, actions=[{"type": "idle_animation"}]),
            _record("high", priority=8, actions=[{"type": "user_prompt"}, {"type": "mood_transition", "priority": 4}]),
        ])
        for behavior_type in ("idle_animation", "user_prompt", "mood_transition"):
            sched.executor.register_handler(behavior_type, lambda b, ctx: performed.append(b.type))

        asyncio.run(sched.schedule(PetState.IDLE, EmotionType.CALM))
        assert performed == ["user_prompt", "mood_transition", "idle_animation"]

    def test_delay_and_duration_are_awaited(self, clock):
        """delay before, duration after: both advance time for this batch."""
        start = clock.now
        sched = _build(clock, [_record("timed", actions=[
            {"type": "idle_animation", "delayMs": 300, "durationMs": 700},
        ])])
        result = asyncio.run(sched.schedule(PetState.IDLE, EmotionType.CALM))
        assert result.elapsed_ms == 1000
        assert sched.cooldowns.last_fired("timed") == start + 300

    def test_raising_effect_does_not_abort_batch(self, clock):
        """A failing action is recorded; the rest of the batch still runs."""
        def boom(behavior, ctx):
            raise RuntimeError("animation backend down")

        strategy = Strategy(
            id="fragile",
            name="Fragile",
            states=[PetState.IDLE],
            emotions=[EmotionType.CALM],
            priority=5,
            actions=[
                ActionSpec("idle_animation", effect=boom),
                ActionSpec("user_prompt", priority=4, message="still here"),
            ],
        )
        sched = _build(clock)
        sched.register_strategy(strategy)

        result = asyncio.run(sched.schedule(PetState.IDLE, EmotionType.CALM))

        assert result.success
        assert [b.type for b in result.executed_behaviors] == ["user_prompt"]
        assert len(result.errors) == 1
        assert "animation backend down" in result.errors[0]

        stats = {s.strategy_id: s for s in sched.get_execution_stats()}["fragile"]
        assert stats.execution_count == 1
        assert stats.success_rate == 0.0
        assert len(stats.errors) == 1

    def test_error_ring_is_bounded(self, clock):
        def boom(behavior, ctx):
            raise ValueError("nope")

        sched = _build(clock)
        sched.register_strategy(Strategy(
            id="always_fails", name="Always fails", states=["idle"], emotions=["calm"],
            actions=[ActionSpec("idle_animation", effect=boom)],
        ))

        async def run():
            for _ in range(12):
                await sched.schedule(PetState.IDLE, EmotionType.CALM)

        asyncio.run(run())
        stats = sched.stats.get("always_fails")
        assert stats.execution_count == 12
        assert len(stats.errors) == 10

    def test_rolling_average_and_success_rate(self, clock):
        sched = _build(clock, [_record("steady", actions=[{"type": "idle_animation", "durationMs": 200}])])

        async def run():
            await sched.schedule(PetState.IDLE, EmotionType.CALM)
            await sched.schedule(PetState.IDLE, EmotionType.CALM)

        asyncio.run(run())
        stats = sched.stats.get("steady")
        assert stats.execution_count == 2
        assert stats.rolling_avg_duration_ms == pytest.approx(200)
        assert stats.success_rate == 1.0
        assert stats.last_executed_at == clock.now - 200

    def test_plugin_trigger_forwards_payload(self, clock):
        received = {}

        def camera(payload):
            received.update(payload)
            return {"success": True, "data": "frame", "message": "captured"}

        sched = _build(clock, [_record("snap", actions=[
            {"type": "plugin_trigger", "pluginId": "camera", "params": {"action": "capture"}},
        ])])
        sched.plugins.register("camera", camera)

        result = asyncio.run(sched.schedule(PetState.IDLE, EmotionType.CALM))

        assert result.success and not result.errors
        assert received["action"] == "capture"
        assert received["state"] == "idle"
        assert received["emotion"] == "calm"
        assert received["session_id"] == sched.session_id

    def test_plugin_trigger_without_id_fans_out_by_state(self, clock):
        """The legacy awaken rows carry no plugin id: every plugin subscribed to the state runs."""
        calls = []

        def lights(payload):
            calls.append(("lights", payload["state"], payload["behavior_type"]))
            return {"success": True}

        def camera(payload):
            calls.append(("camera", payload["state"], payload["behavior_type"]))

        sched = _build(clock, legacy_rules=None)
        sched.plugins.register("lights", lights, states=["awaken"])
        sched.plugins.register("camera", camera, states=[PetState.IDLE])

        result = asyncio.run(sched.schedule(PetState.AWAKEN, EmotionType.HAPPY))

        assert "plugin_trigger" in [b.type for b in result.executed_behaviors]
        assert calls == [("lights", "awaken", "plugin_trigger")]
        assert not result.errors

    def test_fan_out_isolates_failing_plugin(self, clock):
        calls = []

        def broken(payload):
            raise RuntimeError("plugin crashed")

        sched = _build(clock, [_record("fan", actions=[{"type": "plugin_trigger"}])])
        sched.plugins.register("broken", broken)
        sched.plugins.register("steady", lambda payload: calls.append(payload["state"]))

        result = asyncio.run(sched.schedule(PetState.IDLE, EmotionType.CALM))

        assert calls == ["idle"]
        assert result.success and not result.errors
        assert sched.plugins.plugins_for_state(PetState.HOVER) == ["broken", "steady"]

    def test_next_schedule_hint(self, clock):
        sched = _build(clock, base_interval_ms=5000)
        assert sched.next_schedule_hint(PetState.IDLE, EmotionType.SLEEPY) == clock.now + 20000
        assert sched.next_schedule_hint(PetState.HOVER, EmotionType.EXCITED) == clock.now + 1250
        assert sched.next_schedule_hint(PetState.AWAKEN, EmotionType.CALM) == clock.now + 1500

    def test_events_published(self, clock):
        executed, completed = [], []
        sched = _build(clock, [_record("calm")])
        sched.bus.subscribe(BEHAVIOR_EXECUTED, executed.append)
        sched.bus.subscribe(SCHEDULE_COMPLETED, completed.append)

        asyncio.run(sched.schedule(PetState.IDLE, EmotionType.CALM))

        assert [e.payload["behavior"]["type"] for e in executed] == ["idle_animation"]
        assert completed[0].payload["result"]["success"] is True


class TestConcurrency:
    """Overlapping schedule() calls."""

    def test_batches_do_not_block_each_other(self, clock):
        """A long batch does not delay an independent short one."""
        sched = _build(clock, [
            _record("slow", actions=[{"type": "idle_animation", "durationMs": 300}]),
            _record("fast", states=["hover"], actions=[{"type": "hover_feedback"}]),
        ], fake_sleep=False)
        finished = []
        sched.bus.subscribe(SCHEDULE_COMPLETED, lambda e: finished.append(e.payload["state"]))

        async def run():
            await asyncio.gather(
                sched.schedule(PetState.IDLE, EmotionType.CALM),
                sched.schedule(PetState.HOVER, EmotionType.CALM),
            )

        asyncio.run(run())
        assert finished == ["hover", "idle"]

    def _overlap_counter(self, sched):
        state = {"active": 0, "max": 0}

        async def handler(behavior, ctx):
            state["active"] += 1
            state["max"] = max(state["max"], state["active"])
            await asyncio.sleep(0.05)
            state["active"] -= 1

        sched.executor.register_handler("hover_feedback", handler)
        return state

    def test_overlap_allowed_by_default(self, clock):
        sched = _build(clock, [_record("h", states=["hover"], actions=[{"type": "hover_feedback"}])], fake_sleep=False)
        overlap = self._overlap_counter(sched)

        async def run():
            await asyncio.gather(*(sched.schedule(PetState.HOVER, EmotionType.CALM) for _ in range(2)))

        asyncio.run(run())
        assert overlap["max"] == 2

    def test_exclusive_state_serializes(self, clock):
        sched = _build(
            clock,
            [_record("h", states=["hover"], actions=[{"type": "hover_feedback"}])],
            fake_sleep=False,
            exclusive_states=["hover"],
        )
        overlap = self._overlap_counter(sched)

        async def run():
            await asyncio.gather(*(sched.schedule(PetState.HOVER, EmotionType.CALM) for _ in range(2)))

        asyncio.run(run())
        assert overlap["max"] == 1

    def test_clear_scheduled_cancels_pending_sleeps(self, clock):
        sched = _build(clock, [_record("long", actions=[
            {"type": "idle_animation", "durationMs": 10_000},
            {"type": "user_prompt", "priority": 1},
        ])], fake_sleep=False)

        async def run():
            task = asyncio.ensure_future(sched.schedule(PetState.IDLE, EmotionType.CALM))
            await asyncio.sleep(0.05)
            assert sched.get_behavior_stats()["in_flight_batches"] == 1
            cancelled = sched.clear_scheduled()
            return cancelled, await task

        cancelled, result = asyncio.run(run())
        assert cancelled == 1
        assert result.cancelled
        assert result.success
        assert [b.type for b in result.executed_behaviors] == ["idle_animation"]
        assert sched.get_behavior_stats()["in_flight_batches"] == 0
        assert sched.stats.get("long").execution_count == 1


class TestContextAndLifecycle:
    """Context building, reloads and teardown."""

    def test_user_activity_from_last_interaction(self, clock):
        sched = _build(clock, system_load_probe=lambda: 0.42)
        assert sched.build_context(PetState.IDLE, EmotionType.CALM).environment.user_activity == "active"

        clock.advance(120_000)
        ctx = sched.build_context(PetState.IDLE, EmotionType.CALM)
        assert ctx.environment.user_activity == "idle"
        assert ctx.environment.system_load == 0.42
        assert ctx.metadata["last_interaction"] == clock.now - 120_000

        clock.advance(400_000)
        assert sched.build_context(PetState.IDLE, EmotionType.CALM).environment.user_activity == "away"

        sched.update_last_interaction()
        assert sched.build_context(PetState.IDLE, EmotionType.CALM).environment.user_activity == "active"

    def test_supplied_emotion_context_is_used(self, clock):
        sched = _build(clock, [_record(
            "intense", conditions=[{"type": "emotion_intensity", "operator": "gt", "value": 0.9}],
        )])
        weak = asyncio.run(sched.schedule(PetState.IDLE, EmotionType.CALM))
        strong = asyncio.run(sched.schedule(
            PetState.IDLE, EmotionType.CALM, emotion_context=EmotionContext(EmotionType.CALM, intensity=0.95),
        ))
        assert not weak.success
        assert strong.success

    def test_explicit_context_is_aligned_with_arguments(self, clock):
        sched = _build(clock, [_record("hover_only", states=["hover"])])
        ctx = sched.build_context(PetState.IDLE, EmotionType.CALM)
        result = asyncio.run(sched.schedule(PetState.HOVER, EmotionType.CALM, ctx=ctx))
        assert result.success

    def test_reload_strategies(self, clock):
        sched = _build(clock, [_record("old")])
        sched.reload_strategies([_record("new")])
        assert [s.id for s in sched.catalog.get_all_strategies()] == ["new"]

        with pytest.raises(ValidationError):
            sched.reload_strategies([_record("broken", states=["dancing"])])
        assert [s.id for s in sched.catalog.get_all_strategies()] == ["new"]

    def test_rhythm_passthrough_updates_last_interaction(self, clock):
        sched = _build(clock)
        clock.advance(400_000)
        sched.update_rhythm_by_context(PetState.HOVER, EmotionType.FOCUSED, clock.now)
        assert sched.get_current_rhythm().value == "adaptive"
        assert sched.build_context(PetState.IDLE, EmotionType.CALM).environment.user_activity == "active"

    def test_destroy_clears_runtime_state(self, clock):
        sched = _build(clock, [_record("calm")])
        asyncio.run(sched.schedule(PetState.IDLE, EmotionType.CALM))
        assert sched.get_execution_stats()

        sched.destroy()
        assert sched.get_execution_stats() == []
        assert sched.cooldowns.fire_count("calm") == 0

    def test_shared_instance_factory(self, monkeypatch):
        monkeypatch.setattr(scheduler_module, "_scheduler", None)
        first = get_scheduler()
        assert get_scheduler() is first
        assert "curious_awaken_explore" in first.catalog

        shutdown_scheduler()
        assert scheduler_module._scheduler is None
