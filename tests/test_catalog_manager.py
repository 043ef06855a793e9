"""
Tests for the strategy catalog and the strategy manager.
"""

import pytest

from behavior.catalog import StrategyCatalog
from behavior.errors import ValidationError
from behavior.manager import StrategyManager, dedup_by_type
from behavior.models import (
    ActionSpec,
    Behavior,
    EmotionContext,
    EmotionType,
    Environment,
    ExecutionContext,
    PetState,
    Strategy,
)
from behavior.rules import CallableRule, EmotionDrivenRule

NOW = 1_700_000_000_000


def _ctx(state=PetState.IDLE, emotion=EmotionType.CALM, intensity=0.5, timestamp=NOW):
    return ExecutionContext(
        state=state,
        emotion=EmotionContext(emotion, intensity=intensity),
        timestamp=timestamp,
        session_id="test",
        environment=Environment(),
    )


def _record(strategy_id, priority=5, states=("idle",), emotions=("calm",), actions=None, **extra):
    record = {
        "id": strategy_id,
        "name": strategy_id.title(),
        "states": list(states),
        "emotions": list(emotions),
        "priority": priority,
        "actions": actions or [{"type": "idle_animation", "message": strategy_id}],
    }
    record.update(extra)
    return record


class TestStrategyCatalog:
    """Tests for registration, ordering and bulk replacement."""

    def test_register_and_replace_keeps_position(self):
        """Re-registering an id replaces it without moving it."""
        catalog = StrategyCatalog()
        catalog.register_strategy(_record("a", priority=5))
        catalog.register_strategy(_record("b", priority=5))
        catalog.register_strategy(_record("a", priority=5, description="updated"))

        assert [s.id for s in catalog.get_all_strategies()] == ["a", "b"]
        assert catalog.get_strategy("a").description == "updated"

    def test_order_is_priority_then_registration(self):
        """Descending priority, ties by registration order."""
        catalog = StrategyCatalog()
        catalog.register_strategy(_record("low", priority=1))
        catalog.register_strategy(_record("tie1", priority=5))
        catalog.register_strategy(_record("high", priority=9))
        catalog.register_strategy(_record("tie2", priority=5))

        assert [s.id for s in catalog.get_all_strategies()] == ["high", "tie1", "tie2", "low"]

    def test_invalid_registration_raises(self):
        catalog = StrategyCatalog()
        record = _record("bad")
        record["actions"] = []
        with pytest.raises(ValidationError):
            catalog.register_strategy(record)
        assert len(catalog) == 0

    def test_remove_and_set_enabled(self):
        catalog = StrategyCatalog()
        catalog.register_strategy(_record("a"))

        assert catalog.set_enabled("a", False)
        assert catalog.get_strategy("a").enabled is False
        assert not catalog.set_enabled("missing", True)

        assert catalog.remove_strategy("a")
        assert not catalog.remove_strategy("a")

    def test_replace_is_all_or_nothing(self):
        """A bad record leaves the catalog untouched."""
        catalog = StrategyCatalog()
        catalog.register_strategy(_record("a"))

        with pytest.raises(ValidationError):
            catalog.replace_strategies([_record("b"), _record("c", emotions=["bored"])])

        assert [s.id for s in catalog.get_all_strategies()] == ["a"]

    def test_replace_keeps_code_rules(self):
        """Capability rules registered in code survive a reload."""
        catalog = StrategyCatalog()
        catalog.register_rule(EmotionDrivenRule())
        catalog.register_strategy(_record("a"))

        catalog.replace_strategies([_record("b")])

        assert "emotion_driven" in catalog
        assert "a" not in catalog
        assert [s.id for s in catalog.get_all_strategies()] == ["b"]

    def test_merge_import(self):
        catalog = StrategyCatalog()
        catalog.register_strategy(_record("a"))
        catalog.import_strategies([_record("b")], merge=True)
        assert {s.id for s in catalog.get_all_strategies()} == {"a", "b"}

    def test_with_defaults(self):
        catalog = StrategyCatalog.with_defaults()
        assert "curious_awaken_explore" in catalog
        assert catalog.counts()["strategies"] == 10


class TestMatchingStrategies:
    """Tests for StrategyManager.get_matching_strategies."""

    def test_filters_state_emotion_enabled(self):
        catalog = StrategyCatalog()
        catalog.register_strategy(_record("idle_calm"))
        catalog.register_strategy(_record("hover_calm", states=["hover"]))
        catalog.register_strategy(_record("multi", states=["idle", "hover"], emotions=["calm", "happy"]))
        catalog.register_strategy(_record("off", enabled=False))
        manager = StrategyManager(catalog, clock=lambda: NOW)

        ids = [s.id for s in manager.get_matching_strategies(PetState.IDLE, EmotionType.CALM)]
        assert ids == ["idle_calm", "multi"]

        ids = [s.id for s in manager.get_matching_strategies(PetState.HOVER, EmotionType.HAPPY)]
        assert ids == ["multi"]

    def test_conditions_only_with_context(self):
        """Conditions are evaluated only when a context is supplied."""
        catalog = StrategyCatalog()
        catalog.register_strategy(_record(
            "intense", conditions=[{"type": "emotion_intensity", "operator": "gte", "value": 0.8}]
        ))
        manager = StrategyManager(catalog, clock=lambda: NOW)

        assert manager.get_matching_strategies(PetState.IDLE, EmotionType.CALM)
        assert not manager.get_matching_strategies(PetState.IDLE, EmotionType.CALM, _ctx(intensity=0.5))
        assert manager.get_matching_strategies(PetState.IDLE, EmotionType.CALM, _ctx(intensity=0.9))

    def test_cooldown_window(self):
        """Excluded inside the window, included again at exactly t0 + C."""
        catalog = StrategyCatalog()
        catalog.register_strategy(_record("s", cooldownMs=5000))
        manager = StrategyManager(catalog, clock=lambda: NOW)
        manager.cooldowns.record_fire("s", NOW)

        assert not manager.get_matching_strategies(PetState.IDLE, EmotionType.CALM, _ctx(timestamp=NOW + 4999))
        assert manager.get_matching_strategies(PetState.IDLE, EmotionType.CALM, _ctx(timestamp=NOW + 5000))

    def test_query_idempotence(self):
        """Identical queries with no mutation in between return identical results."""
        manager = StrategyManager(StrategyCatalog.with_defaults(), clock=lambda: NOW)
        for state in PetState:
            for emotion in EmotionType:
                ctx = _ctx(state, emotion, intensity=0.9)
                first = manager.get_matching_strategies(state, emotion, ctx)
                second = manager.get_matching_strategies(state, emotion, ctx)
                assert [s.id for s in first] == [s.id for s in second]

    def test_queries_do_not_record_fires(self):
        manager = StrategyManager(StrategyCatalog.with_defaults(), clock=lambda: NOW)
        manager.get_matching_strategies(PetState.AWAKEN, EmotionType.EXCITED, _ctx(PetState.AWAKEN, EmotionType.EXCITED))
        manager.generate_behaviors(_ctx(PetState.AWAKEN, EmotionType.EXCITED))
        assert manager.cooldowns.fire_count("excited_awaken_highpower") == 0


class TestGenerateBehaviors:
    """Tests for behavior generation and dedup."""

    def test_dedup_keeps_max_priority(self):
        """Two strategies producing the same type collapse to the higher-priority one."""
        catalog = StrategyCatalog()
        catalog.register_strategy(_record("low", priority=2, actions=[{"type": "idle_animation", "message": "low"}]))
        catalog.register_strategy(_record("high", priority=7, actions=[
            {"type": "idle_animation", "message": "high"},
            {"type": "user_prompt", "message": "hello"},
        ]))
        manager = StrategyManager(catalog)

        behaviors = manager.generate_behaviors(_ctx())
        types = [b.type for b in behaviors]
        assert types.count("idle_animation") == 1
        assert behaviors[0].message == "high"
        assert behaviors[0].source_id == "high"
        assert set(types) == {"idle_animation", "user_prompt"}

    def test_action_priority_override(self):
        """An action may carry its own priority, which dedup respects."""
        catalog = StrategyCatalog()
        catalog.register_strategy(_record("a", priority=9, actions=[{"type": "user_prompt", "priority": 1}]))
        catalog.register_strategy(_record("b", priority=3, actions=[{"type": "user_prompt", "message": "b wins"}]))
        behaviors = StrategyManager(catalog).generate_behaviors(_ctx())
        assert len(behaviors) == 1
        assert behaviors[0].source_id == "b"

    def test_dedup_tie_keeps_first(self):
        behaviors = dedup_by_type([
            Behavior("idle_animation", 5, source_id="first"),
            Behavior("idle_animation", 5, source_id="second"),
            Behavior("user_prompt", 8),
        ])
        assert [b.type for b in behaviors] == ["user_prompt", "idle_animation"]
        assert behaviors[1].source_id == "first"

    def test_code_rules_participate(self):
        """Capability rules and record strategies are merged into one decision."""
        catalog = StrategyCatalog()
        catalog.register_strategy(_record("a", priority=2))
        catalog.register_rule(CallableRule(
            "prompt_rule",
            can_apply=lambda ctx: ctx.state == PetState.IDLE,
            generate=lambda ctx: [Behavior("user_prompt", 6, payload={"message": "hi"})],
            priority=6,
        ))
        behaviors = StrategyManager(catalog).generate_behaviors(_ctx())
        assert [b.type for b in behaviors] == ["user_prompt", "idle_animation"]
        assert behaviors[0].source_id == "prompt_rule"

    def test_raising_rule_is_skipped(self):
        def boom(ctx):
            raise RuntimeError("bad rule")

        catalog = StrategyCatalog()
        catalog.register_rule(CallableRule("broken", can_apply=boom, generate=lambda ctx: []))
        catalog.register_strategy(_record("a"))
        behaviors = StrategyManager(catalog).generate_behaviors(_ctx())
        assert [b.source_id for b in behaviors] == ["a"]

    def test_emotion_driven_rule(self):
        """Intense emotions add an emotional_expression behavior."""
        catalog = StrategyCatalog()
        catalog.register_rule(EmotionDrivenRule())
        behaviors = StrategyManager(catalog).generate_behaviors(
            _ctx(emotion=EmotionType.EXCITED, intensity=0.9)
        )
        assert {b.type for b in behaviors} == {"emotional_expression", "animation_sequence"}
        assert not StrategyManager(catalog).generate_behaviors(_ctx(intensity=0.5))


class TestCatalogRoundTrip:
    """Export then import into a fresh instance reproduces match results."""

    def test_round_trip(self):
        source = StrategyManager(StrategyCatalog.with_defaults(), clock=lambda: NOW)
        exported = source.catalog.export_strategies()

        fresh = StrategyManager(StrategyCatalog(), clock=lambda: NOW)
        fresh.catalog.import_strategies(exported)

        for state in PetState:
            for emotion in EmotionType:
                for intensity in (0.3, 0.75, 0.95):
                    ctx = _ctx(state, emotion, intensity=intensity)
                    expected = [s.id for s in source.get_matching_strategies(state, emotion, ctx)]
                    actual = [s.id for s in fresh.get_matching_strategies(state, emotion, ctx)]
                    assert actual == expected


class TestDetachedStrategies:
    """Strategies handed in or out never alias catalog state."""

    def test_editing_query_results_changes_nothing(self):
        catalog = StrategyCatalog()
        catalog.register_strategy(_record("a", actions=[{"type": "idle_animation", "params": {"loop": True}}]))
        manager = StrategyManager(catalog, clock=lambda: NOW)

        found = manager.get_matching_strategies(PetState.IDLE, EmotionType.CALM)
        found[0].priority = None
        found[0].states.clear()
        found[0].actions[0].params["loop"] = False
        listed = catalog.get_all_strategies()
        listed[0].enabled = False
        catalog.get_strategy("a").name = "renamed"

        stored = catalog.get_strategy("a")
        assert stored.priority == 5
        assert stored.states == [PetState.IDLE]
        assert stored.actions[0].params == {"loop": True}
        assert stored.enabled is True
        assert stored.name == "a".title()

        behaviors = manager.generate_behaviors(_ctx())
        assert [b.source_id for b in behaviors] == ["a"]

    def test_registered_object_is_copied(self):
        """Editing the object passed to register_strategy does not reach the catalog."""
        strategy = Strategy("mine", "Mine", states=["idle"], emotions=["calm"],
                            actions=[ActionSpec("idle_animation")], priority=4)
        returned = StrategyCatalog().register_strategy(strategy)
        assert returned is not strategy

        catalog = StrategyCatalog()
        catalog.register_strategy(strategy)
        strategy.priority = None
        strategy.emotions.append("bogus")

        assert catalog.get_strategy("mine").priority == 4
        assert catalog.get_strategy("mine").emotions == [EmotionType.CALM]
        assert StrategyManager(catalog).generate_behaviors(_ctx())[0].priority == 4

    def test_exported_records_are_independent(self):
        catalog = StrategyCatalog()
        catalog.register_strategy(_record("a", conditions=[{"type": "emotion_intensity", "operator": "between", "value": [0.1, 0.9]}]))
        exported = catalog.export_strategies()
        exported[0]["conditions"][0]["value"][1] = 0.2
        assert catalog.get_strategy("a").conditions[0].value == [0.1, 0.9]
