"""
Behavior Rule Base Class

Every rule source (static legacy table, rule objects written in code,
persisted strategy records) is exposed to the manager through one
capability interface:

    can_apply(ctx) -> bool
    generate(ctx)  -> list[Behavior]

The manager never branches on what kind of rule it is looking at.
Enabled flags, cooldowns and execution caps are enforced by the manager
for every rule the same way.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional
import logging

from .conditions import ConditionEvaluator
from .models import Behavior, BehaviorType, EmotionType, ExecutionContext, PetState, Strategy

logger = logging.getLogger("companion.behavior.rules")


class BehaviorRule(ABC):
    """
    Base class for all behavior rules.

    Subclasses must implement:
    - id: Unique identifier (also the stats / cooldown key)
    - can_apply(): Whether the rule fits the context
    - generate(): The behaviors it contributes

    Optional overrides:
    - priority: Ordering among applicable rules (higher first)
    - cooldown_ms / max_executions: Firing limits
    """

    id: str = "base-rule"
    name: str = ""
    description: str = ""
    priority: int = 5
    cooldown_ms: Optional[int] = None
    max_executions: Optional[int] = None

    def __init__(self):
        self.enabled = True
        if not self.name:
            self.name = self.id

    @abstractmethod
    def can_apply(self, ctx: ExecutionContext) -> bool:
        """Whether this rule should contribute behaviors for ctx."""
        raise NotImplementedError

    @abstractmethod
    def generate(self, ctx: ExecutionContext) -> list[Behavior]:
        """Behaviors this rule contributes. Called only when can_apply() is True."""
        raise NotImplementedError

    @property
    def strategy(self) -> Optional[Strategy]:
        """The persisted record behind this rule, if any."""
        return None

    def _behavior(self, type, priority: int, **kwargs) -> Behavior:
        """Build a Behavior attributed to this rule."""
        payload = kwargs.pop("payload", {})
        for key in ("message", "animation", "plugin_id", "metadata"):
            if key in kwargs:
                payload[key] = kwargs.pop(key)
        return Behavior(type=type, priority=priority, payload=payload, source_id=self.id, **kwargs)

    def describe(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "priority": self.priority,
            "enabled": self.enabled,
        }


class StrategyRule(BehaviorRule):
    """Adapts a persisted Strategy record to the rule interface."""

    def __init__(self, strategy: Strategy, evaluator: ConditionEvaluator):
        # No super().__init__(): enabled and name live on the record itself
        self._strategy = strategy
        self._evaluator = evaluator

    @property
    def strategy(self) -> Strategy:
        return self._strategy

    # Identity and limits always reflect the current record
    @property
    def id(self) -> str:
        return self._strategy.id

    @property
    def name(self) -> str:
        return self._strategy.name

    @property
    def description(self) -> str:
        return self._strategy.description

    @property
    def priority(self) -> int:
        return self._strategy.priority

    @property
    def cooldown_ms(self) -> Optional[int]:
        return self._strategy.cooldown_ms

    @property
    def max_executions(self) -> Optional[int]:
        return self._strategy.max_executions

    @property
    def enabled(self) -> bool:
        return self._strategy.enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._strategy.enabled = value

    def matches(self, state: PetState, emotion: EmotionType, ctx: Optional[ExecutionContext]) -> bool:
        """State/emotion membership plus conditions (skipped without a context)."""
        if not self._strategy.applies_to(state, emotion):
            return False
        return self._evaluator.evaluate_all(self._strategy.conditions, ctx)

    def can_apply(self, ctx: ExecutionContext) -> bool:
        return self.matches(ctx.state, ctx.emotion_type, ctx)

    def generate(self, ctx: ExecutionContext) -> list[Behavior]:
        return [
            action.to_behavior(self._strategy.priority, source_id=self._strategy.id)
            for action in self._strategy.actions
        ]


class CallableRule(BehaviorRule):
    """
    Rule assembled from two callables, for quick registration without a subclass.

    Usage:
        rule = CallableRule(
            "greet_on_hover",
            can_apply=lambda ctx: ctx.state == PetState.HOVER,
            generate=lambda ctx: [Behavior(type="hover_feedback", priority=5)],
            priority=6,
        )
    """

    def __init__(
        self,
        rule_id: str,
        can_apply: Callable[[ExecutionContext], bool],
        generate: Callable[[ExecutionContext], list[Behavior]],
        priority: int = 5,
        description: str = "",
        cooldown_ms: Optional[int] = None,
        max_executions: Optional[int] = None,
    ):
        self.id = rule_id
        self.priority = priority
        self.description = description
        self.cooldown_ms = cooldown_ms
        self.max_executions = max_executions
        self._can_apply = can_apply
        self._generate = generate
        super().__init__()

    def can_apply(self, ctx: ExecutionContext) -> bool:
        return bool(self._can_apply(ctx))

    def generate(self, ctx: ExecutionContext) -> list[Behavior]:
        behaviors = list(self._generate(ctx) or [])
        for b in behaviors:
            if b.source_id is None:
                b.source_id = self.id
        return behaviors


class EmotionDrivenRule(BehaviorRule):
    """Extra expression when the emotion runs hot (intensity above 0.7)."""

    id = "emotion_driven"
    name = "Emotion driven"
    description = "Supplementary behaviors driven by emotion intensity"
    priority = 2

    THRESHOLD = 0.7
    INTENSE = 0.8

    def can_apply(self, ctx: ExecutionContext) -> bool:
        return ctx.emotion.intensity > self.THRESHOLD

    def generate(self, ctx: ExecutionContext) -> list[Behavior]:
        behaviors = []
        intensity = ctx.emotion.intensity
        emotion = ctx.emotion_type.value

        if intensity > self.INTENSE:
            behaviors.append(self._behavior(
                BehaviorType.EMOTIONAL_EXPRESSION,
                9,
                duration_ms=int(intensity * 2000),
                message=f"The companion's {emotion} feeling is overwhelming!",
                metadata={"emotion_intensity": intensity, "expression_level": "intense"},
            ))

        if ctx.emotion_type == EmotionType.EXCITED:
            behaviors.append(self._behavior(
                BehaviorType.ANIMATION_SEQUENCE,
                6,
                duration_ms=3000,
                animation="excitement_burst",
                message="The companion is bursting with excitement!",
            ))

        return behaviors


class TimeAwareRule(BehaviorRule):
    """Adapts to the time of day: morning greeting, drowsiness at night."""

    id = "time_aware"
    name = "Time aware"
    description = "Adapts behavior to the time of day"
    priority = 1

    def can_apply(self, ctx: ExecutionContext) -> bool:
        return ctx.environment.time_of_day in ("morning", "night")

    def generate(self, ctx: ExecutionContext) -> list[Behavior]:
        time_of_day = ctx.environment.time_of_day

        if time_of_day == "morning" and ctx.state == PetState.IDLE:
            return [self._behavior(
                BehaviorType.USER_PROMPT,
                4,
                delay_ms=5000,
                message="Good morning! Ready to start the day?",
            )]

        if time_of_day == "night" and ctx.emotion_type != EmotionType.SLEEPY:
            return [self._behavior(
                BehaviorType.MOOD_TRANSITION,
                3,
                duration_ms=2000,
                message="It's late, the companion is getting drowsy...",
                metadata={"target_emotion": EmotionType.SLEEPY.value},
            )]

        return []


def get_default_rules() -> list[BehaviorRule]:
    """Instances of the built-in capability rules."""
    return [EmotionDrivenRule(), TimeAwareRule()]
