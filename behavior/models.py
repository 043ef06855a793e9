"""Data models for the behavior engine."""

from collections import deque
from copy import deepcopy
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Optional
import time


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class PetState(str, Enum):
    """Interaction state of the companion."""
    IDLE = "idle"        # Default, nothing happening
    HOVER = "hover"      # Pointer over the companion
    AWAKEN = "awaken"    # Left click
    CONTROL = "control"  # Right click


class EmotionType(str, Enum):
    """Emotion computed by the external inference component."""
    HAPPY = "happy"
    CALM = "calm"
    EXCITED = "excited"
    CURIOUS = "curious"
    SLEEPY = "sleepy"
    FOCUSED = "focused"


class BehaviorType(str, Enum):
    """Known behavior types. Strategy records may also use free-form types."""
    IDLE_ANIMATION = "idle_animation"
    HOVER_FEEDBACK = "hover_feedback"
    AWAKEN_RESPONSE = "awaken_response"
    CONTROL_ACTIVATION = "control_activation"
    EMOTIONAL_EXPRESSION = "emotional_expression"
    EMOTIONAL_ANIMATION = "emotional_animation"
    MOOD_TRANSITION = "mood_transition"
    PLUGIN_TRIGGER = "plugin_trigger"
    PLUGIN_CALLBACK = "plugin_callback"
    USER_PROMPT = "user_prompt"
    SYSTEM_NOTIFICATION = "system_notification"
    DELAYED_ACTION = "delayed_action"
    ANIMATION_SEQUENCE = "animation_sequence"


def _enum_value(value: Any) -> Any:
    """Unwrap an Enum member to its raw value; leave anything else alone."""
    return value.value if isinstance(value, Enum) else value


def _coerce(enum_cls, value: Any) -> Any:
    """Convert to enum_cls when possible, otherwise return the raw value.

    Invalid values are kept so validation can report them instead of
    failing at construction time.
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower()) if isinstance(value, str) else enum_cls(value)
    except ValueError:
        return value


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def time_of_day_for_hour(hour: int) -> str:
    """Bucket an hour (0-23) into morning / afternoon / evening / night."""
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 18:
        return "afternoon"
    if 18 <= hour < 22:
        return "evening"
    return "night"


@dataclass
class EmotionContext:
    """Emotion snapshot supplied by the emotion-inference collaborator."""

    current_emotion: EmotionType
    intensity: float = 0.7           # 0.0-1.0
    duration_ms: int = 0             # How long this emotion has lasted
    triggers: list[str] = field(default_factory=list)
    history: list[dict] = field(default_factory=list)

    def __post_init__(self):
        self.current_emotion = _coerce(EmotionType, self.current_emotion)
        self.intensity = max(0.0, min(1.0, float(self.intensity)))

    def to_dict(self) -> dict:
        return {
            "current_emotion": _enum_value(self.current_emotion),
            "intensity": self.intensity,
            "duration_ms": self.duration_ms,
            "triggers": list(self.triggers),
            "history": list(self.history),
        }


@dataclass(frozen=True)
class Environment:
    """Ambient factors around a decision."""

    time_of_day: str = "afternoon"   # morning, afternoon, evening, night
    system_load: float = 0.0
    user_activity: str = "active"    # active, idle, away


@dataclass(frozen=True)
class ExecutionContext:
    """Read-only snapshot a single decision is computed against."""

    state: PetState
    emotion: EmotionContext
    timestamp: int
    session_id: str
    environment: Environment = field(default_factory=Environment)
    metadata: dict = field(default_factory=dict)

    @property
    def emotion_type(self) -> EmotionType:
        return self.emotion.current_emotion


@dataclass
class Behavior:
    """One timed, typed action instance emitted by a decision pass."""

    type: str
    priority: int
    delay_ms: int = 0
    duration_ms: int = 0
    payload: dict = field(default_factory=dict)
    source_id: Optional[str] = None  # Rule that produced it
    effect: Optional[Callable] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        # Normalize so that BehaviorType members and raw strings dedup together
        self.type = str(_enum_value(self.type))

    @property
    def message(self) -> Optional[str]:
        return self.payload.get("message")

    @property
    def plugin_id(self) -> Optional[str]:
        return self.payload.get("plugin_id")

    @property
    def animation(self) -> Optional[str]:
        return self.payload.get("animation")

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "priority": self.priority,
            "delay_ms": self.delay_ms,
            "duration_ms": self.duration_ms,
            "payload": dict(self.payload),
            "source_id": self.source_id,
        }


@dataclass
class ActionSpec:
    """One ordered step of a strategy; becomes a Behavior when the strategy fires."""

    type: str
    delay_ms: int = 0
    duration_ms: int = 0
    priority: Optional[int] = None  # Defaults to the owning strategy's priority
    message: Optional[str] = None
    animation: Optional[str] = None
    plugin_id: Optional[str] = None
    params: dict = field(default_factory=dict)
    effect: Optional[Callable] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        self.type = str(_enum_value(self.type))

    def to_behavior(self, default_priority: int, source_id: Optional[str] = None) -> Behavior:
        payload = dict(self.params)
        if self.message is not None:
            payload["message"] = self.message
        if self.animation is not None:
            payload["animation"] = self.animation
        if self.plugin_id is not None:
            payload["plugin_id"] = self.plugin_id
        return Behavior(
            type=self.type,
            priority=self.priority if self.priority is not None else default_priority,
            delay_ms=self.delay_ms or 0,
            duration_ms=self.duration_ms or 0,
            payload=payload,
            source_id=source_id,
            effect=self.effect,
        )

    def to_dict(self) -> dict:
        """Persisted (camelCase) form. The effect callable is never serialized."""
        data = {
            "type": self.type,
            "delayMs": self.delay_ms,
            "durationMs": self.duration_ms,
            "params": dict(self.params),
        }
        if self.priority is not None:
            data["priority"] = self.priority
        if self.message is not None:
            data["message"] = self.message
        if self.animation is not None:
            data["animation"] = self.animation
        if self.plugin_id is not None:
            data["pluginId"] = self.plugin_id
        return data


@dataclass
class Condition:
    """A gating predicate on a strategy.

    type selects the context field (emotion_intensity, time_range, ...);
    operator is one of gt, gte, lt, lte, eq, in, between.
    """

    type: str
    operator: str = "eq"
    value: Any = None
    custom_check: Optional[Callable[[ExecutionContext], bool]] = field(
        default=None, compare=False, repr=False
    )

    def to_dict(self) -> dict:
        return {"type": self.type, "operator": self.operator, "value": self.value}


@dataclass
class Strategy:
    """Persistent rule mapping (state, emotion, conditions) to an ordered action list."""

    id: str
    name: str
    states: list = field(default_factory=list)     # One or many PetState
    emotions: list = field(default_factory=list)   # One or many EmotionType
    actions: list[ActionSpec] = field(default_factory=list)
    priority: int = 5
    description: str = ""
    conditions: list[Condition] = field(default_factory=list)
    cooldown_ms: Optional[int] = None
    max_executions: Optional[int] = None
    enabled: bool = True

    def __post_init__(self):
        self.states = [_coerce(PetState, s) for s in _as_list(self.states)]
        self.emotions = [_coerce(EmotionType, e) for e in _as_list(self.emotions)]

    def applies_to(self, state: PetState, emotion: EmotionType) -> bool:
        """State-set and emotion-set membership."""
        return _coerce(PetState, state) in self.states and _coerce(EmotionType, emotion) in self.emotions

    def copy(self) -> "Strategy":
        """Detached copy: lists, params and condition values are new, callables are shared."""
        return replace(
            self,
            states=list(self.states),
            emotions=list(self.emotions),
            actions=[replace(a, params=deepcopy(a.params)) for a in self.actions],
            conditions=[replace(c, value=deepcopy(c.value)) for c in self.conditions],
        )

    def to_record(self) -> dict:
        """Persisted record form (the external store schema)."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "states": [_enum_value(s) for s in self.states],
            "emotions": [_enum_value(e) for e in self.emotions],
            "priority": self.priority,
            "conditions": [c.to_dict() for c in self.conditions],
            "cooldownMs": self.cooldown_ms,
            "maxExecutions": self.max_executions,
            "enabled": self.enabled,
            "actions": [a.to_dict() for a in self.actions],
        }


@dataclass
class ExecutionResult:
    """Outcome of one schedule() call."""

    success: bool
    executed_behaviors: list[Behavior] = field(default_factory=list)
    elapsed_ms: int = 0
    message: Optional[str] = None
    next_schedule_hint: Optional[int] = None  # Advisory epoch ms, never enforced
    errors: list[str] = field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "executed_behaviors": [b.to_dict() for b in self.executed_behaviors],
            "elapsed_ms": self.elapsed_ms,
            "message": self.message,
            "next_schedule_hint": self.next_schedule_hint,
            "errors": list(self.errors),
            "cancelled": self.cancelled,
        }

    @classmethod
    def nothing_matched(cls, message: str, elapsed_ms: int = 0) -> "ExecutionResult":
        return cls(success=False, elapsed_ms=elapsed_ms, message=message)


@dataclass
class StrategyExecutionStats:
    """Per-strategy telemetry, updated only by the executor."""

    strategy_id: str
    execution_count: int = 0
    last_executed_at: int = 0
    rolling_avg_duration_ms: float = 0.0
    success_rate: float = 1.0
    errors: deque = field(default_factory=lambda: deque(maxlen=10))

    def to_dict(self) -> dict:
        return {
            "strategy_id": self.strategy_id,
            "execution_count": self.execution_count,
            "last_executed_at": self.last_executed_at,
            "rolling_avg_duration_ms": self.rolling_avg_duration_ms,
            "success_rate": self.success_rate,
            "errors": list(self.errors),
        }
