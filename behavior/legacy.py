"""
Legacy (state, emotion) -> behaviors table.

This is the fallback the scheduler consults when no strategy or rule
produced anything. At startup the table is turned into LegacyRule
instances so the fallback goes through the same rule interface as
everything else.
"""

from copy import deepcopy
from typing import Optional

from .models import Behavior, BehaviorType, EmotionType, ExecutionContext, PetState
from .rules import BehaviorRule

_I = BehaviorType.IDLE_ANIMATION
_H = BehaviorType.HOVER_FEEDBACK
_A = BehaviorType.AWAKEN_RESPONSE
_C = BehaviorType.CONTROL_ACTIVATION

# (type, priority, delay_ms, duration_ms, animation, message)
LEGACY_TABLE: dict[PetState, dict[EmotionType, list[tuple]]] = {
    PetState.IDLE: {
        EmotionType.HAPPY: [
            (_I, 3, 0, 2000, "happy_idle", "The companion waits happily..."),
            (BehaviorType.EMOTIONAL_EXPRESSION, 2, 0, 1500, None, "Radiating a cheerful glow"),
        ],
        EmotionType.CALM: [(_I, 2, 0, 3000, "calm_idle", "The companion is quietly meditating...")],
        EmotionType.EXCITED: [
            (_I, 4, 0, 1000, "excited_idle", "The companion can't wait to play!"),
            (BehaviorType.USER_PROMPT, 3, 2000, 0, None, "Looks like something fun is about to happen!"),
        ],
        EmotionType.CURIOUS: [(_I, 3, 0, 2500, "curious_idle", "The companion looks around curiously...")],
        EmotionType.SLEEPY: [(_I, 2, 0, 4000, "sleepy_idle", "The companion is dozing off...")],
        EmotionType.FOCUSED: [(_I, 2, 0, 3000, "focused_idle", "The companion is deep in thought...")],
    },
    PetState.HOVER: {
        EmotionType.HAPPY: [(_H, 5, 0, 800, "happy_hover", "The companion noticed you!")],
        EmotionType.CALM: [(_H, 3, 0, 1200, "calm_hover", "The companion calmly returns your gaze")],
        EmotionType.EXCITED: [
            (_H, 6, 0, 600, "excited_hover", "The companion greets you excitedly!"),
            (BehaviorType.USER_PROMPT, 4, 1000, 0, None, "Click me to start a conversation!"),
        ],
        EmotionType.CURIOUS: [(_H, 4, 0, 1000, "curious_hover", "The companion watches you curiously...")],
        EmotionType.SLEEPY: [(_H, 2, 0, 1500, "sleepy_hover", "The companion drowsily notices you")],
        EmotionType.FOCUSED: [(_H, 3, 0, 1000, "focused_hover", "The companion keeps an attentive eye on you")],
    },
    PetState.AWAKEN: {
        EmotionType.HAPPY: [
            (_A, 7, 0, 1000, "happy_awaken", "The companion wakes up happily!"),
            (BehaviorType.PLUGIN_TRIGGER, 6, 500, 0, None, "Starting interaction plugins..."),
        ],
        EmotionType.CALM: [(_A, 5, 0, 1500, "calm_awaken", "The companion wakes calmly")],
        EmotionType.EXCITED: [
            (_A, 8, 0, 800, "excited_awaken", "The companion jumps up excitedly!"),
            (BehaviorType.PLUGIN_TRIGGER, 7, 200, 0, None, "Starting everything at once!"),
        ],
        EmotionType.CURIOUS: [(_A, 6, 0, 1200, "curious_awaken", "The companion wakes up curious")],
        EmotionType.SLEEPY: [(_A, 3, 0, 2000, "sleepy_awaken", "The companion slowly wakes up...")],
        EmotionType.FOCUSED: [(_A, 6, 0, 1000, "focused_awaken", "The companion activates, focused")],
    },
    PetState.CONTROL: {
        EmotionType.HAPPY: [
            (_C, 8, 0, 1200, "happy_control", "The companion happily enters control mode!"),
            (BehaviorType.PLUGIN_TRIGGER, 7, 300, 0, None, "Opening the control panel..."),
        ],
        EmotionType.CALM: [(_C, 6, 0, 1500, "calm_control", "The companion calmly enters control mode")],
        EmotionType.EXCITED: [
            (_C, 9, 0, 1000, "excited_control", "The companion enters super control mode!"),
            (BehaviorType.PLUGIN_TRIGGER, 8, 100, 0, None, "All systems go!"),
        ],
        EmotionType.CURIOUS: [(_C, 7, 0, 1300, "curious_control", "The companion explores the controls")],
        EmotionType.SLEEPY: [(_C, 4, 0, 2000, "sleepy_control", "The companion sleepily enters control mode...")],
        EmotionType.FOCUSED: [(_C, 8, 0, 1100, "focused_control", "The companion enters precise control mode")],
    },
}


def _from_row(row: tuple, source_id: str) -> Behavior:
    behavior_type, priority, delay_ms, duration_ms, animation, message = row
    payload = {"message": message}
    if animation:
        payload["animation"] = animation
    return Behavior(
        type=behavior_type,
        priority=priority,
        delay_ms=delay_ms,
        duration_ms=duration_ms,
        payload=payload,
        source_id=source_id,
    )


class LegacyRule(BehaviorRule):
    """One (state, emotion) cell of the legacy table."""

    def __init__(self, state: PetState, emotion: EmotionType, behaviors: list[Behavior]):
        self.id = f"legacy:{state.value}:{emotion.value}"
        self.description = f"Legacy fallback for {state.value} + {emotion.value}"
        self.state = state
        self.emotion = emotion
        self.behaviors = list(behaviors)
        super().__init__()

    @property
    def priority(self) -> int:
        return max((b.priority for b in self.behaviors), default=0)

    def can_apply(self, ctx: ExecutionContext) -> bool:
        return ctx.state == self.state and ctx.emotion_type == self.emotion

    def generate(self, ctx: ExecutionContext) -> list[Behavior]:
        # Copies: the executor must never mutate the table
        copies = []
        for b in self.behaviors:
            copy = deepcopy(b)
            copy.source_id = self.id
            copies.append(copy)
        return copies

    def add(self, behavior: Behavior) -> None:
        self.behaviors.append(behavior)


def build_legacy_rules(table: Optional[dict] = None) -> list[LegacyRule]:
    """Convert the static table into rule instances (done once at startup)."""
    table = LEGACY_TABLE if table is None else table
    rules = []
    for state, by_emotion in table.items():
        for emotion, rows in by_emotion.items():
            rule_id = f"legacy:{state.value}:{emotion.value}"
            rules.append(LegacyRule(state, emotion, [_from_row(row, rule_id) for row in rows]))
    return rules
