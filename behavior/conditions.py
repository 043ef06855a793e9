"""
Condition evaluation for strategy gating.

A Condition names a context field (by its type) and compares it against a
rule-supplied threshold or range:

    Condition(type="emotion_intensity", operator="gte", value=0.6)
    Condition(type="time_range", operator="between", value=[22, 23])
    Condition(type="custom", custom_check=lambda ctx: ...)

NOTE: a condition whose type has no extractor PASSES. A strategy gated on a
condition the engine cannot evaluate is therefore admitted. This matches the
long-standing behavior of stored strategies and is kept on purpose; a warning
is logged every time it happens so misspelled types are visible.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from .models import ExecutionContext, Condition

logger = logging.getLogger("companion.behavior.conditions")


def _idle_time_ms(ctx: ExecutionContext) -> Optional[int]:
    last = ctx.metadata.get("last_interaction")
    if last is None:
        return None
    return ctx.timestamp - int(last)


# Condition type -> how to pull the compared value out of the context
FIELD_EXTRACTORS: dict[str, Callable[[ExecutionContext], Any]] = {
    "emotion_intensity": lambda ctx: ctx.emotion.intensity,
    "time_range": lambda ctx: datetime.fromtimestamp(ctx.timestamp / 1000).hour,
    "state_duration": lambda ctx: ctx.emotion.duration_ms,
    "idle_time": _idle_time_ms,
    "system_load": lambda ctx: ctx.environment.system_load,
    "user_activity": lambda ctx: ctx.environment.user_activity,
    "time_of_day": lambda ctx: ctx.environment.time_of_day,
}


def compare(actual: Any, operator: str, expected: Any) -> bool:
    """Apply a comparison operator. Unknown operators and type mismatches fail."""
    try:
        if operator == "gt":
            return actual > expected
        if operator == "gte":
            return actual >= expected
        if operator == "lt":
            return actual < expected
        if operator == "lte":
            return actual <= expected
        if operator == "eq":
            return actual == expected
        if operator == "in":
            return isinstance(expected, (list, tuple, set, frozenset)) and actual in expected
        if operator == "between":
            return (
                isinstance(expected, (list, tuple))
                and len(expected) == 2
                and expected[0] <= actual <= expected[1]
            )
    except TypeError:
        return False
    return False


class ConditionEvaluator:
    """Evaluates strategy conditions against an ExecutionContext."""

    def __init__(self, extractors: Optional[dict[str, Callable[[ExecutionContext], Any]]] = None):
        self._extractors = dict(FIELD_EXTRACTORS)
        if extractors:
            self._extractors.update(extractors)

    def register_extractor(self, condition_type: str, extractor: Callable[[ExecutionContext], Any]) -> None:
        """Teach the evaluator a new condition type."""
        self._extractors[condition_type] = extractor

    def evaluate(self, condition: Condition, ctx: ExecutionContext) -> bool:
        # Escape hatch: a custom predicate decides on its own
        if condition.type == "custom" or condition.custom_check is not None:
            if condition.custom_check is None:
                return True
            try:
                return bool(condition.custom_check(ctx))
            except Exception as e:
                logger.warning(f"Custom condition raised {type(e).__name__}: {e}; treating as failed")
                return False

        extractor = self._extractors.get(condition.type)
        if extractor is None:
            logger.warning(f"Unknown condition type {condition.type!r}; condition passes")
            return True

        actual = extractor(ctx)
        if actual is None:
            return False
        return compare(actual, condition.operator, condition.value)

    def evaluate_all(self, conditions: Iterable[Condition], ctx: Optional[ExecutionContext]) -> bool:
        """AND of all conditions. No conditions, or no context to check against, passes."""
        if ctx is None:
            return True
        return all(self.evaluate(c, ctx) for c in conditions)
