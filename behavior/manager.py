"""
Strategy manager - turns a context into one conflict-free decision.

Queries here are pure: they read the catalog and the cooldown tracker but
never write to either, and never touch execution statistics. The executor is
the only thing that records fires.
"""

import logging
from typing import Callable, Optional

from .catalog import StrategyCatalog
from .cooldown import CooldownTracker
from .models import Behavior, EmotionType, ExecutionContext, PetState, Strategy, now_ms
from .rules import BehaviorRule

logger = logging.getLogger("companion.behavior.manager")


def dedup_by_type(behaviors: list[Behavior]) -> list[Behavior]:
    """Keep one Behavior per type, the max-priority one.

    Equal priorities keep the earlier candidate (catalog order). The result
    is sorted by descending priority; the sort is stable.
    """
    best: dict[str, tuple[int, Behavior]] = {}
    for index, behavior in enumerate(behaviors):
        current = best.get(behavior.type)
        if current is None or behavior.priority > current[1].priority:
            best[behavior.type] = (index, behavior)

    survivors = [b for _, b in sorted(best.values(), key=lambda pair: pair[0])]
    survivors.sort(key=lambda b: -b.priority)
    return survivors


class StrategyManager:
    """Matches rules against a context and produces the ordered behavior list."""

    def __init__(
        self,
        catalog: Optional[StrategyCatalog] = None,
        cooldowns: Optional[CooldownTracker] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.catalog = catalog if catalog is not None else StrategyCatalog.with_defaults()
        self.cooldowns = cooldowns or CooldownTracker()
        self.clock = clock

    def _eligible(self, rule: BehaviorRule, now: int) -> bool:
        return rule.enabled and self.cooldowns.may_fire(rule, now)

    def get_matching_strategies(
        self,
        state: PetState,
        emotion: EmotionType,
        ctx: Optional[ExecutionContext] = None,
    ) -> list[Strategy]:
        """Record-backed strategies that may fire now, highest priority first.

        Without a ctx, conditions are not evaluated and cooldowns are checked
        against the manager's clock.
        """
        now = ctx.timestamp if ctx is not None else self.clock()
        return [
            rule.strategy.copy()
            for rule in self.catalog.strategy_rules()
            if self._eligible(rule, now) and rule.matches(state, emotion, ctx)
        ]

    def applicable_rules(self, ctx: ExecutionContext) -> list[BehaviorRule]:
        """Every rule (record-backed or code) that applies to ctx, in catalog order."""
        applicable = []
        for rule in self.catalog.ordered_rules():
            if not self._eligible(rule, ctx.timestamp):
                continue
            try:
                if rule.can_apply(ctx):
                    applicable.append(rule)
            except Exception as e:
                logger.warning(f"Rule {rule.id!r} can_apply raised {type(e).__name__}: {e}; skipped")
        return applicable

    def generate_behaviors(self, ctx: ExecutionContext) -> list[Behavior]:
        """Concatenate the output of every applicable rule, then dedup by type."""
        return self.generate_from(self.applicable_rules(ctx), ctx)

    def generate_from(self, rules: list[BehaviorRule], ctx: ExecutionContext) -> list[Behavior]:
        """Run generate() on each rule in order and dedup the combined output."""
        candidates: list[Behavior] = []
        for rule in rules:
            try:
                produced = rule.generate(ctx) or []
            except Exception as e:
                logger.warning(f"Rule {rule.id!r} generate raised {type(e).__name__}: {e}; skipped")
                continue
            for behavior in produced:
                if behavior.source_id is None:
                    behavior.source_id = rule.id
            candidates.extend(produced)

        behaviors = dedup_by_type(candidates)
        if len(behaviors) < len(candidates):
            logger.debug(f"Dedup dropped {len(candidates) - len(behaviors)} of {len(candidates)} behaviors")
        return behaviors
