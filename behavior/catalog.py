"""
Strategy catalog - owns every registered rule.

Two kinds of entries live here side by side:
- record-backed strategies (StrategyRule around a Strategy), which can be
  exported, imported and hot-reloaded
- capability rules registered from code (any BehaviorRule), which survive
  hot reloads

Ordering is a total order: descending priority, ties broken by registration
order. Re-registering an id keeps its original position.
"""

import itertools
import logging
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .conditions import ConditionEvaluator
from .defaults import get_default_strategy_records
from .errors import ValidationError
from .models import Strategy
from .rules import BehaviorRule, StrategyRule
from .schema import parse_strategy, parse_strategy_records

logger = logging.getLogger("companion.behavior.catalog")


@dataclass
class _Entry:
    rule: BehaviorRule
    seq: int


class StrategyCatalog:
    """Registered rules keyed by id."""

    def __init__(self, evaluator: Optional[ConditionEvaluator] = None):
        self.evaluator = evaluator or ConditionEvaluator()
        self._entries: dict[str, _Entry] = {}
        self._seq = itertools.count()

    @classmethod
    def with_defaults(cls, evaluator: Optional[ConditionEvaluator] = None) -> "StrategyCatalog":
        """A catalog seeded with the built-in strategy records."""
        catalog = cls(evaluator)
        catalog.import_strategies(get_default_strategy_records())
        return catalog

    # -- registration ---------------------------------------------------

    def _put(self, rule: BehaviorRule) -> None:
        existing = self._entries.get(rule.id)
        seq = existing.seq if existing else next(self._seq)
        self._entries[rule.id] = _Entry(rule, seq)

    def register_strategy(self, strategy: Any) -> Strategy:
        """Register a Strategy or persisted record dict, replacing any with the same id.

        Raises:
            ValidationError: listing every violated field
        """
        parsed = parse_strategy(strategy)
        if parsed is strategy:
            # Never keep the caller's object: later edits to it must not reach the catalog
            parsed = parsed.copy()
        replaced = parsed.id in self._entries
        self._put(StrategyRule(parsed, self.evaluator))
        logger.info(f"{'Replaced' if replaced else 'Registered'} strategy {parsed.id!r} (priority {parsed.priority})")
        return parsed.copy()

    def register_rule(self, rule: BehaviorRule) -> None:
        """Register a capability rule written in code."""
        if not isinstance(rule, BehaviorRule):
            raise ValidationError([f"rule: expected BehaviorRule, got {type(rule).__name__}"])
        if not rule.id:
            raise ValidationError(["id: must be a non-empty string"])
        self._put(rule)
        logger.debug(f"Registered rule {rule.id!r}")

    def remove_strategy(self, strategy_id: str) -> bool:
        removed = self._entries.pop(strategy_id, None) is not None
        if removed:
            logger.info(f"Removed strategy {strategy_id!r}")
        return removed

    def set_enabled(self, strategy_id: str, enabled: bool) -> bool:
        entry = self._entries.get(strategy_id)
        if entry is None:
            return False
        entry.rule.enabled = bool(enabled)
        logger.info(f"Strategy {strategy_id!r} {'enabled' if enabled else 'disabled'}")
        return True

    def replace_strategies(self, records: Any) -> list[Strategy]:
        """Swap the whole record-backed set in one step.

        Every record is validated before anything changes; on failure the
        catalog is untouched. Code-registered rules are kept. Ids present
        before and after keep their position.

        Raises:
            ValidationError: with the problems of every invalid record
        """
        strategies = parse_strategy_records(records)
        incoming = {s.id for s in strategies}

        entries = {
            rule_id: entry
            for rule_id, entry in self._entries.items()
            if entry.rule.strategy is None or rule_id in incoming
        }
        for strategy in strategies:
            existing = entries.get(strategy.id)
            seq = existing.seq if existing else next(self._seq)
            entries[strategy.id] = _Entry(StrategyRule(strategy, self.evaluator), seq)

        self._entries = entries
        logger.info(f"Strategy catalog replaced: {len(strategies)} strategies")
        return [s.copy() for s in strategies]

    def import_strategies(self, records: Any, merge: bool = False) -> list[Strategy]:
        """Import persisted records.

        merge=False replaces the record-backed set; merge=True adds to it,
        overwriting same-id entries. All-or-nothing either way.
        """
        if not merge:
            return self.replace_strategies(records)

        strategies = parse_strategy_records(records)
        for strategy in strategies:
            self._put(StrategyRule(strategy, self.evaluator))
        logger.info(f"Merged {len(strategies)} strategies into the catalog")
        return [s.copy() for s in strategies]

    # -- queries --------------------------------------------------------

    def get(self, rule_id: str) -> Optional[BehaviorRule]:
        entry = self._entries.get(rule_id)
        return entry.rule if entry else None

    def get_strategy(self, strategy_id: str) -> Optional[Strategy]:
        rule = self.get(strategy_id)
        return rule.strategy.copy() if rule and rule.strategy is not None else None

    def ordered_rules(self) -> list[BehaviorRule]:
        """All rules, descending priority, ties by registration order."""
        entries = sorted(self._entries.values(), key=lambda e: (-e.rule.priority, e.seq))
        return [e.rule for e in entries]

    def strategy_rules(self) -> list[StrategyRule]:
        return [r for r in self.ordered_rules() if r.strategy is not None]

    def get_all_strategies(self) -> list[Strategy]:
        """Copies of the record-backed strategies in catalog order.

        Edit through register_strategy, set_enabled or replace_strategies;
        changing a returned object has no effect on the catalog.
        """
        return [r.strategy.copy() for r in self.strategy_rules()]

    def export_strategies(self) -> list[dict]:
        """Record-backed strategies in persisted form, in catalog order."""
        return [deepcopy(r.strategy.to_record()) for r in self.strategy_rules()]

    def counts(self) -> dict:
        rules = [e.rule for e in self._entries.values()]
        strategies = [r for r in rules if r.strategy is not None]
        return {
            "total": len(rules),
            "strategies": len(strategies),
            "rules": len(rules) - len(strategies),
            "enabled": sum(1 for r in rules if r.enabled),
        }

    def ids(self) -> Iterable[str]:
        return list(self._entries)

    def __contains__(self, rule_id: str) -> bool:
        return rule_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
