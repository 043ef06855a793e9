"""
Behavior engine - decides what the companion does next.

Rules feed the StrategyManager → the Scheduler decides → the Executor performs
→ consumers hear about it on the EventBus.
"""

from .models import (
    PetState,
    EmotionType,
    BehaviorType,
    EmotionContext,
    Environment,
    ExecutionContext,
    Behavior,
    ActionSpec,
    Condition,
    Strategy,
    ExecutionResult,
    StrategyExecutionStats,
)
from .errors import BehaviorEngineError, ValidationError, ActionExecutionError, StrategyImportError
from .conditions import ConditionEvaluator
from .cooldown import CooldownTracker
from .rules import BehaviorRule, StrategyRule, CallableRule, EmotionDrivenRule, TimeAwareRule
from .catalog import StrategyCatalog
from .manager import StrategyManager, dedup_by_type
from .events import EventBus, Event
from .plugins import PluginRegistry, PluginResult
from .stats import ExecutionStatsTracker
from .scheduler import BehaviorScheduler, get_scheduler, init_scheduler, shutdown_scheduler

__all__ = [
    # Models
    "PetState",
    "EmotionType",
    "BehaviorType",
    "EmotionContext",
    "Environment",
    "ExecutionContext",
    "Behavior",
    "ActionSpec",
    "Condition",
    "Strategy",
    "ExecutionResult",
    "StrategyExecutionStats",
    # Errors
    "BehaviorEngineError",
    "ValidationError",
    "ActionExecutionError",
    "StrategyImportError",
    # Decision
    "ConditionEvaluator",
    "CooldownTracker",
    "BehaviorRule",
    "StrategyRule",
    "CallableRule",
    "EmotionDrivenRule",
    "TimeAwareRule",
    "StrategyCatalog",
    "StrategyManager",
    "dedup_by_type",
    # Execution
    "EventBus",
    "Event",
    "PluginRegistry",
    "PluginResult",
    "ExecutionStatsTracker",
    # Scheduler
    "BehaviorScheduler",
    "get_scheduler",
    "init_scheduler",
    "shutdown_scheduler",
]
