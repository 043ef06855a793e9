"""Exceptions raised by the behavior engine."""

from typing import Optional


class BehaviorEngineError(Exception):
    """Base class for behavior engine errors."""


class ValidationError(BehaviorEngineError):
    """A strategy definition is malformed.

    Carries every violated field, not just the first one found.
    """

    def __init__(self, errors: list[str], strategy_id: Optional[str] = None):
        self.errors = list(errors)
        self.strategy_id = strategy_id
        prefix = f"Invalid strategy {strategy_id!r}" if strategy_id else "Invalid strategy"
        super().__init__(f"{prefix}: " + "; ".join(self.errors))


class ActionExecutionError(BehaviorEngineError):
    """A behavior's effect raised. Recorded by the executor, never propagated."""

    def __init__(self, behavior_type: str, strategy_id: Optional[str], cause: BaseException):
        self.behavior_type = behavior_type
        self.strategy_id = strategy_id
        self.cause = cause
        super().__init__(f"{behavior_type} failed ({type(cause).__name__}): {cause}")


class StrategyImportError(BehaviorEngineError):
    """A strategy source could not be read, parsed or validated.

    The in-memory catalog is left unchanged when this is raised.
    """
