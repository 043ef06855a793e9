"""
Strategy record schema and validation.

Persisted strategies are plain JSON records owned by an external store:

    {id, name, states[], emotions[], priority, cooldownMs, maxExecutions,
     enabled, conditions[], actions[]}

Records are validated with pydantic before they enter the catalog. Strategies
built in code go through validate_strategy(). Either way every violated field
is collected into one ValidationError instead of failing on the first.
"""

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .models import ActionSpec, Condition, EmotionType, PetState, Strategy

VALID_OPERATORS = frozenset({"gt", "gte", "lt", "lte", "eq", "in", "between"})


def _wrap_single(value: Any) -> Any:
    """A rule may target one state/emotion or several."""
    if value is None or isinstance(value, list):
        return value
    if isinstance(value, (tuple, set, frozenset)):
        return list(value)
    return [value]


class ConditionRecord(BaseModel):
    """Persisted form of a Condition. Custom predicates cannot be persisted."""

    model_config = ConfigDict(extra="ignore")

    type: str = Field(min_length=1)
    operator: str = "eq"
    value: Any = None

    @field_validator("operator")
    @classmethod
    def _known_operator(cls, v: str) -> str:
        if v not in VALID_OPERATORS:
            raise ValueError(f"unknown operator {v!r}, expected one of {sorted(VALID_OPERATORS)}")
        return v


class ActionRecord(BaseModel):
    """Persisted form of an ActionSpec."""

    model_config = ConfigDict(extra="ignore")

    type: str = Field(min_length=1)
    delay_ms: int = Field(default=0, ge=0, validation_alias=AliasChoices("delayMs", "delay_ms", "delay"))
    duration_ms: int = Field(default=0, ge=0, validation_alias=AliasChoices("durationMs", "duration_ms", "duration"))
    priority: Optional[int] = None
    message: Optional[str] = None
    animation: Optional[str] = None
    plugin_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("pluginId", "plugin_id"))
    params: dict = Field(default_factory=dict)


class StrategyRecord(BaseModel):
    """One persisted strategy record."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    name: str
    description: str = ""
    states: list[PetState] = Field(min_length=1, validation_alias=AliasChoices("states", "state"))
    emotions: list[EmotionType] = Field(min_length=1, validation_alias=AliasChoices("emotions", "emotion"))
    priority: int = 5
    conditions: list[ConditionRecord] = Field(default_factory=list)
    cooldown_ms: Optional[int] = Field(
        default=None, ge=0, validation_alias=AliasChoices("cooldownMs", "cooldown_ms", "cooldown")
    )
    max_executions: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("maxExecutions", "max_executions")
    )
    enabled: bool = True
    actions: list[ActionRecord] = Field(min_length=1)

    @field_validator("name")
    @classmethod
    def _non_empty_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be empty")
        return v

    @field_validator("states", "emotions", mode="before")
    @classmethod
    def _one_or_many(cls, v: Any) -> Any:
        return _wrap_single(v)

    def to_strategy(self) -> Strategy:
        return Strategy(
            id=self.id,
            name=self.name,
            description=self.description,
            states=list(self.states),
            emotions=list(self.emotions),
            priority=self.priority,
            conditions=[Condition(type=c.type, operator=c.operator, value=c.value) for c in self.conditions],
            cooldown_ms=self.cooldown_ms,
            max_executions=self.max_executions,
            enabled=self.enabled,
            actions=[
                ActionSpec(
                    type=a.type,
                    delay_ms=a.delay_ms,
                    duration_ms=a.duration_ms,
                    priority=a.priority,
                    message=a.message,
                    animation=a.animation,
                    plugin_id=a.plugin_id,
                    params=dict(a.params),
                )
                for a in self.actions
            ],
        )


def _format_pydantic_errors(exc: PydanticValidationError, prefix: str = "") -> list[str]:
    errors = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "record"
        errors.append(f"{prefix}{loc}: {err.get('msg', 'invalid')}")
    return errors


def validate_strategy(strategy: Strategy) -> list[str]:
    """Check a Strategy built in code. Returns every problem found (empty if valid)."""
    errors = []

    if not isinstance(strategy.id, str) or not strategy.id.strip():
        errors.append("id: must be a non-empty string")
    if not isinstance(strategy.name, str) or not strategy.name.strip():
        errors.append("name: must be a non-empty string")

    if not strategy.states:
        errors.append("states: at least one state is required")
    for state in strategy.states:
        if not isinstance(state, PetState):
            errors.append(f"states: invalid state {state!r}")

    if not strategy.emotions:
        errors.append("emotions: at least one emotion is required")
    for emotion in strategy.emotions:
        if not isinstance(emotion, EmotionType):
            errors.append(f"emotions: invalid emotion {emotion!r}")

    if not isinstance(strategy.actions, list):
        errors.append("actions: must be a list")
    elif not strategy.actions:
        errors.append("actions: at least one action is required")
    else:
        for i, action in enumerate(strategy.actions):
            if not isinstance(action, ActionSpec):
                errors.append(f"actions.{i}: expected ActionSpec, got {type(action).__name__}")
            elif not action.type:
                errors.append(f"actions.{i}.type: must not be empty")
            elif action.delay_ms < 0 or action.duration_ms < 0:
                errors.append(f"actions.{i}: delay_ms and duration_ms must be >= 0")

    if not isinstance(strategy.priority, int) or isinstance(strategy.priority, bool):
        errors.append("priority: must be an integer")
    if strategy.cooldown_ms is not None and strategy.cooldown_ms < 0:
        errors.append("cooldown_ms: must be >= 0")

    for i, condition in enumerate(strategy.conditions):
        if not isinstance(condition, Condition):
            errors.append(f"conditions.{i}: expected Condition, got {type(condition).__name__}")
        elif condition.custom_check is None and condition.operator not in VALID_OPERATORS:
            errors.append(f"conditions.{i}.operator: unknown operator {condition.operator!r}")

    return errors


def parse_strategy(obj: Any) -> Strategy:
    """Turn a Strategy or a persisted record dict into a validated Strategy.

    Raises:
        ValidationError: listing every violated field
    """
    if isinstance(obj, Strategy):
        errors = validate_strategy(obj)
        if errors:
            raise ValidationError(errors, strategy_id=obj.id or None)
        return obj

    if isinstance(obj, dict):
        try:
            return StrategyRecord.model_validate(obj).to_strategy()
        except PydanticValidationError as e:
            raise ValidationError(_format_pydantic_errors(e), strategy_id=obj.get("id")) from e

    raise ValidationError([f"strategy: expected Strategy or record dict, got {type(obj).__name__}"])


def parse_strategy_records(records: Any) -> list[Strategy]:
    """Validate a whole batch. Either every record is valid or nothing is returned.

    Raises:
        ValidationError: with errors from all invalid records, prefixed by index
    """
    if not isinstance(records, list):
        raise ValidationError([f"records: expected a list, got {type(records).__name__}"])

    strategies = []
    errors = []
    seen_ids = set()
    for i, record in enumerate(records):
        try:
            strategy = parse_strategy(record)
        except ValidationError as e:
            errors.extend(f"records.{i}.{msg}" for msg in e.errors)
            continue
        if strategy.id in seen_ids:
            errors.append(f"records.{i}.id: duplicate id {strategy.id!r}")
            continue
        seen_ids.add(strategy.id)
        strategies.append(strategy)

    if errors:
        raise ValidationError(errors)
    return strategies
