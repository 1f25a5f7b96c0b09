"""Data model for rule groups, lifecycle events and decisions.

Pydantic v2 models describe the persisted configuration (the JSON shape
users write by hand); plain frozen dataclasses describe the ephemeral
values that only live for one lifecycle event.

>>> rule = PolicyRule(context="command", pattern="^find", action="block", reason="use fd")
>>> rule.event.value, rule.action.value
('tool_call', 'block')
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    TypeAdapter,
    ValidationError,
    field_validator,
)

DEFAULT_TIMEOUT_MS = 30_000


class RuleKind(str, Enum):
    """Which extension a config belongs to."""

    GUARDRAILS = "guardrails"
    HOOKS = "hooks"


class HookEvent(str, Enum):
    SESSION_START = "session_start"
    SESSION_SHUTDOWN = "session_shutdown"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    AGENT_START = "agent_start"
    AGENT_END = "agent_end"
    TURN_START = "turn_start"
    TURN_END = "turn_end"


class RuleContext(str, Enum):
    """What string a rule's pattern is matched against."""

    TOOL_NAME = "tool_name"
    FILE_NAME = "file_name"
    FILE_CONTENT = "file_content"
    COMMAND = "command"


class PolicyAction(str, Enum):
    ALLOW = "allow"
    BLOCK = "block"
    CONFIRM = "confirm"


class InvalidConfigError(ValueError):
    """Raised when a config payload does not match the rule group schema."""

    def __init__(self, kind: RuleKind, problems: list[str]) -> None:
        self.kind = kind
        self.problems = problems
        super().__init__(f"Invalid {kind.value} config: {', '.join(problems)}")


# ---------------------------------------------------------------------------
# Pydantic v2 Models
# ---------------------------------------------------------------------------


class BaseRule(BaseModel):
    """Fields shared by policy and automation rules."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event: HookEvent
    context: Optional[RuleContext] = None
    pattern: Optional[str] = None
    includes: Optional[str] = None
    excludes: Optional[str] = None


class PolicyRule(BaseRule):
    """A guardrail: allow, block or ask before a tool runs."""

    event: HookEvent = HookEvent.TOOL_CALL
    action: PolicyAction
    reason: str

    @field_validator("event")
    @classmethod
    def _only_tool_call(cls, value: HookEvent) -> HookEvent:
        # tool_call is the only phase that can still be blocked
        if value != HookEvent.TOOL_CALL:
            raise ValueError("policy rules only apply to tool_call")
        return value


class AutomationRule(BaseRule):
    """A hook: run a shell command when the rule matches."""

    command: str
    working_directory: Optional[str] = Field(default=None, alias="cwd")
    timeout_ms: Union[StrictInt, StrictFloat] = Field(default=DEFAULT_TIMEOUT_MS, alias="timeout")
    notify: StrictBool = True

    @field_validator("timeout_ms")
    @classmethod
    def _timeout_not_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("timeout must be >= 0")
        return value


class RuleGroup(BaseModel):
    """A named bundle of rules gated by an activation glob."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(alias="group")
    activation: str = Field(alias="pattern")


class PolicyGroup(RuleGroup):
    rules: list[PolicyRule]


class AutomationGroup(RuleGroup):
    # The hooks extension historically stored its rules under "hooks"
    rules: list[AutomationRule] = Field(
        validation_alias=AliasChoices("rules", "hooks"),
        serialization_alias="hooks",
    )


GROUP_MODELS: dict[RuleKind, type[RuleGroup]] = {
    RuleKind.GUARDRAILS: PolicyGroup,
    RuleKind.HOOKS: AutomationGroup,
}


def group_model(kind: RuleKind) -> type[RuleGroup]:
    return GROUP_MODELS[RuleKind(kind)]


def _format_errors(exc: ValidationError) -> list[str]:
    problems = []
    for err in exc.errors():
        path = "/" + "/".join(str(p) for p in err["loc"])
        problems.append(f"{path}: {err['msg']}")
    return problems


def validate_config(kind: RuleKind, data: Any) -> list[RuleGroup]:
    """Validate a whole config payload, raising on the first invalid group.

    >>> validate_config(RuleKind.HOOKS, [])
    []
    >>> validate_config(RuleKind.HOOKS, {})
    Traceback (most recent call last):
    ...
    hookwarden.models.InvalidConfigError: Invalid hooks config: /: Input should be a valid list
    """
    kind = RuleKind(kind)
    adapter = TypeAdapter(list[group_model(kind)])
    try:
        return adapter.validate_python(data)
    except ValidationError as exc:
        raise InvalidConfigError(kind, _format_errors(exc)) from exc


def is_valid_config(kind: RuleKind, data: Any) -> bool:
    """Boolean form of validate_config.

    >>> is_valid_config(RuleKind.GUARDRAILS, [{"invalid": True}])
    False
    """
    try:
        validate_config(kind, data)
        return True
    except InvalidConfigError:
        return False


def dump_groups(groups: list[RuleGroup]) -> list[dict]:
    """Serialize groups back into their on-disk JSON shape."""
    return [g.model_dump(mode="json", by_alias=True, exclude_none=True) for g in groups]


# ---------------------------------------------------------------------------
# Per-event values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EvaluationContext:
    """Everything known about one lifecycle event. Never persisted."""

    event: HookEvent
    cwd: str
    tool_name: Optional[str] = None
    tool_input: dict[str, Any] = field(default_factory=dict)
    tool_call_id: Optional[str] = None
    result: Optional[Any] = None
    is_error: Optional[bool] = None
    aborted: bool = False


class DecisionKind(str, Enum):
    ALLOW = "allow"
    BLOCK = "block"
    CONFIRM = "confirm"
    RUN_COMMAND = "run_command"


@dataclass(frozen=True)
class Decision:
    """Outcome of evaluating one event, consumed immediately by the dispatcher.

    >>> Decision.block("use fd").reason
    'Blocked: use fd'
    >>> Decision.allow().is_blocking
    False
    """

    kind: DecisionKind
    reason: Optional[str] = None
    result: Optional[Any] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(DecisionKind.ALLOW)

    @classmethod
    def block(cls, reason: str) -> "Decision":
        return cls(DecisionKind.BLOCK, reason=f"Blocked: {reason}")

    @classmethod
    def confirm(cls, reason: str) -> "Decision":
        return cls(DecisionKind.CONFIRM, reason=reason)

    @classmethod
    def run_command(cls, result: Any) -> "Decision":
        return cls(DecisionKind.RUN_COMMAND, result=result)

    @property
    def is_blocking(self) -> bool:
        return self.kind == DecisionKind.BLOCK

    def as_host_result(self) -> Optional[dict]:
        """The value a tool_call interceptor hands back to the host."""
        if self.is_blocking:
            return {"block": True, "reason": self.reason}
        return None
