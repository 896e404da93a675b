"""Value types shared by the agent loop, the providers and the tool layer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union


class Provider(str, Enum):
    ANTHROPIC = "anthropic"
    ZAI = "zai"
    GROQ = "groq"
    OPENAI = "openai"


@dataclass(frozen=True)
class ToolDefinition:
    """Immutable description of a tool the model may call."""

    name: str
    description: str
    input_schema: Mapping[str, Any]
    category: str = "general"
    privileged: bool = False

    @property
    def required(self) -> Tuple[str, ...]:
        return tuple(self.input_schema.get("required") or ())

    @property
    def properties(self) -> Mapping[str, Any]:
        return self.input_schema.get("properties") or {}


@dataclass(frozen=True)
class ToolCallRequest:
    """One tool invocation requested by the model.

    ``argument_error`` is set when the backend sent arguments that could not be
    decoded; such calls are answered with a failed result without dispatch.
    """

    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    argument_error: Optional[str] = None


@dataclass(frozen=True)
class ToolResult:
    call_id: str
    name: str
    success: bool
    payload: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def ok(cls, call: ToolCallRequest, payload: Any) -> "ToolResult":
        return cls(call_id=call.id, name=call.name, success=True, payload=payload)

    @classmethod
    def failed(cls, call: ToolCallRequest, error: str, error_type: str = "unknown") -> "ToolResult":
        return cls(
            call_id=call.id, name=call.name, success=False, error=error, error_type=error_type
        )

    def to_content(self) -> str:
        """Serialise the result the way it is shown to the model."""

        if not self.success:
            body: Dict[str, Any] = {"success": False, "error": self.error, "tool": self.name}
        elif isinstance(self.payload, dict):
            body = {"success": True, **self.payload}
        else:
            body = {"success": True, "data": self.payload}
        return json.dumps(body, default=str)


class TurnRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULTS = "tool-result-batch"


@dataclass(frozen=True)
class AssistantToolUse:
    """Assistant turn requesting tools, optionally with leading text."""

    calls: Tuple[ToolCallRequest, ...]
    text: Optional[str] = None


TurnContent = Union[str, AssistantToolUse, Tuple[ToolResult, ...]]


@dataclass(frozen=True)
class ConversationTurn:
    role: TurnRole
    content: TurnContent

    @classmethod
    def user(cls, text: str) -> "ConversationTurn":
        return cls(TurnRole.USER, text)

    @classmethod
    def assistant(cls, text: str) -> "ConversationTurn":
        return cls(TurnRole.ASSISTANT, text)

    @classmethod
    def tool_use(
        cls, calls: List[ToolCallRequest], text: Optional[str] = None
    ) -> "ConversationTurn":
        return cls(TurnRole.ASSISTANT, AssistantToolUse(tuple(calls), text))

    @classmethod
    def tool_results(cls, results: List[ToolResult]) -> "ConversationTurn":
        return cls(TurnRole.TOOL_RESULTS, tuple(results))


@dataclass(frozen=True)
class ModelSelection:
    provider: Provider
    model: str
    category: str
    complexity_score: int
    reasons: Tuple[str, ...] = ()

    @property
    def reasoning(self) -> str:
        return ", ".join(self.reasons) if self.reasons else self.category


@dataclass(frozen=True)
class LoopBudget:
    max_iterations: int = 50
    max_wall_clock_seconds: float = 420.0

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if self.max_wall_clock_seconds <= 0:
            raise ValueError("max_wall_clock_seconds must be positive")


# Loop outcomes produced by ProviderAdapter.interpret_response


@dataclass(frozen=True)
class Done:
    text: str


@dataclass(frozen=True)
class ToolUse:
    calls: Tuple[ToolCallRequest, ...]
    text: Optional[str] = None


@dataclass(frozen=True)
class TokenLimitReached:
    partial_text: Optional[str] = None


@dataclass(frozen=True)
class Unrecognized:
    raw_reason: Optional[str]


LoopOutcome = Union[Done, ToolUse, TokenLimitReached, Unrecognized]


class StopReason(str, Enum):
    COMPLETED = "completed"
    TOKEN_LIMIT = "token_limit"
    ITERATION_LIMIT = "iteration_limit"
    TIME_LIMIT = "time_limit"
    UNRECOGNIZED = "unrecognized"
    PROVIDER_ERROR = "provider_error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ToolContext:
    """Ambient context handed to every tool handler.

    ``guild`` is the scope the tool acts on and ``actor`` the member who
    triggered the run. ``policy`` is the executor's PermissionPolicy.
    """

    actor: Any
    guild: Any = None
    channel: Any = None
    bot_user: Any = None
    is_privileged: bool = False
    run_id: Optional[str] = None
    policy: Any = None

    @property
    def actor_id(self) -> Optional[int]:
        return getattr(self.actor, "id", None)

    @property
    def guild_id(self) -> Optional[int]:
        return getattr(self.guild, "id", None)


@dataclass
class AgentRequest:
    """Everything the engine needs for one run."""

    message: str
    tool_context: ToolContext
    conversation_context: str = ""
    is_privileged: bool = False
    has_attachments: bool = False
    channel_description: Optional[str] = None


@dataclass(frozen=True)
class AgentReply:
    text: str
    stop: StopReason
    iterations: int
    selection: Optional[ModelSelection] = None
    elapsed: float = 0.0
    run_id: Optional[str] = None
