"""Common interface every model-backend adapter implements."""

from __future__ import annotations

import abc
from typing import Any, Dict, List, Sequence

from ...models.agent import (
    ConversationTurn,
    LoopOutcome,
    Provider,
    ToolDefinition,
    ToolResult,
)
from ...errors import is_tool_validation_error
from ...utils.retry import is_retryable_error


class ProviderAdapter(abc.ABC):
    """Translate the agent vocabulary to and from one backend's wire format.

    Adapters perform exactly one network call per ``invoke`` and never retry;
    the engine owns rate limiting and retry policy.
    """

    provider: Provider
    wire_format: str = ""

    def __init__(self, client: Any, *, max_tokens: int = 3000, temperature: float = 0.7):
        self._client = client
        self.max_tokens = max_tokens
        self.temperature = temperature

    @property
    def client(self) -> Any:
        return self._client

    @abc.abstractmethod
    def declare_tools(self, tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
        """Render tool definitions as backend function declarations."""

    @abc.abstractmethod
    def parse_tool_declarations(self, declarations: Sequence[Dict[str, Any]]) -> List[ToolDefinition]:
        """Inverse of :meth:`declare_tools`."""

    @abc.abstractmethod
    def render_turns(self, turns: Sequence[ConversationTurn]) -> List[Dict[str, Any]]:
        """Render the run's turn log as backend messages."""

    @abc.abstractmethod
    def build_request(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        tools: Sequence[ToolDefinition],
        model: str,
    ) -> Dict[str, Any]:
        ...

    @abc.abstractmethod
    async def invoke(self, request: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abc.abstractmethod
    def interpret_response(self, response: Any) -> LoopOutcome:
        """Map a raw response onto a loop outcome. Must never raise."""

    @abc.abstractmethod
    def format_tool_results(self, results: Sequence[ToolResult]) -> List[Dict[str, Any]]:
        ...

    def is_retryable(self, exc: BaseException) -> bool:
        return is_retryable_error(exc)

    def is_tool_validation_error(self, exc: BaseException) -> bool:
        return is_tool_validation_error(exc)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(provider={self.provider.value})"
