"""Adapter for backends that declare tools under ``input_schema`` (Claude)."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import anthropic

from ...errors import ProviderConfigurationError
from ...models.agent import (
    AssistantToolUse,
    ConversationTurn,
    Done,
    LoopOutcome,
    Provider,
    TokenLimitReached,
    ToolCallRequest,
    ToolDefinition,
    ToolResult,
    ToolUse,
    TurnRole,
    Unrecognized,
)
from .base import ProviderAdapter

logger = logging.getLogger(__name__)

CACHE_CONTROL = {"type": "ephemeral"}


class AnthropicAdapter(ProviderAdapter):
    provider = Provider.ANTHROPIC
    wire_format = "input_schema"

    @classmethod
    def from_credentials(
        cls, api_key: Optional[str], base_url: Optional[str] = None, **kwargs: Any
    ) -> "AnthropicAdapter":
        if not api_key:
            raise ProviderConfigurationError("Anthropic API key not configured")
        client = anthropic.AsyncAnthropic(api_key=api_key, base_url=base_url)
        return cls(client, **kwargs)

    def declare_tools(self, tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": dict(tool.input_schema),
            }
            for tool in tools
        ]

    def parse_tool_declarations(self, declarations: Sequence[Dict[str, Any]]) -> List[ToolDefinition]:
        return [
            ToolDefinition(
                name=decl["name"],
                description=decl.get("description", ""),
                input_schema=decl.get("input_schema") or {"type": "object", "properties": {}},
            )
            for decl in declarations
        ]

    def render_turns(self, turns: Sequence[ConversationTurn]) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        for turn in turns:
            if turn.role == TurnRole.TOOL_RESULTS:
                messages.extend(self.format_tool_results(turn.content))
            elif isinstance(turn.content, AssistantToolUse):
                blocks: List[Dict[str, Any]] = []
                if turn.content.text:
                    blocks.append({"type": "text", "text": turn.content.text})
                for call in turn.content.calls:
                    blocks.append(
                        {"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments}
                    )
                messages.append({"role": "assistant", "content": blocks})
            else:
                messages.append({"role": turn.role.value, "content": turn.content})
        return messages

    def build_request(
        self,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
        tools: Sequence[ToolDefinition],
        model: str,
    ) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "model": model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system": [{"type": "text", "text": system_prompt, "cache_control": CACHE_CONTROL}],
            "messages": self.render_turns(turns),
        }
        if tools:
            request["tools"] = self.declare_tools(tools)
        return request

    async def invoke(self, request: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._client.messages.create(**request)
        return response.model_dump()

    def interpret_response(self, response: Any) -> LoopOutcome:
        try:
            stop_reason = response.get("stop_reason")
            blocks = response.get("content") or []
            texts = [block["text"] for block in blocks if block.get("type") == "text"]
            calls = [
                ToolCallRequest(
                    id=block["id"], name=block["name"], arguments=dict(block.get("input") or {})
                )
                for block in blocks
                if block.get("type") == "tool_use"
            ]
        except (AttributeError, KeyError, TypeError) as exc:
            logger.warning("Could not parse Anthropic response: %s", exc)
            return Unrecognized("malformed response")

        text = "\n".join(t for t in texts if t).strip()
        if stop_reason == "end_turn":
            return Done(text)
        if stop_reason == "tool_use":
            if not calls:
                return Unrecognized("tool_use without tool_use blocks")
            return ToolUse(tuple(calls), text or None)
        if stop_reason == "max_tokens":
            return TokenLimitReached(text or None)
        return Unrecognized(stop_reason)

    def format_tool_results(self, results: Sequence[ToolResult]) -> List[Dict[str, Any]]:
        # All results of a batch travel in one user message
        return [
            {
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": result.call_id,
                        "content": result.to_content(),
                    }
                    for result in results
                ],
            }
        ]

    def is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, (anthropic.APIConnectionError, anthropic.APITimeoutError)):
            return True
        return super().is_retryable(exc)
