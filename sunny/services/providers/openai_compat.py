"""Adapter for OpenAI-style function-envelope backends (Z.AI GLM, Groq, OpenAI)."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import openai
from openai import AsyncOpenAI

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

GROQ_TOOL_LIMIT = 128

# Prefixes kept first when a backend caps the number of declared tools
PRIORITY_PREFIXES = (
    "list_", "get_", "create_", "delete_", "rename_", "update_",
    "send_", "edit_", "pin_", "unpin_",
    "add_", "remove_", "set_", "clear_",
    "kick_", "ban_", "unban_", "timeout_",
    "start_", "end_",
)

# Names smaller models tend to invent, mapped onto real tools
TOOL_NAME_ALIASES = {
    "set_timeout": "timeout_member",
    "mute_member": "timeout_member",
    "mute_user": "timeout_member",
    "timeout_user": "timeout_member",
    "timeout": "timeout_member",
    "get_roles": "list_roles",
    "show_roles": "list_roles",
    "list_all_roles": "list_roles",
    "add_role": "assign_role",
    "add_role_to_member": "assign_role",
    "give_role": "assign_role",
    "remove_role_from_member": "remove_role",
    "take_role": "remove_role",
    "get_channels": "list_channels",
    "show_channels": "list_channels",
    "list_all_channels": "list_channels",
    "make_channel": "create_channel",
    "new_channel": "create_channel",
    "get_user_info": "get_member_info",
    "user_info": "get_member_info",
    "member_info": "get_member_info",
    "get_user": "get_member_info",
    "kick_user": "kick_member",
    "ban_user": "ban_member",
    "send": "send_message",
    "message": "send_message",
    "post_message": "send_message",
    "delete": "delete_message",
    "remove_message": "delete_message",
    "server_info": "get_server_info",
    "guild_info": "get_server_info",
    "get_server": "get_server_info",
    "get_guild": "get_server_info",
}


def prioritise_tools(tools: Sequence[ToolDefinition], limit: int) -> List[ToolDefinition]:
    """Keep at most ``limit`` tools, essential prefixes first, otherwise in order."""

    ranked = sorted(
        tools, key=lambda tool: 0 if tool.name.startswith(PRIORITY_PREFIXES) else 1
    )
    return ranked[:limit]


class OpenAICompatibleAdapter(ProviderAdapter):
    wire_format = "function"

    def __init__(
        self,
        client: Any,
        *,
        provider: Provider = Provider.OPENAI,
        max_tools: Optional[int] = None,
        tool_aliases: Optional[Mapping[str, str]] = None,
        max_tokens: int = 3000,
        temperature: float = 0.7,
    ):
        super().__init__(client, max_tokens=max_tokens, temperature=temperature)
        self.provider = provider
        self.max_tools = max_tools
        self.tool_aliases = dict(tool_aliases or {})

    @classmethod
    def from_credentials(
        cls, api_key: Optional[str], base_url: Optional[str] = None, **kwargs: Any
    ) -> "OpenAICompatibleAdapter":
        provider = kwargs.get("provider", Provider.OPENAI)
        if not api_key:
            raise ProviderConfigurationError(f"{provider.value} API key not configured")
        return cls(AsyncOpenAI(api_key=api_key, base_url=base_url), **kwargs)

    def declare_tools(self, tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
        if self.max_tools is not None and len(tools) > self.max_tools:
            logger.info(
                "%s: declaring %d of %d tools (limit %d)",
                self.provider.value,
                self.max_tools,
                len(tools),
                self.max_tools,
            )
            tools = prioritise_tools(tools, self.max_tools)
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": dict(tool.input_schema),
                },
            }
            for tool in tools
        ]

    def parse_tool_declarations(self, declarations: Sequence[Dict[str, Any]]) -> List[ToolDefinition]:
        parsed = []
        for decl in declarations:
            function = decl["function"]
            parsed.append(
                ToolDefinition(
                    name=function["name"],
                    description=function.get("description", ""),
                    input_schema=function.get("parameters") or {"type": "object", "properties": {}},
                )
            )
        return parsed

    def render_turns(self, turns: Sequence[ConversationTurn]) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        for turn in turns:
            if turn.role == TurnRole.TOOL_RESULTS:
                messages.extend(self.format_tool_results(turn.content))
            elif isinstance(turn.content, AssistantToolUse):
                messages.append(
                    {
                        "role": "assistant",
                        "content": turn.content.text,
                        "tool_calls": [
                            {
                                "id": call.id,
                                "type": "function",
                                "function": {
                                    "name": call.name,
                                    "arguments": json.dumps(call.arguments),
                                },
                            }
                            for call in turn.content.calls
                        ],
                    }
                )
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
            "messages": [{"role": "system", "content": system_prompt}, *self.render_turns(turns)],
        }
        if tools:
            request["tools"] = self.declare_tools(tools)
            request["tool_choice"] = "auto"
        return request

    async def invoke(self, request: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._client.chat.completions.create(**request)
        choice = response.choices[0]
        return choice.model_dump()

    def _decode_call(self, raw: Dict[str, Any]) -> ToolCallRequest:
        function = raw.get("function") or {}
        name = function.get("name") or ""
        if name in self.tool_aliases:
            logger.info("Mapped tool name %s -> %s", name, self.tool_aliases[name])
            name = self.tool_aliases[name]

        arguments_raw = function.get("arguments")
        if isinstance(arguments_raw, dict):
            return ToolCallRequest(id=raw.get("id") or "", name=name, arguments=arguments_raw)
        try:
            arguments = json.loads(arguments_raw) if arguments_raw else {}
        except json.JSONDecodeError as exc:
            logger.warning("Invalid tool arguments for %s: %s", name, arguments_raw)
            return ToolCallRequest(
                id=raw.get("id") or "",
                name=name,
                argument_error=f"Arguments were not valid JSON: {exc.msg}",
            )
        if not isinstance(arguments, dict):
            return ToolCallRequest(
                id=raw.get("id") or "",
                name=name,
                argument_error="Arguments must be a JSON object",
            )
        return ToolCallRequest(id=raw.get("id") or "", name=name, arguments=arguments)

    def interpret_response(self, response: Any) -> LoopOutcome:
        try:
            if "choices" in response:
                response = response["choices"][0]
            finish_reason = response.get("finish_reason")
            message = response.get("message") or {}
            text = (message.get("content") or "").strip()
            calls = [self._decode_call(raw) for raw in message.get("tool_calls") or []]
        except (AttributeError, IndexError, KeyError, TypeError) as exc:
            logger.warning("Could not parse %s response: %s", self.provider.value, exc)
            return Unrecognized("malformed response")

        if finish_reason == "stop":
            return Done(text)
        if finish_reason == "tool_calls":
            if not calls:
                return Unrecognized("tool_calls without tool calls")
            return ToolUse(tuple(calls), text or None)
        if finish_reason == "length":
            return TokenLimitReached(text or None)
        return Unrecognized(finish_reason)

    def format_tool_results(self, results: Sequence[ToolResult]) -> List[Dict[str, Any]]:
        # One message per result
        return [
            {
                "role": "tool",
                "tool_call_id": result.call_id,
                "name": result.name,
                "content": result.to_content(),
            }
            for result in results
        ]

    def is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, (openai.APIConnectionError, openai.APITimeoutError)):
            return True
        return super().is_retryable(exc)
