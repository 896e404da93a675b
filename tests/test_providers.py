"""Tests for the Format A (Anthropic) and Format B (OpenAI-style) adapters."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from sunny.errors import ProviderConfigurationError
from sunny.models.agent import (
    ConversationTurn,
    Done,
    Provider,
    TokenLimitReached,
    ToolCallRequest,
    ToolDefinition,
    ToolResult,
    ToolUse,
    Unrecognized,
)
from sunny.services.providers import AnthropicAdapter, OpenAICompatibleAdapter, create_providers
from sunny.services.providers.openai_compat import GROQ_TOOL_LIMIT, TOOL_NAME_ALIASES

TOOLS = [
    ToolDefinition(
        name="list_channels",
        description="List every channel",
        input_schema={"type": "object", "properties": {}},
    ),
    ToolDefinition(
        name="rename_channel",
        description="Rename a channel",
        input_schema={
            "type": "object",
            "properties": {
                "channel_name": {"type": "string"},
                "new_name": {"type": "string"},
            },
            "required": ["channel_name", "new_name"],
        },
    ),
]


def sample_turns():
    call = ToolCallRequest(id="tc_1", name="rename_channel", arguments={"channel_name": "general", "new_name": "lobby"})
    return [
        ConversationTurn.user("rename general to lobby"),
        ConversationTurn.tool_use([call], "On it!"),
        ConversationTurn.tool_results([ToolResult.ok(call, {"renamed": True})]),
    ]


@pytest.fixture
def anthropic_adapter():
    return AnthropicAdapter(MagicMock(), max_tokens=1000, temperature=0.5)


@pytest.fixture
def openai_adapter():
    return OpenAICompatibleAdapter(MagicMock(), provider=Provider.ZAI)


class TestAnthropicAdapter:
    def test_declaration_round_trip(self, anthropic_adapter):
        """Declared tools parse back to the same names, descriptions and schemas."""
        declared = anthropic_adapter.declare_tools(TOOLS)
        assert declared[1]["input_schema"]["required"] == ["channel_name", "new_name"]
        parsed = anthropic_adapter.parse_tool_declarations(declared)
        assert [(t.name, t.description, dict(t.input_schema)) for t in parsed] == [
            (t.name, t.description, dict(t.input_schema)) for t in TOOLS
        ]

    def test_request_shape(self, anthropic_adapter):
        """The system prompt is a cached text block and tools are attached."""
        request = anthropic_adapter.build_request("be cozy", sample_turns(), TOOLS, "claude-test")
        assert request["model"] == "claude-test"
        assert request["max_tokens"] == 1000
        assert request["system"] == [
            {"type": "text", "text": "be cozy", "cache_control": {"type": "ephemeral"}}
        ]
        assert len(request["tools"]) == 2

    def test_no_tools_key_when_empty(self, anthropic_adapter):
        """Requests without tools omit the tools field."""
        request = anthropic_adapter.build_request("sys", sample_turns()[:1], [], "m")
        assert "tools" not in request

    def test_turn_rendering(self, anthropic_adapter):
        """Tool use becomes text plus tool_use blocks; results one user message."""
        messages = anthropic_adapter.render_turns(sample_turns())
        assert messages[0] == {"role": "user", "content": "rename general to lobby"}
        assert messages[1]["role"] == "assistant"
        assert messages[1]["content"][0] == {"type": "text", "text": "On it!"}
        assert messages[1]["content"][1] == {
            "type": "tool_use",
            "id": "tc_1",
            "name": "rename_channel",
            "input": {"channel_name": "general", "new_name": "lobby"},
        }
        assert messages[2]["role"] == "user"
        block = messages[2]["content"][0]
        assert block["type"] == "tool_result"
        assert block["tool_use_id"] == "tc_1"
        assert json.loads(block["content"]) == {"success": True, "renamed": True}

    def test_results_batched_in_one_message(self, anthropic_adapter):
        """Several results travel together."""
        calls = [ToolCallRequest(id=f"c{i}", name="list_channels") for i in range(3)]
        formatted = anthropic_adapter.format_tool_results([ToolResult.ok(c, []) for c in calls])
        assert len(formatted) == 1
        assert [b["tool_use_id"] for b in formatted[0]["content"]] == ["c0", "c1", "c2"]

    def test_interpret_end_turn(self, anthropic_adapter):
        response = {"stop_reason": "end_turn", "content": [{"type": "text", "text": "All done 🍂"}]}
        assert anthropic_adapter.interpret_response(response) == Done("All done 🍂")

    def test_interpret_tool_use(self, anthropic_adapter):
        """Every tool_use block becomes a call with its leading text kept."""
        response = {
            "stop_reason": "tool_use",
            "content": [
                {"type": "text", "text": "Checking"},
                {"type": "tool_use", "id": "a", "name": "list_channels", "input": {}},
                {"type": "tool_use", "id": "b", "name": "list_roles", "input": {"x": 1}},
            ],
        }
        outcome = anthropic_adapter.interpret_response(response)
        assert isinstance(outcome, ToolUse)
        assert [c.id for c in outcome.calls] == ["a", "b"]
        assert outcome.calls[1].arguments == {"x": 1}
        assert outcome.text == "Checking"

    def test_interpret_max_tokens(self, anthropic_adapter):
        outcome = anthropic_adapter.interpret_response({"stop_reason": "max_tokens", "content": []})
        assert isinstance(outcome, TokenLimitReached)

    @pytest.mark.parametrize(
        "response",
        [
            {"stop_reason": "pause_turn", "content": []},
            {"stop_reason": "tool_use", "content": []},
            {"content": "not a list of blocks"},
            None,
            "garbage",
        ],
    )
    def test_interpret_is_total(self, anthropic_adapter, response):
        """Anything unexpected maps to Unrecognized rather than raising."""
        assert isinstance(anthropic_adapter.interpret_response(response), Unrecognized)

    @pytest.mark.asyncio
    async def test_invoke_calls_sdk_once(self):
        """invoke forwards the request to messages.create and dumps the result."""
        client = MagicMock()
        client.messages.create = AsyncMock(
            return_value=MagicMock(model_dump=lambda: {"stop_reason": "end_turn", "content": []})
        )
        adapter = AnthropicAdapter(client)
        response = await adapter.invoke({"model": "m", "messages": []})
        client.messages.create.assert_awaited_once_with(model="m", messages=[])
        assert response["stop_reason"] == "end_turn"

    def test_requires_api_key(self):
        with pytest.raises(ProviderConfigurationError):
            AnthropicAdapter.from_credentials(None)


class TestOpenAICompatibleAdapter:
    def test_declaration_round_trip(self, openai_adapter):
        """Function envelopes parse back to the original definitions."""
        declared = openai_adapter.declare_tools(TOOLS)
        assert declared[0]["type"] == "function"
        assert declared[1]["function"]["parameters"]["required"] == ["channel_name", "new_name"]
        parsed = openai_adapter.parse_tool_declarations(declared)
        assert [t.name for t in parsed] == ["list_channels", "rename_channel"]
        assert dict(parsed[1].input_schema) == dict(TOOLS[1].input_schema)

    def test_request_shape(self, openai_adapter):
        """The system prompt leads the messages and tool_choice is auto."""
        request = openai_adapter.build_request("be cozy", sample_turns(), TOOLS, "glm-4.6")
        assert request["messages"][0] == {"role": "system", "content": "be cozy"}
        assert request["tool_choice"] == "auto"

    def test_arguments_encoded_as_json_strings(self, openai_adapter):
        """Assistant tool calls carry their arguments as JSON text."""
        messages = openai_adapter.render_turns(sample_turns())
        tool_call = messages[1]["tool_calls"][0]
        assert tool_call["id"] == "tc_1"
        assert json.loads(tool_call["function"]["arguments"]) == {
            "channel_name": "general",
            "new_name": "lobby",
        }
        assert messages[1]["content"] == "On it!"

    def test_one_tool_message_per_result(self, openai_adapter):
        """Each result is its own role=tool message."""
        calls = [ToolCallRequest(id=f"c{i}", name="list_channels") for i in range(2)]
        results = [ToolResult.ok(calls[0], {"n": 1}), ToolResult.failed(calls[1], "nope")]
        formatted = openai_adapter.format_tool_results(results)
        assert [m["role"] for m in formatted] == ["tool", "tool"]
        assert [m["tool_call_id"] for m in formatted] == ["c0", "c1"]
        assert json.loads(formatted[1]["content"]) == {
            "success": False,
            "error": "nope",
            "tool": "list_channels",
        }

    def test_interpret_stop(self, openai_adapter):
        response = {"finish_reason": "stop", "message": {"content": " Hi there! "}}
        assert openai_adapter.interpret_response(response) == Done("Hi there!")

    def test_interpret_full_completion(self, openai_adapter):
        """A full completion body with choices is unwrapped."""
        response = {"choices": [{"finish_reason": "length", "message": {"content": "cut"}}]}
        assert openai_adapter.interpret_response(response) == TokenLimitReached("cut")

    def test_interpret_tool_calls(self, openai_adapter):
        """Argument strings are decoded into mappings."""
        response = {
            "finish_reason": "tool_calls",
            "message": {
                "content": None,
                "tool_calls": [
                    {
                        "id": "x1",
                        "type": "function",
                        "function": {"name": "rename_channel", "arguments": '{"channel_name": "general", "new_name": "lobby"}'},
                    }
                ],
            },
        }
        outcome = openai_adapter.interpret_response(response)
        assert isinstance(outcome, ToolUse)
        assert outcome.calls[0].arguments == {"channel_name": "general", "new_name": "lobby"}
        assert outcome.text is None

    def test_malformed_arguments_become_argument_error(self, openai_adapter):
        """Broken JSON is reported on the call instead of raising."""
        response = {
            "finish_reason": "tool_calls",
            "message": {
                "tool_calls": [
                    {"id": "x1", "function": {"name": "send_message", "arguments": "{not json"}},
                    {"id": "x2", "function": {"name": "send_message", "arguments": "[1, 2]"}},
                ]
            },
        }
        outcome = openai_adapter.interpret_response(response)
        assert all(call.argument_error for call in outcome.calls)
        assert outcome.calls[0].arguments == {}

    def test_empty_arguments(self, openai_adapter):
        """Missing argument text decodes to an empty mapping."""
        response = {
            "finish_reason": "tool_calls",
            "message": {"tool_calls": [{"id": "x", "function": {"name": "list_channels", "arguments": ""}}]},
        }
        outcome = openai_adapter.interpret_response(response)
        assert outcome.calls[0].arguments == {}
        assert outcome.calls[0].argument_error is None

    @pytest.mark.parametrize(
        "response",
        [
            {"finish_reason": "content_filter", "message": {}},
            {"finish_reason": "tool_calls", "message": {"tool_calls": []}},
            {"choices": []},
            None,
        ],
    )
    def test_interpret_is_total(self, openai_adapter, response):
        assert isinstance(openai_adapter.interpret_response(response), Unrecognized)

    def test_alias_mapping(self):
        """Hallucinated tool names are mapped onto real tools."""
        adapter = OpenAICompatibleAdapter(MagicMock(), provider=Provider.GROQ, tool_aliases=TOOL_NAME_ALIASES)
        response = {
            "finish_reason": "tool_calls",
            "message": {"tool_calls": [{"id": "x", "function": {"name": "get_roles", "arguments": "{}"}}]},
        }
        assert adapter.interpret_response(response).calls[0].name == "list_roles"

    def test_tool_cap_keeps_essential_prefixes(self):
        """Over the cap, essential prefixes are kept before other tools."""
        tools = [
            ToolDefinition(name=f"mentionable_role_{i}", description="", input_schema={"type": "object"})
            for i in range(5)
        ] + [
            ToolDefinition(name=f"list_thing_{i}", description="", input_schema={"type": "object"})
            for i in range(5)
        ]
        adapter = OpenAICompatibleAdapter(MagicMock(), provider=Provider.GROQ, max_tools=6)
        declared = adapter.declare_tools(tools)
        names = [d["function"]["name"] for d in declared]
        assert len(names) == 6
        assert names[:5] == [f"list_thing_{i}" for i in range(5)]
        assert names[5] == "mentionable_role_0"

    @pytest.mark.asyncio
    async def test_invoke_returns_first_choice(self):
        """invoke calls chat.completions.create and returns the first choice."""
        choice = MagicMock(model_dump=lambda: {"finish_reason": "stop", "message": {"content": "hey"}})
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[choice]))
        adapter = OpenAICompatibleAdapter(client)
        response = await adapter.invoke({"model": "m", "messages": []})
        assert adapter.interpret_response(response) == Done("hey")


class TestCreateProviders:
    def test_only_configured_providers(self):
        """Providers without credentials are absent."""
        settings = SimpleNamespace(
            max_tokens=3000,
            temperature=0.7,
            anthropic_api_key=None,
            anthropic_base_url=None,
            zai_api_key="zai-key",
            zai_base_url="https://api.z.ai/api/paas/v4/",
            groq_api_key="groq-key",
            groq_base_url="https://api.groq.com/openai/v1",
            openai_api_key=None,
            openai_base_url=None,
            ai_provider=Provider.ZAI,
        )
        providers = create_providers(settings)
        assert set(providers) == {Provider.ZAI, Provider.GROQ}
        assert providers[Provider.GROQ].max_tools == GROQ_TOOL_LIMIT
        assert providers[Provider.GROQ].tool_aliases == TOOL_NAME_ALIASES
        assert providers[Provider.ZAI].max_tools is None
