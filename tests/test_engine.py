"""Tests for the agent loop."""

import asyncio

import pytest

from conftest import FakeAdapter, FakeExecutor, FakeRegistry, StatusError, no_sleep
from sunny.errors import ErrorCategory, ToolExecutionError, ToolPermissionError
from sunny.models.agent import (
    AgentRequest,
    Done,
    LoopBudget,
    Provider,
    StopReason,
    TokenLimitReached,
    ToolCallRequest,
    ToolUse,
    TurnRole,
    Unrecognized,
)
from sunny.services.engine import (
    APOLOGIES,
    CANCELLED_REPLY,
    EMPTY_REPLY,
    ITERATION_LIMIT_REPLY,
    NO_TOOLS_REPLY,
    TIME_LIMIT_REPLY,
    TOKEN_LIMIT_REPLY,
    UNRECOGNIZED_REPLY,
    AgentEngine,
    AgentObserver,
)
from sunny.services.selector import FORCED_SIMPLE
from sunny.utils.rate_limiter import RateLimiterRegistry
from sunny.utils.retry import RetryPolicy


def call(name="list_channels", call_id="call_1", **arguments):
    return ToolCallRequest(id=call_id, name=name, arguments=arguments)


def make_engine(adapter, selector, clock, executor=None, **kwargs):
    kwargs.setdefault("retry_policy", RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0))
    return AgentEngine(
        {Provider.ANTHROPIC: adapter},
        selector,
        kwargs.pop("registry", FakeRegistry()),
        executor or FakeExecutor(),
        clock=clock,
        sleep=no_sleep,
        **kwargs,
    )


def request_for(tool_context, message="please tidy up the channels", privileged=False):
    return AgentRequest(message=message, tool_context=tool_context, is_privileged=privileged)


class RecordingObserver(AgentObserver):
    def __init__(self):
        self.events = []

    async def on_model_selected(self, run_id, selection, request):
        self.events.append(("selected", selection.model))

    async def on_request_started(self, run_id, iteration, selection):
        self.events.append(("request", iteration))

    async def on_response_received(self, run_id, iteration, outcome):
        self.events.append(("response", iteration))

    async def on_tool_executed(self, run_id, call, result, duration_ms, context):
        self.events.append(("tool", call.name, result.success))

    async def on_run_complete(self, reply, request):
        self.events.append(("complete", reply.stop))


class ExplodingObserver(AgentObserver):
    async def on_model_selected(self, *args):
        raise RuntimeError("boom")

    async def on_tool_executed(self, *args):
        raise RuntimeError("boom")

    async def on_run_complete(self, *args):
        raise RuntimeError("boom")


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_tool_then_answer_uses_two_invocations(self, selector, clock, tool_context):
        """One tool round trip followed by a final answer costs exactly two calls."""
        adapter = FakeAdapter([ToolUse((call(),)), Done("Here are your channels 🍂")])
        executor = FakeExecutor({"list_channels": {"channels": ["general"]}})
        engine = make_engine(adapter, selector, clock, executor)

        reply = await engine.run(request_for(tool_context))

        assert reply.text == "Here are your channels 🍂"
        assert reply.stop == StopReason.COMPLETED
        assert reply.iterations == 2
        assert adapter.invocations == 2
        assert [c[0] for c in executor.calls] == ["list_channels"]

    @pytest.mark.asyncio
    async def test_list_the_channels_on_simple_model(self, selector, clock, tool_context):
        """'list the channels' is forced simple and finishes after one tool round trip."""
        adapter = FakeAdapter([ToolUse((call(),)), Done("We have #general and #rules 🍂")])
        executor = FakeExecutor({"list_channels": {"channels": ["general", "rules"]}})
        engine = make_engine(adapter, selector, clock, executor)

        reply = await engine.run(request_for(tool_context, message="list the channels"))

        assert reply.selection.category == FORCED_SIMPLE
        assert reply.selection.model == "simple-model"
        assert all(r["model"] == "simple-model" for r in adapter.requests)
        assert adapter.invocations == 2
        assert reply.stop == StopReason.COMPLETED
        assert reply.text == "We have #general and #rules 🍂"

    @pytest.mark.asyncio
    async def test_turn_order_is_user_assistant_results(self, selector, clock, tool_context):
        """The second request carries user, tool-use and tool-result turns in that order."""
        adapter = FakeAdapter([ToolUse((call(),), "Let me look"), Done("done")])
        engine = make_engine(adapter, selector, clock)

        await engine.run(request_for(tool_context))

        first, second = adapter.requests
        assert [t.role for t in first["turns"]] == [TurnRole.USER]
        assert [t.role for t in second["turns"]] == [
            TurnRole.USER,
            TurnRole.ASSISTANT,
            TurnRole.TOOL_RESULTS,
        ]
        assert second["turns"][1].content.text == "Let me look"
        results = second["turns"][2].content
        assert [r.call_id for r in results] == ["call_1"]

    @pytest.mark.asyncio
    async def test_privilege_flows_to_tool_context(self, selector, clock, tool_context):
        """Tools see the privilege flag and the run id of the request."""
        adapter = FakeAdapter([ToolUse((call(),)), Done("ok")])
        executor = FakeExecutor()
        engine = make_engine(adapter, selector, clock, executor)

        reply = await engine.run(request_for(tool_context, privileged=True))

        context = executor.calls[0][2]
        assert context.is_privileged is True
        assert context.run_id == reply.run_id

    @pytest.mark.asyncio
    async def test_empty_answer_gets_fallback(self, selector, clock, tool_context):
        """A blank completion is replaced by the fixed fallback text."""
        engine = make_engine(FakeAdapter([Done("   ")]), selector, clock)
        reply = await engine.run(request_for(tool_context))
        assert reply.text == EMPTY_REPLY
        assert reply.stop == StopReason.COMPLETED

    @pytest.mark.asyncio
    async def test_respond_returns_text(self, selector, clock, tool_context):
        """The convenience wrapper returns only the reply text."""
        engine = make_engine(FakeAdapter([Done("hello!")]), selector, clock)
        assert await engine.respond("hi sunny", tool_context) == "hello!"

    @pytest.mark.asyncio
    async def test_guild_tailored_tools_requested(self, selector, clock, tool_context):
        """The registry is asked for the tools of the request's guild."""
        registry = FakeRegistry()
        engine = make_engine(FakeAdapter([Done("ok")]), selector, clock, registry=registry)
        await engine.run(request_for(tool_context))
        assert registry.guilds == [tool_context.guild]


class TestToolIsolation:
    @pytest.mark.asyncio
    async def test_every_call_gets_a_result(self, selector, clock, tool_context):
        """Failures in one call do not prevent results for the others."""
        calls = (
            call("list_channels", "a"),
            call("kick_member", "b"),
            call("delete_channel", "c"),
            call("list_roles", "d"),
        )
        adapter = FakeAdapter([ToolUse(calls), Done("done")])
        executor = FakeExecutor(
            {
                "kick_member": ToolPermissionError("kick_member", 111),
                "delete_channel": RuntimeError("socket closed"),
            }
        )
        engine = make_engine(adapter, selector, clock, executor)

        reply = await engine.run(request_for(tool_context))

        assert reply.stop == StopReason.COMPLETED
        results = adapter.requests[1]["turns"][2].content
        assert [r.call_id for r in results] == ["a", "b", "c", "d"]
        assert [r.success for r in results] == [True, False, False, True]
        assert results[1].error_type == "permission"
        assert "socket closed" in results[2].error

    @pytest.mark.asyncio
    async def test_undecodable_arguments_skip_executor(self, selector, clock, tool_context):
        """Calls whose arguments could not be decoded never reach the executor."""
        bad = ToolCallRequest(id="x", name="send_message", argument_error="not JSON")
        adapter = FakeAdapter([ToolUse((bad,)), Done("sorry")])
        executor = FakeExecutor()
        engine = make_engine(adapter, selector, clock, executor)

        await engine.run(request_for(tool_context))

        assert executor.calls == []
        result = adapter.requests[1]["turns"][2].content[0]
        assert result.success is False
        assert result.error_type == "invalid_args"

    @pytest.mark.asyncio
    async def test_tool_error_message_reaches_model(self, selector, clock, tool_context):
        """The serialised failure names the tool and the error."""
        adapter = FakeAdapter([ToolUse((call("ban_member"),)), Done("couldn't")])
        executor = FakeExecutor({"ban_member": ToolExecutionError("Missing Permissions", "ban_member")})
        engine = make_engine(adapter, selector, clock, executor)

        await engine.run(request_for(tool_context))

        content = adapter.requests[1]["turns"][2].content[0].to_content()
        assert '"success": false' in content
        assert "Missing Permissions" in content
        assert '"tool": "ban_member"' in content


class TestBudgets:
    @pytest.mark.asyncio
    async def test_iteration_limit(self, selector, clock, tool_context):
        """The loop stops after the configured number of model calls."""
        adapter = FakeAdapter([ToolUse((call(),))])
        adapter.repeat_last = True
        engine = make_engine(adapter, selector, clock, budget=LoopBudget(max_iterations=3))

        reply = await engine.run(request_for(tool_context))

        assert reply.stop == StopReason.ITERATION_LIMIT
        assert reply.text == ITERATION_LIMIT_REPLY
        assert reply.iterations == 3
        assert adapter.invocations == 3

    @pytest.mark.asyncio
    async def test_wall_clock_limit(self, selector, clock, tool_context):
        """The loop stops at the top of the first iteration past the time budget."""
        adapter = FakeAdapter([ToolUse((call(),))], clock=clock, step=6.0)
        adapter.repeat_last = True
        engine = make_engine(
            adapter, selector, clock, budget=LoopBudget(max_iterations=50, max_wall_clock_seconds=10)
        )

        reply = await engine.run(request_for(tool_context))

        assert reply.stop == StopReason.TIME_LIMIT
        assert reply.text == TIME_LIMIT_REPLY
        assert adapter.invocations == 2
        assert reply.elapsed == pytest.approx(12.0)

    @pytest.mark.asyncio
    async def test_token_limit(self, selector, clock, tool_context):
        """A truncated response ends the run with the token-limit notice."""
        engine = make_engine(FakeAdapter([TokenLimitReached("partial")]), selector, clock)
        reply = await engine.run(request_for(tool_context))
        assert reply.stop == StopReason.TOKEN_LIMIT
        assert reply.text == TOKEN_LIMIT_REPLY

    @pytest.mark.asyncio
    async def test_unrecognized_stop_reason(self, selector, clock, tool_context):
        """Unknown stop reasons end the run instead of looping."""
        adapter = FakeAdapter([Unrecognized("pause_turn")])
        engine = make_engine(adapter, selector, clock)
        reply = await engine.run(request_for(tool_context))
        assert reply.stop == StopReason.UNRECOGNIZED
        assert reply.text == UNRECOGNIZED_REPLY
        assert adapter.invocations == 1


class TestProviderErrors:
    @pytest.mark.asyncio
    async def test_rate_limit_apology_after_retries(self, selector, clock, tool_context):
        """A persistent 429 is retried, then answered with the rate-limit apology."""
        adapter = FakeAdapter([StatusError(429)] * 3)
        engine = make_engine(adapter, selector, clock)

        reply = await engine.run(request_for(tool_context))

        assert adapter.invocations == 3
        assert reply.stop == StopReason.PROVIDER_ERROR
        assert reply.text == APOLOGIES[ErrorCategory.RATE_LIMITED]

    @pytest.mark.asyncio
    async def test_transient_error_recovers(self, selector, clock, tool_context):
        """A single server error is retried transparently."""
        adapter = FakeAdapter([StatusError(503), Done("recovered")])
        engine = make_engine(adapter, selector, clock)

        reply = await engine.run(request_for(tool_context))

        assert reply.text == "recovered"
        assert reply.iterations == 1

    @pytest.mark.asyncio
    async def test_auth_error_is_not_retried(self, selector, clock, tool_context):
        """A 401 fails immediately with the configuration apology."""
        adapter = FakeAdapter([StatusError(401, "invalid x-api-key")])
        engine = make_engine(adapter, selector, clock)

        reply = await engine.run(request_for(tool_context))

        assert adapter.invocations == 1
        assert reply.text == APOLOGIES[ErrorCategory.CONFIGURATION]

    @pytest.mark.asyncio
    async def test_missing_provider_is_configuration_error(self, clock, tool_context):
        """Selecting a provider without an adapter reports a configuration problem."""
        from sunny.services.selector import ModelSelector

        selector = ModelSelector(Provider.GROQ, "small", "large")
        adapter = FakeAdapter([Done("unused")])
        engine = make_engine(adapter, selector, clock)

        reply = await engine.run(request_for(tool_context))

        assert adapter.invocations == 0
        assert reply.stop == StopReason.PROVIDER_ERROR
        assert reply.text == APOLOGIES[ErrorCategory.CONFIGURATION]

    @pytest.mark.asyncio
    async def test_unknown_error_apology(self, selector, clock, tool_context):
        """Anything unclassified gets the generic apology."""
        engine = make_engine(FakeAdapter([ValueError("weird")]), selector, clock)
        reply = await engine.run(request_for(tool_context))
        assert reply.text == APOLOGIES[ErrorCategory.UNKNOWN]

    @pytest.mark.asyncio
    async def test_tool_validation_error_answers_without_tools(self, selector, clock, tool_context):
        """A 400 about tool use is answered by one plain request with no tools declared."""
        adapter = FakeAdapter([StatusError(400, "tool call validation failed"), Done("plain answer")])
        engine = make_engine(adapter, selector, clock)

        reply = await engine.run(request_for(tool_context))

        assert reply.stop == StopReason.COMPLETED
        assert reply.text == "plain answer"
        assert adapter.invocations == 2
        fallback = adapter.requests[1]
        assert fallback["tools"] == []
        assert [t.role for t in fallback["turns"]] == [TurnRole.USER]

    @pytest.mark.asyncio
    async def test_tool_validation_fallback_without_text(self, selector, clock, tool_context):
        """An empty plain answer still gets a friendly reply."""
        adapter = FakeAdapter([StatusError(400, "Failed to call a function. tool_use_failed"), Done("  ")])
        reply = await make_engine(adapter, selector, clock).run(request_for(tool_context))
        assert reply.text == NO_TOOLS_REPLY

    @pytest.mark.asyncio
    async def test_other_bad_requests_still_apologise(self, selector, clock, tool_context):
        """A 400 unrelated to tools is not given a second chance."""
        adapter = FakeAdapter([StatusError(400, "messages: field required"), Done("unused")])
        reply = await make_engine(adapter, selector, clock).run(request_for(tool_context))
        assert adapter.invocations == 1
        assert reply.stop == StopReason.PROVIDER_ERROR


class TestCancellationAndObservers:
    @pytest.mark.asyncio
    async def test_cancel_before_start(self, selector, clock, tool_context):
        """A pre-set cancel event stops the run before any model call."""
        adapter = FakeAdapter([Done("unused")])
        engine = make_engine(adapter, selector, clock)
        cancel = asyncio.Event()
        cancel.set()

        reply = await engine.run(request_for(tool_context), cancel_event=cancel)

        assert reply.stop == StopReason.CANCELLED
        assert reply.text == CANCELLED_REPLY
        assert adapter.invocations == 0

    @pytest.mark.asyncio
    async def test_cancel_between_iterations(self, selector, clock, tool_context):
        """Cancelling during a tool batch stops at the next iteration boundary."""
        cancel = asyncio.Event()

        def cancel_now(args, context):
            cancel.set()
            return {"ok": True}

        adapter = FakeAdapter([ToolUse((call(),)), Done("unused")])
        engine = make_engine(adapter, selector, clock, FakeExecutor({"list_channels": cancel_now}))

        reply = await engine.run(request_for(tool_context), cancel_event=cancel)

        assert reply.stop == StopReason.CANCELLED
        assert adapter.invocations == 1

    @pytest.mark.asyncio
    async def test_observer_sequence(self, selector, clock, tool_context):
        """Observers see selection, each request, each tool and completion in order."""
        observer = RecordingObserver()
        adapter = FakeAdapter([ToolUse((call(),)), Done("ok")])
        engine = make_engine(adapter, selector, clock, observers=[observer])

        await engine.run(request_for(tool_context))

        assert observer.events == [
            ("selected", "simple-model"),
            ("request", 1),
            ("response", 1),
            ("tool", "list_channels", True),
            ("request", 2),
            ("response", 2),
            ("complete", StopReason.COMPLETED),
        ]

    @pytest.mark.asyncio
    async def test_observer_failures_are_isolated(self, selector, clock, tool_context):
        """A broken observer never changes the outcome of a run."""
        adapter = FakeAdapter([ToolUse((call(),)), Done("still fine")])
        engine = make_engine(adapter, selector, clock, observers=[ExplodingObserver()])

        reply = await engine.run(request_for(tool_context))

        assert reply.text == "still fine"
        assert reply.stop == StopReason.COMPLETED


class TestRateLimiting:
    @pytest.mark.asyncio
    async def test_one_token_per_model_call(self, selector, clock, tool_context):
        """The provider bucket is charged once per iteration."""
        limiters = RateLimiterRegistry()
        limiters.register("anthropic", 100, 60.0, clock=clock)
        adapter = FakeAdapter([ToolUse((call(),)), Done("ok")])
        engine = make_engine(adapter, selector, clock, limiters=limiters)

        await engine.run(request_for(tool_context))

        assert limiters.get("anthropic").get_stats()["total_requests"] == 2
