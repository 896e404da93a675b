"""Shared fakes for the agent loop tests."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from sunny.errors import is_tool_validation_error
from sunny.models.agent import Provider, ToolContext, ToolDefinition
from sunny.services.selector import ModelSelector
from sunny.utils.retry import is_retryable_error


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAdapter:
    """Scripted provider: each invoke pops the next outcome (or raises it).

    ``interpret_response`` is the identity, so scripts are written directly in
    loop outcomes (Done, ToolUse, ...).
    """

    provider = Provider.ANTHROPIC

    def __init__(self, script: List[Any], clock: Optional[FakeClock] = None, step: float = 0.0):
        self.script = list(script)
        self.repeat_last = False
        self.requests: List[Dict[str, Any]] = []
        self.invocations = 0
        self._clock = clock
        self._step = step

    def build_request(self, system_prompt, turns, tools, model):
        return {"system": system_prompt, "turns": list(turns), "tools": list(tools), "model": model}

    async def invoke(self, request):
        self.invocations += 1
        self.requests.append(request)
        if self._clock is not None:
            self._clock.advance(self._step)
        if len(self.script) == 1 and self.repeat_last:
            item = self.script[0]
        else:
            item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def interpret_response(self, response):
        return response

    def is_retryable(self, exc):
        return is_retryable_error(exc)

    def is_tool_validation_error(self, exc):
        return is_tool_validation_error(exc)


class FakeExecutor:
    """Records calls; ``behaviour`` maps a tool name to a payload or an exception."""

    def __init__(self, behaviour: Optional[Dict[str, Any]] = None):
        self.behaviour = behaviour or {}
        self.calls: List[tuple] = []

    async def execute(self, name, args, context):
        self.calls.append((name, dict(args), context))
        outcome = self.behaviour.get(name, {"ok": True})
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return outcome(args, context)
        return outcome


class FakeRegistry:
    def __init__(self, tools=None):
        self.tools = tuple(
            tools
            or (
                ToolDefinition(
                    name="list_channels",
                    description="List channels",
                    input_schema={"type": "object", "properties": {}},
                ),
            )
        )
        self.guilds: List[Any] = []

    def list_tools(self, guild=None):
        self.guilds.append(guild)
        return self.tools


class StatusError(Exception):
    """SDK-shaped error carrying an HTTP status code."""

    def __init__(self, status_code: int, message: str = "error"):
        super().__init__(message)
        self.status_code = status_code


async def no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def selector() -> ModelSelector:
    return ModelSelector(Provider.ANTHROPIC, "simple-model", "complex-model")


@pytest.fixture
def actor():
    return SimpleNamespace(id=111, name="maple", bot=False)


@pytest.fixture
def guild():
    return SimpleNamespace(id=999, name="The Nook", owner_id=222)


@pytest.fixture
def tool_context(actor, guild) -> ToolContext:
    return ToolContext(actor=actor, guild=guild)
