"""The agentic tool-use loop shared by every provider."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from ..errors import ErrorCategory, ProviderConfigurationError, ToolError, classify_error
from ..models.agent import (
    AgentReply,
    AgentRequest,
    ConversationTurn,
    Done,
    LoopBudget,
    LoopOutcome,
    ModelSelection,
    Provider,
    StopReason,
    TokenLimitReached,
    ToolCallRequest,
    ToolContext,
    ToolResult,
    ToolUse,
    Unrecognized,
)
from ..tools import ToolRegistry
from ..tools.executor import ToolExecutor
from ..utils.complexity import MessageComplexityAnalyzer
from ..utils.prompts import DEFAULT_PERSONALITY, build_initial_user_message, build_system_prompt
from ..utils.rate_limiter import RateLimiter, RateLimiterRegistry
from ..utils.retry import RetryPolicy, retry_with_backoff
from .providers.base import ProviderAdapter
from .selector import ModelSelector

logger = logging.getLogger(__name__)

TIME_LIMIT_REPLY = (
    "I'm taking longer than expected on this! 🍂 Let me try a different approach - "
    "could you break this into smaller questions?"
)
ITERATION_LIMIT_REPLY = (
    "I got a bit carried away thinking about this! 😅 This is more complex than I expected - "
    "let me know if you'd like me to try again with a simpler approach."
)
TOKEN_LIMIT_REPLY = "I need to think about this in smaller steps! Let me try again with a simpler approach. 🍂"
UNRECOGNIZED_REPLY = "Oops! Something unexpected happened on my end 🍂"
EMPTY_REPLY = "I don't have a response for that right now! 🍂"
CANCELLED_REPLY = "Okay, I've stopped working on that! 🍂"
NO_TOOLS_REPLY = "I couldn't complete that action, but I'm here to help! What would you like me to do?"

APOLOGIES: Dict[ErrorCategory, str] = {
    ErrorCategory.RATE_LIMITED: (
        "Whoa, I'm a bit overwhelmed right now! 🍂 Give me a moment to catch my breath and try again!"
    ),
    ErrorCategory.SERVER_ERROR: "My brain is having a moment 😅 Let me try that again in a sec!",
    ErrorCategory.CONFIGURATION: (
        "Oops! There's an issue with my configuration 🍂 Let the server owner know!"
    ),
    ErrorCategory.UNKNOWN: (
        "Something went wrong on my end 🍂 Let me try again or ask the server owner for help "
        "if this keeps happening!"
    ),
}


class AgentObserver:
    """Lifecycle hooks for one agent run. Every hook is optional."""

    async def on_model_selected(self, run_id: str, selection: ModelSelection, request: AgentRequest) -> None:
        return None

    async def on_request_started(self, run_id: str, iteration: int, selection: ModelSelection) -> None:
        return None

    async def on_response_received(self, run_id: str, iteration: int, outcome: LoopOutcome) -> None:
        return None

    async def on_tool_executed(
        self,
        run_id: str,
        call: ToolCallRequest,
        result: ToolResult,
        duration_ms: float,
        context: ToolContext,
    ) -> None:
        return None

    async def on_run_complete(self, reply: AgentReply, request: AgentRequest) -> None:
        return None


class LoggingObserver(AgentObserver):
    """Writes the selection trace and per-run summary to the log."""

    async def on_model_selected(self, run_id: str, selection: ModelSelection, request: AgentRequest) -> None:
        logger.info(
            "[%s] Selected %s/%s (%s, score=%s): %s",
            run_id,
            selection.provider.value,
            selection.model,
            selection.category,
            selection.complexity_score,
            selection.reasoning,
        )

    async def on_tool_executed(
        self,
        run_id: str,
        call: ToolCallRequest,
        result: ToolResult,
        duration_ms: float,
        context: ToolContext,
    ) -> None:
        if result.success:
            logger.debug("[%s] Tool %s succeeded in %.0fms", run_id, call.name, duration_ms)
        else:
            logger.info("[%s] Tool %s failed: %s", run_id, call.name, result.error)

    async def on_run_complete(self, reply: AgentReply, request: AgentRequest) -> None:
        logger.info(
            "[%s] Run finished: %s after %s iteration(s) in %.1fs",
            reply.run_id,
            reply.stop.value,
            reply.iterations,
            reply.elapsed,
        )


class AgentEngine:
    """Drives select, request, interpret and execute until a terminal condition.

    One engine serves every provider; budgets come from ``LoopBudget`` and
    retry knobs from ``RetryPolicy``. Collaborators are injected so tests can
    substitute fake adapters and executors. Per-run state (the turn log and
    the model selection) lives on the stack of :meth:`run`, so concurrent runs
    share nothing except the rate-limiter buckets.
    """

    def __init__(
        self,
        providers: Mapping[Provider, ProviderAdapter],
        selector: ModelSelector,
        registry: ToolRegistry,
        executor: ToolExecutor,
        limiters: Optional[RateLimiterRegistry] = None,
        retry_policy: Optional[RetryPolicy] = None,
        budget: Optional[LoopBudget] = None,
        personality: str = DEFAULT_PERSONALITY,
        observers: Sequence[AgentObserver] = (),
        analyzer: Optional[MessageComplexityAnalyzer] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._providers = dict(providers)
        self._selector = selector
        self._registry = registry
        self._executor = executor
        self._limiters = limiters
        self._retry = retry_policy or RetryPolicy()
        self._budget = budget or LoopBudget()
        self._personality = personality
        self._observers = list(observers)
        self._analyzer = analyzer or MessageComplexityAnalyzer()
        self._clock = clock
        self._sleep = sleep

    @property
    def selector(self) -> ModelSelector:
        return self._selector

    @property
    def budget(self) -> LoopBudget:
        return self._budget

    @property
    def providers(self) -> Mapping[Provider, ProviderAdapter]:
        return dict(self._providers)

    def add_observer(self, observer: AgentObserver) -> None:
        self._observers.append(observer)

    async def respond(
        self,
        message: str,
        tool_context: ToolContext,
        conversation_context: str = "",
        is_privileged: bool = False,
        has_attachments: bool = False,
        channel_description: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        request = AgentRequest(
            message=message,
            tool_context=tool_context,
            conversation_context=conversation_context,
            is_privileged=is_privileged,
            has_attachments=has_attachments,
            channel_description=channel_description,
        )
        reply = await self.run(request, cancel_event=cancel_event)
        return reply.text

    async def run(self, request: AgentRequest, cancel_event: Optional[asyncio.Event] = None) -> AgentReply:
        """Run the loop for one request. Always returns a reply, never raises."""

        started = self._clock()
        run_id = request.tool_context.run_id or uuid.uuid4().hex[:12]
        context = replace(request.tool_context, is_privileged=request.is_privileged, run_id=run_id)
        iterations = 0
        selection: Optional[ModelSelection] = None

        def finish(text: str, stop: StopReason) -> AgentReply:
            return AgentReply(
                text=text,
                stop=stop,
                iterations=iterations,
                selection=selection,
                elapsed=self._clock() - started,
                run_id=run_id,
            )

        try:
            selection = self._selector.select(
                request.message, request.conversation_context, request.is_privileged
            )
            await self._notify("on_model_selected", run_id, selection, request)

            adapter = self._providers.get(selection.provider)
            if adapter is None:
                raise ProviderConfigurationError(
                    f"No adapter configured for provider {selection.provider.value}"
                )

            summary = self._analyzer.summarize(request.message, request.has_attachments)
            system_prompt = build_system_prompt(self._personality, selection.model, summary)
            turns: List[ConversationTurn] = [
                ConversationTurn.user(
                    build_initial_user_message(
                        request.message,
                        context.actor,
                        request.conversation_context,
                        request.is_privileged,
                        request.channel_description,
                    )
                )
            ]
            tools = self._registry.list_tools(context.guild)
            logger.info(
                "[%s] Starting agent loop for user %s with %s tools",
                run_id,
                context.actor_id,
                len(tools),
            )

            while True:
                elapsed = self._clock() - started
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("[%s] Run cancelled after %s iteration(s)", run_id, iterations)
                    reply = finish(CANCELLED_REPLY, StopReason.CANCELLED)
                    break
                if elapsed >= self._budget.max_wall_clock_seconds:
                    logger.warning(
                        "[%s] Hit time limit (%.0fs) after %s iteration(s)",
                        run_id,
                        self._budget.max_wall_clock_seconds,
                        iterations,
                    )
                    reply = finish(TIME_LIMIT_REPLY, StopReason.TIME_LIMIT)
                    break
                if iterations >= self._budget.max_iterations:
                    logger.warning("[%s] Hit iteration limit (%s)", run_id, self._budget.max_iterations)
                    reply = finish(ITERATION_LIMIT_REPLY, StopReason.ITERATION_LIMIT)
                    break

                iterations += 1
                logger.debug("[%s] Iteration %s (%.1fs elapsed)", run_id, iterations, elapsed)
                payload = adapter.build_request(system_prompt, turns, tools, selection.model)
                await self._notify("on_request_started", run_id, iterations, selection)
                try:
                    response = await self._invoke(adapter, selection.provider, payload)
                except Exception as exc:
                    if not tools or not adapter.is_tool_validation_error(exc):
                        raise
                    logger.warning("[%s] Tool validation error, answering without tools: %s", run_id, exc)
                    text = await self._answer_without_tools(adapter, selection, system_prompt, turns[:1])
                    reply = finish(text, StopReason.COMPLETED)
                    break
                outcome = adapter.interpret_response(response)
                await self._notify("on_response_received", run_id, iterations, outcome)

                if isinstance(outcome, Done):
                    text = outcome.text.strip()
                    turns.append(ConversationTurn.assistant(text))
                    reply = finish(text or EMPTY_REPLY, StopReason.COMPLETED)
                    break
                if isinstance(outcome, TokenLimitReached):
                    logger.warning("[%s] Token limit reached on iteration %s", run_id, iterations)
                    reply = finish(TOKEN_LIMIT_REPLY, StopReason.TOKEN_LIMIT)
                    break
                if isinstance(outcome, ToolUse):
                    turns.append(ConversationTurn.tool_use(list(outcome.calls), outcome.text))
                    results = await self._execute_batch(run_id, outcome.calls, context)
                    turns.append(ConversationTurn.tool_results(results))
                    continue
                raw = outcome.raw_reason if isinstance(outcome, Unrecognized) else repr(outcome)
                logger.warning("[%s] Unrecognized stop reason: %s", run_id, raw)
                reply = finish(UNRECOGNIZED_REPLY, StopReason.UNRECOGNIZED)
                break
        except Exception as exc:
            category = classify_error(exc)
            logger.exception("[%s] Agent run failed (%s)", run_id, category.value)
            reply = finish(APOLOGIES[category], StopReason.PROVIDER_ERROR)

        await self._notify("on_run_complete", reply, request)
        return reply

    def _limiter_for(self, provider: Provider) -> Optional[RateLimiter]:
        if self._limiters is None or provider.value not in self._limiters:
            return None
        return self._limiters.get(provider.value)

    async def _invoke(self, adapter: ProviderAdapter, provider: Provider, payload: Dict[str, Any]) -> Any:
        limiter = self._limiter_for(provider)
        if limiter is not None:
            await limiter.remove_tokens(1)
        return await retry_with_backoff(
            lambda: adapter.invoke(payload),
            max_attempts=self._retry.max_attempts,
            base_delay=self._retry.base_delay,
            max_delay=self._retry.max_delay,
            jitter=self._retry.jitter,
            is_retryable=adapter.is_retryable,
            operation_name=f"{provider.value} API call",
            sleep=self._sleep,
        )

    async def _answer_without_tools(
        self,
        adapter: ProviderAdapter,
        selection: ModelSelection,
        system_prompt: str,
        turns: Sequence[ConversationTurn],
    ) -> str:
        """One plain request with no tools declared, for backends that reject our tool use."""

        payload = adapter.build_request(system_prompt, turns, (), selection.model)
        outcome = adapter.interpret_response(await self._invoke(adapter, selection.provider, payload))
        if isinstance(outcome, Done) and outcome.text.strip():
            return outcome.text.strip()
        return NO_TOOLS_REPLY

    async def _execute_batch(
        self, run_id: str, calls: Sequence[ToolCallRequest], context: ToolContext
    ) -> List[ToolResult]:
        """Run every call in order; one result per call, whatever happens."""

        results: List[ToolResult] = []
        for call in calls:
            started = self._clock()
            if call.argument_error is not None:
                result = ToolResult.failed(
                    call, f"Invalid tool arguments: {call.argument_error}", "invalid_args"
                )
            else:
                try:
                    payload = await self._executor.execute(call.name, call.arguments, context)
                    result = ToolResult.ok(call, payload)
                except ToolError as exc:
                    logger.info("[%s] Tool %s rejected: %s", run_id, call.name, exc)
                    result = ToolResult.failed(call, str(exc), exc.error_type)
                except Exception as exc:
                    logger.exception("[%s] Tool %s raised", run_id, call.name)
                    result = ToolResult.failed(call, str(exc) or type(exc).__name__)
            duration_ms = (self._clock() - started) * 1000
            results.append(result)
            await self._notify("on_tool_executed", run_id, call, result, duration_ms, context)
        return results

    async def _notify(self, hook: str, *args: Any) -> None:
        for observer in self._observers:
            method = getattr(observer, hook, None)
            if method is None:
                continue
            try:
                await method(*args)
            except Exception:
                logger.exception("Observer %s failed in %s", type(observer).__name__, hook)
