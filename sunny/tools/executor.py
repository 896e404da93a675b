"""Validated, permission-checked and rate-limited dispatch of tool calls."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

import discord

from ..errors import (
    ToolError,
    ToolExecutionError,
    ToolPermissionError,
    ToolValidationError,
    UnknownToolError,
)
from ..models.agent import ToolContext, ToolDefinition
from ..utils.permissions import PermissionPolicy
from ..utils.rate_limiter import RateLimiter
from ..utils.retry import RetryPolicy, is_retryable_error, retry_with_backoff
from . import ToolRegistry
from .common import Handler

logger = logging.getLogger(__name__)

JSON_TYPES = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
}


def validate_arguments(definition: ToolDefinition, args: Mapping[str, Any]) -> Dict[str, Any]:
    """Check ``args`` against the tool's input schema and return a clean copy.

    Unknown keys are dropped. Numeric and boolean strings are coerced.
    """

    if not isinstance(args, Mapping):
        raise ToolValidationError("Arguments must be an object.", definition.name)

    problems: List[str] = []
    for key in definition.required:
        if args.get(key) is None:
            problems.append(f"missing required argument '{key}'")

    cleaned: Dict[str, Any] = {}
    for key, value in args.items():
        prop = definition.properties.get(key)
        if prop is None or value is None:
            continue
        expected = prop.get("type")
        if expected == "integer" and isinstance(value, str) and value.strip().lstrip("-").isdigit():
            value = int(value)
        if expected == "boolean" and isinstance(value, str) and value.lower() in ("true", "false"):
            value = value.lower() == "true"
        allowed = JSON_TYPES.get(expected)
        if allowed is not None:
            # bool is an int subclass; keep the two apart
            if not isinstance(value, allowed) or (expected != "boolean" and isinstance(value, bool)):
                problems.append(f"'{key}' must be of type {expected}")
                continue
        if "enum" in prop and value not in prop["enum"]:
            problems.append(f"'{key}' must be one of: {', '.join(map(str, prop['enum']))}")
            continue
        if expected == "integer":
            if "minimum" in prop and value < prop["minimum"]:
                problems.append(f"'{key}' must be at least {prop['minimum']}")
                continue
            if "maximum" in prop and value > prop["maximum"]:
                problems.append(f"'{key}' must be at most {prop['maximum']}")
                continue
        cleaned[key] = value

    if problems:
        raise ToolValidationError(f"Invalid arguments for {definition.name}: {'; '.join(problems)}", definition.name)
    return cleaned


class ToolExecutor:
    """Runs a named tool for an actor in a guild.

    Order of checks: the tool must exist, the actor must be allowed to run it,
    its arguments must validate, then the shared ``tool_execution`` bucket is
    drawn from before the handler is awaited. Transient Discord failures (5xx,
    timeouts) are retried with backoff; whatever still fails comes back as
    :class:`ToolExecutionError` so callers only handle :class:`ToolError`.
    """

    def __init__(
        self,
        handlers: Mapping[str, Handler],
        definitions: Mapping[str, ToolDefinition],
        permissions: PermissionPolicy,
        rate_limiter: Optional[RateLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._handlers = dict(handlers)
        self._definitions = dict(definitions)
        self._permissions = permissions
        self._rate_limiter = rate_limiter
        self._retry = retry_policy or RetryPolicy()
        self._sleep = sleep

    @classmethod
    def from_registry(
        cls,
        registry: ToolRegistry,
        permissions: PermissionPolicy,
        rate_limiter: Optional[RateLimiter] = None,
        **kwargs: Any,
    ) -> "ToolExecutor":
        definitions = {name: registry.get(name) for name in registry.names}
        return cls(registry.handlers, definitions, permissions, rate_limiter, **kwargs)

    def is_allowed(self, name: str, context: ToolContext) -> bool:
        definition = self._definitions.get(name)
        privileged = (definition is not None and definition.privileged) or PermissionPolicy.requires_privilege(name)
        if not privileged:
            return True
        return context.is_privileged or self._permissions.is_privileged(context.actor, context.guild)

    async def execute(self, name: str, args: Mapping[str, Any], context: ToolContext) -> Any:
        handler = self._handlers.get(name)
        definition = self._definitions.get(name)
        if handler is None or definition is None:
            raise UnknownToolError(name)

        if not self.is_allowed(name, context):
            logger.info("Denied %s for user %s in guild %s", name, context.actor_id, context.guild_id)
            raise ToolPermissionError(name, context.actor_id)

        cleaned = validate_arguments(definition, args)

        if not context.is_privileged and self._permissions.is_privileged(context.actor, context.guild):
            context = replace(context, is_privileged=True)
        if context.policy is None:
            context = replace(context, policy=self._permissions)

        if self._rate_limiter is not None:
            await self._rate_limiter.remove_tokens(1)

        started = time.monotonic()
        try:
            result = await retry_with_backoff(
                lambda: handler(cleaned, context),
                max_attempts=self._retry.max_attempts,
                base_delay=self._retry.base_delay,
                max_delay=self._retry.max_delay,
                jitter=self._retry.jitter,
                is_retryable=is_retryable_error,
                operation_name=f"Tool {name}",
                sleep=self._sleep,
            )
        except ToolError as exc:
            if exc.tool_name is None:
                exc.tool_name = name
            raise
        except discord.Forbidden as exc:
            raise ToolExecutionError(
                f"I don't have permission to do that ({exc.text or 'Missing Permissions'}).", name
            ) from exc
        except discord.NotFound as exc:
            raise ToolExecutionError(f"Discord could not find that ({exc.text or 'Unknown'}).", name) from exc
        except discord.HTTPException as exc:
            raise ToolExecutionError(f"Discord API error {exc.status}: {exc.text or exc}", name) from exc
        finally:
            logger.debug("Tool %s finished in %.0fms", name, (time.monotonic() - started) * 1000)
        return result
