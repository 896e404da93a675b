"""Discord tool catalog and the registry the agent loop reads it through."""

from __future__ import annotations

import copy
import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..models.agent import ToolDefinition
from ..utils.permissions import PRIVILEGED_TOOLS
from .channels import CHANNEL_HANDLERS, CHANNEL_TOOLS
from .common import Handler
from .emojis import EMOJI_HANDLERS, EMOJI_TOOLS
from .events import EVENT_HANDLERS, EVENT_TOOLS
from .inspection import INSPECTION_HANDLERS, INSPECTION_TOOLS
from .members import MEMBER_HANDLERS, MEMBER_TOOLS
from .messages import MESSAGE_HANDLERS, MESSAGE_TOOLS
from .roles import ROLE_HANDLERS, ROLE_TOOLS
from .server import SERVER_HANDLERS, SERVER_TOOLS
from .threads import THREAD_HANDLERS, THREAD_TOOLS

logger = logging.getLogger(__name__)

# Guilds with more names than this get free-form role_name/channel_name parameters
MAX_ENUM_VALUES = 50

CATALOG: List[Tuple[List[ToolDefinition], Mapping[str, Handler]]] = [
    (INSPECTION_TOOLS, INSPECTION_HANDLERS),
    (CHANNEL_TOOLS, CHANNEL_HANDLERS),
    (ROLE_TOOLS, ROLE_HANDLERS),
    (MEMBER_TOOLS, MEMBER_HANDLERS),
    (MESSAGE_TOOLS, MESSAGE_HANDLERS),
    (THREAD_TOOLS, THREAD_HANDLERS),
    (EVENT_TOOLS, EVENT_HANDLERS),
    (EMOJI_TOOLS, EMOJI_HANDLERS),
    (SERVER_TOOLS, SERVER_HANDLERS),
]


class ToolRegistry:
    """Immutable set of tool definitions plus the handler behind each one."""

    def __init__(
        self,
        catalog: Iterable[Tuple[Iterable[ToolDefinition], Mapping[str, Handler]]] = CATALOG,
        privileged: Iterable[str] = PRIVILEGED_TOOLS,
    ):
        privileged = frozenset(privileged)
        definitions: Dict[str, ToolDefinition] = {}
        handlers: Dict[str, Handler] = {}
        for tools, tool_handlers in catalog:
            for definition in tools:
                if definition.name in definitions:
                    raise ValueError(f"Duplicate tool name: {definition.name}")
                if definition.name not in tool_handlers:
                    raise ValueError(f"Tool {definition.name} has no handler")
                definitions[definition.name] = replace(
                    definition, privileged=definition.name in privileged
                )
                handlers[definition.name] = tool_handlers[definition.name]
        self._definitions = definitions
        self._handlers = handlers
        logger.debug("Registered %s tools", len(definitions))

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    @property
    def handlers(self) -> Mapping[str, Handler]:
        return dict(self._handlers)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._definitions)

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._definitions.get(name)

    def list_tools(self, guild: Any = None) -> Tuple[ToolDefinition, ...]:
        """Return every definition, tailored to ``guild`` when one is given.

        Tailoring adds an ``enum`` of existing names to ``role_name`` and
        ``channel_name`` parameters so the model picks real targets. The enum is
        all or nothing: a guild with more than ``MAX_ENUM_VALUES`` names keeps
        the parameter free-form, and parameters that also take an ID never get
        one.
        """

        if guild is None:
            return tuple(self._definitions.values())

        enums = {
            "role_name": _names(r.name for r in guild.roles if not r.is_default()),
            "channel_name": _names(
                [c.name for c in guild.channels] + [t.name for t in getattr(guild, "threads", ())]
            ),
        }
        return tuple(_with_enums(d, enums) for d in self._definitions.values())


def _names(names: Iterable[str]) -> List[str]:
    unique: List[str] = []
    for name in names:
        if name not in unique:
            unique.append(name)
        if len(unique) > MAX_ENUM_VALUES:
            return []
    return unique


def _accepts_id(prop: Mapping[str, Any]) -> bool:
    return "ID" in prop.get("description", "").split()


def _with_enums(definition: ToolDefinition, enums: Mapping[str, List[str]]) -> ToolDefinition:
    targets = [
        key
        for key, prop in definition.properties.items()
        if enums.get(key) and not _accepts_id(prop)
    ]
    if not targets:
        return definition
    schema = copy.deepcopy(dict(definition.input_schema))
    for key in targets:
        schema["properties"][key]["enum"] = list(enums[key])
    return replace(definition, input_schema=schema)


__all__ = ["CATALOG", "MAX_ENUM_VALUES", "ToolRegistry"]
