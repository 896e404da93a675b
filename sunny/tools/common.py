"""Schema builders and Discord lookups shared by the tool catalogs."""

from __future__ import annotations

import re
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import aiohttp
import discord

from ..errors import TargetNotFoundError, ToolExecutionError, ToolValidationError
from ..models.agent import ToolContext, ToolDefinition

Handler = Callable[[Dict[str, Any], ToolContext], Awaitable[Any]]

MENTION_ID = re.compile(r"^<(?:@[!&]?|#)(\d+)>$")
MAX_IMAGE_BYTES = 8 * 1024 * 1024


def string(description: str, enum: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    prop: Dict[str, Any] = {"type": "string", "description": description}
    if enum is not None:
        prop["enum"] = list(enum)
    return prop


def integer(description: str, minimum: Optional[int] = None, maximum: Optional[int] = None) -> Dict[str, Any]:
    prop: Dict[str, Any] = {"type": "integer", "description": description}
    if minimum is not None:
        prop["minimum"] = minimum
    if maximum is not None:
        prop["maximum"] = maximum
    return prop


def boolean(description: str) -> Dict[str, Any]:
    return {"type": "boolean", "description": description}


def string_list(description: str) -> Dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}, "description": description}


def tool(
    name: str,
    description: str,
    properties: Optional[Dict[str, Dict[str, Any]]] = None,
    required: Iterable[str] = (),
    category: str = "general",
) -> ToolDefinition:
    return ToolDefinition(
        name=name,
        description=description,
        input_schema={
            "type": "object",
            "properties": dict(properties or {}),
            "required": list(required),
        },
        category=category,
    )


def require_guild(ctx: ToolContext) -> discord.Guild:
    if ctx.guild is None:
        raise ToolExecutionError("This tool can only be used inside a server.")
    return ctx.guild


def parse_snowflake(value: Any) -> Optional[int]:
    text = str(value).strip()
    match = MENTION_ID.match(text)
    if match:
        return int(match.group(1))
    if text.isdigit():
        return int(text)
    return None


def audit_reason(ctx: ToolContext, reason: Optional[str], default: str) -> str:
    actor = getattr(ctx.actor, "name", None) or "unknown"
    return f"{reason or default} (requested by {actor})"[:512]


def find_channel(guild: discord.Guild, name_or_id: Any) -> Any:
    """Resolve a channel, category or thread by mention, id or case-insensitive name."""

    snowflake = parse_snowflake(name_or_id)
    if snowflake is not None:
        channel = guild.get_channel_or_thread(snowflake)
        if channel is not None:
            return channel
    wanted = str(name_or_id).strip().lstrip("#").lower()
    for channel in list(guild.channels) + list(guild.threads):
        if channel.name.lower() == wanted:
            return channel
    raise TargetNotFoundError(f"Channel '{name_or_id}' not found. Use list_channels to see what exists.")


def find_text_channel(guild: discord.Guild, name_or_id: Any) -> Any:
    channel = find_channel(guild, name_or_id)
    if not isinstance(channel, discord.abc.Messageable) or isinstance(
        channel, discord.CategoryChannel
    ):
        raise ToolValidationError(f"'{channel.name}' is not a channel that holds messages.")
    return channel


def find_category(guild: discord.Guild, name_or_id: Any) -> discord.CategoryChannel:
    channel = find_channel(guild, name_or_id)
    if not isinstance(channel, discord.CategoryChannel):
        raise ToolValidationError(f"'{channel.name}' is not a category.")
    return channel


def find_thread(guild: discord.Guild, name_or_id: Any) -> discord.Thread:
    channel = find_channel(guild, name_or_id)
    if not isinstance(channel, discord.Thread):
        raise ToolValidationError(f"'{channel.name}' is not a thread.")
    return channel


def find_role(guild: discord.Guild, name_or_id: Any) -> discord.Role:
    snowflake = parse_snowflake(name_or_id)
    if snowflake is not None:
        role = guild.get_role(snowflake)
        if role is not None:
            return role
    wanted = str(name_or_id).strip().lstrip("@").lower()
    for role in guild.roles:
        if role.name.lower() == wanted:
            return role
    raise TargetNotFoundError(f"Role '{name_or_id}' not found. Use list_roles to see what exists.")


async def find_member(guild: discord.Guild, user: Any) -> discord.Member:
    """Resolve a member by mention, id, username, global name or nickname."""

    snowflake = parse_snowflake(user)
    if snowflake is not None:
        member = guild.get_member(snowflake)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(snowflake)
        except discord.NotFound:
            raise TargetNotFoundError(f"Member '{user}' not found.") from None

    wanted = str(user).strip().lstrip("@").lower()
    for member in guild.members:
        names = {member.name.lower(), member.display_name.lower()}
        if member.global_name:
            names.add(member.global_name.lower())
        if wanted in names:
            return member
    raise TargetNotFoundError(f"Member '{user}' not found.")


async def find_message(channel: Any, message_id: Any) -> discord.Message:
    snowflake = parse_snowflake(message_id)
    if snowflake is None:
        raise ToolValidationError(f"'{message_id}' is not a message id.")
    try:
        return await channel.fetch_message(snowflake)
    except discord.NotFound:
        raise TargetNotFoundError(f"Message {message_id} not found in #{channel.name}.") from None


def find_emoji(guild: discord.Guild, name_or_id: Any) -> discord.Emoji:
    snowflake = parse_snowflake(name_or_id)
    for emoji in guild.emojis:
        if snowflake is not None and emoji.id == snowflake:
            return emoji
        if emoji.name.lower() == str(name_or_id).strip(":").lower():
            return emoji
    raise TargetNotFoundError(f"Emoji '{name_or_id}' not found.")


def parse_colour(value: str) -> discord.Colour:
    text = str(value).strip()
    named = getattr(discord.Colour, text.lower().replace(" ", "_"), None)
    if callable(named) and not text.startswith("#"):
        try:
            colour = named()
        except TypeError:
            colour = None
        if isinstance(colour, discord.Colour):
            return colour
    try:
        return discord.Colour.from_str(text if text.startswith(("#", "0x", "rgb")) else f"#{text}")
    except ValueError:
        raise ToolValidationError(f"'{value}' is not a colour. Use hex like #ff8800.") from None


def parse_permissions(names: Iterable[str]) -> discord.Permissions:
    permissions = discord.Permissions.none()
    unknown: List[str] = []
    for name in names:
        key = str(name).strip().lower().replace(" ", "_")
        if key in discord.Permissions.VALID_FLAGS:
            setattr(permissions, key, True)
        else:
            unknown.append(str(name))
    if unknown:
        raise ToolValidationError(f"Unknown permission(s): {', '.join(unknown)}")
    return permissions


async def fetch_image(url: str) -> bytes:
    """Download an image for emoji, sticker or icon uploads."""

    timeout = aiohttp.ClientTimeout(total=15)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.get(url) as response:
            if response.status != 200:
                raise ToolExecutionError(f"Could not download image (HTTP {response.status}).")
            data = await response.read()
    if len(data) > MAX_IMAGE_BYTES:
        raise ToolValidationError("Image is too large.")
    return data


def channel_type_name(channel: Any) -> str:
    if isinstance(channel, discord.Thread):
        return "thread"
    kind = getattr(channel, "type", None)
    return getattr(kind, "name", str(kind))


def describe_channel(channel: Any, include_id: bool = True) -> Dict[str, Any]:
    info: Dict[str, Any] = {"name": channel.name, "type": channel_type_name(channel)}
    if include_id:
        info["id"] = str(channel.id)
    category = getattr(channel, "category", None)
    if category is not None:
        info["category"] = category.name
    return info


def describe_member(member: discord.Member) -> Dict[str, Any]:
    return {
        "id": str(member.id),
        "username": member.name,
        "display_name": member.display_name,
        "bot": member.bot,
        "roles": [role.name for role in member.roles if not role.is_default()],
        "joined_at": member.joined_at.isoformat() if member.joined_at else None,
    }


def describe_role(role: discord.Role) -> Dict[str, Any]:
    return {
        "id": str(role.id),
        "name": role.name,
        "color": str(role.colour),
        "position": role.position,
        "members": len(role.members),
        "hoist": role.hoist,
        "mentionable": role.mentionable,
    }
