"""Custom emoji and sticker tools."""

from __future__ import annotations

import io
import re
from typing import Any, Dict

import discord

from ..errors import TargetNotFoundError, ToolValidationError
from ..models.agent import ToolContext
from .common import (
    audit_reason,
    fetch_image,
    find_emoji,
    parse_snowflake,
    require_guild,
    string,
    tool,
)

CATEGORY = "emojis"

EMOJI_NAME = re.compile(r"^[A-Za-z0-9_]{2,32}$")

EMOJI_TOOLS = [
    tool(
        "list_emojis",
        "List the server's custom emojis.",
        category=CATEGORY,
    ),
    tool(
        "create_emoji",
        "Upload a custom emoji from an image URL. Requires owner permissions.",
        {
            "name": string("Emoji name (letters, numbers and underscores)"),
            "image_url": string("Direct URL to a PNG, JPG or GIF under 256 KB"),
        },
        ["name", "image_url"],
        category=CATEGORY,
    ),
    tool(
        "edit_emoji",
        "Rename a custom emoji. Requires owner permissions.",
        {
            "emoji": string("Emoji name or ID"),
            "new_name": string("New emoji name"),
        },
        ["emoji", "new_name"],
        category=CATEGORY,
    ),
    tool(
        "delete_emoji",
        "Delete a custom emoji. Requires owner permissions.",
        {"emoji": string("Emoji name or ID")},
        ["emoji"],
        category=CATEGORY,
    ),
    tool(
        "list_stickers",
        "List the server's custom stickers.",
        category=CATEGORY,
    ),
    tool(
        "create_sticker",
        "Upload a sticker from a PNG, APNG or Lottie URL. Requires owner permissions.",
        {
            "name": string("Sticker name"),
            "image_url": string("Direct URL to the sticker file"),
            "emoji": string("Unicode emoji the sticker is related to"),
            "description": string("Optional: sticker description"),
        },
        ["name", "image_url", "emoji"],
        category=CATEGORY,
    ),
    tool(
        "edit_sticker",
        "Rename or re-describe a sticker. Requires owner permissions.",
        {
            "sticker": string("Sticker name or ID"),
            "new_name": string("New sticker name"),
            "description": string("New description"),
        },
        ["sticker"],
        category=CATEGORY,
    ),
    tool(
        "delete_sticker",
        "Delete a sticker. Requires owner permissions.",
        {"sticker": string("Sticker name or ID")},
        ["sticker"],
        category=CATEGORY,
    ),
]


def find_sticker(guild: discord.Guild, name_or_id: Any) -> discord.GuildSticker:
    snowflake = parse_snowflake(name_or_id)
    for sticker in guild.stickers:
        if snowflake is not None and sticker.id == snowflake:
            return sticker
        if sticker.name.lower() == str(name_or_id).strip().lower():
            return sticker
    raise TargetNotFoundError(f"Sticker '{name_or_id}' not found.")


def _emoji_name(value: str) -> str:
    name = str(value).strip().strip(":").replace(" ", "_")
    if not EMOJI_NAME.match(name):
        raise ToolValidationError("Emoji names must be 2-32 letters, numbers or underscores.")
    return name


async def list_emojis(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    return {
        "count": len(guild.emojis),
        "limit": guild.emoji_limit,
        "emojis": [
            {"id": str(e.id), "name": e.name, "animated": e.animated, "usage": str(e)}
            for e in guild.emojis
        ],
    }


async def create_emoji(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    name = _emoji_name(args["name"])
    image = await fetch_image(args["image_url"])
    emoji = await guild.create_custom_emoji(
        name=name, image=image, reason=audit_reason(ctx, None, "Emoji created by Sunny")
    )
    return {"message": f"Created emoji {emoji}", "emoji_id": str(emoji.id)}


async def edit_emoji(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    emoji = find_emoji(require_guild(ctx), args["emoji"])
    name = _emoji_name(args["new_name"])
    await emoji.edit(name=name, reason=audit_reason(ctx, None, "Emoji renamed by Sunny"))
    return {"message": f"Renamed emoji to {name}"}


async def delete_emoji(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    emoji = find_emoji(require_guild(ctx), args["emoji"])
    await emoji.delete(reason=audit_reason(ctx, None, "Emoji deleted by Sunny"))
    return {"message": f"Deleted emoji {emoji.name}"}


async def list_stickers(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    return {
        "count": len(guild.stickers),
        "limit": guild.sticker_limit,
        "stickers": [
            {"id": str(s.id), "name": s.name, "emoji": s.emoji, "description": s.description}
            for s in guild.stickers
        ],
    }


async def create_sticker(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    name = str(args["name"]).strip()
    if not 2 <= len(name) <= 30:
        raise ToolValidationError("Sticker names must be 2-30 characters.")
    image = await fetch_image(args["image_url"])
    filename = str(args["image_url"]).rsplit("/", 1)[-1].split("?", 1)[0] or "sticker.png"
    sticker = await guild.create_sticker(
        name=name,
        description=str(args.get("description") or "")[:100],
        emoji=str(args["emoji"]),
        file=discord.File(fp=io.BytesIO(image), filename=filename),
        reason=audit_reason(ctx, None, "Sticker created by Sunny"),
    )
    return {"message": f"Created sticker {sticker.name}", "sticker_id": str(sticker.id)}


async def edit_sticker(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    sticker = find_sticker(require_guild(ctx), args["sticker"])
    changes: Dict[str, Any] = {}
    if args.get("new_name"):
        changes["name"] = str(args["new_name"]).strip()
    if args.get("description") is not None:
        changes["description"] = str(args["description"])[:100]
    if not changes:
        raise ToolValidationError("Nothing to change. Give new_name or description.")
    await sticker.edit(reason=audit_reason(ctx, None, "Sticker edited by Sunny"), **changes)
    return {"message": f"Updated sticker {changes.get('name', sticker.name)}"}


async def delete_sticker(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    sticker = find_sticker(require_guild(ctx), args["sticker"])
    await sticker.delete(reason=audit_reason(ctx, None, "Sticker deleted by Sunny"))
    return {"message": f"Deleted sticker {sticker.name}"}


EMOJI_HANDLERS = {
    "list_emojis": list_emojis,
    "create_emoji": create_emoji,
    "edit_emoji": edit_emoji,
    "delete_emoji": delete_emoji,
    "list_stickers": list_stickers,
    "create_sticker": create_sticker,
    "edit_sticker": edit_sticker,
    "delete_sticker": delete_sticker,
}
