"""Message, embed and reaction tools."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import discord

from ..errors import ToolValidationError
from ..models.agent import ToolContext
from .common import (
    audit_reason,
    find_message,
    find_text_channel,
    integer,
    parse_colour,
    require_guild,
    string,
    tool,
)

CATEGORY = "messages"

MAX_MESSAGE_LENGTH = 2000
# Bulk delete only works on messages younger than two weeks
BULK_DELETE_WINDOW = timedelta(days=14)

MESSAGE_TOOLS = [
    tool(
        "send_message",
        "Send a plain text message to a channel.",
        {
            "channel_name": string("Channel to post in"),
            "content": string("Message text (up to 2000 characters)"),
        },
        ["channel_name", "content"],
        category=CATEGORY,
    ),
    tool(
        "send_embed",
        "Send a rich embed with a title, description, and optional color and footer.",
        {
            "channel_name": string("Channel to post in"),
            "title": string("Embed title"),
            "description": string("Embed body text"),
            "color": string("Optional: hex color like #ff8800 or a name like 'gold'"),
            "footer": string("Optional: footer text"),
        },
        ["channel_name", "title", "description"],
        category=CATEGORY,
    ),
    tool(
        "edit_message",
        "Edit a message that Sunny sent earlier.",
        {
            "channel_name": string("Channel holding the message"),
            "message_id": string("ID of the message to edit"),
            "content": string("Replacement text"),
        },
        ["channel_name", "message_id", "content"],
        category=CATEGORY,
    ),
    tool(
        "delete_message",
        "Delete a message. Members may delete Sunny's messages and their own; anything else "
        "requires owner permissions.",
        {
            "channel_name": string("Channel holding the message"),
            "message_id": string("ID of the message to delete"),
        },
        ["channel_name", "message_id"],
        category=CATEGORY,
    ),
    tool(
        "get_channel_messages",
        "Read the most recent messages in a channel.",
        {
            "channel_name": string("Channel to read"),
            "limit": integer("Number of messages to fetch (default: 20)", 1, 100),
        },
        ["channel_name"],
        category=CATEGORY,
    ),
    tool(
        "pin_message",
        "Pin a message in its channel. Requires owner permissions.",
        {
            "channel_name": string("Channel holding the message"),
            "message_id": string("ID of the message to pin"),
        },
        ["channel_name", "message_id"],
        category=CATEGORY,
    ),
    tool(
        "unpin_message",
        "Unpin a pinned message. Requires owner permissions.",
        {
            "channel_name": string("Channel holding the message"),
            "message_id": string("ID of the message to unpin"),
        },
        ["channel_name", "message_id"],
        category=CATEGORY,
    ),
    tool(
        "purge_messages",
        "Bulk delete recent messages in a channel (only messages newer than 14 days). "
        "Requires owner permissions.",
        {
            "channel_name": string("Channel to clean up"),
            "count": integer("How many recent messages to delete", 1, 100),
            "user": string("Optional: only delete messages from this user ID or name"),
        },
        ["channel_name", "count"],
        category=CATEGORY,
    ),
    tool(
        "add_reaction",
        "React to a message with an emoji.",
        {
            "channel_name": string("Channel holding the message"),
            "message_id": string("ID of the message"),
            "emoji": string("Unicode emoji or custom emoji like <:name:id>"),
        },
        ["channel_name", "message_id", "emoji"],
        category=CATEGORY,
    ),
    tool(
        "remove_reaction",
        "Remove Sunny's own reaction from a message.",
        {
            "channel_name": string("Channel holding the message"),
            "message_id": string("ID of the message"),
            "emoji": string("Emoji to remove"),
        },
        ["channel_name", "message_id", "emoji"],
        category=CATEGORY,
    ),
    tool(
        "remove_all_reactions",
        "Clear every reaction from a message. Requires owner permissions.",
        {
            "channel_name": string("Channel holding the message"),
            "message_id": string("ID of the message"),
        },
        ["channel_name", "message_id"],
        category=CATEGORY,
    ),
]


def _check_length(content: str) -> str:
    text = str(content)
    if not text.strip():
        raise ToolValidationError("Message content cannot be empty.")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ToolValidationError(f"Messages can be at most {MAX_MESSAGE_LENGTH} characters.")
    return text


async def _locate(args: Dict[str, Any], ctx: ToolContext) -> discord.Message:
    guild = require_guild(ctx)
    channel = find_text_channel(guild, args["channel_name"])
    return await find_message(channel, args["message_id"])


def _summarise(message: discord.Message) -> Dict[str, Any]:
    return {
        "id": str(message.id),
        "author": message.author.display_name,
        "author_id": str(message.author.id),
        "content": message.content[:500],
        "created_at": message.created_at.isoformat(),
        "pinned": message.pinned,
        "attachments": len(message.attachments),
        "embeds": len(message.embeds),
    }


async def send_message(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_text_channel(guild, args["channel_name"])
    content = _check_length(args["content"])
    sent = await channel.send(content, allowed_mentions=discord.AllowedMentions(everyone=False, roles=False))
    return {"message": f"Sent message in #{channel.name}", "message_id": str(sent.id)}


async def send_embed(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_text_channel(guild, args["channel_name"])
    colour = parse_colour(args["color"]) if args.get("color") else discord.Colour.orange()
    embed = discord.Embed(title=args["title"][:256], description=args["description"][:4096], colour=colour)
    if args.get("footer"):
        embed.set_footer(text=str(args["footer"])[:2048])
    sent = await channel.send(embed=embed)
    return {"message": f"Sent embed in #{channel.name}", "message_id": str(sent.id)}


async def edit_message(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    message = await _locate(args, ctx)
    if ctx.bot_user is None or message.author.id != ctx.bot_user.id:
        raise ToolValidationError("I can only edit my own messages.")
    await message.edit(content=_check_length(args["content"]))
    return {"message": "Message edited", "message_id": str(message.id)}


async def delete_message(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    message = await _locate(args, ctx)
    own = ctx.bot_user is not None and message.author.id == ctx.bot_user.id
    if not (own or message.author.id == ctx.actor_id or ctx.is_privileged):
        raise ToolValidationError("Only the server owner can delete other people's messages.")
    await message.delete()
    return {"message": "Message deleted"}


async def get_channel_messages(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_text_channel(guild, args["channel_name"])
    limit = int(args.get("limit") or 20)
    messages = [message async for message in channel.history(limit=limit)]
    messages.reverse()
    return {
        "channel": channel.name,
        "count": len(messages),
        "messages": [_summarise(m) for m in messages],
    }


async def pin_message(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    message = await _locate(args, ctx)
    if message.pinned:
        return {"message": "Message is already pinned"}
    await message.pin(reason=audit_reason(ctx, None, "Pinned by Sunny"))
    return {"message": "Message pinned"}


async def unpin_message(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    message = await _locate(args, ctx)
    if not message.pinned:
        return {"message": "Message is not pinned"}
    await message.unpin(reason=audit_reason(ctx, None, "Unpinned by Sunny"))
    return {"message": "Message unpinned"}


async def purge_messages(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_text_channel(guild, args["channel_name"])
    count = int(args["count"])
    after = datetime.now(timezone.utc) - BULK_DELETE_WINDOW
    target = str(args.get("user") or "").strip().lower()

    def matches(message: discord.Message) -> bool:
        if message.pinned:
            return False
        if not target:
            return True
        author = message.author
        return target in {str(author.id), author.name.lower(), author.display_name.lower()}

    deleted = await channel.purge(
        limit=count,
        check=matches,
        after=after,
        reason=audit_reason(ctx, None, "Purged by Sunny"),
    )
    return {"message": f"Deleted {len(deleted)} message(s) from #{channel.name}", "deleted": len(deleted)}


async def add_reaction(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    message = await _locate(args, ctx)
    await message.add_reaction(str(args["emoji"]).strip())
    return {"message": f"Reacted with {args['emoji']}"}


async def remove_reaction(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    message = await _locate(args, ctx)
    member = ctx.bot_user or message.guild.me
    await message.remove_reaction(str(args["emoji"]).strip(), member)
    return {"message": f"Removed reaction {args['emoji']}"}


async def remove_all_reactions(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    message = await _locate(args, ctx)
    await message.clear_reactions()
    return {"message": "Cleared all reactions"}


MESSAGE_HANDLERS = {
    "send_message": send_message,
    "send_embed": send_embed,
    "edit_message": edit_message,
    "delete_message": delete_message,
    "get_channel_messages": get_channel_messages,
    "pin_message": pin_message,
    "unpin_message": unpin_message,
    "purge_messages": purge_messages,
    "add_reaction": add_reaction,
    "remove_reaction": remove_reaction,
    "remove_all_reactions": remove_all_reactions,
}
