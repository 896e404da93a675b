"""Thread and forum post tools."""

from __future__ import annotations

from typing import Any, Dict

import discord

from ..errors import ToolValidationError
from ..models.agent import ToolContext
from .common import (
    audit_reason,
    boolean,
    find_channel,
    find_message,
    find_text_channel,
    find_thread,
    integer,
    require_guild,
    string,
    tool,
)

CATEGORY = "threads"

ARCHIVE_DURATIONS = (60, 1440, 4320, 10080)

THREAD_TOOLS = [
    tool(
        "create_thread",
        "Start a thread in a text channel, optionally from an existing message.",
        {
            "channel_name": string("Channel to start the thread in"),
            "name": string("Thread title"),
            "message_id": string("Optional: message to start the thread from"),
            "auto_archive_minutes": integer("Archive after this many idle minutes: 60, 1440, 4320 or 10080"),
            "private": boolean("Create a private thread (text channels only)"),
        },
        ["channel_name", "name"],
        category=CATEGORY,
    ),
    tool(
        "archive_thread",
        "Archive or unarchive a thread. Requires owner permissions.",
        {
            "thread_name": string("Thread to update"),
            "archived": boolean("true to archive, false to reopen (default: true)"),
        },
        ["thread_name"],
        category=CATEGORY,
    ),
    tool(
        "lock_thread",
        "Lock or unlock a thread so only moderators can reply. Requires owner permissions.",
        {
            "thread_name": string("Thread to update"),
            "locked": boolean("true to lock, false to unlock (default: true)"),
        },
        ["thread_name"],
        category=CATEGORY,
    ),
    tool(
        "delete_thread",
        "Delete a thread and all of its messages. Requires owner permissions.",
        {"thread_name": string("Thread to delete")},
        ["thread_name"],
        category=CATEGORY,
    ),
    tool(
        "create_forum_post",
        "Create a new post in a forum channel.",
        {
            "channel_name": string("Forum channel to post in"),
            "title": string("Post title"),
            "content": string("Opening message of the post"),
        },
        ["channel_name", "title", "content"],
        category=CATEGORY,
    ),
    tool(
        "pin_thread",
        "Pin or unpin a post at the top of its forum channel. Requires owner permissions.",
        {
            "thread_name": string("Forum post to update"),
            "pinned": boolean("true to pin, false to unpin (default: true)"),
        },
        ["thread_name"],
        category=CATEGORY,
    ),
]


async def create_thread(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_text_channel(guild, args["channel_name"])
    if not isinstance(channel, discord.TextChannel):
        raise ToolValidationError(f"Threads can only be started in text channels, not '{channel.name}'.")
    minutes = int(args.get("auto_archive_minutes") or 1440)
    if minutes not in ARCHIVE_DURATIONS:
        raise ToolValidationError("auto_archive_minutes must be one of 60, 1440, 4320 or 10080.")
    name = str(args["name"])[:100]
    reason = audit_reason(ctx, None, "Thread created by Sunny")

    if args.get("message_id"):
        message = await find_message(channel, args["message_id"])
        thread = await message.create_thread(name=name, auto_archive_duration=minutes, reason=reason)
    else:
        kind = discord.ChannelType.private_thread if args.get("private") else discord.ChannelType.public_thread
        thread = await channel.create_thread(
            name=name, auto_archive_duration=minutes, type=kind, reason=reason
        )
    return {"message": f"Created thread {thread.name}", "thread_id": str(thread.id)}


async def archive_thread(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    thread = find_thread(require_guild(ctx), args["thread_name"])
    archived = bool(args.get("archived", True))
    await thread.edit(archived=archived, reason=audit_reason(ctx, None, "Thread archive state changed"))
    return {"message": f"{'Archived' if archived else 'Reopened'} thread {thread.name}"}


async def lock_thread(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    thread = find_thread(require_guild(ctx), args["thread_name"])
    locked = bool(args.get("locked", True))
    await thread.edit(locked=locked, reason=audit_reason(ctx, None, "Thread lock changed"))
    return {"message": f"{'Locked' if locked else 'Unlocked'} thread {thread.name}"}


async def delete_thread(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    thread = find_thread(require_guild(ctx), args["thread_name"])
    name = thread.name
    await thread.delete()
    return {"message": f"Deleted thread {name}"}


async def create_forum_post(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    forum = find_channel(guild, args["channel_name"])
    if not isinstance(forum, discord.ForumChannel):
        raise ToolValidationError(f"'{forum.name}' is not a forum channel.")
    created = await forum.create_thread(
        name=str(args["title"])[:100],
        content=str(args["content"])[:2000],
        reason=audit_reason(ctx, None, "Forum post created by Sunny"),
    )
    return {"message": f"Created post {created.thread.name}", "thread_id": str(created.thread.id)}


async def pin_thread(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    thread = find_thread(require_guild(ctx), args["thread_name"])
    if not isinstance(thread.parent, discord.ForumChannel):
        raise ToolValidationError("Only forum posts can be pinned.")
    pinned = bool(args.get("pinned", True))
    await thread.edit(pinned=pinned, reason=audit_reason(ctx, None, "Forum post pin changed"))
    return {"message": f"{'Pinned' if pinned else 'Unpinned'} {thread.name}"}


THREAD_HANDLERS = {
    "create_thread": create_thread,
    "archive_thread": archive_thread,
    "lock_thread": lock_thread,
    "delete_thread": delete_thread,
    "create_forum_post": create_forum_post,
    "pin_thread": pin_thread,
}
