"""Channel, category and permission-overwrite tools."""

from __future__ import annotations

from typing import Any, Dict

import discord

from ..errors import TargetNotFoundError, ToolValidationError
from ..models.agent import ToolContext
from .common import (
    audit_reason,
    boolean,
    find_category,
    find_channel,
    find_member,
    find_role,
    integer,
    require_guild,
    string,
    string_list,
    tool,
)

CATEGORY = "channels"

CHANNEL_TOOLS = [
    tool(
        "create_channel",
        "Create a new text, voice, or announcement channel. Requires owner permissions.",
        {
            "name": string("Name for the new channel"),
            "channel_type": string("Type of channel to create", ["text", "voice", "announcement"]),
            "category_name": string("Optional: category to place the channel in"),
            "topic": string("Optional: topic/description for a text channel"),
        },
        ["name", "channel_type"],
        category=CATEGORY,
    ),
    tool(
        "delete_channel",
        "Delete a channel from the server. Requires owner permissions. Use list_channels first "
        "to see what channels exist.",
        {"channel_name": string("Exact name or ID of the channel to delete")},
        ["channel_name"],
        category=CATEGORY,
    ),
    tool(
        "rename_channel",
        "Rename an existing channel. Requires owner permissions.",
        {
            "channel_name": string("Current name of the channel"),
            "new_name": string("New name for the channel"),
        },
        ["channel_name", "new_name"],
        category=CATEGORY,
    ),
    tool(
        "create_category",
        "Create a new category to organize channels. Requires owner permissions.",
        {"name": string("Name for the new category")},
        ["name"],
        category=CATEGORY,
    ),
    tool(
        "delete_category",
        "Delete a category. Channels inside it are kept and become uncategorized unless "
        "delete_channels is true. Requires owner permissions.",
        {
            "category_name": string("Name of the category to delete"),
            "delete_channels": boolean("Also delete every channel inside the category"),
        },
        ["category_name"],
        category=CATEGORY,
    ),
    tool(
        "move_channel",
        "Move a channel into a different category. Requires owner permissions.",
        {
            "channel_name": string("Channel to move"),
            "category_name": string("Destination category"),
        },
        ["channel_name", "category_name"],
        category=CATEGORY,
    ),
    tool(
        "set_channel_topic",
        "Set the topic/description of a text channel. Requires owner permissions.",
        {
            "channel_name": string("Channel to update"),
            "topic": string("New topic (empty string clears it)"),
        },
        ["channel_name", "topic"],
        category=CATEGORY,
    ),
    tool(
        "set_slowmode",
        "Set slowmode for a channel. Requires owner permissions.",
        {
            "channel_name": string("Channel to update"),
            "seconds": integer("Seconds between messages (0 disables, max 21600)", 0, 21600),
        },
        ["channel_name", "seconds"],
        category=CATEGORY,
    ),
    tool(
        "set_channel_nsfw",
        "Mark or unmark a channel as age-restricted. Requires owner permissions.",
        {
            "channel_name": string("Channel to update"),
            "nsfw": boolean("true to mark the channel NSFW"),
        },
        ["channel_name", "nsfw"],
        category=CATEGORY,
    ),
    tool(
        "set_channel_position",
        "Change a channel's position in the channel list. Requires owner permissions.",
        {
            "channel_name": string("Channel to move"),
            "position": integer("New position (0 is the top)", 0),
        },
        ["channel_name", "position"],
        category=CATEGORY,
    ),
    tool(
        "set_channel_permissions",
        "Allow or deny permissions for a role or member on a channel. Requires owner permissions.",
        {
            "channel_name": string("Channel to update"),
            "target": string("Role name or member to apply the overwrite to"),
            "allow": string_list("Permissions to allow, e.g. ['view_channel', 'send_messages']"),
            "deny": string_list("Permissions to deny"),
        },
        ["channel_name", "target"],
        category=CATEGORY,
    ),
    tool(
        "remove_channel_permission",
        "Remove a role or member's permission overwrite from a channel. Requires owner permissions.",
        {
            "channel_name": string("Channel to update"),
            "target": string("Role name or member whose overwrite should be removed"),
        },
        ["channel_name", "target"],
        category=CATEGORY,
    ),
    tool(
        "sync_channel_permissions",
        "Sync a channel's permissions with its category. Requires owner permissions.",
        {"channel_name": string("Channel to sync")},
        ["channel_name"],
        category=CATEGORY,
    ),
    tool(
        "create_forum_channel",
        "Create a forum channel. Requires owner permissions.",
        {
            "name": string("Name for the forum"),
            "category_name": string("Optional: category to place the forum in"),
            "topic": string("Optional: guidelines shown to posters"),
        },
        ["name"],
        category=CATEGORY,
    ),
    tool(
        "create_stage_channel",
        "Create a stage channel for events and talks. Requires owner permissions.",
        {
            "name": string("Name for the stage channel"),
            "category_name": string("Optional: category to place the stage in"),
        },
        ["name"],
        category=CATEGORY,
    ),
    tool(
        "set_bitrate",
        "Set the audio bitrate of a voice or stage channel. Requires owner permissions.",
        {
            "channel_name": string("Voice channel to update"),
            "bitrate": integer("Bitrate in kbps (8-384, limited by boost level)", 8, 384),
        },
        ["channel_name", "bitrate"],
        category=CATEGORY,
    ),
    tool(
        "set_user_limit",
        "Set the maximum number of users in a voice channel. Requires owner permissions.",
        {
            "channel_name": string("Voice channel to update"),
            "limit": integer("User limit (0 for unlimited, max 99)", 0, 99),
        },
        ["channel_name", "limit"],
        category=CATEGORY,
    ),
]


def _category_or_none(guild: discord.Guild, args: Dict[str, Any]):
    if args.get("category_name"):
        return find_category(guild, args["category_name"])
    return None


async def create_channel(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    category = _category_or_none(guild, args)
    reason = audit_reason(ctx, None, "Channel created by Sunny")
    kind = args["channel_type"]
    if kind == "voice":
        channel = await guild.create_voice_channel(args["name"], category=category, reason=reason)
    else:
        channel = await guild.create_text_channel(
            args["name"],
            category=category,
            topic=args.get("topic"),
            news=kind == "announcement",
            reason=reason,
        )
    return {"message": f"Created {kind} channel #{channel.name}", "channel_id": str(channel.id)}


async def delete_channel(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_channel(guild, args["channel_name"])
    name = channel.name
    await channel.delete(reason=audit_reason(ctx, None, "Channel deleted by Sunny"))
    return {"message": f"Deleted channel #{name}"}


async def rename_channel(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_channel(guild, args["channel_name"])
    old_name = channel.name
    await channel.edit(name=args["new_name"], reason=audit_reason(ctx, None, "Channel renamed"))
    return {"message": f"Renamed #{old_name} to #{args['new_name']}"}


async def create_category(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    category = await guild.create_category(
        args["name"], reason=audit_reason(ctx, None, "Category created by Sunny")
    )
    return {"message": f"Created category {category.name}", "category_id": str(category.id)}


async def delete_category(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    category = find_category(guild, args["category_name"])
    reason = audit_reason(ctx, None, "Category deleted by Sunny")
    removed = []
    if args.get("delete_channels"):
        for channel in list(category.channels):
            removed.append(channel.name)
            await channel.delete(reason=reason)
    await category.delete(reason=reason)
    return {"message": f"Deleted category {category.name}", "deleted_channels": removed}


async def move_channel(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_channel(guild, args["channel_name"])
    category = find_category(guild, args["category_name"])
    await channel.edit(category=category, reason=audit_reason(ctx, None, "Channel moved"))
    return {"message": f"Moved #{channel.name} into {category.name}"}


async def set_channel_topic(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_channel(guild, args["channel_name"])
    if not isinstance(channel, (discord.TextChannel, discord.ForumChannel)):
        raise ToolValidationError(f"#{channel.name} does not support topics.")
    await channel.edit(topic=args["topic"] or None, reason=audit_reason(ctx, None, "Topic updated"))
    return {"message": f"Updated topic for #{channel.name}"}


async def set_slowmode(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_channel(guild, args["channel_name"])
    seconds = int(args["seconds"])
    await channel.edit(slowmode_delay=seconds, reason=audit_reason(ctx, None, "Slowmode updated"))
    state = f"{seconds}s" if seconds else "off"
    return {"message": f"Slowmode for #{channel.name} is now {state}"}


async def set_channel_nsfw(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_channel(guild, args["channel_name"])
    await channel.edit(nsfw=bool(args["nsfw"]), reason=audit_reason(ctx, None, "NSFW flag updated"))
    return {"message": f"#{channel.name} nsfw={bool(args['nsfw'])}"}


async def set_channel_position(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_channel(guild, args["channel_name"])
    await channel.edit(position=int(args["position"]), reason=audit_reason(ctx, None, "Channel reordered"))
    return {"message": f"Moved #{channel.name} to position {args['position']}"}


async def _overwrite_target(guild: discord.Guild, target: str):
    try:
        return find_role(guild, target)
    except TargetNotFoundError:
        return await find_member(guild, target)


async def set_channel_permissions(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_channel(guild, args["channel_name"])
    target = await _overwrite_target(guild, args["target"])
    overwrite = channel.overwrites_for(target)
    updates: Dict[str, bool] = {}
    for name in args.get("allow") or []:
        updates[name.strip().lower()] = True
    for name in args.get("deny") or []:
        updates[name.strip().lower()] = False
    unknown = [name for name in updates if name not in discord.Permissions.VALID_FLAGS]
    if unknown:
        raise ToolValidationError(f"Unknown permission(s): {', '.join(unknown)}")
    overwrite.update(**updates)
    await channel.set_permissions(
        target, overwrite=overwrite, reason=audit_reason(ctx, None, "Permissions updated")
    )
    return {
        "message": f"Updated permissions for {target.name} in #{channel.name}",
        "allowed": [k for k, v in updates.items() if v],
        "denied": [k for k, v in updates.items() if not v],
    }


async def remove_channel_permission(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_channel(guild, args["channel_name"])
    target = await _overwrite_target(guild, args["target"])
    await channel.set_permissions(
        target, overwrite=None, reason=audit_reason(ctx, None, "Overwrite removed")
    )
    return {"message": f"Removed {target.name}'s overwrite from #{channel.name}"}


async def sync_channel_permissions(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_channel(guild, args["channel_name"])
    if channel.category is None:
        raise ToolValidationError(f"#{channel.name} is not in a category.")
    await channel.edit(sync_permissions=True, reason=audit_reason(ctx, None, "Permissions synced"))
    return {"message": f"Synced #{channel.name} with {channel.category.name}"}


async def create_forum_channel(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    category = _category_or_none(guild, args)
    forum = await guild.create_forum(
        args["name"],
        category=category,
        topic=args.get("topic"),
        reason=audit_reason(ctx, None, "Forum created by Sunny"),
    )
    return {"message": f"Created forum #{forum.name}", "channel_id": str(forum.id)}


async def create_stage_channel(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    category = _category_or_none(guild, args)
    stage = await guild.create_stage_channel(
        args["name"], category=category, reason=audit_reason(ctx, None, "Stage created by Sunny")
    )
    return {"message": f"Created stage channel {stage.name}", "channel_id": str(stage.id)}


def _voice_channel(guild: discord.Guild, name: str):
    channel = find_channel(guild, name)
    if not isinstance(channel, (discord.VoiceChannel, discord.StageChannel)):
        raise ToolValidationError(f"#{channel.name} is not a voice or stage channel.")
    return channel


async def set_bitrate(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = _voice_channel(guild, args["channel_name"])
    bitrate = min(int(args["bitrate"]) * 1000, int(guild.bitrate_limit))
    await channel.edit(bitrate=bitrate, reason=audit_reason(ctx, None, "Bitrate updated"))
    return {"message": f"Set bitrate of {channel.name} to {bitrate // 1000}kbps"}


async def set_user_limit(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = _voice_channel(guild, args["channel_name"])
    await channel.edit(user_limit=int(args["limit"]), reason=audit_reason(ctx, None, "User limit updated"))
    return {"message": f"Set user limit of {channel.name} to {args['limit'] or 'unlimited'}"}


CHANNEL_HANDLERS = {
    "create_channel": create_channel,
    "delete_channel": delete_channel,
    "rename_channel": rename_channel,
    "create_category": create_category,
    "delete_category": delete_category,
    "move_channel": move_channel,
    "set_channel_topic": set_channel_topic,
    "set_slowmode": set_slowmode,
    "set_channel_nsfw": set_channel_nsfw,
    "set_channel_position": set_channel_position,
    "set_channel_permissions": set_channel_permissions,
    "remove_channel_permission": remove_channel_permission,
    "sync_channel_permissions": sync_channel_permissions,
    "create_forum_channel": create_forum_channel,
    "create_stage_channel": create_stage_channel,
    "set_bitrate": set_bitrate,
    "set_user_limit": set_user_limit,
}
