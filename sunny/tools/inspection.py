"""Read-only tools for looking around the server."""

from __future__ import annotations

from typing import Any, Dict

import discord

from ..models.agent import ToolContext
from .common import (
    boolean,
    describe_channel,
    describe_member,
    describe_role,
    find_channel,
    find_role,
    integer,
    require_guild,
    string,
    tool,
)

CATEGORY = "inspection"

INSPECTION_TOOLS = [
    tool(
        "list_channels",
        "List all channels, categories, and threads in the server. Use this BEFORE creating, "
        "deleting, or modifying channels to see what currently exists.",
        {
            "channel_type": string(
                "Filter by channel type. Use 'all' to see everything.",
                ["all", "text", "voice", "category", "forum", "stage", "thread"],
            ),
            "include_ids": boolean("Include channel IDs in the response"),
        },
        category=CATEGORY,
    ),
    tool(
        "list_roles",
        "List all roles in the server with their colors, positions, and member counts. Use this "
        "to see what roles exist before creating or modifying them.",
        {
            "include_permissions": boolean("Include the permission list for each role"),
        },
        category=CATEGORY,
    ),
    tool(
        "list_members",
        "Get information about server members including their roles and join date.",
        {
            "role_name": string("Only show members with this role"),
            "limit": integer("Maximum number of members to return (default: 50)", 1, 200),
        },
        category=CATEGORY,
    ),
    tool(
        "get_channel_info",
        "Get detailed information about a specific channel including topic, slowmode, and permission overwrites.",
        {"channel_name": string("Name or ID of the channel to inspect")},
        ["channel_name"],
        category=CATEGORY,
    ),
    tool(
        "get_server_info",
        "Get server information including name, owner, creation date, member count, boost "
        "level, verification level, and features.",
        category=CATEGORY,
    ),
    tool(
        "get_current_permissions",
        "Get Sunny's own permissions in the server, including missing critical permissions.",
        category=CATEGORY,
    ),
    tool(
        "list_server_features",
        "List enabled server features (Community, Partnered, Verified, Discoverable, etc.).",
        category=CATEGORY,
    ),
]

CRITICAL_PERMISSIONS = (
    "manage_channels",
    "manage_roles",
    "manage_messages",
    "moderate_members",
    "kick_members",
    "ban_members",
    "manage_guild",
    "manage_threads",
    "manage_events",
    "manage_webhooks",
)

TYPE_FILTERS = {
    "text": discord.ChannelType.text,
    "voice": discord.ChannelType.voice,
    "category": discord.ChannelType.category,
    "forum": discord.ChannelType.forum,
    "stage": discord.ChannelType.stage_voice,
}


async def list_channels(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    wanted = (args.get("channel_type") or "all").lower()
    include_ids = bool(args.get("include_ids", True))

    if wanted == "thread":
        channels = list(guild.threads)
    elif wanted in TYPE_FILTERS:
        channels = [c for c in guild.channels if c.type == TYPE_FILTERS[wanted]]
    else:
        channels = sorted(guild.channels, key=lambda c: (c.position, c.id)) + list(guild.threads)
    return {
        "count": len(channels),
        "channels": [describe_channel(c, include_ids) for c in channels],
    }


async def list_roles(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    roles = []
    for role in sorted(guild.roles, key=lambda r: r.position, reverse=True):
        if role.is_default():
            continue
        info = describe_role(role)
        if args.get("include_permissions"):
            info["permissions"] = [name for name, value in role.permissions if value]
        roles.append(info)
    return {"count": len(roles), "roles": roles}


async def list_members(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    limit = int(args.get("limit") or 50)
    members = list(guild.members)
    if args.get("role_name"):
        role = find_role(guild, args["role_name"])
        members = list(role.members)
    return {
        "total": len(members),
        "members": [describe_member(m) for m in members[:limit]],
    }


async def get_channel_info(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_channel(guild, args["channel_name"])
    info = describe_channel(channel)
    info.update(
        {
            "topic": getattr(channel, "topic", None),
            "slowmode_seconds": getattr(channel, "slowmode_delay", None),
            "nsfw": getattr(channel, "nsfw", False),
            "position": getattr(channel, "position", None),
            "created_at": channel.created_at.isoformat() if channel.created_at else None,
        }
    )
    overwrites = getattr(channel, "overwrites", {}) or {}
    info["permission_overwrites"] = [
        {
            "target": getattr(target, "name", str(target)),
            "allow": [name for name, value in overwrite if value is True],
            "deny": [name for name, value in overwrite if value is False],
        }
        for target, overwrite in overwrites.items()
    ]
    return info


async def get_server_info(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    return {
        "name": guild.name,
        "id": str(guild.id),
        "owner_id": str(guild.owner_id),
        "created_at": guild.created_at.isoformat(),
        "member_count": guild.member_count,
        "channel_count": len(guild.channels),
        "role_count": len(guild.roles),
        "emoji_count": len(guild.emojis),
        "boost_level": guild.premium_tier,
        "boost_count": guild.premium_subscription_count,
        "verification_level": str(guild.verification_level),
        "features": list(guild.features),
        "description": guild.description,
    }


async def get_current_permissions(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    me = guild.me
    permissions = me.guild_permissions
    granted = [name for name, value in permissions if value]
    return {
        "administrator": permissions.administrator,
        "granted": granted,
        "missing_critical": [
            name for name in CRITICAL_PERMISSIONS if not getattr(permissions, name)
        ],
        "top_role": me.top_role.name,
    }


async def list_server_features(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    features = sorted(guild.features)
    return {
        "count": len(features),
        "features": [feature.replace("_", " ").title() for feature in features],
    }


INSPECTION_HANDLERS = {
    "list_channels": list_channels,
    "list_roles": list_roles,
    "list_members": list_members,
    "get_channel_info": get_channel_info,
    "get_server_info": get_server_info,
    "get_current_permissions": get_current_permissions,
    "list_server_features": list_server_features,
}
