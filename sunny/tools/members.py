"""Member lookup and moderation tools."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List

import discord

from ..errors import TargetNotFoundError, ToolPermissionError, ToolValidationError
from ..models.agent import ToolContext
from .common import (
    audit_reason,
    boolean,
    describe_member,
    find_member,
    integer,
    parse_snowflake,
    require_guild,
    string,
    tool,
)

CATEGORY = "members"

# Discord caps communication timeouts at 28 days
MAX_TIMEOUT_MINUTES = 40320

MEMBER_TOOLS = [
    tool(
        "get_member_info",
        "Get details about a member: roles, join date, account age, timeout status.",
        {"user": string("Username, display name, mention, or user ID")},
        ["user"],
        category=CATEGORY,
    ),
    tool(
        "search_members",
        "Search members whose username or display name contains the query.",
        {
            "query": string("Text to search for"),
            "limit": integer("Maximum results (default: 25)", 1, 100),
        },
        ["query"],
        category=CATEGORY,
    ),
    tool(
        "timeout_member",
        "Temporarily prevent a member from chatting, for up to 28 days. Available to the "
        "server owner and to members with the Timeout Members permission.",
        {
            "user": string("Member to time out"),
            "minutes": integer("Length of the timeout in minutes (default: 10)", 1, MAX_TIMEOUT_MINUTES),
            "reason": string("Reason shown in the audit log"),
        },
        ["user"],
        category=CATEGORY,
    ),
    tool(
        "remove_timeout",
        "Lift a member's timeout early. Requires owner permissions.",
        {
            "user": string("Member to release"),
            "reason": string("Reason shown in the audit log"),
        },
        ["user"],
        category=CATEGORY,
    ),
    tool(
        "list_timeouts",
        "List members that are currently timed out and when their timeout ends.",
        category=CATEGORY,
    ),
    tool(
        "kick_member",
        "Kick a member from the server. They can rejoin with an invite. Requires owner permissions.",
        {
            "user": string("Member to kick"),
            "reason": string("Reason shown in the audit log"),
        },
        ["user"],
        category=CATEGORY,
    ),
    tool(
        "ban_member",
        "Ban a member from the server. Requires owner permissions.",
        {
            "user": string("Member to ban"),
            "reason": string("Reason shown in the audit log"),
            "delete_message_days": integer("Days of their recent messages to delete (0-7)", 0, 7),
        },
        ["user"],
        category=CATEGORY,
    ),
    tool(
        "unban_member",
        "Lift a ban. Requires owner permissions. Use get_bans to find the user ID.",
        {
            "user_id": string("ID of the banned user"),
            "reason": string("Reason shown in the audit log"),
        },
        ["user_id"],
        category=CATEGORY,
    ),
    tool(
        "get_bans",
        "List banned users and the recorded reason. Requires owner permissions.",
        {"limit": integer("Maximum bans to return (default: 50)", 1, 1000)},
        category=CATEGORY,
    ),
    tool(
        "set_nickname",
        "Change or clear a member's nickname. Requires owner permissions.",
        {
            "user": string("Member to rename"),
            "nickname": string("New nickname. Omit or leave empty to clear it."),
        },
        ["user"],
        category=CATEGORY,
    ),
    tool(
        "set_member_mute",
        "Server-mute or unmute a member in voice channels. Requires owner permissions.",
        {
            "user": string("Member to update"),
            "mute": boolean("true to mute, false to unmute"),
        },
        ["user", "mute"],
        category=CATEGORY,
    ),
    tool(
        "set_member_deaf",
        "Server-deafen or undeafen a member in voice channels. Requires owner permissions.",
        {
            "user": string("Member to update"),
            "deafen": boolean("true to deafen, false to undeafen"),
        },
        ["user", "deafen"],
        category=CATEGORY,
    ),
]


def _protect(ctx: ToolContext, member: discord.Member, action: str) -> None:
    guild = require_guild(ctx)
    if member.id == guild.owner_id:
        raise ToolValidationError(f"I can't {action} the server owner.")
    if ctx.bot_user is not None and member.id == ctx.bot_user.id:
        raise ToolValidationError(f"I can't {action} myself.")
    me = guild.me
    if me is not None and member.top_role >= me.top_role:
        raise ToolValidationError(
            f"{member.display_name}'s highest role is above or equal to mine, so I can't {action} them."
        )


async def get_member_info(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    member = await find_member(guild, args["user"])
    info = describe_member(member)
    info.update(
        {
            "created_at": member.created_at.isoformat(),
            "nickname": member.nick,
            "top_role": member.top_role.name,
            "is_owner": member.id == guild.owner_id,
            "timed_out_until": member.timed_out_until.isoformat() if member.timed_out_until else None,
            "pending": member.pending,
        }
    )
    return info


async def search_members(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    query = str(args["query"]).strip().lower()
    limit = int(args.get("limit") or 25)
    matches: List[discord.Member] = []
    for member in guild.members:
        names = [member.name, member.display_name, member.global_name or ""]
        if any(query in name.lower() for name in names):
            matches.append(member)
    return {
        "query": args["query"],
        "total": len(matches),
        "members": [describe_member(m) for m in matches[:limit]],
    }


async def timeout_member(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    perms = getattr(ctx.actor, "guild_permissions", None)
    if not ctx.is_privileged and not (perms is not None and perms.moderate_members):
        raise ToolPermissionError("timeout_member", ctx.actor_id)
    member = await find_member(guild, args["user"])
    _protect(ctx, member, "time out")
    minutes = int(args.get("minutes") or 10)
    if minutes > MAX_TIMEOUT_MINUTES:
        raise ToolValidationError("Timeouts can last at most 28 days.")
    await member.timeout(
        timedelta(minutes=minutes), reason=audit_reason(ctx, args.get("reason"), "Timed out by Sunny")
    )
    return {"message": f"Timed out {member.display_name} for {minutes} minute(s)"}


async def remove_timeout(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    member = await find_member(guild, args["user"])
    if not member.is_timed_out():
        return {"message": f"{member.display_name} is not timed out"}
    await member.timeout(None, reason=audit_reason(ctx, args.get("reason"), "Timeout removed"))
    return {"message": f"Removed timeout from {member.display_name}"}


async def list_timeouts(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    timed_out = [m for m in guild.members if m.is_timed_out()]
    return {
        "count": len(timed_out),
        "members": [
            {
                "id": str(m.id),
                "display_name": m.display_name,
                "until": m.timed_out_until.isoformat() if m.timed_out_until else None,
            }
            for m in timed_out
        ],
    }


async def kick_member(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    member = await find_member(guild, args["user"])
    _protect(ctx, member, "kick")
    await member.kick(reason=audit_reason(ctx, args.get("reason"), "Kicked by Sunny"))
    return {"message": f"Kicked {member.display_name}"}


async def ban_member(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    member = await find_member(guild, args["user"])
    _protect(ctx, member, "ban")
    days = int(args.get("delete_message_days") or 0)
    await guild.ban(
        member,
        reason=audit_reason(ctx, args.get("reason"), "Banned by Sunny"),
        delete_message_seconds=days * 86400,
    )
    return {"message": f"Banned {member.display_name}", "user_id": str(member.id)}


async def unban_member(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    user_id = parse_snowflake(args["user_id"])
    if user_id is None:
        raise ToolValidationError("unban_member needs a numeric user ID. Use get_bans to find it.")
    try:
        entry = await guild.fetch_ban(discord.Object(id=user_id))
    except discord.NotFound:
        raise TargetNotFoundError(f"User {user_id} is not banned.") from None
    await guild.unban(entry.user, reason=audit_reason(ctx, args.get("reason"), "Unbanned by Sunny"))
    return {"message": f"Unbanned {entry.user.name}"}


async def get_bans(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    limit = int(args.get("limit") or 50)
    bans = [entry async for entry in guild.bans(limit=limit)]
    return {
        "count": len(bans),
        "bans": [
            {"user_id": str(entry.user.id), "username": entry.user.name, "reason": entry.reason}
            for entry in bans
        ],
    }


async def set_nickname(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    member = await find_member(guild, args["user"])
    nickname = (args.get("nickname") or "").strip() or None
    if nickname is not None and len(nickname) > 32:
        raise ToolValidationError("Nicknames can be at most 32 characters.")
    await member.edit(nick=nickname, reason=audit_reason(ctx, None, "Nickname changed"))
    if nickname is None:
        return {"message": f"Cleared nickname for {member.name}"}
    return {"message": f"Set {member.name}'s nickname to {nickname}"}


async def _voice_member(args: Dict[str, Any], ctx: ToolContext) -> discord.Member:
    guild = require_guild(ctx)
    member = await find_member(guild, args["user"])
    if member.voice is None or member.voice.channel is None:
        raise ToolValidationError(f"{member.display_name} is not in a voice channel.")
    return member


async def set_member_mute(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    member = await _voice_member(args, ctx)
    mute = bool(args["mute"])
    await member.edit(mute=mute, reason=audit_reason(ctx, None, "Voice mute changed"))
    return {"message": f"{'Muted' if mute else 'Unmuted'} {member.display_name}"}


async def set_member_deaf(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    member = await _voice_member(args, ctx)
    deafen = bool(args["deafen"])
    await member.edit(deafen=deafen, reason=audit_reason(ctx, None, "Voice deafen changed"))
    return {"message": f"{'Deafened' if deafen else 'Undeafened'} {member.display_name}"}


MEMBER_HANDLERS = {
    "get_member_info": get_member_info,
    "search_members": search_members,
    "timeout_member": timeout_member,
    "remove_timeout": remove_timeout,
    "list_timeouts": list_timeouts,
    "kick_member": kick_member,
    "ban_member": ban_member,
    "unban_member": unban_member,
    "get_bans": get_bans,
    "set_nickname": set_nickname,
    "set_member_mute": set_member_mute,
    "set_member_deaf": set_member_deaf,
}
