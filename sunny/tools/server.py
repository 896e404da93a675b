"""Server settings, invites, webhooks, audit log and AutoMod tools."""

from __future__ import annotations

from typing import Any, Dict, List

import discord

from ..errors import TargetNotFoundError, ToolValidationError
from ..models.agent import ToolContext
from .common import (
    audit_reason,
    boolean,
    fetch_image,
    find_text_channel,
    integer,
    parse_snowflake,
    require_guild,
    string,
    string_list,
    tool,
)

CATEGORY = "server"

VERIFICATION_LEVELS = ["none", "low", "medium", "high", "highest"]

SERVER_TOOLS = [
    tool(
        "set_server_name",
        "Rename the server. Requires owner permissions.",
        {"name": string("New server name")},
        ["name"],
        category=CATEGORY,
    ),
    tool(
        "set_server_icon",
        "Change the server icon from an image URL. Requires owner permissions.",
        {"image_url": string("Direct URL to a PNG, JPG or GIF")},
        ["image_url"],
        category=CATEGORY,
    ),
    tool(
        "set_verification_level",
        "Set how verified members must be before they can chat. Requires owner permissions.",
        {"level": string("Verification level", VERIFICATION_LEVELS)},
        ["level"],
        category=CATEGORY,
    ),
    tool(
        "create_invite",
        "Create an invite link to a channel.",
        {
            "channel_name": string("Channel the invite points to"),
            "max_age_hours": integer("Hours until the invite expires, 0 for never (default: 24)", 0, 168),
            "max_uses": integer("Maximum uses, 0 for unlimited (default: 0)", 0, 100),
            "temporary": boolean("Grant temporary membership"),
        },
        ["channel_name"],
        category=CATEGORY,
    ),
    tool(
        "list_invites",
        "List active invite links with their creator and use count.",
        category=CATEGORY,
    ),
    tool(
        "delete_invite",
        "Revoke an invite by code. Requires owner permissions.",
        {"code": string("Invite code, e.g. abc123")},
        ["code"],
        category=CATEGORY,
    ),
    tool(
        "list_webhooks",
        "List the server's webhooks.",
        category=CATEGORY,
    ),
    tool(
        "create_webhook",
        "Create a webhook in a channel. Requires owner permissions.",
        {
            "channel_name": string("Channel for the webhook"),
            "name": string("Webhook name"),
        },
        ["channel_name", "name"],
        category=CATEGORY,
    ),
    tool(
        "delete_webhook",
        "Delete a webhook by name or ID. Requires owner permissions.",
        {"webhook": string("Webhook name or ID")},
        ["webhook"],
        category=CATEGORY,
    ),
    tool(
        "get_audit_logs",
        "Read recent audit log entries. Requires owner permissions.",
        {
            "limit": integer("Number of entries (default: 20)", 1, 100),
            "action": string("Optional: filter by action, e.g. 'ban', 'kick', 'channel_delete'"),
            "user": string("Optional: only entries made by this user ID"),
        },
        category=CATEGORY,
    ),
    tool(
        "list_automod_rules",
        "List AutoMod rules configured in the server.",
        category=CATEGORY,
    ),
    tool(
        "create_automod_rule",
        "Create an AutoMod keyword rule that blocks messages containing the given words. "
        "Requires owner permissions.",
        {
            "name": string("Rule name"),
            "keywords": string_list("Words or phrases to block (wildcards like *word* allowed)"),
            "alert_channel_name": string("Optional: channel that receives alerts"),
            "block_message": string("Optional: text shown to the member when blocked"),
        },
        ["name", "keywords"],
        category=CATEGORY,
    ),
    tool(
        "delete_automod_rule",
        "Delete an AutoMod rule by name or ID. Requires owner permissions.",
        {"rule": string("Rule name or ID")},
        ["rule"],
        category=CATEGORY,
    ),
]


async def set_server_name(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    name = str(args["name"]).strip()
    if not 2 <= len(name) <= 100:
        raise ToolValidationError("Server names must be 2-100 characters.")
    old = guild.name
    await guild.edit(name=name, reason=audit_reason(ctx, None, "Server renamed by Sunny"))
    return {"message": f"Renamed server from {old} to {name}"}


async def set_server_icon(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    image = await fetch_image(args["image_url"])
    await guild.edit(icon=image, reason=audit_reason(ctx, None, "Server icon changed by Sunny"))
    return {"message": "Updated the server icon"}


async def set_verification_level(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    level = str(args["level"]).lower()
    if level not in VERIFICATION_LEVELS:
        raise ToolValidationError(f"level must be one of {', '.join(VERIFICATION_LEVELS)}.")
    await guild.edit(
        verification_level=getattr(discord.VerificationLevel, level),
        reason=audit_reason(ctx, None, "Verification level changed by Sunny"),
    )
    return {"message": f"Verification level set to {level}"}


async def create_invite(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_text_channel(guild, args["channel_name"])
    hours = args.get("max_age_hours")
    invite = await channel.create_invite(
        max_age=int(24 if hours is None else hours) * 3600,
        max_uses=int(args.get("max_uses") or 0),
        temporary=bool(args.get("temporary", False)),
        reason=audit_reason(ctx, None, "Invite created by Sunny"),
    )
    return {"message": f"Created invite for #{channel.name}", "url": invite.url, "code": invite.code}


async def list_invites(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    invites = await guild.invites()
    return {
        "count": len(invites),
        "invites": [
            {
                "code": invite.code,
                "channel": invite.channel.name if invite.channel else None,
                "inviter": invite.inviter.name if invite.inviter else None,
                "uses": invite.uses,
                "max_uses": invite.max_uses,
                "expires_at": invite.expires_at.isoformat() if invite.expires_at else None,
            }
            for invite in invites
        ],
    }


async def delete_invite(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    code = str(args["code"]).strip().rsplit("/", 1)[-1]
    for invite in await guild.invites():
        if invite.code == code:
            await invite.delete(reason=audit_reason(ctx, None, "Invite revoked by Sunny"))
            return {"message": f"Revoked invite {code}"}
    raise TargetNotFoundError(f"Invite '{code}' not found.")


async def list_webhooks(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    webhooks = await guild.webhooks()
    return {
        "count": len(webhooks),
        "webhooks": [
            {
                "id": str(hook.id),
                "name": hook.name,
                "channel": hook.channel.name if hook.channel else None,
                "created_by": hook.user.name if hook.user else None,
            }
            for hook in webhooks
        ],
    }


async def create_webhook(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    channel = find_text_channel(guild, args["channel_name"])
    if not isinstance(channel, discord.TextChannel):
        raise ToolValidationError("Webhooks can only be created in text channels.")
    hook = await channel.create_webhook(
        name=str(args["name"])[:80], reason=audit_reason(ctx, None, "Webhook created by Sunny")
    )
    # The URL carries the token; only its id goes back to the model.
    return {"message": f"Created webhook {hook.name} in #{channel.name}", "webhook_id": str(hook.id)}


async def delete_webhook(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    wanted = str(args["webhook"]).strip()
    snowflake = parse_snowflake(wanted)
    for hook in await guild.webhooks():
        if hook.id == snowflake or hook.name.lower() == wanted.lower():
            await hook.delete(reason=audit_reason(ctx, None, "Webhook deleted by Sunny"))
            return {"message": f"Deleted webhook {hook.name}"}
    raise TargetNotFoundError(f"Webhook '{wanted}' not found.")


async def get_audit_logs(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    options: Dict[str, Any] = {"limit": int(args.get("limit") or 20)}
    if args.get("action"):
        action = getattr(discord.AuditLogAction, str(args["action"]).strip().lower(), None)
        if not isinstance(action, discord.AuditLogAction):
            raise ToolValidationError(f"Unknown audit log action '{args['action']}'.")
        options["action"] = action
    if args.get("user"):
        user_id = parse_snowflake(args["user"])
        if user_id is None:
            raise ToolValidationError("user must be a user ID or mention.")
        options["user"] = discord.Object(id=user_id)

    entries: List[Dict[str, Any]] = []
    async for entry in guild.audit_logs(**options):
        entries.append(
            {
                "action": entry.action.name,
                "user": entry.user.name if entry.user else None,
                "target": str(entry.target) if entry.target is not None else None,
                "reason": entry.reason,
                "created_at": entry.created_at.isoformat(),
            }
        )
    return {"count": len(entries), "entries": entries}


async def list_automod_rules(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    rules = await guild.fetch_automod_rules()
    return {
        "count": len(rules),
        "rules": [
            {
                "id": str(rule.id),
                "name": rule.name,
                "enabled": rule.enabled,
                "trigger": rule.trigger.type.name,
                "keywords": list(rule.trigger.keyword_filter or []),
            }
            for rule in rules
        ],
    }


async def create_automod_rule(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    keywords = [str(k).strip() for k in args["keywords"] if str(k).strip()]
    if not keywords:
        raise ToolValidationError("Give at least one keyword to block.")
    actions = [discord.AutoModRuleAction(custom_message=args.get("block_message") or None)]
    if args.get("alert_channel_name"):
        alert = find_text_channel(guild, args["alert_channel_name"])
        actions.append(discord.AutoModRuleAction(channel_id=alert.id))
    rule = await guild.create_automod_rule(
        name=str(args["name"])[:100],
        event_type=discord.AutoModRuleEventType.message_send,
        trigger=discord.AutoModTrigger(
            type=discord.AutoModRuleTriggerType.keyword, keyword_filter=keywords
        ),
        actions=actions,
        enabled=True,
        reason=audit_reason(ctx, None, "AutoMod rule created by Sunny"),
    )
    return {"message": f"Created AutoMod rule {rule.name}", "rule_id": str(rule.id)}


async def delete_automod_rule(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    wanted = str(args["rule"]).strip()
    snowflake = parse_snowflake(wanted)
    for rule in await guild.fetch_automod_rules():
        if rule.id == snowflake or rule.name.lower() == wanted.lower():
            await rule.delete(reason=audit_reason(ctx, None, "AutoMod rule deleted by Sunny"))
            return {"message": f"Deleted AutoMod rule {rule.name}"}
    raise TargetNotFoundError(f"AutoMod rule '{wanted}' not found.")


SERVER_HANDLERS = {
    "set_server_name": set_server_name,
    "set_server_icon": set_server_icon,
    "set_verification_level": set_verification_level,
    "create_invite": create_invite,
    "list_invites": list_invites,
    "delete_invite": delete_invite,
    "list_webhooks": list_webhooks,
    "create_webhook": create_webhook,
    "delete_webhook": delete_webhook,
    "get_audit_logs": get_audit_logs,
    "list_automod_rules": list_automod_rules,
    "create_automod_rule": create_automod_rule,
    "delete_automod_rule": delete_automod_rule,
}
