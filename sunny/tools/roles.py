"""Role management tools."""

from __future__ import annotations

from typing import Any, Dict

import discord

from ..errors import ToolPermissionError, ToolValidationError
from ..models.agent import ToolContext
from ..utils.permissions import PermissionPolicy
from .common import (
    audit_reason,
    boolean,
    describe_member,
    describe_role,
    find_member,
    find_role,
    integer,
    parse_colour,
    parse_permissions,
    require_guild,
    string,
    string_list,
    tool,
)

CATEGORY = "roles"

ROLE_TOOLS = [
    tool(
        "create_role",
        "Create a new role. Requires owner permissions.",
        {
            "name": string("Name for the new role"),
            "color": string("Optional: hex color like #ff8800 or a name like 'blue'"),
            "hoist": boolean("Display members separately in the member list"),
            "mentionable": boolean("Allow anyone to @mention this role"),
        },
        ["name"],
        category=CATEGORY,
    ),
    tool(
        "delete_role",
        "Delete a role. Requires owner permissions.",
        {"role_name": string("Name of the role to delete")},
        ["role_name"],
        category=CATEGORY,
    ),
    tool(
        "rename_role",
        "Rename a role. Requires owner permissions.",
        {
            "role_name": string("Current role name"),
            "new_name": string("New role name"),
        },
        ["role_name", "new_name"],
        category=CATEGORY,
    ),
    tool(
        "set_role_color",
        "Change a role's color. Requires owner permissions.",
        {
            "role_name": string("Role to recolor"),
            "color": string("Hex color like #ff8800 or a name like 'orange'"),
        },
        ["role_name", "color"],
        category=CATEGORY,
    ),
    tool(
        "assign_role",
        "Give a role to a member. Members may assign self-assignable roles to themselves; "
        "assigning roles to others requires owner permissions.",
        {
            "role_name": string("Role to give"),
            "user": string("Username, display name, or user ID. Omit to target yourself."),
        },
        ["role_name"],
        category=CATEGORY,
    ),
    tool(
        "remove_role",
        "Take a role away from a member. Members may drop self-assignable roles from themselves; "
        "removing roles from others requires owner permissions.",
        {
            "role_name": string("Role to remove"),
            "user": string("Username, display name, or user ID. Omit to target yourself."),
        },
        ["role_name"],
        category=CATEGORY,
    ),
    tool(
        "get_role_info",
        "Get details about a role: color, position, permissions, and member count.",
        {"role_name": string("Role to inspect")},
        ["role_name"],
        category=CATEGORY,
    ),
    tool(
        "get_role_members",
        "List the members who have a role.",
        {
            "role_name": string("Role to look up"),
            "limit": integer("Maximum members to return (default: 50)", 1, 200),
        },
        ["role_name"],
        category=CATEGORY,
    ),
    tool(
        "set_role_permissions",
        "Replace a role's permissions with exactly the given list. Requires owner permissions.",
        {
            "role_name": string("Role to update"),
            "permissions": string_list("Permission names, e.g. ['send_messages', 'manage_messages']"),
        },
        ["role_name", "permissions"],
        category=CATEGORY,
    ),
    tool(
        "hoist_role",
        "Show or stop showing a role's members separately in the member list. Requires owner permissions.",
        {
            "role_name": string("Role to update"),
            "hoist": boolean("true to display separately"),
        },
        ["role_name", "hoist"],
        category=CATEGORY,
    ),
    tool(
        "mentionable_role",
        "Allow or prevent anyone from @mentioning a role. Requires owner permissions.",
        {
            "role_name": string("Role to update"),
            "mentionable": boolean("true to allow mentions"),
        },
        ["role_name", "mentionable"],
        category=CATEGORY,
    ),
    tool(
        "set_role_position",
        "Move a role up or down the hierarchy. Requires owner permissions.",
        {
            "role_name": string("Role to move"),
            "position": integer("New position (1 is just above @everyone)", 1),
        },
        ["role_name", "position"],
        category=CATEGORY,
    ),
]


async def create_role(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    colour = parse_colour(args["color"]) if args.get("color") else discord.Colour.default()
    role = await guild.create_role(
        name=args["name"],
        colour=colour,
        hoist=bool(args.get("hoist", False)),
        mentionable=bool(args.get("mentionable", False)),
        reason=audit_reason(ctx, None, "Role created by Sunny"),
    )
    return {"message": f"Created role {role.name}", "role_id": str(role.id)}


async def delete_role(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    role = find_role(guild, args["role_name"])
    if role.is_default() or role.managed:
        raise ToolValidationError(f"{role.name} cannot be deleted.")
    await role.delete(reason=audit_reason(ctx, None, "Role deleted by Sunny"))
    return {"message": f"Deleted role {role.name}"}


async def rename_role(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    role = find_role(guild, args["role_name"])
    old = role.name
    await role.edit(name=args["new_name"], reason=audit_reason(ctx, None, "Role renamed"))
    return {"message": f"Renamed role {old} to {args['new_name']}"}


async def set_role_color(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    role = find_role(guild, args["role_name"])
    colour = parse_colour(args["color"])
    await role.edit(colour=colour, reason=audit_reason(ctx, None, "Role color changed"))
    return {"message": f"Set {role.name} color to {colour}"}


async def _role_target(args: Dict[str, Any], ctx: ToolContext, tool_name: str) -> discord.Member:
    guild = require_guild(ctx)
    if not args.get("user"):
        return await find_member(guild, ctx.actor_id)
    member = await find_member(guild, args["user"])
    if member.id != ctx.actor_id and not ctx.is_privileged:
        raise ToolPermissionError(tool_name, ctx.actor_id)
    return member


def _check_self_service(role: discord.Role, ctx: ToolContext, tool_name: str) -> None:
    if ctx.is_privileged:
        return
    policy = ctx.policy or PermissionPolicy()
    if not policy.can_self_assign(role):
        raise ToolPermissionError(
            tool_name,
            ctx.actor_id,
            f"{role.name} is not a self-assignable role. Only the server owner can manage it.",
        )


async def assign_role(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    role = find_role(guild, args["role_name"])
    member = await _role_target(args, ctx, "assign_role")
    _check_self_service(role, ctx, "assign_role")
    if role in member.roles:
        return {"message": f"{member.display_name} already has {role.name}"}
    await member.add_roles(role, reason=audit_reason(ctx, None, "Role assigned by Sunny"))
    return {"message": f"Gave {role.name} to {member.display_name}"}


async def remove_role(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    role = find_role(guild, args["role_name"])
    member = await _role_target(args, ctx, "remove_role")
    _check_self_service(role, ctx, "remove_role")
    if role not in member.roles:
        return {"message": f"{member.display_name} does not have {role.name}"}
    await member.remove_roles(role, reason=audit_reason(ctx, None, "Role removed by Sunny"))
    return {"message": f"Removed {role.name} from {member.display_name}"}


async def get_role_info(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    role = find_role(guild, args["role_name"])
    info = describe_role(role)
    info["permissions"] = [name for name, value in role.permissions if value]
    info["managed"] = role.managed
    info["created_at"] = role.created_at.isoformat()
    return info


async def get_role_members(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    role = find_role(guild, args["role_name"])
    limit = int(args.get("limit") or 50)
    return {
        "role": role.name,
        "total": len(role.members),
        "members": [describe_member(m) for m in role.members[:limit]],
    }


async def set_role_permissions(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    role = find_role(guild, args["role_name"])
    permissions = parse_permissions(args["permissions"])
    await role.edit(permissions=permissions, reason=audit_reason(ctx, None, "Role permissions set"))
    return {
        "message": f"Updated permissions for {role.name}",
        "permissions": [name for name, value in permissions if value],
    }


async def hoist_role(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    role = find_role(guild, args["role_name"])
    await role.edit(hoist=bool(args["hoist"]), reason=audit_reason(ctx, None, "Role hoist changed"))
    return {"message": f"{role.name} hoist={bool(args['hoist'])}"}


async def mentionable_role(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    role = find_role(guild, args["role_name"])
    await role.edit(
        mentionable=bool(args["mentionable"]), reason=audit_reason(ctx, None, "Role mentionable changed")
    )
    return {"message": f"{role.name} mentionable={bool(args['mentionable'])}"}


async def set_role_position(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    role = find_role(guild, args["role_name"])
    position = int(args["position"])
    if position >= guild.me.top_role.position:
        raise ToolValidationError("I can only move roles below my own highest role.")
    await role.edit(position=position, reason=audit_reason(ctx, None, "Role moved"))
    return {"message": f"Moved {role.name} to position {position}"}


ROLE_HANDLERS = {
    "create_role": create_role,
    "delete_role": delete_role,
    "rename_role": rename_role,
    "set_role_color": set_role_color,
    "assign_role": assign_role,
    "remove_role": remove_role,
    "get_role_info": get_role_info,
    "get_role_members": get_role_members,
    "set_role_permissions": set_role_permissions,
    "hoist_role": hoist_role,
    "mentionable_role": mentionable_role,
    "set_role_position": set_role_position,
}
