"""Scheduled event tools."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import discord

from ..errors import TargetNotFoundError, ToolValidationError
from ..models.agent import ToolContext
from .common import audit_reason, find_channel, parse_snowflake, require_guild, string, tool

CATEGORY = "events"

EVENT_TOOLS = [
    tool(
        "list_events",
        "List scheduled events in the server with their status and start time.",
        category=CATEGORY,
    ),
    tool(
        "create_event",
        "Schedule a server event. Give channel_name for a voice or stage event, or location "
        "for an external one.",
        {
            "name": string("Event name"),
            "start_time": string("Start time in ISO 8601, e.g. 2025-06-01T18:00:00Z"),
            "end_time": string("End time in ISO 8601. Required for external events."),
            "description": string("Optional: what the event is about"),
            "channel_name": string("Voice or stage channel that hosts the event"),
            "location": string("Where an external event happens"),
        },
        ["name", "start_time"],
        category=CATEGORY,
    ),
    tool(
        "edit_event",
        "Change an event's name, description, or times. Requires owner permissions.",
        {
            "event": string("Event name or ID"),
            "name": string("New name"),
            "description": string("New description"),
            "start_time": string("New start time in ISO 8601"),
            "end_time": string("New end time in ISO 8601"),
        },
        ["event"],
        category=CATEGORY,
    ),
    tool(
        "delete_event",
        "Delete a scheduled event. Requires owner permissions.",
        {"event": string("Event name or ID")},
        ["event"],
        category=CATEGORY,
    ),
    tool(
        "start_event",
        "Start a scheduled event now. Requires owner permissions.",
        {"event": string("Event name or ID")},
        ["event"],
        category=CATEGORY,
    ),
    tool(
        "end_event",
        "End an active event. Requires owner permissions.",
        {"event": string("Event name or ID")},
        ["event"],
        category=CATEGORY,
    ),
]


def parse_time(value: Optional[str], field: str) -> Optional[datetime]:
    if not value:
        return None
    text = str(value).strip().replace("Z", "+00:00")
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        raise ToolValidationError(f"{field} must be an ISO 8601 time like 2025-06-01T18:00:00Z.") from None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def find_event(guild: discord.Guild, name_or_id: Any) -> discord.ScheduledEvent:
    snowflake = parse_snowflake(name_or_id)
    for event in guild.scheduled_events:
        if snowflake is not None and event.id == snowflake:
            return event
        if event.name.lower() == str(name_or_id).strip().lower():
            return event
    raise TargetNotFoundError(f"Event '{name_or_id}' not found. Use list_events to see what exists.")


def describe_event(event: discord.ScheduledEvent) -> Dict[str, Any]:
    return {
        "id": str(event.id),
        "name": event.name,
        "status": event.status.name,
        "start_time": event.start_time.isoformat() if event.start_time else None,
        "end_time": event.end_time.isoformat() if event.end_time else None,
        "location": event.location,
        "channel": event.channel.name if event.channel else None,
        "interested": event.user_count,
        "description": event.description,
    }


async def list_events(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    events = sorted(guild.scheduled_events, key=lambda e: e.start_time)
    return {"count": len(events), "events": [describe_event(e) for e in events]}


async def create_event(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    guild = require_guild(ctx)
    start = parse_time(args["start_time"], "start_time")
    end = parse_time(args.get("end_time"), "end_time")
    if start <= datetime.now(timezone.utc):
        raise ToolValidationError("start_time must be in the future.")
    if end is not None and end <= start:
        raise ToolValidationError("end_time must be after start_time.")

    options: Dict[str, Any] = {
        "name": str(args["name"])[:100],
        "start_time": start,
        "description": str(args.get("description") or "")[:1000],
        "privacy_level": discord.PrivacyLevel.guild_only,
        "reason": audit_reason(ctx, None, "Event created by Sunny"),
    }
    if args.get("channel_name"):
        channel = find_channel(guild, args["channel_name"])
        if isinstance(channel, discord.StageChannel):
            options["entity_type"] = discord.EntityType.stage_instance
        elif isinstance(channel, discord.VoiceChannel):
            options["entity_type"] = discord.EntityType.voice
        else:
            raise ToolValidationError("Events can only be hosted in voice or stage channels.")
        options["channel"] = channel
        if end is not None:
            options["end_time"] = end
    elif args.get("location"):
        options["entity_type"] = discord.EntityType.external
        options["location"] = str(args["location"])[:100]
        options["end_time"] = end or start + timedelta(hours=1)
    else:
        raise ToolValidationError("Give either channel_name or location for the event.")

    event = await guild.create_scheduled_event(**options)
    return {"message": f"Scheduled {event.name}", "event": describe_event(event)}


async def edit_event(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    event = find_event(require_guild(ctx), args["event"])
    changes: Dict[str, Any] = {}
    if args.get("name"):
        changes["name"] = str(args["name"])[:100]
    if args.get("description") is not None:
        changes["description"] = str(args["description"])[:1000]
    if args.get("start_time"):
        changes["start_time"] = parse_time(args["start_time"], "start_time")
    if args.get("end_time"):
        changes["end_time"] = parse_time(args["end_time"], "end_time")
    if not changes:
        raise ToolValidationError("Nothing to change. Give a name, description, start_time, or end_time.")
    updated = await event.edit(reason=audit_reason(ctx, None, "Event edited by Sunny"), **changes)
    return {"message": f"Updated {event.name}", "event": describe_event(updated or event)}


async def delete_event(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    event = find_event(require_guild(ctx), args["event"])
    await event.delete(reason=audit_reason(ctx, None, "Event deleted by Sunny"))
    return {"message": f"Deleted event {event.name}"}


async def start_event(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    event = find_event(require_guild(ctx), args["event"])
    if event.status != discord.EventStatus.scheduled:
        raise ToolValidationError(f"{event.name} is {event.status.name}, only scheduled events can start.")
    await event.start(reason=audit_reason(ctx, None, "Event started by Sunny"))
    return {"message": f"Started {event.name}"}


async def end_event(args: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    event = find_event(require_guild(ctx), args["event"])
    if event.status != discord.EventStatus.active:
        raise ToolValidationError(f"{event.name} is not running.")
    await event.end(reason=audit_reason(ctx, None, "Event ended by Sunny"))
    return {"message": f"Ended {event.name}"}


EVENT_HANDLERS = {
    "list_events": list_events,
    "create_event": create_event,
    "edit_event": edit_event,
    "delete_event": delete_event,
    "start_event": start_event,
    "end_event": end_event,
}
