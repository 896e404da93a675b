"""Prompt templates for the agent loop."""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Any, Iterable, Optional

from .complexity import ComplexitySummary

logger = logging.getLogger(__name__)

DEFAULT_PERSONALITY = (
    "You are Sunny, the AI administrator and head moderator of The Nook, a cozy autumn-themed "
    "Discord community where everyone belongs.\n\n"
    "You are warm, friendly, and welcoming. You use casual language and autumn-themed emojis "
    "like 🍂🍁☕🧡. You help members feel at home while keeping the community safe.\n\n"
    "You have access to tools that let you inspect and manage the server. Use inspection tools "
    "(list_channels, list_roles, list_members) BEFORE making changes to see what exists.\n\n"
    "Keep responses concise (2-4 sentences usually) but complete. Be genuinely helpful and "
    "maintain The Nook's cozy atmosphere."
)

TOOL_GUIDANCE = (
    "You have 100+ Discord management tools. CRITICAL: When using multi-step workflows, always "
    "extract data from tool results (especially message_id and channel ids) to use in subsequent "
    "tool calls. Read tool descriptions carefully for workflow patterns. If a tool fails, read the "
    "error, then retry with corrected arguments or explain the problem to the user."
)


def load_personality(
    path: Optional[str],
    owner_ids: Iterable[int] = (),
    moderation_level: str = "2",
) -> str:
    """Read the personality file and fill its placeholders.

    Falls back to the built-in Sunny personality when the file is missing or
    unreadable.
    """

    text: Optional[str] = None
    if path:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError:
            logger.warning("Could not load personality from %s, using default", path)
    if not text or not text.strip():
        return DEFAULT_PERSONALITY

    owners = ", ".join(str(owner_id) for owner_id in owner_ids) or "Not Set"
    return (
        text.replace("[OWNER_ID]", owners)
        .replace("[OWNER_USERNAME]", "Server Owner")
        .replace("[LEVEL_1_2_OR_3]", moderation_level)
    )


def build_complexity_hint(summary: ComplexitySummary) -> str:
    lines = [
        "<message_analysis>",
        f"User message complexity: {summary.complexity.value}",
        f"Response guideline: {summary.guidelines}",
        f"Maximum sentences recommended: {summary.max_sentences}",
    ]
    if summary.is_list_request:
        lines.append("Note: User is requesting a list - provide complete information but stay concise.")
    lines.append("</message_analysis>")
    lines.append("")
    lines.append(
        "IMPORTANT: Follow the response guideline above for appropriate length. "
        "Match the response depth to what the user needs."
    )
    return "\n".join(lines)


def build_system_prompt(
    personality: str,
    model: str,
    summary: Optional[ComplexitySummary] = None,
    today: Optional[date] = None,
) -> str:
    today = today or date.today()
    segments = [
        personality,
        f"You are currently running on the model {model}.",
        build_complexity_hint(summary) if summary is not None else "",
        f"Current date: {today.strftime('%A, %B %d, %Y')}",
        TOOL_GUIDANCE,
    ]
    return "\n\n".join(segment for segment in segments if segment)


def build_initial_user_message(
    message: str,
    author: Any,
    conversation_context: str = "",
    is_privileged: bool = False,
    channel_description: Optional[str] = None,
) -> str:
    """Seed turn: prior conversation, who is asking, where, then the request."""

    owner_marker = " (SERVER OWNER)" if is_privileged else ""
    who = f"Current user: {getattr(author, 'name', 'unknown')} (ID: {getattr(author, 'id', 'unknown')}){owner_marker}"
    if channel_description:
        who += f"\nCurrent channel: {channel_description}"
    segments = [
        conversation_context.strip(),
        who,
        (
            "IMPORTANT: This user is the SERVER OWNER. You can execute owner-only tools when they request them."
            if is_privileged
            else ""
        ),
        f"User message: {message}",
    ]
    return "\n\n".join(segment for segment in segments if segment)
