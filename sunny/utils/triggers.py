"""Decide whether a guild message is addressed to Sunny."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import discord

logger = logging.getLogger(__name__)

# Everyday uses of the word that are not about the bot
FALSE_POSITIVE_PATTERNS = (
    re.compile(r"sunny day", re.IGNORECASE),
    re.compile(r"sunny weather", re.IGNORECASE),
    re.compile(r"it'?s sunny", re.IGNORECASE),
    re.compile(r"sunny outside", re.IGNORECASE),
    re.compile(r"sunny side up", re.IGNORECASE),
)

NAME_PATTERN = re.compile(r"\bsunny\b", re.IGNORECASE)


class TriggerType(str, Enum):
    REPLY = "reply"
    MENTION = "mention"
    NATURAL = "natural"


@dataclass(frozen=True)
class Trigger:
    type: TriggerType
    reply_context: Optional[str] = None


def is_natural_mention(content: str) -> bool:
    """True when ``content`` names Sunny outside the known weather phrases."""

    if any(pattern.search(content) for pattern in FALSE_POSITIVE_PATTERNS):
        return False
    return bool(NAME_PATTERN.search(content))


async def _replied_message(message: discord.Message) -> Optional[discord.Message]:
    reference = message.reference
    if reference is None or reference.message_id is None:
        return None
    resolved = reference.resolved
    if isinstance(resolved, discord.Message):
        return resolved
    try:
        return await message.channel.fetch_message(reference.message_id)
    except (discord.NotFound, discord.Forbidden):
        return None
    except discord.HTTPException:
        logger.warning("Could not fetch replied message %s", reference.message_id)
        return None


async def detect_trigger(message: discord.Message, bot_user: Any) -> Optional[Trigger]:
    """Return how ``message`` addresses the bot, or None when it does not.

    Checked in order: a reply to one of the bot's messages, an @mention, then
    the bot's name appearing naturally in the text.
    """

    if bot_user is None:
        return None

    replied = await _replied_message(message)
    if replied is not None and replied.author.id == bot_user.id:
        return Trigger(TriggerType.REPLY, replied.content)

    if any(user.id == bot_user.id for user in message.mentions):
        return Trigger(TriggerType.MENTION)

    if is_natural_mention(message.content or ""):
        return Trigger(TriggerType.NATURAL)
    return None
