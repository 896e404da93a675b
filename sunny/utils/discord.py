"""Discord-specific helpers for replying to members."""

from __future__ import annotations

import logging
import re
from typing import Any, List, Optional

import discord

logger = logging.getLogger(__name__)

DISCORD_MAX_MESSAGE_LENGTH = 2000

SENTENCE_END = re.compile(r"[.!?](?=\s|$)")


def _boundary(text: str, limit: int) -> int:
    """Index to cut ``text`` at so the head fits in ``limit`` characters.

    Prefers a newline, then a sentence end, then a space, each only when it
    falls in the second half of the window; otherwise cuts hard at ``limit``.
    """

    halfway = limit // 2
    newline = text.rfind("\n", 0, limit)
    if newline > halfway:
        return newline + 1

    sentence_ends = [m.end() for m in SENTENCE_END.finditer(text, 0, limit + 1) if m.end() <= limit]
    if sentence_ends and sentence_ends[-1] > halfway:
        return sentence_ends[-1]

    space = text.rfind(" ", 0, limit)
    if space > halfway:
        return space + 1
    return limit


def split_message(content: str, max_length: int = DISCORD_MAX_MESSAGE_LENGTH) -> List[str]:
    """Break ``content`` into chunks of at most ``max_length`` characters.

    Whitespace around each cut is dropped, so joining the chunks with a single
    space or newline restores the text.

        >>> split_message("Short message")
        ['Short message']
        >>> [len(c) for c in split_message("a" * 4500)]
        [2000, 2000, 500]
    """

    if len(content) <= max_length:
        return [content]

    chunks: List[str] = []
    remaining = content
    while len(remaining) > max_length:
        cut = _boundary(remaining, max_length)
        head = remaining[:cut].rstrip()
        if head:
            chunks.append(head)
        remaining = remaining[cut:].lstrip()
    if remaining:
        chunks.append(remaining)
    return chunks


def strip_bot_mention(content: str, bot_user_id: Optional[int]) -> str:
    """Remove ``<@id>`` and ``<@!id>`` mentions of the bot from ``content``."""

    if bot_user_id is None:
        return content.strip()
    return re.sub(rf"<@!?{bot_user_id}>", "", content).strip()


def describe_channel(channel: Any) -> Optional[str]:
    if channel is None or not hasattr(channel, "name"):
        return None
    category = getattr(channel, "category", None)
    return (
        f"#{channel.name} (ID: {channel.id}, Category: "
        f"{category.name if category is not None else 'None'})"
    )


async def reply_in_chunks(message: discord.Message, text: str) -> List[discord.Message]:
    """Reply to ``message`` with ``text``, continuing in the channel past 2000 characters."""

    sent: List[discord.Message] = []
    mentions = discord.AllowedMentions(everyone=False, roles=False, replied_user=True)
    for index, chunk in enumerate(split_message(text)):
        if not chunk:
            continue
        if index == 0:
            sent.append(await message.reply(chunk, mention_author=False, allowed_mentions=mentions))
        else:
            sent.append(await message.channel.send(chunk, allowed_mentions=mentions))
    logger.debug("Sent reply in %s chunk(s) to message %s", len(sent), message.id)
    return sent
