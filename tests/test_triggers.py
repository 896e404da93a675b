"""Tests for deciding when Sunny should answer."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from sunny.utils.triggers import TriggerType, detect_trigger, is_natural_mention

BOT = SimpleNamespace(id=4242)


def message(content="", mentions=(), reference=None, fetched=None):
    msg = MagicMock()
    msg.content = content
    msg.mentions = list(mentions)
    msg.reference = reference
    msg.channel.fetch_message = AsyncMock(return_value=fetched)
    return msg


def reference_to(message_id, resolved=None):
    return SimpleNamespace(message_id=message_id, resolved=resolved)


class TestNaturalMention:
    @pytest.mark.parametrize(
        "content",
        [
            "sunny can you help?",
            "Hey Sunny!",
            "thanks sunny",
            "good night sunny 🌙",
            "Sunny, what roles are there?",
            "is SUNNY around",
        ],
    )
    def test_addresses_the_bot(self, content):
        assert is_natural_mention(content)

    @pytest.mark.parametrize(
        "content",
        [
            "what a sunny day",
            "the sunny weather is lovely",
            "it's sunny here",
            "its sunny outside today",
            "eggs sunny side up please",
        ],
    )
    def test_weather_talk_ignored(self, content):
        """Everyday uses of the word do not trigger a reply."""
        assert not is_natural_mention(content)

    @pytest.mark.parametrize("content", ["sunnyvale is far", "unsunny", ""])
    def test_word_boundaries(self, content):
        assert not is_natural_mention(content)


class TestDetectTrigger:
    @pytest.mark.asyncio
    async def test_reply_to_bot(self):
        """Replying to one of Sunny's messages carries that message as context."""
        original = SimpleNamespace(author=SimpleNamespace(id=BOT.id), content="Here are the rules 🍂")
        msg = message("what about rule 3?", reference=reference_to(1), fetched=original)

        trigger = await detect_trigger(msg, BOT)

        assert trigger.type == TriggerType.REPLY
        assert trigger.reply_context == "Here are the rules 🍂"

    @pytest.mark.asyncio
    async def test_resolved_reference_skips_fetch(self):
        """A cached referenced message is used without another API call."""
        original = MagicMock(spec=discord.Message)
        original.author = SimpleNamespace(id=BOT.id)
        original.content = "cached"
        msg = message("and then?", reference=reference_to(1, resolved=original))

        trigger = await detect_trigger(msg, BOT)

        assert trigger.reply_context == "cached"
        msg.channel.fetch_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reply_to_someone_else_falls_through(self):
        """Replies to other members only trigger through the later rules."""
        other = SimpleNamespace(author=SimpleNamespace(id=7), content="hi")
        msg = message("I agree", reference=reference_to(1), fetched=other)
        assert await detect_trigger(msg, BOT) is None

    @pytest.mark.asyncio
    async def test_mention(self):
        msg = message("<@4242> list roles", mentions=[SimpleNamespace(id=BOT.id)])
        trigger = await detect_trigger(msg, BOT)
        assert trigger.type == TriggerType.MENTION
        assert trigger.reply_context is None

    @pytest.mark.asyncio
    async def test_reply_wins_over_mention(self):
        """A reply to the bot that also mentions it counts as a reply."""
        original = SimpleNamespace(author=SimpleNamespace(id=BOT.id), content="earlier")
        msg = message(
            "<@4242> more please",
            mentions=[SimpleNamespace(id=BOT.id)],
            reference=reference_to(1),
            fetched=original,
        )
        assert (await detect_trigger(msg, BOT)).type == TriggerType.REPLY

    @pytest.mark.asyncio
    async def test_natural(self):
        trigger = await detect_trigger(message("morning sunny!"), BOT)
        assert trigger.type == TriggerType.NATURAL

    @pytest.mark.asyncio
    async def test_unrelated_message(self):
        assert await detect_trigger(message("anyone up for games?"), BOT) is None

    @pytest.mark.asyncio
    async def test_deleted_reference_is_ignored(self):
        """A reply to a message that no longer exists is not an error."""
        msg = message("sunny?", reference=reference_to(1))
        msg.channel.fetch_message = AsyncMock(
            side_effect=discord.NotFound(MagicMock(status=404, reason="Not Found"), "Unknown Message")
        )
        trigger = await detect_trigger(msg, BOT)
        assert trigger.type == TriggerType.NATURAL

    @pytest.mark.asyncio
    async def test_no_bot_user(self):
        """Before login there is nothing to detect."""
        assert await detect_trigger(message("sunny"), None) is None
