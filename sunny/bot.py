"""Discord bot wiring for Sunny."""

from __future__ import annotations

import logging
from typing import Optional

import discord
from discord.ext import commands, tasks

from .commands.slash import register_slash_commands
from .db import Database
from .models.agent import AgentRequest, ToolContext
from .models.config import BotSettings
from .services.context import ConversationContextService
from .services.engine import AgentEngine
from .utils.discord import describe_channel, reply_in_chunks, strip_bot_mention
from .utils.permissions import PermissionPolicy
from .utils.rate_limiter import RateLimiterRegistry
from .utils.triggers import detect_trigger

logger = logging.getLogger(__name__)

ERROR_REPLY = (
    "Oops! Something went wrong on my end 🍂 Let me try again or ask our server owner "
    "for help if this keeps happening!"
)
CONTEXT_PRUNE_MINUTES = 15
CONTEXT_MAX_AGE_SECONDS = 3600.0


def create_bot(
    settings: BotSettings,
    engine: AgentEngine,
    context_service: ConversationContextService,
    database: Database,
    limiters: RateLimiterRegistry,
    permissions: Optional[PermissionPolicy] = None,
) -> commands.Bot:
    intents = discord.Intents.default()
    intents.members = True
    intents.message_content = True

    # prefix unused; every command is a slash command
    bot = commands.Bot(command_prefix="!", intents=intents, help_command=None)
    permissions = permissions or PermissionPolicy(settings.owner_ids, settings.self_assignable_roles)

    register_slash_commands(bot.tree, engine, permissions, database, limiters)

    @tasks.loop(minutes=CONTEXT_PRUNE_MINUTES)
    async def prune_context() -> None:
        context_service.prune(CONTEXT_MAX_AGE_SECONDS)

    @prune_context.before_loop
    async def before_prune_context() -> None:
        await bot.wait_until_ready()

    @bot.event
    async def setup_hook() -> None:  # type: ignore[override]
        await database.connect()
        storage = "database" if database.is_connected else "log-only"
        logger.info("Audit trail using %s storage", storage)
        if not prune_context.is_running():
            prune_context.start()

        try:
            logger.info("Syncing commands to Discord...")
            synced = await bot.tree.sync()
            logger.info("✅ Synced %d commands to Discord", len(synced))
        except Exception:
            logger.exception("Failed to sync commands to Discord")

    @bot.event
    async def on_ready() -> None:
        logger.info("Logged in as %s in %d guild(s)", bot.user, len(bot.guilds))

    @bot.event
    async def on_message(message: discord.Message) -> None:
        if message.author.bot or message.guild is None:
            return

        context_service.add_message(message.channel.id, message)

        trigger = await detect_trigger(message, bot.user)
        if trigger is None:
            return
        logger.info(
            "Triggered by %s (%s) in #%s", message.author, trigger.type.value, message.channel
        )

        try:
            async with message.channel.typing():
                prompt = strip_bot_mention(message.content, bot.user.id) or message.content
                context = context_service.build_context_prompt(
                    message.channel.id, message, trigger.reply_context
                )
                request = AgentRequest(
                    message=prompt,
                    tool_context=ToolContext(
                        actor=message.author,
                        guild=message.guild,
                        channel=message.channel,
                        bot_user=bot.user,
                    ),
                    conversation_context=context,
                    is_privileged=permissions.is_privileged(message.author, message.guild),
                    has_attachments=bool(message.attachments),
                    channel_description=describe_channel(message.channel),
                )
                reply = await engine.run(request)
            sent = await reply_in_chunks(message, reply.text)
            for bot_message in sent:
                context_service.add_message(message.channel.id, bot_message)
        except Exception:
            logger.exception("Error handling message %s", message.id)
            try:
                await message.reply(ERROR_REPLY, mention_author=False)
            except discord.HTTPException:
                logger.warning("Could not send error reply in #%s", message.channel)

    return bot
