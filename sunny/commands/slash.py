"""Slash commands for talking to Sunny and inspecting her runtime."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import discord
from discord import app_commands

from ..db import Database
from ..models.agent import AgentRequest, ToolContext
from ..services.engine import AgentEngine
from ..utils.discord import describe_channel, split_message
from ..utils.permissions import PermissionPolicy
from ..utils.rate_limiter import RateLimiterRegistry

logger = logging.getLogger(__name__)


def format_usage(usage: Dict[str, Any]) -> List[str]:
    lines = [f"**Model usage** ({usage.get('total', 0)} requests)"]
    percentages = usage.get("percentages") or {}
    for model, count in sorted((usage.get("breakdown") or {}).items()):
        lines.append(f"• `{model}`: {count} ({percentages.get(model, 0.0)}%)")
    if usage.get("recommendation"):
        lines.append(f"_{usage['recommendation']}_")
    return lines


def format_limiter_stats(stats: Dict[str, Dict[str, Any]]) -> List[str]:
    lines = ["**Rate limiters**"]
    for name, bucket in sorted(stats.items()):
        lines.append(
            f"• `{name}`: {bucket.get('total_requests', 0)} requests, {bucket.get('total_waits', 0)} waits, "
            f"avg wait {bucket.get('average_wait_time', 0.0):.2f}s, "
            f"{bucket.get('available_tokens', 0.0):.1f} tokens available"
        )
    return lines


def format_reliability(rows: List[Dict[str, Any]]) -> List[str]:
    if not rows:
        return ["**Tool reliability**: no recorded executions"]
    lines = ["**Tool reliability** (least reliable first)"]
    for row in rows:
        total = int(row["total"])
        succeeded = int(row["succeeded"])
        rate = succeeded / total * 100 if total else 0.0
        lines.append(
            f"• `{row['tool_name']}`: {succeeded}/{total} ({rate:.0f}%), "
            f"avg {float(row['avg_duration_ms'] or 0):.0f}ms"
        )
    return lines


def register_slash_commands(
    tree: app_commands.CommandTree,
    engine: AgentEngine,
    permissions: PermissionPolicy,
    database: Database,
    limiters: RateLimiterRegistry,
) -> None:
    """Register all slash commands to the command tree."""

    @tree.command(name="ask", description="Ask Sunny to help with something in this server")
    @app_commands.describe(prompt="What you would like Sunny to do")
    @app_commands.guild_only()
    async def ask(interaction: discord.Interaction, prompt: str) -> None:
        await interaction.response.defer(thinking=True)
        privileged = permissions.is_privileged(interaction.user, interaction.guild)
        request = AgentRequest(
            message=prompt,
            tool_context=ToolContext(
                actor=interaction.user,
                guild=interaction.guild,
                channel=interaction.channel,
                bot_user=interaction.client.user,
            ),
            is_privileged=privileged,
            channel_description=describe_channel(interaction.channel),
        )
        reply = await engine.run(request)
        for chunk in split_message(reply.text):
            await interaction.followup.send(
                chunk, allowed_mentions=discord.AllowedMentions(everyone=False, roles=False)
            )

    @tree.command(name="sunny-stats", description="Show model usage, rate limits and tool reliability")
    @app_commands.guild_only()
    async def sunny_stats(interaction: discord.Interaction) -> None:
        if not permissions.is_privileged(interaction.user, interaction.guild):
            await interaction.response.send_message(
                "❌ Only the server owner can view Sunny's stats.", ephemeral=True
            )
            return
        await interaction.response.defer(ephemeral=True)

        lines = format_usage(engine.selector.usage_stats())
        lines.append("")
        lines.extend(format_limiter_stats(limiters.stats()))
        lines.append("")
        if database.is_enabled:
            rows = await database.fetch_tool_reliability(interaction.guild.id, limit=10)
            lines.extend(format_reliability(rows))
        else:
            lines.append("**Tool reliability**: audit store not configured")

        for chunk in split_message("\n".join(lines)):
            await interaction.followup.send(chunk, ephemeral=True)
