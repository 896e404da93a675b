"""Tests for validated, permission-checked tool dispatch."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from conftest import FakeClock, no_sleep
from sunny.errors import (
    TargetNotFoundError,
    ToolExecutionError,
    ToolPermissionError,
    ToolValidationError,
    UnknownToolError,
)
from sunny.models.agent import ToolContext
from sunny.tools import ToolRegistry
from sunny.tools.common import boolean, integer, string, tool
from sunny.tools.executor import ToolExecutor, validate_arguments
from sunny.utils.permissions import PermissionPolicy
from sunny.utils.rate_limiter import RateLimiter

OWNER_ID = 222
MEMBER_ID = 111

SET_SLOWMODE = tool(
    "set_slowmode",
    "Set slowmode",
    {
        "channel_name": string("Channel"),
        "seconds": integer("Delay", minimum=0, maximum=21600),
        "notify": boolean("Announce it"),
        "mode": string("Mode", enum=["on", "off"]),
    },
    ["channel_name", "seconds"],
)
LIST_CHANNELS = tool("list_channels", "List channels")


def http_response(status):
    return MagicMock(status=status, reason="error")


def context(actor_id=MEMBER_ID, privileged=False):
    guild = SimpleNamespace(id=999, owner_id=OWNER_ID)
    return ToolContext(actor=SimpleNamespace(id=actor_id, name="maple"), guild=guild, is_privileged=privileged)


def make_executor(handlers, rate_limiter=None):
    definitions = {"set_slowmode": SET_SLOWMODE, "list_channels": LIST_CHANNELS}
    return ToolExecutor(
        handlers,
        {name: definitions[name] for name in handlers},
        PermissionPolicy(owner_ids=[OWNER_ID]),
        rate_limiter,
        sleep=no_sleep,
    )


class TestValidateArguments:
    def test_accepts_and_drops_unknown_keys(self):
        """Valid arguments pass and unknown keys are discarded."""
        cleaned = validate_arguments(SET_SLOWMODE, {"channel_name": "general", "seconds": 10, "colour": "red"})
        assert cleaned == {"channel_name": "general", "seconds": 10}

    def test_missing_required(self):
        with pytest.raises(ToolValidationError, match="seconds"):
            validate_arguments(SET_SLOWMODE, {"channel_name": "general"})

    def test_empty_string_counts_as_present(self):
        """An empty string is a value, not a missing argument."""
        assert validate_arguments(SET_SLOWMODE, {"channel_name": "", "seconds": 0})["channel_name"] == ""

    def test_wrong_type(self):
        with pytest.raises(ToolValidationError, match="integer"):
            validate_arguments(SET_SLOWMODE, {"channel_name": "general", "seconds": "ten"})

    def test_bool_is_not_an_integer(self):
        """True must not sneak through as 1."""
        with pytest.raises(ToolValidationError):
            validate_arguments(SET_SLOWMODE, {"channel_name": "general", "seconds": True})

    def test_numeric_strings_coerced(self):
        """Backends that stringify every argument still validate."""
        cleaned = validate_arguments(
            SET_SLOWMODE, {"channel_name": "general", "seconds": "30", "notify": "true"}
        )
        assert cleaned["seconds"] == 30
        assert cleaned["notify"] is True

    def test_enum_enforced(self):
        with pytest.raises(ToolValidationError, match="one of"):
            validate_arguments(SET_SLOWMODE, {"channel_name": "general", "seconds": 1, "mode": "maybe"})

    def test_range_enforced(self):
        with pytest.raises(ToolValidationError, match="at most"):
            validate_arguments(SET_SLOWMODE, {"channel_name": "general", "seconds": 99999})

    def test_non_mapping_rejected(self):
        with pytest.raises(ToolValidationError):
            validate_arguments(SET_SLOWMODE, ["general", 10])


class TestToolExecutor:
    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        executor = make_executor({"list_channels": AsyncMock(return_value={})})
        with pytest.raises(UnknownToolError):
            await executor.execute("launch_rockets", {}, context())

    @pytest.mark.asyncio
    async def test_privileged_tool_denied_for_member(self):
        """Members cannot run tools on the privileged allow-list."""
        handler = AsyncMock(return_value={})
        executor = make_executor({"set_slowmode": handler})
        with pytest.raises(ToolPermissionError) as exc_info:
            await executor.execute("set_slowmode", {"channel_name": "general", "seconds": 5}, context())
        assert exc_info.value.actor_id == MEMBER_ID
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_guild_owner_allowed(self):
        """The guild owner runs privileged tools and the handler sees the flag."""
        handler = AsyncMock(return_value={"ok": True})
        executor = make_executor({"set_slowmode": handler})

        result = await executor.execute(
            "set_slowmode", {"channel_name": "general", "seconds": "5"}, context(OWNER_ID)
        )

        assert result == {"ok": True}
        args, ctx = handler.await_args.args
        assert args == {"channel_name": "general", "seconds": 5}
        assert ctx.is_privileged is True

    @pytest.mark.asyncio
    async def test_privileged_request_allowed(self):
        """A context already marked privileged passes the check."""
        handler = AsyncMock(return_value={})
        executor = make_executor({"set_slowmode": handler})
        await executor.execute(
            "set_slowmode", {"channel_name": "general", "seconds": 5}, context(privileged=True)
        )
        handler.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_validation_before_handler(self):
        handler = AsyncMock(return_value={})
        executor = make_executor({"set_slowmode": handler})
        with pytest.raises(ToolValidationError):
            await executor.execute("set_slowmode", {"channel_name": "general"}, context(OWNER_ID))
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error, expected",
        [
            (discord.Forbidden(http_response(403), "Missing Permissions"), "permission"),
            (discord.NotFound(http_response(404), "Unknown Channel"), "could not find"),
            (discord.HTTPException(http_response(500), "Internal"), "500"),
        ],
    )
    async def test_discord_errors_wrapped(self, error, expected):
        """discord.py failures surface as ToolExecutionError with the tool name."""
        executor = make_executor({"list_channels": AsyncMock(side_effect=error)})
        with pytest.raises(ToolExecutionError, match=expected) as exc_info:
            await executor.execute("list_channels", {}, context())
        assert exc_info.value.tool_name == "list_channels"
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_tool_errors_get_tool_name(self):
        """Handler-raised tool errors are tagged with the tool name."""
        executor = make_executor({"list_channels": AsyncMock(side_effect=TargetNotFoundError("gone"))})
        with pytest.raises(TargetNotFoundError) as exc_info:
            await executor.execute("list_channels", {}, context())
        assert exc_info.value.tool_name == "list_channels"

    @pytest.mark.asyncio
    async def test_draws_from_rate_limiter(self):
        """Each dispatch takes one token from the tool bucket."""
        clock = FakeClock()
        limiter = RateLimiter(20, 1.0, max_burst=5, name="tool_execution", clock=clock)
        executor = make_executor({"list_channels": AsyncMock(return_value={})}, limiter)

        for _ in range(3):
            await executor.execute("list_channels", {}, context())

        assert limiter.available_tokens == pytest.approx(2)

    @pytest.mark.asyncio
    async def test_rejected_calls_do_not_spend_tokens(self):
        """Permission and validation failures happen before the bucket is touched."""
        limiter = RateLimiter(20, 1.0, max_burst=5, clock=FakeClock())
        executor = make_executor({"set_slowmode": AsyncMock(return_value={})}, limiter)
        with pytest.raises(ToolPermissionError):
            await executor.execute("set_slowmode", {"channel_name": "general", "seconds": 5}, context())
        assert limiter.available_tokens == 5


class TestRealHandlers:
    def guild(self):
        general = MagicMock(spec_set=["name", "id", "edit"])
        general.name = "general"
        general.id = 1
        general.edit = AsyncMock()
        guild = MagicMock()
        guild.id = 999
        guild.owner_id = OWNER_ID
        guild.channels = [general]
        guild.threads = []
        return guild, general

    @pytest.mark.asyncio
    async def test_rename_channel_end_to_end(self):
        """The owner renames a channel through the real registry and handler."""
        guild, general = self.guild()
        executor = ToolExecutor.from_registry(ToolRegistry(), PermissionPolicy())
        ctx = ToolContext(actor=SimpleNamespace(id=OWNER_ID, name="owner"), guild=guild)

        result = await executor.execute("rename_channel", {"channel_name": "general", "new_name": "lobby"}, ctx)

        assert "lobby" in result["message"]
        assert general.edit.await_args.kwargs["name"] == "lobby"

    @pytest.mark.asyncio
    async def test_missing_channel_reports_not_found(self):
        """Unknown channel names come back as a not-found tool error."""
        guild, _ = self.guild()
        executor = ToolExecutor.from_registry(ToolRegistry(), PermissionPolicy())
        ctx = ToolContext(actor=SimpleNamespace(id=OWNER_ID, name="owner"), guild=guild)

        with pytest.raises(TargetNotFoundError):
            await executor.execute("rename_channel", {"channel_name": "nope", "new_name": "x"}, ctx)

    @pytest.mark.asyncio
    async def test_member_cannot_assign_role_to_others(self):
        """Non-privileged members may only change their own roles."""
        target = MagicMock(id=555, roles=[])
        guild = MagicMock(id=999, owner_id=OWNER_ID)
        guild.get_member.return_value = target
        role = MagicMock(id=42)
        role.name = "Artist"
        guild.roles = [role]
        guild.get_role.return_value = None
        executor = ToolExecutor.from_registry(ToolRegistry(), PermissionPolicy())
        ctx = ToolContext(actor=SimpleNamespace(id=MEMBER_ID, name="maple"), guild=guild)

        with pytest.raises(ToolPermissionError):
            await executor.execute("assign_role", {"role_name": "Artist", "user": "555"}, ctx)
        target.add_roles.assert_not_called()


class TestSelfAssignableRoles:
    def guild(self, *roles):
        member = MagicMock(id=MEMBER_ID, roles=[], display_name="maple")
        member.add_roles = AsyncMock()
        member.remove_roles = AsyncMock()
        guild = MagicMock(id=999, owner_id=OWNER_ID)
        guild.get_member.return_value = member
        guild.get_role.return_value = None
        guild.roles = list(roles)
        return guild, member

    def role(self, name, permissions):
        role = MagicMock(id=hash(name) & 0xFFFF, permissions=permissions)
        role.name = name
        return role

    def execute(self, guild, tool_name, role_name, policy=None):
        executor = ToolExecutor.from_registry(ToolRegistry(), policy or PermissionPolicy(owner_ids=[OWNER_ID]))
        ctx = ToolContext(actor=SimpleNamespace(id=MEMBER_ID, name="maple"), guild=guild)
        return executor.execute(tool_name, {"role_name": role_name}, ctx)

    @pytest.mark.asyncio
    async def test_member_cannot_take_moderator_role(self):
        """Roles outside the self-assignable list need the owner."""
        guild, member = self.guild(self.role("Moderator", discord.Permissions(administrator=True)))
        with pytest.raises(ToolPermissionError, match="not a self-assignable role"):
            await self.execute(guild, "assign_role", "Moderator")
        member.add_roles.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_listed_role_with_elevated_permissions_refused(self):
        """A self-assignable name does not unlock a role that grants moderation powers."""
        guild, member = self.guild(self.role("Artist", discord.Permissions(kick_members=True)))
        with pytest.raises(ToolPermissionError):
            await self.execute(guild, "assign_role", "Artist")
        member.add_roles.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_member_takes_self_assignable_role(self):
        guild, member = self.guild(self.role("Artist", discord.Permissions.none()))
        result = await self.execute(guild, "assign_role", "artist")
        assert result["message"] == "Gave Artist to maple"
        member.add_roles.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_remove_follows_the_same_rule(self):
        moderator = self.role("Moderator", discord.Permissions(manage_messages=True))
        guild, member = self.guild(moderator)
        member.roles = [moderator]
        with pytest.raises(ToolPermissionError):
            await self.execute(guild, "remove_role", "Moderator")
        member.remove_roles.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_configured_list(self):
        """The allow-list comes from the policy the executor was built with."""
        guild, member = self.guild(self.role("Streamer", discord.Permissions.none()))
        policy = PermissionPolicy(owner_ids=[OWNER_ID], self_assignable_roles=["Streamer"])
        await self.execute(guild, "assign_role", "Streamer", policy)
        member.add_roles.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_owner_assigns_any_role(self):
        guild, member = self.guild(self.role("Moderator", discord.Permissions(administrator=True)))
        executor = ToolExecutor.from_registry(ToolRegistry(), PermissionPolicy())
        ctx = ToolContext(actor=SimpleNamespace(id=OWNER_ID, name="owner"), guild=guild)
        await executor.execute("assign_role", {"role_name": "Moderator", "user": str(MEMBER_ID)}, ctx)
        member.add_roles.assert_awaited_once()


class TestTransientDiscordFailures:
    @pytest.mark.asyncio
    async def test_server_error_retried(self):
        """A Discord 5xx is retried and the second attempt's result returned."""
        handler = AsyncMock(
            side_effect=[discord.HTTPException(http_response(503), "Service Unavailable"), {"ok": True}]
        )
        executor = make_executor({"list_channels": handler})

        assert await executor.execute("list_channels", {}, context()) == {"ok": True}
        assert handler.await_count == 2

    @pytest.mark.asyncio
    async def test_permission_errors_not_retried(self):
        handler = AsyncMock(side_effect=discord.Forbidden(http_response(403), "Missing Permissions"))
        executor = make_executor({"list_channels": handler})

        with pytest.raises(ToolExecutionError):
            await executor.execute("list_channels", {}, context())
        assert handler.await_count == 1

    @pytest.mark.asyncio
    async def test_persistent_failure_wrapped_after_attempts(self):
        handler = AsyncMock(side_effect=discord.HTTPException(http_response(502), "Bad Gateway"))
        executor = make_executor({"list_channels": handler})

        with pytest.raises(ToolExecutionError, match="502"):
            await executor.execute("list_channels", {}, context())
        assert handler.await_count == 3
