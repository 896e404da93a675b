"""Who may run which tools."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

logger = logging.getLogger(__name__)

# Tools that mutate server structure or moderate members
PRIVILEGED_TOOLS = frozenset(
    {
        # channels
        "create_channel", "delete_channel", "rename_channel", "create_category",
        "delete_category", "move_channel", "set_channel_topic", "set_slowmode",
        "set_channel_nsfw", "set_channel_position", "create_stage_channel", "set_bitrate",
        "set_user_limit", "set_channel_permissions", "remove_channel_permission",
        "sync_channel_permissions", "create_forum_channel",
        # roles
        "create_role", "delete_role", "rename_role", "set_role_color", "set_role_permissions",
        "hoist_role", "mentionable_role", "set_role_position",
        # members
        "kick_member", "ban_member", "unban_member", "remove_timeout", "set_nickname",
        "set_member_deaf", "set_member_mute", "get_bans",
        # messages
        "pin_message", "unpin_message", "purge_messages", "remove_all_reactions",
        # threads
        "archive_thread", "lock_thread", "delete_thread", "pin_thread",
        # events
        "edit_event", "delete_event", "start_event", "end_event",
        # emojis and stickers
        "create_emoji", "edit_emoji", "delete_emoji", "create_sticker", "edit_sticker",
        "delete_sticker",
        # server
        "set_server_name", "set_server_icon", "set_verification_level", "delete_invite",
        "create_webhook", "delete_webhook", "create_automod_rule", "delete_automod_rule",
        "get_audit_logs",
    }
)


# Roles members may give themselves or drop without owner rights
DEFAULT_SELF_ASSIGNABLE_ROLES = (
    "Artist", "Gamer", "Reader/Writer", "Music Lover", "Movie Buff", "Night Owl",
    "Early Bird", "Photographer", "Crafter", "she/her", "he/him", "they/them", "any pronouns",
)

# A role carrying any of these is never self-assignable, whatever its name
ELEVATED_ROLE_PERMISSIONS = (
    "administrator", "manage_guild", "manage_roles", "manage_channels", "manage_messages",
    "manage_threads", "manage_nicknames", "manage_webhooks", "manage_events",
    "manage_expressions", "kick_members", "ban_members", "moderate_members",
    "mention_everyone", "view_audit_log", "mute_members", "deafen_members", "move_members",
)


class PermissionPolicy:
    """Configured bot owners, plus each guild's own owner, are privileged.

    Everyone else may only add or remove the self-assignable roles on
    themselves.
    """

    def __init__(
        self,
        owner_ids: Iterable[int] = (),
        self_assignable_roles: Iterable[str] = DEFAULT_SELF_ASSIGNABLE_ROLES,
    ):
        self.owner_ids = frozenset(int(owner_id) for owner_id in owner_ids)
        self.self_assignable_roles = frozenset(name.strip().lower() for name in self_assignable_roles)

    def is_owner(self, user_id: Optional[int]) -> bool:
        return user_id is not None and int(user_id) in self.owner_ids

    def is_privileged(self, actor: Any, guild: Any = None) -> bool:
        actor_id = getattr(actor, "id", None)
        if actor_id is None:
            return False
        if self.is_owner(actor_id):
            return True
        return guild is not None and getattr(guild, "owner_id", None) == actor_id

    @staticmethod
    def requires_privilege(tool_name: str) -> bool:
        return tool_name in PRIVILEGED_TOOLS

    def can_self_assign(self, role: Any) -> bool:
        if str(getattr(role, "name", "")).lower() not in self.self_assignable_roles:
            return False
        permissions = getattr(role, "permissions", None)
        if permissions is None:
            return True
        elevated = [name for name in ELEVATED_ROLE_PERMISSIONS if getattr(permissions, name, False) is True]
        if elevated:
            logger.warning("Role %s is self-assignable by name but grants %s", role, ", ".join(elevated))
            return False
        return True
