"""Command registration for Sunny."""

from .slash import register_slash_commands

__all__ = ["register_slash_commands"]
