"""
Application Services

The per-guild playback actor and the registry that owns one per guild.
"""

from guild_player.application.services.guild_session import (
    GuildSession,
    ReplaceResult,
    ReplaceStatus,
)
from guild_player.application.services.session_registry import SessionRegistry

__all__ = [
    "GuildSession",
    "ReplaceResult",
    "ReplaceStatus",
    "SessionRegistry",
]
