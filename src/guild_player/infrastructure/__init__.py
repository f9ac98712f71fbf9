"""Infrastructure layer - external systems integration.

This layer contains implementations for:
- Discord (bot, cogs, voice transport, notifier)
- Audio (yt-dlp resolver, FFmpeg pipes, process limiter)
"""

from guild_player.infrastructure.discord.adapters.voice_transport import DiscordVoiceTransport
from guild_player.infrastructure.discord.bot import create_bot

__all__ = [
    "create_bot",
    "DiscordVoiceTransport",
]
