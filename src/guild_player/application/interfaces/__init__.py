"""
Application Interfaces (Ports)

Abstract interfaces that define contracts between the application
layer and infrastructure adapters. These are the "ports" in
hexagonal architecture.
"""

from guild_player.application.interfaces.audio_pipe import AudioPipe, AudioPipeFactory
from guild_player.application.interfaces.track_resolver import TrackResolver
from guild_player.application.interfaces.voice_transport import VoiceTransport

__all__ = [
    "AudioPipe",
    "AudioPipeFactory",
    "TrackResolver",
    "VoiceTransport",
]
