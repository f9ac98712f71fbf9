"""
Playback Bounded Context

Domain logic for track requests, the per-guild queue, and session states.
"""

from guild_player.domain.music.entities import TrackInfo, TrackRequest
from guild_player.domain.music.frame_buffer import PauseBuffer
from guild_player.domain.music.queue import PlaybackQueue
from guild_player.domain.music.value_objects import (
    SessionState,
    TerminationReason,
    TrackEndReason,
)

__all__ = [
    # Entities
    "TrackInfo",
    "TrackRequest",
    # Queue
    "PlaybackQueue",
    "PauseBuffer",
    # Value Objects
    "SessionState",
    "TrackEndReason",
    "TerminationReason",
]
