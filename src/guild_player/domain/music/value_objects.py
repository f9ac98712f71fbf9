"""Immutable value objects for the playback bounded context."""

from __future__ import annotations

from enum import Enum


class SessionState(Enum):
    """Guild session state with enforced transitions.

    State transitions:
    - IDLE -> RESOLVING (advance with a non-empty queue)
    - RESOLVING -> PLAYING (resolve and pipe open succeeded)
    - RESOLVING -> RESOLVING (head failed, trying the next entry)
    - RESOLVING -> IDLE (queue exhausted, failure cap, or cancelled)
    - PLAYING <-> PAUSED
    - PLAYING | PAUSED -> STOPPING (skip, stop, disconnect)
    - PLAYING -> IDLE (stream ended on its own)
    - STOPPING -> IDLE
    - Any -> TERMINATED (absorbing)
    """

    IDLE = "idle"
    RESOLVING = "resolving"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPING = "stopping"
    TERMINATED = "terminated"

    def can_transition_to(self, target: SessionState) -> bool:
        """Check if transition to target state is valid."""
        if self is SessionState.TERMINATED:
            return False
        if target is SessionState.TERMINATED:
            return True
        valid_transitions = {
            SessionState.IDLE: {SessionState.RESOLVING},
            SessionState.RESOLVING: {
                SessionState.RESOLVING,
                SessionState.PLAYING,
                SessionState.IDLE,
            },
            SessionState.PLAYING: {
                SessionState.PAUSED,
                SessionState.STOPPING,
                SessionState.IDLE,
            },
            SessionState.PAUSED: {SessionState.PLAYING, SessionState.STOPPING},
            SessionState.STOPPING: {SessionState.IDLE},
        }
        return target in valid_transitions.get(self, set())

    @property
    def has_pipe(self) -> bool:
        """Whether an audio pipe may be open in this state."""
        return self in {SessionState.PLAYING, SessionState.PAUSED}


class TrackEndReason(Enum):
    """Reasons a track can stop playing."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    STOPPED = "stopped"
    FAILED = "failed"
    DISCONNECTED = "disconnected"


class TerminationReason(Enum):
    """Reasons a session can be destroyed."""

    LEFT = "left"
    DISCONNECTED = "disconnected"
    IDLE = "idle"
    ERROR = "error"
    SHUTDOWN = "shutdown"
