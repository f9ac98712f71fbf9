"""
Voting Domain Value Objects

Immutable value objects for the voting bounded context.
"""

from enum import Enum


class VoteType(Enum):
    """Actions that listeners vote on."""

    SKIP = "skip"  # Vote to skip the current track
    STOP = "stop"  # Vote to stop playback, keeping the queue


class VoteResult(Enum):
    """What happened when a listener cast a vote."""

    SUCCESS = "success"  # Threshold reached (or requester skip), action executed
    NEEDS_MORE_VOTES = "needs_more_votes"  # Vote counted, threshold not reached yet
    ALREADY_VOTED = "already_voted"  # User already voted for this track
    NOT_IN_CHANNEL = "not_in_channel"  # User is not listening in the bot's channel
    NOTHING_PLAYING = "nothing_playing"  # No current track to vote on

    @property
    def action_executed(self) -> bool:
        return self is VoteResult.SUCCESS
