"""
Voting Bounded Context

Listener votes to skip the current track or stop playback.
"""

from guild_player.domain.voting.entities import VoteOutcome, VoteTally
from guild_player.domain.voting.services import VotingDomainService
from guild_player.domain.voting.value_objects import VoteResult, VoteType

__all__ = [
    # Entities
    "VoteTally",
    "VoteOutcome",
    # Value Objects
    "VoteType",
    "VoteResult",
    # Services
    "VotingDomainService",
]
