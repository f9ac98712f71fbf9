"""Core domain entities for the voting bounded context."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, PrivateAttr

from guild_player.domain.music.entities import TrackRequest
from guild_player.domain.shared.types import NonNegativeInt, PositiveInt
from guild_player.domain.voting.services import VotingDomainService
from guild_player.domain.voting.value_objects import VoteResult, VoteType


class VoteTally(BaseModel):
    """Votes cast for one action on the current track of a guild.

    Only votes from users who are still listening count towards the
    threshold, so a voter who leaves the channel stops counting.
    """

    vote_type: VoteType
    _voters: set[int] = PrivateAttr(default_factory=set)

    def count(self, listeners: frozenset[int]) -> int:
        return len(self._voters & listeners)

    def has_voted(self, user_id: int) -> bool:
        return user_id in self._voters

    def cast(
        self,
        user_id: int,
        listeners: frozenset[int],
        ratio: float,
        *,
        requester_id: int | None = None,
    ) -> VoteResult:
        """Record a vote and report whether the action should run.

        The requester of the track passes immediately.
        """
        if user_id not in listeners:
            return VoteResult.NOT_IN_CHANNEL
        if requester_id is not None and user_id == requester_id:
            return VoteResult.SUCCESS
        if self.has_voted(user_id):
            return VoteResult.ALREADY_VOTED

        self._voters.add(user_id)
        threshold = VotingDomainService.calculate_threshold(len(listeners), ratio)
        if self.count(listeners) >= threshold:
            return VoteResult.SUCCESS
        return VoteResult.NEEDS_MORE_VOTES

    def reset(self) -> None:
        self._voters.clear()


class VoteOutcome(BaseModel):
    """Result of a vote command, with the progress needed to report it."""

    model_config = ConfigDict(frozen=True)

    result: VoteResult
    vote_type: VoteType
    votes: NonNegativeInt = 0
    required: PositiveInt = 1
    track: TrackRequest | None = None

    @property
    def action_executed(self) -> bool:
        return self.result.action_executed

    @property
    def remaining(self) -> int:
        return max(0, self.required - self.votes)
