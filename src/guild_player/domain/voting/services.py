"""
Voting Domain Services

Threshold rules for listener votes.
"""

import math


class VotingDomainService:
    """Domain service for voting-related business rules."""

    MINIMUM_THRESHOLD = 1

    @classmethod
    def calculate_threshold(cls, listener_count: int, ratio: float) -> int:
        """Calculate the number of votes required to pass.

        More than ``ratio`` of the listeners must vote, capped at the number
        of listeners so a full vote always passes. With the default ratio of
        0.5 this is a simple majority.

        Args:
            listener_count: Non-bot members listening in the bot's channel.
            ratio: Fraction of listeners that must be exceeded.

        Returns:
            The number of votes required to pass.
        """
        if listener_count <= 0:
            return cls.MINIMUM_THRESHOLD

        threshold = math.floor(listener_count * ratio) + 1
        return max(cls.MINIMUM_THRESHOLD, min(threshold, listener_count))
