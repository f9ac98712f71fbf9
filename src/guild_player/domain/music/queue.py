"""Per-guild playback queue."""

from __future__ import annotations

from collections import deque

from guild_player.domain.music.entities import TrackRequest
from guild_player.domain.shared.constants import LimitConstants
from guild_player.domain.shared.exceptions import BusinessRuleViolationError
from guild_player.domain.shared.messages import ErrorMessages


class PlaybackQueue:
    """Ordered FIFO of track requests owned by a single guild session.

    Not safe for concurrent mutation: the owning session only touches it from
    its control task. The currently playing request is never in the queue.
    """

    def __init__(self, max_size: int = LimitConstants.MAX_QUEUE_SIZE) ->    def replace_latest(self, request: TrackRequest) -> TrackRequest | None:
        """Replace the most recent entry queued by the same requester.

        Returns the replaced request, or None when the requester has nothing
        queued (in which case nothing changes).
        """
        for index in range(len(self._items) - 1, -1, -1):
            if self._items[index].was_requested_by(request.requester_id):
                old = self._items[index]
                self._items[index] = request
                return old
        return None

    def clear(self) -> int:
        """Remove every pending request and return how many were dropped."""
        count = len(self._items)
        self._items.clear()
        return count

    def peek_all(self) -> tuple[TrackRequest, ...]:
        """Snapshot of the pending requests in play order."""
        return tuple(self._items)
