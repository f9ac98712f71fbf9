"""Port interface for resolving queries and URLs to playable tracks."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from guild_player.domain.shared.types import NonEmptyStr

if TYPE_CHECKING:
    from ...domain.music.entities import TrackInfo


class TrackResolver(ABC):
    """Interface for turning a search query or URL into a TrackInfo.

    Implementations raise a ``ResolutionError`` subclass on failure and
    ``ResourceExhaustedError`` when no process slot is available. They do not
    retry; retry policy belongs to the caller.
    """

    @abstractmethod
    async def resolve(self, query: NonEmptyStr) -> "TrackInfo":
        """Resolve a query or URL to a playable track."""
        ...

    @abstractmethod
    def is_url(self, query: NonEmptyStr) -> bool:
        ...
