"""Port interfaces for subprocess-backed audio frame streams."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from guild_player.domain.shared.types import NonEmptyStr

if TYPE_CHECKING:
    from ...domain.shared.exceptions import PipeError


class AudioPipe(ABC):
    """A live, non-resumable stream of fixed-size audio frames.

    ``read_frame`` returns None at end of stream. A failure mid-stream also
    ends the stream; the cause is then available as ``error`` so the consumer
    never has to handle an exception from the read itself.
    """

    @abstractmethod
    async def read_frame(self) -> bytes | None:
        """Return the next frame, or None when the stream has ended."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Terminate the underlying producer. Idempotent."""
        ...

    @property
    @abstractmethod
    def error(self) -> "PipeError | None":
        """Why the stream ended early, if it did."""
        ...

    @property
    @abstractmethod
    def closed(self) -> bool:
        ...

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def supports_backpressure(self) -> bool:
        """True if the producer idles when frames are not being read."""
        return True


class AudioPipeFactory(ABC):
    """Opens audio pipes for playable source locators."""

    @abstractmethod
    async def open(self, source_url: NonEmptyStr) -> AudioPipe:
        """Start producing frames for a source.

        Raises ``PipeError`` if the producer cannot be started and
        ``ResourceExhaustedError`` when no process slot is available.
        """
        ...
