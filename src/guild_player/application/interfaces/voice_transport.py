"""Port interface for the live voice connection a session streams into."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable


class VoiceTransport(ABC):
    """Interface for one guild's voice connection.

    The transport handles its own reconnection; sessions only react to the
    disconnect and reconnect notifications.
    """

    @abstractmethod
    def send_frame(self, frame: bytes) -> None:
        """Send one PCM frame. Raises ``TransportError`` when not connected."""
        ...

    @abstractmethod
    async def set_speaking(self, speaking: bool) -> None:
        ...

    @abstractmethod
    def on_disconnect(self, callback: Callable[[], None]) -> None:
        """Register a callback fired when the connection drops unexpectedly."""
        ...

    @abstractmethod
    def on_reconnect(self, callback: Callable[[], None]) -> None:
        """Register a callback fired when the connection comes back."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Leave the voice channel on purpose. Does not fire on_disconnect."""
        ...
