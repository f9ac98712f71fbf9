"""
Session Registry

Process-wide map from guild ID to its live GuildSession.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from guild_player.application.services.guild_session import GuildSession
from guild_player.config.settings import PlaybackSettings
from guild_player.domain.music.value_objects import TerminationReason
from guild_player.domain.shared.constants import LimitConstants
from guild_player.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ..interfaces.audio_pipe import AudioPipeFactory
    from ..interfaces.track_resolver import TrackResolver
    from ...domain.shared.events import EventBus

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Owns the guild sessions and guarantees at most one live session per guild.

    Terminated sessions remove themselves; the next request for that guild
    gets a fresh session.
    """

    def __init__(
        self,
        *,
        resolver: TrackResolver,
        pipe_factory: AudioPipeFactory,
        event_bus: EventBus,
        playback_settings: PlaybackSettings | None = None,
        max_queue_size: int = LimitConstants.MAX_QUEUE_SIZE,
    ) -> None:
        self._resolver = resolver
        self._pipe_factory = pipe_factory
        self._event_bus = event_bus
        self._playback_settings = playback_settings or PlaybackSettings()
        self._max_queue_size = max_queue_size
        self._sessions: dict[int, GuildSession] = {}
        self._lock = asyncio.Lock()

    async def get_or_create(self, guild_id: int) -> GuildSession:
        """Return the guild's live session, creating it on first use."""
        session = self._sessions.get(guild_id)
        if session is not None and not session.is_terminated:
            return session

        async with self._lock:
            session = self._sessions.get(guild_id)
            if session is not None and not session.is_terminated:
                return session

            session = GuildSession(
                guild_id,
                resolver=self._resolver,
                pipe_factory=self._pipe_factory,
                event_bus=self._event_bus,
                settings=self._playback_settings,
                max_queue_size=self._max_queue_size,
                on_terminated=self._on_session_terminated,
            )
            self._sessions[guild_id] = session
            session.start()
            logger.info(LogTemplates.SESSION_CREATED, guild_id)
            return session

    def get(self, guild_id: int) -> GuildSession | None:
        session = self._sessions.get(guild_id)
        if session is None or session.is_terminated:
            return None
        return session

    def remove(self, guild_id: int, session: GuildSession | None = None) -> bool:
        """Drop a guild's entry.

        When ``session`` is given, the entry is only removed if it still
        refers to that same instance.
        """
        current = self._sessions.get(guild_id)
        if current is None or (session is not None and current is not session):
            return False
        del self._sessions[guild_id]
        logger.debug(LogTemplates.SESSION_REMOVED, guild_id)
        return True

    def list_active(self) -> list[GuildSession]:
        return [s for s in self._sessions.values() if not s.is_terminated]

    def __len__(self) -> int:
        return len(self.list_active())

    def __contains__(self, guild_id: int) -> bool:
        return self.get(guild_id) is not None

    async def shutdown(self) -> None:
        """Terminate every session and wait for their events to flush."""
        sessions = self.list_active()
        if not sessions:
            return
        logger.info(LogTemplates.REGISTRY_SHUTDOWN, len(sessions))
        async with asyncio.TaskGroup() as tg:
            for session in sessions:
                tg.create_task(self._shutdown_session(session))

    @staticmethod
    async def _shutdown_session(session: GuildSession) -> None:
        await session.terminate(TerminationReason.SHUTDOWN)
        await session.wait_closed()

    def _on_session_terminated(self, session: GuildSession) -> None:
        self.remove(session.guild_id, session)
