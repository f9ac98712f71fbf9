"""Dependency Injection Container

Manages the application's dependency graph, providing lazy initialization
and lifecycle management for the event bus, external tool adapters, the
session registry and the Discord-side helpers. Components are created
on-demand and cached for reuse throughout the application.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from guild_player.domain.shared.messages import ErrorMessages

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from discord.ext.commands import Bot

    from ..application.interfaces.audio_pipe import AudioPipeFactory
    from ..application.interfaces.track_resolver import TrackResolver
    from ..application.services.session_registry import SessionRegistry
    from ..domain.shared.events import EventBus
    from ..infrastructure.audio.process_limiter import ProcessLimiter
    from ..infrastructure.discord.services.session_notifier import SessionNotifier
    from .settings import Settings


@dataclass
class Container:
    """Dependency injection container.

    This container manages all application dependencies and their lifecycle.
    Components are lazily initialized when first accessed.
    """

    settings: Settings
    _bot: Bot | None = None

    # Cross-cutting
    _event_bus: EventBus | None = None
    _process_limiter: ProcessLimiter | None = None

    # Infrastructure adapters
    _track_resolver: TrackResolver | None = None
    _pipe_factory: AudioPipeFactory | None = None

    # Application services
    _session_registry: SessionRegistry | None = None

    # Discord helpers
    _session_notifier: SessionNotifier | None = None

    def set_bot(self, bot: Bot) -> None:
        """Set the Discord bot instance."""
        self._bot = bot

    @property
    def bot(self) -> Bot:
        """Get the Discord bot instance."""
        if self._bot is None:
            raise RuntimeError(ErrorMessages.BOT_NOT_INITIALIZED)
        return self._bot

    # === Cross-cutting ===

    @property
    def event_bus(self) -> EventBus:
        """Get the event bus that carries session events."""
        if self._event_bus is None:
            from ..domain.shared.events import EventBus

            self._event_bus = EventBus()
        return self._event_bus

    @property
    def process_limiter(self) -> ProcessLimiter:
        """Get the process-wide subprocess cap shared by yt-dlp and ffmpeg."""
        if self._process_limiter is None:
            from ..infrastructure.audio.process_limiter import ProcessLimiter

            self._process_limiter = ProcessLimiter(self.settings.audio.max_processes)
        return self._process_limiter

    # === Infrastructure Adapters ===

    @property
    def track_resolver(self) -> TrackResolver:
        if self._track_resolver is None:
            from ..infrastructure.audio.ytdlp_resolver import YtDlpResolver

            self._track_resolver = YtDlpResolver(
                settings=self.settings.audio, limiter=self.process_limiter
            )
        return self._track_resolver

    @property
    def pipe_factory(self) -> AudioPipeFactory:
        if self._pipe_factory is None:
            from ..infrastructure.audio.ffmpeg_pipe import FFmpegPipeFactory

            self._pipe_factory = FFmpegPipeFactory(
                settings=self.settings.audio, limiter=self.process_limiter
            )
        return self._pipe_factory

    # === Application Services ===

    @property
    def session_registry(self) -> SessionRegistry:
        """Get the guild -> session registry."""
        if self._session_registry is None:
            from ..application.services.session_registry import SessionRegistry

            self._session_registry = SessionRegistry(
                resolver=self.track_resolver,
                pipe_factory=self.pipe_factory,
                event_bus=self.event_bus,
                playback_settings=self.settings.playback,
                max_queue_size=self.settings.audio.max_queue_size,
            )
        return self._session_registry

    # === Discord Helpers ===

    @property
    def session_notifier(self) -> SessionNotifier:
        if self._session_notifier is None:
            from ..infrastructure.discord.services.session_notifier import SessionNotifier

            self._session_notifier = SessionNotifier(self.bot, self.event_bus)
        return self._session_notifier

    # === Lifecycle ===

    async def initialize(self) -> None:
        """Build the eagerly needed components."""
        _ = self.session_registry
        logger.debug("Container initialized (process limit %d)", self.process_limiter.limit)

    async def shutdown(self) -> None:
        """Stop every session and detach subscribers."""
        if self._session_registry is not None:
            try:
                await self._session_registry.shutdown()
            except Exception as exc:
                logger.warning("Failed stopping guild sessions: %r", exc)

        if self._session_notifier is not None:
            self._session_notifier.stop()

        if self._event_bus is not None:
            self._event_bus.clear()


def create_container(settings: Settings) -> Container:
    """Create a new dependency injection container."""
    return Container(settings)
