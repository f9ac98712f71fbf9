"""Session notifier.

Renders structured session events as chat messages in the text channel each
guild last issued a playback command from.

This is intentionally in-memory; channel bindings reset on bot restart.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord

from guild_player.domain.music.value_objects import TerminationReason, TrackEndReason
from guild_player.domain.shared.datetime_utils import format_duration
from guild_player.domain.shared.events import (
    AdvanceHalted,
    QueueEmptied,
    ResolveFailed,
    SessionEvent,
    SessionTerminated,
    TrackEnded,
    TrackStarted,
    VoiceDisconnected,
)
from guild_player.domain.shared.messages import DiscordUIMessages, LogTemplates
from guild_player.utils.reply import truncate

if TYPE_CHECKING:
    from ....domain.shared.events import EventBus

logger = logging.getLogger(__name__)

# Terminations the user asked for are already acknowledged by the command reply
_SILENT_TERMINATIONS = frozenset({TerminationReason.LEFT, TerminationReason.SHUTDOWN})


def render_event(event: SessionEvent) -> str | None:
    """Chat text for an event, or None when the event is not announced."""
    match event:
        case TrackStarted():
            duration = (
                f" ({format_duration(event.duration_seconds)})"
                if event.duration_seconds
                else ""
            )
            return DiscordUIMessages.NOTIFY_TRACK_STARTED.format(
                title=truncate(event.title, 80), duration=duration
            )
        case TrackEnded(reason=TrackEndReason.FAILED):
            return DiscordUIMessages.NOTIFY_TRACK_FAILED.format(title=truncate(event.title, 80))
        case QueueEmptied():
            return DiscordUIMessages.NOTIFY_QUEUE_EMPTIED
        case ResolveFailed():
            return DiscordUIMessages.NOTIFY_RESOLVE_FAILED.format(
                query=truncate(event.query, 80), reason=event.reason
            )
        case AdvanceHalted():
            return DiscordUIMessages.NOTIFY_ADVANCE_HALTED.format(remaining=event.remaining)
        case VoiceDisconnected():
            return DiscordUIMessages.NOTIFY_VOICE_LOST.format(grace=event.grace_seconds)
        case SessionTerminated() if event.reason not in _SILENT_TERMINATIONS:
            return DiscordUIMessages.NOTIFY_SESSION_TERMINATED.format(reason=event.reason.value)
        case _:
            return None


class SessionNotifier:
    """Subscribes to every session event and posts the ones worth announcing."""

    def __init__(self, client: discord.Client, event_bus: EventBus) -> None:
        self._client = client
        self._event_bus = event_bus
        self._channels: dict[int, int] = {}
        self._subscribed = False

    def start(self) -> None:
        if not self._subscribed:
            self._event_bus.subscribe(SessionEvent, self.handle)
            self._subscribed = True

    def stop(self) -> None:
        if self._subscribed:
            self._event_bus.unsubscribe(SessionEvent, self.handle)
            self._subscribed = False
        self._channels.clear()

    def bind_channel(self, guild_id: int, channel_id: int) -> None:
        self._channels[guild_id] = channel_id

    def channel_for(self, guild_id: int) -> int | None:
        return self._channels.get(guild_id)

    async def handle(self, event: SessionEvent) -> None:
        channel_id = self.channel_for(event.guild_id)
        if isinstance(event, SessionTerminated):
            self._channels.pop(event.guild_id, None)
        if channel_id is None:
            return

        text = render_event(event)
        if text is None:
            return

        channel = self._client.get_channel(channel_id)
        if not isinstance(channel, discord.abc.Messageable):
            return
        try:
            await channel.send(text)
        except discord.HTTPException as e:
            logger.warning(LogTemplates.NOTIFY_SEND_FAILED, channel_id, e)
