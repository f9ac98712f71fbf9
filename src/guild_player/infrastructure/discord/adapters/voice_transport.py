"""Discord voice transport streaming raw PCM frames through a VoiceClient."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import discord

from guild_player.application.interfaces.voice_transport import VoiceTransport
from guild_player.domain.shared.constants import TimeConstants
from guild_player.domain.shared.exceptions import TransportError
from guild_player.domain.shared.messages import ErrorMessages, LogTemplates

logger = logging.getLogger(__name__)


def listeners_in(channel: discord.VoiceChannel | discord.StageChannel) -> frozenset[int]:
    """Ids of the non-bot, non-deafened members in a voice channel."""
    listeners: set[int] = set()
    for member in channel.members:
        if member.bot:
            continue
        if member.voice and (member.voice.deaf or member.voice.self_deaf):
            continue
        listeners.add(member.id)
    return frozenset(listeners)


class DiscordVoiceTransport(VoiceTransport):
    """VoiceTransport over ``discord.VoiceClient.send_audio_packet``.

    discord.py reconnects the voice websocket by itself; this adapter only
    relays the bot's own voice-state changes to the registered callbacks.
    Those are delivered by the music cog's ``on_voice_state_update`` listener
    through ``notify_disconnected`` and ``notify_reconnected``.
    """

    def __init__(self, voice_client: discord.VoiceClient) -> None:
        self._vc = voice_client
        self._on_disconnect: list[Callable[[], None]] = []
        self._on_reconnect: list[Callable[[], None]] = []
        self._leaving = False
        self._lost = False

    @classmethod
    async def connect(
        cls,
        channel: discord.VoiceChannel | discord.StageChannel,
        *,
        timeout: float = TimeConstants.VOICE_CONNECT_TIMEOUT,
    ) -> DiscordVoiceTransport:
        """Join a voice channel. Raises ``TransportError`` on failure."""
        try:
            async with asyncio.timeout(timeout):
                vc = await channel.connect(self_deaf=True, reconnect=True)
        except TimeoutError as e:
            logger.error(LogTemplates.VOICE_CONNECTION_TIMEOUT, channel.id)
            raise TransportError(ErrorMessages.NO_VOICE_TRANSPORT) from e
        except discord.Forbidden as e:
            logger.error(LogTemplates.VOICE_NO_PERMISSION, channel.id)
            raise TransportError(ErrorMessages.NO_VOICE_TRANSPORT) from e
        except discord.ClientException as e:
            logger.error(LogTemplates.VOICE_CLIENT_ERROR, e)
            raise TransportError(ErrorMessages.NO_VOICE_TRANSPORT) from e

        logger.info(LogTemplates.VOICE_CONNECTED, channel.name, channel.guild.name)
        return cls(vc)

    @property
    def voice_client(self) -> discord.VoiceClient:
        return self._vc

    @property
    def guild_id(self) -> int:
        return self._vc.guild.id

    @property
    def channel_id(self) -> int | None:
        channel = self._vc.channel
        return channel.id if channel is not None else None

    @property
    def listeners(self) -> frozenset[int]:
        """Who is listening in the bot's channel."""
        channel = self._vc.channel
        if not isinstance(channel, discord.VoiceChannel | discord.StageChannel):
            return frozenset()
        return listeners_in(channel)

    @property
    def is_connected(self) -> bool:
        return not self._leaving and self._vc.is_connected()

    def send_frame(self, frame: bytes) -> None:
        if not self.is_connected:
            raise TransportError(ErrorMessages.NO_VOICE_TRANSPORT)
        if not self._vc.encoder:
            self._vc.encoder = discord.opus.Encoder()
        try:
            self._vc.send_audio_packet(frame, encode=True)
        except (discord.ClientException, discord.opus.OpusError, OSError) as e:
            raise TransportError(ErrorMessages.TRANSPORT_SEND_FAILED.format(error=e)) from e

    async def set_speaking(self, speaking: bool) -> None:
        state = discord.SpeakingState.voice if speaking else discord.SpeakingState.none
        try:
            await self._vc.ws.speak(state)
        except Exception as e:
            logger.debug(LogTemplates.VOICE_SPEAKING_FAILED, self.guild_id, e)

    def on_disconnect(self, callback: Callable[[], None]) -> None:
        self._on_disconnect.append(callback)

    def on_reconnect(self, callback: Callable[[], None]) -> None:
        self._on_reconnect.append(callback)

    def notify_disconnected(self) -> None:
        """The bot dropped out of voice without being asked to."""
        if self._leaving or self._lost:
            return
        self._lost = True
        logger.info(LogTemplates.VOICE_DISCONNECTED, self.guild_id)
        self._fire(self._on_disconnect, "disconnect")

    def notify_reconnected(self) -> None:
        if self._leaving or not self._lost:
            return
        self._lost = False
        self._fire(self._on_reconnect, "reconnect")

    def _fire(self, callbacks: list[Callable[[], None]], kind: str) -> None:
        for callback in list(callbacks):
            try:
                callback()
            except Exception:
                logger.exception(LogTemplates.VOICE_CALLBACK_ERROR, kind, self.guild_id)

    async def disconnect(self) -> None:
        if self._leaving:
            return
        self._leaving = True
        self._on_disconnect.clear()
        self._on_reconnect.clear()
        try:
            await self._vc.disconnect(force=True)
        except (discord.ClientException, OSError) as e:
            logger.warning(LogTemplates.VOICE_CLIENT_ERROR, e)
        logger.info(LogTemplates.VOICE_DISCONNECTED, self.guild_id)
