"""Slash-command music cog delegating to guild sessions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from guild_player.application.services.guild_session import ReplaceStatus
from guild_player.domain.shared.events import SessionTerminated
from guild_player.domain.shared.exceptions import DomainError, TransportError
from guild_player.domain.shared.messages import DiscordUIMessages, ErrorMessages, LogTemplates
from guild_player.domain.voting.value_objects import VoteResult, VoteType
from guild_player.infrastructure.discord.adapters.voice_transport import (
    DiscordVoiceTransport,
    listeners_in,
)
from guild_player.infrastructure.discord.guards.voice_guards import (
    get_member,
    get_member_voice_channel,
    member_voice_channel,
    send_ephemeral,
)
from guild_player.utils.reply import TITLE_TRUNCATE, format_queue, truncate

if TYPE_CHECKING:
    from ....application.services.guild_session import GuildSession
    from ....config.container import Container
    from ....domain.voting.entities import VoteOutcome

logger = logging.getLogger(__name__)


class MusicCog(commands.Cog):
    def __init__(self, bot: commands.Bot, container: Container) -> None:
        self.bot = bot
        self.container = container
        self._transports: dict[int, DiscordVoiceTransport] = {}

    async def cog_load(self) -> None:
        self.container.session_notifier.start()
        self.container.event_bus.subscribe(SessionTerminated, self._on_session_terminated)

    async def cog_unload(self) -> None:
        self.container.event_bus.unsubscribe(SessionTerminated, self._on_session_terminated)
        self.container.session_notifier.stop()
        self._transports.clear()

    async def _on_session_terminated(self, event: SessionTerminated) -> None:
        self._transports.pop(event.guild_id, None)

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    def _existing_session(self, interaction: discord.Interaction) -> GuildSession | None:
        if interaction.guild is None:
            return None
        return self.container.session_registry.get(interaction.guild.id)

    async def _connected_session(
        self, interaction: discord.Interaction, *, allow_outside_voice: bool = False
    ) -> GuildSession | None:
        """Session for the caller's guild with a live voice transport in their channel.

        With ``allow_outside_voice`` a caller who is not in voice still gets
        the session, but no transport is opened for them.
        """
        member = await get_member(interaction)
        if member is None:
            return None
        channel = member_voice_channel(member)
        if channel is None and not allow_outside_voice:
            await send_ephemeral(interaction, DiscordUIMessages.STATE_NEED_TO_BE_IN_VOICE)
            return None
        assert interaction.guild is not None

        session = await self.container.session_registry.get_or_create(interaction.guild.id)
        if interaction.channel_id is not None:
            self.container.session_notifier.bind_channel(
                interaction.guild.id, interaction.channel_id
            )
        if channel is None:
            return session

        transport = self._transports.get(interaction.guild.id)
        if transport is None or not transport.is_connected or session.transport is not transport:
            try:
                transport = await self._open_transport(interaction.guild, channel)
            except TransportError:
                await send_ephemeral(interaction, DiscordUIMessages.ERROR_COULD_NOT_JOIN_VOICE)
                return None
            self._transports[interaction.guild.id] = transport
            await session.attach_transport(transport)
        return session

    async def _open_transport(
        self,
        guild: discord.Guild,
        channel: discord.VoiceChannel | discord.StageChannel,
    ) -> DiscordVoiceTransport:
        vc = guild.voice_client
        if isinstance(vc, discord.VoiceClient) and vc.is_connected():
            return DiscordVoiceTransport(vc)
        if vc is not None:
            await vc.disconnect(force=True)
        return await DiscordVoiceTransport.connect(
            channel, timeout=self.container.settings.discord.connect_timeout_seconds
        )

    async def _report_error(
        self, interaction: discord.Interaction, command: str, error: Exception
    ) -> None:
        if isinstance(error, DomainError):
            await send_ephemeral(interaction, DiscordUIMessages.ERROR_GENERIC.format(error=error.message))
            return
        logger.exception(
            LogTemplates.COMMAND_FAILED,
            command,
            interaction.guild.id if interaction.guild else None,
            exc_info=error,
        )
        await send_ephemeral(interaction, DiscordUIMessages.ERROR_UNEXPECTED)

    @staticmethod
    async def _respond(interaction: discord.Interaction, message: str) -> None:
        if interaction.response.is_done():
            await interaction.followup.send(message)
        else:
            await interaction.response.send_message(message)

    @staticmethod
    def _requester_name(interaction: discord.Interaction) -> str:
        return getattr(interaction.user, "display_name", interaction.user.name)

    # ─────────────────────────────────────────────────────────────────
    # Play / Replace
    # ─────────────────────────────────────────────────────────────────

    @app_commands.command(name="play", description="Play a song by URL or search query.")
    @app_commands.describe(query="URL or search query. Leave empty to resume playback.")
    async def play(self, interaction: discord.Interaction, query: str | None = None) -> None:
        if query is None or not query.strip():
            await self._resume(interaction)
            return

        await interaction.response.defer()
        try:
            session = await self._connected_session(interaction, allow_outside_voice=True)
            if session is None:
                return
            position = await session.enqueue(
                query,
                requester_id=interaction.user.id,
                requester_name=self._requester_name(interaction),
            )
        except Exception as e:
            await self._report_error(interaction, "play", e)
            return

        in_voice = (
            isinstance(interaction.user, discord.Member)
            and member_voice_channel(interaction.user) is not None
        )
        template = DiscordUIMessages.QUEUED if in_voice else DiscordUIMessages.QUEUED_NOT_IN_VOICE
        await interaction.followup.send(
            template.format(title=truncate(query.strip(), TITLE_TRUNCATE), position=position + 1)
        )

    @app_commands.command(
        name="replace", description="Replace the last song you queued with a different one."
    )
    @app_commands.describe(query="URL or search query")
    async def replace(self, interaction: discord.Interaction, query: str) -> None:
        await interaction.response.defer()
        try:
            session = await self._connected_session(interaction)
            if session is None:
                return
            result = await session.replace(
                query,
                requester_id=interaction.user.id,
                requester_name=self._requester_name(interaction),
            )
        except Exception as e:
            await self._report_error(interaction, "replace", e)
            return

        new_title = truncate(result.request.display_title, TITLE_TRUNCATE)
        match result.status:
            case ReplaceStatus.QUEUED:
                message = DiscordUIMessages.REPLACED_NOTHING.format(new=new_title)
            case _:
                assert result.replaced is not None
                message = DiscordUIMessages.REPLACED.format(
                    old=truncate(result.replaced.display_title, TITLE_TRUNCATE), new=new_title
                )
        await interaction.followup.send(message)

    # ─────────────────────────────────────────────────────────────────
    # Transport controls
    # ─────────────────────────────────────────────────────────────────

    @app_commands.command(name="skip", description="Vote to skip the current song.")
    async def skip(self, interaction: discord.Interaction) -> None:
        outcome = await self._vote(interaction, VoteType.SKIP)
        if outcome is None:
            return
        if not outcome.action_executed:
            await self._report_vote(interaction, outcome)
            return

        assert outcome.track is not None
        await interaction.response.send_message(
            DiscordUIMessages.SKIPPED.format(
                title=truncate(outcome.track.display_title, TITLE_TRUNCATE)
            )
        )

    @app_commands.command(name="pause", description="Pause playback.")
    async def pause(self, interaction: discord.Interaction) -> None:
        session = self._existing_session(interaction)
        if session is None:
            await send_ephemeral(interaction, DiscordUIMessages.STATE_NOTHING_PLAYING)
            return
        try:
            paused = await session.pause()
        except Exception as e:
            await self._report_error(interaction, "pause", e)
            return

        if not paused:
            await send_ephemeral(interaction, DiscordUIMessages.STATE_NOTHING_PLAYING)
            return
        await interaction.response.send_message(DiscordUIMessages.PAUSED)

    @app_commands.command(name="resume", description="Resume paused playback or a halted queue.")
    async def resume(self, interaction: discord.Interaction) -> None:
        await self._resume(interaction)

    async def _resume(self, interaction: discord.Interaction) -> None:
        session = self._existing_session(interaction)
        if session is None:
            await send_ephemeral(interaction, DiscordUIMessages.STATE_NOT_PAUSED)
            return
        await interaction.response.defer()
        try:
            if session.transport is None or not session.transport.is_connected:
                session = await self._connected_session(interaction)
                if session is None:
                    return
            resumed = await session.resume()
        except Exception as e:
            await self._report_error(interaction, "resume", e)
            return

        if not resumed:
            await send_ephemeral(interaction, DiscordUIMessages.STATE_NOT_PAUSED)
            return
        await self._respond(interaction, DiscordUIMessages.RESUMED)

    @app_commands.command(name="stop", description="Vote to stop playback and keep the queue.")
    async def stop(self, interaction: discord.Interaction) -> None:
        outcome = await self._vote(interaction, VoteType.STOP)
        if outcome is None:
            return
        if not outcome.action_executed:
            await self._report_vote(interaction, outcome)
            return
        await interaction.response.send_message(DiscordUIMessages.STOPPED)

    async def _vote(
        self, interaction: discord.Interaction, vote_type: VoteType
    ) -> VoteOutcome | None:
        """Cast the caller's vote, counting the listeners in the bot's channel."""
        channel = await get_member_voice_channel(interaction)
        if channel is None:
            return None
        session = self._existing_session(interaction)
        if session is None:
            await send_ephemeral(interaction, DiscordUIMessages.STATE_NOTHING_PLAYING)
            return None

        assert interaction.guild is not None
        transport = self._transports.get(interaction.guild.id)
        if transport is not None and transport.is_connected:
            listeners = transport.listeners
        else:
            listeners = listeners_in(channel)

        try:
            if vote_type is VoteType.SKIP:
                return await session.vote_skip(interaction.user.id, listeners)
            return await session.vote_stop(interaction.user.id, listeners)
        except Exception as e:
            await self._report_error(interaction, vote_type.value, e)
            return None

    async def _report_vote(self, interaction: discord.Interaction, outcome: VoteOutcome) -> None:
        action = outcome.vote_type.value
        match outcome.result:
            case VoteResult.NEEDS_MORE_VOTES:
                await self._respond(
                    interaction,
                    DiscordUIMessages.VOTE_NEEDS_MORE.format(
                        action=action,
                        votes=outcome.votes,
                        required=outcome.required,
                        remaining=outcome.remaining,
                    ),
                )
            case VoteResult.ALREADY_VOTED:
                await send_ephemeral(
                    interaction,
                    DiscordUIMessages.VOTE_ALREADY_VOTED.format(
                        action=action, votes=outcome.votes, required=outcome.required
                    ),
                )
            case VoteResult.NOT_IN_CHANNEL:
                await send_ephemeral(interaction, DiscordUIMessages.VOTE_NOT_IN_CHANNEL)
            case _:
                await send_ephemeral(interaction, DiscordUIMessages.STATE_NOTHING_PLAYING)

    @app_commands.command(name="leave", description="Stop playback, clear the queue and leave voice.")
    async def leave(self, interaction: discord.Interaction) -> None:
        session = self._existing_session(interaction)
        if session is None:
            vc = interaction.guild.voice_client if interaction.guild else None
            if vc is None:
                await send_ephemeral(interaction, DiscordUIMessages.STATE_NOTHING_PLAYING)
                return
            await vc.disconnect(force=True)
            await interaction.response.send_message(DiscordUIMessages.LEFT)
            return
        try:
            await session.stop(leave=True)
        except Exception as e:
            await self._report_error(interaction, "leave", e)
            return
        await interaction.response.send_message(DiscordUIMessages.LEFT)

    # ─────────────────────────────────────────────────────────────────
    # Queue
    # ─────────────────────────────────────────────────────────────────

    @app_commands.command(name="queue", description="Show the current song and what's up next.")
    async def queue(self, interaction: discord.Interaction) -> None:
        session = self._existing_session(interaction)
        if session is None:
            await send_ephemeral(interaction, DiscordUIMessages.STATE_QUEUE_EMPTY)
            return
        try:
            now_playing = await session.now_playing()
            pending = await session.queue_snapshot()
        except Exception as e:
            await self._report_error(interaction, "queue", e)
            return
        await send_ephemeral(interaction, format_queue(pending, now_playing=now_playing))

    # ─────────────────────────────────────────────────────────────────
    # Voice Events
    # ─────────────────────────────────────────────────────────────────

    @commands.Cog.listener()
    async def on_voice_state_update(
        self, member: discord.Member, before: discord.VoiceState, after: discord.VoiceState
    ) -> None:
        if self.bot.user is None or member.id != self.bot.user.id:
            return

        transport = self._transports.get(member.guild.id)
        if transport is None:
            return

        if before.channel is not None and after.channel is None:
            transport.notify_disconnected()
        elif before.channel is None and after.channel is not None:
            transport.notify_reconnected()


async def setup(bot: commands.Bot) -> None:
    container = getattr(bot, "container", None)
    if container is None:
        raise RuntimeError(ErrorMessages.CONTAINER_NOT_FOUND)

    await bot.add_cog(MusicCog(bot, container))
