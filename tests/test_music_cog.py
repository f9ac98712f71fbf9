"""
Unit Tests for MusicCog

Tests for all slash commands:
- /play, /replace, /skip, /pause, /resume, /stop, /leave, /queue
- Listener votes for /skip and /stop
- Voice guard failures and voice connection failures
- Domain and unexpected error reporting
- Bot voice-state relaying to the transport
- Cog load/unload wiring and setup()

Sessions, the registry and the notifier are mocked; commands are invoked
through their callbacks.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import discord
import pytest

from guild_player.application.services.guild_session import ReplaceResult, ReplaceStatus
from guild_player.domain.music.entities import TrackInfo, TrackRequest
from guild_player.domain.music.value_objects import TerminationReason
from guild_player.domain.shared.events import SessionTerminated
from guild_player.domain.shared.exceptions import BusinessRuleViolationError, TransportError
from guild_player.domain.shared.messages import DiscordUIMessages
from guild_player.domain.voting.entities import VoteOutcome
from guild_player.domain.voting.value_objects import VoteResult, VoteType
from guild_player.infrastructure.discord.cogs.music_cog import MusicCog, setup

GUILD_ID = 111111111
USER_ID = 222222222
OTHER_USER_ID = 333333333
BOT_ID = 999999999
TEXT_CHANNEL_ID = 444444444

CONNECT = "guild_player.infrastructure.discord.cogs.music_cog.DiscordVoiceTransport.connect"


def make_request(query: str = "song", title: str | None = None) -> TrackRequest:
    req = TrackRequest(query=query, requester_id=USER_ID)
    if title:
        req = req.with_info(TrackInfo(title=title, source_url="https://cdn/x"))
    return req


def make_interaction(*, in_guild: bool = True, in_voice: bool = True) -> MagicMock:
    """Interaction whose response flips to done once anything is sent or deferred."""
    interaction = MagicMock()
    state = {"done": False}

    async def respond(*args, **kwargs):
        state["done"] = True

    interaction.response.is_done = MagicMock(side_effect=lambda: state["done"])
    interaction.response.defer = AsyncMock(side_effect=respond)
    interaction.response.send_message = AsyncMock(side_effect=respond)
    interaction.followup.send = AsyncMock()
    interaction.channel_id = TEXT_CHANNEL_ID

    if in_guild:
        interaction.guild = MagicMock()
        interaction.guild.id = GUILD_ID
        interaction.guild.voice_client = None
    else:
        interaction.guild = None

    user = MagicMock(spec=discord.Member)
    user.id = USER_ID
    user.name = "alice"
    user.display_name = "Alice"
    if in_voice:
        user.voice = MagicMock()
        user.voice.channel = MagicMock(spec=discord.VoiceChannel)
        user.voice.channel.id = 555555555
    else:
        user.voice = None
    interaction.user = user
    return interaction


def sent_messages(interaction: MagicMock) -> list[str]:
    calls = (
        interaction.response.send_message.call_args_list
        + interaction.followup.send.call_args_list
    )
    return [c.args[0] for c in calls if c.args]


@pytest.fixture
def mock_session():
    session = MagicMock()
    session.transport = None
    session.enqueue = AsyncMock(return_value=0)
    session.replace = AsyncMock()
    session.pause = AsyncMock(return_value=True)
    session.resume = AsyncMock(return_value=True)
    session.stop = AsyncMock()
    session.vote_skip = AsyncMock()
    session.vote_stop = AsyncMock()
    session.attach_transport = AsyncMock()
    session.queue_snapshot = AsyncMock(return_value=())
    session.now_playing = AsyncMock(return_value=None)
    return session


@pytest.fixture
def mock_container(mock_session):
    container = MagicMock()
    container.session_registry.get = MagicMock(return_value=mock_session)
    container.session_registry.get_or_create = AsyncMock(return_value=mock_session)
    container.session_notifier = MagicMock()
    container.event_bus = MagicMock()
    container.settings.discord.connect_timeout_seconds = 5.0
    return container


@pytest.fixture
def mock_bot():
    bot = MagicMock()
    bot.user = MagicMock()
    bot.user.id = BOT_ID
    bot.add_cog = AsyncMock()
    return bot


@pytest.fixture
def cog(mock_bot, mock_container):
    return MusicCog(mock_bot, mock_container)


@pytest.fixture
def transport():
    t = MagicMock()
    t.is_connected = True
    return t


# =============================================================================
# /play
# =============================================================================


class TestPlayCommand:
    """Tests for /play."""

    @pytest.mark.asyncio
    async def test_play_joins_voice_and_enqueues(
        self, cog, mock_container, mock_session, transport
    ):
        interaction = make_interaction()
        mock_session.enqueue.return_value = 2

        with patch(CONNECT, AsyncMock(return_value=transport)) as connect:
            await cog.play.callback(cog, interaction, "  test song ")

        connect.assert_awaited_once()
        mock_session.attach_transport.assert_awaited_once_with(transport)
        mock_session.enqueue.assert_awaited_once_with(
            "  test song ", requester_id=USER_ID, requester_name="Alice"
        )
        mock_container.session_notifier.bind_channel.assert_called_once_with(
            GUILD_ID, TEXT_CHANNEL_ID
        )
        assert sent_messages(interaction) == [
            DiscordUIMessages.QUEUED.format(title="test song", position=3)
        ]

    @pytest.mark.asyncio
    async def test_play_reuses_connected_transport(self, cog, mock_session, transport):
        """Should not reconnect when the session already streams to our transport."""
        with patch(CONNECT, AsyncMock(return_value=transport)) as connect:
            await cog.play.callback(cog, make_interaction(), "one")
            mock_session.transport = transport
            await cog.play.callback(cog, make_interaction(), "two")

        assert connect.await_count == 1
        assert mock_session.enqueue.await_count == 2

    @pytest.mark.asyncio
    async def test_play_outside_voice_keeps_song_queued(self, cog, mock_session):
        """Should queue without joining voice when the caller is not in a channel."""
        interaction = make_interaction(in_voice=False)

        with patch(CONNECT, AsyncMock()) as connect:
            await cog.play.callback(cog, interaction, "song")

        connect.assert_not_called()
        mock_session.attach_transport.assert_not_called()
        mock_session.enqueue.assert_awaited_once_with(
            "song", requester_id=USER_ID, requester_name="Alice"
        )
        assert sent_messages(interaction) == [
            DiscordUIMessages.QUEUED_NOT_IN_VOICE.format(title="song", position=1)
        ]

    @pytest.mark.asyncio
    async def test_play_outside_guild(self, cog, mock_container):
        interaction = make_interaction(in_guild=False)

        await cog.play.callback(cog, interaction, "song")

        mock_container.session_registry.get_or_create.assert_not_called()
        assert sent_messages(interaction) == [DiscordUIMessages.STATE_SERVER_ONLY]

    @pytest.mark.asyncio
    async def test_replace_requires_voice(self, cog, mock_session):
        interaction = make_interaction(in_voice=False)

        await cog.replace.callback(cog, interaction, "song")

        mock_session.replace.assert_not_called()
        interaction.followup.send.assert_awaited_once_with(
            DiscordUIMessages.STATE_NEED_TO_BE_IN_VOICE, ephemeral=True
        )

    @pytest.mark.asyncio
    async def test_play_voice_connect_failure(self, cog, mock_session):
        interaction = make_interaction()

        with patch(CONNECT, AsyncMock(side_effect=TransportError("nope"))):
            await cog.play.callback(cog, interaction, "song")

        mock_session.enqueue.assert_not_called()
        assert sent_messages(interaction) == [DiscordUIMessages.ERROR_COULD_NOT_JOIN_VOICE]

    @pytest.mark.asyncio
    async def test_play_domain_error_is_reported(self, cog, mock_session, transport):
        interaction = make_interaction()
        mock_session.enqueue.side_effect = BusinessRuleViolationError(
            "queue_full", "Queue is full"
        )

        with patch(CONNECT, AsyncMock(return_value=transport)):
            await cog.play.callback(cog, interaction, "song")

        assert sent_messages(interaction) == [
            DiscordUIMessages.ERROR_GENERIC.format(error="Queue is full")
        ]

    @pytest.mark.asyncio
    async def test_play_unexpected_error_is_hidden(self, cog, mock_session, transport):
        interaction = make_interaction()
        mock_session.enqueue.side_effect = RuntimeError("internal detail")

        with patch(CONNECT, AsyncMock(return_value=transport)):
            await cog.play.callback(cog, interaction, "song")

        assert sent_messages(interaction) == [DiscordUIMessages.ERROR_UNEXPECTED]

    @pytest.mark.asyncio
    async def test_play_without_query_resumes(self, cog, mock_session, transport):
        mock_session.transport = transport
        interaction = make_interaction()

        await cog.play.callback(cog, interaction, None)

        mock_session.resume.assert_awaited_once()
        mock_session.enqueue.assert_not_called()
        assert sent_messages(interaction) == [DiscordUIMessages.RESUMED]


# =============================================================================
# /replace
# =============================================================================


class TestReplaceCommand:
    """Tests for /replace."""

    @pytest.mark.asyncio
    async def test_replace_in_queue(self, cog, mock_session, transport):
        interaction = make_interaction()
        mock_session.replace.return_value = ReplaceResult(
            status=ReplaceStatus.REPLACED_IN_QUEUE,
            request=make_request("new"),
            replaced=make_request("old"),
            position=1,
        )

        with patch(CONNECT, AsyncMock(return_value=transport)):
            await cog.replace.callback(cog, interaction, "new")

        assert sent_messages(interaction) == [
            DiscordUIMessages.REPLACED.format(old="old", new="new")
        ]

    @pytest.mark.asyncio
    async def test_replace_current_uses_resolved_title(self, cog, mock_session, transport):
        interaction = make_interaction()
        mock_session.replace.return_value = ReplaceResult(
            status=ReplaceStatus.REPLACED_CURRENT,
            request=make_request("new"),
            replaced=make_request("old", title="Old Song"),
        )

        with patch(CONNECT, AsyncMock(return_value=transport)):
            await cog.replace.callback(cog, interaction, "new")

        assert "Old Song" in sent_messages(interaction)[0]

    @pytest.mark.asyncio
    async def test_replace_with_nothing_queued(self, cog, mock_session, transport):
        interaction = make_interaction()
        mock_session.replace.return_value = ReplaceResult(
            status=ReplaceStatus.QUEUED, request=make_request("new"), position=0
        )

        with patch(CONNECT, AsyncMock(return_value=transport)):
            await cog.replace.callback(cog, interaction, "new")

        assert sent_messages(interaction) == [
            DiscordUIMessages.REPLACED_NOTHING.format(new="new")
        ]


# =============================================================================
# Transport controls
# =============================================================================


class TestControlCommands:
    """Tests for /pause, /resume and /leave."""

    @pytest.mark.asyncio
    async def test_pause(self, cog, mock_session):
        interaction = make_interaction()

        await cog.pause.callback(cog, interaction)

        assert sent_messages(interaction) == [DiscordUIMessages.PAUSED]

    @pytest.mark.asyncio
    async def test_pause_when_not_playing(self, cog, mock_session):
        mock_session.pause.return_value = False
        interaction = make_interaction()

        await cog.pause.callback(cog, interaction)

        assert sent_messages(interaction) == [DiscordUIMessages.STATE_NOTHING_PLAYING]

    @pytest.mark.asyncio
    async def test_resume_reconnects_lost_transport(self, cog, mock_session, transport):
        """Should rejoin voice before resuming when the transport dropped."""
        interaction = make_interaction()

        with patch(CONNECT, AsyncMock(return_value=transport)) as connect:
            await cog.resume.callback(cog, interaction)

        connect.assert_awaited_once()
        mock_session.attach_transport.assert_awaited_once_with(transport)
        mock_session.resume.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_resume_with_nothing_to_resume(self, cog, mock_session, transport):
        mock_session.transport = transport
        mock_session.resume.return_value = False
        interaction = make_interaction()

        await cog.resume.callback(cog, interaction)

        interaction.followup.send.assert_awaited_once_with(
            DiscordUIMessages.STATE_NOT_PAUSED, ephemeral=True
        )

    @pytest.mark.asyncio
    async def test_leave_stops_and_leaves(self, cog, mock_session):
        interaction = make_interaction()

        await cog.leave.callback(cog, interaction)

        mock_session.stop.assert_awaited_once_with(leave=True)
        assert sent_messages(interaction) == [DiscordUIMessages.LEFT]

    @pytest.mark.asyncio
    async def test_leave_without_session_disconnects_stale_client(self, cog, mock_container):
        mock_container.session_registry.get.return_value = None
        interaction = make_interaction()
        interaction.guild.voice_client = MagicMock()
        interaction.guild.voice_client.disconnect = AsyncMock()

        await cog.leave.callback(cog, interaction)

        interaction.guild.voice_client.disconnect.assert_awaited_once_with(force=True)
        assert sent_messages(interaction) == [DiscordUIMessages.LEFT]


# =============================================================================
# /skip and /stop votes
# =============================================================================


def make_member(member_id: int, *, bot: bool = False, deaf: bool = False) -> MagicMock:
    member = MagicMock()
    member.id = member_id
    member.bot = bot
    member.voice.deaf = deaf
    member.voice.self_deaf = False
    return member


def make_outcome(result: VoteResult, vote_type: VoteType = VoteType.SKIP, **kwargs) -> VoteOutcome:
    return VoteOutcome(result=result, vote_type=vote_type, **kwargs)


class TestVoteCommands:
    """Tests for vote-based /skip and /stop."""

    @pytest.mark.asyncio
    async def test_skip_counts_listeners_in_callers_channel(self, cog, mock_session):
        """Should ignore bots and deafened members when counting listeners."""
        interaction = make_interaction()
        interaction.user.voice.channel.members = [
            make_member(USER_ID),
            make_member(OTHER_USER_ID),
            make_member(BOT_ID, bot=True),
            make_member(777777777, deaf=True),
        ]
        mock_session.vote_skip.return_value = make_outcome(
            VoteResult.NEEDS_MORE_VOTES, votes=1, required=2
        )

        await cog.skip.callback(cog, interaction)

        mock_session.vote_skip.assert_awaited_once_with(
            USER_ID, frozenset({USER_ID, OTHER_USER_ID})
        )
        assert sent_messages(interaction) == [
            DiscordUIMessages.VOTE_NEEDS_MORE.format(action="skip", votes=1, required=2, remaining=1)
        ]

    @pytest.mark.asyncio
    async def test_skip_prefers_bot_channel_listeners(self, cog, mock_session, transport):
        transport.listeners = frozenset({USER_ID, OTHER_USER_ID, 777777777})
        cog._transports[GUILD_ID] = transport
        mock_session.vote_skip.return_value = make_outcome(VoteResult.NOT_IN_CHANNEL)
        interaction = make_interaction()

        await cog.skip.callback(cog, interaction)

        mock_session.vote_skip.assert_awaited_once_with(
            USER_ID, frozenset({USER_ID, OTHER_USER_ID, 777777777})
        )
        assert sent_messages(interaction) == [DiscordUIMessages.VOTE_NOT_IN_CHANNEL]

    @pytest.mark.asyncio
    async def test_skip_vote_passed_reports_title(self, cog, mock_session):
        mock_session.vote_skip.return_value = make_outcome(
            VoteResult.SUCCESS, votes=2, required=2, track=make_request("x", title="Song")
        )
        interaction = make_interaction()

        await cog.skip.callback(cog, interaction)

        assert sent_messages(interaction) == [DiscordUIMessages.SKIPPED.format(title="Song")]

    @pytest.mark.asyncio
    async def test_skip_already_voted(self, cog, mock_session):
        mock_session.vote_skip.return_value = make_outcome(
            VoteResult.ALREADY_VOTED, votes=1, required=3
        )
        interaction = make_interaction()

        await cog.skip.callback(cog, interaction)

        interaction.response.send_message.assert_awaited_once_with(
            DiscordUIMessages.VOTE_ALREADY_VOTED.format(action="skip", votes=1, required=3),
            ephemeral=True,
        )

    @pytest.mark.asyncio
    async def test_skip_nothing_playing(self, cog, mock_session):
        mock_session.vote_skip.return_value = make_outcome(VoteResult.NOTHING_PLAYING)
        interaction = make_interaction()

        await cog.skip.callback(cog, interaction)

        interaction.response.send_message.assert_awaited_once_with(
            DiscordUIMessages.STATE_NOTHING_PLAYING, ephemeral=True
        )

    @pytest.mark.asyncio
    async def test_skip_without_session(self, cog, mock_container):
        mock_container.session_registry.get.return_value = None
        interaction = make_interaction()

        await cog.skip.callback(cog, interaction)

        assert sent_messages(interaction) == [DiscordUIMessages.STATE_NOTHING_PLAYING]

    @pytest.mark.asyncio
    async def test_skip_requires_voice(self, cog, mock_session):
        interaction = make_interaction(in_voice=False)

        await cog.skip.callback(cog, interaction)

        mock_session.vote_skip.assert_not_called()
        assert sent_messages(interaction) == [DiscordUIMessages.STATE_NEED_TO_BE_IN_VOICE]

    @pytest.mark.asyncio
    async def test_skip_outside_guild(self, cog, mock_container):
        interaction = make_interaction(in_guild=False)

        await cog.skip.callback(cog, interaction)

        mock_container.session_registry.get.assert_not_called()
        assert sent_messages(interaction) == [DiscordUIMessages.STATE_SERVER_ONLY]

    @pytest.mark.asyncio
    async def test_stop_vote_passed(self, cog, mock_session):
        mock_session.vote_stop.return_value = make_outcome(
            VoteResult.SUCCESS, VoteType.STOP, votes=1, required=1
        )
        interaction = make_interaction()

        await cog.stop.callback(cog, interaction)

        mock_session.vote_stop.assert_awaited_once()
        mock_session.stop.assert_not_called()
        assert sent_messages(interaction) == [DiscordUIMessages.STOPPED]

    @pytest.mark.asyncio
    async def test_stop_needs_more_votes(self, cog, mock_session):
        mock_session.vote_stop.return_value = make_outcome(
            VoteResult.NEEDS_MORE_VOTES, VoteType.STOP, votes=1, required=3
        )
        interaction = make_interaction()

        await cog.stop.callback(cog, interaction)

        assert sent_messages(interaction) == [
            DiscordUIMessages.VOTE_NEEDS_MORE.format(action="stop", votes=1, required=3, remaining=2)
        ]

    @pytest.mark.asyncio
    async def test_vote_unexpected_error_is_hidden(self, cog, mock_session):
        mock_session.vote_stop.side_effect = RuntimeError("boom")
        interaction = make_interaction()

        await cog.stop.callback(cog, interaction)

        assert sent_messages(interaction) == [DiscordUIMessages.ERROR_UNEXPECTED]


# =============================================================================
# /queue
# =============================================================================


class TestQueueCommand:
    """Tests for /queue."""

    @pytest.mark.asyncio
    async def test_queue_lists_now_playing_and_pending(self, cog, mock_session):
        mock_session.now_playing.return_value = make_request("a", title="Current")
        mock_session.queue_snapshot.return_value = (make_request("next one"),)
        interaction = make_interaction()

        await cog.queue.callback(cog, interaction)

        message = sent_messages(interaction)[0]
        assert "Current" in message
        assert "next one" in message
        assert interaction.response.send_message.call_args.kwargs == {"ephemeral": True}

    @pytest.mark.asyncio
    async def test_queue_without_session(self, cog, mock_container):
        mock_container.session_registry.get.return_value = None
        interaction = make_interaction()

        await cog.queue.callback(cog, interaction)

        assert sent_messages(interaction) == [DiscordUIMessages.STATE_QUEUE_EMPTY]


# =============================================================================
# Voice events and lifecycle
# =============================================================================


class TestVoiceStateRelay:
    """Tests for on_voice_state_update."""

    def _member(self, member_id: int) -> MagicMock:
        member = MagicMock()
        member.id = member_id
        member.guild.id = GUILD_ID
        return member

    def _state(self, channel) -> MagicMock:
        state = MagicMock()
        state.channel = channel
        return state

    @pytest.mark.asyncio
    async def test_bot_leaving_voice_notifies_transport(self, cog, transport):
        cog._transports[GUILD_ID] = transport

        await cog.on_voice_state_update(
            self._member(BOT_ID), self._state(MagicMock()), self._state(None)
        )

        transport.notify_disconnected.assert_called_once()

    @pytest.mark.asyncio
    async def test_bot_rejoining_voice_notifies_transport(self, cog, transport):
        cog._transports[GUILD_ID] = transport

        await cog.on_voice_state_update(
            self._member(BOT_ID), self._state(None), self._state(MagicMock())
        )

        transport.notify_reconnected.assert_called_once()

    @pytest.mark.asyncio
    async def test_other_members_ignored(self, cog, transport):
        cog._transports[GUILD_ID] = transport

        await cog.on_voice_state_update(
            self._member(USER_ID), self._state(MagicMock()), self._state(None)
        )

        transport.notify_disconnected.assert_not_called()


class TestCogLifecycle:
    """Tests for cog_load, cog_unload and setup()."""

    @pytest.mark.asyncio
    async def test_cog_load_starts_notifier(self, cog, mock_container):
        await cog.cog_load()

        mock_container.session_notifier.start.assert_called_once()
        mock_container.event_bus.subscribe.assert_called_once_with(
            SessionTerminated, cog._on_session_terminated
        )

    @pytest.mark.asyncio
    async def test_cog_unload_stops_notifier(self, cog, mock_container, transport):
        cog._transports[GUILD_ID] = transport

        await cog.cog_unload()

        mock_container.session_notifier.stop.assert_called_once()
        assert cog._transports == {}

    @pytest.mark.asyncio
    async def test_session_termination_forgets_transport(self, cog, transport):
        cog._transports[GUILD_ID] = transport

        await cog._on_session_terminated(
            SessionTerminated(guild_id=GUILD_ID, reason=TerminationReason.IDLE)
        )

        assert GUILD_ID not in cog._transports

    @pytest.mark.asyncio
    async def test_setup_adds_cog(self, mock_bot, mock_container):
        mock_bot.container = mock_container

        await setup(mock_bot)

        mock_bot.add_cog.assert_awaited_once()
        assert isinstance(mock_bot.add_cog.call_args.args[0], MusicCog)

    @pytest.mark.asyncio
    async def test_setup_requires_container(self, mock_bot):
        mock_bot.container = None

        with pytest.raises(RuntimeError):
            await setup(mock_bot)
