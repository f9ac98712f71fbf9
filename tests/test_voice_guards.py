"""Tests for the voice guard helpers used by slash commands."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from guild_player.domain.shared.messages import DiscordUIMessages
from guild_player.infrastructure.discord.guards.voice_guards import (
    get_member,
    get_member_voice_channel,
    member_voice_channel,
    send_ephemeral,
)


def _make_interaction(
    *,
    in_guild: bool = True,
    user_is_member: bool = True,
    in_voice: bool = True,
    channel_type: type = discord.VoiceChannel,
    responded: bool = False,
) -> MagicMock:
    interaction = MagicMock(spec=discord.Interaction)
    interaction.response = MagicMock()
    interaction.response.is_done = MagicMock(return_value=responded)
    interaction.response.send_message = AsyncMock()
    interaction.followup = MagicMock()
    interaction.followup.send = AsyncMock()
    interaction.guild = MagicMock() if in_guild else None

    if user_is_member:
        user = MagicMock(spec=discord.Member)
        if in_voice:
            user.voice = MagicMock()
            user.voice.channel = MagicMock(spec=channel_type)
        else:
            user.voice = None
    else:
        user = MagicMock(spec=discord.User)
    interaction.user = user
    return interaction


# =============================================================================
# send_ephemeral
# =============================================================================


class TestSendEphemeral:
    @pytest.mark.asyncio
    async def test_fresh_interaction_uses_response(self):
        interaction = _make_interaction()

        await send_ephemeral(interaction, "hi")

        interaction.response.send_message.assert_awaited_once_with("hi", ephemeral=True)
        interaction.followup.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_responded_interaction_uses_followup(self):
        interaction = _make_interaction(responded=True)

        await send_ephemeral(interaction, "hi")

        interaction.followup.send.assert_awaited_once_with("hi", ephemeral=True)


# =============================================================================
# get_member / get_member_voice_channel
# =============================================================================


class TestGetMember:
    @pytest.mark.asyncio
    async def test_returns_member(self):
        interaction = _make_interaction()

        assert await get_member(interaction) is interaction.user

    @pytest.mark.asyncio
    async def test_dm_rejected(self):
        interaction = _make_interaction(in_guild=False)

        assert await get_member(interaction) is None
        interaction.response.send_message.assert_awaited_once_with(
            DiscordUIMessages.STATE_SERVER_ONLY, ephemeral=True
        )

    @pytest.mark.asyncio
    async def test_non_member_user_rejected(self):
        interaction = _make_interaction(user_is_member=False)

        assert await get_member(interaction) is None


class TestGetMemberVoiceChannel:
    @pytest.mark.asyncio
    async def test_returns_voice_channel(self):
        interaction = _make_interaction()

        assert await get_member_voice_channel(interaction) is interaction.user.voice.channel

    @pytest.mark.asyncio
    async def test_stage_channel_accepted(self):
        interaction = _make_interaction(channel_type=discord.StageChannel)

        assert await get_member_voice_channel(interaction) is not None

    @pytest.mark.asyncio
    async def test_not_in_voice(self):
        interaction = _make_interaction(in_voice=False)

        assert await get_member_voice_channel(interaction) is None
        interaction.response.send_message.assert_awaited_once_with(
            DiscordUIMessages.STATE_NEED_TO_BE_IN_VOICE, ephemeral=True
        )

    @pytest.mark.asyncio
    async def test_non_voice_channel_rejected(self):
        interaction = _make_interaction(channel_type=discord.TextChannel)

        assert await get_member_voice_channel(interaction) is None


class TestMemberVoiceChannel:
    def test_returns_channel_without_replying(self):
        interaction = _make_interaction()

        assert member_voice_channel(interaction.user) is interaction.user.voice.channel
        interaction.response.send_message.assert_not_called()

    def test_not_in_voice_returns_none_silently(self):
        interaction = _make_interaction(in_voice=False)

        assert member_voice_channel(interaction.user) is None
        interaction.response.send_message.assert_not_called()
