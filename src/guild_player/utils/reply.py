"""Utility functions for formatting Discord messages."""

from __future__ import annotations

from collections.abc import Sequence
from functools import cache

from guild_player.domain.music.entities import TrackRequest
from guild_player.domain.shared.constants import LimitConstants
from guild_player.domain.shared.messages import DiscordUIMessages

TITLE_TRUNCATE = 80


@cache
def truncate(text: str, max_length: int = 90) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 1] + "…"


def format_queue(
    requests: Sequence[TrackRequest],
    *,
    now_playing: TrackRequest | None = None,
    limit: int = LimitConstants.QUEUE_DISPLAY_LIMIT,
) -> str:
    """Render the now-playing line and the first ``limit`` queued requests."""
    lines: list[str] = []
    if now_playing is not None:
        lines.append(
            DiscordUIMessages.NOW_PLAYING_LINE.format(
                title=truncate(now_playing.display_title, TITLE_TRUNCATE)
            )
        )

    if not requests:
        if not lines:
            return DiscordUIMessages.STATE_QUEUE_EMPTY
        return "\n".join(lines)

    lines.append(DiscordUIMessages.QUEUE_HEADER.format(count=len(requests)))
    for index, request in enumerate(requests[:limit], start=1):
        lines.append(
            DiscordUIMessages.QUEUE_ITEM.format(
                index=index, title=truncate(request.display_title, TITLE_TRUNCATE)
            )
        )
    if len(requests) > limit:
        lines.append(DiscordUIMessages.QUEUE_MORE.format(count=len(requests) - limit))
    return "\n".join(lines)
