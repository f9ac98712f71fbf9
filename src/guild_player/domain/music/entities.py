"""Core domain entities for the playback bounded context."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from guild_player.domain.shared.datetime_utils import format_duration, utcnow
from guild_player.domain.shared.messages import ErrorMessages
from guild_player.domain.shared.types import (
    DiscordSnowflake,
    DurationSeconds,
    HttpUrlStr,
    NonEmptyStr,
    TrackTitleStr,
    UtcDatetimeField,
)


class TrackInfo(BaseModel):
    """Immutable description of a resolved, playable track."""

    model_config = ConfigDict(frozen=True, strict=True)

    title: TrackTitleStr
    source_url: NonEmptyStr
    webpage_url: HttpUrlStr | None = None
    duration_seconds: DurationSeconds | None = None

    @property
    def duration_formatted(self) -> str:
        """Format duration as MM:SS or HH:MM:SS."""
        return format_duration(self.duration_seconds)

    @property
    def display_title(self) -> str:
        """Get display title with duration if available."""
        if self.duration_seconds:
            return f"{self.title} [{self.duration_formatted}]"
        return self.title


class TrackRequest(BaseModel):
    """A user's request to play something, as it sits in the queue.

    ``info`` is filled in when the query was resolved up front (for example to
    show the title on enqueue); otherwise the session resolves it when the
    request reaches the head of the queue.
    """

    model_config = ConfigDict(frozen=True, strict=True)

    query: NonEmptyStr
    requester_id: DiscordSnowflake
    requester_name: NonEmptyStr | None = None
    info: TrackInfo | None = None
    requested_at: UtcDatetimeField = Field(default_factory=utcnow)

    @field_validator("query", mode="before")
    @classmethod
    def _strip_query(cls, v: object) -> object:
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError(ErrorMessages.EMPTY_QUERY)
        return v

    @property
    def is_resolved(self) -> bool:
        return self.info is not None

    @property
    def display_title(self) -> str:
        """Title when known, otherwise the raw query."""
        if self.info is not None:
            return self.info.display_title
        return self.query

    def with_info(self, info: TrackInfo) -> TrackRequest:
        """Return a resolved copy of this request."""
        return self.model_copy(update={"info": info})

    def was_requested_by(self, user_id: DiscordSnowflake) -> bool:
        return self.requester_id == user_id
