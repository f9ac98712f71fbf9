"""Pydantic models for yt-dlp output parsing and command-line configuration.

These are infrastructure-specific models for parsing the JSON that
``yt-dlp --dump-json`` prints and for building its argument list.
"""

from __future__ import annotations

from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, field_validator

from guild_player.domain.music.entities import TrackInfo
from guild_player.domain.shared.constants import AudioConstants
from guild_player.domain.shared.types import (
    HttpUrlStr,
    NonEmptyStr,
    NonNegativeInt,
    PositiveInt,
)

DEFAULT_RETRIES: Final[int] = 3
DEFAULT_SOCKET_TIMEOUT: Final[int] = 10
MAX_TITLE_LENGTH: Final[int] = 500
UNKNOWN_TITLE: Final[str] = "Unknown Title"


# ── Pydantic models for yt-dlp data ────────────────────────────────────


class AudioFormatInfo(BaseModel):
    """A single format entry from yt-dlp extraction."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    url: NonEmptyStr | None = None
    acodec: NonEmptyStr | None = None


class YtDlpTrackInfo(BaseModel):
    """Trimmed yt-dlp extraction result.

    Extra fields from yt-dlp are silently ignored. Before-validators coerce
    garbage from external yt-dlp data gracefully.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    webpage_url: HttpUrlStr | None = None
    url: NonEmptyStr | None = None
    title: NonEmptyStr = UNKNOWN_TITLE
    duration: NonNegativeInt | None = None
    uploader: NonEmptyStr | None = None
    formats: list[AudioFormatInfo] = Field(default_factory=list)
    entries: list[YtDlpTrackInfo] | None = None

    @field_validator("webpage_url", "url", "uploader", mode="before")
    @classmethod
    def _coerce_empty_to_none(cls, v: Any) -> str | None:
        """Convert empty / whitespace-only / non-string values to None."""
        if not isinstance(v, str) or not v.strip():
            return None
        return v

    @field_validator("title", mode="before")
    @classmethod
    def _coerce_title(cls, v: Any) -> str:
        """Fall back to default when yt-dlp sends empty or non-string title."""
        if not isinstance(v, str) or not v.strip():
            return UNKNOWN_TITLE
        return v.strip()[:MAX_TITLE_LENGTH]

    @field_validator("duration", mode="before")
    @classmethod
    def _coerce_duration(cls, v: Any) -> int | None:
        """Coerce to non-negative int; return None for garbage values."""
        if v is None:
            return None
        try:
            val = int(v)
            return val if val >= 0 else None
        except (TypeError, ValueError):
            return None

    @field_validator("formats", mode="before")
    @classmethod
    def _coerce_formats(cls, v: Any) -> list[Any]:
        if not isinstance(v, list):
            return []
        return [f for f in v if isinstance(f, dict)]

    @field_validator("entries", mode="before")
    @classmethod
    def _coerce_entries(cls, v: Any) -> list[Any] | None:
        if v is None:
            return None
        if not isinstance(v, list):
            return []
        return [e for e in v if isinstance(e, dict)]

    @property
    def is_search_result(self) -> bool:
        return self.entries is not None

    def first_entry(self) -> YtDlpTrackInfo | None:
        """The record to play: the first search hit, or this record itself."""
        if self.entries is None:
            return self
        return self.entries[0] if self.entries else None

    @property
    def stream_url(self) -> str | None:
        """Direct media locator, falling back to the last audio-bearing format."""
        if self.url:
            return self.url
        audio_formats = [f for f in self.formats if f.acodec != "none" and f.url]
        if audio_formats:
            return audio_formats[-1].url
        return None

    def to_track_info(self) -> TrackInfo | None:
        """Convert to a domain TrackInfo, or None when there is nothing playable."""
        stream_url = self.stream_url
        if not stream_url:
            return None
        duration = self.duration if self.duration is not None and self.duration <= 86_400 else None
        return TrackInfo(
            title=self.title,
            source_url=stream_url,
            webpage_url=self.webpage_url,
            duration_seconds=duration,
        )


# ── yt-dlp option models ───────────────────────────────────────────────


class YtDlpOpts(BaseModel):
    """Typed yt-dlp options, rendered as command-line flags."""

    model_config = ConfigDict(frozen=True)

    format: NonEmptyStr = AudioConstants.YTDLP_FORMAT_DEFAULT
    noplaylist: bool = True
    forceipv4: bool = True
    no_warnings: bool = True
    retries: PositiveInt = DEFAULT_RETRIES
    socket_timeout: PositiveInt = DEFAULT_SOCKET_TIMEOUT

    def to_args(self) -> list[str]:
        args = ["--dump-json", "--no-progress", "--format", self.format]
        if self.noplaylist:
            args.append("--no-playlist")
        if self.forceipv4:
            args.append("--force-ipv4")
        if self.no_warnings:
            args.append("--no-warnings")
        args += ["--retries", str(self.retries), "--socket-timeout", str(self.socket_timeout)]
        return args
