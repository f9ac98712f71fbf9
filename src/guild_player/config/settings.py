"""Application Settings and Configuration

Pydantic-based settings management using environment variables.
Settings are loaded from environment variables with support for .env files,
type validation, and sensible defaults. All settings are frozen and immutable
after initialization.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.shared.constants import AudioConstants, LimitConstants, TimeConstants
from ..domain.shared.validators import validate_discord_snowflake


class DiscordSettings(BaseModel):
    """Discord bot configuration."""

    model_config = SettingsConfigDict(frozen=True, strict=True, populate_by_name=True)

    token: SecretStr = Field(
        default=SecretStr(""), validation_alias=AliasChoices("token", "bot_token", "discord_token")
    )
    command_prefix: str = Field(
        default="!",
        min_length=1,
        max_length=5,
        validation_alias=AliasChoices("command_prefix", "prefix"),
    )
    guild_ids: tuple[int, ...] = Field(
        default_factory=tuple, validation_alias=AliasChoices("guild_ids", "guilds")
    )
    sync_on_startup: bool = False
    connect_timeout_seconds: float = Field(
        default=TimeConstants.VOICE_CONNECT_TIMEOUT, gt=0.0, le=60.0
    )

    @field_validator("guild_ids", mode="before")
    @classmethod
    def validate_snowflake_ids(cls, v: tuple[int, ...] | list[int]) -> tuple[int, ...]:
        """Validate Discord snowflake IDs and convert lists to tuples."""
        # Convert list to tuple if needed (from JSON array in env vars)
        if isinstance(v, list):
            v = tuple(v)
        for snowflake in v:
            validate_discord_snowflake(snowflake)
        return v


class AudioSettings(BaseModel):
    """External tool configuration: yt-dlp resolution and ffmpeg transcoding."""

    model_config = SettingsConfigDict(frozen=True, strict=True, populate_by_name=True)

    ffmpeg_path: str = Field(default="ffmpeg", min_length=1)
    ffmpeg_before_options: str = AudioConstants.FFMPEG_BEFORE_OPTIONS_DEFAULT
    ffmpeg_options: str = AudioConstants.FFMPEG_OPTIONS_DEFAULT
    ytdlp_format: str = AudioConstants.YTDLP_FORMAT_DEFAULT
    resolve_timeout_seconds: float = Field(
        default=TimeConstants.RESOLVE_TIMEOUT,
        gt=0.0,
        le=300.0,
        validation_alias=AliasChoices("resolve_timeout_seconds", "resolve_timeout"),
    )
    kill_grace_seconds: float = Field(default=TimeConstants.KILL_GRACE, gt=0.0, le=30.0)
    max_processes: int = Field(default=LimitConstants.MAX_PROCESSES, ge=1, le=1000)
    max_queue_size: int = Field(default=LimitConstants.MAX_QUEUE_SIZE, ge=1, le=1000)


class PlaybackSettings(BaseModel):
    """Guild session timing and retry policy."""

    model_config = SettingsConfigDict(frozen=True, strict=True, populate_by_name=True)

    disconnect_grace_seconds: float = Field(
        default=TimeConstants.DISCONNECT_GRACE,
        ge=0.0,
        validation_alias=AliasChoices("disconnect_grace_seconds", "grace_period"),
    )
    idle_timeout_seconds: float = Field(
        default=TimeConstants.IDLE_TIMEOUT,
        gt=0.0,
        validation_alias=AliasChoices("idle_timeout_seconds", "idle_timeout"),
    )
    stall_timeout_seconds: float = Field(default=TimeConstants.STALL_TIMEOUT, gt=0.0)
    pause_buffer_frames: int = Field(default=LimitConstants.PAUSE_BUFFER_FRAMES, ge=1)
    max_consecutive_failures: int = Field(
        default=LimitConstants.MAX_CONSECUTIVE_FAILURES, ge=1, le=50
    )
    resource_retry_attempts: int = Field(default=LimitConstants.RESOURCE_RETRY_ATTEMPTS, ge=0, le=10)
    resource_retry_base_delay: float = Field(
        default=TimeConstants.RESOURCE_RETRY_BASE_DELAY, ge=0.0, le=30.0
    )
    frame_duration_seconds: float = Field(
        default=AudioConstants.FRAME_DURATION_S, gt=0.0, le=1.0
    )
    vote_ratio: float = Field(
        default=LimitConstants.VOTE_RATIO,
        gt=0.0,
        le=1.0,
        validation_alias=AliasChoices("vote_ratio", "skip_vote_ratio"),
    )

    @model_validator(mode="after")
    def _check_stall_exceeds_frame(self) -> PlaybackSettings:
        if self.stall_timeout_seconds <= self.frame_duration_seconds:
            raise ValueError("stall_timeout_seconds must exceed frame_duration_seconds")
        return self


class Settings(BaseSettings):
    """Application settings container.

    Automatically loads configuration from environment variables.

    Environment variable naming:
    - ENVIRONMENT, DEBUG, LOG_LEVEL (top-level)
    - DISCORD__TOKEN, DISCORD__GUILD_IDS, etc. (nested with __ delimiter)
    - AUDIO__RESOLVE_TIMEOUT_SECONDS, AUDIO__MAX_PROCESSES, ...
    - PLAYBACK__DISCONNECT_GRACE_SECONDS, PLAYBACK__IDLE_TIMEOUT_SECONDS, ...
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        strict=True,
    )

    environment: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    discord: DiscordSettings = Field(default_factory=DiscordSettings)
    audio: AudioSettings = Field(default_factory=AudioSettings)
    playback: PlaybackSettings = Field(default_factory=PlaybackSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are automatically loaded from:
    1. .env file (if present)
    2. Environment variables
    3. Default values
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
