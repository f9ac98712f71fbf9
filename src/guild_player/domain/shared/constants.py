"""Centralized constants for audio format, timing, and limits."""

from __future__ import annotations


class AudioConstants:
    """Audio frame format and FFmpeg configuration constants.

    Frames match what the Discord voice gateway expects before opus encoding:
    48 kHz, stereo, signed 16-bit little-endian PCM, 20 ms per frame.
    """

    SAMPLE_RATE = 48_000
    CHANNELS = 2
    SAMPLE_WIDTH = 2
    FRAME_LENGTH_MS = 20
    SAMPLES_PER_FRAME = SAMPLE_RATE * FRAME_LENGTH_MS // 1000
    FRAME_BYTES = SAMPLES_PER_FRAME * CHANNELS * SAMPLE_WIDTH
    FRAME_DURATION_S = FRAME_LENGTH_MS / 1000

    # FFmpeg Options
    FFMPEG_BEFORE_OPTIONS_DEFAULT = "-reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5"
    FFMPEG_OPTIONS_DEFAULT = "-vn"  # No video

    # User Agents
    ANDROID_USER_AGENT = "com.google.android.youtube/19.44.38 (Linux; U; Android 14) gzip"

    # yt-dlp Options
    YTDLP_FORMAT_DEFAULT = "bestaudio/best"
    YTDLP_SEARCH_PREFIX = "ytsearch1:"


class TimeConstants:
    """Time-related defaults in seconds."""

    VOICE_CONNECT_TIMEOUT = 10.0
    RESOLVE_TIMEOUT = 30.0
    KILL_GRACE = 2.0
    STALL_TIMEOUT = 15.0
    DISCONNECT_GRACE = 60.0
    IDLE_TIMEOUT = 300.0
    RESOURCE_RETRY_BASE_DELAY = 0.5


class LimitConstants:
    """Numeric limits and constraints."""

    MAX_QUEUE_SIZE = 100
    MAX_PROCESSES = 32
    MAX_CONSECUTIVE_FAILURES = 3
    RESOURCE_RETRY_ATTEMPTS = 3
    # Frames buffered while paused on a source that cannot idle (10 s)
    PAUSE_BUFFER_FRAMES = 500
    STDERR_TAIL_LINES = 20
    QUEUE_DISPLAY_LIMIT = 10
    # Share of listeners that must be exceeded for a skip/stop vote to pass
    VOTE_RATIO = 0.5


class LogLevels:
    """Valid logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"
