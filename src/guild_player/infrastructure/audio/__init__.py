"""Audio infrastructure - yt-dlp resolver, ffmpeg pipe and process limiter."""

from guild_player.infrastructure.audio.ffmpeg_pipe import (
    FFmpegAudioPipe,
    FFmpegConfig,
    FFmpegPipeFactory,
)
from guild_player.infrastructure.audio.models import (
    AudioFormatInfo,
    YtDlpOpts,
    YtDlpTrackInfo,
)
from guild_player.infrastructure.audio.process_limiter import ProcessLimiter
from guild_player.infrastructure.audio.ytdlp_resolver import YtDlpResolver

__all__ = [
    "AudioFormatInfo",
    "FFmpegAudioPipe",
    "FFmpegConfig",
    "FFmpegPipeFactory",
    "ProcessLimiter",
    "YtDlpOpts",
    "YtDlpResolver",
    "YtDlpTrackInfo",
]
