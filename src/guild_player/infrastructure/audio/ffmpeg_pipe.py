"""
FFmpeg Audio Pipe

Infrastructure component that runs ffmpeg as a subprocess and exposes its
stdout as a stream of fixed-size raw PCM frames.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from collections import deque
from dataclasses import dataclass
from typing import Final

from guild_player.application.interfaces.audio_pipe import AudioPipe, AudioPipeFactory
from guild_player.config.settings import AudioSettings
from guild_player.domain.shared.constants import AudioConstants, LimitConstants
from guild_player.domain.shared.exceptions import PipeError
from guild_player.domain.shared.messages import ErrorMessages, LogTemplates
from guild_player.infrastructure.audio.process_limiter import ProcessLimiter

logger = logging.getLogger(__name__)

LOG_URL_TRUNCATE: Final[int] = 60


@dataclass
class FFmpegConfig:
    """Configuration for the ffmpeg command line."""

    executable: str = "ffmpeg"
    before_options: str = AudioConstants.FFMPEG_BEFORE_OPTIONS_DEFAULT
    options: str = AudioConstants.FFMPEG_OPTIONS_DEFAULT

    # Make ffmpeg look like the Android client to avoid 403s on stream URLs
    send_client_headers: bool = True
    user_agent: str = AudioConstants.ANDROID_USER_AGENT

    @classmethod
    def from_settings(cls, settings: AudioSettings) -> FFmpegConfig:
        return cls(
            executable=settings.ffmpeg_path,
            before_options=settings.ffmpeg_before_options,
            options=settings.ffmpeg_options,
        )

    def get_before_options(self) -> list[str]:
        """Input options, placed before ``-i``."""
        opts = shlex.split(self.before_options)
        if self.send_client_headers:
            opts += ["-user_agent", self.user_agent]
        return opts

    def get_output_options(self) -> list[str]:
        """Output options forcing raw 48 kHz stereo s16le on stdout."""
        return [
            *shlex.split(self.options),
            "-f",
            "s16le",
            "-ar",
            str(AudioConstants.SAMPLE_RATE),
            "-ac",
            str(AudioConstants.CHANNELS),
            "pipe:1",
        ]

    def build_args(self, source_url: str) -> list[str]:
        return [
            self.executable,
            "-hide_banner",
            "-loglevel",
            "warning",
            "-nostdin",
            *self.get_before_options(),
            "-i",
            source_url,
            *self.get_output_options(),
        ]


class FFmpegAudioPipe(AudioPipe):
    """Frame stream backed by a running ffmpeg process.

    ffmpeg blocks on a full stdout pipe, so it idles whenever frames are not
    being read. The pipe owns one process-limiter slot until ``close``.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        *,
        limiter: ProcessLimiter,
        kill_grace_seconds: float,
        frame_bytes: int = AudioConstants.FRAME_BYTES,
    ) -> None:
        self._process = process
        self._limiter = limiter
        self._kill_grace = kill_grace_seconds
        self._frame_bytes = frame_bytes

        self._stderr_tail: deque[str] = deque(maxlen=LimitConstants.STDERR_TAIL_LINES)
        self._stderr_task: asyncio.Task[None] | None = None
        if process.stderr is not None:
            self._stderr_task = asyncio.create_task(self._drain_stderr(process.stderr))

        self._error: PipeError | None = None
        self._closed = False
        self._eof = False
        self._finished = False

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def error(self) -> PipeError | None:
        return self._error

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def stderr_tail(self) -> str:
        return "\n".join(self._stderr_tail)

    async def read_frame(self) -> bytes | None:
        if self._closed:
            return None
        if self._eof:
            await self._finish()
            return None

        stdout = self._process.stdout
        if stdout is None:
            self._eof = True
            await self._finish()
            return None

        try:
            data = await stdout.readexactly(self._frame_bytes)
        except asyncio.IncompleteReadError as e:
            data = e.partial
            self._eof = True
        except OSError as e:
            self._eof = True
            self._error = PipeError(ErrorMessages.PIPE_READ_FAILED.format(error=e))
            return None

        if not data:
            await self._finish()
            return None
        if len(data) < self._frame_bytes:
            data += b"\x00" * (self._frame_bytes - len(data))
        return data

    async def _finish(self) -> None:
        """Collect the exit status once stdout has ended."""
        if self._finished:
            return
        self._finished = True
        try:
            async with asyncio.timeout(self._kill_grace):
                returncode = await self._process.wait()
        except TimeoutError:
            # stdout closed but the process lingers; close() will reap it
            return
        if self._stderr_task is not None:
            await asyncio.wait({self._stderr_task}, timeout=self._kill_grace)

        logger.debug(LogTemplates.FFMPEG_EXITED, self.pid, returncode)
        if returncode != 0 and not self._closed and self._error is None:
            self._error = PipeError(
                ErrorMessages.PIPE_EXITED.format(code=returncode, stderr=self.stderr_tail),
                exit_code=returncode,
            )

    async def _drain_stderr(self, stream: asyncio.StreamReader) -> None:
        while True:
            line = await stream.readline()
            if not line:
                return
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                self._stderr_tail.append(text)

    async def close(self) -> None:
        """Terminate ffmpeg: SIGTERM, then SIGKILL after the grace period."""
        if self._closed:
            return
        self._closed = True
        try:
            if self._process.returncode is None:
                try:
                    self._process.terminate()
                except ProcessLookupError:
                    pass
                try:
                    async with asyncio.timeout(self._kill_grace):
                        await self._process.wait()
                except TimeoutError:
                    logger.warning(
                        LogTemplates.FFMPEG_TERMINATE_TIMEOUT, self.pid, self._kill_grace
                    )
                    try:
                        self._process.kill()
                    except ProcessLookupError:
                        pass
                    await self._process.wait()
            if self._stderr_task is not None and not self._stderr_task.done():
                self._stderr_task.cancel()
                await asyncio.wait({self._stderr_task})
        except OSError as e:
            logger.warning(LogTemplates.FFMPEG_PROCESS_CLEANUP_ERROR, e)
        finally:
            self._limiter.release()


class FFmpegPipeFactory(AudioPipeFactory):
    """Spawns one ffmpeg process per opened pipe."""

    def __init__(
        self,
        settings: AudioSettings | None = None,
        limiter: ProcessLimiter | None = None,
        config: FFmpegConfig | None = None,
    ) -> None:
        self._settings = settings or AudioSettings()
        self._limiter = limiter or ProcessLimiter(self._settings.max_processes)
        self._config = config or FFmpegConfig.from_settings(self._settings)

    async def open(self, source_url: str) -> FFmpegAudioPipe:
        self._limiter.acquire()
        try:
            process = await asyncio.create_subprocess_exec(
                *self._config.build_args(source_url),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            self._limiter.release()
            raise PipeError(ErrorMessages.PIPE_SPAWN_FAILED.format(error=e)) from e
        except BaseException:
            self._limiter.release()
            raise

        logger.info(LogTemplates.FFMPEG_SPAWNED, process.pid, source_url[:LOG_URL_TRUNCATE])
        return FFmpegAudioPipe(
            process,
            limiter=self._limiter,
            kill_grace_seconds=self._settings.kill_grace_seconds,
        )
