"""TrackResolver implementation that runs yt-dlp as a bounded-time subprocess."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import sys
from typing import Final

from pydantic import ValidationError as PydanticValidationError

from guild_player.application.interfaces.track_resolver import TrackResolver
from guild_player.config.settings import AudioSettings
from guild_player.domain.music.entities import TrackInfo
from guild_player.domain.shared.constants import AudioConstants
from guild_player.domain.shared.exceptions import (
    ExternalToolError,
    ResolveTimeoutError,
    TrackNotFoundError,
)
from guild_player.domain.shared.messages import ErrorMessages, LogTemplates
from guild_player.infrastructure.audio.models import YtDlpOpts, YtDlpTrackInfo
from guild_player.infrastructure.audio.process_limiter import ProcessLimiter

logger = logging.getLogger(__name__)

STDERR_TRUNCATE: Final[int] = 300

URL_PATTERNS: Final[list[re.Pattern[str]]] = [
    re.compile(r"^https?://", re.IGNORECASE),
    re.compile(r"^www\.", re.IGNORECASE),
]

# stderr fragments yt-dlp prints when the target simply does not exist
NOT_FOUND_PATTERNS: Final[list[re.Pattern[str]]] = [
    re.compile(r"video unavailable", re.IGNORECASE),
    re.compile(r"is not available", re.IGNORECASE),
    re.compile(r"unsupported url", re.IGNORECASE),
    re.compile(r"no video formats found", re.IGNORECASE),
    re.compile(r"does not exist", re.IGNORECASE),
    re.compile(r"HTTP Error 404", re.IGNORECASE),
    re.compile(r"private video", re.IGNORECASE),
]


class YtDlpResolver(TrackResolver):
    """Resolve queries by running ``python -m yt_dlp --dump-json``.

    Each call spawns one subprocess and holds a process-limiter slot while it
    runs. The subprocess is killed and reaped if it exceeds the timeout.
    """

    def __init__(
        self,
        settings: AudioSettings | None = None,
        limiter: ProcessLimiter | None = None,
        command: list[str] | None = None,
    ) -> None:
        self._settings = settings or AudioSettings()
        self._limiter = limiter or ProcessLimiter(self._settings.max_processes)
        self._command = command or [sys.executable, "-m", "yt_dlp"]
        self._opts = YtDlpOpts(format=self._settings.ytdlp_format)

    @property
    def timeout(self) -> float:
        return self._settings.resolve_timeout_seconds

    def is_url(self, query: str) -> bool:
        return any(pattern.search(query.strip()) for pattern in URL_PATTERNS)

    def _target_for(self, query: str) -> str:
        query = query.strip()
        if self.is_url(query):
            return query
        return f"{AudioConstants.YTDLP_SEARCH_PREFIX}{query}"

    def build_args(self, query: str) -> list[str]:
        return [*self._command, *self._opts.to_args(), "--", self._target_for(query)]

    async def resolve(self, query: str) -> TrackInfo:
        logger.debug(LogTemplates.YTDLP_RESOLVING, query)
        async with self._limiter.slot():
            returncode, stdout, stderr = await self._run(query)

        if returncode != 0:
            logger.warning(LogTemplates.YTDLP_FAILED, query, returncode)
            raise self._error_for_exit(query, returncode, stderr)

        info = self._parse_output(query, stdout)
        logger.info(LogTemplates.YTDLP_RESOLVED, query, info.title)
        return info

    async def _run(self, query: str) -> tuple[int, bytes, bytes]:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.build_args(query),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExternalToolError(
                query, ErrorMessages.RESOLVE_TOOL_MISSING.format(error=e)
            ) from e

        try:
            async with asyncio.timeout(self.timeout):
                stdout, stderr = await process.communicate()
        except TimeoutError:
            logger.warning(LogTemplates.YTDLP_TIMEOUT, self.timeout, query)
            await _kill_and_reap(process)
            raise ResolveTimeoutError(
                query,
                self.timeout,
                ErrorMessages.RESOLVE_TIMEOUT.format(timeout=self.timeout, query=query),
            ) from None
        except asyncio.CancelledError:
            await _kill_and_reap(process)
            raise

        returncode = process.returncode if process.returncode is not None else -1
        return returncode, stdout, stderr

    @staticmethod
    def _error_for_exit(
        query: str, returncode: int, stderr: bytes
    ) -> TrackNotFoundError | ExternalToolError:
        text = stderr.decode("utf-8", errors="replace").strip()
        if any(pattern.search(text) for pattern in NOT_FOUND_PATTERNS):
            return TrackNotFoundError(query, ErrorMessages.RESOLVE_NO_MATCH.format(query=query))
        tail = text.splitlines()[-1] if text else ""
        return ExternalToolError(
            query,
            ErrorMessages.RESOLVE_TOOL_FAILED.format(code=returncode, stderr=tail[:STDERR_TRUNCATE]),
        )

    def _parse_output(self, query: str, stdout: bytes) -> TrackInfo:
        lines = [line for line in stdout.decode("utf-8", errors="replace").splitlines() if line.strip()]
        if not lines:
            if self.is_url(query):
                raise ExternalToolError(query, ErrorMessages.RESOLVE_EMPTY_OUTPUT.format(query=query))
            raise TrackNotFoundError(query, ErrorMessages.RESOLVE_NO_MATCH.format(query=query))

        try:
            data = json.loads(lines[0])
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
            parsed = YtDlpTrackInfo.model_validate(data)
        except (ValueError, PydanticValidationError) as e:
            raise ExternalToolError(
                query, ErrorMessages.RESOLVE_MALFORMED_OUTPUT.format(query=query)
            ) from e

        record = parsed.first_entry()
        if record is None:
            raise TrackNotFoundError(query, ErrorMessages.RESOLVE_NO_MATCH.format(query=query))

        info = record.to_track_info()
        if info is None:
            raise ExternalToolError(query, ErrorMessages.RESOLVE_NO_LOCATOR.format(query=query))
        return info


async def _kill_and_reap(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()
