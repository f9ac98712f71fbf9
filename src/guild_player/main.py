#!/usr/bin/env python3
"""Main entry point for the guild player bot.

Startup fails fast with a distinct exit code when the configuration is
unusable, so process supervisors can tell a bad deploy from a crash.
"""

from __future__ import annotations

import json
import logging
import logging.config
import shutil
import sys
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from guild_player.domain.shared.messages import ErrorMessages, LogTemplates

if TYPE_CHECKING:
    from guild_player.config.settings import Settings

_LOGGING_CONFIG_PATH = Path(__file__).resolve().parents[2] / "logging_config.json"


class ExitCode(IntEnum):
    """Process exit codes returned by :func:`main`."""

    OK = 0
    FATAL = 1  # Bot crashed while running
    INVALID_CONFIG = 2  # Settings failed validation or token unusable
    MISSING_FFMPEG = 3  # ffmpeg executable not found


def setup_logging(log_level: str = "INFO") -> None:
    resolved_level = getattr(logging, log_level.upper(), logging.INFO)

    try:
        with open(_LOGGING_CONFIG_PATH) as f:
            config = json.load(f)
        logging.config.dictConfig(config)
    except (FileNotFoundError, json.JSONDecodeError, ValueError):
        logging.basicConfig(
            level=resolved_level,
            format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.warning(
            "Could not load %s, falling back to basic config", _LOGGING_CONFIG_PATH
        )

    logging.getLogger().setLevel(resolved_level)


def validate_token(token: str) -> str | None:
    """Return an error message if the bot token cannot be used, else None.

    Bot tokens are three dot-separated segments with no whitespace.
    """
    if not token.strip():
        return ErrorMessages.DISCORD_TOKEN_REQUIRED
    if token != token.strip() or any(c.isspace() for c in token):
        return ErrorMessages.DISCORD_TOKEN_MALFORMED
    if len(token.split(".")) != 3 or not all(token.split(".")):
        return ErrorMessages.DISCORD_TOKEN_MALFORMED
    return None


def check_environment(settings: Settings) -> ExitCode:
    """Validate everything the bot needs before it connects to Discord."""
    logger = logging.getLogger(__name__)

    token_error = validate_token(settings.discord.token.get_secret_value())
    if token_error is not None:
        logger.error(token_error)
        return ExitCode.INVALID_CONFIG

    ffmpeg_path = settings.audio.ffmpeg_path
    if shutil.which(ffmpeg_path) is None:
        logger.error(ErrorMessages.FFMPEG_NOT_FOUND.format(path=ffmpeg_path))
        return ExitCode.MISSING_FFMPEG

    return ExitCode.OK


def main() -> int:
    from guild_player.config.settings import get_settings

    try:
        settings = get_settings()
    except ValidationError as e:
        setup_logging()
        logging.getLogger(__name__).error(LogTemplates.SETTINGS_INVALID, e)
        return ExitCode.INVALID_CONFIG

    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    status = check_environment(settings)
    if status is not ExitCode.OK:
        return status

    logger.info(LogTemplates.BOT_STARTING, settings.environment)
    logger.info(
        LogTemplates.BOT_LIMITS,
        settings.audio.max_processes,
        settings.audio.max_queue_size,
        settings.playback.vote_ratio,
    )

    from guild_player.config.container import create_container
    from guild_player.infrastructure.discord.bot import create_bot

    container = create_container(settings)
    bot = create_bot(container, settings)

    try:
        logger.info(LogTemplates.BOT_STARTING_RUN)
        bot.run_with_graceful_shutdown(settings.discord.token.get_secret_value())
        logger.info(LogTemplates.BOT_STOPPED)
        return ExitCode.OK
    except KeyboardInterrupt:
        logger.info(LogTemplates.BOT_KEYBOARD_INTERRUPT)
        return ExitCode.OK
    except Exception as e:
        logger.exception(LogTemplates.BOT_FATAL_ERROR, e)
        return ExitCode.FATAL


def cli() -> None:
    """Console script entry point (used by pyproject.toml [project.scripts])."""
    sys.exit(main())


if __name__ == "__main__":
    cli()  # pragma: no cover
