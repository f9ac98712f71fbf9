"""Tests for ColoredFormatter."""

import logging
from io import StringIO
from unittest.mock import patch

import pytest

from guild_player.utils.logging import ColoredFormatter

RESET = "\033[0m"
LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}


def _make_record(level: int, message: str = "test") -> logging.LogRecord:
    return logging.LogRecord(
        name="guild_player.test",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )


class _TtyStream(StringIO):
    def isatty(self) -> bool:
        return True


class TestColoredFormatter:
    """Tests for ANSI color formatting."""

    @pytest.mark.parametrize(
        "level",
        [logging.DEBUG, logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL],
    )
    def test_color_applied_per_level(self, level: int):
        """Should apply the correct ANSI color code for each level."""
        fmt = ColoredFormatter("%(levelname)s | %(message)s", stream=_TtyStream())

        with patch.dict("os.environ", clear=False) as env:
            env.pop("NO_COLOR", None)
            output = fmt.format(_make_record(level))

        assert LEVEL_COLORS[level] in output
        assert RESET in output

    def test_logger_name_dimmed(self):
        fmt = ColoredFormatter("%(name)s", stream=_TtyStream())

        with patch.dict("os.environ", clear=False) as env:
            env.pop("NO_COLOR", None)
            output = fmt.format(_make_record(logging.INFO))

        assert output == f"{ColoredFormatter.DIM}guild_player.test{RESET}"

    def test_no_color_when_no_color_env_set(self):
        """Should not apply colors when NO_COLOR env var is set, even when forced."""
        fmt = ColoredFormatter("%(levelname)s | %(message)s", force_color=True)

        with patch.dict("os.environ", {"NO_COLOR": "1"}):
            output = fmt.format(_make_record(logging.INFO))

        assert "\033[" not in output

    def test_no_color_when_stream_not_tty(self):
        """Should not apply colors when stream is not a TTY."""
        fmt = ColoredFormatter("%(levelname)s | %(message)s", stream=StringIO())

        output = fmt.format(_make_record(logging.ERROR))

        assert "\033[" not in output

    def test_force_color_overrides_tty_check(self):
        fmt = ColoredFormatter("%(levelname)s", stream=StringIO(), force_color=True)

        with patch.dict("os.environ", clear=False) as env:
            env.pop("NO_COLOR", None)
            output = fmt.format(_make_record(logging.WARNING))

        assert LEVEL_COLORS[logging.WARNING] in output

    def test_original_record_not_mutated(self):
        """Should not mutate the original LogRecord."""
        fmt = ColoredFormatter("%(levelname)s", force_color=True)
        record = _make_record(logging.WARNING)

        fmt.format(record)

        assert record.levelname == "WARNING"
        assert record.name == "guild_player.test"
