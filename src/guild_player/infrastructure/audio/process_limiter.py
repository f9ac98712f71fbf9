"""Process-wide cap on concurrently running external tool subprocesses."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from guild_player.domain.shared.constants import LimitConstants
from guild_player.domain.shared.exceptions import ResourceExhaustedError
from guild_player.domain.shared.messages import LogTemplates

logger = logging.getLogger(__name__)


class ProcessLimiter:
    """Counting admission gate shared by the resolver and the pipe factory.

    Admission is fail-fast: when every slot is taken ``acquire`` raises
    ``ResourceExhaustedError`` instead of waiting, and the caller decides
    whether to back off and retry. All access happens on the event loop, so a
    plain counter is enough.
    """

    def __init__(self, limit: int = LimitConstants.MAX_PROCESSES) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self._limit = limit
        self._in_use = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_use(self) -> int:
        return self._in_use

    def acquire(self) -> None:
        if self._in_use >= self._limit:
            logger.warning(LogTemplates.PROCESS_LIMIT_REACHED, self._in_use, self._limit)
            raise ResourceExhaustedError(self._limit)
        self._in_use += 1
        logger.debug(LogTemplates.PROCESS_SLOT_ACQUIRED, self._in_use, self._limit)

    def release(self) -> None:
        if self._in_use > 0:
            self._in_use -= 1

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one slot for the duration of the block."""
        self.acquire()
        try:
            yield
        finally:
            self.release()
