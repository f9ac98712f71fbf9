"""Domain events and the event bus that carries them to subscribers."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from guild_player.domain.music.value_objects import TerminationReason, TrackEndReason
from guild_player.domain.shared.datetime_utils import utcnow
from guild_player.domain.shared.messages import LogTemplates
from guild_player.domain.shared.types import (
    DiscordSnowflake,
    DurationSeconds,
    NonEmptyStr,
    NonNegativeFloat,
    NonNegativeInt,
    UtcDatetimeField,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound="DomainEvent")
EventHandler = Callable[[T], Awaitable[None]]


class DomainEvent(BaseModel):
    """Base class for all domain events."""

    model_config = ConfigDict(frozen=True)

    event_id: NonEmptyStr = Field(default_factory=lambda: str(uuid4()))
    occurred_at: UtcDatetimeField = Field(default_factory=utcnow)


# === Session Events ===


class SessionEvent(DomainEvent):
    """Base class for everything a guild session reports."""

    guild_id: DiscordSnowflake


class TrackQueued(SessionEvent):
    query: NonEmptyStr
    title: NonEmptyStr
    position: NonNegativeInt
    requester_id: DiscordSnowflake


class TrackStarted(SessionEvent):
    title: NonEmptyStr
    source_url: NonEmptyStr
    webpage_url: str | None = None
    duration_seconds: DurationSeconds | None = None
    requester_id: DiscordSnowflake | None = None


class TrackEnded(SessionEvent):
    title: NonEmptyStr
    reason: TrackEndReason = TrackEndReason.COMPLETED
    error: str | None = None
    frames_sent: NonNegativeInt = 0


class QueueEmptied(SessionEvent):
    pass


class ResolveFailed(SessionEvent):
    query: NonEmptyStr
    reason: NonEmptyStr
    code: str | None = None


class AdvanceHalted(SessionEvent):
    consecutive_failures: NonNegativeInt
    remaining: NonNegativeInt


class PlaybackPaused(SessionEvent):
    title: str = ""


class PlaybackResumed(SessionEvent):
    title: str = ""


class VoiceDisconnected(SessionEvent):
    grace_seconds: NonNegativeFloat


class VoiceReconnected(SessionEvent):
    pass


class SessionTerminated(SessionEvent):
    reason: TerminationReason


# === Event Bus ===


class EventBus:
    """In-memory pub/sub event bus for domain events.

    Handlers subscribed to a base class receive every subclass event. Handlers
    are called concurrently; exceptions in handlers are logged but do not
    prevent other handlers from running.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[DomainEvent], list[EventHandler[Any]]] = defaultdict(list)

    def subscribe(self, event_type: type[T], handler: EventHandler[T]) -> None:
        self._handlers[event_type].append(handler)
        logger.debug("Subscribed handler to: %s", event_type.__name__)

    def unsubscribe(self, event_type: type[T], handler: EventHandler[T]) -> None:
        handlers = self._handlers[event_type]
        if handler in handlers:
            handlers.remove(handler)
            logger.debug("Unsubscribed handler from %s", event_type.__name__)

    def _handlers_for(self, event_type: type[DomainEvent]) -> list[EventHandler[Any]]:
        handlers: list[EventHandler[Any]] = []
        for cls in event_type.__mro__:
            handlers.extend(self._handlers.get(cls, ()))
        return handlers

    async def publish(self, event: DomainEvent) -> None:
        event_type = type(event)
        handlers = self._handlers_for(event_type)
        if not handlers:
            logger.debug("No handlers for %s", event_type.__name__)
            return

        logger.debug("Publishing %s to %d handlers", event_type.__name__, len(handlers))

        async def safe_call(handler: EventHandler[Any]) -> None:
            try:
                await handler(event)
            except Exception:
                logger.exception(LogTemplates.EVENT_HANDLER_ERROR, event_type.__name__)

        async with asyncio.TaskGroup() as tg:
            for handler in handlers:
                tg.create_task(safe_call(handler))

    def clear(self) -> None:
        """Remove all handlers."""
        self._handlers.clear()
        logger.debug("Cleared all event handlers")
