"""
Guild Session

Per-guild playback actor. Every command and every pipeline completion is a
message on the session's mailbox, handled one at a time by a single control
task. Long-running work (resolving, opening the audio pipe, streaming frames)
runs in helper tasks that post their outcome back as messages tagged with a
generation number, so completions that a skip or stop has made obsolete are
recognised and discarded.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

from guild_player.application.interfaces.audio_pipe import AudioPipe, AudioPipeFactory
from guild_player.application.interfaces.track_resolver import TrackResolver
from guild_player.application.interfaces.voice_transport import VoiceTransport
from guild_player.config.settings import PlaybackSettings
from guild_player.domain.music.entities import TrackInfo, TrackRequest
from guild_player.domain.music.frame_buffer import PauseBuffer
from guild_player.domain.music.queue import PlaybackQueue
from guild_player.domain.music.value_objects import (
    SessionState,
    TerminationReason,
    TrackEndReason,
)
from guild_player.domain.shared.constants import LimitConstants
from guild_player.domain.shared.datetime_utils import utcnow
from guild_player.domain.shared.events import (
    AdvanceHalted,
    EventBus,
    PlaybackPaused,
    PlaybackResumed,
    QueueEmptied,
    ResolveFailed,
    SessionEvent,
    SessionTerminated,
    TrackEnded,
    TrackQueued,
    TrackStarted,
    VoiceDisconnected,
    VoiceReconnected,
)
from guild_player.domain.shared.exceptions import (
    BusinessRuleViolationError,
    DomainError,
    PipeError,
    ResourceExhaustedError,
    SessionTerminatedError,
    TransportError,
)
from guild_player.domain.shared.messages import ErrorMessages, LogTemplates
from guild_player.domain.voting.entities import VoteOutcome, VoteTally
from guild_player.domain.voting.services import VotingDomainService
from guild_player.domain.voting.value_objects import VoteResult, VoteType

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ─────────────────────────────────────────────────────────────────
# Mailbox messages
# ─────────────────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class _Enqueue:
    request: TrackRequest


@dataclass(slots=True, frozen=True)
class _Replace:
    request: TrackRequest


@dataclass(slots=True, frozen=True)
class _Skip:
    pass


@dataclass(slots=True, frozen=True)
class _Pause:
    pass


@dataclass(slots=True, frozen=True)
class _Resume:
    pass


@dataclass(slots=True, frozen=True)
class _Stop:
    leave: bool


@dataclass(slots=True, frozen=True)
class _Vote:
    vote_type: VoteType
    user_id: int
    listeners: frozenset[int]


@dataclass(slots=True, frozen=True)
class _Terminate:
    reason: TerminationReason


@dataclass(slots=True, frozen=True)
class _Snapshot:
    pass


@dataclass(slots=True, frozen=True)
class _NowPlaying:
    pass


@dataclass(slots=True, frozen=True)
class _AttachTransport:
    transport: VoiceTransport


@dataclass(slots=True, frozen=True)
class _AdvanceDone:
    generation: int
    request: TrackRequest
    pipe: AudioPipe | None = None
    error: BaseException | None = None


@dataclass(slots=True, frozen=True)
class _StreamEnded:
    generation: int
    error: DomainError | None = None


@dataclass(slots=True, frozen=True)
class _VoiceLost:
    transport: VoiceTransport


@dataclass(slots=True, frozen=True)
class _VoiceRestored:
    transport: VoiceTransport


@dataclass(slots=True, frozen=True)
class _TimerExpired:
    timer: asyncio.Task[None] | None


@dataclass(slots=True, frozen=True)
class _GraceExpired(_TimerExpired):
    pass


@dataclass(slots=True, frozen=True)
class _IdleExpired(_TimerExpired):
    pass


_Envelope = tuple[Any, "asyncio.Future[Any] | None"]


# ─────────────────────────────────────────────────────────────────
# Command results
# ─────────────────────────────────────────────────────────────────


class ReplaceStatus(Enum):
    """What a replace command ended up doing."""

    QUEUED = "queued"
    REPLACED_IN_QUEUE = "replaced_in_queue"
    REPLACED_CURRENT = "replaced_current"


@dataclass(slots=True, frozen=True)
class ReplaceResult:
    """Result of a replace command."""

    status: ReplaceStatus
    request: TrackRequest
    replaced: TrackRequest | None = None
    position: int | None = None


class GuildSession:
    """Playback state machine for one guild.

    Public coroutine methods are the command interface: each one posts a
    message to the mailbox and waits for the control task to acknowledge it.
    The session never touches another guild's state, and a failure inside it
    only ever terminates this session.
    """

    def __init__(
        self,
        guild_id: int,
        *,
        resolver: TrackResolver,
        pipe_factory: AudioPipeFactory,
        event_bus: EventBus,
        settings: PlaybackSettings | None = None,
        max_queue_size: int = LimitConstants.MAX_QUEUE_SIZE,
        on_terminated: Callable[[GuildSession], None] | None = None,
    ) -> None:
        self.guild_id = guild_id
        self._resolver = resolver
        self._pipe_factory = pipe_factory
        self._event_bus = event_bus
        self._settings = settings or PlaybackSettings()
        self._on_terminated = on_terminated

        self._state = SessionState.IDLE
        self._queue = PlaybackQueue(max_size=max_queue_size)
        self._pause_buffer = PauseBuffer(max_frames=self._settings.pause_buffer_frames)
        self._unpaused = asyncio.Event()
        self._unpaused.set()

        self._transport: VoiceTransport | None = None
        self._current: TrackRequest | None = None
        self._pending: TrackRequest | None = None
        self._pipe: AudioPipe | None = None
        self._frames_sent = 0

        self._generation = 0
        self._consecutive_failures = 0
        self._votes = {vote_type: VoteTally(vote_type=vote_type) for vote_type in VoteType}

        self._advance_task: asyncio.Task[None] | None = None
        self._streamer: asyncio.Task[None] | None = None
        self._grace_timer: asyncio.Task[None] | None = None
        self._idle_timer: asyncio.Task[None] | None = None

        self._mailbox: asyncio.Queue[_Envelope] = asyncio.Queue()
        self._outbox: asyncio.Queue[SessionEvent | None] = asyncio.Queue()
        self._control_task: asyncio.Task[None] | None = None
        self._dispatch_task: asyncio.Task[None] | None = None

        self.last_activity: datetime = utcnow()
        self.termination_reason: TerminationReason | None = None

    # ─────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the control and event dispatch tasks."""
        if self._control_task is not None:
            return
        self._control_task = asyncio.create_task(
            self._run(), name=f"guild-session-{self.guild_id}"
        )
        self._dispatch_task = asyncio.create_task(
            self._dispatch_events(), name=f"guild-session-events-{self.guild_id}"
        )
        self._arm_idle_timer()

    async def wait_closed(self) -> None:
        """Wait until the session has terminated and flushed its events."""
        tasks = [t for t in (self._control_task, self._dispatch_task) if t is not None]
        if tasks:
            await asyncio.wait(tasks)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_terminated(self) -> bool:
        return self._state is SessionState.TERMINATED

    @property
    def transport(self) -> VoiceTransport | None:
        return self._transport

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    # ─────────────────────────────────────────────────────────────────
    # Commands
    # ─────────────────────────────────────────────────────────────────

    async def enqueue(
        self,
        query: str,
        requester_id: int,
        requester_name: str | None = None,
        info: TrackInfo | None = None,
    ) -> int:
        """Add a request to the back of the queue and return its position.

        Starts playback if the session is idle and has a voice transport.
        """
        request = TrackRequest(
            query=query, requester_id=requester_id, requester_name=requester_name, info=info
        )
        return await self._call(_Enqueue(request))

    async def replace(
        self,
        query: str,
        requester_id: int,
        requester_name: str | None = None,
        info: TrackInfo | None = None,
    ) -> ReplaceResult:
        """Replace the requester's most recent queued entry.

        When the requester has nothing queued but the playing track is theirs,
        the new request is played in its place. Otherwise it is queued.
        """
        request = TrackRequest(
            query=query, requester_id=requester_id, requester_name=requester_name, info=info
        )
        return await self._call(_Replace(request))

    async def skip(self) -> TrackRequest | None:
        """Abandon the current or resolving track and advance. Returns what was skipped."""
        return await self._call(_Skip())

    async def pause(self) -> bool:
        return await self._call(_Pause())

    async def resume(self) -> bool:
        """Resume paused playback, or restart advancing an idle, non-empty queue."""
        return await self._call(_Resume())

    async def stop(self, leave: bool = False) -> None:
        """Stop playback without advancing. With ``leave`` the session ends too."""
        await self._call(_Stop(leave))

    async def vote_skip(self, user_id: int, listeners: frozenset[int]) -> VoteOutcome:
        """Count a vote to skip the current track; skips once the vote passes."""
        return await self._call(_Vote(VoteType.SKIP, user_id, listeners))

    async def vote_stop(self, user_id: int, listeners: frozenset[int]) -> VoteOutcome:
        """Count a vote to stop playback; stops (keeping the queue) once the vote passes."""
        return await self._call(_Vote(VoteType.STOP, user_id, listeners))

    async def queue_snapshot(self) -> tuple[TrackRequest, ...]:
        return await self._call(_Snapshot())

    async def now_playing(self) -> TrackRequest | None:
        return await self._call(_NowPlaying())

    async def attach_transport(self, transport: VoiceTransport) -> None:
        """Use a voice connection for streaming and subscribe to its state changes."""
        await self._call(_AttachTransport(transport))

    async def terminate(self, reason: TerminationReason = TerminationReason.SHUTDOWN) -> None:
        """Tear the session down. No-op if it has already terminated."""
        if self.is_terminated:
            return
        try:
            await self._call(_Terminate(reason))
        except SessionTerminatedError:
            pass

    async def _call(self, message: Any) -> Any:
        if self.is_terminated:
            raise SessionTerminatedError(self.guild_id)
        self.last_activity = utcnow()
        reply: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._mailbox.put_nowait((message, reply))
        return await reply

    def _post(self, message: Any) -> None:
        if not self.is_terminated:
            self._mailbox.put_nowait((message, None))

    # ─────────────────────────────────────────────────────────────────
    # Control loop
    # ─────────────────────────────────────────────────────────────────

    async def _run(self) -> None:
        while not self.is_terminated:
            message, reply = await self._mailbox.get()
            try:
                result = await self._handle(message)
            except DomainError as exc:
                _reject(reply, exc)
                continue
            except Exception as exc:
                logger.exception(LogTemplates.SESSION_CONTROL_ERROR, self.guild_id)
                _reject(reply, exc)
                await self._terminate(TerminationReason.ERROR)
                break
            if reply is not None and not reply.done():
                reply.set_result(result)

    async def _handle(self, message: Any) -> Any:
        match message:
            case _Enqueue(request=request):
                return self._handle_enqueue(request)
            case _Replace(request=request):
                return await self._handle_replace(request)
            case _Skip():
                return await self._handle_skip()
            case _Pause():
                return await self._handle_pause()
            case _Resume():
                return self._handle_resume()
            case _Stop(leave=leave):
                return await self._handle_stop(leave)
            case _Vote():
                return await self._handle_vote(message)
            case _Terminate(reason=reason):
                await self._terminate(reason)
                return None
            case _Snapshot():
                self._touch()
                return self._queue.peek_all()
            case _NowPlaying():
                return self._current
            case _AttachTransport(transport=transport):
                return self._handle_attach(transport)
            case _AdvanceDone():
                return await self._handle_advance_done(message)
            case _StreamEnded():
                return await self._handle_stream_ended(message)
            case _VoiceLost(transport=transport):
                return await self._handle_voice_lost(transport)
            case _VoiceRestored(transport=transport):
                return self._handle_voice_restored(transport)
            case _GraceExpired(timer=timer):
                if timer is self._grace_timer:
                    self._grace_timer = None
                    logger.info(LogTemplates.SESSION_TIMER_EXPIRED, "Grace", self.guild_id)
                    await self._terminate(TerminationReason.DISCONNECTED)
                return None
            case _IdleExpired(timer=timer):
                if timer is self._idle_timer:
                    self._idle_timer = None
                    if self._state is SessionState.IDLE and self._grace_timer is None:
                        logger.info(LogTemplates.SESSION_TIMER_EXPIRED, "Idle", self.guild_id)
                        await self._terminate(TerminationReason.IDLE)
                return None
            case _:
                raise TypeError(f"Unknown session message: {message!r}")

    # ─────────────────────────────────────────────────────────────────
    # Command handlers
    # ─────────────────────────────────────────────────────────────────

    def _handle_enqueue(self, request: TrackRequest) -> int:
        position = self._queue.enqueue(request)
        logger.info(LogTemplates.QUEUE_ENQUEUED, request.display_title, position, self.guild_id)
        self._emit(
            TrackQueued(
                guild_id=self.guild_id,
                query=request.query,
                title=request.display_title,
                position=position,
                requester_id=request.requester_id,
            )
        )
        if self._state is SessionState.IDLE:
            self._consecutive_failures = 0
            self._advance()
        else:
            self._touch()
        return position

    async def _handle_replace(self, request: TrackRequest) -> ReplaceResult:
        old = self._queue.replace_latest(request)
        if old is not None:
            logger.info(
                LogTemplates.QUEUE_REPLACED, old.display_title, request.display_title, self.guild_id
            )
            self._touch()
            return ReplaceResult(ReplaceStatus.REPLACED_IN_QUEUE, request, replaced=old)

        current = self._current if self._state.has_pipe else None
        if current is not None and current.was_requested_by(request.requester_id):
            self._queue.enqueue_next(request)
            logger.info(
                LogTemplates.QUEUE_REPLACED,
                current.display_title,
                request.display_title,
                self.guild_id,
            )
            await self._finish_current(TrackEndReason.SKIPPED)
            self._advance()
            return ReplaceResult(ReplaceStatus.REPLACED_CURRENT, request, replaced=current)

        position = self._handle_enqueue(request)
        return ReplaceResult(ReplaceStatus.QUEUED, request, position=position)

    async def _handle_skip(self) -> TrackRequest | None:
        match self._state:
            case SessionState.PLAYING | SessionState.PAUSED:
                skipped = self._current
                await self._finish_current(TrackEndReason.SKIPPED)
            case SessionState.RESOLVING:
                skipped = self._pending
                await self._cancel_advance()
            case _:
                return None
        self._consecutive_failures = 0
        self._advance()
        return skipped

    async def _handle_pause(self) -> bool:
        if self._state is not SessionState.PLAYING:
            return False
        self._unpaused.clear()
        self._set_state(SessionState.PAUSED)
        logger.info(LogTemplates.PLAYBACK_PAUSED, self.guild_id)
        await self._set_speaking(False)
        self._emit(PlaybackPaused(guild_id=self.guild_id, title=self._current_title()))
        return True

    def _handle_resume(self) -> bool:
        if self._state is SessionState.PAUSED:
            if self._pause_buffer.dropped:
                logger.warning(
                    LogTemplates.PLAYBACK_PAUSE_OVERFLOW, self.guild_id, self._pause_buffer.dropped
                )
                self._pause_buffer.dropped = 0
            self._set_state(SessionState.PLAYING)
            self._unpaused.set()
            logger.info(LogTemplates.PLAYBACK_RESUMED, self.guild_id)
            self._emit(PlaybackResumed(guild_id=self.guild_id, title=self._current_title()))
            return True
        if self._state is SessionState.IDLE and self._queue and self._can_stream():
            self._consecutive_failures = 0
            self._advance()
            return True
        return False

    async def _handle_stop(self, leave: bool) -> None:
        if self._state is SessionState.RESOLVING:
            await self._cancel_advance()
        elif self._state.has_pipe:
            await self._finish_current(TrackEndReason.STOPPED)
        if leave:
            await self._terminate(TerminationReason.LEFT)
        else:
            self._arm_idle_timer()

    async def _handle_vote(self, message: _Vote) -> VoteOutcome:
        current = self._current if self._state.has_pipe else None
        if current is None:
            return VoteOutcome(result=VoteResult.NOTHING_PLAYING, vote_type=message.vote_type)

        tally = self._votes[message.vote_type]
        ratio = self._settings.vote_ratio
        result = tally.cast(
            message.user_id,
            message.listeners,
            ratio,
            requester_id=current.requester_id if message.vote_type is VoteType.SKIP else None,
        )
        outcome = VoteOutcome(
            result=result,
            vote_type=message.vote_type,
            votes=tally.count(message.listeners),
            required=VotingDomainService.calculate_threshold(len(message.listeners), ratio),
            track=current,
        )
        logger.debug(
            LogTemplates.VOTE_CAST,
            message.vote_type.value,
            message.user_id,
            self.guild_id,
            result.value,
            outcome.votes,
            outcome.required,
        )
        if not result.action_executed:
            self._touch()
            return outcome

        logger.info(LogTemplates.VOTE_PASSED, message.vote_type.value, self.guild_id)
        self._reset_votes()
        if message.vote_type is VoteType.SKIP:
            await self._handle_skip()
        else:
            await self._handle_stop(leave=False)
        return outcome

    def _reset_votes(self) -> None:
        for tally in self._votes.values():
            tally.reset()

    def _handle_attach(self, transport: VoiceTransport) -> None:
        if transport is self._transport:
            return
        self._transport = transport
        transport.on_disconnect(lambda: self._post(_VoiceLost(transport)))
        transport.on_reconnect(lambda: self._post(_VoiceRestored(transport)))
        logger.debug(LogTemplates.SESSION_TRANSPORT_ATTACHED, self.guild_id)
        if self._grace_timer is not None and transport.is_connected:
            self._handle_voice_restored(transport)
        self._touch()

    # ─────────────────────────────────────────────────────────────────
    # Advancing
    # ─────────────────────────────────────────────────────────────────

    def _advance(self) -> None:
        """Move to the next queued request, or settle into IDLE."""
        if not self._queue:
            self._set_state(SessionState.IDLE)
            self._consecutive_failures = 0
            logger.info(LogTemplates.QUEUE_EMPTY, self.guild_id)
            self._emit(QueueEmptied(guild_id=self.guild_id))
            self._arm_idle_timer()
            return

        if not self._can_stream():
            self._set_state(SessionState.IDLE)
            logger.info(LogTemplates.PLAYBACK_NO_TRANSPORT, self.guild_id, len(self._queue))
            self._arm_idle_timer()
            return

        request = self._queue.pop_next()
        assert request is not None
        self._set_state(SessionState.RESOLVING)
        self._cancel_idle_timer()
        self._generation += 1
        self._pending = request
        self._advance_task = asyncio.create_task(
            self._prepare(self._generation, request),
            name=f"guild-session-advance-{self.guild_id}",
        )

    async def _prepare(self, generation: int, request: TrackRequest) -> None:
        """Resolve a request and open its pipe, then report back to the control task."""
        try:
            info = request.info
            if info is None:
                info = await self._retry_when_exhausted(
                    lambda: self._resolver.resolve(request.query)
                )
            request = request.with_info(info)
            source_url = info.source_url
            pipe = await self._retry_when_exhausted(lambda: self._pipe_factory.open(source_url))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._post(_AdvanceDone(generation, request, error=exc))
            return
        self._post(_AdvanceDone(generation, request, pipe=pipe))

    async def _retry_when_exhausted(self, operation: Callable[[], Awaitable[T]]) -> T:
        attempts = self._settings.resource_retry_attempts
        attempt = 0
        while True:
            try:
                return await operation()
            except ResourceExhaustedError:
                if attempt >= attempts:
                    raise
                delay = self._settings.resource_retry_base_delay * (2**attempt)
                attempt += 1
                logger.warning(
                    LogTemplates.ADVANCE_RESOURCE_RETRY, self.guild_id, attempt, attempts, delay
                )
                await asyncio.sleep(delay)

    async def _handle_advance_done(self, message: _AdvanceDone) -> None:
        if message.generation != self._generation or self._state is not SessionState.RESOLVING:
            logger.debug(
                LogTemplates.SESSION_STALE_MESSAGE,
                "advance result",
                self.guild_id,
                message.generation,
                self._generation,
            )
            if message.pipe is not None:
                await message.pipe.close()
            return

        self._advance_task = None
        self._pending = None
        error = message.error

        if error is not None:
            if not isinstance(error, DomainError):
                raise error
            self._record_failure(message.request, error)
            return

        assert message.pipe is not None
        transport = self._transport
        if transport is None or not self._can_stream():
            # Voice went away while preparing: put the request back untouched.
            await message.pipe.close()
            self._requeue_front(message.request)
            self._set_state(SessionState.IDLE)
            self._arm_idle_timer()
            return

        self._consecutive_failures = 0
        self._current = message.request
        self._pipe = message.pipe
        self._frames_sent = 0
        self._pause_buffer.clear()
        self._pause_buffer.dropped = 0
        self._unpaused.set()
        self._reset_votes()
        self._set_state(SessionState.PLAYING)
        self._streamer = asyncio.create_task(
            self._stream(self._generation, message.pipe, transport),
            name=f"guild-session-stream-{self.guild_id}",
        )

        info = message.request.info
        assert info is not None
        logger.info(LogTemplates.PLAYBACK_STARTED, info.title, self.guild_id)
        self._emit(
            TrackStarted(
                guild_id=self.guild_id,
                title=info.title,
                source_url=info.source_url,
                webpage_url=info.webpage_url,
                duration_seconds=info.duration_seconds,
                requester_id=message.request.requester_id,
            )
        )

    def _record_failure(self, request: TrackRequest, error: DomainError) -> None:
        self._consecutive_failures += 1
        logger.warning(
            LogTemplates.ADVANCE_RESOLVE_FAILED, request.query, self.guild_id, error.message
        )
        self._emit(
            ResolveFailed(
                guild_id=self.guild_id,
                query=request.query,
                reason=error.message,
                code=error.code,
            )
        )

        if self._queue and self._consecutive_failures >= self._settings.max_consecutive_failures:
            logger.warning(LogTemplates.ADVANCE_HALTED, self._consecutive_failures, self.guild_id)
            self._emit(
                AdvanceHalted(
                    guild_id=self.guild_id,
                    consecutive_failures=self._consecutive_failures,
                    remaining=len(self._queue),
                )
            )
            self._consecutive_failures = 0
            self._set_state(SessionState.IDLE)
            self._arm_idle_timer()
            return

        self._advance()

    async def _cancel_advance(self) -> None:
        """Abandon an in-flight resolve/open and return to IDLE."""
        self._generation += 1
        task, self._advance_task = self._advance_task, None
        if task is not None:
            await _cancel_and_wait(task)
        self._pending = None
        self._set_state(SessionState.IDLE)

    # ─────────────────────────────────────────────────────────────────
    # Streaming
    # ─────────────────────────────────────────────────────────────────

    async def _stream(self, generation: int, pipe: AudioPipe, transport: VoiceTransport) -> None:
        """Forward frames from the pipe to the transport at playback rate."""
        loop = asyncio.get_running_loop()
        frame_duration = self._settings.frame_duration_seconds
        error: DomainError | None = None
        held: bytes | None = None
        exhausted = False

        try:
            await transport.set_speaking(True)
            start = loop.time()
            sent = 0
            while True:
                if not self._unpaused.is_set():
                    if pipe.supports_backpressure or exhausted:
                        await self._unpaused.wait()
                    else:
                        exhausted = not await self._buffer_until_resumed(pipe)
                    start = loop.time()
                    sent = 0
                    continue

                frame = held if held is not None else self._pause_buffer.pop()
                held = None
                if frame is None:
                    if exhausted:
                        break
                    frame = await self._read_frame(pipe)
                    if frame is None:
                        break
                    if not self._unpaused.is_set():
                        held = frame
                        continue

                transport.send_frame(frame)
                self._frames_sent += 1
                sent += 1
                await asyncio.sleep(max(0.0, start + sent * frame_duration - loop.time()))
        except (PipeError, TransportError) as exc:
            error = exc
        except Exception as exc:
            logger.exception(LogTemplates.STREAM_UNEXPECTED_ERROR, self.guild_id)
            error = PipeError(ErrorMessages.STREAM_UNEXPECTED_ERROR.format(error=exc))

        if error is None and pipe.failed:
            error = pipe.error
        self._post(_StreamEnded(generation, error))

    async def _read_frame(self, pipe: AudioPipe) -> bytes | None:
        timeout = self._settings.stall_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                return await pipe.read_frame()
        except TimeoutError:
            raise PipeError(ErrorMessages.PIPE_STALLED.format(timeout=timeout)) from None

    async def _buffer_until_resumed(self, pipe: AudioPipe) -> bool:
        """Keep draining a pipe that cannot idle while paused.

        Returns False once the stream has ended.
        """
        while not self._unpaused.is_set():
            frame = await self._read_frame(pipe)
            if frame is None:
                return False
            self._pause_buffer.push(frame)
        return True

    async def _handle_stream_ended(self, message: _StreamEnded) -> None:
        if message.generation != self._generation or not self._state.has_pipe:
            logger.debug(
                LogTemplates.SESSION_STALE_MESSAGE,
                "stream end",
                self.guild_id,
                message.generation,
                self._generation,
            )
            return

        self._streamer = None
        error = message.error
        if error is None:
            reason = TrackEndReason.COMPLETED
        elif isinstance(error, TransportError):
            reason = TrackEndReason.DISCONNECTED
        else:
            reason = TrackEndReason.FAILED
            logger.warning(
                LogTemplates.PLAYBACK_FAILED, self._current_title(), self.guild_id, error.message
            )
        await self._finish_current(reason, error)
        self._advance()

    async def _finish_current(
        self, reason: TrackEndReason, error: DomainError | None = None
    ) -> None:
        """Stop the streamer, close the pipe and report the track as ended.

        Leaves the session IDLE. The pipe is fully closed before this returns,
        so a following advance never overlaps two pipes.
        """
        if self._streamer is not None or self._state is SessionState.PAUSED:
            self._set_state(SessionState.STOPPING)
        self._generation += 1

        streamer, self._streamer = self._streamer, None
        if streamer is not None:
            await _cancel_and_wait(streamer)

        pipe, self._pipe = self._pipe, None
        if pipe is not None:
            await pipe.close()

        self._pause_buffer.clear()
        self._unpaused.set()
        await self._set_speaking(False)

        current, self._current = self._current, None
        title = current.info.title if current is not None and current.info else "Unknown"
        logger.info(LogTemplates.PLAYBACK_ENDED, title, self.guild_id, reason.value)
        self._emit(
            TrackEnded(
                guild_id=self.guild_id,
                title=title,
                reason=reason,
                error=error.message if error is not None else None,
                frames_sent=self._frames_sent,
            )
        )
        self._set_state(SessionState.IDLE)

    # ─────────────────────────────────────────────────────────────────
    # Voice connection
    # ─────────────────────────────────────────────────────────────────

    async def _handle_voice_lost(self, transport: VoiceTransport) -> None:
        if transport is not self._transport or self._grace_timer is not None:
            return

        if self._state is SessionState.RESOLVING:
            pending = self._pending
            await self._cancel_advance()
            if pending is not None:
                self._requeue_front(pending)
        elif self._state.has_pipe:
            await self._finish_current(TrackEndReason.DISCONNECTED)

        grace = self._settings.disconnect_grace_seconds
        logger.warning(LogTemplates.VOICE_LOST, self.guild_id, grace)
        self._emit(VoiceDisconnected(guild_id=self.guild_id, grace_seconds=grace))
        self._cancel_idle_timer()
        self._grace_timer = self._start_timer(grace, _GraceExpired)

    def _handle_voice_restored(self, transport: VoiceTransport) -> None:
        if transport is not self._transport or self._grace_timer is None:
            return
        _cancel_timer(self._grace_timer)
        self._grace_timer = None
        logger.info(LogTemplates.VOICE_RESTORED, self.guild_id)
        self._emit(VoiceReconnected(guild_id=self.guild_id))
        self._arm_idle_timer()

    def _can_stream(self) -> bool:
        return (
            self._transport is not None
            and self._transport.is_connected
            and self._grace_timer is None
        )

    async def _set_speaking(self, speaking: bool) -> None:
        if self._transport is not None and self._transport.is_connected:
            await self._transport.set_speaking(speaking)

    # ─────────────────────────────────────────────────────────────────
    # Timers
    # ─────────────────────────────────────────────────────────────────

    def _start_timer(
        self, delay: float, message_type: type[_TimerExpired]
    ) -> asyncio.Task[None]:
        async def fire() -> None:
            await asyncio.sleep(delay)
            self._post(message_type(asyncio.current_task()))

        return asyncio.create_task(fire(), name=f"guild-session-timer-{self.guild_id}")

    def _arm_idle_timer(self) -> None:
        if self._state is not SessionState.IDLE or self._grace_timer is not None:
            return
        self._cancel_idle_timer()
        self._idle_timer = self._start_timer(self._settings.idle_timeout_seconds, _IdleExpired)

    def _cancel_idle_timer(self) -> None:
        if self._idle_timer is not None:
            _cancel_timer(self._idle_timer)
            self._idle_timer = None

    def _touch(self) -> None:
        """Restart the idle countdown after user activity."""
        if self._idle_timer is not None:
            self._arm_idle_timer()

    # ─────────────────────────────────────────────────────────────────
    # Termination
    # ─────────────────────────────────────────────────────────────────

    async def _terminate(self, reason: TerminationReason) -> None:
        if self.is_terminated:
            return

        try:
            if self._state is SessionState.RESOLVING:
                await self._cancel_advance()
            elif self._state.has_pipe or self._pipe is not None:
                await self._finish_current(TrackEndReason.STOPPED)
        except Exception:
            logger.exception(LogTemplates.SESSION_CONTROL_ERROR, self.guild_id)
            await self._force_release()

        if self._grace_timer is not None:
            _cancel_timer(self._grace_timer)
            self._grace_timer = None
        self._cancel_idle_timer()
        cleared = self._queue.clear()
        if cleared:
            logger.info(LogTemplates.QUEUE_CLEARED, cleared, self.guild_id)

        self._set_state(SessionState.TERMINATED)
        self.termination_reason = reason
        logger.info(LogTemplates.SESSION_TERMINATED, self.guild_id, reason.value)

        await self._drain_mailbox()

        if self._transport is not None:
            try:
                await self._transport.disconnect()
            except Exception:
                logger.exception(LogTemplates.VOICE_CALLBACK_ERROR, "disconnect", self.guild_id)

        self._emit(SessionTerminated(guild_id=self.guild_id, reason=reason))
        self._outbox.put_nowait(None)

        if self._on_terminated is not None:
            self._on_terminated(self)

    async def _force_release(self) -> None:
        """Best-effort cleanup after teardown itself failed."""
        for task in (self._advance_task, self._streamer):
            if task is not None:
                task.cancel()
        self._advance_task = self._streamer = None
        pipe, self._pipe = self._pipe, None
        if pipe is not None:
            try:
                await pipe.close()
            except Exception:
                logger.exception(LogTemplates.SESSION_CONTROL_ERROR, self.guild_id)

    async def _drain_mailbox(self) -> None:
        while not self._mailbox.empty():
            message, reply = self._mailbox.get_nowait()
            if isinstance(message, _AdvanceDone) and message.pipe is not None:
                await message.pipe.close()
            _reject(reply, SessionTerminatedError(self.guild_id))

    # ─────────────────────────────────────────────────────────────────
    # Events
    # ─────────────────────────────────────────────────────────────────

    def _emit(self, event: SessionEvent) -> None:
        self._outbox.put_nowait(event)

    async def _dispatch_events(self) -> None:
        """Publish events in emission order, off the control path."""
        while True:
            event = await self._outbox.get()
            if event is None:
                return
            try:
                await self._event_bus.publish(event)
            except Exception:
                logger.exception(
                    LogTemplates.EVENT_DISPATCH_ERROR, type(event).__name__, self.guild_id
                )

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    def _set_state(self, target: SessionState) -> None:
        if target is self._state:
            return
        if not self._state.can_transition_to(target):
            raise RuntimeError(
                ErrorMessages.ILLEGAL_TRANSITION.format(
                    current=self._state.value, target=target.value
                )
            )
        logger.debug(
            LogTemplates.SESSION_TRANSITION, self.guild_id, self._state.value, target.value
        )
        self._state = target

    def _requeue_front(self, request: TrackRequest) -> None:
        try:
            self._queue.enqueue_next(request)
        except BusinessRuleViolationError:
            logger.warning(LogTemplates.QUEUE_REQUEUE_DROPPED, self.guild_id, request.display_title)

    def _current_title(self) -> str:
        if self._current is None:
            return ""
        return self._current.info.title if self._current.info else self._current.query

    def __repr__(self) -> str:
        return (
            f"GuildSession(guild_id={self.guild_id}, state={self._state.value}, "
            f"queued={self.queue_length})"
        )


def _reject(reply: asyncio.Future[Any] | None, exc: BaseException) -> None:
    if reply is not None and not reply.done():
        reply.set_exception(exc)


def _cancel_timer(timer: asyncio.Task[None]) -> None:
    if not timer.done():
        timer.cancel()


async def _cancel_and_wait(task: asyncio.Task[Any]) -> None:
    """Cancel a helper task and wait until it has actually finished."""
    task.cancel()
    await asyncio.wait({task})
    if not task.cancelled() and task.exception() is not None:
        logger.error(
            "Helper task %s failed during cancellation",
            task.get_name(),
            exc_info=task.exception(),
        )
