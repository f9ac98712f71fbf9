import asyncio
from collections.abc import Callable

import pytest
import pytest_asyncio

from guild_player.application.interfaces.audio_pipe import AudioPipe, AudioPipeFactory
from guild_player.application.interfaces.track_resolver import TrackResolver
from guild_player.application.interfaces.voice_transport import VoiceTransport
from guild_player.config.settings import PlaybackSettings
from guild_player.domain.music.entities import TrackInfo
from guild_player.domain.shared.events import EventBus, SessionEvent
from guild_player.domain.shared.exceptions import PipeError, TrackNotFoundError, TransportError

GUILD_ID = 111111111
USER_ID = 222222222
OTHER_USER_ID = 333333333


# ============================================================================
# Fakes
# ============================================================================


def make_frames(tag: str, count: int) -> list[bytes]:
    """Distinguishable frames: tag plus sequence number."""
    return [f"{tag}:{i}".encode() for i in range(count)]


class FakePipe(AudioPipe):
    """In-memory frame stream.

    With ``hold_open`` the pipe never reaches end of stream on its own and
    blocks on read after its frames are used up, like a live source.
    """

    def __init__(
        self,
        url: str,
        frames: list[bytes],
        *,
        backpressure: bool = True,
        error: PipeError | None = None,
        hold_open: bool = False,
        log: list[str] | None = None,
    ) -> None:
        self.url = url
        self._frames = list(frames)
        self._backpressure = backpressure
        self._final_error = error
        self._hold_open = hold_open
        self._log = log if log is not None else []
        self._error: PipeError | None = None
        self._closed = False
        self._closed_event = asyncio.Event()
        self.reads = 0

    async def read_frame(self) -> bytes | None:
        if self._closed:
            return None
        if self._frames:
            self.reads += 1
            await asyncio.sleep(0)
            return self._frames.pop(0)
        if self._hold_open:
            await self._closed_event.wait()
            return None
        self._error = self._final_error
        return None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._closed_event.set()
        self._log.append(f"close:{self.url}")

    @property
    def error(self) -> PipeError | None:
        return self._error

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def supports_backpressure(self) -> bool:
        return self._backpressure


class FakePipeFactory(AudioPipeFactory):
    """Opens FakePipes from a url -> spec table and records open/close order."""

    def __init__(self) -> None:
        self.specs: dict[str, dict] = {}
        self.log: list[str] = []
        self.pipes: list[FakePipe] = []
        self.failures: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}

    def add(self, url: str, frames: list[bytes], **kwargs) -> None:
        self.specs[url] = {"frames": frames, **kwargs}

    async def open(self, source_url: str) -> FakePipe:
        gate = self.gates.get(source_url)
        if gate is not None:
            await gate.wait()
        if source_url in self.failures:
            raise self.failures[source_url]
        spec = self.specs.get(source_url, {"frames": make_frames(source_url, 3)})
        self.log.append(f"open:{source_url}")
        pipe = FakePipe(source_url, log=self.log, **spec)
        self.pipes.append(pipe)
        return pipe

    @property
    def open_count(self) -> int:
        return sum(1 for p in self.pipes if not p.closed)


class FakeResolver(TrackResolver):
    """Resolves "<name>" to source url "src://<name>"; configurable failures and gates."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.failures: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}

    async def resolve(self, query: str) -> TrackInfo:
        self.calls.append(query)
        gate = self.gates.get(query)
        if gate is not None:
            await gate.wait()
        if query in self.failures:
            raise self.failures[query]
        return TrackInfo(title=f"Title {query}", source_url=f"src://{query}")

    def is_url(self, query: str) -> bool:
        return query.startswith("http")

    def fail(self, query: str, error: Exception | None = None) -> None:
        self.failures[query] = error or TrackNotFoundError(query)


class FakeTransport(VoiceTransport):
    """Voice transport that records frames and lets tests drop the connection."""

    def __init__(self) -> None:
        self.frames: list[bytes] = []
        self.speaking: list[bool] = []
        self.connected = True
        self.disconnected = False
        self._on_disconnect: list[Callable[[], None]] = []
        self._on_reconnect: list[Callable[[], None]] = []
        self.fail_sends = False
        self.send_error: Exception | None = None
        self.speaking_error: Exception | None = None
        self.sent_at: list[float] = []

    def send_frame(self, frame: bytes) -> None:
        if self.send_error is not None:
            raise self.send_error
        if not self.connected or self.fail_sends:
            raise TransportError("not connected")
        self.frames.append(frame)
        self.sent_at.append(asyncio.get_running_loop().time())

    async def set_speaking(self, speaking: bool) -> None:
        if speaking and self.speaking_error is not None:
            raise self.speaking_error
        self.speaking.append(speaking)

    def on_disconnect(self, callback: Callable[[], None]) -> None:
        self._on_disconnect.append(callback)

    def on_reconnect(self, callback: Callable[[], None]) -> None:
        self._on_reconnect.append(callback)

    @property
    def is_connected(self) -> bool:
        return self.connected and not self.disconnected

    async def disconnect(self) -> None:
        self.disconnected = True

    def drop(self) -> None:
        self.connected = False
        for callback in list(self._on_disconnect):
            callback()

    def restore(self) -> None:
        self.connected = True
        for callback in list(self._on_reconnect):
            callback()


class EventRecorder:
    """Collects every session event published on a bus."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list[SessionEvent] = []
        bus.subscribe(SessionEvent, self._record)

    async def _record(self, event: SessionEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list:
        return [e for e in self.events if isinstance(e, event_type)]

    def names(self) -> list[str]:
        return [type(e).__name__ for e in self.events]

    async def wait_for(self, event_type: type, count: int = 1, timeout: float = 2.0) -> list:
        async with asyncio.timeout(timeout):
            while len(self.of_type(event_type)) < count:
                await asyncio.sleep(0.001)
        return self.of_type(event_type)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def playback_settings():
    """Fast timings so tests finish in milliseconds."""
    return PlaybackSettings(
        disconnect_grace_seconds=0.2,
        idle_timeout_seconds=30.0,
        stall_timeout_seconds=1.0,
        pause_buffer_frames=4,
        max_consecutive_failures=3,
        resource_retry_attempts=2,
        resource_retry_base_delay=0.001,
        frame_duration_seconds=0.001,
    )


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def recorder(event_bus):
    return EventRecorder(event_bus)


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def pipe_factory():
    return FakePipeFactory()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest_asyncio.fixture
async def session(resolver, pipe_factory, event_bus, playback_settings, transport):
    """A started session with a connected transport."""
    from guild_player.application.services.guild_session import GuildSession

    s = GuildSession(
        GUILD_ID,
        resolver=resolver,
        pipe_factory=pipe_factory,
        event_bus=event_bus,
        settings=playback_settings,
        max_queue_size=10,
    )
    s.start()
    await s.attach_transport(transport)
    yield s
    await s.terminate()
    await s.wait_closed()
