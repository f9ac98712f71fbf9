"""Bounded frame buffer used while playback is paused.

Sources that cannot idle keep producing frames during a pause. Those frames are
held here up to a fixed window; anything beyond it is dropped on arrival, so
frames already buffered are never lost or reordered.
"""

from __future__ import annotations

from collections import deque


class PauseBuffer:
    """Bounded FIFO of audio frames that drops NEW frames on overflow."""

    def __init__(self, *, max_frames: int) -> None:
        if max_frames <= 0:
            raise ValueError("max_frames must be > 0")

        self._max_frames = max_frames
        self._frames: deque[bytes] = deque()
        self.dropped = 0

    def push(self, frame: bytes) -> bool:
        """Buffer a frame. Returns False if it was dropped."""
        if len(self._frames) >= self._max_frames:
            self.dropped += 1
            return False
        self._frames.append(frame)
        return True

    def pop(self) -> bytes | None:
        """Remove and return the oldest frame, or None when empty."""
        if not self._frames:
            return None
        return self._frames.popleft()

    def clear(self) -> None:
        """Drop all buffered frames without counting them as drops."""
        self._frames.clear()

    def __len__(self) -> int:
        return len(self._frames)

    def __bool__(self) -> bool:
        return bool(self._frames)

    @property
    def is_full(self) -> bool:
        return len(self._frames) >= self._max_frames
