"""
RollingWindow: time-based audio window for streaming recognition (no silence gating).

Keeps the most recent WINDOW seconds of frames and hands out the whole window
every STEP seconds once it is full, so interim text appears while the speaker is
still talking. Returned start times are session-relative, which lets the engine
commit each segment exactly once across overlapping windows.
"""
from __future__ import annotations

from collections import deque

from callcaptions.config import get_settings


class RollingWindow:
    def __init__(
        self,
        window_sec: float | None = None,
        step_sec: float | None = None,
        min_chunk_sec: float | None = None,
    ) -> None:
        settings = get_settings()
        self._frame_sec = settings.FRAME_MS / 1000.0
        frames_per_sec = int(1.0 / self._frame_sec)
        window_sec = window_sec if window_sec is not None else settings.STT_WINDOW_SECONDS
        step_sec = step_sec if step_sec is not None else settings.STT_STEP_SECONDS
        min_chunk_sec = min_chunk_sec if min_chunk_sec is not None else settings.STT_MIN_CHUNK_SECONDS

        self._window_frames = max(1, int(frames_per_sec * window_sec))
        self._step_frames = max(1, int(frames_per_sec * step_sec))
        self._min_frames = max(1, int(frames_per_sec * min_chunk_sec))

        self._frames: deque[bytes] = deque(maxlen=self._window_frames)
        self._total_frames = 0
        self._last_emit_frame = -1

    def push(self, frame: bytes) -> tuple[bytes, float] | None:
        """Append one frame; returns (chunk, chunk_start_sec) when a step is due."""
        self._frames.append(frame)
        self._total_frames += 1

        if len(self._frames) < max(self._min_frames, self._window_frames):
            return None
        if self._last_emit_frame >= 0 and (self._total_frames - self._last_emit_frame) < self._step_frames:
            return None

        self._last_emit_frame = self._total_frames
        return b"".join(self._frames), (self._total_frames - self._window_frames) * self._frame_sec

    def flush(self) -> tuple[bytes, float] | None:
        """End of stream: remaining window if it holds at least min_chunk of audio."""
        if len(self._frames) < self._min_frames:
            return None
        start = (self._total_frames - len(self._frames)) * self._frame_sec
        return b"".join(self._frames), start

    @property
    def audio_time(self) -> float:
        """Seconds of audio pushed so far."""
        return self._total_frames * self._frame_sec
