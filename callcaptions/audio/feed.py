"""
AudioFeed: bytes in, fixed-size PCM frames out, as an async iterator.

- Producer (WebSocket handler, capture callback) calls feed(data) with arbitrary sizes.
- Complete frames (e.g. 20ms = 640 bytes) are queued; any remainder waits for more data.
- close() ends iteration once queued frames are consumed; the partial tail is dropped.
"""
from __future__ import annotations

import asyncio
from typing import AsyncIterator

from callcaptions.config import get_settings


class AudioFeed:
    def __init__(self, frame_bytes: int | None = None) -> None:
        self._frame_bytes = frame_bytes or get_settings().FRAME_BYTES
        self._buffer = bytearray()
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._closed = False
        self._exhausted = False

    def feed(self, data: bytes) -> int:
        """Append raw PCM bytes; returns how many complete frames were queued."""
        if self._closed or not data:
            return 0
        self._buffer.extend(data)
        queued = 0
        while len(self._buffer) >= self._frame_bytes:
            self._queue.put_nowait(bytes(self._buffer[: self._frame_bytes]))
            del self._buffer[: self._frame_bytes]
            queued += 1
        return queued

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    @property
    def closed(self) -> bool:
        return self._closed

    def remaining_bytes(self) -> int:
        """Bytes left in buffer (incomplete frame)."""
        return len(self._buffer)

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self

    async def __anext__(self) -> bytes:
        if self._exhausted:
            raise StopAsyncIteration
        frame = await self._queue.get()
        if frame is None:
            self._exhausted = True
            raise StopAsyncIteration
        return frame
