"""
CaptionSocket: one WebSocket = one local caption stream.

Client sends binary PCM 16-bit mono 16kHz, plus optional text control messages:
    {"type": "language", "target": "es"}
    {"type": "mute", "muted": true}
Server sends every caption as {"type": "caption", "caption": {...camelCase Caption...}}.

Audio path: AudioFeed -> WhisperRecognitionEngine -> RecognitionAdapter -> CaptionPipeline.
On disconnect the feed is closed so the engine flushes the tail; captions for it
are still sent while the socket accepts them.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import WebSocket

from callcaptions.audio import AudioFeed
from callcaptions.captions import CaptionPipeline
from callcaptions.recognition import RecognitionAdapter, WhisperRecognitionEngine
from callcaptions.recognition.whisper import WhisperModelT
from callcaptions.schemas.caption import Caption, CaptionRelayMessage
from callcaptions.translation import TranslationChain

logger = logging.getLogger(__name__)

# Upper bound for transcribing the buffered tail after the client goes away
_TAIL_FLUSH_TIMEOUT_SECONDS = 30.0


class CaptionSocket:
    def __init__(
        self,
        websocket: WebSocket,
        model: WhisperModelT,
        translation: TranslationChain,
        source_language: str,
        target_language: str,
    ) -> None:
        self._ws = websocket
        self._feed = AudioFeed()
        self._recognition = RecognitionAdapter(WhisperRecognitionEngine(self._feed, model), language=source_language)
        self._pipeline = CaptionPipeline(
            self._recognition,
            translation,
            target_language=target_language,
            source_language=source_language,
        )
        self._outbox: asyncio.Queue[Caption | None] = asyncio.Queue()
        self._run_ended = asyncio.Event()
        self._closed = False

        self._pipeline.caption.subscribe(self._outbox.put_nowait)
        self._pipeline.error.subscribe(lambda e: logger.warning("Caption stream error: %s", e))
        self._recognition.started.subscribe(lambda _: self._run_ended.clear())
        self._recognition.ended.subscribe(lambda _: self._run_ended.set())

    @property
    def pipeline(self) -> CaptionPipeline:
        return self._pipeline

    async def _send_caption(self, caption: Caption) -> None:
        if self._closed:
            return
        try:
            await self._ws.send_text(json.dumps(CaptionRelayMessage(caption=caption).to_wire()))
        except Exception as e:
            logger.debug("Caption socket closed while sending: %s", e)
            self._closed = True

    async def _sender(self) -> None:
        while True:
            caption = await self._outbox.get()
            if caption is None:
                break
            await self._send_caption(caption)

    def _handle_control(self, text: str) -> None:
        try:
            message: Any = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Ignoring non-JSON control message")
            return
        if not isinstance(message, dict):
            return
        kind = message.get("type")
        if kind == "language" and message.get("target"):
            self._pipeline.set_target_language(str(message["target"]))
        elif kind == "mute":
            self._pipeline.set_muted(bool(message.get("muted")))
        else:
            logger.debug("Unknown control message: %r", message)

    async def run(self) -> None:
        """Receive audio until the client disconnects, then flush and close."""
        sender = asyncio.create_task(self._sender())
        self._pipeline.start_local_captions()
        try:
            while not self._closed:
                try:
                    msg = await self._ws.receive()
                except RuntimeError:
                    break
                if msg.get("type") == "websocket.disconnect":
                    break
                data = msg.get("bytes")
                if data is not None:
                    self._feed.feed(data)
                elif msg.get("text"):
                    self._handle_control(msg["text"])
        finally:
            self._feed.close()
            if self._recognition.is_active():
                try:
                    await asyncio.wait_for(self._run_ended.wait(), timeout=_TAIL_FLUSH_TIMEOUT_SECONDS)
                except asyncio.TimeoutError:
                    logger.warning("Timed out transcribing the audio tail")
            await self._pipeline.flush()
            self._pipeline.destroy()
            self._outbox.put_nowait(None)
            await sender
