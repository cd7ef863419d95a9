"""
CaptionPipeline: recognized and received speech -> ordered, optionally translated captions.

- Local: every RecognitionAdapter result (interim or final) becomes one Caption
  with speaker=local, unless captions are muted. Muted results are dropped
  before any translation call.
- Remote: captions relayed by the peer are re-translated from their original
  text into the local target language and tagged speaker=remote.
- A failed translation degrades to the original text (is_translated=False);
  the stream always continues with the next result.
- The log is append-only, capped at CAPTION_HISTORY_LIMIT (oldest evicted).
  get_captions() sorts by timestamp; insertion order breaks ties.

Translation has no cancellation. A local result whose translation lands after
set_muted(True) (mute epoch changed) or destroy() is discarded when it lands.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from typing import Any

from callcaptions.config import get_settings
from callcaptions.errors import RecognitionError
from callcaptions.events import EventChannel
from callcaptions.recognition.adapter import RecognitionAdapter
from callcaptions.recognition.base import RecognitionResult
from callcaptions.schemas.caption import Caption, RemoteCaptionPayload, Speaker
from callcaptions.translation.chain import TranslationChain

logger = logging.getLogger(__name__)


def _unix_ms() -> int:
    return int(time.time() * 1000)


def _caption_id() -> str:
    return f"caption-{_unix_ms()}-{uuid.uuid4().hex[:9]}"


class CaptionPipeline:
    def __init__(
        self,
        recognition: RecognitionAdapter,
        translation: TranslationChain,
        target_language: str | None = None,
        source_language: str | None = None,
        max_captions: int | None = None,
    ) -> None:
        settings = get_settings()
        self._recognition = recognition
        self._translation = translation
        self._target_language = target_language or settings.DEFAULT_LANGUAGE
        self._source_language = source_language or settings.DEFAULT_LANGUAGE
        limit = max_captions if max_captions is not None else settings.CAPTION_HISTORY_LIMIT
        self._log: deque[Caption] = deque(maxlen=limit or None)
        self._muted = False
        self._mute_epoch = 0
        self._destroyed = False
        self._pending: set[asyncio.Task[Any]] = set()

        self.caption: EventChannel[Caption] = EventChannel("captions.caption")
        self.error: EventChannel[Exception] = EventChannel("captions.error")

        self._unsubscribe = [
            recognition.result.subscribe(self._on_recognition_result),
            recognition.error.subscribe(self._on_recognition_error),
        ]

    # --- language / mute state ---

    def get_target_language(self) -> str:
        return self._target_language

    def set_target_language(self, language: str) -> None:
        """Applies to captions created after this call; emitted ones are unchanged."""
        self._target_language = language

    def get_source_language(self) -> str:
        return self._source_language

    def set_source_language(self, language: str) -> None:
        self._source_language = language
        self._recognition.set_language(language)

    @property
    def is_muted(self) -> bool:
        return self._muted

    def set_muted(self, muted: bool) -> None:
        if muted == self._muted:
            return
        self._muted = muted
        if muted:
            self._mute_epoch += 1
            self._recognition.stop()
        else:
            self._recognition.start()

    # --- local captions ---

    def start_local_captions(self, target_language: str | None = None) -> None:
        if target_language:
            self._target_language = target_language
        if self._muted:
            return
        if self._recognition.is_active():
            return
        self._recognition.start()

    def stop_local_captions(self) -> None:
        self._recognition.stop()

    def _on_recognition_result(self, result: RecognitionResult) -> None:
        if self._muted or self._destroyed:
            return
        task = asyncio.get_running_loop().create_task(self.handle_recognition_result(result))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _on_recognition_error(self, error: RecognitionError) -> None:
        self.error.emit(error)

    async def handle_recognition_result(self, result: RecognitionResult) -> Caption | None:
        """Build, log and emit a local caption. Returns None when the result was discarded."""
        if self._muted or self._destroyed:
            return None
        epoch = self._mute_epoch
        target = self._target_language
        text, is_translated = await self._translate(result.text, target)
        if self._destroyed or self._muted or epoch != self._mute_epoch:
            logger.debug("Dropping caption whose translation landed after mute/destroy")
            return None
        return self._append(
            Caption(
                id=_caption_id(),
                text=text,
                original_text=result.text,
                speaker=Speaker.LOCAL,
                timestamp=_unix_ms(),
                language=target,
                is_translated=is_translated,
            )
        )

    # --- remote captions ---

    async def process_remote_caption(self, payload: RemoteCaptionPayload | dict) -> Caption | None:
        """Re-translate a caption relayed by the peer into the local target language."""
        if self._destroyed:
            return None
        try:
            remote = (
                payload if isinstance(payload, RemoteCaptionPayload) else RemoteCaptionPayload.model_validate(payload)
            )
        except ValueError as e:
            logger.error("Error processing remote caption: %s", e)
            self.error.emit(e)
            return None

        target = self._target_language
        original = remote.original_text or remote.text
        text, is_translated = remote.text or original, remote.is_translated
        if remote.original_text:
            translated, did_translate = await self._translate(remote.original_text, target)
            if did_translate:
                text, is_translated = translated, True
            elif self._translation.needs_translation(self._source_language, target):
                text, is_translated = remote.original_text, False
        if not is_translated:
            text = original
        elif text == original:
            is_translated = False
        if self._destroyed:
            return None
        return self._append(
            Caption(
                id=_caption_id(),
                text=text,
                original_text=original,
                speaker=Speaker.REMOTE,
                timestamp=_unix_ms(),
                language=target,
                is_translated=is_translated,
            )
        )

    # --- shared ---

    async def _translate(self, text: str, target: str) -> tuple[str, bool]:
        """Returns (display_text, is_translated). Never raises."""
        if not self._translation.needs_translation(self._source_language, target):
            return text, False
        try:
            result = await self._translation.translate(text, self._source_language, target)
        except Exception:
            logger.exception("Translation failed, using original text")
            return text, False
        if result.is_degraded:
            logger.warning("Translation unavailable, using original text")
            return text, False
        if result.translated_text == text:
            return text, False
        return result.translated_text, True

    def _append(self, caption: Caption) -> Caption:
        self._log.append(caption)
        self.caption.emit(caption)
        return caption

    def get_captions(self) -> list[Caption]:
        """Chronological order; stable, so equal timestamps keep insertion order."""
        return sorted(self._log, key=lambda c: c.timestamp)

    def clear_captions(self) -> None:
        self._log.clear()

    async def flush(self) -> None:
        """Wait for in-flight local results to be captioned (or discarded)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def destroy(self) -> None:
        self._destroyed = True
        if self._recognition.is_active():
            self._recognition.stop()
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        self.caption.clear()
        self.error.clear()
        self._log.clear()
