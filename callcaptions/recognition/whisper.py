"""
WhisperRecognitionEngine: continuous recognition with faster-whisper over a PCM feed.

- Model loaded ONCE at startup (singleton, injected at construction).
- Frames from the AudioFeed go into a RollingWindow; every step the window is
  transcribed in an executor so the event loop stays responsive.
- Overlapping windows re-transcribe the same audio, so only timestamps decide
  uniqueness: a segment is FINAL once it falls behind the commit horizon
  (audio_time - STT_COMMIT_AGE_SECONDS) and is never emitted as final twice
  (commit watermark). Segments after the horizon form one interim result.
- Closing the feed flushes the tail as final and ends the run.
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, AsyncIterator

import numpy as np

from callcaptions.audio import AudioFeed, RollingWindow, pcm_bytes_to_float32, pcm_duration_seconds
from callcaptions.config import get_settings
from callcaptions.errors import RecognitionError
from callcaptions.recognition.base import RecognitionEngine, RecognitionResult
from callcaptions.translation.base import normalize_language_code

logger = logging.getLogger(__name__)

# Type for shared WhisperModel (loaded at startup)
WhisperModelT = Any

# Absorbs timestamp jitter so overlapping windows don't commit the same segment twice
_COMMIT_EPSILON = 0.05


@dataclass
class TranscribedSegment:
    """One Whisper segment, start/end relative to the transcribed chunk."""

    start: float
    end: float
    text: str
    confidence: float


def normalize_segment_text(text: str) -> str:
    """Collapse whitespace and repeated punctuation."""
    if not text:
        return ""
    text = re.sub(r"\s+", " ", text.strip())
    text = re.sub(r"([.!?,;:])\1+", r"\1", text)
    return text.strip()


def load_whisper_model() -> WhisperModelT:
    """Load faster-whisper model once. Called at startup when ASR_BACKEND=local."""
    try:
        from faster_whisper import WhisperModel
    except ImportError as err:
        raise ImportError(
            "faster-whisper is required for ASR_BACKEND=local. "
            "Install with: pip install 'callcaptions[whisper]'"
        ) from err
    settings = get_settings()
    logger.info("Loading Whisper model: %s on %s", settings.LOCAL_WHISPER_MODEL, settings.LOCAL_WHISPER_DEVICE)
    return WhisperModel(
        settings.LOCAL_WHISPER_MODEL,
        device=settings.LOCAL_WHISPER_DEVICE,
        compute_type=settings.LOCAL_WHISPER_COMPUTE_TYPE,
    )


class WhisperRecognitionEngine(RecognitionEngine):
    def __init__(self, feed: AudioFeed, model: WhisperModelT | None, window: RollingWindow | None = None) -> None:
        settings = get_settings()
        self._feed = feed
        self._model = model
        self._window = window or RollingWindow()
        self._sample_rate = settings.SAMPLE_RATE
        self._commit_delay = settings.STT_COMMIT_AGE_SECONDS
        self._beam_size = settings.LOCAL_WHISPER_BEAM_SIZE
        self._committed_until = 0.0

    def _transcribe_sync(self, audio: np.ndarray, language: str | None) -> list[TranscribedSegment]:
        """Blocking decode; run from executor."""
        segments, _ = self._model.transcribe(
            audio,
            language=language,
            beam_size=self._beam_size,
            vad_filter=True,
            vad_parameters=dict(min_silence_duration_ms=300, speech_pad_ms=100),
            condition_on_previous_text=False,
        )
        out: list[TranscribedSegment] = []
        for seg in segments:
            text = normalize_segment_text(seg.text or "")
            if not text:
                continue
            confidence = float(np.exp(getattr(seg, "avg_logprob", 0.0)))
            out.append(TranscribedSegment(start=seg.start, end=seg.end, text=text, confidence=confidence))
        return out

    async def _transcribe(self, chunk: bytes, language: str | None) -> list[TranscribedSegment]:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._transcribe_sync, pcm_bytes_to_float32(chunk), language)
        except Exception as e:
            raise RecognitionError(f"Whisper transcription failed: {e}") from e

    def _commit(
        self, segments: list[TranscribedSegment], chunk_start: float, chunk_end: float, flush: bool
    ) -> list[RecognitionResult]:
        horizon = chunk_end - self._commit_delay
        results: list[RecognitionResult] = []
        interim: list[TranscribedSegment] = []
        for seg in segments:
            seg_start = chunk_start + seg.start
            seg_end = chunk_start + seg.end
            if seg_end <= self._committed_until + _COMMIT_EPSILON:
                continue
            if flush or seg_end <= horizon or seg_start < horizon:
                self._committed_until = max(self._committed_until, seg_end)
                results.append(RecognitionResult(text=seg.text, is_final=True, confidence=seg.confidence))
            else:
                interim.append(seg)
        if interim:
            results.append(
                RecognitionResult(
                    text=" ".join(s.text for s in interim),
                    is_final=False,
                    confidence=min(s.confidence for s in interim),
                )
            )
        return results

    async def results(self, language: str) -> AsyncIterator[RecognitionResult]:
        if self._model is None:
            raise RecognitionError("Whisper model not loaded")
        whisper_language = normalize_language_code(language) or None

        async for frame in self._feed:
            due = self._window.push(frame)
            if due is None:
                continue
            chunk, chunk_start = due
            segments = await self._transcribe(chunk, whisper_language)
            chunk_end = chunk_start + pcm_duration_seconds(chunk, self._sample_rate)
            for result in self._commit(segments, chunk_start, chunk_end, flush=False):
                yield result

        tail = self._window.flush()
        if tail is not None:
            chunk, chunk_start = tail
            segments = await self._transcribe(chunk, whisper_language)
            chunk_end = chunk_start + pcm_duration_seconds(chunk, self._sample_rate)
            for result in self._commit(segments, chunk_start, chunk_end, flush=True):
                yield result
