"""
RecognitionEngine: abstract boundary to a continuous speech-to-text engine.

One call to results(language) is one recognition run. The engine yields a
RecognitionResult for every interim and every final segment; the iterator
finishing is the engine-initiated "end", raising is an engine error.
Implementations: WhisperRecognitionEngine (faster-whisper over a PCM feed).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator


@dataclass(frozen=True)
class RecognitionResult:
    """One recognized segment."""

    text: str
    is_final: bool
    confidence: float  # 0.0–1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", min(1.0, max(0.0, float(self.confidence))))


class RecognitionEngine(ABC):
    @abstractmethod
    def results(self, language: str) -> AsyncIterator[RecognitionResult]:
        """
        Start one continuous run in `language` (BCP-47 tag, e.g. en-US).
        Must not block the event loop; run heavy work in executor.
        """
        ...
