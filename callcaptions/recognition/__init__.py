"""Speech recognition: engine boundary, adapter, Whisper engine."""
from .adapter import RecognitionAdapter
from .base import RecognitionEngine, RecognitionResult
from .whisper import WhisperRecognitionEngine, load_whisper_model

__all__ = [
    "RecognitionAdapter",
    "RecognitionEngine",
    "RecognitionResult",
    "WhisperRecognitionEngine",
    "load_whisper_model",
]
