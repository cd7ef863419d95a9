"""Application configuration. Loads from env vars."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Server bind address for `python -m callcaptions`
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Call setup: guest waits this long after losing the host race before joining
    JOIN_DELAY_SECONDS: float = 1.0

    # Languages: captions default to English; recognition runs with a region tag
    DEFAULT_LANGUAGE: str = "en"
    RECOGNITION_LANGUAGE: str = "en-US"

    # Translation engines: LibreTranslate is primary, MyMemory secondary
    LIBRETRANSLATE_URL: str = "https://libretranslate.com/translate"
    MYMEMORY_URL: str = "https://api.mymemory.translated.net/get"
    TRANSLATION_TIMEOUT_SECONDS: float = 10.0

    # Caption log: oldest captions are evicted past this many (0 = unbounded)
    CAPTION_HISTORY_LIMIT: int = 500

    # Recognition: restart after engine-initiated end, bounded when no results arrive
    RECOGNITION_MAX_RESTARTS: int = 5
    RECOGNITION_RESTART_DELAY_SECONDS: float = 0.25

    # ASR backend for the caption WebSocket: "local" (faster-whisper) | "none"
    ASR_BACKEND: Literal["local", "none"] = "local"
    LOCAL_WHISPER_MODEL: str = "base"  # base | small | medium | large-v3
    LOCAL_WHISPER_DEVICE: Literal["cpu", "cuda"] = "cpu"
    LOCAL_WHISPER_COMPUTE_TYPE: Literal["int8", "float16"] = "int8"
    LOCAL_WHISPER_BEAM_SIZE: int = 1

    # Audio: PCM 16-bit mono, 16kHz; 20ms frames = 640 bytes
    SAMPLE_RATE: int = 16000
    FRAME_MS: int = 20
    FRAME_BYTES: int = 640

    # Rolling window for streaming recognition
    STT_WINDOW_SECONDS: float = 5.0
    STT_STEP_SECONDS: float = 1.0
    STT_MIN_CHUNK_SECONDS: float = 0.5  # do not transcribe chunks < 500ms (prevent hallucination)
    STT_COMMIT_AGE_SECONDS: float = 2.0  # segments ending before (audio_time - this) are final

    # Logging: level (DEBUG, INFO, WARNING, ERROR); empty LOG_FILE = console only
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        extra = "ignore"


def get_settings() -> Settings:
    return Settings()


def setup_logging(settings: Settings | None = None) -> None:
    """Configure root logging from LOG_LEVEL / LOG_FILE."""
    settings = settings or get_settings()
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.LOG_FILE:
        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(level=level, format=settings.LOG_FORMAT, handlers=handlers, force=True)
