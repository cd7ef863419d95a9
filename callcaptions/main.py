"""
FastAPI app: caption WebSocket plus translation HTTP API.

WebSocket /ws/captions?source=en-US&target=es: client sends binary PCM 16-bit mono
16kHz; server sends {"type": "caption", "caption": {...}} per caption.
HTTP: GET /api/languages, POST /api/translate.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect

from callcaptions.caption_socket import CaptionSocket
from callcaptions.config import get_settings, setup_logging
from callcaptions.recognition.whisper import load_whisper_model
from callcaptions.schemas.translation import Language, TranslateRequest, TranslationResult
from callcaptions.translation import TranslationChain, create_translation_chain

logger = logging.getLogger(__name__)

# 1013 = Try Again Later: no recognition backend on this server
_WS_CLOSE_NO_BACKEND = 1013


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings)
    # Load Whisper model once at startup when using local backend (singleton)
    if settings.ASR_BACKEND == "local":
        app.state.whisper_model = load_whisper_model()
    else:
        app.state.whisper_model = None
    # One client for both translation engines; the timeout bounds every caption's translation
    app.state.http_client = httpx.AsyncClient(timeout=settings.TRANSLATION_TIMEOUT_SECONDS)
    app.state.translation = create_translation_chain(app.state.http_client, settings)
    logger.info("Call captions ready (ASR_BACKEND=%s)", settings.ASR_BACKEND)
    yield
    await app.state.http_client.aclose()
    app.state.whisper_model = None


app = FastAPI(
    title="Call Captions",
    description="Live captions with two-tier translation for two-party calls",
    lifespan=lifespan,
)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/api/languages", response_model=list[Language])
async def languages() -> list[Language]:
    return TranslationChain.get_supported_languages()


@app.post("/api/translate", response_model=TranslationResult)
async def translate(request: Request, body: TranslateRequest) -> TranslationResult:
    """Translate one text. Engine failures degrade to service=fallback, never an error."""
    if not body.text.strip():
        raise HTTPException(status_code=400, detail="text is required")
    if not TranslationChain.is_language_supported(body.target):
        raise HTTPException(status_code=400, detail=f"Unsupported target language: {body.target}")
    chain: TranslationChain = request.app.state.translation
    return await chain.translate(body.text, body.source, body.target)


@app.websocket("/ws/captions")
async def websocket_captions(
    websocket: WebSocket,
    source: str | None = Query(None),
    target: str | None = Query(None),
) -> None:
    """
    WebSocket: client sends raw PCM 16-bit mono 16kHz (binary) and optional JSON
    control text. Server sends one JSON message per caption.
    """
    await websocket.accept()
    model = getattr(websocket.app.state, "whisper_model", None)
    if model is None:
        await websocket.close(code=_WS_CLOSE_NO_BACKEND, reason="No speech recognition backend configured")
        return
    settings = get_settings()
    socket = CaptionSocket(
        websocket,
        model,
        websocket.app.state.translation,
        source_language=source or settings.RECOGNITION_LANGUAGE,
        target_language=target or settings.DEFAULT_LANGUAGE,
    )
    try:
        await socket.run()
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Caption socket failed")
        try:
            await websocket.close()
        except RuntimeError:
            pass
