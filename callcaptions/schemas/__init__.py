"""Pydantic schemas for captions, relay messages and translation."""
from callcaptions.schemas.caption import Caption, CaptionRelayMessage, RemoteCaptionPayload, Speaker
from callcaptions.schemas.translation import (
    Language,
    TranslateRequest,
    TranslationResult,
    TranslationTier,
)

__all__ = [
    "Caption",
    "CaptionRelayMessage",
    "Language",
    "RemoteCaptionPayload",
    "Speaker",
    "TranslateRequest",
    "TranslationResult",
    "TranslationTier",
]
