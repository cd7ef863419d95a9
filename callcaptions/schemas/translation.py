"""Schemas for translation results and the translate API."""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class TranslationTier(str, Enum):
    """Which tier satisfied a translate request."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    FALLBACK = "fallback"


class TranslationResult(BaseModel):
    translated_text: str = Field(..., alias="translatedText")
    source_language: str = Field(..., alias="sourceLanguage")
    target_language: str = Field(..., alias="targetLanguage")
    service: TranslationTier

    class Config:
        populate_by_name = True

    @property
    def is_degraded(self) -> bool:
        """True when no engine produced the text (passthrough)."""
        return self.service is TranslationTier.FALLBACK


class Language(BaseModel):
    code: str
    name: str


class TranslateRequest(BaseModel):
    """Request body for POST /api/translate."""

    text: str = Field(..., description="Text to translate")
    source: str = Field("en", description="Source language code, region suffix allowed (en-US)")
    target: str = Field(..., description="Target language code")
