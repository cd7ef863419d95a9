"""
TranslationEngine: abstract interface for one text-in, text-out translation service.

Implementations: LibreTranslateEngine (primary), MyMemoryEngine (secondary).
Engines raise TranslationFailure on any network error or non-success status;
falling through to the next tier is TranslationChain's job.
"""
from __future__ import annotations

from abc import ABC, abstractmethod


def normalize_language_code(code: str) -> str:
    """Strip the region and lowercase: 'en-US' -> 'en', 'pt_BR' -> 'pt'."""
    return (code or "").strip().replace("_", "-").split("-")[0].lower()


class TranslationEngine(ABC):
    """Abstract translation engine. translate() is async and never blocks the loop."""

    name: str = "engine"

    @abstractmethod
    async def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        """
        Return translated text for normalized language codes.
        Raise TranslationFailure on any failure.
        """
        ...
