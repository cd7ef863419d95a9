"""
TranslationChain: primary -> secondary -> fallback.

- Same language (after region stripping): original text, tier "fallback", no network call.
- Primary engine first; any TranslationFailure (network, non-200, rate limit) moves on.
- Secondary engine next; on failure the original text is returned as "fallback".
translate() never raises for engine failures; callers read `service` to tell a real
translation from a degraded passthrough.
"""
from __future__ import annotations

import logging

import httpx

from callcaptions.config import Settings, get_settings
from callcaptions.errors import TranslationFailure
from callcaptions.schemas.translation import Language, TranslationResult, TranslationTier
from callcaptions.translation.base import TranslationEngine, normalize_language_code
from callcaptions.translation.languages import SUPPORTED_LANGUAGES
from callcaptions.translation.libretranslate import LibreTranslateEngine
from callcaptions.translation.mymemory import MyMemoryEngine

logger = logging.getLogger(__name__)


class TranslationChain:
    def __init__(self, primary: TranslationEngine, secondary: TranslationEngine) -> None:
        self._tiers: tuple[tuple[TranslationTier, TranslationEngine], ...] = (
            (TranslationTier.PRIMARY, primary),
            (TranslationTier.SECONDARY, secondary),
        )

    @staticmethod
    def needs_translation(source_lang: str, target_lang: str) -> bool:
        return normalize_language_code(source_lang) != normalize_language_code(target_lang)

    async def translate(self, text: str, source_lang: str, target_lang: str) -> TranslationResult:
        if not self.needs_translation(source_lang, target_lang):
            return self._result(text, source_lang, target_lang, TranslationTier.FALLBACK)

        source = normalize_language_code(source_lang)
        target = normalize_language_code(target_lang)
        for tier, engine in self._tiers:
            try:
                translated = await engine.translate(text, source, target)
            except TranslationFailure as e:
                logger.warning("Translation tier %s (%s) failed: %s", tier.value, engine.name, e)
                continue
            return self._result(translated, source_lang, target_lang, tier)

        logger.warning("All translation services failed, returning original text")
        return self._result(text, source_lang, target_lang, TranslationTier.FALLBACK)

    @staticmethod
    def _result(text: str, source_lang: str, target_lang: str, tier: TranslationTier) -> TranslationResult:
        return TranslationResult(
            translated_text=text,
            source_language=source_lang,
            target_language=target_lang,
            service=tier,
        )

    @staticmethod
    def get_supported_languages() -> list[Language]:
        return list(SUPPORTED_LANGUAGES)

    @staticmethod
    def is_language_supported(code: str) -> bool:
        normalized = normalize_language_code(code)
        return any(lang.code == normalized for lang in SUPPORTED_LANGUAGES)


def create_translation_chain(client: httpx.AsyncClient, settings: Settings | None = None) -> TranslationChain:
    """Build the LibreTranslate -> MyMemory chain from config over a shared client."""
    settings = settings or get_settings()
    return TranslationChain(
        primary=LibreTranslateEngine(client, settings.LIBRETRANSLATE_URL),
        secondary=MyMemoryEngine(client, settings.MYMEMORY_URL),
    )
