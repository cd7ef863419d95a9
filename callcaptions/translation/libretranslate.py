"""
LibreTranslateEngine: primary tier.

POST {q, source, target, format: "text"} -> {translatedText}. Unauthenticated.
"""
from __future__ import annotations

import logging

import httpx

from callcaptions.errors import TranslationFailure
from callcaptions.translation.base import TranslationEngine

logger = logging.getLogger(__name__)


class LibreTranslateEngine(TranslationEngine):
    name = "libretranslate"

    def __init__(self, client: httpx.AsyncClient, endpoint: str) -> None:
        self._client = client
        self._endpoint = endpoint

    async def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        payload = {"q": text, "source": source_lang, "target": target_lang, "format": "text"}
        try:
            resp = await self._client.post(self._endpoint, json=payload)
        except httpx.HTTPError as e:
            raise TranslationFailure(self.name, f"request failed: {e}") from e

        if resp.status_code != 200:
            raise TranslationFailure(
                self.name,
                f"API error: {resp.status_code} - {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise TranslationFailure(self.name, "response is not JSON") from e

        translated = data.get("translatedText") if isinstance(data, dict) else None
        if not isinstance(translated, str):
            raise TranslationFailure(self.name, "response has no translatedText")
        return translated
