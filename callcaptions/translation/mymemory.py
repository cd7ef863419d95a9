"""
MyMemoryEngine: secondary tier.

GET ?q=<text>&langpair=<src>|<dst> -> {responseStatus, responseData: {translatedText}}.
responseStatus is reported in the body; anything other than 200 is a failure
(MyMemory answers quota exhaustion with HTTP 200 and responseStatus 429).
"""
from __future__ import annotations

import httpx

from callcaptions.errors import TranslationFailure
from callcaptions.translation.base import TranslationEngine


class MyMemoryEngine(TranslationEngine):
    name = "mymemory"

    def __init__(self, client: httpx.AsyncClient, endpoint: str) -> None:
        self._client = client
        self._endpoint = endpoint

    async def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        params = {"q": text, "langpair": f"{source_lang}|{target_lang}"}
        try:
            resp = await self._client.get(self._endpoint, params=params)
        except httpx.HTTPError as e:
            raise TranslationFailure(self.name, f"request failed: {e}") from e

        if resp.status_code != 200:
            raise TranslationFailure(self.name, f"API error: {resp.status_code}", status_code=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise TranslationFailure(self.name, "response is not JSON") from e

        if not isinstance(data, dict):
            raise TranslationFailure(self.name, "response is not a JSON object")
        status = data.get("responseStatus")
        if str(status) != "200":
            details = data.get("responseDetails", "")
            code = int(status) if str(status).isdigit() else None
            raise TranslationFailure(self.name, f"API error: {status} - {details}", status_code=code)

        response_data = data.get("responseData")
        translated = response_data.get("translatedText") if isinstance(response_data, dict) else None
        if not isinstance(translated, str):
            raise TranslationFailure(self.name, "response has no responseData.translatedText")
        return translated
