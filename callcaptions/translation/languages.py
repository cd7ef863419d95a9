"""Languages offered for captions."""
from __future__ import annotations

from callcaptions.schemas.translation import Language

SUPPORTED_LANGUAGES: tuple[Language, ...] = (
    Language(code="en", name="English"),
    Language(code="es", name="Spanish"),
    Language(code="fr", name="French"),
    Language(code="de", name="German"),
    Language(code="it", name="Italian"),
    Language(code="pt", name="Portuguese"),
    Language(code="ru", name="Russian"),
    Language(code="ja", name="Japanese"),
    Language(code="ko", name="Korean"),
    Language(code="zh", name="Chinese"),
    Language(code="ar", name="Arabic"),
    Language(code="hi", name="Hindi"),
    Language(code="nl", name="Dutch"),
    Language(code="pl", name="Polish"),
    Language(code="tr", name="Turkish"),
)
