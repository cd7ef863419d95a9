"""Translation: LibreTranslate and MyMemory behind a degrading chain."""
from .base import TranslationEngine, normalize_language_code
from .chain import TranslationChain, create_translation_chain
from .libretranslate import LibreTranslateEngine
from .mymemory import MyMemoryEngine

__all__ = [
    "TranslationEngine",
    "TranslationChain",
    "LibreTranslateEngine",
    "MyMemoryEngine",
    "create_translation_chain",
    "normalize_language_code",
]
