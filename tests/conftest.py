"""Pytest configuration and shared fixtures."""

import asyncio

import pytest

from callcaptions.captions import CaptionPipeline
from callcaptions.errors import TranslationFailure
from callcaptions.recognition import RecognitionAdapter, RecognitionEngine, RecognitionResult
from callcaptions.session import HeadlessMediaDevices, InMemoryBroker, InMemoryTransport, SessionOrchestrator
from callcaptions.translation import TranslationChain, TranslationEngine


# ==================== Fakes ====================


class ScriptedRecognitionEngine(RecognitionEngine):
    """Recognition engine driven by the test: push results, end runs, raise errors."""

    def __init__(self):
        self._queue = asyncio.Queue()
        self.runs = 0
        self.languages = []

    def push(self, text, is_final=True, confidence=0.9):
        self._queue.put_nowait(RecognitionResult(text=text, is_final=is_final, confidence=confidence))

    def end_run(self):
        self._queue.put_nowait(None)

    def fail(self, error):
        self._queue.put_nowait(error)

    async def results(self, language):
        self.runs += 1
        self.languages.append(language)
        while True:
            item = await self._queue.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item


class FakeTranslationEngine(TranslationEngine):
    """Records calls; translates to '[target] text' unless told to fail."""

    def __init__(self, name, fail=False):
        self.name = name
        self.fail = fail
        self.fail_texts = set()
        self.calls = []

    async def translate(self, text, source_lang, target_lang):
        self.calls.append((text, source_lang, target_lang))
        if self.fail or text in self.fail_texts:
            raise TranslationFailure(self.name, "unavailable")
        return f"[{target_lang}] {text}"


async def _settle(rounds=10):
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    """Let callbacks scheduled with call_soon and freshly created tasks run."""
    return _settle


# ==================== Translation Fixtures ====================


@pytest.fixture
def primary_engine():
    return FakeTranslationEngine("primary")


@pytest.fixture
def secondary_engine():
    return FakeTranslationEngine("secondary")


@pytest.fixture
def translation_chain(primary_engine, secondary_engine):
    return TranslationChain(primary_engine, secondary_engine)


# ==================== Recognition Fixtures ====================


@pytest.fixture
def recognition_engine():
    return ScriptedRecognitionEngine()


@pytest.fixture
def make_recognition_engine():
    return ScriptedRecognitionEngine


@pytest.fixture
async def recognition_adapter(recognition_engine):
    adapter = RecognitionAdapter(recognition_engine, language="en-US", max_restarts=2, restart_delay=0)
    yield adapter
    adapter.destroy()


@pytest.fixture
async def pipeline(recognition_adapter, translation_chain):
    """Pipeline translating en -> es."""
    pipeline = CaptionPipeline(
        recognition_adapter,
        translation_chain,
        target_language="es",
        source_language="en",
        max_captions=100,
    )
    yield pipeline
    pipeline.destroy()


# ==================== Session Fixtures ====================


@pytest.fixture
def broker():
    return InMemoryBroker()


@pytest.fixture
def devices():
    return HeadlessMediaDevices()


@pytest.fixture
async def make_orchestrator(broker):
    """Factory: each call gives a new side of a call on the shared broker."""
    created = []

    def _make(devices=None):
        orchestrator = SessionOrchestrator(InMemoryTransport(broker), devices or HeadlessMediaDevices())
        created.append(orchestrator)
        return orchestrator

    yield _make
    for orchestrator in created:
        orchestrator.disconnect()
