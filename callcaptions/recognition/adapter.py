"""
RecognitionAdapter: drives a RecognitionEngine and republishes its events.

Channels: result(RecognitionResult), error(RecognitionError), started, ended.

Desired running state is the single source of truth. When a run ends on the
engine's side (silence timeout, dropped stream) the adapter restarts it only
while recognition is still wanted; an explicit stop() clears the flag first, so
no restart can follow it. Runs that end without producing any result count
towards RECOGNITION_MAX_RESTARTS; past that the adapter gives up and goes
inactive, and restarting is up to the caller.
"""
from __future__ import annotations

import asyncio
import logging

from callcaptions.config import get_settings
from callcaptions.errors import RecognitionError
from callcaptions.events import EventChannel
from callcaptions.recognition.base import RecognitionEngine, RecognitionResult

logger = logging.getLogger(__name__)


class RecognitionAdapter:
    def __init__(
        self,
        engine: RecognitionEngine,
        language: str | None = None,
        max_restarts: int | None = None,
        restart_delay: float | None = None,
    ) -> None:
        settings = get_settings()
        self._engine = engine
        self._language = language or settings.RECOGNITION_LANGUAGE
        self._max_restarts = max_restarts if max_restarts is not None else settings.RECOGNITION_MAX_RESTARTS
        self._restart_delay = (
            restart_delay if restart_delay is not None else settings.RECOGNITION_RESTART_DELAY_SECONDS
        )
        self._running = False
        self._task: asyncio.Task[None] | None = None

        self.result: EventChannel[RecognitionResult] = EventChannel("recognition.result")
        self.error: EventChannel[RecognitionError] = EventChannel("recognition.error")
        self.started: EventChannel[None] = EventChannel("recognition.start")
        self.ended: EventChannel[None] = EventChannel("recognition.end")

    @property
    def language(self) -> str:
        return self._language

    def is_active(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start continuous recognition. Needs a running event loop."""
        if self._running:
            logger.warning("Speech recognition is already running")
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Speech recognition started (%s)", self._language)

    def stop(self) -> None:
        if not self._running:
            logger.warning("Speech recognition is not running")
            return
        self._running = False
        if self._task is not None:
            self._task.cancel()
            self._task = None
        logger.info("Speech recognition stopped")

    def set_language(self, language: str) -> None:
        """Change language; an active run is restarted in the new language."""
        self._language = language
        if self._running:
            self.stop()
            self.start()

    def destroy(self) -> None:
        if self._running:
            self.stop()
        for channel in (self.result, self.error, self.started, self.ended):
            channel.clear()

    async def _run(self) -> None:
        idle_runs = 0
        while self._running:
            produced = await self._run_once()
            if not self._running:
                break
            idle_runs = 0 if produced else idle_runs + 1
            if idle_runs > self._max_restarts:
                logger.warning(
                    "Speech recognition ended %d times without results; giving up", idle_runs
                )
                self._running = False
                self._task = None
                break
            logger.info("Speech recognition ended by engine; restarting")
            await asyncio.sleep(self._restart_delay)

    async def _run_once(self) -> bool:
        """One engine run. Returns True if it produced at least one result."""
        produced = False
        self.started.emit(None)
        try:
            async for result in self._engine.results(self._language):
                if not self._running:
                    break
                produced = True
                self.result.emit(result)
        except RecognitionError as e:
            logger.error("Speech recognition error: %s", e)
            self.error.emit(e)
        except Exception as e:
            logger.exception("Speech recognition engine failed")
            self.error.emit(RecognitionError(f"Speech recognition error: {e}"))
        finally:
            self.ended.emit(None)
        return produced
