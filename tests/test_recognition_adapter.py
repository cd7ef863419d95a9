"""Tests for RecognitionAdapter run/restart semantics."""

from unittest.mock import MagicMock

from callcaptions.errors import RecognitionError


class TestRecognitionAdapter:
    """Tests for RecognitionAdapter."""

    async def test_start_emits_results(self, recognition_adapter, recognition_engine, settle):
        results = []
        started = MagicMock()
        recognition_adapter.result.subscribe(results.append)
        recognition_adapter.started.subscribe(started)

        recognition_adapter.start()
        await settle()
        recognition_engine.push("hello", is_final=False, confidence=0.4)
        recognition_engine.push("hello world", is_final=True, confidence=1.7)
        await settle()

        assert recognition_adapter.is_active()
        started.assert_called_once()
        assert [(r.text, r.is_final) for r in results] == [("hello", False), ("hello world", True)]
        assert results[1].confidence == 1.0
        assert recognition_engine.languages == ["en-US"]

    async def test_start_twice_is_noop(self, recognition_adapter, recognition_engine, settle):
        recognition_adapter.start()
        recognition_adapter.start()
        await settle()

        assert recognition_engine.runs == 1

    def test_stop_when_inactive_is_noop(self, recognition_adapter):
        recognition_adapter.stop()

        assert not recognition_adapter.is_active()

    async def test_restarts_after_engine_end(self, recognition_adapter, recognition_engine, settle):
        ended = MagicMock()
        recognition_adapter.ended.subscribe(ended)

        recognition_adapter.start()
        await settle()
        recognition_engine.push("one")
        recognition_engine.end_run()
        await settle()

        assert ended.call_count == 1
        assert recognition_engine.runs == 2
        assert recognition_adapter.is_active()

    async def test_no_restart_after_explicit_stop(self, recognition_adapter, recognition_engine, settle):
        recognition_adapter.start()
        await settle()

        recognition_adapter.stop()
        recognition_engine.end_run()
        await settle()

        assert recognition_engine.runs == 1
        assert not recognition_adapter.is_active()

    async def test_gives_up_after_idle_restarts(self, recognition_adapter, recognition_engine, settle):
        for _ in range(5):
            recognition_engine.end_run()

        recognition_adapter.start()
        await settle(30)

        # max_restarts=2: the third run without results is the last one
        assert recognition_engine.runs == 3
        assert not recognition_adapter.is_active()

    async def test_result_resets_idle_count(self, recognition_adapter, recognition_engine, settle):
        recognition_engine.end_run()
        recognition_engine.end_run()
        recognition_engine.push("still here")
        recognition_engine.end_run()
        recognition_engine.end_run()

        recognition_adapter.start()
        await settle(30)

        # two idle runs, one productive run, two idle runs, then a sixth run still listening
        assert recognition_engine.runs == 6
        assert recognition_adapter.is_active()

    async def test_engine_error_is_emitted_not_raised(self, recognition_adapter, recognition_engine, settle):
        errors = []
        recognition_adapter.error.subscribe(errors.append)

        recognition_adapter.start()
        await settle()
        recognition_engine.fail(RuntimeError("microphone unplugged"))
        await settle()

        assert len(errors) == 1
        assert isinstance(errors[0], RecognitionError)
        assert "microphone unplugged" in str(errors[0])
        assert recognition_engine.runs == 2

    async def test_set_language_restarts_active_run(self, recognition_adapter, recognition_engine, settle):
        recognition_adapter.start()
        await settle()

        recognition_adapter.set_language("fr-FR")
        await settle()

        assert recognition_adapter.language == "fr-FR"
        assert recognition_engine.languages == ["en-US", "fr-FR"]

    def test_set_language_when_inactive(self, recognition_adapter, recognition_engine):
        recognition_adapter.set_language("de-DE")

        assert recognition_adapter.language == "de-DE"
        assert recognition_engine.runs == 0

    async def test_destroy_clears_handlers(self, recognition_adapter, settle):
        recognition_adapter.result.subscribe(MagicMock())
        recognition_adapter.start()
        await settle()

        recognition_adapter.destroy()

        assert not recognition_adapter.is_active()
        assert recognition_adapter.result.handler_count == 0
