import asyncio

import pytest

from core.errors import (
    SpeechBlocked,
    SpeechEngineError,
    SpeechNetwork,
    SpeechNoResult,
    SpeechPermissionDenied,
    SpeechSessionBusy,
    SpeechStartTimeout,
    SpeechUnsupported,
)
from core.phases import RecognitionPhase
from services.speech_capture import SpeechCaptureController, map_engine_error


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
class FakeEngine:
    def __init__(self, events):
        self.events = events
        self.started = 0
        self.stopped = 0
        self.aborted = 0

    def start(self):
        self.started += 1

    def stop(self):
        self.stopped += 1

    def abort(self):
        self.aborted += 1


class Harness:
    """Controller wired to fake engines, recording every callback."""

    def __init__(self, **options):
        self.engines = []
        self.transcripts = []
        self.phases = []
        self.errors = []
        self.controller = SpeechCaptureController(
            self._factory,
            on_transcript=self.transcripts.append,
            on_phase_change=lambda phase, status: self.phases.append(phase),
            on_error=self.errors.append,
            **options,
        )

    def _factory(self, events):
        engine = FakeEngine(events)
        self.engines.append(engine)
        return engine

    @property
    def engine(self):
        return self.engines[-1]

    @property
    def events(self):
        return self.engines[-1].events


def run(scenario):
    return asyncio.run(scenario())


# ---------------------------------------------------------------------
# TESTS: START / LISTEN / RESULT
# ---------------------------------------------------------------------
def test_start_initializes_then_listens():
    async def scenario():
        h = Harness()
        h.controller.start()
        assert h.controller.phase is RecognitionPhase.INITIALIZING
        assert h.engine.started == 1

        h.events.on_start()
        assert h.controller.phase is RecognitionPhase.LISTENING
        assert h.controller.session.status_message == "Ouvindo... Fale agora"
        h.controller.stop()
        return h

    h = run(scenario)
    assert h.phases == [
        RecognitionPhase.INITIALIZING,
        RecognitionPhase.LISTENING,
        RecognitionPhase.IDLE,
    ]


def test_final_result_emits_transcript_and_stops():
    async def scenario():
        h = Harness()
        h.controller.start()
        h.events.on_start()
        h.events.on_result("vendi dois cafés", is_final=True)
        return h

    h = run(scenario)
    assert h.transcripts == ["vendi dois cafés"]
    assert h.controller.phase is RecognitionPhase.IDLE
    assert h.engine.stopped == 1
    assert h.errors == []


def test_interim_and_blank_results_are_ignored():
    async def scenario():
        h = Harness()
        h.controller.start()
        h.events.on_start()
        h.events.on_result("vendi", is_final=False)
        h.events.on_result("   ")
        return h

    h = run(scenario)
    assert h.transcripts == []
    assert h.controller.phase is RecognitionPhase.LISTENING


def test_one_utterance_per_activation():
    async def scenario():
        h = Harness()
        h.controller.start()
        h.events.on_start()
        h.events.on_result("primeira")
        h.events.on_result("segunda")
        return h

    assert run(scenario).transcripts == ["primeira"]


# ---------------------------------------------------------------------
# TESTS: STOP / TOGGLE
# ---------------------------------------------------------------------
def test_stop_is_idempotent():
    async def scenario():
        h = Harness()
        h.controller.start()
        h.events.on_start()
        h.controller.stop()
        h.controller.stop()
        return h

    h = run(scenario)
    assert h.engine.stopped == 1
    assert h.controller.phase is RecognitionPhase.IDLE
    assert h.controller.session.started_at is None
    assert h.phases.count(RecognitionPhase.IDLE) == 1


def test_stop_from_idle_does_nothing():
    h = Harness()
    h.controller.stop()
    assert h.phases == []
    assert h.engines == []


def test_second_start_while_active_is_rejected():
    async def scenario():
        h = Harness()
        h.controller.start()
        with pytest.raises(SpeechSessionBusy):
            h.controller.start()
        return h

    assert len(run(scenario).engines) == 1


def test_toggle_stops_an_active_session():
    async def scenario():
        h = Harness()
        h.controller.toggle()
        assert h.controller.phase is RecognitionPhase.INITIALIZING
        h.controller.toggle()
        return h

    h = run(scenario)
    assert h.controller.phase is RecognitionPhase.IDLE
    assert h.engine.stopped == 1


# ---------------------------------------------------------------------
# TESTS: FAILURE MODES
# ---------------------------------------------------------------------
def test_missing_engine_reports_unsupported():
    errors = []
    controller = SpeechCaptureController(None, on_transcript=lambda t: None, on_error=errors.append)

    controller.start()

    assert controller.supported is False
    assert len(errors) == 1
    assert isinstance(errors[0], SpeechUnsupported)
    assert controller.phase is RecognitionPhase.IDLE


def test_start_timeout_aborts_and_reports():
    """Engine never confirms start: abort after the safety timeout."""

    async def scenario():
        h = Harness(start_timeout=0.01)
        h.controller.start()
        await asyncio.sleep(0.05)
        return h

    h = run(scenario)
    assert h.engine.aborted == 1
    assert h.controller.phase is RecognitionPhase.IDLE
    assert len(h.errors) == 1
    assert isinstance(h.errors[0], SpeechStartTimeout)
    assert isinstance(h.errors[0], SpeechBlocked)
    assert h.errors[0].code == "PERMISSION_OR_TIMEOUT"
    assert h.controller.session.status_message == "Falha ao iniciar. Tente novamente."


def test_start_event_cancels_timeout():
    async def scenario():
        h = Harness(start_timeout=0.01)
        h.controller.start()
        h.events.on_start()
        await asyncio.sleep(0.05)
        return h

    h = run(scenario)
    assert h.errors == []
    assert h.controller.phase is RecognitionPhase.LISTENING


def test_immediate_end_reports_blocked():
    async def scenario():
        h = Harness(blocked_window=5.0)
        h.controller.start()
        h.events.on_end()
        return h

    h = run(scenario)
    assert h.controller.phase is RecognitionPhase.IDLE
    assert len(h.errors) == 1
    assert type(h.errors[0]) is SpeechBlocked
    assert h.errors[0].message == "Microfone desconectado ou bloqueado?"


def test_late_end_before_start_is_silent():
    async def scenario():
        h = Harness(blocked_window=0.0)
        h.controller.start()
        h.events.on_end()
        return h

    h = run(scenario)
    assert h.errors == []
    assert h.controller.phase is RecognitionPhase.IDLE


def test_end_while_listening_is_silent():
    async def scenario():
        h = Harness(blocked_window=5.0)
        h.controller.start()
        h.events.on_start()
        h.events.on_end()
        return h

    h = run(scenario)
    assert h.errors == []
    assert h.controller.phase is RecognitionPhase.IDLE
    assert h.engine.stopped == 0


def test_aborted_error_is_suppressed():
    async def scenario():
        h = Harness()
        h.controller.start()
        h.events.on_start()
        h.events.on_error("aborted")
        return h

    h = run(scenario)
    assert h.errors == []
    assert h.controller.phase is RecognitionPhase.IDLE


@pytest.mark.parametrize(
    "code, expected",
    [
        ("not-allowed", SpeechPermissionDenied),
        ("service-not-allowed", SpeechPermissionDenied),
        ("no-speech", SpeechNoResult),
        ("network", SpeechNetwork),
        ("audio-capture", SpeechEngineError),
    ],
)
def test_engine_errors_are_mapped_and_reported_once(code, expected):
    async def scenario():
        h = Harness()
        h.controller.start()
        h.events.on_start()
        h.events.on_error(code)
        h.events.on_end()
        return h

    h = run(scenario)
    assert [type(e) for e in h.errors] == [expected]
    assert h.controller.phase is RecognitionPhase.IDLE


def test_unknown_engine_error_keeps_code_in_message():
    error = map_engine_error("audio-capture")
    assert error.code == "OTHER"
    assert error.message == "Erro: audio-capture"
    assert map_engine_error("aborted") is None


def test_engine_start_failure_is_reported():
    def exploding_factory(events):
        raise RuntimeError("no microphone")

    async def scenario():
        errors = []
        controller = SpeechCaptureController(
            exploding_factory, on_transcript=lambda t: None, on_error=errors.append
        )
        controller.start()
        return controller, errors

    controller, errors = run(scenario)
    assert controller.phase is RecognitionPhase.IDLE
    assert isinstance(errors[0], SpeechEngineError)


# ---------------------------------------------------------------------
# TESTS: STALE ACTIVATIONS
# ---------------------------------------------------------------------
def test_events_from_previous_activation_are_dropped():
    async def scenario():
        h = Harness(blocked_window=5.0)
        h.controller.start()
        old_events = h.events
        h.controller.stop()

        h.controller.start()
        old_events.on_start()
        old_events.on_result("fantasma")
        old_events.on_error("network")
        old_events.on_end()
        return h

    h = run(scenario)
    assert h.transcripts == []
    assert h.errors == []
    assert h.controller.phase is RecognitionPhase.INITIALIZING
    assert len(h.engines) == 2


def test_stale_timeout_does_not_kill_new_activation():
    async def scenario():
        h = Harness(start_timeout=0.02)
        h.controller.start()
        h.controller.stop()
        h.controller.start()
        h.events.on_start()
        await asyncio.sleep(0.05)
        return h

    h = run(scenario)
    assert h.errors == []
    assert h.controller.phase is RecognitionPhase.LISTENING


def test_session_stops_even_when_transcript_consumer_fails():
    """A consumer that rejects the text must not leave the microphone open."""

    async def scenario():
        def rejecting_consumer(text):
            raise RuntimeError("session not accepting input")

        engines = []

        def factory(events):
            engines.append(FakeEngine(events))
            return engines[-1]

        controller = SpeechCaptureController(factory, on_transcript=rejecting_consumer)
        controller.start()
        engines[-1].events.on_start()
        with pytest.raises(RuntimeError):
            engines[-1].events.on_result("vendi um café")
        return controller, engines[-1]

    controller, engine = run(scenario)
    assert controller.phase is RecognitionPhase.IDLE
    assert engine.stopped == 1
