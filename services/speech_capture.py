# FILE: services/speech_capture.py
"""
Speech capture controller.

Wraps one native speech-recognition session at a time. The engine emits
start/result/end/error events asynchronously and not always in a sane
order (an `end` may arrive right after `start()` with nothing in between),
so every event is routed through a handle bound to the activation that
created it. Events from an activation that has already been torn down
are dropped.

One utterance per activation: the first final transcript is emitted and
the session stops itself. Continuous dictation is not supported.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from config import SPEECH_BLOCKED_WINDOW, SPEECH_START_TIMEOUT
from core.errors import (
    SpeechBlocked,
    SpeechEngineError,
    SpeechError,
    SpeechNetwork,
    SpeechNoResult,
    SpeechPermissionDenied,
    SpeechSessionBusy,
    SpeechStartTimeout,
    SpeechUnsupported,
)
from core.phases import RecognitionPhase

logger = logging.getLogger("speech_capture")

# Engine error codes (Web Speech API names)
ENGINE_ERRORS = {
    "not-allowed": SpeechPermissionDenied,
    "service-not-allowed": SpeechPermissionDenied,
    "no-speech": SpeechNoResult,
    "network": SpeechNetwork,
}
ABORTED = "aborted"

STATUS_STARTING = "Iniciando..."
STATUS_LISTENING = "Ouvindo... Fale agora"


class RecognitionEngine(Protocol):
    """The native session handle: what the controller may ask of the engine."""

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...

    def abort(self) -> None:
        ...


@dataclass
class RecognitionSession:
    phase: RecognitionPhase = RecognitionPhase.IDLE
    started_at: Optional[float] = None
    status_message: str = ""


def map_engine_error(code: str) -> Optional[SpeechError]:
    """Engine error code -> taxonomy. None for `aborted`, which is expected after stop()."""
    if code == ABORTED:
        return None
    error_cls = ENGINE_ERRORS.get(code)
    if error_cls is None:
        return SpeechEngineError(code)
    return error_cls()


class EngineEvents:
    """
    Event sink handed to the engine factory. Bound to one activation;
    once that activation ends every call becomes a no-op.
    """

    def __init__(self, controller: "SpeechCaptureController", activation: int):
        self._controller = controller
        self._activation = activation

    def on_start(self) -> None:
        self._controller._handle_start(self._activation)

    def on_result(self, transcript: str, is_final: bool = True) -> None:
        self._controller._handle_result(self._activation, transcript, is_final)

    def on_end(self) -> None:
        self._controller._handle_end(self._activation)

    def on_error(self, code: str) -> None:
        self._controller._handle_error(self._activation, code)


EngineFactory = Callable[[EngineEvents], RecognitionEngine]


class SpeechCaptureController:
    """
    Deterministic lifecycle around a native recognition engine.

    engine_factory is None when the capability is absent; start() then
    reports SpeechUnsupported. Callbacks:
      on_transcript(text)             first final transcript of an activation
      on_phase_change(phase, status)  every phase transition
      on_error(SpeechError)           terminal errors (never `aborted`)

    Must be driven from a running asyncio loop: the safety timeout is a
    loop timer and all callbacks run on the loop thread.
    """

    def __init__(
        self,
        engine_factory: Optional[EngineFactory],
        *,
        on_transcript: Callable[[str], None],
        on_phase_change: Optional[Callable[[RecognitionPhase, str], None]] = None,
        on_error: Optional[Callable[[SpeechError], None]] = None,
        start_timeout: float = SPEECH_START_TIMEOUT,
        blocked_window: float = SPEECH_BLOCKED_WINDOW,
    ):
        self._engine_factory = engine_factory
        self._on_transcript = on_transcript
        self._on_phase_change = on_phase_change
        self._on_error = on_error
        self.start_timeout = start_timeout
        self.blocked_window = blocked_window

        self.session = RecognitionSession()
        self._engine: Optional[RecognitionEngine] = None
        self._timeout_handle: Optional[asyncio.TimerHandle] = None
        self._activation = 0
        self._active: Optional[int] = None

    # -----------------------------
    # Public API
    # -----------------------------
    @property
    def phase(self) -> RecognitionPhase:
        return self.session.phase

    @property
    def supported(self) -> bool:
        return self._engine_factory is not None

    def start(self) -> None:
        if not self.supported:
            self._report(SpeechUnsupported())
            return
        if self.phase.is_active():
            # Callers treat a second press as "stop" (see toggle())
            raise SpeechSessionBusy()

        loop = asyncio.get_running_loop()
        self._activation += 1
        activation = self._activation
        self._active = activation

        self.session = RecognitionSession(started_at=loop.time())
        self._set_phase(RecognitionPhase.INITIALIZING, STATUS_STARTING)
        self._timeout_handle = loop.call_later(
            self.start_timeout, self._handle_start_timeout, activation
        )

        try:
            self._engine = self._engine_factory(EngineEvents(self, activation))
            self._engine.start()
        except Exception as exc:
            logger.exception(f"[SPEECH] engine failed to start: {exc}")
            self._teardown(abort=True)
            self._report(SpeechEngineError("start-failed"))
            return

        logger.info(f"[SPEECH] activation {activation} requested")

    def stop(self) -> None:
        """Always wins: clears the timeout, releases the engine, back to IDLE."""
        self._teardown(abort=False)

    def toggle(self) -> None:
        """Mic-button semantics: stop when active, start otherwise."""
        if self.phase.is_active():
            logger.info("[SPEECH] stop requested by user")
            self.stop()
        else:
            self.start()

    # -----------------------------
    # Engine events
    # -----------------------------
    def _is_current(self, activation: int) -> bool:
        if activation != self._active:
            logger.debug(f"[SPEECH] dropping event from stale activation {activation}")
            return False
        return True

    def _handle_start(self, activation: int) -> None:
        if not self._is_current(activation):
            return
        self._cancel_timeout()
        self._set_phase(RecognitionPhase.LISTENING, STATUS_LISTENING)

    def _handle_result(self, activation: int, transcript: str, is_final: bool) -> None:
        if not self._is_current(activation) or not is_final:
            return
        text = (transcript or "").strip()
        if not text:
            return
        logger.info(f"[SPEECH] transcript captured ({len(text)} chars)")
        # One utterance per activation: release the engine before the consumer runs
        self.stop()
        self._on_transcript(text)

    def _handle_end(self, activation: int) -> None:
        if not self._is_current(activation):
            return
        elapsed = self._elapsed()
        closed_early = (
            self.phase is RecognitionPhase.INITIALIZING
            and elapsed is not None
            and elapsed < self.blocked_window
        )
        self._teardown(abort=False, engine_finished=True)
        if closed_early:
            logger.warning(f"[SPEECH] engine closed {elapsed:.3f}s after start")
            self._report(SpeechBlocked())

    def _handle_error(self, activation: int, code: str) -> None:
        if not self._is_current(activation):
            return
        error = map_engine_error(code)
        self._teardown(abort=False, engine_finished=True)
        if error is None:
            logger.debug("[SPEECH] aborted (expected after stop)")
            return
        logger.error(f"[SPEECH] engine error: {code}")
        self._report(error)

    def _handle_start_timeout(self, activation: int) -> None:
        self._timeout_handle = None
        if activation != self._active or self.phase is not RecognitionPhase.INITIALIZING:
            return
        logger.warning(f"[SPEECH] no start event after {self.start_timeout}s")
        self._teardown(abort=True)
        self._report(SpeechStartTimeout())

    # -----------------------------
    # Internals
    # -----------------------------
    def _elapsed(self) -> Optional[float]:
        if self.session.started_at is None:
            return None
        return asyncio.get_running_loop().time() - self.session.started_at

    def _cancel_timeout(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    def _teardown(self, *, abort: bool, engine_finished: bool = False) -> None:
        self._cancel_timeout()
        engine, self._engine = self._engine, None
        self._active = None

        if engine is not None and not engine_finished:
            try:
                if abort:
                    engine.abort()
                else:
                    engine.stop()
            except Exception as exc:
                logger.warning(f"[SPEECH] engine teardown raised: {exc}")

        self._set_phase(RecognitionPhase.IDLE, "")
        self.session.started_at = None

    def _set_phase(self, phase: RecognitionPhase, status: str) -> None:
        changed = phase is not self.session.phase or status != self.session.status_message
        self.session.phase = phase
        self.session.status_message = status
        if changed and self._on_phase_change:
            self._on_phase_change(phase, status)

    def _report(self, error: SpeechError) -> None:
        self.session.status_message = error.message
        if self._on_error:
            self._on_error(error)
