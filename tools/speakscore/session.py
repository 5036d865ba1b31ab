"""
Recording session controller.

One worker thread owns the Session record and consumes a single event queue.
Adapter callbacks (transcriber, recorder, microphone) and timer callbacks
only enqueue events tagged with the session id; nothing else touches session
state. That gives the finalize-once guarantee:

- ACTIVE is left exactly once (silence timer, hard cap, stop, recognizer error)
- events for a session that already left ACTIVE are dropped
- silence timer rearms bump a generation counter, older timers are ignored

State machine: IDLE -> ACQUIRING -> ACTIVE -> FINALIZING -> DONE | FAILED
"""
from __future__ import annotations

import itertools
import logging
import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Literal, Mapping, Optional

from .audio_metrics import AudioMetrics, extract_metrics
from .config import DEFAULT_LANG, LanguageThresholds, ScoreWeights, SessionConfig, recognizer_tag_for
from .errors import (
    AlreadyInProgress,
    DecodeError,
    MicDenied,
    NoMediaCapability,
    NoRecognizerCapability,
    NoTarget,
    SessionClosed,
    StartFailed,
)
from .ports import AudioDecoder, AudioRecorder, Microphone, MicStream, Transcriber, TranscriptEvent
from .scoring import EvaluationResult, evaluate
from .timers import Scheduler, ThreadingScheduler, TimerHandle

logger = logging.getLogger(__name__)

Method = Literal["live-speech-api", "audio-fallback"]

LIVE_SPEECH_API: Method = "live-speech-api"
AUDIO_FALLBACK: Method = "audio-fallback"


class SessionState(Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    ACTIVE = "active"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PracticeResult:
    evaluation: Optional[EvaluationResult]
    recognized_text: str
    confidence: float
    audio_metrics: Optional[AudioMetrics]
    method: Method
    error: Optional[BaseException] = None


@dataclass
class Session:
    session_id: int
    target_text: str
    lang: str
    state: SessionState = SessionState.IDLE
    transcript_so_far: str = ""
    confidence: float = 0.0
    has_final: bool = False
    speech_detected: bool = False
    recognizer_failed: bool = False
    capture_ended: bool = False
    silence_timer: Optional[TimerHandle] = None
    silence_generation: int = 0
    hard_cap_timer: Optional[TimerHandle] = None
    stream: Optional[MicStream] = None
    transcriber_running: bool = False
    recorder_running: bool = False


# Events. Everything except StartRequested/CloseRequested targets one session.


@dataclass(frozen=True)
class StartRequested:
    target_text: str
    lang: str
    future: Future = field(default_factory=Future, compare=False)


@dataclass(frozen=True)
class FinalTranscript:
    session_id: int
    text: str
    confidence: float


@dataclass(frozen=True)
class InterimTranscript:
    session_id: int
    text: str


@dataclass(frozen=True)
class RecognizerError:
    session_id: int
    error: BaseException


@dataclass(frozen=True)
class CaptureComplete:
    session_id: int


@dataclass(frozen=True)
class SilenceTimeout:
    session_id: int
    generation: int


@dataclass(frozen=True)
class HardCapTimeout:
    session_id: int


@dataclass(frozen=True)
class StopRequested:
    session_id: int


@dataclass(frozen=True)
class CloseRequested:
    pass


def finalize_attempt(
    recognized_text: str,
    confidence: float,
    audio_buffer: Optional[bytes],
    decoder: AudioDecoder,
    target_text: str,
    lang: str,
    thresholds: Optional[Mapping[str, LanguageThresholds]] = None,
    weights: Optional[ScoreWeights] = None,
) -> PracticeResult:
    """
    Turn one finished capture into a PracticeResult.

    A non-empty transcript is scored directly (live path). Without one the
    captured audio is decoded and scored on signal metrics alone; a decode
    failure is the only outcome without an evaluation.
    """
    text = (recognized_text or "").strip()
    if text:
        evaluation = evaluate(text, confidence, None, target_text, lang, thresholds, weights)
        return PracticeResult(
            evaluation=evaluation,
            recognized_text=text,
            confidence=confidence,
            audio_metrics=None,
            method=LIVE_SPEECH_API,
        )

    try:
        metrics = extract_metrics(audio_buffer or b"", decoder)
    except DecodeError as e:
        return PracticeResult(
            evaluation=None,
            recognized_text="",
            confidence=0.0,
            audio_metrics=None,
            method=AUDIO_FALLBACK,
            error=e,
        )

    evaluation = evaluate("", 0.0, metrics, target_text, lang, thresholds, weights)
    return PracticeResult(
        evaluation=evaluation,
        recognized_text="",
        confidence=0.0,
        audio_metrics=metrics,
        method=AUDIO_FALLBACK,
    )


class SpeechPracticeController:
    """
    Records one attempt at a time and delivers exactly one PracticeResult
    per `start_recording()` through `on_result`.

    `on_result` runs on the controller's worker thread. It may call
    `start_recording()` again; the controller is idle by then.
    """

    def __init__(
        self,
        microphone: Optional[Microphone],
        transcriber: Optional[Transcriber],
        recorder: Optional[AudioRecorder],
        decoder: AudioDecoder,
        on_result: Callable[[PracticeResult], None],
        config: Optional[SessionConfig] = None,
        scheduler: Optional[Scheduler] = None,
        thresholds: Optional[Mapping[str, LanguageThresholds]] = None,
        weights: Optional[ScoreWeights] = None,
    ):
        self._microphone = microphone
        self._transcriber = transcriber
        self._recorder = recorder
        self._decoder = decoder
        self._on_result = on_result
        self._config = config or SessionConfig()
        self._scheduler = scheduler or ThreadingScheduler()
        self._thresholds = thresholds
        self._weights = weights

        self._events: "queue.Queue[object]" = queue.Queue()
        self._ids = itertools.count(1)
        self._session: Optional[Session] = None
        self._closed = False
        # Orders the closed check and the enqueue against close()
        self._close_lock = threading.Lock()
        self._worker = threading.Thread(target=self._run, name="speech-practice", daemon=True)
        self._worker.start()

    def __enter__(self) -> "SpeechPracticeController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # public API

    def supports_speech(self) -> bool:
        return self._has_recognizer() and self._has_media()

    def is_recording(self) -> bool:
        session = self._session
        return session is not None and session.state is SessionState.ACTIVE

    def start_recording(self, target_text: str, lang: str = DEFAULT_LANG) -> None:
        if not (target_text or "").strip():
            raise NoTarget("target missing")
        if not self._has_recognizer():
            raise NoRecognizerCapability("no transcription capability available")
        if not self._has_media():
            raise NoMediaCapability("no audio capture capability available")

        req = StartRequested(target_text=target_text, lang=lang)
        inline = threading.current_thread() is self._worker
        with self._close_lock:
            if self._closed:
                raise RuntimeError("controller is closed")
            if not inline:
                self._events.put(req)
        if inline:
            self._handle_start(req)
        req.future.result()

    def stop_recording(self) -> None:
        session = self._session
        if session is None:
            return
        self._events.put(StopRequested(session.session_id))

    def drain(self) -> None:
        """Block until every event queued so far has been handled."""
        self._events.join()

    def close(self, timeout: Optional[float] = None) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
            self._events.put(CloseRequested())
        if threading.current_thread() is not self._worker:
            self._worker.join(timeout)

    # capability probes

    def _has_recognizer(self) -> bool:
        return self._transcriber is not None and self._transcriber.is_available()

    def _has_media(self) -> bool:
        return (
            self._microphone is not None
            and self._recorder is not None
            and self._microphone.is_available()
            and self._recorder.is_available()
        )

    # worker

    def _run(self) -> None:
        while True:
            event = self._events.get()
            try:
                self._dispatch(event)
            except Exception as e:
                logger.exception("speech practice event %s failed", type(event).__name__)
                self._fail_active(e)
            finally:
                self._events.task_done()
            if isinstance(event, CloseRequested):
                self._reject_pending_starts()
                return

    def _reject_pending_starts(self) -> None:
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return
            if isinstance(event, StartRequested) and not event.future.done():
                event.future.set_exception(SessionClosed("controller closed before recording started"))
            self._events.task_done()

    def _dispatch(self, event: object) -> None:
        if isinstance(event, StartRequested):
            self._handle_start(event)
            return
        if isinstance(event, CloseRequested):
            self._handle_close()
            return

        session = self._session
        sid = getattr(event, "session_id", None)
        if session is None or session.session_id != sid or session.state is not SessionState.ACTIVE:
            logger.debug("dropping stale %s for session %s", type(event).__name__, sid)
            return

        if isinstance(event, FinalTranscript):
            self._on_final(session, event)
        elif isinstance(event, InterimTranscript):
            session.speech_detected = True
        elif isinstance(event, RecognizerError):
            self._on_recognizer_error(session, event.error)
        elif isinstance(event, CaptureComplete):
            self._on_capture_complete(session)
        elif isinstance(event, SilenceTimeout):
            if event.generation == session.silence_generation:
                self._finalize(session, "silence")
        elif isinstance(event, HardCapTimeout):
            self._finalize(session, "hard-cap")
        elif isinstance(event, StopRequested):
            self._finalize(session, "stop")

    def _handle_start(self, req: StartRequested) -> None:
        if self._session is not None:
            req.future.set_exception(AlreadyInProgress("a recording session is already active"))
            return
        session = Session(session_id=next(self._ids), target_text=req.target_text, lang=req.lang)
        try:
            self._begin(session)
        except Exception as e:
            req.future.set_exception(e)
        else:
            req.future.set_result(session.session_id)

    def _begin(self, session: Session) -> None:
        assert self._microphone is not None and self._transcriber is not None and self._recorder is not None
        sid = session.session_id

        session.state = SessionState.ACQUIRING
        try:
            stream = self._microphone.acquire()
        except PermissionError as e:
            raise MicDenied(str(e) or "microphone access denied") from e
        session.stream = stream
        self._session = session

        try:
            self._transcriber.start(
                recognizer_tag_for(session.lang),
                stream,
                lambda ev: self._post_transcript(sid, ev),
                lambda exc: self._events.put(RecognizerError(sid, exc)),
            )
            session.transcriber_running = True
            self._recorder.start(stream, lambda: self._events.put(CaptureComplete(sid)))
            session.recorder_running = True

            session.hard_cap_timer = self._scheduler.call_later(
                self._config.hard_cap_seconds,
                lambda: self._events.put(HardCapTimeout(sid)),
            )
            session.state = SessionState.ACTIVE
            stream.start()
        except Exception as e:
            self._release(session)
            session.state = SessionState.FAILED
            self._session = None
            raise StartFailed(str(e) or "failed to start capture") from e

        logger.debug("session %s active (lang=%s)", sid, session.lang)

    def _post_transcript(self, sid: int, ev: TranscriptEvent) -> None:
        if ev.is_final:
            self._events.put(FinalTranscript(sid, ev.text, ev.confidence))
        else:
            self._events.put(InterimTranscript(sid, ev.text))

    # transitions

    def _on_final(self, session: Session, event: FinalTranscript) -> None:
        text = (event.text or "").strip()
        if not text:
            return
        session.speech_detected = True
        session.has_final = True
        session.transcript_so_far = text
        session.confidence = float(event.confidence or 0.0)
        self._arm_silence(session)

    def _on_recognizer_error(self, session: Session, error: BaseException) -> None:
        # A final transcript received before the failure still scores on the live path.
        logger.warning(
            "recognizer failed in session %s (%s): %s",
            session.session_id,
            "keeping last final transcript" if session.has_final else "falling back to audio",
            error,
        )
        session.recognizer_failed = True
        self._stop_transcriber(session)
        self._finalize(session, "recognizer-error")

    def _on_capture_complete(self, session: Session) -> None:
        # No more audio; give the recognizer one silence window to settle.
        session.capture_ended = True
        if session.silence_timer is None:
            self._arm_silence(session)

    def _arm_silence(self, session: Session) -> None:
        if session.silence_timer is not None:
            session.silence_timer.cancel()
        session.silence_generation += 1
        sid, gen = session.session_id, session.silence_generation
        session.silence_timer = self._scheduler.call_later(
            self._config.silence_timeout_sec,
            lambda: self._events.put(SilenceTimeout(sid, gen)),
        )

    def _finalize(self, session: Session, trigger: str) -> None:
        session.state = SessionState.FINALIZING
        logger.debug(
            "session %s finalizing (trigger=%s, recognizer_failed=%s)",
            session.session_id,
            trigger,
            session.recognizer_failed,
        )

        self._cancel_timers(session)
        self._stop_transcriber(session)
        buffer = self._stop_recorder(session)
        self._close_stream(session)

        live = session.has_final
        result = finalize_attempt(
            session.transcript_so_far if live else "",
            session.confidence if live else 0.0,
            buffer,
            self._decoder,
            session.target_text,
            session.lang,
            self._thresholds,
            self._weights,
        )
        self._deliver(session, result)

    def _handle_close(self) -> None:
        session = self._session
        if session is None or session.state is not SessionState.ACTIVE:
            return
        session.state = SessionState.FINALIZING
        self._release(session)
        self._deliver(
            session,
            PracticeResult(
                evaluation=None,
                recognized_text=session.transcript_so_far,
                confidence=session.confidence,
                audio_metrics=None,
                method=LIVE_SPEECH_API if session.has_final else AUDIO_FALLBACK,
                error=SessionClosed("controller closed during recording"),
            ),
        )

    def _fail_active(self, error: Exception) -> None:
        session = self._session
        if session is None or session.state in (SessionState.DONE, SessionState.FAILED):
            return
        self._release(session)
        self._deliver(
            session,
            PracticeResult(
                evaluation=None,
                recognized_text=session.transcript_so_far,
                confidence=session.confidence,
                audio_metrics=None,
                method=LIVE_SPEECH_API if session.has_final else AUDIO_FALLBACK,
                error=error,
            ),
        )

    def _deliver(self, session: Session, result: PracticeResult) -> None:
        session.state = SessionState.FAILED if result.evaluation is None else SessionState.DONE
        self._session = None
        logger.debug("session %s %s via %s", session.session_id, session.state.value, result.method)
        try:
            self._on_result(result)
        except Exception:
            logger.exception("on_result callback raised for session %s", session.session_id)

    # resources

    def _cancel_timers(self, session: Session) -> None:
        for handle in (session.silence_timer, session.hard_cap_timer):
            if handle is not None:
                handle.cancel()
        session.silence_timer = None
        session.hard_cap_timer = None

    def _stop_transcriber(self, session: Session) -> None:
        if not session.transcriber_running or self._transcriber is None:
            return
        session.transcriber_running = False
        try:
            self._transcriber.stop()
        except Exception as e:
            logger.warning("transcriber stop failed: %s", e)

    def _stop_recorder(self, session: Session) -> bytes:
        if not session.recorder_running or self._recorder is None:
            return b""
        session.recorder_running = False
        try:
            return self._recorder.stop() or b""
        except Exception as e:
            logger.warning("recorder stop failed: %s", e)
            return b""

    def _close_stream(self, session: Session) -> None:
        stream, session.stream = session.stream, None
        if stream is None:
            return
        try:
            stream.close()
        except Exception as e:
            logger.warning("microphone release failed: %s", e)

    def _release(self, session: Session) -> None:
        self._cancel_timers(session)
        self._stop_transcriber(session)
        self._stop_recorder(session)
        self._close_stream(session)
