from __future__ import annotations

import logging
import math
import os
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

import librosa
import numpy as np
import webrtcvad
from faster_whisper import WhisperModel

from .ports import MicStream, Transcriber, TranscriptEvent

logger = logging.getLogger(__name__)

SR = 16000
FRAME_MS = 30


@dataclass(frozen=True)
class Transcript:
    text: str
    confidence: float
    language: Optional[str]


class _WhisperSingleton:
    model: Optional[WhisperModel] = None
    model_name: Optional[str] = None
    compute_type: Optional[str] = None
    lock = threading.Lock()


def _get_whisper(model_name: str, compute_type: str) -> WhisperModel:
    with _WhisperSingleton.lock:
        if (
            _WhisperSingleton.model is None
            or _WhisperSingleton.model_name != model_name
            or _WhisperSingleton.compute_type != compute_type
        ):
            _WhisperSingleton.model = WhisperModel(model_name, device="cpu", compute_type=compute_type)
            _WhisperSingleton.model_name = model_name
            _WhisperSingleton.compute_type = compute_type
        return _WhisperSingleton.model


def _model_settings(model_name: Optional[str], compute_type: Optional[str]) -> tuple:
    return (
        model_name or os.getenv("WHISPER_MODEL", "small"),
        compute_type or os.getenv("WHISPER_COMPUTE_TYPE", "int8"),
    )


def transcribe_audio(
    audio: Union[np.ndarray, str],
    language: Optional[str],
    model_name: Optional[str] = None,
    compute_type: Optional[str] = None,
) -> Transcript:
    """
    Whole-clip transcription. Confidence is exp(mean segment avg_logprob),
    0.0 when no segment carried one.
    """
    model = _get_whisper(*_model_settings(model_name, compute_type))
    segments_iter, info = model.transcribe(
        audio,
        language=language,
        beam_size=5,
        vad_filter=True,
        condition_on_previous_text=False,
    )

    texts: List[str] = []
    logps: List[float] = []
    for seg in segments_iter:
        txt = (seg.text or "").strip()
        if txt:
            texts.append(txt)
        if getattr(seg, "avg_logprob", None) is not None:
            logps.append(float(seg.avg_logprob))

    avg_logprob_mean = float(np.mean(logps)) if logps else float("nan")
    conf = float(math.exp(min(0.0, avg_logprob_mean))) if math.isfinite(avg_logprob_mean) else 0.0

    return Transcript(
        text=" ".join(texts).strip(),
        confidence=conf,
        language=getattr(info, "language", None),
    )


def transcribe_file(path: Path, language: Optional[str], **kwargs) -> Transcript:
    return transcribe_audio(str(path), language, **kwargs)


def pcm16(x: np.ndarray) -> bytes:
    return (np.clip(x, -1.0, 1.0) * 32767.0).astype(np.int16).tobytes()


class WhisperTranscriber(Transcriber):
    """
    Streaming adapter over faster-whisper.

    - webrtcvad on 30 ms frames: the first voiced frame of an utterance emits
      an interim event (speech detected)
    - after `end_of_utterance_ms` of unvoiced frames the whole attempt so far
      is transcribed and emitted as one final event, so each final replaces
      the previous transcript
    - when the stream runs dry, pending speech is flushed as a final event
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        compute_type: Optional[str] = None,
        vad_aggressiveness: int = 2,
        end_of_utterance_ms: int = 700,
        min_speech_ms: int = 150,
        max_pending_frames: int = 256,
    ):
        self.model_name, self.compute_type = _model_settings(model_name, compute_type)
        self.vad_aggressiveness = vad_aggressiveness
        self.end_of_utterance_ms = end_of_utterance_ms
        self.min_speech_ms = min_speech_ms
        self.max_pending_frames = max_pending_frames
        self.dropped_frames = 0

        self._frames: "queue.Queue[Optional[np.ndarray]]" = queue.Queue(maxsize=max_pending_frames)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lang: Optional[str] = None
        self._in_sr = SR

    def is_available(self) -> bool:
        return True

    def start(
        self,
        lang_tag: str,
        stream: MicStream,
        on_event: Callable[[TranscriptEvent], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        self._frames = queue.Queue(maxsize=self.max_pending_frames)
        self.dropped_frames = 0
        self._stop = threading.Event()
        self._lang = lang_tag
        self._in_sr = stream.sample_rate

        # Load up front so a broken model fails the start, not the first utterance
        _get_whisper(self.model_name, self.compute_type)

        frames = self._frames
        stream.subscribe(lambda frame: self._offer(frames, frame), lambda: self._end(frames))
        self._thread = threading.Thread(
            target=self._worker,
            args=(frames, self._stop, on_event, on_error),
            name="whisper-transcriber",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        try:
            self._frames.put_nowait(None)
        except queue.Full:
            pass  # worker checks the stop flag before every get
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)

    def _offer(self, frames: "queue.Queue[Optional[np.ndarray]]", frame: np.ndarray) -> None:
        # Runs on the capture callback: never block, drop and count instead
        try:
            frames.put_nowait(frame)
        except queue.Full:
            self.dropped_frames += 1
            if self.dropped_frames == 1:
                logger.warning("transcriber backlog full (%d frames), dropping input", self.max_pending_frames)

    def _end(self, frames: "queue.Queue[Optional[np.ndarray]]") -> None:
        try:
            frames.put(None, timeout=5.0)
        except queue.Full:
            logger.warning("transcriber did not drain its backlog; end of stream not delivered")

    def _to_16k(self, frame: np.ndarray) -> np.ndarray:
        x = np.asarray(frame, dtype=np.float32).reshape(-1)
        if self._in_sr == SR:
            return x
        return librosa.resample(y=x, orig_sr=self._in_sr, target_sr=SR).astype(np.float32)

    def _emit_final(self, audio: List[np.ndarray], on_event: Callable[[TranscriptEvent], None]) -> None:
        result = transcribe_audio(
            np.concatenate(audio),
            self._lang,
            model_name=self.model_name,
            compute_type=self.compute_type,
        )
        if result.text:
            on_event(TranscriptEvent(is_final=True, text=result.text, confidence=result.confidence))

    def _worker(
        self,
        frames: "queue.Queue[Optional[np.ndarray]]",
        stop: threading.Event,
        on_event: Callable[[TranscriptEvent], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        vad = webrtcvad.Vad(self.vad_aggressiveness)
        frame_len = SR * FRAME_MS // 1000
        pending = np.zeros(0, dtype=np.float32)
        audio: List[np.ndarray] = []

        in_utterance = False
        voiced_ms = 0
        trailing_ms = 0

        try:
            while not stop.is_set():
                frame = frames.get()
                if frame is None:
                    break
                x = self._to_16k(frame)
                audio.append(x)
                pending = np.concatenate([pending, x])

                while len(pending) >= frame_len:
                    chunk, pending = pending[:frame_len], pending[frame_len:]
                    if vad.is_speech(pcm16(chunk), SR):
                        if not in_utterance:
                            on_event(TranscriptEvent(is_final=False, text=""))
                        in_utterance = True
                        voiced_ms += FRAME_MS
                        trailing_ms = 0
                    else:
                        trailing_ms += FRAME_MS

                if in_utterance and voiced_ms >= self.min_speech_ms and trailing_ms >= self.end_of_utterance_ms:
                    self._emit_final(audio, on_event)
                    in_utterance = False
                    voiced_ms = 0

            if in_utterance and not stop.is_set() and audio:
                self._emit_final(audio, on_event)
        except Exception as e:
            if stop.is_set():
                logger.debug("transcriber error after stop ignored: %s", e)
                return
            on_error(e)
