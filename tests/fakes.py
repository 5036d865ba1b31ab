"""In-memory stand-ins for the microphone, recognizer, recorder and clock."""

import io
import threading
from typing import Callable, List, Optional

import numpy as np
import soundfile as sf

from speakscore.ports import AudioRecorder, Microphone, MicStream, Transcriber, TranscriptEvent
from speakscore.timers import Scheduler, TimerHandle

SR = 16000


def tone(seconds: float, freq: float = 1000.0, amp: float = 0.3, sr: int = SR) -> np.ndarray:
    t = np.arange(int(seconds * sr)) / sr
    return (amp * np.sin(2 * np.pi * freq * t + 0.1)).astype(np.float32)


def wav_bytes(samples: np.ndarray, sr: int = SR) -> bytes:
    out = io.BytesIO()
    sf.write(out, samples, sr, format="WAV", subtype="PCM_16")
    return out.getvalue()


class FakeMicStream(MicStream):
    def __init__(self, sample_rate: int = SR):
        super().__init__(sample_rate)
        self.started = False
        self.closed = False

    def start(self):
        self.started = True

    def close(self):
        self.closed = True
        super().close()

    def feed(self, frame: np.ndarray):
        self._publish(frame)

    def end(self):
        self._finish()


class FakeMicrophone(Microphone):
    def __init__(self, available: bool = True, deny: bool = False):
        self.available = available
        self.deny = deny
        self.streams: List[FakeMicStream] = []

    def is_available(self):
        return self.available

    def acquire(self):
        if self.deny:
            raise PermissionError("user dismissed the permission prompt")
        stream = FakeMicStream()
        self.streams.append(stream)
        return stream


class FakeTranscriber(Transcriber):
    def __init__(self, available: bool = True):
        self.available = available
        self.start_error: Optional[Exception] = None
        self.lang_tags: List[str] = []
        self.stops = 0
        self._on_event: Optional[Callable] = None
        self._on_error: Optional[Callable] = None

    def is_available(self):
        return self.available

    def start(self, lang_tag, stream, on_event, on_error):
        if self.start_error is not None:
            raise self.start_error
        self.lang_tags.append(lang_tag)
        self._on_event = on_event
        self._on_error = on_error

    def stop(self):
        self.stops += 1

    def emit_final(self, text: str, confidence: float = 0.9):
        self._on_event(TranscriptEvent(is_final=True, text=text, confidence=confidence))

    def emit_interim(self, text: str = ""):
        self._on_event(TranscriptEvent(is_final=False, text=text))

    def fail(self, error: BaseException):
        self._on_error(error)


class FakeRecorder(AudioRecorder):
    """Returns a canned WAV (or empty buffer) from stop()."""

    def __init__(self, samples: Optional[np.ndarray] = None, available: bool = True):
        self.payload = wav_bytes(samples) if samples is not None and len(samples) else b""
        self.available = available
        self.stops = 0
        self._on_complete: Optional[Callable] = None

    def is_available(self):
        return self.available

    def start(self, stream, on_complete=None):
        self._on_complete = on_complete

    def stop(self):
        self.stops += 1
        return self.payload

    def complete(self):
        self._on_complete()


class _ManualHandle(TimerHandle):
    def __init__(self):
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Virtual clock in integer milliseconds; timers fire only from advance()."""

    def __init__(self):
        self.now_ms = 0
        self._lock = threading.Lock()
        self._timers = []  # (due_ms, seq, callback, handle)
        self._seq = 0

    def call_later(self, delay_sec, callback):
        handle = _ManualHandle()
        with self._lock:
            self._seq += 1
            self._timers.append((self.now_ms + int(round(delay_sec * 1000)), self._seq, callback, handle))
        return handle

    def pending(self) -> int:
        with self._lock:
            return sum(1 for _, _, _, h in self._timers if not h.cancelled and not h.fired)

    def advance(self, ms: int):
        with self._lock:
            self.now_ms += ms
            due = sorted(
                (t for t in self._timers if t[0] <= self.now_ms and not t[3].cancelled and not t[3].fired),
                key=lambda t: (t[0], t[1]),
            )
            for _, _, _, handle in due:
                handle.fired = True
        for _, _, callback, _ in due:
            callback()
