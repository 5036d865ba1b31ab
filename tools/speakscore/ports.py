"""
Capability ports the session controller depends on.

Platform adapters implement these (see audio_io, microphone, transcribe);
tests implement them with in-memory fakes. Callbacks handed to a port may be
invoked from any thread.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np

FrameCallback = Callable[[np.ndarray], None]
EndCallback = Callable[[], None]


@dataclass(frozen=True)
class TranscriptEvent:
    is_final: bool
    text: str
    confidence: float = 0.0


class MicStream:
    """
    Exclusive microphone stream with fan-out to subscribers.

    Frames are mono float32 arrays at `sample_rate`. Subclasses produce
    frames after `start()` via `_publish` and call `_finish` once when the
    source runs dry.
    """

    def __init__(self, sample_rate: int):
        self.sample_rate = int(sample_rate)
        self._lock = threading.Lock()
        self._subscribers: List[Tuple[FrameCallback, Optional[EndCallback]]] = []
        self._finished = False

    def subscribe(self, on_frame: FrameCallback, on_end: Optional[EndCallback] = None) -> None:
        with self._lock:
            self._subscribers.append((on_frame, on_end))

    def start(self) -> None:
        pass

    def close(self) -> None:
        with self._lock:
            self._subscribers = []

    def _publish(self, frame: np.ndarray) -> None:
        with self._lock:
            subs = list(self._subscribers)
        for on_frame, _ in subs:
            on_frame(frame)

    def _finish(self) -> None:
        with self._lock:
            if self._finished:
                return
            self._finished = True
            subs = list(self._subscribers)
        for _, on_end in subs:
            if on_end is not None:
                on_end()


class Microphone(ABC):
    @abstractmethod
    def is_available(self) -> bool:
        ...

    @abstractmethod
    def acquire(self) -> MicStream:
        """Open the input device. Raises PermissionError when access is refused."""


class Transcriber(ABC):
    @abstractmethod
    def is_available(self) -> bool:
        ...

    @abstractmethod
    def start(
        self,
        lang_tag: str,
        stream: MicStream,
        on_event: Callable[[TranscriptEvent], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        ...


class AudioRecorder(ABC):
    @abstractmethod
    def is_available(self) -> bool:
        ...

    @abstractmethod
    def start(self, stream: MicStream, on_complete: Optional[EndCallback] = None) -> None:
        ...

    @abstractmethod
    def stop(self) -> bytes:
        """Stop capturing and return the joined, encoded buffer."""


class AudioDecoder(ABC):
    @abstractmethod
    def decode(self, buffer: bytes) -> Tuple[np.ndarray, int]:
        """Return (samples, sample_rate); samples may be 1-D or (n, channels)."""
