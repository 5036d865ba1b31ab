from __future__ import annotations

import io
import os
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple, Union

import librosa
import numpy as np
import soundfile as sf

from .errors import DecodeError
from .ports import AudioDecoder, AudioRecorder, EndCallback, Microphone, MicStream


def load_mono(path: Union[str, Path], sample_rate: Optional[int] = None) -> Tuple[np.ndarray, int]:
    wav, orig_sr = sf.read(str(path), dtype="float32")
    # Ensure mono, optionally resample
    if wav.ndim > 1:
        wav = librosa.to_mono(wav.T)
    if sample_rate and orig_sr != sample_rate:
        wav = librosa.resample(y=wav, orig_sr=orig_sr, target_sr=sample_rate)
        orig_sr = sample_rate
    return wav.astype(np.float32), int(orig_sr)


class FileMicStream(MicStream):
    """Replays a waveform in fixed-size chunks, optionally paced in real time."""

    def __init__(self, samples: np.ndarray, sample_rate: int, chunk_ms: int = 100, realtime: bool = True):
        super().__init__(sample_rate)
        self._samples = samples
        self._chunk = max(1, int(sample_rate * chunk_ms / 1000))  # Chunk size in samples
        self._realtime = realtime
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._pump, name="file-mic", daemon=True)
        self._thread.start()

    def _pump(self) -> None:
        pos = 0
        period = self._chunk / float(self.sample_rate)
        while pos < len(self._samples) and not self._stop.is_set():
            frame = self._samples[pos : pos + self._chunk]
            self._publish(frame)
            pos += self._chunk
            if self._realtime:
                self._stop.wait(period)
        if not self._stop.is_set():
            self._finish()

    def close(self) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        super().close()


class FileMicrophone(Microphone):
    def __init__(
        self,
        path: Union[str, Path],
        sample_rate: Optional[int] = 16000,
        chunk_ms: int = 100,
        realtime: bool = True,
    ):
        self.path = Path(path)
        self.sample_rate = sample_rate
        self.chunk_ms = chunk_ms
        self.realtime = realtime

    def is_available(self) -> bool:
        return self.path.is_file()

    def acquire(self) -> MicStream:
        if not os.access(self.path, os.R_OK):
            raise PermissionError(f"cannot read {self.path}")
        samples, sr = load_mono(self.path, self.sample_rate)
        return FileMicStream(samples, sr, chunk_ms=self.chunk_ms, realtime=self.realtime)


class WavRecorder(AudioRecorder):
    """Buffers stream frames and hands them back as one 16-bit WAV file."""

    def __init__(self, subtype: str = "PCM_16"):
        self.subtype = subtype
        self._lock = threading.Lock()
        self._blocks: List[np.ndarray] = []
        self._sample_rate = 0
        self._recording = False

    def is_available(self) -> bool:
        return True

    def start(self, stream: MicStream, on_complete: Optional[EndCallback] = None) -> None:
        with self._lock:
            self._blocks = []
            self._sample_rate = stream.sample_rate
            self._recording = True

        def _ended() -> None:
            if self._recording and on_complete is not None:
                on_complete()

        stream.subscribe(self._append, _ended)

    def _append(self, frame: np.ndarray) -> None:
        with self._lock:
            if self._recording:
                self._blocks.append(np.array(frame, dtype=np.float32).reshape(-1))

    def stop(self) -> bytes:
        with self._lock:
            self._recording = False
            blocks, self._blocks = self._blocks, []
        if not blocks:
            return b""
        out = io.BytesIO()
        sf.write(out, np.concatenate(blocks), self._sample_rate, format="WAV", subtype=self.subtype)
        return out.getvalue()


class SoundFileDecoder(AudioDecoder):
    def decode(self, buffer: bytes) -> Tuple[np.ndarray, int]:
        try:
            data, sr = sf.read(io.BytesIO(buffer), dtype="float32", always_2d=True)
        except (RuntimeError, ValueError, TypeError) as e:
            raise DecodeError(f"could not decode audio: {e}") from e
        return data, int(sr)
