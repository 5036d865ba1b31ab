from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .errors import DecodeError
from .ports import AudioDecoder


@dataclass(frozen=True)
class AudioMetrics:
    duration: float
    rms: float
    zero_crossings: int

    @property
    def zcr_per_sec(self) -> float:
        if not self.zero_crossings or not self.duration:
            return 0.0
        return self.zero_crossings / self.duration


def _first_channel(samples: np.ndarray) -> np.ndarray:
    y = np.asarray(samples)
    if y.ndim == 2:
        y = y[:, 0]
    return y.astype(np.float64, copy=False)


def compute_audio_metrics(samples: np.ndarray, sample_rate: int) -> AudioMetrics:
    """
    - duration: samples / sample_rate
    - rms: sqrt(mean(x^2)) over the whole capture
    - zero_crossings: adjacent pairs where (x >= 0) flips
    """
    if sample_rate <= 0:
        raise DecodeError(f"invalid sample rate: {sample_rate}")

    y = _first_channel(samples)
    n = int(y.size)
    if n == 0:
        return AudioMetrics(duration=0.0, rms=0.0, zero_crossings=0)

    rms = math.sqrt(float(np.mean(y * y)))
    non_negative = y >= 0
    zero_crossings = int(np.count_nonzero(non_negative[1:] != non_negative[:-1]))
    return AudioMetrics(duration=n / float(sample_rate), rms=rms, zero_crossings=zero_crossings)


def extract_metrics(buffer: bytes, decoder: AudioDecoder) -> AudioMetrics:
    if not buffer:
        raise DecodeError("empty audio buffer")
    samples, sample_rate = decoder.decode(buffer)
    return compute_audio_metrics(samples, sample_rate)
