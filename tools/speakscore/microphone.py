from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import sounddevice as sd

from .ports import Microphone, MicStream

logger = logging.getLogger(__name__)


class SoundDeviceStream(MicStream):
    def __init__(self, sample_rate: int, device: Optional[int] = None, blocksize: int = 2048):
        super().__init__(sample_rate)
        # Bigger blocks and high latency keep the RT callback cheap
        self._stream = sd.InputStream(
            samplerate=sample_rate,
            channels=1,
            dtype="float32",
            blocksize=blocksize,
            latency="high",
            device=device,
            callback=self._callback,
        )

    def _callback(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug("input stream status: %s", status)
        self._publish(np.array(indata[:, 0], dtype=np.float32))

    def start(self) -> None:
        self._stream.start()

    def close(self) -> None:
        try:
            self._stream.stop()
        finally:
            self._stream.close()
            super().close()


class SoundDeviceMicrophone(Microphone):
    def __init__(self, sample_rate: int = 16000, device: Optional[int] = None):
        self.sample_rate = sample_rate
        self.device = device

    def is_available(self) -> bool:
        try:
            info = sd.query_devices(self.device, kind="input")
        except (sd.PortAudioError, ValueError):
            return False
        return bool(info) and int(info.get("max_input_channels", 0)) > 0

    def acquire(self) -> MicStream:
        try:
            return SoundDeviceStream(self.sample_rate, device=self.device)
        except sd.PortAudioError as e:
            # PortAudio reports OS-level denials as open failures
            raise PermissionError(f"microphone unavailable: {e}") from e
