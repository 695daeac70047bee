"""PCM decoding and the audio output sink"""

import asyncio
from typing import Optional
import numpy as np
import structlog

from .config import settings

logger = structlog.get_logger(__name__)


def decode_pcm16(data: bytes) -> np.ndarray:
    """Little-endian signed 16-bit mono PCM to float32 samples in [-1, 1]"""
    usable = len(data) - (len(data) % 2)
    samples = np.frombuffer(data[:usable], dtype="<i2")
    return samples.astype(np.float32) / 32768.0


def load_sounddevice():
    # Loading the module opens the PortAudio shared library
    import sounddevice
    return sounddevice


class SoundDeviceSink:
    """Plays one buffer at a time on the default output device"""

    def __init__(self, device: Optional[int] = None):
        self.device = device
        self._sd = None
        self._available: Optional[bool] = None

    @property
    def available(self) -> bool:
        if not settings.audio_enabled:
            return False
        if self._available is None:
            self._available = self._probe()
        return self._available

    def _probe(self) -> bool:
        try:
            sd = load_sounddevice()
        except OSError as e:
            logger.warning("PortAudio not available", error=str(e))
            return False
        try:
            sd.query_devices(self.device, kind="output")
        except (sd.PortAudioError, ValueError) as e:
            logger.warning("No audio output device", error=str(e))
            return False
        self._sd = sd
        return True

    async def play(self, buffer: np.ndarray, sample_rate: int):
        """Resolve once the buffer has finished playing"""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._play_blocking, buffer, sample_rate)

    def _play_blocking(self, buffer: np.ndarray, sample_rate: int):
        self._sd.play(buffer, samplerate=sample_rate, device=self.device, blocking=True)

    def stop(self):
        if self._sd is not None:
            self._sd.stop()
