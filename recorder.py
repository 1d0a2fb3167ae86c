"""Microphone recorder producing an AudioClip."""

from __future__ import annotations

import logging
import threading
from typing import Any

import numpy as np

from models import AudioClip

try:
    import sounddevice as sd
except Exception:  # pragma: no cover - PortAudio missing
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


class SoundDeviceRecorder:
    def __init__(
        self,
        sample_rate: int = 32000,
        channels: int = 1,
        chunk_ms: int = 100,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._chunks: list[bytes] = []

    @property
    def is_recording(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise RuntimeError("sounddevice is not installed")
            self._chunks = []
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=blocksize,
                callback=self._on_audio,
            )
            self._stream.start()
            self._running = True
            logger.info("recording at %d Hz, %d ch", self.sample_rate, self.channels)

    def stop(self) -> AudioClip:
        with self._lock:
            if self._running:
                self._running = False
                if self._stream is not None:
                    self._stream.stop()
                    self._stream.close()
                    self._stream = None
            data = b"".join(self._chunks)
            self._chunks = []
        clip = AudioClip(data=data, sample_rate=self.sample_rate, channels=self.channels, bit_depth=16)
        logger.info("recorded %.2fs", clip.duration_seconds)
        return clip

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.debug("input status: %s", status)
        if not self._running:
            return
        self._chunks.append(np.asarray(indata, dtype=np.int16).tobytes())
