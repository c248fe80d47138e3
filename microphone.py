"""Microphone capture for dictation.

Audio arrives on sounddevice's callback thread as int16 blocks and is pushed
into the dictation queue without blocking. ``stop()`` always ends the queue
with a ``None`` sentinel so the recognizer can finish the utterance.
"""

from __future__ import annotations

import logging
import threading
import time
from queue import Empty, Full, Queue
from typing import Any, Optional

from errors import DictationUnsupported, MicrophonePermissionDenied
from models import AudioFrame

logger = logging.getLogger(__name__)

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore


class SoundDeviceMicrophone:
    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
        device: Optional[int | str] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.device = device
        self.dropped_chunks = 0
        self._lock = threading.Lock()
        self._stream: Any = None
        self._sink: Optional[Queue[AudioFrame | None]] = None

    @property
    def is_available(self) -> bool:
        return sd is not None and np is not None

    @property
    def is_recording(self) -> bool:
        return self._stream is not None

    @property
    def blocksize(self) -> int:
        return self.sample_rate * self.chunk_ms // 1000

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None:
        if not self.is_available:
            raise DictationUnsupported("sounddevice is not installed")
        with self._lock:
            if self._stream is not None:
                return
            self._sink = audio_queue
            self.dropped_chunks = 0
            self._stream = self._open_stream()
        logger.info(f"Microphone recording at {self.sample_rate} Hz")

    def stop(self) -> None:
        with self._lock:
            stream, self._stream = self._stream, None
            sink = self._sink
        if stream is not None:
            self._close_stream(stream)
            if self.dropped_chunks:
                logger.warning(f"Dictation queue full, {self.dropped_chunks} audio chunks dropped")
        if sink is not None:
            _end_queue(sink)

    def _open_stream(self) -> Any:
        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=self.blocksize,
                device=self.device,
                callback=self._on_audio,
            )
            stream.start()
        except Exception as exc:
            logger.error(f"Opening microphone failed: {exc}")
            raise MicrophonePermissionDenied(f"Microphone could not be opened: {exc}") from exc
        return stream

    @staticmethod
    def _close_stream(stream: Any) -> None:
        try:
            stream.stop()
        finally:
            stream.close()

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        sink = self._sink
        if self._stream is None or sink is None:
            return
        if status:
            logger.debug(f"Input status: {status}")
        samples = np.asarray(indata, dtype=np.int16)
        try:
            sink.put_nowait(
                AudioFrame(
                    pcm16_bytes=samples.tobytes(),
                    sample_rate=self.sample_rate,
                    channels=self.channels,
                    timestamp_ms=int(time.time() * 1000),
                )
            )
        except Full:
            self.dropped_chunks += 1


def _end_queue(sink: Queue[AudioFrame | None]) -> None:
    """Put the end-of-utterance sentinel, evicting the oldest frame if full."""
    try:
        sink.put_nowait(None)
        return
    except Full:
        pass
    try:
        sink.get_nowait()
    except Empty:
        pass
    try:
        sink.put_nowait(None)
    except Full:
        logger.warning("Could not signal end of dictation audio")
