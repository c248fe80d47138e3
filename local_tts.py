"""
Local text-to-speech using pyttsx3.

Speech runs on a background worker so callers never block on it. Only the
newest utterance matters: ``stop()`` drops anything still queued and halts
the engine mid-sentence.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Optional

from config import SPEECH_RATE, SPEECH_VOLUME

logger = logging.getLogger(__name__)

try:
    import pyttsx3
except Exception:  # pragma: no cover
    pyttsx3 = None  # type: ignore


class Pyttsx3SpeechEngine:
    def __init__(self, rate: int = SPEECH_RATE, volume: float = SPEECH_VOLUME) -> None:
        self.rate = rate
        self.volume = max(0.0, min(1.0, volume))
        self._queue: queue.Queue[Optional[str]] = queue.Queue()
        self._engine: Any = None
        self._worker: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._is_speaking = False

    @property
    def is_available(self) -> bool:
        return pyttsx3 is not None

    @property
    def is_speaking(self) -> bool:
        return self._is_speaking

    def speak_async(self, text: str) -> None:
        """Queue text and return immediately."""
        if not self.is_available:
            logger.warning("pyttsx3 not installed, cannot speak locally")
            return
        if not text:
            return
        self._ensure_worker_running()
        self._queue.put(text)
        logger.debug(f"Queued for speaking: '{text}'")

    def stop(self) -> None:
        """Stop current speech and clear queue."""
        self._drain_queue()
        engine = self._engine
        if engine is None:
            return
        try:
            engine.stop()
        except Exception as e:
            logger.error(f"Error stopping TTS: {e}")

    def shutdown(self) -> None:
        self.stop()
        worker = self._worker
        if worker is not None and worker.is_alive():
            self._queue.put(None)  # Poison pill
            worker.join(timeout=2.0)
        self._worker = None
        logger.info("Local TTS engine shut down")

    def _ensure_worker_running(self) -> None:
        with self._lock:
            if self._worker is None or not self._worker.is_alive():
                self._worker = threading.Thread(target=self._worker_loop, daemon=True)
                self._worker.start()

    def _drain_queue(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break

    def _create_engine(self) -> Any:
        engine = pyttsx3.init()
        engine.setProperty("rate", self.rate)
        engine.setProperty("volume", self.volume)
        return engine

    def _worker_loop(self) -> None:
        # The engine must live on the thread that drives runAndWait.
        try:
            self._engine = self._create_engine()
        except Exception as e:
            logger.error(f"Failed to init TTS engine in worker: {e}")
            return

        while True:
            text = self._queue.get()
            if text is None:
                break
            self._is_speaking = True
            try:
                self._engine.say(text)
                self._engine.runAndWait()
            except RuntimeError:
                # Engine may be in bad state, reinitialize
                logger.warning("TTS engine RuntimeError, reinitializing")
                try:
                    self._engine = self._create_engine()
                except Exception as e:
                    logger.error(f"TTS engine reinit failed: {e}")
                    break
            except Exception as e:
                logger.error(f"TTS worker error: {e}")
            finally:
                self._is_speaking = False
        self._engine = None
