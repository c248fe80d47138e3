"""Single-utterance dictation feeding the text-to-sign flow."""

from __future__ import annotations

import logging
import threading
from functools import partial
from queue import Queue
from typing import Callable, Optional

from config import MAX_UTTERANCE_S
from errors import (
    ASR_PROTOCOL_ERROR,
    ERROR_MESSAGES,
    NO_SPEECH_DETECTED,
    DictationUnsupported,
    TranslatorError,
)
from interfaces import Recorder, RecognizerAdapter
from models import AudioFrame, Language, RecognitionEvent, RecognitionKind

logger = logging.getLogger(__name__)

UtteranceCallback = Callable[[str], None]
ErrorCallback = Callable[[str, str], None]
ListeningCallback = Callable[[bool], None]
PartialCallback = Callable[[str], None]


class DictationBridge:
    """Listens for one utterance at a time.

    The utterance ends when ``stop()`` is called or ``max_utterance_s``
    elapses. The recognizer's FINAL text is passed to ``on_utterance``;
    an empty result is reported as NO_SPEECH_DETECTED instead.
    """

    def __init__(
        self,
        recorder: Recorder,
        recognizer: RecognizerAdapter,
        on_utterance: UtteranceCallback,
        on_error: Optional[ErrorCallback] = None,
        on_listening: Optional[ListeningCallback] = None,
        on_partial: Optional[PartialCallback] = None,
        max_utterance_s: float = MAX_UTTERANCE_S,
        queue_maxsize: int = 600,
        language: Optional[Language] = None,
    ) -> None:
        self._recorder = recorder
        self._recognizer = recognizer
        self._on_utterance = on_utterance
        self._on_error = on_error
        self._on_listening = on_listening
        self._on_partial = on_partial
        self._max_utterance_s = max_utterance_s
        self._queue_maxsize = queue_maxsize
        self._language = language

        self._lock = threading.RLock()
        self._listening = False
        self._session_id = 0
        self._timer: Optional[threading.Timer] = None

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def language(self) -> Optional[Language]:
        return self._language

    def set_language(self, language: Optional[Language]) -> None:
        """Recognition hint for the next utterance; one in progress keeps its own."""
        with self._lock:
            self._language = language

    def replace_recognizer(self, recognizer: RecognizerAdapter) -> None:
        with self._lock:
            if self._listening:
                self.cancel()
            self._recognizer = recognizer

    def toggle(self) -> None:
        if self._listening:
            self.stop()
        else:
            self.start()

    def start(self) -> None:
        with self._lock:
            if self._listening:
                return
            available = getattr(self._recorder, "is_available", True)
            if not available or not self._recognizer.is_available:
                raise DictationUnsupported()

            self._recognizer.set_language(self._language)
            self._session_id += 1
            audio_queue: Queue[AudioFrame | None] = Queue(maxsize=self._queue_maxsize)
            self._listening = True
            try:
                self._recognizer.start(audio_queue, partial(self._handle_event, self._session_id))
                self._recorder.start(audio_queue)
            except TranslatorError:
                self._reset()
                raise
            except Exception as exc:
                self._reset()
                raise DictationUnsupported(str(exc)) from exc

            if self._max_utterance_s > 0:
                self._timer = threading.Timer(self._max_utterance_s, self.stop)
                self._timer.daemon = True
                self._timer.start()
        logger.info("Dictation listening")
        self._notify_listening(True)

    def stop(self) -> None:
        """End the utterance; the result arrives through the recognizer."""
        with self._lock:
            if not self._listening:
                return
            self._cancel_timer()
            self._safe_stop_recorder()

    def cancel(self) -> None:
        """Abandon the utterance without reporting a result."""
        with self._lock:
            if not self._listening:
                return
            self._session_id += 1
            self._reset()
        self._notify_listening(False)

    def _handle_event(self, session_id: int, event: RecognitionEvent) -> None:
        with self._lock:
            if session_id != self._session_id or not self._listening:
                return
            kind = event.kind
            if kind == RecognitionKind.PARTIAL.value:
                if self._on_partial:
                    self._on_partial(event.text)
                return
            if kind not in (RecognitionKind.FINAL.value, RecognitionKind.ERROR.value):
                return
            self._reset()

        self._notify_listening(False)
        if kind == RecognitionKind.ERROR.value:
            self._emit_error(event.code or ASR_PROTOCOL_ERROR, event.message)
            return
        text = event.text.strip()
        if not text:
            self._emit_error(NO_SPEECH_DETECTED, ERROR_MESSAGES[NO_SPEECH_DETECTED])
            return
        logger.info(f"Dictated: '{text}'")
        self._on_utterance(text)

    def _reset(self) -> None:
        self._listening = False
        self._cancel_timer()
        self._safe_stop_recorder()
        self._safe_stop_recognizer()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _emit_error(self, code: str, message: str) -> None:
        logger.warning(f"Dictation error {code}: {message}")
        if self._on_error:
            self._on_error(code, message)

    def _notify_listening(self, listening: bool) -> None:
        if self._on_listening:
            self._on_listening(listening)

    def _safe_stop_recorder(self) -> None:
        try:
            self._recorder.stop()
        except Exception as exc:
            logger.warning(f"Stopping microphone failed: {exc}")

    def _safe_stop_recognizer(self) -> None:
        try:
            self._recognizer.stop()
        except Exception as exc:
            logger.warning(f"Stopping recognizer failed: {exc}")
