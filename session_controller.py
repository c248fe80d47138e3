"""State-machine based orchestration of capture, speech, dictation and sign lookup."""

from __future__ import annotations

import logging
import threading
from typing import Mapping, Optional

from aggregator import PredictionAggregator
from config import CONFIDENCE_THRESHOLD
from dictation import DictationBridge
from errors import (
    DetectorInitFailed,
    DeviceUnavailable,
    RemoteLookupFailed,
    TranslatorError,
)
from interfaces import (
    AudioPlayer,
    CaptureStream,
    LocalSpeechEngine,
    PracticeStatsStore,
    RecognizerAdapter,
    Recorder,
    RemoteSpeechBackend,
    SignDetector,
    SignLookup,
)
from models import (
    DEFAULT_LANGUAGE,
    CameraFrame,
    CaptureSession,
    Language,
    PredictionEvent,
    SessionState,
)
from practice import PracticeMode, PracticeProgress, PracticeSession
from speech import SpeechDispatcher

logger = logging.getLogger(__name__)


class SessionListener:
    """Receives observable state changes. Override what the UI needs.

    Callbacks arrive on worker threads.
    """

    def on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        pass

    def on_preview(self, frame: Optional[CameraFrame]) -> None:
        pass

    def on_prediction(self, prediction: Optional[PredictionEvent]) -> None:
        pass

    def on_transcript(self, text: str) -> None:
        pass

    def on_buffer(self, count: int) -> None:
        pass

    def on_fps(self, fps: float) -> None:
        pass

    def on_speech_loading(self, loading: bool) -> None:
        pass

    def on_sign_loading(self, loading: bool) -> None:
        pass

    def on_sign_video(self, url: Optional[str]) -> None:
        pass

    def on_listening(self, listening: bool) -> None:
        pass

    def on_partial(self, text: str) -> None:
        pass

    def on_practice(self, progress: Optional[PracticeProgress]) -> None:
        pass

    def on_error(self, code: str, message: str) -> None:
        pass


class SessionController:
    def __init__(
        self,
        detector: SignDetector,
        camera: CaptureStream,
        local_engine: LocalSpeechEngine,
        speech_backends: Mapping[Language, RemoteSpeechBackend],
        player: AudioPlayer,
        sign_lookup: SignLookup,
        recorder: Recorder,
        recognizer: RecognizerAdapter,
        language: Language = DEFAULT_LANGUAGE,
        listener: Optional[SessionListener] = None,
        confidence_threshold: float = CONFIDENCE_THRESHOLD,
        practice_store: Optional[PracticeStatsStore] = None,
    ) -> None:
        self._detector = detector
        self._camera = camera
        self._sign_lookup = sign_lookup
        self._language = language
        self._listener = listener or SessionListener()
        self._confidence_threshold = confidence_threshold
        self._practice_store = practice_store
        self._practice: Optional[PracticeSession] = None

        self._aggregator = PredictionAggregator(
            threshold=confidence_threshold,
            on_prediction=self._handle_prediction,
            on_transcript=self._handle_transcript,
            on_buffer=self._handle_buffer,
            on_fps=self._handle_fps,
        )

        self._dispatcher = SpeechDispatcher(
            local_engine,
            speech_backends,
            player,
            on_loading=self._listener.on_speech_loading,
        )
        self._dictation = DictationBridge(
            recorder=recorder,
            recognizer=recognizer,
            on_utterance=self.translate_to_sign,
            on_error=self._emit_error,
            on_listening=self._listener.on_listening,
            on_partial=self._listener.on_partial,
            language=language,
        )

        self._lock = threading.RLock()
        self._session = CaptureSession()
        self._session_id = 0
        self._capture_lock = threading.Lock()
        self._capture_owner: Optional[int] = None
        self._lookup_id = 0
        self._sign_loading = False
        self._sign_video_url: Optional[str] = None

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def session(self) -> CaptureSession:
        return self._session

    @property
    def current_prediction(self) -> Optional[PredictionEvent]:
        return self._aggregator.current_prediction

    @property
    def transcript(self) -> str:
        return self._aggregator.transcript

    @property
    def language(self) -> Language:
        return self._language

    @property
    def is_speech_loading(self) -> bool:
        return self._dispatcher.is_loading

    @property
    def sign_loading(self) -> bool:
        return self._sign_loading

    @property
    def sign_video_url(self) -> Optional[str]:
        return self._sign_video_url

    @property
    def is_listening(self) -> bool:
        return self._dictation.is_listening

    @property
    def dictation(self) -> DictationBridge:
        return self._dictation

    @property
    def practice(self) -> Optional[PracticeSession]:
        return self._practice

    # ------------------------------------------------------------------
    # Capture lifecycle
    # ------------------------------------------------------------------

    def start_capture(self) -> None:
        """Idle -> Initializing -> Active.

        Raises DetectorInitFailed or DeviceUnavailable after returning to Idle.
        """
        with self._lock:
            if self._session.state != SessionState.IDLE:
                logger.debug(f"Ignoring start while {self._session.state.value}")
                return
            self._session_id += 1
            session_id = self._session_id
            self._session = CaptureSession()
            self._transition(SessionState.INITIALIZING)

        try:
            self._detector.initialize()
            if not self._detector.is_ready():
                raise DetectorInitFailed("Detector is not ready after initialization")
        except TranslatorError:
            self._abort(session_id)
            raise
        except Exception as exc:
            self._abort(session_id)
            raise DetectorInitFailed(str(exc)) from exc

        try:
            acquired = self._acquire_capture(session_id)
        except TranslatorError:
            self._abort(session_id)
            raise
        except Exception as exc:
            self._abort(session_id)
            raise DeviceUnavailable(str(exc)) from exc
        if not acquired:
            logger.debug(f"Start {session_id} superseded before acquiring the camera")
            return

        with self._lock:
            superseded = session_id != self._session_id
            if not superseded:
                self._transition(SessionState.ACTIVE)
        if superseded:
            # stop_capture() ran while we were acquiring; release only what this start owns.
            self._release_capture(session_id)
            return
        logger.info("Capture session active")

    def stop_capture(self) -> None:
        """Active/Initializing -> Idle. Safe to call repeatedly."""
        with self._lock:
            if self._session.state in (SessionState.IDLE, SessionState.STOPPED):
                return
            self._session_id += 1
            self._transition(SessionState.STOPPED)

        self._release_capture()
        self._dispatcher.cancel()

        with self._lock:
            self._session.frame_rate = 0.0
            self._session.buffer_count = 0
            self._transition(SessionState.IDLE)
        logger.info("Capture session stopped")

    def _abort(self, session_id: int) -> None:
        with self._lock:
            if session_id == self._session_id:
                self._session = CaptureSession(state=self._session.state)
                self._transition(SessionState.IDLE)

    def _acquire_capture(self, session_id: int) -> bool:
        """Start the aggregator and camera on behalf of ``session_id``.

        Returns False without touching anything when a newer session exists.
        """
        with self._capture_lock:
            with self._lock:
                if session_id != self._session_id:
                    return False
            self._capture_owner = session_id
            try:
                self._aggregator.start(self._detector)
                self._camera.start(self._detector.process_frame, preview=self._listener.on_preview)
            except Exception:
                self._release_owned_locked()
                raise
            return True

    def _release_capture(self, session_id: Optional[int] = None) -> None:
        """Release the camera and aggregator.

        With ``session_id`` only that session's acquisition is released.
        """
        with self._capture_lock:
            owner = self._capture_owner
            if owner is None or (session_id is not None and owner != session_id):
                return
            self._release_owned_locked()

    def _release_owned_locked(self) -> None:
        self._capture_owner = None
        try:
            self._camera.stop()
        except Exception as exc:
            logger.warning(f"Camera stop failed: {exc}")
        self._aggregator.stop()
        try:
            self._detector.clear_buffer()
        except Exception as exc:
            logger.warning(f"Detector buffer clear failed: {exc}")

    # ------------------------------------------------------------------
    # Transcript
    # ------------------------------------------------------------------

    def set_transcript(self, text: str) -> bool:
        with self._lock:
            if self._is_capturing():
                logger.warning("Transcript cannot be edited during capture")
                return False
            self._aggregator.replace_transcript(text)
        self._listener.on_transcript(self.transcript)
        return True

    def clear_transcript(self) -> bool:
        with self._lock:
            if self._is_capturing():
                logger.warning("Transcript cannot be cleared during capture")
                return False
            self._aggregator.clear_transcript()
        self._listener.on_transcript("")
        return True

    # ------------------------------------------------------------------
    # Speech
    # ------------------------------------------------------------------

    def set_language(self, language: Language | str) -> None:
        self._language = Language(language)
        self._dictation.set_language(self._language)

    def speak(
        self,
        text: Optional[str] = None,
        language: Language | str | None = None,
    ) -> Optional[threading.Thread]:
        """Speak ``text`` (the transcript by default) in ``language``."""
        text = self.transcript if text is None else text
        if not text.strip():
            logger.info("Nothing to speak")
            return None
        return self._dispatcher.speak(text, language or self._language)

    def cancel_speech(self) -> None:
        self._dispatcher.cancel()

    # ------------------------------------------------------------------
    # Text / speech -> sign
    # ------------------------------------------------------------------

    def translate_to_sign(self, text: str) -> Optional[str]:
        """Look up the sign video for ``text``. Blocks on the network call."""
        text = text.strip()
        if not text:
            return None

        with self._lock:
            self._lookup_id += 1
            lookup_id = self._lookup_id
            self._sign_loading = True
            self._sign_video_url = None
        self._listener.on_sign_loading(True)
        self._listener.on_sign_video(None)

        url: Optional[str] = None
        error: Optional[TranslatorError] = None
        try:
            url = self._sign_lookup.lookup(text)
        except TranslatorError as exc:
            error = exc
        except Exception as exc:
            error = RemoteLookupFailed(str(exc))

        with self._lock:
            if lookup_id != self._lookup_id:
                return None
            self._sign_loading = False
            self._sign_video_url = url
        self._listener.on_sign_loading(False)
        if error is not None:
            self._emit_error(error.code, error.message)
            return None
        self._listener.on_sign_video(url)
        return url

    def toggle_dictation(self) -> None:
        self._dictation.toggle()

    # ------------------------------------------------------------------
    # Practice
    # ------------------------------------------------------------------

    def start_practice(self, mode: PracticeMode | str) -> PracticeSession:
        """Score live predictions against a drill. Replaces any running drill."""
        session = PracticeSession(
            mode,
            store=self._practice_store,
            threshold=self._confidence_threshold,
            on_progress=self._listener.on_practice,
        )
        with self._lock:
            previous, self._practice = self._practice, session
        if previous is not None:
            previous.stop()
        logger.info(f"Practice started: {session.mode.value}")
        self._listener.on_practice(session.progress)
        return session

    def next_practice(self) -> Optional[PracticeProgress]:
        practice = self._practice
        if practice is None:
            return None
        return practice.next()

    def stop_practice(self) -> None:
        with self._lock:
            practice, self._practice = self._practice, None
        if practice is None:
            return
        practice.stop()
        logger.info("Practice stopped")
        self._listener.on_practice(None)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def shutdown(self) -> None:
        self.stop_capture()
        self.stop_practice()
        self._dispatcher.cancel()
        self._dictation.cancel()
        try:
            self._detector.dispose()
        except Exception as exc:
            logger.warning(f"Detector dispose failed: {exc}")

    # ------------------------------------------------------------------
    # Aggregator callbacks (worker thread, never take the controller lock)
    # ------------------------------------------------------------------

    def _handle_prediction(self, prediction: Optional[PredictionEvent]) -> None:
        self._listener.on_prediction(prediction)
        practice = self._practice
        if practice is not None:
            practice.handle_prediction(prediction)

    def _handle_transcript(self, text: str) -> None:
        self._listener.on_transcript(text)

    def _handle_buffer(self, count: int) -> None:
        self._session.buffer_count = count
        self._listener.on_buffer(count)

    def _handle_fps(self, fps: float) -> None:
        self._session.frame_rate = fps
        self._listener.on_fps(fps)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _is_capturing(self) -> bool:
        return self._session.state in (SessionState.INITIALIZING, SessionState.ACTIVE)

    def _emit_error(self, code: str, message: str) -> None:
        logger.warning(f"{code}: {message}")
        self._listener.on_error(code, message)

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._session.state
        if from_state == to_state:
            return
        self._session.state = to_state
        logger.debug(f"Session {from_state.value} -> {to_state.value}")
        self._listener.on_state_change(from_state, to_state)
