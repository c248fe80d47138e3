"""Application entrypoint."""

from __future__ import annotations

import logging
import sys
import threading
from typing import Callable, Optional

from camera import OpenCVCameraStream
from config import BUFFER_WINDOW, LOG_FORMAT, LOG_LEVEL, JsonConfigStore
from detectors import load_detector
from errors import TranslatorError
from hotkey import GlobalHotkeyAdapter
from local_tts import Pyttsx3SpeechEngine
from microphone import SoundDeviceMicrophone
from models import DEFAULT_LANGUAGE, CameraFrame, Language, PredictionEvent, SessionState
from overlay import OverlayWindow
from playback import PygameAudioPlayer
from practice import PracticeMode
from recognizer import DashscopeRecognizer
from session_controller import SessionController, SessionListener
from sign_lookup import SignVideoClient
from speech import create_backends

try:
    from PySide6.QtCore import QObject, QSize, QUrl, Signal
    from PySide6.QtGui import QAction, QActionGroup, QBrush, QColor, QDesktopServices, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)

LANGUAGE_NAMES = {
    Language.ENGLISH: "English",
    Language.HINDI: "Hindi",
    Language.TAMIL: "Tamil",
}


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_IDLE = "#888888"      # grey
ICON_STARTING = "#FFC107"  # amber
ICON_ACTIVE = "#4CAF50"    # green
ICON_LISTENING = "#FF4444"  # red


class UIBridge(QObject):
    state_signal = Signal(str, str)  # from_state, to_state
    preview_signal = Signal(object)
    prediction_signal = Signal(object)
    transcript_signal = Signal(str)
    buffer_signal = Signal(int)
    fps_signal = Signal(float)
    speech_loading_signal = Signal(bool)
    sign_loading_signal = Signal(bool)
    sign_video_signal = Signal(object)
    listening_signal = Signal(bool)
    partial_signal = Signal(str)
    practice_signal = Signal(object)
    error_signal = Signal(str)


class SignalListener(SessionListener):
    """Forwards controller callbacks (worker threads) to Qt signals."""

    def __init__(self, ui: UIBridge) -> None:
        self._ui = ui

    def on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        self._ui.state_signal.emit(from_state.value, to_state.value)

    def on_preview(self, frame: Optional[CameraFrame]) -> None:
        self._ui.preview_signal.emit(frame)

    def on_prediction(self, prediction: Optional[PredictionEvent]) -> None:
        self._ui.prediction_signal.emit(prediction)

    def on_transcript(self, text: str) -> None:
        self._ui.transcript_signal.emit(text)

    def on_buffer(self, count: int) -> None:
        self._ui.buffer_signal.emit(count)

    def on_fps(self, fps: float) -> None:
        self._ui.fps_signal.emit(fps)

    def on_speech_loading(self, loading: bool) -> None:
        self._ui.speech_loading_signal.emit(loading)

    def on_sign_loading(self, loading: bool) -> None:
        self._ui.sign_loading_signal.emit(loading)

    def on_sign_video(self, url: Optional[str]) -> None:
        self._ui.sign_video_signal.emit(url)

    def on_listening(self, listening: bool) -> None:
        self._ui.listening_signal.emit(listening)

    def on_partial(self, text: str) -> None:
        self._ui.partial_signal.emit(text)

    def on_practice(self, progress) -> None:  # noqa: ANN001
        self._ui.practice_signal.emit(progress)

    def on_error(self, code: str, message: str) -> None:
        self._ui.error_signal.emit(f"{code}: {message}")


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        self.overlay = OverlayWindow(buffer_window=BUFFER_WINDOW)
        self.ui = UIBridge()
        self._connect_signals()

        try:
            language = Language(self.config_store.get_language())
        except ValueError:
            language = DEFAULT_LANGUAGE

        self.local_engine = Pyttsx3SpeechEngine()
        self.player = PygameAudioPlayer()
        self.controller = SessionController(
            detector=load_detector(self.config_store.get_detector()),
            camera=OpenCVCameraStream(),
            local_engine=self.local_engine,
            speech_backends=create_backends(self.config_store.get_speech_origin()),
            player=self.player,
            sign_lookup=SignVideoClient(self.config_store.get_sign_service_url()),
            recorder=SoundDeviceMicrophone(),
            recognizer=DashscopeRecognizer(api_key=self.config_store.get_api_key(), language=language),
            language=language,
            listener=SignalListener(self.ui),
            practice_store=self.config_store,
        )

        hotkeys = self.config_store.get_hotkeys()
        self.hotkey = GlobalHotkeyAdapter({
            hotkeys["capture"]: self._toggle_capture,
            hotkeys["speak"]: self._speak,
            hotkeys["dictate"]: self._toggle_dictation,
        })

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_IDLE))
        self.tray.setToolTip("SignLive: Ready")
        self._setup_menu()
        self.tray.show()

    def _connect_signals(self) -> None:
        self.ui.state_signal.connect(self._on_state_change_ui)
        self.ui.preview_signal.connect(self.overlay.set_preview)
        self.ui.prediction_signal.connect(self.overlay.set_prediction)
        self.ui.transcript_signal.connect(self.overlay.set_transcript)
        self.ui.buffer_signal.connect(self.overlay.set_buffer)
        self.ui.fps_signal.connect(self.overlay.set_fps)
        self.ui.speech_loading_signal.connect(self._on_speech_loading_ui)
        self.ui.sign_loading_signal.connect(self._on_sign_loading_ui)
        self.ui.sign_video_signal.connect(self._on_sign_video_ui)
        self.ui.listening_signal.connect(self._on_listening_ui)
        self.ui.partial_signal.connect(self._on_partial_ui)
        self.ui.practice_signal.connect(self._on_practice_ui)
        self.ui.error_signal.connect(self.overlay.show_error)

    def _setup_menu(self) -> None:
        menu = QMenu()

        self.capture_action = QAction("Start Capture", menu)
        self.capture_action.triggered.connect(self._toggle_capture)
        menu.addAction(self.capture_action)

        speak_action = QAction("Speak Transcript", menu)
        speak_action.triggered.connect(self._speak)
        menu.addAction(speak_action)

        edit_action = QAction("Edit Transcript…", menu)
        edit_action.triggered.connect(self._edit_transcript)
        menu.addAction(edit_action)

        clear_action = QAction("Clear Transcript", menu)
        clear_action.triggered.connect(self._clear_transcript)
        menu.addAction(clear_action)

        language_menu = menu.addMenu("Speech Language")
        group = QActionGroup(language_menu)
        group.setExclusive(True)
        for language, name in LANGUAGE_NAMES.items():
            action = QAction(name, language_menu)
            action.setCheckable(True)
            action.setChecked(language == self.controller.language)
            action.triggered.connect(lambda _checked=False, lang=language: self._set_language(lang))
            group.addAction(action)
            language_menu.addAction(action)

        menu.addSeparator()

        self.dictate_action = QAction("Dictate to Sign", menu)
        self.dictate_action.triggered.connect(self._toggle_dictation)
        menu.addAction(self.dictate_action)

        text_action = QAction("Text to Sign…", menu)
        text_action.triggered.connect(self._text_to_sign)
        menu.addAction(text_action)

        practice_menu = menu.addMenu("Practice")
        for mode, name in ((PracticeMode.FINGERSPELLING, "Fingerspelling"), (PracticeMode.WORDS, "Basic Words")):
            action = QAction(name, practice_menu)
            action.triggered.connect(lambda _checked=False, m=mode: self._start_practice(m))
            practice_menu.addAction(action)
        skip_action = QAction("Skip", practice_menu)
        skip_action.triggered.connect(self.controller.next_practice)
        practice_menu.addAction(skip_action)
        stop_practice_action = QAction("Stop Practice", practice_menu)
        stop_practice_action.triggered.connect(self.controller.stop_practice)
        practice_menu.addAction(stop_practice_action)

        menu.addSeparator()

        api_action = QAction("Set API Key", menu)
        api_action.triggered.connect(self._set_api_key)
        menu.addAction(api_action)

        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    # ------------------------------------------------------------------
    # Actions (Qt thread or hotkey thread; blocking work goes to a thread)
    # ------------------------------------------------------------------

    def _run_async(self, target: Callable[..., object], *args: object) -> None:
        def _worker() -> None:
            try:
                target(*args)
            except TranslatorError as exc:
                self.ui.error_signal.emit(f"{exc.code}: {exc.message}")
            except Exception as exc:
                logger.exception("Action failed")
                self.ui.error_signal.emit(str(exc))

        threading.Thread(target=_worker, daemon=True).start()

    def _toggle_capture(self) -> None:
        if self.controller.state == SessionState.IDLE:
            self._run_async(self.controller.start_capture)
        else:
            self._run_async(self.controller.stop_capture)

    def _speak(self) -> None:
        self._run_async(self.controller.speak)

    def _toggle_dictation(self) -> None:
        self._run_async(self.controller.toggle_dictation)

    def _set_language(self, language: Language) -> None:
        self.controller.set_language(language)
        self.config_store.set_language(language.value)

    def _edit_transcript(self) -> None:
        value, ok = QInputDialog.getText(
            None, "Transcript", "Edit transcript", text=self.controller.transcript
        )
        if not ok:
            return
        if not self.controller.set_transcript(value):
            self.overlay.show_message("Stop capture before editing the transcript")

    def _clear_transcript(self) -> None:
        if not self.controller.clear_transcript():
            self.overlay.show_message("Stop capture before clearing the transcript")

    def _start_practice(self, mode: PracticeMode) -> None:
        self.controller.start_practice(mode)
        if self.controller.state == SessionState.IDLE:
            self._run_async(self.controller.start_capture)

    def _text_to_sign(self) -> None:
        value, ok = QInputDialog.getText(None, "Text to Sign", "Text")
        if not ok or not value.strip():
            return
        self._run_async(self.controller.translate_to_sign, value)

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        self.controller.dictation.replace_recognizer(
            DashscopeRecognizer(api_key=value, language=self.controller.language)
        )
        QMessageBox.information(None, "Saved", "API Key saved and applied.")

    # ------------------------------------------------------------------
    # UI thread handlers
    # ------------------------------------------------------------------

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        if to_state == SessionState.INITIALIZING.value:
            self.tray.setIcon(_create_icon(ICON_STARTING))
            self.tray.setToolTip("SignLive: Starting camera...")
            self.capture_action.setText("Stop Capture")
            self.overlay.present()
        elif to_state == SessionState.ACTIVE.value:
            self.tray.setIcon(_create_icon(ICON_ACTIVE))
            self.tray.setToolTip("SignLive: Capturing")
        elif to_state == SessionState.IDLE.value:
            self.tray.setIcon(_create_icon(ICON_IDLE))
            self.tray.setToolTip("SignLive: Ready")
            self.capture_action.setText("Start Capture")

    def _on_speech_loading_ui(self, loading: bool) -> None:
        if loading:
            self.overlay.show_message("Preparing speech...", hide_after_ms=0)
        else:
            self.overlay.clear_message()

    def _on_sign_loading_ui(self, loading: bool) -> None:
        if loading:
            self.overlay.show_message("Looking up sign video...", hide_after_ms=0)

    def _on_sign_video_ui(self, url: Optional[str]) -> None:
        if not url:
            return
        self.overlay.show_message(f"Sign video: {url}")
        QDesktopServices.openUrl(QUrl(url))

    def _on_listening_ui(self, listening: bool) -> None:
        self.dictate_action.setText("Stop Dictation" if listening else "Dictate to Sign")
        if listening:
            self.tray.setIcon(_create_icon(ICON_LISTENING))
            self.overlay.show_message("🎙️ Listening...", hide_after_ms=0)
        else:
            active = self.controller.state == SessionState.ACTIVE
            self.tray.setIcon(_create_icon(ICON_ACTIVE if active else ICON_IDLE))

    def _on_partial_ui(self, text: str) -> None:
        self.overlay.show_message(f"🎙️ {text}", hide_after_ms=0)

    def _on_practice_ui(self, progress) -> None:  # noqa: ANN001
        self.overlay.set_practice(progress)
        if progress is not None:
            self.overlay.present()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.hotkey.start()
        except Exception as exc:
            self.overlay.show_error(f"Hotkeys disabled: {exc}")
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.controller.shutdown()
        self.player.stop()
        self.local_engine.shutdown()
        self.app.quit()


def main() -> int:
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
