"""Always-on-top overlay showing the live prediction and transcript."""

from __future__ import annotations

from typing import Optional

from models import CameraFrame, PredictionEvent
from practice import PracticeMode, PracticeProgress

try:
    from PySide6.QtCore import Qt, QTimer
    from PySide6.QtGui import QImage, QPixmap
    from PySide6.QtWidgets import QApplication, QLabel, QVBoxLayout, QWidget
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QTimer = None  # type: ignore
    QImage = None  # type: ignore
    QPixmap = None  # type: ignore
    QApplication = None  # type: ignore
    QLabel = object  # type: ignore
    QWidget = object  # type: ignore
    QVBoxLayout = object  # type: ignore


PANEL_STYLE = (
    "color: white; font-size: 16px; padding: 10px 16px;"
    "background: rgba(0,0,0,190); border-radius: 12px;"
)
ERROR_STYLE = (
    "color: #FF6B6B; font-size: 16px; padding: 10px 16px;"
    "background: rgba(0,0,0,210); border-radius: 12px;"
)
PREVIEW_WIDTH = 320
PREVIEW_HEIGHT = 240


def format_prediction(prediction: Optional[PredictionEvent]) -> str:
    if prediction is None:
        return "No hand detected"
    lines = [f"{prediction.label}  {prediction.confidence * 100:.0f}%"]
    for alt in prediction.alternatives:
        lines.append(f"  {alt.label}  {alt.confidence_percent:.0f}%")
    return "\n".join(lines)


def format_status(buffer_count: int, window: int, fps: float) -> str:
    if buffer_count < window:
        return f"Warming up {buffer_count}/{window}  |  {fps:.1f} FPS"
    return f"Ready  |  {fps:.1f} FPS"


def format_practice(progress: PracticeProgress) -> str:
    if progress.mode == PracticeMode.FINGERSPELLING:
        header = f"Level {progress.level}  |  Sign: {progress.target}"
    else:
        header = f"Spell {progress.word}: {' '.join(progress.word_progress)}"
    if progress.correct:
        header += "  ✓"
    stats = progress.stats
    return (
        f"{header}\n"
        f"{progress.percent:.0f}%  |  ★ {stats.stars}  |  "
        f"streak {stats.streak}  |  today {stats.learned_today}"
    )


class OverlayWindow(QWidget):
    def __init__(self, buffer_window: int = 30) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowFlags(Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool)
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setFixedWidth(520)

        self._buffer_window = buffer_window
        self._buffer_count = 0
        self._fps = 0.0

        self._prediction = QLabel(format_prediction(None))
        self._status = QLabel(format_status(0, buffer_window, 0.0))
        self._transcript = QLabel("")
        self._practice = QLabel("")
        self._message = QLabel("")
        for label in (self._prediction, self._status, self._transcript, self._practice, self._message):
            label.setWordWrap(True)
            label.setStyleSheet(PANEL_STYLE)
        self._practice.hide()
        self._message.hide()

        self._preview = QLabel("")
        self._preview.setFixedSize(PREVIEW_WIDTH, PREVIEW_HEIGHT)
        self._preview.hide()

        layout = QVBoxLayout()
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(6)
        layout.addWidget(self._preview)
        layout.addWidget(self._prediction)
        layout.addWidget(self._status)
        layout.addWidget(self._transcript)
        layout.addWidget(self._practice)
        layout.addWidget(self._message)
        self.setLayout(layout)

        self._message_timer: QTimer | None = None

    def _place_top_right(self) -> None:
        if QApplication is None:
            return
        screen = QApplication.primaryScreen()
        if screen is None:
            return
        geom = screen.availableGeometry()
        self.adjustSize()
        self.move(geom.x() + geom.width() - self.width() - 24, geom.y() + 40)

    def present(self) -> None:
        self._place_top_right()
        self.show()

    def set_preview(self, frame: Optional[CameraFrame]) -> None:
        """Show a BGR camera frame, or hide the preview when ``frame`` is None."""
        if frame is None or frame.image is None or QImage is None:
            self._preview.clear()
            self._preview.hide()
            self.adjustSize()
            return
        image = frame.image
        height, width = image.shape[:2]
        qimage = QImage(image.data, width, height, image.strides[0], QImage.Format_BGR888)
        pixmap = QPixmap.fromImage(qimage).scaled(
            PREVIEW_WIDTH, PREVIEW_HEIGHT, Qt.KeepAspectRatio, Qt.SmoothTransformation
        )
        self._preview.setPixmap(pixmap)
        if self._preview.isHidden():
            self._preview.show()
            self.adjustSize()

    def set_prediction(self, prediction: Optional[PredictionEvent]) -> None:
        self._prediction.setText(format_prediction(prediction))
        self.adjustSize()

    def set_buffer(self, count: int) -> None:
        self._buffer_count = count
        self._refresh_status()

    def set_fps(self, fps: float) -> None:
        self._fps = fps
        self._refresh_status()

    def set_transcript(self, text: str) -> None:
        self._transcript.setText(text or "")
        self.adjustSize()

    def set_practice(self, progress: Optional[PracticeProgress]) -> None:
        if progress is None:
            self._practice.hide()
        else:
            self._practice.setText(format_practice(progress))
            self._practice.show()
        self.adjustSize()

    def show_message(self, text: str, hide_after_ms: int = 3000) -> None:
        self._show_transient(text, PANEL_STYLE, hide_after_ms)

    def show_error(self, text: str, hide_after_ms: int = 4000) -> None:
        self._show_transient(f"⚠️ {text}", ERROR_STYLE, hide_after_ms)

    def _show_transient(self, text: str, style: str, hide_after_ms: int) -> None:
        self._cancel_message_timer()
        self._message.setStyleSheet(style)
        self._message.setText(text)
        self._message.show()
        if not self.isVisible():
            self.present()
        self.adjustSize()
        if QTimer is not None and hide_after_ms > 0:
            self._message_timer = QTimer()
            self._message_timer.setSingleShot(True)
            self._message_timer.timeout.connect(self._message.hide)
            self._message_timer.start(hide_after_ms)

    def clear_message(self) -> None:
        self._cancel_message_timer()
        self._message.hide()
        self.adjustSize()

    def _refresh_status(self) -> None:
        self._status.setText(format_status(self._buffer_count, self._buffer_window, self._fps))

    def _cancel_message_timer(self) -> None:
        if self._message_timer is not None:
            self._message_timer.stop()
            self._message_timer = None
