"""Camera capture adapter."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

from config import CAMERA_INDEX, FRAME_HEIGHT, FRAME_WIDTH
from errors import DeviceUnavailable
from models import CameraFrame

logger = logging.getLogger(__name__)

try:
    import cv2
except Exception:  # pragma: no cover
    cv2 = None  # type: ignore

PreviewSink = Callable[[Optional[CameraFrame]], None]


class OpenCVCameraStream:
    """Reads frames on a background thread and hands each one to the detector.

    The preview sink receives every frame, and ``None`` once the stream stops.
    """

    def __init__(
        self,
        camera_index: int = CAMERA_INDEX,
        width: int = FRAME_WIDTH,
        height: int = FRAME_HEIGHT,
    ) -> None:
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self._capture: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._on_frame: Optional[Callable[[CameraFrame], None]] = None
        self._preview: Optional[PreviewSink] = None
        self.failed_reads = 0

    @property
    def is_running(self) -> bool:
        return self._running

    def start(
        self,
        on_frame: Callable[[CameraFrame], None],
        preview: Optional[PreviewSink] = None,
    ) -> None:
        with self._lock:
            if self._running:
                return
            if cv2 is None:
                raise DeviceUnavailable("opencv is not installed")
            capture = cv2.VideoCapture(self.camera_index)
            if not capture.isOpened():
                capture.release()
                raise DeviceUnavailable(f"Camera {self.camera_index} could not be opened")
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)

            self._capture = capture
            self._on_frame = on_frame
            self._preview = preview
            self._stop_event.clear()
            self._running = True
            self._thread = threading.Thread(target=self._read_loop, daemon=True)
            self._thread.start()
        logger.info(f"Camera {self.camera_index} started at {self.width}x{self.height}")

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._stop_event.set()
            thread = self._thread
            self._thread = None

        if thread is not None and thread.is_alive():
            thread.join(timeout=1.0)

        with self._lock:
            capture, self._capture = self._capture, None
            preview, self._preview = self._preview, None
            self._on_frame = None
        if capture is not None:
            capture.release()
        if preview is not None:
            preview(None)
        logger.info("Camera stopped")

    def _read_loop(self) -> None:
        capture = self._capture
        on_frame = self._on_frame
        preview = self._preview
        if capture is None or on_frame is None:
            return

        while not self._stop_event.is_set():
            ok, image = capture.read()
            if not ok:
                self.failed_reads += 1
                self._stop_event.wait(0.01)
                continue
            frame = CameraFrame(image=image, timestamp_ms=int(time.time() * 1000))
            try:
                on_frame(frame)
            except Exception:
                logger.exception("Detector failed to process frame")
            if preview is not None:
                preview(frame)
