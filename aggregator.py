"""Turns the detector's per-frame predictions into a stable transcript.

The aggregator owns the channel the detector writes into. A single worker
thread drains it in arrival order, so the acceptance rule below is applied
to exactly one event at a time:

* a ``None`` prediction clears the live prediction and nothing else;
* any other prediction becomes the live prediction;
* if its confidence exceeds the threshold, its label is appended unless it
  equals the last appended token.

A second thread polls the detector's warm-up buffer size and feeds it into
the same channel, so buffer updates are ordered with predictions.
"""

from __future__ import annotations

import logging
import threading
from queue import Queue
from typing import Callable, List, Optional

from config import BUFFER_POLL_INTERVAL_S, BUFFER_WINDOW, CONFIDENCE_THRESHOLD
from interfaces import SignDetector
from models import DetectorEvent, DetectorEventKind, PredictionEvent

logger = logging.getLogger(__name__)

PredictionCallback = Callable[[Optional[PredictionEvent]], None]
TranscriptCallback = Callable[[str], None]
BufferCallback = Callable[[int], None]
FpsCallback = Callable[[float], None]


class Transcript:
    def __init__(self, separator: str = "") -> None:
        self._separator = separator
        self._tokens: List[str] = []

    @property
    def text(self) -> str:
        return self._separator.join(self._tokens)

    @property
    def last(self) -> Optional[str]:
        return self._tokens[-1] if self._tokens else None

    def append_if_new(self, token: str) -> bool:
        if self._tokens and self._tokens[-1] == token:
            return False
        self._tokens.append(token)
        return True

    def replace(self, text: str) -> None:
        # An edited transcript becomes a single token; adjacency is checked against it.
        self._tokens = [text] if text else []

    def clear(self) -> None:
        self._tokens = []

    def __len__(self) -> int:
        return len(self._tokens)


class PredictionAggregator:
    def __init__(
        self,
        threshold: float = CONFIDENCE_THRESHOLD,
        window: int = BUFFER_WINDOW,
        poll_interval_s: float = BUFFER_POLL_INTERVAL_S,
        transcript: Optional[Transcript] = None,
        on_prediction: Optional[PredictionCallback] = None,
        on_transcript: Optional[TranscriptCallback] = None,
        on_buffer: Optional[BufferCallback] = None,
        on_fps: Optional[FpsCallback] = None,
    ) -> None:
        self._threshold = threshold
        self._window = window
        self._poll_interval_s = poll_interval_s
        self._transcript = transcript or Transcript()
        self._on_prediction = on_prediction
        self._on_transcript = on_transcript
        self._on_buffer = on_buffer
        self._on_fps = on_fps

        self._lock = threading.Lock()
        self._current: Optional[PredictionEvent] = None
        self._buffer_count = 0
        self._frame_rate = 0.0

        self._running = False
        self._detector: Optional[SignDetector] = None
        self._channel: Queue[DetectorEvent | None] = Queue()
        self._stop_event = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._poller: Optional[threading.Thread] = None

    @property
    def channel(self) -> Queue[DetectorEvent | None]:
        return self._channel

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def current_prediction(self) -> Optional[PredictionEvent]:
        return self._current

    @property
    def buffer_count(self) -> int:
        return self._buffer_count

    @property
    def frame_rate(self) -> float:
        return self._frame_rate

    @property
    def transcript(self) -> str:
        with self._lock:
            return self._transcript.text

    def replace_transcript(self, text: str) -> None:
        with self._lock:
            self._transcript.replace(text)

    def clear_transcript(self) -> None:
        with self._lock:
            self._transcript.clear()

    def start(self, detector: SignDetector) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._detector = detector
            self._channel = Queue()
            self._stop_event.clear()
        detector.attach(self._channel)
        self._worker = threading.Thread(target=self._drain, args=(self._channel,), daemon=True)
        self._poller = threading.Thread(
            target=self._poll_buffer, args=(detector, self._channel), daemon=True
        )
        self._worker.start()
        self._poller.start()
        logger.debug("Aggregator started")

    def stop(self) -> None:
        """Detach from the detector, process what is already queued, reset live state."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            detector = self._detector
            self._detector = None
        self._stop_event.set()
        if detector is not None:
            try:
                detector.detach()
            except Exception as exc:
                logger.warning(f"Detector detach failed: {exc}")
        self._join(self._poller)
        self._channel.put(None)
        self._join(self._worker)
        self._poller = None
        self._worker = None
        self._reset_live_state()
        logger.debug("Aggregator stopped")

    def handle(self, event: DetectorEvent) -> None:
        kind = event.kind
        if kind == DetectorEventKind.PREDICTION.value:
            self._handle_prediction(event.prediction)
        elif kind == DetectorEventKind.BUFFER.value:
            count = max(0, min(self._window, int(event.value)))
            self._buffer_count = count
            if self._on_buffer:
                self._on_buffer(count)
        elif kind == DetectorEventKind.FPS.value:
            self._frame_rate = max(0.0, float(event.value))
            if self._on_fps:
                self._on_fps(self._frame_rate)
        else:
            logger.warning(f"Ignoring unknown detector event kind: {kind!r}")

    def _handle_prediction(self, prediction: Optional[PredictionEvent]) -> None:
        appended = False
        with self._lock:
            self._current = prediction
            if prediction is not None and prediction.confidence > self._threshold:
                appended = self._transcript.append_if_new(prediction.label)
            text = self._transcript.text
        if prediction is not None:
            logger.debug(f"Prediction {prediction.label} ({prediction.confidence:.2f})")
        if self._on_prediction:
            self._on_prediction(prediction)
        if appended and self._on_transcript:
            self._on_transcript(text)

    def _drain(self, channel: Queue[DetectorEvent | None]) -> None:
        while True:
            event = channel.get()
            if event is None:  # Sentinel
                break
            try:
                self.handle(event)
            except Exception:
                logger.exception("Failed to handle detector event")

    def _poll_buffer(self, detector: SignDetector, channel: Queue[DetectorEvent | None]) -> None:
        while not self._stop_event.wait(self._poll_interval_s):
            try:
                size = detector.get_buffer_size()
            except Exception as exc:
                logger.warning(f"Buffer poll failed: {exc}")
                continue
            channel.put(DetectorEvent(kind=DetectorEventKind.BUFFER.value, value=size))

    @staticmethod
    def _join(thread: Optional[threading.Thread]) -> None:
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=2.0)

    def _reset_live_state(self) -> None:
        with self._lock:
            self._current = None
            self._buffer_count = 0
            self._frame_rate = 0.0
        if self._on_prediction:
            self._on_prediction(None)
        if self._on_buffer:
            self._on_buffer(0)
