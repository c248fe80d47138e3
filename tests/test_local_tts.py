"""Tests for Pyttsx3SpeechEngine."""

from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock, patch

from local_tts import Pyttsx3SpeechEngine


def _wait_until(predicate, *, timeout: float = 2.0) -> None:  # noqa: ANN001
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return
        time.sleep(0.01)


@patch("local_tts.pyttsx3")
def test_speak_async_runs_on_worker(mock_pyttsx3: MagicMock) -> None:
    engine = MagicMock()
    mock_pyttsx3.init.return_value = engine
    tts = Pyttsx3SpeechEngine(rate=120, volume=1.5)

    tts.speak_async("HELLO")
    _wait_until(lambda: engine.runAndWait.called)
    tts.shutdown()

    engine.say.assert_called_once_with("HELLO")
    engine.setProperty.assert_any_call("rate", 120)
    engine.setProperty.assert_any_call("volume", 1.0)


@patch("local_tts.pyttsx3")
def test_stop_drops_queued_text(mock_pyttsx3: MagicMock) -> None:
    gate = threading.Event()
    engine = MagicMock()
    engine.runAndWait.side_effect = lambda: gate.wait(timeout=2.0)
    mock_pyttsx3.init.return_value = engine
    tts = Pyttsx3SpeechEngine()

    tts.speak_async("first")
    _wait_until(lambda: tts.is_speaking)
    tts.speak_async("second")
    tts.stop()
    gate.set()
    tts.shutdown()

    engine.stop.assert_called()
    assert [c.args[0] for c in engine.say.call_args_list] == ["first"]


@patch("local_tts.pyttsx3")
def test_runtime_error_reinitializes_engine(mock_pyttsx3: MagicMock) -> None:
    broken = MagicMock()
    broken.runAndWait.side_effect = RuntimeError("run loop already started")
    healthy = MagicMock()
    mock_pyttsx3.init.side_effect = [broken, healthy]
    tts = Pyttsx3SpeechEngine()

    tts.speak_async("one")
    _wait_until(lambda: mock_pyttsx3.init.call_count == 2)
    tts.speak_async("two")
    _wait_until(lambda: healthy.runAndWait.called)
    tts.shutdown()

    healthy.say.assert_called_once_with("two")


@patch("local_tts.pyttsx3", None)
def test_speak_without_pyttsx3_is_noop() -> None:
    tts = Pyttsx3SpeechEngine()

    assert tts.is_available is False
    tts.speak_async("hello")
    tts.stop()
