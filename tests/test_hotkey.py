"""Tests for GlobalHotkeyAdapter."""

from __future__ import annotations

from typing import List
from unittest.mock import MagicMock, patch

import pytest

from hotkey import GlobalHotkeyAdapter
from models import Alternative, PredictionEvent
from overlay import format_practice, format_prediction, format_status
from practice import PracticeMode, PracticeProgress, PracticeStats


def _adapter(calls: List[str]) -> GlobalHotkeyAdapter:
    return GlobalHotkeyAdapter({
        "Key.f8": lambda: calls.append("capture"),
        "Key.f9": lambda: calls.append("speak"),
    })


# ---------------------------------------------------------------
# Key dispatch
# ---------------------------------------------------------------

def test_press_runs_bound_action_once_until_release() -> None:
    calls: List[str] = []
    adapter = _adapter(calls)

    adapter._on_press("Key.f8")
    adapter._on_press("Key.f8")  # auto-repeat
    adapter._on_release("Key.f8")
    adapter._on_press("Key.f8")

    assert calls == ["capture", "capture"]


def test_unbound_keys_are_ignored() -> None:
    calls: List[str] = []
    adapter = _adapter(calls)

    adapter._on_press("Key.space")
    adapter._on_release("Key.space")

    assert calls == []


def test_failing_action_does_not_kill_listener() -> None:
    adapter = GlobalHotkeyAdapter({"Key.f8": MagicMock(side_effect=RuntimeError("boom"))})

    adapter._on_press("Key.f8")
    adapter._on_release("Key.f8")
    adapter._on_press("Key.f8")


@patch("hotkey.keyboard")
def test_start_and_stop_manage_listener(mock_keyboard: MagicMock) -> None:
    listener = MagicMock()
    mock_keyboard.Listener.return_value = listener
    adapter = _adapter([])

    adapter.start()
    adapter.start()
    adapter.stop()

    mock_keyboard.Listener.assert_called_once()
    listener.start.assert_called_once()
    listener.stop.assert_called_once()


@patch("hotkey.keyboard", None)
def test_start_without_pynput_raises() -> None:
    with pytest.raises(RuntimeError, match="pynput is not installed"):
        _adapter([]).start()


# ---------------------------------------------------------------
# Overlay text
# ---------------------------------------------------------------

def test_format_prediction_lists_alternatives() -> None:
    prediction = PredictionEvent(
        label="A",
        confidence=0.91,
        alternatives=(Alternative("H", 6.0), Alternative("N", 2.0)),
    )

    assert format_prediction(prediction) == "A  91%\n  H  6%\n  N  2%"
    assert format_prediction(None) == "No hand detected"


def test_format_status_shows_warm_up_until_window_full() -> None:
    assert format_status(12, 30, 14.96) == "Warming up 12/30  |  15.0 FPS"
    assert format_status(30, 30, 20.0) == "Ready  |  20.0 FPS"


def test_format_practice_shows_target_and_stats() -> None:
    stats = PracticeStats(stars=4, streak=2, learned_today=1)
    letter = PracticeProgress(
        mode=PracticeMode.FINGERSPELLING, target="C", level=2, index=2, percent=7.7, stats=stats
    )
    word = PracticeProgress(
        mode=PracticeMode.WORDS,
        target="E",
        level=1,
        index=1,
        percent=33.3,
        word="YES",
        word_progress=("Y", "_", "_"),
        correct=True,
        stats=stats,
    )

    assert format_practice(letter) == "Level 2  |  Sign: C\n8%  |  ★ 4  |  streak 2  |  today 1"
    assert format_practice(word).startswith("Spell YES: Y _ _  ✓\n33%")
