"""Tests for PygameAudioPlayer."""

from __future__ import annotations

import os
import tempfile
import threading
from unittest.mock import MagicMock, patch

import pytest

from models import AudioResource
from playback import PygameAudioPlayer


def _resource() -> AudioResource:
    return AudioResource(data=b"ID3fake-mp3", url="http://tts.local/a.mp3", content_type="audio/mpeg")


# ---------------------------------------------------------------
# Temporary file lifecycle
# ---------------------------------------------------------------

@patch("playback.pygame")
def test_playback_end_removes_temp_file(mock_pygame: MagicMock) -> None:
    mock_pygame.mixer.music.get_busy.return_value = False
    player = PygameAudioPlayer(poll_interval_s=0.01)

    playback = player.start(_resource())
    assert os.path.exists(playback.path)
    assert playback.path.endswith(".mp3")
    mock_pygame.mixer.music.load.assert_called_once_with(playback.path)
    mock_pygame.mixer.music.play.assert_called_once()

    playback.wait()

    assert playback.released is True
    assert not os.path.exists(playback.path)


@patch("playback.pygame")
def test_stop_cancels_wait_and_releases(mock_pygame: MagicMock) -> None:
    mock_pygame.mixer.music.get_busy.return_value = True
    player = PygameAudioPlayer(poll_interval_s=0.01)
    playback = player.start(_resource())

    waiter = threading.Thread(target=playback.wait, daemon=True)
    waiter.start()
    player.stop()
    waiter.join(timeout=2.0)

    assert not waiter.is_alive()
    assert player.is_playing is False
    assert not os.path.exists(playback.path)
    mock_pygame.mixer.music.stop.assert_called()


@patch("playback.pygame")
def test_new_start_replaces_current_playback(mock_pygame: MagicMock) -> None:
    player = PygameAudioPlayer(poll_interval_s=0.01)

    first = player.start(_resource())
    second = player.start(_resource())

    assert first.released is True
    assert not os.path.exists(first.path)
    assert player.is_playing is True
    player.stop()
    assert second.released is True


@patch("playback.pygame")
def test_load_failure_releases_temp_file(mock_pygame: MagicMock) -> None:
    mock_pygame.mixer.music.load.side_effect = RuntimeError("unsupported format")
    player = PygameAudioPlayer()
    created = []
    real_mkstemp = tempfile.mkstemp

    def _mkstemp(**kwargs):  # noqa: ANN003, ANN202
        fd, path = real_mkstemp(**kwargs)
        created.append(path)
        return fd, path

    with patch("playback.tempfile.mkstemp", side_effect=_mkstemp):
        with pytest.raises(RuntimeError, match="unsupported format"):
            player.start(_resource())

    assert player.is_playing is False
    assert len(created) == 1
    assert not os.path.exists(created[0])


@patch("playback.pygame", None)
def test_start_without_pygame_raises() -> None:
    with pytest.raises(RuntimeError, match="pygame is not installed"):
        PygameAudioPlayer().start(_resource())
