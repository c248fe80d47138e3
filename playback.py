"""Playback of fetched audio through pygame's music channel.

Downloaded bytes are written to a temporary file that exists only for the
lifetime of one playback and is removed when it ends, is stopped, or fails.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from typing import Optional

from models import AudioResource

logger = logging.getLogger(__name__)

try:
    import pygame
except Exception:  # pragma: no cover
    pygame = None  # type: ignore


class PygamePlayback:
    def __init__(self, path: str, poll_interval_s: float = 0.1) -> None:
        self.path = path
        self._poll_interval_s = poll_interval_s
        self._stop_event = threading.Event()
        self._release_lock = threading.Lock()
        self.released = False

    def wait(self) -> None:
        """Block until the track finishes or is cancelled, then release it."""
        try:
            while not self._stop_event.wait(self._poll_interval_s):
                if not pygame.mixer.music.get_busy():
                    break
        finally:
            self.release()

    def cancel(self) -> None:
        self._stop_event.set()

    def release(self) -> None:
        with self._release_lock:
            if self.released:
                return
            self.released = True
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning(f"Could not remove temporary audio {self.path}: {exc}")


class PygameAudioPlayer:
    def __init__(self, poll_interval_s: float = 0.1) -> None:
        self._poll_interval_s = poll_interval_s
        self._lock = threading.Lock()
        self._current: Optional[PygamePlayback] = None

    @property
    def is_playing(self) -> bool:
        current = self._current
        return current is not None and not current.released

    def start(self, resource: AudioResource) -> PygamePlayback:
        if pygame is None:
            raise RuntimeError("pygame is not installed")
        with self._lock:
            self._stop_locked()
            fd, path = tempfile.mkstemp(prefix="signlive_", suffix=resource.suffix)
            with os.fdopen(fd, "wb") as handle:
                handle.write(resource.data)
            playback = PygamePlayback(path, self._poll_interval_s)
            try:
                if not pygame.mixer.get_init():
                    pygame.mixer.init()
                pygame.mixer.music.load(path)
                pygame.mixer.music.play()
            except Exception:
                playback.release()
                raise
            self._current = playback
            logger.debug(f"Playing {resource.url}")
            return playback

    def stop(self) -> None:
        with self._lock:
            self._stop_locked()

    def _stop_locked(self) -> None:
        current, self._current = self._current, None
        if current is None:
            return
        current.cancel()
        try:
            pygame.mixer.music.stop()
            pygame.mixer.music.unload()
        except Exception as exc:
            logger.warning(f"Stopping playback failed: {exc}")
        current.release()
