"""Global hotkeys based on pynput."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Mapping, Optional, Set

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

logger = logging.getLogger(__name__)


class GlobalHotkeyAdapter:
    """Fires one action per key press; auto-repeat is ignored until release.

    ``bindings`` maps a pynput key name (``str(key)``, e.g. ``Key.f8`` or
    ``'s'``) to the callback to run.
    """

    def __init__(self, bindings: Mapping[str, Callable[[], None]]) -> None:
        self._bindings: Dict[str, Callable[[], None]] = dict(bindings)
        self._listener: Optional[object] = None
        self._held: Set[str] = set()
        self._lock = threading.Lock()

    @property
    def keys(self) -> list:
        return sorted(self._bindings)

    def start(self) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        if self._listener is not None:
            return
        self._listener = keyboard.Listener(on_press=self._on_press, on_release=self._on_release)
        self._listener.start()
        logger.info(f"Hotkeys active: {', '.join(self.keys)}")

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None
        with self._lock:
            self._held.clear()

    def _on_press(self, key: object) -> None:
        name = str(key)
        action = self._bindings.get(name)
        if action is None:
            return
        with self._lock:
            if name in self._held:
                return
            self._held.add(name)
        try:
            action()
        except Exception as exc:
            logger.error(f"Hotkey {name} failed: {exc}")

    def _on_release(self, key: object) -> None:
        with self._lock:
            self._held.discard(str(key))
