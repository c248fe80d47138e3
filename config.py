"""Settings: fixed tuning constants plus a simple JSON-based config store."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

# Camera
CAMERA_INDEX = 0
FRAME_WIDTH = 640
FRAME_HEIGHT = 480

# Aggregation
CONFIDENCE_THRESHOLD = 0.7
BUFFER_WINDOW = 30
BUFFER_POLL_INTERVAL_S = 0.1

# Speech
SPEECH_RATE = 150
SPEECH_VOLUME = 0.9
REQUEST_TIMEOUT_S = 30.0
MAX_UTTERANCE_S = 15.0

# Practice
PRACTICE_ADVANCE_S = 1.5

# Logging
LOG_LEVEL = logging.INFO
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

DEFAULT_HOTKEYS = {
    "capture": "Key.f8",
    "speak": "Key.f9",
    "dictate": "Key.f10",
}


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "signlive" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", "") or os.getenv("DASHSCOPE_API_KEY", ""))

    def set_api_key(self, key: str) -> None:
        self._set("api_key", key)

    def get_language(self) -> str:
        data = self._read_all()
        return str(data.get("language", "en"))

    def set_language(self, language: str) -> None:
        self._set("language", language)

    def get_hotkeys(self) -> dict:
        data = self._read_all()
        hotkeys = dict(DEFAULT_HOTKEYS)
        stored = data.get("hotkeys")
        if isinstance(stored, dict):
            hotkeys.update({str(k): str(v) for k, v in stored.items()})
        return hotkeys

    def set_hotkey(self, action: str, hotkey: str) -> None:
        data = self._read_all()
        stored = data.get("hotkeys")
        if not isinstance(stored, dict):
            stored = {}
        stored[action] = hotkey
        data["hotkeys"] = stored
        self._write_all(data)

    def get_speech_origin(self) -> str:
        data = self._read_all()
        return str(data.get("speech_origin", "http://127.0.0.1:8000"))

    def get_sign_service_url(self) -> str:
        data = self._read_all()
        return str(data.get("sign_service_url", "http://127.0.0.1:8000/api/text-to-sign"))

    def get_detector(self) -> str:
        data = self._read_all()
        return str(data.get("detector", ""))

    def set_detector(self, path: str) -> None:
        self._set("detector", path)

    def get_practice_stats(self) -> dict:
        data = self._read_all()
        stats = data.get("practice")
        return dict(stats) if isinstance(stats, dict) else {}

    def set_practice_stats(self, stats: dict) -> None:
        self._set("practice", dict(stats))

    def _set(self, key: str, value: object) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
