"""Protocol interfaces used by SessionController."""

from __future__ import annotations

from queue import Queue
from typing import Callable, Optional, Protocol

from models import (
    AudioFrame,
    AudioResource,
    CameraFrame,
    DetectorEvent,
    Language,
    RecognitionEvent,
    SynthesisRequest,
)

FrameSink = Callable[[CameraFrame], None]


class SignDetector(Protocol):
    """External frame classifier.

    After ``attach`` the detector pushes PREDICTION and FPS events into the
    given channel from whatever thread it processes frames on.
    """

    def initialize(self) -> None: ...

    def is_ready(self) -> bool: ...

    def attach(self, channel: Queue[DetectorEvent | None]) -> None: ...

    def detach(self) -> None: ...

    def process_frame(self, frame: CameraFrame) -> None: ...

    def clear_buffer(self) -> None: ...

    def get_buffer_size(self) -> int: ...

    def dispose(self) -> None: ...


class CaptureStream(Protocol):
    @property
    def is_running(self) -> bool: ...

    def start(self, on_frame: FrameSink, preview: Optional[FrameSink] = None) -> None: ...

    def stop(self) -> None: ...


class LocalSpeechEngine(Protocol):
    def speak_async(self, text: str) -> None: ...

    def stop(self) -> None: ...


class RemoteSpeechBackend(Protocol):
    language: Language

    def build_request(self, text: str) -> SynthesisRequest: ...

    def synthesize(self, request: SynthesisRequest) -> AudioResource: ...


class Playback(Protocol):
    def wait(self) -> None: ...


class AudioPlayer(Protocol):
    def start(self, resource: AudioResource) -> Playback: ...

    def stop(self) -> None: ...


class Recorder(Protocol):
    def start(self, audio_queue: Queue[AudioFrame | None]) -> None: ...

    def stop(self) -> None: ...


class RecognizerAdapter(Protocol):
    @property
    def is_available(self) -> bool: ...

    def start(
        self,
        audio_queue: Queue[AudioFrame | None],
        on_event: Callable[[RecognitionEvent], None],
    ) -> None: ...

    def set_language(self, language: Optional[Language]) -> None: ...

    def stop(self) -> None: ...


class SignLookup(Protocol):
    def lookup(self, text: str) -> str: ...


class PracticeStatsStore(Protocol):
    def get_practice_stats(self) -> dict: ...

    def set_practice_stats(self, stats: dict) -> None: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_language(self) -> str: ...

    def set_language(self, language: str) -> None: ...

    def get_hotkeys(self) -> dict: ...

    def get_speech_origin(self) -> str: ...

    def get_sign_service_url(self) -> str: ...

    def get_detector(self) -> str: ...

    def get_practice_stats(self) -> dict: ...

    def set_practice_stats(self, stats: dict) -> None: ...
