"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple, Union


class SessionState(str, Enum):
    IDLE = "IDLE"
    INITIALIZING = "INITIALIZING"
    ACTIVE = "ACTIVE"
    STOPPED = "STOPPED"


class Language(str, Enum):
    ENGLISH = "en"
    HINDI = "hi"
    TAMIL = "ta"


DEFAULT_LANGUAGE = Language.ENGLISH


class DetectorEventKind(str, Enum):
    PREDICTION = "prediction"
    FPS = "fps"
    BUFFER = "buffer"


class RecognitionKind(str, Enum):
    PARTIAL = "partial"
    FINAL = "final"
    ERROR = "error"


@dataclass
class CaptureSession:
    state: SessionState = SessionState.IDLE
    frame_rate: float = 0.0
    buffer_count: int = 0


@dataclass(frozen=True)
class Alternative:
    label: str
    confidence_percent: float


@dataclass(frozen=True)
class PredictionEvent:
    label: str
    confidence: float
    alternatives: Tuple[Alternative, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "alternatives", tuple(self.alternatives[:3]))


@dataclass
class DetectorEvent:
    """One item on the aggregator channel.

    ``prediction`` is ``None`` for a PREDICTION event when no hand is in frame.
    ``value`` carries the frame rate for FPS events and the frame count for
    BUFFER events.
    """

    kind: str
    prediction: Optional[PredictionEvent] = None
    value: float = 0.0


@dataclass
class CameraFrame:
    image: Any
    timestamp_ms: int = 0


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class RecognitionEvent:
    kind: str
    text: str = ""
    code: str = ""
    message: str = ""
    retryable: bool = False


# ----------------------------------------------------------------------
# Speech synthesis payloads. Each remote backend expects its own shape.
# ----------------------------------------------------------------------


@dataclass
class HindiSpeechPayload:
    text: str
    gender: str = "female"

    def to_json(self) -> dict:
        return {"text": self.text, "language": Language.HINDI.value, "gender": self.gender}


@dataclass
class TamilSpeechPayload:
    text: str
    language_code: str = "ta-IN"
    audio_format: str = "mp3"

    def to_json(self) -> dict:
        return {
            "input": {"text": self.text},
            "voice": {"language_code": self.language_code},
            "audio_config": {"format": self.audio_format},
        }


SpeechPayload = Union[HindiSpeechPayload, TamilSpeechPayload]


@dataclass
class SynthesisRequest:
    text: str
    language: Language
    payload: Optional[SpeechPayload] = None
    request_id: int = 0


@dataclass
class AudioResource:
    data: bytes
    url: str
    content_type: str = ""
    metadata: dict = field(default_factory=dict)

    @property
    def suffix(self) -> str:
        if "wav" in self.content_type or self.url.lower().endswith(".wav"):
            return ".wav"
        if "ogg" in self.content_type or self.url.lower().endswith(".ogg"):
            return ".ogg"
        return ".mp3"
