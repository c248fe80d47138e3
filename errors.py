"""Shared error codes, user-facing messages and exceptions."""

from __future__ import annotations

DEVICE_UNAVAILABLE = "DEVICE_UNAVAILABLE"
DETECTOR_INIT_FAILED = "DETECTOR_INIT_FAILED"
DICTATION_UNSUPPORTED = "DICTATION_UNSUPPORTED"
MICROPHONE_PERMISSION_DENIED = "MICROPHONE_PERMISSION_DENIED"
NO_SPEECH_DETECTED = "NO_SPEECH_DETECTED"
SYNTHESIS_BACKEND_ERROR = "SYNTHESIS_BACKEND_ERROR"
REMOTE_LOOKUP_FAILED = "REMOTE_LOOKUP_FAILED"
RESOURCE_FETCH_FAILED = "RESOURCE_FETCH_FAILED"
NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"
ASR_PROTOCOL_ERROR = "ASR_PROTOCOL_ERROR"

ERROR_MESSAGES = {
    DEVICE_UNAVAILABLE: "Unable to access camera. Please check permissions.",
    DETECTOR_INIT_FAILED: "Sign detector failed to start.",
    DICTATION_UNSUPPORTED: "Speech input is not available on this system.",
    MICROPHONE_PERMISSION_DENIED: "Microphone access was denied.",
    NO_SPEECH_DETECTED: "No speech was detected, please try again.",
    SYNTHESIS_BACKEND_ERROR: "Speech service failed.",
    REMOTE_LOOKUP_FAILED: "Could not find a sign video for this text.",
    RESOURCE_FETCH_FAILED: "Could not download media.",
    NETWORK_ERROR: "Network failed, please retry.",
    AUTH_FAILED: "API key is invalid.",
    ASR_PROTOCOL_ERROR: "ASR response format is invalid.",
}


class TranslatorError(Exception):
    """Base error carrying a stable code and a human readable message."""

    code = ASR_PROTOCOL_ERROR

    def __init__(self, message: str = "", code: str | None = None) -> None:
        if code is not None:
            self.code = code
        self.message = message or ERROR_MESSAGES.get(self.code, self.code)
        super().__init__(self.message)


class DeviceUnavailable(TranslatorError):
    code = DEVICE_UNAVAILABLE


class DetectorInitFailed(TranslatorError):
    code = DETECTOR_INIT_FAILED


class DictationUnsupported(TranslatorError):
    code = DICTATION_UNSUPPORTED


class MicrophonePermissionDenied(TranslatorError):
    code = MICROPHONE_PERMISSION_DENIED


class NoSpeechDetected(TranslatorError):
    code = NO_SPEECH_DETECTED


class SynthesisBackendError(TranslatorError):
    code = SYNTHESIS_BACKEND_ERROR


class RemoteLookupFailed(TranslatorError):
    code = REMOTE_LOOKUP_FAILED


class ResourceFetchFailed(TranslatorError):
    code = RESOURCE_FETCH_FAILED
