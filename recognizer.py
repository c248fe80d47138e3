"""Dictation recognizer backed by DashScope qwen3-asr-flash.

One call handles one utterance: PCM frames are collected from the queue
until the microphone's sentinel arrives, wrapped as a WAV payload, and sent
with ``stream=True``. Partial transcripts are forwarded as they arrive and
the last one is reported as FINAL. An utterance with no audio finishes with
an empty FINAL, which the dictation bridge treats as "no speech".
"""

from __future__ import annotations

import base64
import io
import logging
import os
import threading
import wave
from queue import Empty, Queue
from typing import Callable, Optional

from errors import ASR_PROTOCOL_ERROR, AUTH_FAILED, NETWORK_ERROR
from models import AudioFrame, Language, RecognitionEvent, RecognitionKind

logger = logging.getLogger(__name__)

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore


def pcm_to_wav_base64(pcm: bytes, sample_rate: int = 16000, channels: int = 1) -> str:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def extract_chunk_text(chunk: object) -> str:
    """Pull the transcript out of a streaming chunk, or ``""``."""
    if not isinstance(chunk, dict):
        return ""
    choices = chunk.get("output", {}).get("choices", [])
    if not choices:
        return ""
    content = choices[0].get("message", {}).get("content", [])
    if not content or not isinstance(content[0], dict):
        return ""
    return str(content[0].get("text", ""))


def _language_hint(language: Optional[Language | str]) -> Optional[str]:
    if isinstance(language, Language):
        return language.value
    return language or None


def classify_error(exc: Exception) -> RecognitionEvent:
    message = str(exc)
    low = message.lower()
    if "401" in low or "auth" in low or "api key" in low:
        code, retryable = AUTH_FAILED, False
    elif "timeout" in low or "network" in low or "connection" in low:
        code, retryable = NETWORK_ERROR, True
    else:
        code, retryable = ASR_PROTOCOL_ERROR, True
    return RecognitionEvent(
        kind=RecognitionKind.ERROR.value,
        code=code,
        message=message,
        retryable=retryable,
    )


class DashscopeRecognizer:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen3-asr-flash",
        language: Optional[Language | str] = None,
        request_timeout_s: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._language = _language_hint(language)
        self._request_timeout_s = request_timeout_s
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def is_available(self) -> bool:
        return dashscope is not None and bool(self._api_key or os.getenv("DASHSCOPE_API_KEY", ""))

    @property
    def language(self) -> Optional[str]:
        return self._language

    def set_language(self, language: Optional[Language | str]) -> None:
        """Set the ASR language hint used from the next utterance on."""
        self._language = _language_hint(language)

    def start(
        self,
        audio_queue: Queue[AudioFrame | None],
        on_event: Callable[[RecognitionEvent], None],
    ) -> None:
        if self._thread and self._thread.is_alive() and not self._stop_event.is_set():
            return
        # A cancelled run may still be draining; it keeps its own event.
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._thread = threading.Thread(
            target=self._run, args=(audio_queue, on_event, stop_event), daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=0.5)

    def _run(
        self,
        audio_queue: Queue[AudioFrame | None],
        on_event: Callable[[RecognitionEvent], None],
        stop_event: threading.Event,
    ) -> None:
        pcm = bytearray()
        sample_rate = 16000
        channels = 1
        while not stop_event.is_set():
            try:
                frame = audio_queue.get(timeout=0.2)
            except Empty:
                continue
            if frame is None:  # Sentinel
                break
            pcm.extend(frame.pcm16_bytes)
            sample_rate = frame.sample_rate
            channels = frame.channels

        if stop_event.is_set():
            return
        if not pcm:
            on_event(RecognitionEvent(kind=RecognitionKind.FINAL.value, text=""))
            return
        logger.debug(f"Recognizing {len(pcm)} bytes of audio")
        self._recognize(pcm_to_wav_base64(bytes(pcm), sample_rate, channels), on_event, stop_event)

    def _recognize(
        self,
        wav_base64: str,
        on_event: Callable[[RecognitionEvent], None],
        stop_event: threading.Event,
    ) -> None:
        if dashscope is None:
            on_event(
                RecognitionEvent(
                    kind=RecognitionKind.ERROR.value,
                    code=ASR_PROTOCOL_ERROR,
                    message="dashscope is not installed",
                )
            )
            return

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            on_event(
                RecognitionEvent(
                    kind=RecognitionKind.ERROR.value,
                    code=AUTH_FAILED,
                    message="No API key configured",
                )
            )
            return

        asr_options = {"enable_itn": True}
        language = self._language
        if language:
            asr_options["language"] = language

        latest_text = ""
        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": wav_base64}]},
                ],
                result_format="message",
                asr_options=asr_options,
                stream=True,
                timeout=self._request_timeout_s,
            )
            for chunk in response:
                if stop_event.is_set():
                    return
                text = extract_chunk_text(chunk)
                if text:
                    latest_text = text
                    on_event(RecognitionEvent(kind=RecognitionKind.PARTIAL.value, text=text))
        except Exception as exc:
            logger.warning(f"Recognition failed: {exc}")
            on_event(classify_error(exc))
            return

        on_event(RecognitionEvent(kind=RecognitionKind.FINAL.value, text=latest_text))
