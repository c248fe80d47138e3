"""Speech synthesis dispatch.

English is spoken by the local engine. Every other language goes through its
own HTTP backend, which answers with ``{"success", "audio_url", "message"}``;
the audio is then downloaded and played. The backends disagree on request
shape, so each one builds its own payload type.

Any failure on the remote path falls back to the local engine with the
original text. At most one utterance is audible at a time: each ``speak``
bumps a generation counter and silences whatever was playing, and a remote
result that arrives for an older generation is discarded.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Mapping, Optional
from urllib.parse import urljoin

import requests
from requests import RequestException

from config import REQUEST_TIMEOUT_S
from errors import ResourceFetchFailed, SynthesisBackendError
from interfaces import AudioPlayer, LocalSpeechEngine, RemoteSpeechBackend
from models import (
    DEFAULT_LANGUAGE,
    AudioResource,
    HindiSpeechPayload,
    Language,
    SpeechPayload,
    SynthesisRequest,
    TamilSpeechPayload,
)

logger = logging.getLogger(__name__)

LoadingCallback = Callable[[bool], None]


class HttpSpeechBackend:
    language: Language = DEFAULT_LANGUAGE
    endpoint = "/api/tts"

    def __init__(
        self,
        origin: str,
        endpoint: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout_s: float = REQUEST_TIMEOUT_S,
    ) -> None:
        self.origin = origin
        if endpoint is not None:
            self.endpoint = endpoint
        self._session = session or requests.Session()
        self._timeout_s = timeout_s

    def build_request(self, text: str) -> SynthesisRequest:
        return SynthesisRequest(text=text, language=self.language, payload=self.build_payload(text))

    def build_payload(self, text: str) -> SpeechPayload:
        raise NotImplementedError

    def synthesize(self, request: SynthesisRequest) -> AudioResource:
        url = urljoin(self.origin, self.endpoint)
        payload = request.payload if request.payload is not None else self.build_payload(request.text)
        try:
            response = self._session.post(url, json=payload.to_json(), timeout=self._timeout_s)
        except RequestException as exc:
            raise SynthesisBackendError(f"{self.language.value} backend unreachable: {exc}") from exc

        body = _json_body(response)
        if not response.ok:
            message = body.get("message") or body.get("detail") or f"HTTP {response.status_code}"
            raise SynthesisBackendError(str(message))
        if not body.get("success"):
            raise SynthesisBackendError(str(body.get("message") or "Synthesis was not successful"))
        audio_path = body.get("audio_url")
        if not audio_path:
            raise SynthesisBackendError("Response did not include an audio_url")

        audio_url = urljoin(self.origin, str(audio_path))
        try:
            audio = self._session.get(audio_url, timeout=self._timeout_s)
            audio.raise_for_status()
        except RequestException as exc:
            raise ResourceFetchFailed(f"Could not fetch {audio_url}: {exc}") from exc
        return AudioResource(
            data=audio.content,
            url=audio_url,
            content_type=audio.headers.get("Content-Type", ""),
        )


class HindiSpeechBackend(HttpSpeechBackend):
    language = Language.HINDI
    endpoint = "/api/tts/hindi"

    def build_payload(self, text: str) -> HindiSpeechPayload:
        return HindiSpeechPayload(text=text)


class TamilSpeechBackend(HttpSpeechBackend):
    language = Language.TAMIL
    endpoint = "/api/tts/tamil"

    def build_payload(self, text: str) -> TamilSpeechPayload:
        return TamilSpeechPayload(text=text)


def create_backends(
    origin: str,
    session: Optional[requests.Session] = None,
    timeout_s: float = REQUEST_TIMEOUT_S,
) -> dict:
    session = session or requests.Session()
    backends = [
        HindiSpeechBackend(origin, session=session, timeout_s=timeout_s),
        TamilSpeechBackend(origin, session=session, timeout_s=timeout_s),
    ]
    return {backend.language: backend for backend in backends}


def _json_body(response: requests.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class SpeechDispatcher:
    def __init__(
        self,
        local_engine: LocalSpeechEngine,
        backends: Mapping[Language, RemoteSpeechBackend],
        player: AudioPlayer,
        default_language: Language = DEFAULT_LANGUAGE,
        on_loading: Optional[LoadingCallback] = None,
    ) -> None:
        self._local_engine = local_engine
        self._backends = dict(backends)
        self._player = player
        self._default_language = default_language
        self._on_loading = on_loading

        self._lock = threading.Lock()
        self._generation = 0
        self._loading = False

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def languages(self) -> list:
        return [self._default_language, *self._backends.keys()]

    def speak(self, text: str, language: Language | str | None = None) -> Optional[threading.Thread]:
        """Start speaking ``text``.

        Returns the worker thread for remote languages, ``None`` when the
        local engine handled it.
        """
        if not text or not text.strip():
            raise ValueError("text must not be empty")
        language = Language(language) if language else self._default_language

        with self._lock:
            self._generation += 1
            generation = self._generation
            self._silence_locked()
            backend = self._backends.get(language)
            remote = language != self._default_language and backend is not None
            changed = self._loading != remote
            self._loading = remote
            if not remote:
                if language != self._default_language:
                    logger.warning(f"No speech backend for {language.value}, using local voice")
                self._speak_locally(text)
        if changed:
            self._notify_loading(remote)
        if not remote:
            return None

        thread = threading.Thread(
            target=self._speak_remote,
            args=(backend, text, generation),
            daemon=True,
        )
        thread.start()
        return thread

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
            self._silence_locked()
            changed = self._loading
            self._loading = False
        if changed:
            self._notify_loading(False)

    def _speak_remote(self, backend: RemoteSpeechBackend, text: str, generation: int) -> None:
        try:
            request = backend.build_request(text)
            request.request_id = generation
            resource = backend.synthesize(request)
            with self._lock:
                if generation != self._generation:
                    logger.debug(f"Discarding stale {backend.language.value} audio")
                    return
                playback = self._player.start(resource)
            playback.wait()
        except Exception as exc:
            logger.warning(f"{backend.language.value} synthesis failed, falling back to local voice: {exc}")
            with self._lock:
                if generation == self._generation:
                    self._speak_locally(text)
        finally:
            self._finish(generation)

    def _finish(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or not self._loading:
                return
            self._loading = False
        self._notify_loading(False)

    def _silence_locked(self) -> None:
        try:
            self._local_engine.stop()
        except Exception as exc:
            logger.warning(f"Stopping local speech failed: {exc}")
        try:
            self._player.stop()
        except Exception as exc:
            logger.warning(f"Stopping playback failed: {exc}")

    def _speak_locally(self, text: str) -> None:
        try:
            self._local_engine.speak_async(text)
        except Exception as exc:
            logger.error(f"Local speech failed: {exc}")

    def _notify_loading(self, loading: bool) -> None:
        if self._on_loading:
            self._on_loading(loading)
