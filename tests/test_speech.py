"""Tests for SpeechDispatcher and the HTTP speech backends."""

from __future__ import annotations

import threading
import time
from typing import List, Optional
from unittest.mock import MagicMock

import pytest
from requests import ConnectionError as RequestsConnectionError
from requests import HTTPError

from errors import ResourceFetchFailed, SynthesisBackendError
from models import AudioResource, Language, SynthesisRequest
from speech import HindiSpeechBackend, SpeechDispatcher, TamilSpeechBackend, create_backends


# ---------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------

class FakeLocalEngine:
    def __init__(self) -> None:
        self.spoken: List[str] = []
        self.stops = 0

    def speak_async(self, text: str) -> None:
        self.spoken.append(text)

    def stop(self) -> None:
        self.stops += 1


class FakePlayback:
    def __init__(self, player: "FakePlayer", resource: AudioResource) -> None:
        self.player = player
        self.resource = resource
        self.done = threading.Event()

    def wait(self) -> None:
        self.done.wait(timeout=2.0)
        self.player.active.discard(self)


class FakePlayer:
    def __init__(self) -> None:
        self.active: set = set()
        self.started: List[AudioResource] = []

    def start(self, resource: AudioResource) -> FakePlayback:
        self.stop()
        playback = FakePlayback(self, resource)
        self.active.add(playback)
        self.started.append(resource)
        return playback

    def stop(self) -> None:
        for playback in list(self.active):
            playback.done.set()
        self.active.clear()

    def finish_all(self) -> None:
        self.stop()


class FakeBackend:
    def __init__(
        self,
        language: Language,
        error: Optional[Exception] = None,
        gate: Optional[threading.Event] = None,
    ) -> None:
        self.language = language
        self.error = error
        self.gate = gate
        self.requests: List[SynthesisRequest] = []

    def build_request(self, text: str) -> SynthesisRequest:
        return SynthesisRequest(text=text, language=self.language)

    def synthesize(self, request: SynthesisRequest) -> AudioResource:
        self.requests.append(request)
        if self.gate is not None:
            self.gate.wait(timeout=2.0)
        if self.error is not None:
            raise self.error
        return AudioResource(data=b"ID3", url=f"http://tts/{request.text}.mp3")


def _wait_until(predicate, *, timeout: float = 2.0) -> None:  # noqa: ANN001
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return
        time.sleep(0.01)


def _response(status: int = 200, body: object = None, content: bytes = b"") -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.content = content
    response.headers = {"Content-Type": "audio/mpeg"}
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body if body is not None else {}
    if response.ok:
        response.raise_for_status.return_value = None
    else:
        response.raise_for_status.side_effect = HTTPError(f"{status} error")
    return response


# ---------------------------------------------------------------
# Dispatcher: local path
# ---------------------------------------------------------------

def test_default_language_uses_local_engine() -> None:
    local = FakeLocalEngine()
    player = FakePlayer()
    dispatcher = SpeechDispatcher(local, {}, player)

    result = dispatcher.speak("hello", Language.ENGLISH)

    assert result is None
    assert local.spoken == ["hello"]
    assert dispatcher.is_loading is False


def test_empty_text_is_rejected() -> None:
    dispatcher = SpeechDispatcher(FakeLocalEngine(), {}, FakePlayer())

    with pytest.raises(ValueError):
        dispatcher.speak("   ")


def test_speak_stops_previous_local_utterance() -> None:
    local = FakeLocalEngine()
    dispatcher = SpeechDispatcher(local, {}, FakePlayer())

    dispatcher.speak("one")
    dispatcher.speak("two")

    assert local.stops == 2
    assert local.spoken == ["one", "two"]


def test_language_without_backend_uses_local_engine() -> None:
    local = FakeLocalEngine()
    dispatcher = SpeechDispatcher(local, {}, FakePlayer())

    assert dispatcher.speak("vanakkam", Language.TAMIL) is None
    assert local.spoken == ["vanakkam"]


# ---------------------------------------------------------------
# Dispatcher: remote path
# ---------------------------------------------------------------

def test_remote_language_plays_fetched_audio() -> None:
    local = FakeLocalEngine()
    player = FakePlayer()
    backend = FakeBackend(Language.HINDI)
    loading: List[bool] = []
    dispatcher = SpeechDispatcher(local, {Language.HINDI: backend}, player, on_loading=loading.append)

    thread = dispatcher.speak("namaste", "hi")
    assert thread is not None
    assert dispatcher.is_loading is True

    _wait_until(lambda: len(player.started) == 1)
    player.finish_all()
    thread.join(timeout=2.0)

    assert player.started[0].url == "http://tts/namaste.mp3"
    assert local.spoken == []
    assert dispatcher.is_loading is False
    assert loading == [True, False]


def test_backend_failure_falls_back_to_local_with_original_text() -> None:
    local = FakeLocalEngine()
    player = FakePlayer()
    backend = FakeBackend(Language.TAMIL, error=SynthesisBackendError("success=false"))
    dispatcher = SpeechDispatcher(local, {Language.TAMIL: backend}, player)

    thread = dispatcher.speak("vanakkam", Language.TAMIL)
    thread.join(timeout=2.0)

    assert local.spoken == ["vanakkam"]
    assert player.started == []
    assert dispatcher.is_loading is False


def test_player_failure_falls_back_to_local() -> None:
    local = FakeLocalEngine()
    player = MagicMock()
    player.start.side_effect = RuntimeError("pygame is not installed")
    dispatcher = SpeechDispatcher(local, {Language.HINDI: FakeBackend(Language.HINDI)}, player)

    thread = dispatcher.speak("namaste", Language.HINDI)
    thread.join(timeout=2.0)

    assert local.spoken == ["namaste"]
    assert dispatcher.is_loading is False


def test_new_speak_leaves_exactly_one_audio_playing() -> None:
    local = FakeLocalEngine()
    player = FakePlayer()
    backends = {
        Language.HINDI: FakeBackend(Language.HINDI),
        Language.TAMIL: FakeBackend(Language.TAMIL),
    }
    dispatcher = SpeechDispatcher(local, backends, player)

    first = dispatcher.speak("first", Language.HINDI)
    _wait_until(lambda: len(player.started) == 1)
    second = dispatcher.speak("second", Language.TAMIL)
    _wait_until(lambda: len(player.started) == 2)

    first.join(timeout=2.0)
    assert len(player.active) == 1
    assert next(iter(player.active)).resource.url == "http://tts/second.mp3"

    player.finish_all()
    second.join(timeout=2.0)
    assert dispatcher.is_loading is False


def test_stale_remote_result_is_discarded() -> None:
    local = FakeLocalEngine()
    player = FakePlayer()
    gate = threading.Event()
    slow = FakeBackend(Language.HINDI, gate=gate)
    fast = FakeBackend(Language.TAMIL)
    dispatcher = SpeechDispatcher(local, {Language.HINDI: slow, Language.TAMIL: fast}, player)

    stale = dispatcher.speak("slow", Language.HINDI)
    _wait_until(lambda: len(slow.requests) == 1)
    current = dispatcher.speak("fast", Language.TAMIL)
    _wait_until(lambda: len(player.started) == 1)

    gate.set()
    stale.join(timeout=2.0)

    assert [r.url for r in player.started] == ["http://tts/fast.mp3"]
    assert dispatcher.is_loading is True

    player.finish_all()
    current.join(timeout=2.0)
    assert dispatcher.is_loading is False


def test_stale_failure_does_not_fall_back() -> None:
    local = FakeLocalEngine()
    gate = threading.Event()
    failing = FakeBackend(Language.HINDI, error=SynthesisBackendError("down"), gate=gate)
    dispatcher = SpeechDispatcher(local, {Language.HINDI: failing}, FakePlayer())

    stale = dispatcher.speak("old", Language.HINDI)
    _wait_until(lambda: len(failing.requests) == 1)
    dispatcher.speak("new", Language.ENGLISH)
    gate.set()
    stale.join(timeout=2.0)

    assert local.spoken == ["new"]


def test_cancel_stops_everything_and_clears_loading() -> None:
    local = FakeLocalEngine()
    player = FakePlayer()
    dispatcher = SpeechDispatcher(local, {Language.HINDI: FakeBackend(Language.HINDI)}, player)

    thread = dispatcher.speak("namaste", Language.HINDI)
    _wait_until(lambda: len(player.started) == 1)
    dispatcher.cancel()
    thread.join(timeout=2.0)

    assert player.active == set()
    assert dispatcher.is_loading is False


# ---------------------------------------------------------------
# HTTP backends
# ---------------------------------------------------------------

def test_payload_shapes_differ_per_language() -> None:
    hindi = HindiSpeechBackend("http://tts").build_request("namaste")
    tamil = TamilSpeechBackend("http://tts").build_request("vanakkam")

    assert hindi.payload.to_json() == {"text": "namaste", "language": "hi", "gender": "female"}
    assert tamil.payload.to_json() == {
        "input": {"text": "vanakkam"},
        "voice": {"language_code": "ta-IN"},
        "audio_config": {"format": "mp3"},
    }


def test_backend_resolves_relative_audio_url_and_fetches_bytes() -> None:
    session = MagicMock()
    session.post.return_value = _response(body={"success": True, "audio_url": "/static/audio/1.mp3"})
    session.get.return_value = _response(content=b"ID3data")
    backend = HindiSpeechBackend("http://tts.local:8000", session=session, timeout_s=5.0)

    resource = backend.synthesize(backend.build_request("namaste"))

    session.post.assert_called_once_with(
        "http://tts.local:8000/api/tts/hindi",
        json={"text": "namaste", "language": "hi", "gender": "female"},
        timeout=5.0,
    )
    session.get.assert_called_once_with("http://tts.local:8000/static/audio/1.mp3", timeout=5.0)
    assert resource.data == b"ID3data"
    assert resource.suffix == ".mp3"


def test_backend_non_success_status_carries_message() -> None:
    session = MagicMock()
    session.post.return_value = _response(status=503, body={"message": "model loading"})
    backend = TamilSpeechBackend("http://tts", session=session)

    with pytest.raises(SynthesisBackendError, match="model loading"):
        backend.synthesize(backend.build_request("vanakkam"))


def test_backend_success_false_is_an_error() -> None:
    session = MagicMock()
    session.post.return_value = _response(body={"success": False, "message": "unsupported text"})
    backend = HindiSpeechBackend("http://tts", session=session)

    with pytest.raises(SynthesisBackendError, match="unsupported text"):
        backend.synthesize(backend.build_request("namaste"))
    session.get.assert_not_called()


def test_backend_missing_audio_url_is_an_error() -> None:
    session = MagicMock()
    session.post.return_value = _response(body={"success": True})
    backend = HindiSpeechBackend("http://tts", session=session)

    with pytest.raises(SynthesisBackendError):
        backend.synthesize(backend.build_request("namaste"))


def test_backend_invalid_json_is_an_error() -> None:
    session = MagicMock()
    session.post.return_value = _response(body=ValueError("not json"))
    backend = HindiSpeechBackend("http://tts", session=session)

    with pytest.raises(SynthesisBackendError):
        backend.synthesize(backend.build_request("namaste"))


def test_backend_network_error_is_a_backend_error() -> None:
    session = MagicMock()
    session.post.side_effect = RequestsConnectionError("refused")
    backend = HindiSpeechBackend("http://tts", session=session)

    with pytest.raises(SynthesisBackendError, match="unreachable"):
        backend.synthesize(backend.build_request("namaste"))


def test_audio_download_failure_is_resource_fetch_failed() -> None:
    session = MagicMock()
    session.post.return_value = _response(body={"success": True, "audio_url": "audio/1.mp3"})
    session.get.return_value = _response(status=404)
    backend = TamilSpeechBackend("http://tts/", session=session)

    with pytest.raises(ResourceFetchFailed):
        backend.synthesize(backend.build_request("vanakkam"))
    session.get.assert_called_once_with("http://tts/audio/1.mp3", timeout=30.0)


def test_create_backends_keys_by_language() -> None:
    backends = create_backends("http://tts", session=MagicMock())

    assert set(backends) == {Language.HINDI, Language.TAMIL}
    assert backends[Language.HINDI].language == Language.HINDI
