"""Client for the remote text-to-sign video service."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urljoin

import requests
from requests import RequestException

from config import REQUEST_TIMEOUT_S
from errors import RemoteLookupFailed

logger = logging.getLogger(__name__)


class SignVideoClient:
    def __init__(
        self,
        url: str,
        session: Optional[requests.Session] = None,
        timeout_s: float = REQUEST_TIMEOUT_S,
    ) -> None:
        self.url = url
        self._session = session or requests.Session()
        self._timeout_s = timeout_s

    def lookup(self, text: str) -> str:
        """Return an absolute URL of the sign video for ``text``."""
        try:
            response = self._session.post(self.url, json={"text": text}, timeout=self._timeout_s)
        except RequestException as exc:
            raise RemoteLookupFailed(f"Sign service unreachable: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if not response.ok:
            detail = body.get("detail") or f"HTTP {response.status_code}"
            raise RemoteLookupFailed(str(detail))

        video_url = body.get("sign_video_url")
        if not video_url:
            raise RemoteLookupFailed(str(body.get("detail") or "No sign video returned"))
        resolved = urljoin(self.url, str(video_url))
        logger.info(f"Sign video for '{text}': {resolved}")
        return resolved
