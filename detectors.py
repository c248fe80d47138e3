"""Resolve the configured visual detector from a ``module:attribute`` path."""

from __future__ import annotations

import importlib
import logging
from queue import Queue
from typing import Any, Optional

from errors import DetectorInitFailed
from interfaces import SignDetector
from models import CameraFrame, DetectorEvent

logger = logging.getLogger(__name__)


class UnconfiguredDetector:
    """Placeholder used when no detector path is configured.

    Capture fails at ``initialize()`` with a message telling the user what
    to configure; everything else is inert.
    """

    def __init__(self, reason: str = "No detector configured") -> None:
        self.reason = reason

    def initialize(self) -> None:
        raise DetectorInitFailed(f"{self.reason}. Set 'detector' to a module:attribute path.")

    def is_ready(self) -> bool:
        return False

    def attach(self, channel: "Queue[Optional[DetectorEvent]]") -> None:
        pass

    def detach(self) -> None:
        pass

    def process_frame(self, frame: CameraFrame) -> None:
        pass

    def clear_buffer(self) -> None:
        pass

    def get_buffer_size(self) -> int:
        return 0

    def dispose(self) -> None:
        pass


def load_detector(path: str) -> SignDetector:
    """Import ``module:attribute`` and call it to build the detector.

    The attribute may be a class or any zero-argument factory. Import and
    construction errors are deferred to capture start through an
    ``UnconfiguredDetector`` carrying the reason.
    """
    path = (path or "").strip()
    if not path:
        return UnconfiguredDetector()

    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        logger.error(f"Invalid detector path: '{path}'")
        return UnconfiguredDetector(f"Invalid detector path '{path}'")

    try:
        module = importlib.import_module(module_name)
        factory: Any = module
        for part in attr.split("."):
            factory = getattr(factory, part)
        detector = factory()
    except Exception as exc:
        logger.error(f"Loading detector '{path}' failed: {exc}")
        return UnconfiguredDetector(f"Detector '{path}' could not be loaded ({exc})")

    logger.info(f"Detector loaded: {path}")
    return detector
