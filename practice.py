"""Practice drills scored against live predictions.

Fingerspelling walks the alphabet one letter at a time and moves up a level
after Z. Word drills pick a random word from ``BASIC_WORDS`` and spell it
letter by letter. A prediction counts when its confidence is above the
threshold and its label matches the current letter; the drill then waits
``advance_s`` before moving on so the held sign is not scored twice.

Stars, streak and the per-day counter are kept in the config store.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from config import CONFIDENCE_THRESHOLD, PRACTICE_ADVANCE_S
from interfaces import PracticeStatsStore
from models import PredictionEvent

logger = logging.getLogger(__name__)

ALPHABET = tuple("ABCDEFGHIJKLMNOPQRSTUVWXYZ")
BASIC_WORDS = ("HELLO", "WATER", "THANK", "YES", "NO", "PLEASE", "SORRY", "HELP")


class PracticeMode(str, Enum):
    FINGERSPELLING = "fingerspelling"
    WORDS = "words"


@dataclass
class PracticeStats:
    stars: int = 0
    streak: int = 0
    learned_today: int = 0
    last_date: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "PracticeStats":
        def _int(key: str) -> int:
            try:
                return max(0, int(data.get(key, 0)))
            except (TypeError, ValueError):
                return 0

        return cls(
            stars=_int("stars"),
            streak=_int("streak"),
            learned_today=_int("learned_today"),
            last_date=str(data.get("last_date", "") or ""),
        )

    def to_dict(self) -> dict:
        return {
            "stars": self.stars,
            "streak": self.streak,
            "learned_today": self.learned_today,
            "last_date": self.last_date,
        }


@dataclass(frozen=True)
class PracticeProgress:
    mode: PracticeMode
    target: str
    level: int
    index: int
    percent: float
    word: str = ""
    word_progress: Tuple[str, ...] = ()
    correct: bool = False
    stats: PracticeStats = field(default_factory=PracticeStats)


ProgressCallback = Callable[[PracticeProgress], None]


class PracticeSession:
    def __init__(
        self,
        mode: PracticeMode | str,
        store: Optional[PracticeStatsStore] = None,
        threshold: float = CONFIDENCE_THRESHOLD,
        words: Sequence[str] = BASIC_WORDS,
        rng: Optional[random.Random] = None,
        today: Optional[Callable[[], str]] = None,
        advance_s: float = PRACTICE_ADVANCE_S,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.mode = PracticeMode(mode)
        if self.mode == PracticeMode.WORDS and not any(w.strip() for w in words):
            raise ValueError("Word practice needs at least one word")
        self._store = store
        self._threshold = threshold
        self._words = tuple(w.strip().upper() for w in words if w.strip())
        self._rng = rng or random.Random()
        self._today = today or (lambda: date.today().isoformat())
        self._advance_s = advance_s
        self._on_progress = on_progress

        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._advance_id = 0
        self._correct = False
        self._active = True
        self._index = 0
        self._level = 1
        self._word = ""
        self._word_progress: list[str] = []
        if self.mode == PracticeMode.WORDS:
            self._pick_word()

        data = store.get_practice_stats() if store is not None else {}
        self._stats = PracticeStats.from_dict(data)
        if self._refresh_day():
            self._save_stats()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def target(self) -> str:
        if self.mode == PracticeMode.FINGERSPELLING:
            return ALPHABET[self._index]
        return self._word[self._index]

    @property
    def stats(self) -> PracticeStats:
        return PracticeStats(**self._stats.to_dict())

    @property
    def progress(self) -> PracticeProgress:
        with self._lock:
            total = len(ALPHABET) if self.mode == PracticeMode.FINGERSPELLING else len(self._word)
            return PracticeProgress(
                mode=self.mode,
                target=self.target,
                level=self._level,
                index=self._index,
                percent=self._index / total * 100,
                word=self._word,
                word_progress=tuple(self._word_progress),
                correct=self._correct,
                stats=self.stats,
            )

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def handle_prediction(self, prediction: Optional[PredictionEvent]) -> bool:
        """Score one prediction. Returns True when it completed the current letter."""
        if prediction is None or prediction.confidence <= self._threshold:
            return False
        with self._lock:
            if not self._active or self._correct:
                return False
            if prediction.label.strip().upper() != self.target:
                return False
            self._mark_correct()
            self._advance_id += 1
            advance_id = self._advance_id
            progress = self.progress

        self._notify(progress)
        if self._advance_s > 0:
            timer = threading.Timer(self._advance_s, self._advance_after_correct, args=(advance_id,))
            timer.daemon = True
            with self._lock:
                self._cancel_timer()
                self._timer = timer
            timer.start()
        else:
            self._advance_after_correct(advance_id)
        return True

    def next(self) -> PracticeProgress:
        """Skip to the next letter (or word) without scoring."""
        with self._lock:
            self._advance_id += 1
            self._cancel_timer()
            self._advance()
            progress = self.progress
        self._notify(progress)
        return progress

    def stop(self) -> None:
        with self._lock:
            self._active = False
            self._advance_id += 1
            self._cancel_timer()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _mark_correct(self) -> None:
        self._correct = True
        if self.mode == PracticeMode.WORDS:
            self._word_progress[self._index] = self._word[self._index]
        self._refresh_day()
        self._stats.stars += 1
        self._stats.streak += 1
        self._stats.learned_today += 1
        logger.info(f"Practice: '{self.target}' correct, {self._stats.stars} stars")
        self._save_stats()

    def _advance_after_correct(self, advance_id: int) -> None:
        with self._lock:
            if advance_id != self._advance_id or not self._active:
                return
            self._timer = None
            self._advance()
            progress = self.progress
        self._notify(progress)

    def _advance(self) -> None:
        self._correct = False
        if self.mode == PracticeMode.FINGERSPELLING:
            if self._index < len(ALPHABET) - 1:
                self._index += 1
            else:
                self._level += 1
                self._index = 0
                logger.info(f"Practice: alphabet complete, level {self._level}")
            return
        if self._index < len(self._word) - 1:
            self._index += 1
        else:
            logger.info(f"Practice: spelled {self._word}")
            self._pick_word()

    def _pick_word(self) -> None:
        self._word = self._rng.choice(self._words)
        self._word_progress = ["_"] * len(self._word)
        self._index = 0

    def _refresh_day(self) -> bool:
        """Start a new day's count when the date has changed."""
        today = self._today()
        if self._stats.last_date == today:
            return False
        self._stats.learned_today = 0
        self._stats.last_date = today
        return True

    def _save_stats(self) -> None:
        if self._store is None:
            return
        try:
            self._store.set_practice_stats(self._stats.to_dict())
        except OSError as exc:
            logger.warning(f"Saving practice stats failed: {exc}")

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify(self, progress: PracticeProgress) -> None:
        if self._on_progress:
            self._on_progress(progress)
