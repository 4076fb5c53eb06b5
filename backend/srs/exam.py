"""Exam session controller.

An exam is a fixed random sample of a deck's cards answered in a single
linear pass. Answers update the card counters exactly like study mode but
never touch the study queue.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from backend.config import utcnow
from backend.srs.events import InvalidTransitionError, SessionEvents
from backend.srs.records import CardRecord, DeckRecord
from backend.srs.scheduler import update_counters

logger = logging.getLogger(__name__)


class ExamStep(Enum):
    QUESTION = "QUESTION"
    REVEAL = "REVEAL"
    FINISHED = "FINISHED"


@dataclass
class ExamAnswer:
    card_id: str
    is_correct: bool


@dataclass
class ExamSummary:
    """Outcome of an exam, counting only the cards actually answered."""

    score: int
    answered: int
    total: int
    duration_seconds: int
    answers: list[ExamAnswer] = field(default_factory=list)

    @property
    def wrong(self) -> int:
        return self.answered - self.score

    @property
    def completed(self) -> bool:
        return self.answered == self.total


def sample_cards(cards: list[CardRecord], count: int, rng: random.Random) -> list[CardRecord]:
    """Pick ``count`` distinct cards in random order, clamped to what exists."""
    count = max(0, min(count, len(cards)))
    return rng.sample(cards, count)


@dataclass
class ExamSession:
    """A fixed-length exam over a deck."""

    deck: DeckRecord
    events: SessionEvents
    requested_count: int
    rng: random.Random = field(default_factory=random.Random)
    clock: Callable[[], datetime] = utcnow
    step: ExamStep = field(default=ExamStep.QUESTION, init=False)
    duration_seconds: int = field(default=0, init=False)
    answers: list[ExamAnswer] = field(default_factory=list, init=False)
    _questions: list[str] = field(default_factory=list, init=False)
    _index: int = field(default=0, init=False)
    _closed: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        """Sample the questions; their order is fixed for the whole exam."""
        if self.requested_count > len(self.deck.cards):
            logger.info(
                "Exam asked for %d cards but deck %s has %d; clamping",
                self.requested_count,
                self.deck.id,
                len(self.deck.cards),
            )
        picked = sample_cards(self.deck.cards, self.requested_count, self.rng)
        self._questions = [card.id for card in picked]
        if not self._questions:
            self.step = ExamStep.FINISHED

    @property
    def questions(self) -> list[str]:
        return list(self._questions)

    @property
    def total(self) -> int:
        return len(self._questions)

    @property
    def index(self) -> int:
        return self._index

    @property
    def score(self) -> int:
        return sum(1 for answer in self.answers if answer.is_correct)

    @property
    def is_finished(self) -> bool:
        return self.step is ExamStep.FINISHED

    @property
    def current_card(self) -> CardRecord | None:
        if self.is_finished:
            return None
        return self.deck.find(self._questions[self._index])

    def reveal(self) -> CardRecord:
        self._require("reveal", ExamStep.QUESTION)
        self.step = ExamStep.REVEAL
        card = self.current_card
        assert card is not None
        return card

    def verdict(self, is_correct: bool) -> CardRecord | None:
        """Record an answer and move to the next question.

        Returns the next card, or None when the exam is finished.
        """
        self._require("give a verdict", ExamStep.REVEAL)
        card = self.current_card
        assert card is not None

        card.apply_state(update_counters(card.state, is_correct, self.clock()))
        self.answers.append(ExamAnswer(card_id=card.id, is_correct=is_correct))
        self.events.on_review(card.id, is_correct)
        self.events.on_update_deck(self.deck.copy())

        if self._index < len(self._questions) - 1:
            self._index += 1
            self.step = ExamStep.QUESTION
        else:
            self.step = ExamStep.FINISHED
        return self.current_card

    def tick(self, seconds: int = 1) -> None:
        """Account elapsed time; the clock stops once the exam is finished."""
        if self._closed or self.is_finished:
            return
        self.duration_seconds += seconds
        self.events.on_time_update(seconds)

    def summary(self) -> ExamSummary:
        return ExamSummary(
            score=self.score,
            answered=len(self.answers),
            total=self.total,
            duration_seconds=self.duration_seconds,
            answers=list(self.answers),
        )

    def exit(self) -> ExamSummary:
        """Finish or abandon the exam, reporting the answered cards once.

        An exam left without a single answer is not reported.
        """
        summary = self.summary()
        if not self._closed:
            self._closed = True
            if summary.answered > 0:
                self.events.on_session_complete(summary.duration_seconds, summary.score, summary.wrong)
            logger.info(
                "Ended exam on deck %s: %d/%d correct (%d of %d answered)",
                self.deck.id,
                summary.score,
                summary.answered,
                summary.answered,
                summary.total,
            )
        return summary

    def _require(self, action: str, *allowed: ExamStep) -> None:
        if self._closed:
            raise InvalidTransitionError(action, "closed")
        if self.step not in allowed:
            raise InvalidTransitionError(action, self.step.value)
