"""Study session controller.

Drives one card at a time from a deck's queue. Each card moves through a
small state machine::

    HIDDEN --know--> VERIFYING --verdict--> REVIEWED --advance--> HIDDEN
    HIDDEN --dont_know--> MISSED --advance--> HIDDEN

Every answer runs the queue scheduler once and writes the deck back once.
When the queue is drained the session becomes EMPTY.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from backend.config import utcnow
from backend.srs.events import InvalidTransitionError, SessionEvents
from backend.srs.records import CardRecord, DeckRecord, streak_distribution
from backend.srs.scheduler import QueueScheduler, ReviewResult

logger = logging.getLogger(__name__)


class StudyState(Enum):
    HIDDEN = "HIDDEN"  # only the Chinese prompt is shown
    VERIFYING = "VERIFYING"  # learner claims to know it, both sides shown
    MISSED = "MISSED"  # learner did not know it, counted as wrong
    REVIEWED = "REVIEWED"  # explicit verdict given
    EMPTY = "EMPTY"  # nothing left to review


@dataclass
class AnswerFeedback:
    """What happened to the last answered card."""

    card_id: str
    is_correct: bool
    insert_offset: int


@dataclass
class SessionSummary:
    """Totals reported when a session ends."""

    duration_seconds: int
    correct: int
    wrong: int

    @property
    def reviewed(self) -> int:
        return self.correct + self.wrong

    @property
    def accuracy(self) -> float:
        return self.correct / self.reviewed if self.reviewed else 0.0


@dataclass
class StudySession:
    """A continuous study session over one deck."""

    deck: DeckRecord
    events: SessionEvents
    scheduler: QueueScheduler = field(default_factory=QueueScheduler)
    clock: Callable[[], datetime] = utcnow
    state: StudyState = field(default=StudyState.HIDDEN, init=False)
    duration_seconds: int = field(default=0, init=False)
    correct: int = field(default=0, init=False)
    wrong: int = field(default=0, init=False)
    last_feedback: AnswerFeedback | None = field(default=None, init=False)
    _queue: list[str] = field(default_factory=list, init=False)
    _current_id: str | None = field(default=None, init=False)
    _closed: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        """Take a working copy of the deck queue and show its head."""
        known = self.deck.card_ids()
        for card_id in self.deck.queue:
            if card_id not in known:
                logger.warning("Skipping queued id %s: no such card in deck %s", card_id, self.deck.id)
        self._queue = self.deck.resolvable_queue()
        self._show_head()
        logger.info(
            "Started study session on deck %s: %d cards queued",
            self.deck.id,
            len(self._queue),
        )

    @property
    def queue(self) -> list[str]:
        """The working queue, head first."""
        return list(self._queue)

    @property
    def current_card(self) -> CardRecord | None:
        """The card in view, or None when the session is empty."""
        if self._current_id is None:
            return None
        return self.deck.find(self._current_id)

    @property
    def is_empty(self) -> bool:
        return self.state is StudyState.EMPTY

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def remaining(self) -> int:
        return len(self._queue)

    def know(self) -> None:
        """Learner claims to know the card; reveal it for verification."""
        self._require("know", StudyState.HIDDEN)
        self.state = StudyState.VERIFYING

    def dont_know(self) -> ReviewResult:
        """Learner does not know the card; record it as a wrong answer."""
        self._require("mark unknown", StudyState.HIDDEN)
        result = self._answer(False)
        self.state = StudyState.MISSED
        return result

    def verdict(self, is_correct: bool) -> ReviewResult:
        """Record the learner's own verdict after the card was revealed."""
        self._require("give a verdict", StudyState.VERIFYING)
        result = self._answer(is_correct)
        self.state = StudyState.REVIEWED
        return result

    def advance(self) -> CardRecord | None:
        """Move on to the new head of the queue."""
        self._require("advance", StudyState.MISSED, StudyState.REVIEWED)
        self.last_feedback = None
        self._show_head()
        return self.current_card

    def tick(self, seconds: int = 1) -> None:
        """Account elapsed study time."""
        if self._closed:
            return
        self.duration_seconds += seconds
        self.events.on_time_update(seconds)

    def delete_card(self, card_id: str | None = None) -> None:
        """Delete a card from the deck and from both queues.

        Defaults to the card in view. Deleting the current card moves on to
        the next head.
        """
        self._require_open("delete")
        card_id = card_id or self._current_id
        if card_id is None:
            raise InvalidTransitionError("delete", self.state.value)
        if not self.deck.remove_card(card_id):
            raise KeyError(card_id)

        self._queue = [queued for queued in self._queue if queued != card_id]
        self.events.on_update_deck(self.deck.copy())
        logger.info("Deleted card %s from deck %s", card_id, self.deck.id)

        if card_id == self._current_id:
            self.last_feedback = None
            self._show_head()

    def edit_card(
        self,
        card_id: str | None = None,
        english: str | None = None,
        chinese: str | None = None,
        note: str | None = None,
    ) -> CardRecord:
        """Change a card's text. Counters and queue position are kept."""
        self._require_open("edit")
        card_id = card_id or self._current_id
        card = self.deck.find(card_id) if card_id else None
        if card is None:
            raise KeyError(card_id)
        if english is not None:
            card.english = english
        if chinese is not None:
            card.chinese = chinese
        if note is not None:
            card.note = note
        self.events.on_update_deck(self.deck.copy())
        return card

    def streak_distribution(self) -> dict[str, dict[str, int] | int]:
        return streak_distribution(self.deck.cards)

    def exit(self) -> SessionSummary:
        """End the session, reporting its totals once.

        The card in view, if unanswered, is simply dropped; every completed
        answer has already been written back.
        """
        summary = SessionSummary(
            duration_seconds=self.duration_seconds,
            correct=self.correct,
            wrong=self.wrong,
        )
        if not self._closed:
            self._closed = True
            self.events.on_session_complete(summary.duration_seconds, summary.correct, summary.wrong)
            logger.info(
                "Ended study session on deck %s: %d correct, %d wrong in %ds",
                self.deck.id,
                summary.correct,
                summary.wrong,
                summary.duration_seconds,
            )
        return summary

    def _answer(self, is_correct: bool) -> ReviewResult:
        card = self.current_card
        assert card is not None and self._queue[0] == card.id

        result = self.scheduler.review(self._queue, card.state, is_correct, self.clock())
        card.apply_state(result.new_state)
        self._queue = result.queue
        self.deck.queue = list(result.queue)

        if is_correct:
            self.correct += 1
        else:
            self.wrong += 1
        self.last_feedback = AnswerFeedback(
            card_id=card.id, is_correct=is_correct, insert_offset=result.insert_offset
        )
        logger.debug(
            "Card %s answered %s: moved back %d (asked %d)",
            card.id,
            "correctly" if is_correct else "wrongly",
            result.insert_offset,
            result.requested_offset,
        )

        self.events.on_review(card.id, is_correct)
        self.events.on_update_deck(self.deck.copy())
        return result

    def _show_head(self) -> None:
        while self._queue and self.deck.find(self._queue[0]) is None:
            logger.warning("Skipping queued id %s: no such card", self._queue.pop(0))
        if self._queue:
            self._current_id = self._queue[0]
            self.state = StudyState.HIDDEN
        else:
            self._current_id = None
            self.state = StudyState.EMPTY

    def _require_open(self, action: str) -> None:
        if self._closed:
            raise InvalidTransitionError(action, "closed")

    def _require(self, action: str, *allowed: StudyState) -> None:
        self._require_open(action)
        if self.state not in allowed:
            raise InvalidTransitionError(action, self.state.value)
