"""Plain data contracts shared by the scheduler and the session controllers.

The controllers never touch the ORM; the store converts between these
records and the database rows at its boundary.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime

from backend.srs.scheduler import CardState


def new_card_id() -> str:
    return str(uuid.uuid4())


@dataclass
class CardRecord:
    """One phrase pair plus its review counters."""

    id: str
    english: str
    chinese: str
    note: str = ""
    consecutive_correct: int = 0
    consecutive_wrong: int = 0
    total_reviews: int = 0
    last_reviewed_at: datetime | None = None

    @classmethod
    def create(cls, english: str, chinese: str, note: str = "") -> CardRecord:
        """Create a fresh, never-reviewed card with a new id."""
        return cls(id=new_card_id(), english=english, chinese=chinese, note=note)

    @property
    def state(self) -> CardState:
        return CardState(
            consecutive_correct=self.consecutive_correct,
            consecutive_wrong=self.consecutive_wrong,
            total_reviews=self.total_reviews,
            last_reviewed_at=self.last_reviewed_at,
        )

    def apply_state(self, state: CardState) -> None:
        """Copy scheduler output back onto the record."""
        self.consecutive_correct = state.consecutive_correct
        self.consecutive_wrong = state.consecutive_wrong
        self.total_reviews = state.total_reviews
        self.last_reviewed_at = state.last_reviewed_at

    @property
    def is_new(self) -> bool:
        return self.total_reviews == 0


@dataclass
class DeckRecord:
    """A deck: an unordered card collection and its study queue."""

    id: str
    name: str
    cards: list[CardRecord] = field(default_factory=list)
    queue: list[str] = field(default_factory=list)

    def find(self, card_id: str) -> CardRecord | None:
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    def card_ids(self) -> set[str]:
        return {card.id for card in self.cards}

    def resolvable_queue(self) -> list[str]:
        """Return the queue without duplicates and ids that have no card."""
        known = self.card_ids()
        seen: set[str] = set()
        result: list[str] = []
        for card_id in self.queue:
            if card_id in known and card_id not in seen:
                seen.add(card_id)
                result.append(card_id)
        return result

    def remove_card(self, card_id: str) -> bool:
        """Delete a card and every queue reference to it."""
        before = len(self.cards)
        self.cards = [card for card in self.cards if card.id != card_id]
        self.queue = [queued for queued in self.queue if queued != card_id]
        return len(self.cards) != before

    def copy(self) -> DeckRecord:
        """Return a deep enough copy to hand to an external store."""
        return DeckRecord(
            id=self.id,
            name=self.name,
            cards=[replace(card) for card in self.cards],
            queue=list(self.queue),
        )


# Streak buckets used by the deck overview, in display order.
STREAK_BUCKETS: list[tuple[str, int, int | None]] = [
    ("1", 1, 1),
    ("2", 2, 2),
    ("3", 3, 3),
    ("4-5", 4, 5),
    ("6-10", 6, 10),
    ("10+", 11, None),
]


def _bucket_label(count: int) -> str:
    for label, low, high in STREAK_BUCKETS:
        if count >= low and (high is None or count <= high):
            return label
    raise ValueError(f"No streak bucket for {count}")


def streak_distribution(cards: list[CardRecord]) -> dict[str, dict[str, int] | int]:
    """Count cards per streak bucket.

    Returns ``{"new": n, "wrong": {bucket: n}, "correct": {bucket: n}}``.
    Cards that were never reviewed count as new; otherwise the non-zero
    streak counter decides the bucket.
    """
    new = 0
    wrong: dict[str, int] = {}
    correct: dict[str, int] = {}
    for card in cards:
        if card.is_new:
            new += 1
        elif card.consecutive_wrong > 0:
            label = _bucket_label(card.consecutive_wrong)
            wrong[label] = wrong.get(label, 0) + 1
        elif card.consecutive_correct > 0:
            label = _bucket_label(card.consecutive_correct)
            correct[label] = correct.get(label, 0) + 1
        else:
            new += 1
    return {"new": new, "wrong": wrong, "correct": correct}
