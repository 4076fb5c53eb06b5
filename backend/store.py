"""Deck and statistics store.

Converts between ORM rows and the plain ``DeckRecord``/``CardRecord``
contracts used by the session controllers, and keeps the global, daily and
per-deck totals. ``StoreRecorder`` bridges the synchronous controller
callbacks to this async store.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.config import settings, utcnow
from backend.models.card import Card
from backend.models.deck import Deck
from backend.models.session_log import SessionLog
from backend.models.stats import DailyStats, GlobalStats
from backend.srs.records import CardRecord, DeckRecord, new_card_id
from ingestion.phrase_text import apply_batch_edit, cards_from_text, export_phrase_text

logger = logging.getLogger(__name__)

GLOBAL_STATS_ID = 1


class DeckNotFoundError(LookupError):
    def __init__(self, deck_id: str) -> None:
        super().__init__(f"Deck {deck_id} not found")
        self.deck_id = deck_id


class CardNotFoundError(LookupError):
    def __init__(self, deck_id: str, card_id: str) -> None:
        super().__init__(f"Card {card_id} not found in deck {deck_id}")
        self.deck_id = deck_id
        self.card_id = card_id


def stats_day(now: datetime | None = None) -> str:
    """Return the YYYY-MM-DD day of a naive UTC time in the stats timezone."""
    now = now or utcnow()
    local = now.replace(tzinfo=UTC).astimezone(ZoneInfo(settings.stats_timezone))
    return local.date().isoformat()


def card_to_record(card: Card) -> CardRecord:
    return CardRecord(
        id=card.id,
        english=card.english,
        chinese=card.chinese,
        note=card.note or "",
        consecutive_correct=card.consecutive_correct,
        consecutive_wrong=card.consecutive_wrong,
        total_reviews=card.total_reviews,
        last_reviewed_at=card.last_reviewed_at,
    )


def _apply_record(card: Card, record: CardRecord) -> None:
    card.english = record.english
    card.chinese = record.chinese
    card.note = record.note
    card.consecutive_correct = record.consecutive_correct
    card.consecutive_wrong = record.consecutive_wrong
    card.total_reviews = record.total_reviews
    card.last_reviewed_at = record.last_reviewed_at


def _new_deck_row(deck_id: str, name: str, cards: list[CardRecord], queue: list[str]) -> Deck:
    row = Deck(id=deck_id, name=name, queue=json.dumps(queue))
    for record in cards:
        card = Card(id=record.id, deck_id=deck_id)
        _apply_record(card, record)
        row.cards.append(card)
    return row


@dataclass
class DeckOverview:
    """Summary row for deck listings."""

    id: str
    name: str
    card_count: int
    queue_length: int
    total_study_time_seconds: int
    total_review_count: int


@dataclass
class GlobalTotals:
    total_review_count: int
    total_study_time_seconds: int
    total_cards: int


@dataclass
class DailyReport:
    """Today's numbers plus the sessions logged on that day."""

    day: str
    review_count: int = 0
    correct_count: int = 0
    wrong_count: int = 0
    study_time_seconds: int = 0
    reviewed_card_ids: list[str] = field(default_factory=list)
    activities: list[SessionLog] = field(default_factory=list)

    @property
    def distinct_cards(self) -> int:
        return len(self.reviewed_card_ids)


class DeckStore:
    """Async repository for decks, cards and study statistics."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # --- Decks ---

    async def create_deck(self, name: str, cards: list[CardRecord], deck_id: str | None = None) -> DeckRecord:
        """Create a deck whose queue holds every card in the given order."""
        row = _new_deck_row(deck_id or new_card_id(), name, cards, [c.id for c in cards])
        self.session.add(row)
        await self.session.commit()
        logger.info("Created deck %s (%r) with %d cards", row.id, name, len(cards))
        return DeckRecord(id=row.id, name=name, cards=list(cards), queue=[c.id for c in cards])

    async def list_decks(self) -> list[DeckOverview]:
        stmt = select(Deck).options(selectinload(Deck.cards)).order_by(Deck.created_at.asc())
        rows = (await self.session.execute(stmt)).scalars().all()
        return [
            DeckOverview(
                id=row.id,
                name=row.name,
                card_count=len(row.cards),
                queue_length=len(json.loads(row.queue or "[]")),
                total_study_time_seconds=row.total_study_time_seconds,
                total_review_count=row.total_review_count,
            )
            for row in rows
        ]

    async def get_deck(self, deck_id: str) -> DeckRecord:
        """Load a deck, dropping queue entries that no longer resolve.

        Raises:
            DeckNotFoundError: If no such deck exists.
        """
        row = await self._get_row(deck_id)
        record = DeckRecord(
            id=row.id,
            name=row.name,
            cards=[card_to_record(card) for card in row.cards],
            queue=json.loads(row.queue or "[]"),
        )
        clean = record.resolvable_queue()
        if len(clean) != len(record.queue):
            logger.warning(
                "Deck %s queue had %d stale or duplicate ids; dropped",
                deck_id,
                len(record.queue) - len(clean),
            )
            record.queue = clean
        return record

    async def save_deck(self, record: DeckRecord) -> None:
        """Replace the stored cards and queue with the record's."""
        row = await self._get_row(record.id)
        existing = {card.id: card for card in row.cards}
        cards = []
        for card_record in record.cards:
            card = existing.get(card_record.id) or Card(id=card_record.id, deck_id=row.id)
            _apply_record(card, card_record)
            cards.append(card)
        row.cards = cards
        row.name = record.name
        row.queue = json.dumps(record.resolvable_queue())
        await self.session.commit()

    async def delete_deck(self, deck_id: str) -> None:
        await self._get_row(deck_id)
        await self.session.execute(delete(SessionLog).where(SessionLog.deck_id == deck_id))
        await self.session.execute(delete(Card).where(Card.deck_id == deck_id))
        await self.session.execute(delete(Deck).where(Deck.id == deck_id))
        await self.session.commit()
        logger.info("Deleted deck %s", deck_id)

    async def rename_deck(self, deck_id: str, name: str) -> None:
        row = await self._get_row(deck_id)
        row.name = name
        await self.session.commit()

    async def merge_decks(self, source_id: str, target_id: str) -> DeckRecord:
        """Copy every card of the source deck into the target deck.

        Copies get new ids and fresh counters and are appended to the
        target's queue. The source deck is left untouched.
        """
        source = await self.get_deck(source_id)
        target = await self.get_deck(target_id)
        copies = [
            CardRecord(id=new_card_id(), english=card.english, chinese=card.chinese, note=card.note)
            for card in source.cards
        ]
        target.cards.extend(copies)
        target.queue.extend(card.id for card in copies)
        await self.save_deck(target)
        logger.info("Merged %d cards from deck %s into %s", len(copies), source_id, target_id)
        return target

    # --- Cards ---

    async def add_card(self, deck_id: str, english: str, chinese: str, note: str = "") -> CardRecord:
        """Add a new card and put it at the front of the deck's queue."""
        deck = await self.get_deck(deck_id)
        card = CardRecord.create(english, chinese, note)
        deck.cards.insert(0, card)
        deck.queue.insert(0, card.id)
        await self.save_deck(deck)
        logger.info("Added card %s to deck %s", card.id, deck_id)
        return card

    async def update_card(
        self,
        deck_id: str,
        card_id: str,
        english: str | None = None,
        chinese: str | None = None,
        note: str | None = None,
    ) -> CardRecord:
        """Change a card's text; counters and queue position are kept."""
        deck = await self.get_deck(deck_id)
        card = deck.find(card_id)
        if card is None:
            raise CardNotFoundError(deck_id, card_id)
        if english is not None:
            card.english = english
        if chinese is not None:
            card.chinese = chinese
        if note is not None:
            card.note = note
        await self.save_deck(deck)
        return card

    async def delete_card(self, deck_id: str, card_id: str) -> None:
        """Delete a card and drop it from the deck's queue."""
        deck = await self.get_deck(deck_id)
        if not deck.remove_card(card_id):
            raise CardNotFoundError(deck_id, card_id)
        await self.save_deck(deck)
        logger.info("Deleted card %s from deck %s", card_id, deck_id)

    # --- Bulk text ---

    async def import_text(self, name: str, text: str) -> DeckRecord:
        """Create a deck from pipe-delimited bulk text."""
        return await self.create_deck(name, cards_from_text(text))

    async def export_text(self, deck_id: str) -> str:
        return export_phrase_text(await self.get_deck(deck_id))

    async def batch_edit(self, deck_id: str, text: str) -> DeckRecord:
        """Rewrite a deck from bulk text, keeping matching cards' ids."""
        updated = apply_batch_edit(await self.get_deck(deck_id), text)
        await self.save_deck(updated)
        return updated

    # --- Statistics ---

    async def record_review(
        self, deck_id: str, card_id: str, is_correct: bool, now: datetime | None = None
    ) -> None:
        """Count one answer in the global, daily and deck totals."""
        row = await self._get_row(deck_id)
        totals = await self._global_row()
        daily = await self._daily_row(stats_day(now))

        totals.total_review_count += 1
        row.total_review_count += 1
        daily.review_count += 1
        if is_correct:
            daily.correct_count += 1
        else:
            daily.wrong_count += 1
        reviewed = json.loads(daily.reviewed_card_ids or "[]")
        if card_id not in reviewed:
            reviewed.append(card_id)
            daily.reviewed_card_ids = json.dumps(reviewed)
        await self.session.commit()

    async def add_study_time(self, deck_id: str, seconds: int, now: datetime | None = None) -> None:
        row = await self._get_row(deck_id)
        totals = await self._global_row()
        daily = await self._daily_row(stats_day(now))

        totals.total_study_time_seconds += seconds
        row.total_study_time_seconds += seconds
        daily.study_time_seconds += seconds
        await self.session.commit()

    async def log_session(
        self,
        deck_id: str,
        mode: str,
        duration_seconds: int,
        correct_count: int,
        wrong_count: int,
        now: datetime | None = None,
    ) -> SessionLog:
        """Append an entry to the deck's session history."""
        now = now or utcnow()
        row = await self._get_row(deck_id)
        log = SessionLog(
            deck_id=deck_id,
            deck_name=row.name,
            mode=mode,
            day=stats_day(now),
            duration_seconds=duration_seconds,
            review_count=correct_count + wrong_count,
            correct_count=correct_count,
            wrong_count=wrong_count,
            logged_at=now,
        )
        self.session.add(log)
        await self.session.commit()
        logger.info(
            "Logged %s session on deck %s: %d reviews in %ds",
            mode,
            deck_id,
            log.review_count,
            duration_seconds,
        )
        return log

    async def session_history(self, deck_id: str) -> list[SessionLog]:
        await self._get_row(deck_id)
        stmt = (
            select(SessionLog)
            .where(SessionLog.deck_id == deck_id)
            .order_by(SessionLog.logged_at.desc(), SessionLog.id.desc())
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def global_stats(self) -> GlobalTotals:
        totals = await self._global_row()
        total_cards = (await self.session.execute(select(func.count(Card.id)))).scalar() or 0
        return GlobalTotals(
            total_review_count=totals.total_review_count,
            total_study_time_seconds=totals.total_study_time_seconds,
            total_cards=total_cards,
        )

    async def daily_stats(self, day: str | None = None) -> DailyReport:
        """Return the numbers for a day (today by default)."""
        day = day or stats_day()
        row = await self.session.get(DailyStats, day)
        stmt = (
            select(SessionLog)
            .where(SessionLog.day == day)
            .order_by(SessionLog.logged_at.asc(), SessionLog.id.asc())
        )
        activities = list((await self.session.execute(stmt)).scalars().all())
        if row is None:
            return DailyReport(day=day, activities=activities)
        return DailyReport(
            day=day,
            review_count=row.review_count,
            correct_count=row.correct_count,
            wrong_count=row.wrong_count,
            study_time_seconds=row.study_time_seconds,
            reviewed_card_ids=json.loads(row.reviewed_card_ids or "[]"),
            activities=activities,
        )

    async def replace_all(
        self,
        decks: list[DeckRecord],
        deck_totals: dict[str, tuple[int, int]],
        total_review_count: int,
        total_study_time_seconds: int,
        daily: DailyReport | None = None,
    ) -> None:
        """Swap every deck and statistic for the given ones in one transaction.

        Args:
            decks: Decks to store; card ids must be unique across all of them.
            deck_totals: ``deck_id -> (study seconds, review count)``.
            total_review_count: Lifetime review count.
            total_study_time_seconds: Lifetime study time.
            daily: One day's numbers to restore, if any.

        Raises:
            SQLAlchemyError: If any row cannot be written. The transaction is
                rolled back, so the previous contents stay in place.
        """
        try:
            await self._clear()
            for record in decks:
                row = _new_deck_row(record.id, record.name, record.cards, record.resolvable_queue())
                row.total_study_time_seconds, row.total_review_count = deck_totals.get(record.id, (0, 0))
                self.session.add(row)
            await self.session.flush()

            totals = await self._global_row()
            totals.total_review_count = total_review_count
            totals.total_study_time_seconds = total_study_time_seconds
            if daily is not None:
                row = await self._daily_row(daily.day)
                row.review_count = daily.review_count
                row.correct_count = daily.correct_count
                row.wrong_count = daily.wrong_count
                row.study_time_seconds = daily.study_time_seconds
                row.reviewed_card_ids = json.dumps(daily.reviewed_card_ids)
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def reset(self) -> None:
        """Remove every deck and statistic."""
        await self._clear()
        await self.session.commit()

    async def _clear(self) -> None:
        for model in (SessionLog, Card, Deck, DailyStats, GlobalStats):
            await self.session.execute(delete(model))

    async def _get_row(self, deck_id: str) -> Deck:
        stmt = select(Deck).where(Deck.id == deck_id).options(selectinload(Deck.cards))
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise DeckNotFoundError(deck_id)
        return row

    async def _global_row(self) -> GlobalStats:
        row = await self.session.get(GlobalStats, GLOBAL_STATS_ID)
        if row is None:
            row = GlobalStats(id=GLOBAL_STATS_ID, total_review_count=0, total_study_time_seconds=0)
            self.session.add(row)
        return row

    async def _daily_row(self, day: str) -> DailyStats:
        row = await self.session.get(DailyStats, day)
        if row is None:
            row = DailyStats(
                day=day,
                review_count=0,
                correct_count=0,
                wrong_count=0,
                study_time_seconds=0,
                reviewed_card_ids="[]",
            )
            self.session.add(row)
        return row


@dataclass
class StoreRecorder:
    """Collects session callbacks and replays them into a ``DeckStore``.

    Controllers call the ``on_*`` methods synchronously; the owner awaits
    ``flush`` after each controller action. Events are applied in the order
    they were emitted.
    """

    deck_id: str
    mode: str = "STUDY"
    pending: list[tuple[str, tuple]] = field(default_factory=list)

    def on_review(self, card_id: str, is_correct: bool) -> None:
        self.pending.append(("review", (card_id, is_correct)))

    def on_time_update(self, delta_seconds: int) -> None:
        self.pending.append(("time", (delta_seconds,)))

    def on_update_deck(self, deck: DeckRecord) -> None:
        self.pending.append(("deck", (deck,)))

    def on_session_complete(self, duration_seconds: int, correct_count: int, wrong_count: int) -> None:
        self.pending.append(("complete", (duration_seconds, correct_count, wrong_count)))

    async def flush(self, store: DeckStore) -> int:
        """Apply pending events to the store. Returns how many were applied.

        An event leaves the queue only once the store accepted it; if a call
        raises, that event and everything after it stay pending.
        """
        applied = 0
        while self.pending:
            kind, args = self.pending[0]
            if kind == "review":
                await store.record_review(self.deck_id, *args)
            elif kind == "time":
                await store.add_study_time(self.deck_id, *args)
            elif kind == "deck":
                await store.save_deck(*args)
            elif kind == "complete":
                await store.log_session(self.deck_id, self.mode, *args)
            self.pending.pop(0)
            applied += 1
        if applied:
            logger.debug("Flushed %d session events for deck %s", applied, self.deck_id)
        return applied
