"""JSON backup export/import with versioned migration of older payloads.

Backups use the camelCase layout of the browser version of the app::

    {"version": 1, "timestamp": 1700000000000, "decks": [...], "stats": {...}}

Version 0 payloads are a bare list of decks (the old local-storage dump).
Missing optional fields are filled in by the models' defaults, so legacy
records are normalised once here and never reach the controllers half-built.
"""

import logging
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError

from backend.config import utcnow
from backend.srs.records import CardRecord, DeckRecord, new_card_id
from backend.store import DailyReport, DeckStore, stats_day

logger = logging.getLogger(__name__)

BACKUP_VERSION = 1


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PhraseBackup(_CamelModel):
    id: str
    english: str = ""
    chinese: str = ""
    note: str | None = None
    consecutive_correct: int = Field(0, alias="consecutiveCorrect")
    consecutive_wrong: int = Field(0, alias="consecutiveWrong")
    total_reviews: int = Field(0, alias="totalReviews")
    last_reviewed_at: int | None = Field(None, alias="lastReviewedAt")  # epoch millis


class DeckStatsBackup(_CamelModel):
    total_study_time_seconds: int = Field(0, alias="totalStudyTimeSeconds")
    total_review_count: int = Field(0, alias="totalReviewCount")


class DeckBackup(_CamelModel):
    id: str
    name: str = ""
    phrases: list[PhraseBackup] = Field(default_factory=list)
    queue: list[str] = Field(default_factory=list)
    stats: DeckStatsBackup = Field(default_factory=DeckStatsBackup)


class DailyStatsBackup(_CamelModel):
    date: str = ""
    review_count: int = Field(0, alias="reviewCount")
    correct_count: int = Field(0, alias="correctCount")
    wrong_count: int = Field(0, alias="wrongCount")
    reviewed_phrase_ids: list[str] = Field(default_factory=list, alias="reviewedPhraseIds")
    study_time_seconds: int = Field(0, alias="studyTimeSeconds")


class GlobalStatsBackup(_CamelModel):
    total_review_count: int = Field(0, alias="totalReviewCount")
    total_phrases_count: int = Field(0, alias="totalPhrasesCount")
    total_study_time_seconds: int = Field(0, alias="totalStudyTimeSeconds")
    daily: DailyStatsBackup = Field(default_factory=DailyStatsBackup)


class BackupData(_CamelModel):
    version: int = BACKUP_VERSION
    timestamp: int = 0
    decks: list[DeckBackup] = Field(default_factory=list)
    stats: GlobalStatsBackup = Field(default_factory=GlobalStatsBackup)


def _to_millis(value: datetime | None) -> int | None:
    if value is None:
        return None
    return int(value.replace(tzinfo=UTC).timestamp() * 1000)


def _from_millis(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, UTC).replace(tzinfo=None)


def _daily_report(daily: DailyStatsBackup) -> DailyReport:
    return DailyReport(
        day=daily.date,
        review_count=daily.review_count,
        correct_count=daily.correct_count,
        wrong_count=daily.wrong_count,
        study_time_seconds=daily.study_time_seconds,
        reviewed_card_ids=list(daily.reviewed_phrase_ids),
    )


def migrate_backup(raw: dict | list) -> BackupData:
    """Upgrade a backup payload of any known version to the current model.

    Raises:
        ValueError: If the payload is not a recognisable backup.
    """
    if isinstance(raw, list):
        logger.info("Migrating version 0 backup (%d decks)", len(raw))
        raw = {"version": BACKUP_VERSION, "decks": raw}
    if not isinstance(raw, dict) or not isinstance(raw.get("decks"), list):
        raise ValueError("Invalid backup format: expected a 'decks' list")
    version = raw.get("version", 0)
    if version > BACKUP_VERSION:
        raise ValueError(f"Backup version {version} is newer than supported {BACKUP_VERSION}")
    return BackupData.model_validate({**raw, "version": BACKUP_VERSION})


def deck_from_backup(deck: DeckBackup) -> DeckRecord:
    """Build a deck record, keeping only the first phrase for each id."""
    cards: list[CardRecord] = []
    seen: set[str] = set()
    for phrase in deck.phrases:
        if phrase.id in seen:
            logger.warning("Deck %s repeats phrase %s; keeping the first copy", deck.id, phrase.id)
            continue
        seen.add(phrase.id)
        cards.append(
            CardRecord(
                id=phrase.id,
                english=phrase.english,
                chinese=phrase.chinese,
                note=phrase.note or "",
                consecutive_correct=max(0, phrase.consecutive_correct),
                consecutive_wrong=max(0, phrase.consecutive_wrong),
                total_reviews=max(0, phrase.total_reviews),
                last_reviewed_at=_from_millis(phrase.last_reviewed_at),
            )
        )
    record = DeckRecord(id=deck.id, name=deck.name, cards=cards, queue=list(deck.queue))
    record.queue = record.resolvable_queue()
    return record


def _reassign_shared_ids(decks: list[DeckRecord]) -> None:
    """Give a card a fresh id when an earlier deck already uses its id."""
    seen: set[str] = set()
    for deck in decks:
        renamed: dict[str, str] = {}
        for card in deck.cards:
            if card.id in seen:
                new_id = new_card_id()
                renamed[card.id] = new_id
                card.id = new_id
            seen.add(card.id)
        if renamed:
            logger.warning("Deck %s shares %d phrase ids with other decks; re-keyed", deck.id, len(renamed))
            deck.queue = [renamed.get(card_id, card_id) for card_id in deck.queue]


async def export_backup(store: DeckStore) -> BackupData:
    """Snapshot every deck and the global statistics."""
    decks = []
    for overview in await store.list_decks():
        record = await store.get_deck(overview.id)
        decks.append(
            DeckBackup(
                id=record.id,
                name=record.name,
                phrases=[
                    PhraseBackup(
                        id=card.id,
                        english=card.english,
                        chinese=card.chinese,
                        note=card.note or None,
                        consecutive_correct=card.consecutive_correct,
                        consecutive_wrong=card.consecutive_wrong,
                        total_reviews=card.total_reviews,
                        last_reviewed_at=_to_millis(card.last_reviewed_at),
                    )
                    for card in record.cards
                ],
                queue=record.queue,
                stats=DeckStatsBackup(
                    total_study_time_seconds=overview.total_study_time_seconds,
                    total_review_count=overview.total_review_count,
                ),
            )
        )

    totals = await store.global_stats()
    daily = await store.daily_stats()
    return BackupData(
        timestamp=_to_millis(utcnow()) or 0,
        decks=decks,
        stats=GlobalStatsBackup(
            total_review_count=totals.total_review_count,
            total_phrases_count=totals.total_cards,
            total_study_time_seconds=totals.total_study_time_seconds,
            daily=DailyStatsBackup(
                date=daily.day,
                review_count=daily.review_count,
                correct_count=daily.correct_count,
                wrong_count=daily.wrong_count,
                reviewed_phrase_ids=daily.reviewed_card_ids,
                study_time_seconds=daily.study_time_seconds,
            ),
        ),
    )


async def import_backup(store: DeckStore, raw: dict | list) -> BackupData:
    """Replace all stored decks and statistics with a backup's contents.

    The backup is validated before anything is touched and written in a
    single transaction, so a failed restore leaves the current data intact.

    Raises:
        ValueError: If the payload is invalid or cannot be stored.
    """
    data = migrate_backup(raw)
    deck_ids = [deck.id for deck in data.decks]
    if len(set(deck_ids)) != len(deck_ids):
        raise ValueError("Invalid backup: deck ids are not unique")

    records = [deck_from_backup(deck) for deck in data.decks]
    _reassign_shared_ids(records)
    totals = {
        deck.id: (deck.stats.total_study_time_seconds, deck.stats.total_review_count)
        for deck in data.decks
    }

    # Daily numbers only carry over when they belong to today
    daily = data.stats.daily
    try:
        await store.replace_all(
            records,
            totals,
            total_review_count=data.stats.total_review_count,
            total_study_time_seconds=data.stats.total_study_time_seconds,
            daily=_daily_report(daily) if daily.date == stats_day() else None,
        )
    except SQLAlchemyError as e:
        raise ValueError(f"Backup could not be restored: {e}") from e
    logger.info("Restored backup with %d decks", len(data.decks))
    return data
