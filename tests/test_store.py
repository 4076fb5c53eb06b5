"""Tests for the deck/stats store and the session event recorder."""

import random
from datetime import datetime

import pytest

from backend.srs.exam import ExamSession
from backend.srs.records import CardRecord
from backend.srs.study import StudySession
from backend.store import CardNotFoundError, DeckNotFoundError, DeckStore, StoreRecorder, stats_day


def _cards(*words: str) -> list[CardRecord]:
    return [CardRecord.create(word, f"中{word}") for word in words]


class TestStatsDay:
    def test_day_follows_shanghai_time(self) -> None:
        assert stats_day(datetime(2026, 5, 1, 15, 59)) == "2026-05-01"
        assert stats_day(datetime(2026, 5, 1, 16, 0)) == "2026-05-02"


class TestDecks:
    @pytest.mark.asyncio
    async def test_create_and_load(self, db) -> None:
        store = DeckStore(db)
        cards = _cards("one", "two", "three")
        created = await store.create_deck("Numbers", cards)

        loaded = await store.get_deck(created.id)
        assert loaded.name == "Numbers"
        assert loaded.queue == [card.id for card in cards]
        assert {card.english for card in loaded.cards} == {"one", "two", "three"}

    @pytest.mark.asyncio
    async def test_missing_deck(self, db) -> None:
        with pytest.raises(DeckNotFoundError):
            await DeckStore(db).get_deck("nope")

    @pytest.mark.asyncio
    async def test_list_decks(self, db) -> None:
        store = DeckStore(db)
        await store.create_deck("First", _cards("a", "b"))
        await store.create_deck("Empty", [])
        overviews = {overview.name: overview for overview in await store.list_decks()}
        assert overviews["First"].card_count == 2
        assert overviews["First"].queue_length == 2
        assert overviews["Empty"].card_count == 0

    @pytest.mark.asyncio
    async def test_save_replaces_cards_and_queue(self, db) -> None:
        store = DeckStore(db)
        deck = await store.create_deck("Deck", _cards("a", "b", "c"))
        removed = deck.queue[0]
        deck.remove_card(removed)
        deck.cards[0].consecutive_correct = 5
        deck.queue.append("ghost")
        await store.save_deck(deck)

        loaded = await store.get_deck(deck.id)
        assert loaded.find(removed) is None
        assert loaded.find(deck.cards[0].id).consecutive_correct == 5
        assert "ghost" not in loaded.queue
        assert len(loaded.queue) == 2

    @pytest.mark.asyncio
    async def test_rename_and_delete(self, db) -> None:
        store = DeckStore(db)
        deck = await store.create_deck("Old", _cards("a"))
        await store.rename_deck(deck.id, "New")
        assert (await store.get_deck(deck.id)).name == "New"

        await store.log_session(deck.id, "STUDY", 10, 1, 0)
        await store.delete_deck(deck.id)
        with pytest.raises(DeckNotFoundError):
            await store.get_deck(deck.id)
        assert (await store.global_stats()).total_cards == 0

    @pytest.mark.asyncio
    async def test_merge_copies_fresh_cards(self, db) -> None:
        store = DeckStore(db)
        source_cards = _cards("x", "y")
        source_cards[0].consecutive_correct = 3
        source_cards[0].total_reviews = 3
        source = await store.create_deck("Source", source_cards)
        target = await store.create_deck("Target", _cards("a"))

        merged = await store.merge_decks(source.id, target.id)
        assert len(merged.cards) == 3
        assert len(merged.queue) == 3
        copies = [card for card in merged.cards if card.english in ("x", "y")]
        assert all(card.total_reviews == 0 for card in copies)
        assert not {card.id for card in copies} & source.card_ids()
        assert len((await store.get_deck(source.id)).cards) == 2

    @pytest.mark.asyncio
    async def test_text_import_export_and_batch_edit(self, db) -> None:
        store = DeckStore(db)
        deck = await store.import_text("Greetings", "hello | 你好\nbye | 再见 | | 2 | 0")
        assert [card.english for card in deck.cards] == ["bye", "hello"]

        text = await store.export_text(deck.id)
        assert text.splitlines()[0] == "bye | 再见 |  | 2 | 0"

        hello_id = deck.cards[1].id
        edited = await store.batch_edit(deck.id, "Hello | 您好\nthanks | 谢谢")
        loaded = await store.get_deck(deck.id)
        assert loaded.find(hello_id).chinese == "您好"
        assert len(loaded.cards) == 2
        assert loaded.queue == edited.queue


class TestCards:
    @pytest.mark.asyncio
    async def test_add_card_is_queued_first(self, db) -> None:
        store = DeckStore(db)
        deck = await store.create_deck("Deck", _cards("a", "b"))
        card = await store.add_card(deck.id, "new", "新", "fresh")

        loaded = await store.get_deck(deck.id)
        assert loaded.queue == [card.id, *deck.queue]
        assert loaded.find(card.id).note == "fresh"
        assert loaded.find(card.id).is_new

    @pytest.mark.asyncio
    async def test_update_card_text_only(self, db) -> None:
        store = DeckStore(db)
        cards = _cards("a", "b")
        cards[1].consecutive_wrong = 2
        cards[1].total_reviews = 2
        deck = await store.create_deck("Deck", cards)
        await store.update_card(deck.id, cards[1].id, chinese="乙")

        loaded = await store.get_deck(deck.id)
        updated = loaded.find(cards[1].id)
        assert updated.chinese == "乙"
        assert updated.english == "b"
        assert updated.consecutive_wrong == 2
        assert loaded.queue == deck.queue

    @pytest.mark.asyncio
    async def test_delete_card_removes_queue_entry(self, db) -> None:
        store = DeckStore(db)
        deck = await store.create_deck("Deck", _cards("a", "b", "c"))
        doomed = deck.queue[1]
        await store.delete_card(deck.id, doomed)

        loaded = await store.get_deck(deck.id)
        assert loaded.find(doomed) is None
        assert loaded.queue == [deck.queue[0], deck.queue[2]]
        assert (await store.global_stats()).total_cards == 2

    @pytest.mark.asyncio
    async def test_unknown_card(self, db) -> None:
        store = DeckStore(db)
        deck = await store.create_deck("Deck", _cards("a"))
        with pytest.raises(CardNotFoundError):
            await store.update_card(deck.id, "nope", english="x")
        with pytest.raises(CardNotFoundError):
            await store.delete_card(deck.id, "nope")
        with pytest.raises(DeckNotFoundError):
            await store.add_card("nope", "x", "叉")


class TestStatistics:
    @pytest.mark.asyncio
    async def test_reviews_and_time_update_all_totals(self, db) -> None:
        store = DeckStore(db)
        deck = await store.create_deck("Deck", _cards("a", "b"))
        first, second = deck.queue

        await store.record_review(deck.id, first, True)
        await store.record_review(deck.id, first, False)
        await store.record_review(deck.id, second, True)
        await store.add_study_time(deck.id, 45)

        totals = await store.global_stats()
        assert totals.total_review_count == 3
        assert totals.total_study_time_seconds == 45
        assert totals.total_cards == 2

        daily = await store.daily_stats()
        assert daily.day == stats_day()
        assert daily.review_count == 3
        assert daily.correct_count == 2
        assert daily.wrong_count == 1
        assert daily.distinct_cards == 2
        assert daily.study_time_seconds == 45

        overview = (await store.list_decks())[0]
        assert overview.total_review_count == 3
        assert overview.total_study_time_seconds == 45

    @pytest.mark.asyncio
    async def test_empty_day(self, db) -> None:
        daily = await DeckStore(db).daily_stats("2020-01-01")
        assert daily.review_count == 0
        assert daily.activities == []

    @pytest.mark.asyncio
    async def test_session_history(self, db) -> None:
        store = DeckStore(db)
        deck = await store.create_deck("Deck", _cards("a"))
        await store.log_session(deck.id, "STUDY", 60, 3, 1, now=datetime(2026, 1, 1, 1, 0))
        await store.log_session(deck.id, "EXAM", 30, 2, 0, now=datetime(2026, 1, 2, 1, 0))

        history = await store.session_history(deck.id)
        assert [log.mode for log in history] == ["EXAM", "STUDY"]
        assert history[1].review_count == 4
        assert history[1].deck_name == "Deck"

        daily = await store.daily_stats("2026-01-02")
        assert [log.mode for log in daily.activities] == ["EXAM"]

    @pytest.mark.asyncio
    async def test_reset(self, db) -> None:
        store = DeckStore(db)
        deck = await store.create_deck("Deck", _cards("a"))
        await store.record_review(deck.id, deck.queue[0], True)
        await store.reset()
        assert await store.list_decks() == []
        assert (await store.global_stats()).total_review_count == 0


class TestStoreRecorder:
    @pytest.mark.asyncio
    async def test_study_session_is_persisted(self, db) -> None:
        store = DeckStore(db)
        deck = await store.create_deck("Deck", _cards("a", "b", "c"))
        recorder = StoreRecorder(deck_id=deck.id)
        study = StudySession(deck=await store.get_deck(deck.id), events=recorder)

        study.tick(2)
        study.dont_know()
        assert await recorder.flush(store) == 3
        assert await recorder.flush(store) == 0

        study.advance()
        study.know()
        study.verdict(True)
        study.exit()
        await recorder.flush(store)

        loaded = await store.get_deck(deck.id)
        assert loaded.queue == study.queue
        assert loaded.find(deck.queue[0]).consecutive_wrong == 1
        assert loaded.find(deck.queue[1]).consecutive_correct == 1

        totals = await store.global_stats()
        assert totals.total_review_count == 2
        assert totals.total_study_time_seconds == 2

        history = await store.session_history(deck.id)
        assert len(history) == 1
        assert history[0].mode == "STUDY"
        assert (history[0].correct_count, history[0].wrong_count) == (1, 1)

    @pytest.mark.asyncio
    async def test_exam_keeps_queue(self, db) -> None:
        store = DeckStore(db)
        deck = await store.create_deck("Deck", _cards("a", "b", "c"))
        recorder = StoreRecorder(deck_id=deck.id, mode="EXAM")
        exam = ExamSession(
            deck=await store.get_deck(deck.id),
            events=recorder,
            requested_count=2,
            rng=random.Random(1),
        )
        exam.reveal()
        exam.verdict(False)
        exam.exit()
        await recorder.flush(store)

        loaded = await store.get_deck(deck.id)
        assert loaded.queue == deck.queue
        assert loaded.find(exam.questions[0]).consecutive_wrong == 1
        assert (await store.session_history(deck.id))[0].mode == "EXAM"


class _FlakyStore:
    """Store stand-in whose first review write fails."""

    def __init__(self) -> None:
        self.reviews: list[str] = []
        self.seconds: list[int] = []
        self.fail_next_review = True

    async def record_review(self, deck_id: str, card_id: str, is_correct: bool) -> None:
        if self.fail_next_review:
            self.fail_next_review = False
            raise RuntimeError("database is locked")
        self.reviews.append(card_id)

    async def add_study_time(self, deck_id: str, seconds: int) -> None:
        self.seconds.append(seconds)


class TestRecorderFailures:
    @pytest.mark.asyncio
    async def test_failed_event_and_later_ones_stay_pending(self) -> None:
        recorder = StoreRecorder(deck_id="deck-1")
        store = _FlakyStore()
        recorder.on_time_update(3)
        recorder.on_review("A", True)
        recorder.on_time_update(4)

        with pytest.raises(RuntimeError):
            await recorder.flush(store)
        assert store.seconds == [3]
        assert [kind for kind, _ in recorder.pending] == ["review", "time"]

        assert await recorder.flush(store) == 2
        assert store.reviews == ["A"]
        assert store.seconds == [3, 4]
        assert recorder.pending == []
