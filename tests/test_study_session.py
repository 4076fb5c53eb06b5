"""Tests for the study session controller."""

from datetime import datetime

import pytest

from backend.srs.events import InvalidTransitionError
from backend.srs.records import CardRecord, DeckRecord
from backend.srs.study import SessionSummary, StudySession, StudyState

REVIEW_TIME = datetime(2026, 3, 1, 9, 30, 0)


class TestStudyFlow:
    @pytest.fixture(autouse=True)
    def _session(self, events, deck_factory) -> None:
        self.events = events
        self.deck = deck_factory("A", "B", "C", "D", "E")
        self.study = StudySession(deck=self.deck, events=events, clock=lambda: REVIEW_TIME)

    def test_starts_hidden_on_queue_head(self) -> None:
        assert self.study.state is StudyState.HIDDEN
        assert self.study.current_card.id == "A"
        assert self.study.remaining == 5
        assert self.events.calls == []

    def test_know_reveals_without_answering(self) -> None:
        self.study.know()
        assert self.study.state is StudyState.VERIFYING
        assert self.study.queue == ["A", "B", "C", "D", "E"]
        assert self.events.calls == []

    def test_correct_verdict_reschedules(self) -> None:
        self.study.know()
        result = self.study.verdict(True)
        assert self.study.state is StudyState.REVIEWED
        assert result.insert_offset == 4
        assert self.study.queue == ["B", "C", "D", "E", "A"]
        assert self.deck.queue == ["B", "C", "D", "E", "A"]
        assert self.study.correct == 1
        assert self.study.last_feedback.is_correct
        assert self.study.last_feedback.insert_offset == 4

        card = self.deck.find("A")
        assert card.consecutive_correct == 1
        assert card.total_reviews == 1
        assert card.last_reviewed_at == REVIEW_TIME

    def test_wrong_verdict_after_know(self) -> None:
        self.study.know()
        self.study.verdict(False)
        assert self.study.queue == ["B", "C", "A", "D", "E"]
        assert self.study.wrong == 1

    def test_dont_know_counts_as_wrong(self) -> None:
        result = self.study.dont_know()
        assert self.study.state is StudyState.MISSED
        assert result.insert_offset == 2
        assert self.study.queue == ["B", "C", "A", "D", "E"]
        assert self.study.wrong == 1
        assert self.deck.find("A").consecutive_wrong == 1

    def test_answer_emits_review_then_deck(self) -> None:
        self.study.dont_know()
        assert self.events.kinds == ["review", "deck"]
        assert self.events.calls[0] == ("review", "A", False)
        stored = self.events.calls[1][1]
        assert stored.queue == ["B", "C", "A", "D", "E"]
        assert stored.find("A").consecutive_wrong == 1

    def test_stored_deck_is_a_copy(self) -> None:
        self.study.dont_know()
        stored = self.events.calls[1][1]
        self.study.advance()
        self.study.know()
        self.study.verdict(True)
        assert stored.queue == ["B", "C", "A", "D", "E"]
        assert stored.find("B").total_reviews == 0

    def test_advance_shows_new_head(self) -> None:
        self.study.dont_know()
        card = self.study.advance()
        assert card.id == "B"
        assert self.study.state is StudyState.HIDDEN
        assert self.study.last_feedback is None

    def test_missed_card_comes_back(self) -> None:
        self.study.dont_know()
        self.study.advance()
        for _ in range(2):
            self.study.know()
            self.study.verdict(True)
            self.study.advance()
        assert self.study.current_card.id == "A"

    def test_tick_accumulates_time(self) -> None:
        self.study.tick()
        self.study.tick(2)
        assert self.study.duration_seconds == 3
        assert self.events.of_kind("time") == [("time", 1), ("time", 2)]

    def test_streak_distribution(self) -> None:
        self.study.know()
        self.study.verdict(True)
        self.study.advance()
        self.study.dont_know()
        assert self.study.streak_distribution() == {
            "new": 3,
            "wrong": {"1": 1},
            "correct": {"1": 1},
        }


class TestInvalidTransitions:
    def setup_method(self) -> None:
        deck = DeckRecord(
            id="deck-1",
            name="Deck",
            cards=[CardRecord(id="A", english="hello", chinese="你好")],
            queue=["A"],
        )
        self.study = StudySession(deck=deck, events=_NullEvents())

    def test_verdict_requires_verifying(self) -> None:
        with pytest.raises(InvalidTransitionError, match="HIDDEN"):
            self.study.verdict(True)

    def test_advance_requires_answer(self) -> None:
        with pytest.raises(InvalidTransitionError):
            self.study.advance()

    def test_know_twice(self) -> None:
        self.study.know()
        with pytest.raises(InvalidTransitionError, match="VERIFYING"):
            self.study.know()

    def test_dont_know_while_verifying(self) -> None:
        self.study.know()
        with pytest.raises(InvalidTransitionError):
            self.study.dont_know()

    def test_verdict_twice(self) -> None:
        self.study.know()
        self.study.verdict(True)
        with pytest.raises(InvalidTransitionError, match="REVIEWED"):
            self.study.verdict(True)

    def test_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            self.study.advance()


class _NullEvents:
    def on_review(self, card_id: str, is_correct: bool) -> None:
        pass

    def on_time_update(self, delta_seconds: int) -> None:
        pass

    def on_update_deck(self, deck: DeckRecord) -> None:
        pass

    def on_session_complete(self, duration_seconds: int, correct_count: int, wrong_count: int) -> None:
        pass


class TestEdgeCases:
    def test_single_card_is_shown_again(self, events, deck_factory) -> None:
        study = StudySession(deck=deck_factory("A"), events=events)
        study.know()
        result = study.verdict(True)
        assert result.insert_offset == 0
        assert study.advance().id == "A"

    def test_unresolvable_ids_are_skipped(self, events, deck_factory) -> None:
        deck = deck_factory("A", "B", queue=["ghost", "A", "A", "B"])
        study = StudySession(deck=deck, events=events)
        assert study.queue == ["A", "B"]
        assert study.current_card.id == "A"

    def test_answer_writes_back_resolvable_queue(self, events, deck_factory) -> None:
        deck = deck_factory("A", "B", "C", queue=["ghost", "A", "B", "C"])
        study = StudySession(deck=deck, events=events)
        study.dont_know()
        assert deck.queue == ["B", "C", "A"]

    def test_empty_deck(self, events) -> None:
        study = StudySession(deck=DeckRecord(id="d", name="Empty"), events=events)
        assert study.state is StudyState.EMPTY
        assert study.is_empty
        assert study.current_card is None
        with pytest.raises(InvalidTransitionError, match="EMPTY"):
            study.know()

    def test_unqueued_cards_are_not_studied(self, events, deck_factory) -> None:
        study = StudySession(deck=deck_factory("A", "B", queue=[]), events=events)
        assert study.is_empty

    def test_queue_of_only_unknown_ids_is_empty(self, events, deck_factory) -> None:
        study = StudySession(deck=deck_factory("A", queue=["x", "y"]), events=events)
        assert study.is_empty


class TestDeleteAndEdit:
    @pytest.fixture(autouse=True)
    def _session(self, events, deck_factory) -> None:
        self.events = events
        self.deck = deck_factory("A", "B", "C")
        self.study = StudySession(deck=self.deck, events=events)

    def test_delete_current_card_moves_on(self) -> None:
        self.study.know()
        self.study.delete_card()
        assert self.study.current_card.id == "B"
        assert self.study.state is StudyState.HIDDEN
        assert self.deck.find("A") is None
        assert self.study.queue == ["B", "C"]
        assert self.events.kinds == ["deck"]
        assert self.events.calls[0][1].card_ids() == {"B", "C"}

    def test_delete_other_card_keeps_view(self) -> None:
        self.study.delete_card("C")
        assert self.study.current_card.id == "A"
        assert self.study.queue == ["A", "B"]
        assert self.deck.queue == ["A", "B"]

    def test_delete_after_answer_keeps_deck_queue_in_sync(self) -> None:
        self.study.dont_know()
        self.study.delete_card("C")
        assert self.deck.queue == ["B", "A"]
        assert self.study.state is StudyState.MISSED

    def test_delete_last_card_empties_session(self, events, deck_factory) -> None:
        study = StudySession(deck=deck_factory("A"), events=events)
        study.delete_card()
        assert study.state is StudyState.EMPTY

    def test_delete_unknown_card(self) -> None:
        with pytest.raises(KeyError):
            self.study.delete_card("nope")

    def test_edit_keeps_counters_and_position(self) -> None:
        self.study.dont_know()
        card = self.study.edit_card("A", english="hi", note="greeting")
        assert card.english == "hi"
        assert card.chinese == "zh-A"
        assert card.note == "greeting"
        assert card.consecutive_wrong == 1
        assert self.study.queue == ["B", "C", "A"]
        assert self.events.calls[-1][1].find("A").english == "hi"

    def test_edit_defaults_to_current_card(self) -> None:
        self.study.edit_card(chinese="新")
        assert self.deck.find("A").chinese == "新"

    def test_edit_unknown_card(self) -> None:
        with pytest.raises(KeyError):
            self.study.edit_card("nope", english="x")


class TestExit:
    @pytest.fixture(autouse=True)
    def _session(self, events, deck_factory) -> None:
        self.events = events
        self.study = StudySession(deck=deck_factory("A", "B"), events=events)

    def test_exit_reports_totals_once(self) -> None:
        self.study.tick(5)
        self.study.dont_know()
        self.study.advance()
        self.study.know()
        self.study.verdict(True)

        summary = self.study.exit()
        self.study.exit()
        assert summary == SessionSummary(duration_seconds=5, correct=1, wrong=1)
        assert summary.reviewed == 2
        assert summary.accuracy == 0.5
        assert self.events.of_kind("complete") == [("complete", 5, 1, 1)]

    def test_exit_without_answers(self) -> None:
        summary = self.study.exit()
        assert summary.accuracy == 0.0
        assert self.events.of_kind("complete") == [("complete", 0, 0, 0)]

    def test_exit_mid_card_drops_unanswered(self) -> None:
        self.study.know()
        self.study.exit()
        assert self.events.of_kind("review") == []
        assert self.study.is_closed

    def test_actions_after_exit_fail(self) -> None:
        self.study.exit()
        with pytest.raises(InvalidTransitionError, match="closed"):
            self.study.know()
        with pytest.raises(InvalidTransitionError, match="closed"):
            self.study.delete_card()

    def test_tick_after_exit_is_ignored(self) -> None:
        self.study.exit()
        self.study.tick(3)
        assert self.study.duration_seconds == 0
        assert self.events.of_kind("time") == []
