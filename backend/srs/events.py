"""Callback contract between the session controllers and the deck/stats store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from backend.srs.records import DeckRecord


class SessionEvents(Protocol):
    """Receives every persistence effect of a study or exam session.

    Calls are synchronous and fire-and-forget from the controller's point of
    view; they arrive in the order the controller emits them.
    """

    def on_review(self, card_id: str, is_correct: bool) -> None: ...

    def on_time_update(self, delta_seconds: int) -> None: ...

    def on_update_deck(self, deck: DeckRecord) -> None: ...

    def on_session_complete(
        self, duration_seconds: int, correct_count: int, wrong_count: int
    ) -> None: ...


class InvalidTransitionError(ValueError):
    """An action was requested in a state that does not accept it."""

    def __init__(self, action: str, state: str) -> None:
        super().__init__(f"Cannot {action} while card is {state}")
        self.action = action
        self.state = state
