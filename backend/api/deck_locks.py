"""Which decks currently have a running study or exam session.

While a session runs it is the only writer of its deck: every answer writes
its own copy of the deck back, so edits made elsewhere in the meantime would
be lost. Routes that change a deck check here first.
"""

from fastapi import HTTPException

# deck_id -> session_id (single user, single process)
_busy_decks: dict[str, str] = {}


def ensure_idle(deck_id: str) -> None:
    """Raise 409 if a session is running on the deck."""
    session_id = _busy_decks.get(deck_id)
    if session_id is not None:
        raise HTTPException(
            status_code=409,
            detail=f"Deck {deck_id} is in use by session {session_id}; end it first",
        )


def ensure_no_sessions() -> None:
    """Raise 409 if any session is running."""
    if _busy_decks:
        raise HTTPException(status_code=409, detail=f"{len(_busy_decks)} session(s) still running")


def claim(deck_id: str, session_id: str) -> None:
    ensure_idle(deck_id)
    _busy_decks[deck_id] = session_id


def release(deck_id: str) -> None:
    _busy_decks.pop(deck_id, None)
