"""API routes for study sessions."""

import logging
import uuid
from dataclasses import dataclass

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api import deck_locks
from backend.api.schemas import (
    CardEditRequest,
    CardResponse,
    FeedbackResponse,
    SessionSummaryResponse,
    StreakDistributionResponse,
    StudyStartResponse,
    StudyStateResponse,
    TickRequest,
    VerdictRequest,
)
from backend.database import get_session
from backend.srs.events import InvalidTransitionError
from backend.srs.study import StudySession, StudyState
from backend.store import DeckNotFoundError, DeckStore, StoreRecorder

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/study", tags=["study"])


@dataclass
class ActiveStudy:
    session: StudySession
    recorder: StoreRecorder


# In-memory session store (single user, single process)
_active_sessions: dict[str, ActiveStudy] = {}


def _get_active(session_id: str) -> ActiveStudy:
    active = _active_sessions.get(session_id)
    if not active:
        raise HTTPException(status_code=404, detail="Session not found")
    return active


def _state_response(session_id: str, study: StudySession) -> StudyStateResponse:
    card = study.current_card
    feedback = study.last_feedback
    return StudyStateResponse(
        session_id=session_id,
        state=study.state.value,
        card=CardResponse.model_validate(card) if card else None,
        revealed=study.state not in (StudyState.HIDDEN, StudyState.EMPTY),
        feedback=FeedbackResponse(**vars(feedback)) if feedback else None,
        queue=study.queue,
        correct=study.correct,
        wrong=study.wrong,
        duration_seconds=study.duration_seconds,
    )


async def _flush(active: ActiveStudy, db: AsyncSession) -> None:
    try:
        await active.recorder.flush(DeckStore(db))
    except DeckNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.post("/start/{deck_id}", response_model=StudyStartResponse)
async def study_start(deck_id: str, db: AsyncSession = Depends(get_session)) -> StudyStartResponse:
    """Start a study session over a deck's queue.

    A deck with nothing queued still starts, in the EMPTY state.
    """
    deck_locks.ensure_idle(deck_id)
    try:
        deck = await DeckStore(db).get_deck(deck_id)
    except DeckNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    recorder = StoreRecorder(deck_id=deck_id, mode="STUDY")
    study = StudySession(deck=deck, events=recorder)
    session_id = str(uuid.uuid4())
    deck_locks.claim(deck_id, session_id)
    _active_sessions[session_id] = ActiveStudy(session=study, recorder=recorder)

    return StudyStartResponse(
        session_id=session_id,
        deck_id=deck_id,
        queue_length=study.remaining,
        state=study.state.value,
    )


@router.get("/{session_id}", response_model=StudyStateResponse)
async def study_state(session_id: str) -> StudyStateResponse:
    active = _get_active(session_id)
    return _state_response(session_id, active.session)


@router.post("/{session_id}/know", response_model=StudyStateResponse)
async def study_know(session_id: str) -> StudyStateResponse:
    active = _get_active(session_id)
    try:
        active.session.know()
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return _state_response(session_id, active.session)


@router.post("/{session_id}/dont-know", response_model=StudyStateResponse)
async def study_dont_know(session_id: str, db: AsyncSession = Depends(get_session)) -> StudyStateResponse:
    active = _get_active(session_id)
    try:
        active.session.dont_know()
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    await _flush(active, db)
    return _state_response(session_id, active.session)


@router.post("/{session_id}/verdict", response_model=StudyStateResponse)
async def study_verdict(
    session_id: str,
    request: VerdictRequest,
    db: AsyncSession = Depends(get_session),
) -> StudyStateResponse:
    active = _get_active(session_id)
    try:
        active.session.verdict(request.is_correct)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    await _flush(active, db)
    return _state_response(session_id, active.session)


@router.post("/{session_id}/advance", response_model=StudyStateResponse)
async def study_advance(session_id: str) -> StudyStateResponse:
    active = _get_active(session_id)
    try:
        active.session.advance()
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return _state_response(session_id, active.session)


@router.post("/{session_id}/tick", response_model=StudyStateResponse)
async def study_tick(
    session_id: str,
    request: TickRequest,
    db: AsyncSession = Depends(get_session),
) -> StudyStateResponse:
    """Add elapsed seconds; clients call this once per second."""
    active = _get_active(session_id)
    active.session.tick(request.seconds)
    await _flush(active, db)
    return _state_response(session_id, active.session)


@router.post("/{session_id}/delete", response_model=StudyStateResponse)
async def study_delete_card(
    session_id: str,
    card_id: str | None = None,
    db: AsyncSession = Depends(get_session),
) -> StudyStateResponse:
    """Delete a card (the current one by default) from the deck."""
    active = _get_active(session_id)
    try:
        active.session.delete_card(card_id)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except KeyError as e:
        raise HTTPException(status_code=404, detail=f"Card {card_id} not found") from e
    await _flush(active, db)
    return _state_response(session_id, active.session)


@router.post("/{session_id}/edit", response_model=StudyStateResponse)
async def study_edit_card(
    session_id: str,
    request: CardEditRequest,
    db: AsyncSession = Depends(get_session),
) -> StudyStateResponse:
    active = _get_active(session_id)
    try:
        active.session.edit_card(request.card_id, request.english, request.chinese, request.note)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except KeyError as e:
        raise HTTPException(status_code=404, detail=f"Card {request.card_id} not found") from e
    await _flush(active, db)
    return _state_response(session_id, active.session)


@router.get("/{session_id}/distribution", response_model=StreakDistributionResponse)
async def study_distribution(session_id: str) -> StreakDistributionResponse:
    """Count the deck's cards per streak bucket."""
    active = _get_active(session_id)
    return StreakDistributionResponse(**active.session.streak_distribution())


@router.post("/{session_id}/end", response_model=SessionSummaryResponse)
async def study_end(session_id: str, db: AsyncSession = Depends(get_session)) -> SessionSummaryResponse:
    """End a session, log it and clean up."""
    active = _active_sessions.pop(session_id, None)
    if not active:
        raise HTTPException(status_code=404, detail="Session not found")

    summary = active.session.exit()
    deck_locks.release(active.session.deck.id)
    await _flush(active, db)
    return SessionSummaryResponse(
        duration_seconds=summary.duration_seconds,
        correct=summary.correct,
        wrong=summary.wrong,
        reviewed=summary.reviewed,
    )
