"""API routes for exam sessions."""

import logging
import random
import uuid
from dataclasses import dataclass

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api import deck_locks
from backend.api.schemas import (
    CardResponse,
    ExamStartRequest,
    ExamStateResponse,
    ExamSummaryResponse,
    TickRequest,
    VerdictRequest,
)
from backend.config import settings
from backend.database import get_session
from backend.srs.events import InvalidTransitionError
from backend.srs.exam import ExamSession, ExamStep
from backend.store import DeckNotFoundError, DeckStore, StoreRecorder

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/exam", tags=["exam"])


@dataclass
class ActiveExam:
    session: ExamSession
    recorder: StoreRecorder


_active_exams: dict[str, ActiveExam] = {}


def _get_active(session_id: str) -> ActiveExam:
    active = _active_exams.get(session_id)
    if not active:
        raise HTTPException(status_code=404, detail="Exam not found")
    return active


def _state_response(session_id: str, exam: ExamSession) -> ExamStateResponse:
    card = exam.current_card
    return ExamStateResponse(
        session_id=session_id,
        step=exam.step.value,
        index=exam.index,
        total=exam.total,
        score=exam.score,
        card=CardResponse.model_validate(card) if card else None,
        revealed=exam.step is ExamStep.REVEAL,
        duration_seconds=exam.duration_seconds,
    )


async def _flush(active: ActiveExam, db: AsyncSession) -> None:
    try:
        await active.recorder.flush(DeckStore(db))
    except DeckNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.post("/start", response_model=ExamStateResponse)
async def exam_start(request: ExamStartRequest, db: AsyncSession = Depends(get_session)) -> ExamStateResponse:
    """Sample the exam questions from a deck. Oversized requests are clamped."""
    deck_locks.ensure_idle(request.deck_id)
    try:
        deck = await DeckStore(db).get_deck(request.deck_id)
    except DeckNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    count = request.count if request.count is not None else settings.default_exam_size
    recorder = StoreRecorder(deck_id=deck.id, mode="EXAM")
    exam = ExamSession(
        deck=deck,
        events=recorder,
        requested_count=count,
        rng=random.Random(request.seed),
    )
    session_id = str(uuid.uuid4())
    deck_locks.claim(deck.id, session_id)
    _active_exams[session_id] = ActiveExam(session=exam, recorder=recorder)
    logger.info("Started exam %s on deck %s with %d questions", session_id, deck.id, exam.total)
    return _state_response(session_id, exam)


@router.get("/{session_id}", response_model=ExamStateResponse)
async def exam_state(session_id: str) -> ExamStateResponse:
    return _state_response(session_id, _get_active(session_id).session)


@router.post("/{session_id}/reveal", response_model=ExamStateResponse)
async def exam_reveal(session_id: str) -> ExamStateResponse:
    active = _get_active(session_id)
    try:
        active.session.reveal()
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return _state_response(session_id, active.session)


@router.post("/{session_id}/verdict", response_model=ExamStateResponse)
async def exam_verdict(
    session_id: str,
    request: VerdictRequest,
    db: AsyncSession = Depends(get_session),
) -> ExamStateResponse:
    active = _get_active(session_id)
    try:
        active.session.verdict(request.is_correct)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    await _flush(active, db)
    return _state_response(session_id, active.session)


@router.post("/{session_id}/tick", response_model=ExamStateResponse)
async def exam_tick(
    session_id: str,
    request: TickRequest,
    db: AsyncSession = Depends(get_session),
) -> ExamStateResponse:
    active = _get_active(session_id)
    active.session.tick(request.seconds)
    await _flush(active, db)
    return _state_response(session_id, active.session)


@router.post("/{session_id}/end", response_model=ExamSummaryResponse)
async def exam_end(session_id: str, db: AsyncSession = Depends(get_session)) -> ExamSummaryResponse:
    """Finish or abandon an exam; only answered cards are reported."""
    active = _active_exams.pop(session_id, None)
    if not active:
        raise HTTPException(status_code=404, detail="Exam not found")

    summary = active.session.exit()
    deck_locks.release(active.session.deck.id)
    await _flush(active, db)
    return ExamSummaryResponse(
        score=summary.score,
        answered=summary.answered,
        total=summary.total,
        duration_seconds=summary.duration_seconds,
    )
