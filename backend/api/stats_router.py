"""API routes for study statistics and backups."""

import logging

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api import deck_locks
from backend.api.schemas import (
    ActivityResponse,
    DailyStatsResponse,
    GlobalStatsResponse,
    StreakDistributionResponse,
)
from backend.backup import BackupData, export_backup, import_backup
from backend.database import get_session
from backend.srs.records import streak_distribution
from backend.store import DeckNotFoundError, DeckStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stats", tags=["stats"])
backup_router = APIRouter(prefix="/api/backup", tags=["backup"])


@router.get("", response_model=GlobalStatsResponse)
async def get_global_stats(db: AsyncSession = Depends(get_session)) -> GlobalStatsResponse:
    """Lifetime review count, study time and card count."""
    totals = await DeckStore(db).global_stats()
    return GlobalStatsResponse(**vars(totals))


@router.get("/daily", response_model=DailyStatsResponse)
async def get_daily_stats(
    day: str | None = None,
    db: AsyncSession = Depends(get_session),
) -> DailyStatsResponse:
    """Numbers for one day (today by default) with the sessions logged on it."""
    report = await DeckStore(db).daily_stats(day)
    return DailyStatsResponse(
        day=report.day,
        review_count=report.review_count,
        correct_count=report.correct_count,
        wrong_count=report.wrong_count,
        study_time_seconds=report.study_time_seconds,
        distinct_cards=report.distinct_cards,
        activities=[ActivityResponse.model_validate(log) for log in report.activities],
    )


@router.get("/decks/{deck_id}/distribution", response_model=StreakDistributionResponse)
async def get_deck_distribution(
    deck_id: str,
    db: AsyncSession = Depends(get_session),
) -> StreakDistributionResponse:
    try:
        deck = await DeckStore(db).get_deck(deck_id)
    except DeckNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return StreakDistributionResponse(**streak_distribution(deck.cards))


@router.get("/decks/{deck_id}/history", response_model=list[ActivityResponse])
async def get_deck_history(
    deck_id: str,
    db: AsyncSession = Depends(get_session),
) -> list[ActivityResponse]:
    """Past sessions of a deck, newest first."""
    try:
        logs = await DeckStore(db).session_history(deck_id)
    except DeckNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return [ActivityResponse.model_validate(log) for log in logs]


@backup_router.get("", response_model=BackupData, response_model_by_alias=True)
async def get_backup(db: AsyncSession = Depends(get_session)) -> BackupData:
    return await export_backup(DeckStore(db))


@backup_router.post("")
async def restore_backup(
    payload: dict | list = Body(...),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Replace every deck and statistic with a backup's contents."""
    deck_locks.ensure_no_sessions()
    try:
        data = await import_backup(DeckStore(db), payload)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return {"status": "restored", "decks": len(data.decks)}
