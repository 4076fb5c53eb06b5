"""API routes for deck management, bulk text import/export and merging."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api import deck_locks
from backend.api.schemas import (
    CardIn,
    CardResponse,
    CardUpdateRequest,
    DeckCreateRequest,
    DeckMergeRequest,
    DeckRenameRequest,
    DeckResponse,
    DeckSummaryResponse,
    DeckTextRequest,
    DeckTextResponse,
)
from backend.database import get_session
from backend.srs.records import CardRecord, DeckRecord
from backend.store import CardNotFoundError, DeckNotFoundError, DeckStore
from ingestion.phrase_text import cards_from_text

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/decks", tags=["decks"])


def deck_response(deck: DeckRecord) -> DeckResponse:
    return DeckResponse(
        id=deck.id,
        name=deck.name,
        cards=[CardResponse.model_validate(card) for card in deck.cards],
        queue=deck.queue,
    )


@router.get("", response_model=list[DeckSummaryResponse])
async def list_decks(db: AsyncSession = Depends(get_session)) -> list[DeckSummaryResponse]:
    """List all decks with their sizes and lifetime totals."""
    overviews = await DeckStore(db).list_decks()
    return [DeckSummaryResponse(**vars(overview)) for overview in overviews]


@router.post("", response_model=DeckResponse, status_code=201)
async def create_deck(
    request: DeckCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> DeckResponse:
    """Create a deck; every new card is queued in input order."""
    cards = [CardRecord.create(card.english, card.chinese, card.note) for card in request.cards]
    if request.text:
        try:
            cards.extend(cards_from_text(request.text))
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
    deck = await DeckStore(db).create_deck(request.name, cards)
    return deck_response(deck)


@router.get("/{deck_id}", response_model=DeckResponse)
async def get_deck(deck_id: str, db: AsyncSession = Depends(get_session)) -> DeckResponse:
    try:
        deck = await DeckStore(db).get_deck(deck_id)
    except DeckNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return deck_response(deck)


@router.delete("/{deck_id}")
async def delete_deck(deck_id: str, db: AsyncSession = Depends(get_session)) -> dict:
    deck_locks.ensure_idle(deck_id)
    try:
        await DeckStore(db).delete_deck(deck_id)
    except DeckNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return {"status": "deleted", "deck_id": deck_id}


@router.patch("/{deck_id}", response_model=DeckResponse)
async def rename_deck(
    deck_id: str,
    request: DeckRenameRequest,
    db: AsyncSession = Depends(get_session),
) -> DeckResponse:
    deck_locks.ensure_idle(deck_id)
    store = DeckStore(db)
    try:
        await store.rename_deck(deck_id, request.name)
        deck = await store.get_deck(deck_id)
    except DeckNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return deck_response(deck)


@router.get("/{deck_id}/text", response_model=DeckTextResponse)
async def export_deck_text(deck_id: str, db: AsyncSession = Depends(get_session)) -> DeckTextResponse:
    """Export a deck in the pipe-delimited bulk text format."""
    try:
        text = await DeckStore(db).export_text(deck_id)
    except DeckNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return DeckTextResponse(deck_id=deck_id, text=text)


@router.put("/{deck_id}/text", response_model=DeckResponse)
async def batch_edit_deck(
    deck_id: str,
    request: DeckTextRequest,
    db: AsyncSession = Depends(get_session),
) -> DeckResponse:
    """Rewrite a deck's cards and queue from bulk text."""
    deck_locks.ensure_idle(deck_id)
    try:
        deck = await DeckStore(db).batch_edit(deck_id, request.text)
    except DeckNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return deck_response(deck)


@router.post("/{deck_id}/merge", response_model=DeckResponse)
async def merge_into_deck(
    deck_id: str,
    request: DeckMergeRequest,
    db: AsyncSession = Depends(get_session),
) -> DeckResponse:
    """Copy every card of another deck into this one."""
    if request.source_id == deck_id:
        raise HTTPException(status_code=400, detail="Cannot merge a deck into itself")
    deck_locks.ensure_idle(deck_id)
    try:
        deck = await DeckStore(db).merge_decks(request.source_id, deck_id)
    except DeckNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return deck_response(deck)


@router.post("/{deck_id}/cards", response_model=CardResponse, status_code=201)
async def add_card(
    deck_id: str,
    request: CardIn,
    db: AsyncSession = Depends(get_session),
) -> CardResponse:
    """Add one card; it goes to the front of the queue."""
    deck_locks.ensure_idle(deck_id)
    try:
        card = await DeckStore(db).add_card(deck_id, request.english, request.chinese, request.note)
    except DeckNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return CardResponse.model_validate(card)


@router.patch("/{deck_id}/cards/{card_id}", response_model=CardResponse)
async def update_card(
    deck_id: str,
    card_id: str,
    request: CardUpdateRequest,
    db: AsyncSession = Depends(get_session),
) -> CardResponse:
    deck_locks.ensure_idle(deck_id)
    try:
        card = await DeckStore(db).update_card(
            deck_id, card_id, request.english, request.chinese, request.note
        )
    except (DeckNotFoundError, CardNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return CardResponse.model_validate(card)


@router.delete("/{deck_id}/cards/{card_id}")
async def delete_card(deck_id: str, card_id: str, db: AsyncSession = Depends(get_session)) -> dict:
    """Delete a card and remove it from the queue."""
    deck_locks.ensure_idle(deck_id)
    try:
        await DeckStore(db).delete_card(deck_id, card_id)
    except (DeckNotFoundError, CardNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return {"status": "deleted", "card_id": card_id}
