"""Pydantic schemas for API request/response models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# --- Decks ---


class CardIn(BaseModel):
    """A new card supplied as structured data."""

    english: str
    chinese: str
    note: str = ""


class CardResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    english: str
    chinese: str
    note: str
    consecutive_correct: int
    consecutive_wrong: int
    total_reviews: int
    last_reviewed_at: datetime | None = None


class DeckCreateRequest(BaseModel):
    """Create a deck from structured cards, bulk text, or both."""

    name: str = Field(min_length=1)
    cards: list[CardIn] = Field(default_factory=list)
    text: str | None = None  # english | chinese | note | progress | position


class DeckTextRequest(BaseModel):
    text: str


class DeckRenameRequest(BaseModel):
    name: str = Field(min_length=1)


class DeckMergeRequest(BaseModel):
    source_id: str


class DeckSummaryResponse(BaseModel):
    id: str
    name: str
    card_count: int
    queue_length: int
    total_study_time_seconds: int
    total_review_count: int


class DeckResponse(BaseModel):
    id: str
    name: str
    cards: list[CardResponse]
    queue: list[str]


class DeckTextResponse(BaseModel):
    deck_id: str
    text: str


# --- Study sessions ---


class StudyStartResponse(BaseModel):
    session_id: str
    deck_id: str
    queue_length: int
    state: str


class FeedbackResponse(BaseModel):
    card_id: str
    is_correct: bool
    insert_offset: int


class StudyStateResponse(BaseModel):
    """Everything a client needs to render the current card."""

    session_id: str
    state: str  # HIDDEN, VERIFYING, MISSED, REVIEWED, EMPTY
    card: CardResponse | None = None
    revealed: bool
    feedback: FeedbackResponse | None = None
    queue: list[str]
    correct: int
    wrong: int
    duration_seconds: int


class VerdictRequest(BaseModel):
    is_correct: bool


class TickRequest(BaseModel):
    seconds: int = Field(1, ge=1)


class CardUpdateRequest(BaseModel):
    english: str | None = None
    chinese: str | None = None
    note: str | None = None


class CardEditRequest(BaseModel):
    card_id: str | None = None
    english: str | None = None
    chinese: str | None = None
    note: str | None = None


class SessionSummaryResponse(BaseModel):
    duration_seconds: int
    correct: int
    wrong: int
    reviewed: int


# --- Exams ---


class ExamStartRequest(BaseModel):
    deck_id: str
    count: int | None = None  # defaults to settings.default_exam_size
    seed: int | None = None


class ExamStateResponse(BaseModel):
    session_id: str
    step: str  # QUESTION, REVEAL, FINISHED
    index: int
    total: int
    score: int
    card: CardResponse | None = None
    revealed: bool
    duration_seconds: int


class ExamSummaryResponse(BaseModel):
    score: int
    answered: int
    total: int
    duration_seconds: int


# --- Stats ---


class GlobalStatsResponse(BaseModel):
    total_review_count: int
    total_study_time_seconds: int
    total_cards: int


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    deck_id: str
    deck_name: str
    mode: str
    duration_seconds: int
    review_count: int
    correct_count: int
    wrong_count: int
    logged_at: datetime


class DailyStatsResponse(BaseModel):
    day: str
    review_count: int
    correct_count: int
    wrong_count: int
    study_time_seconds: int
    distinct_cards: int
    activities: list[ActivityResponse]


class StreakDistributionResponse(BaseModel):
    new: int
    wrong: dict[str, int]
    correct: dict[str, int]
