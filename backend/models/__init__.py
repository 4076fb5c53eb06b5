"""SQLAlchemy ORM models for the RecallFlow database."""

from backend.models.base import Base
from backend.models.card import Card
from backend.models.deck import Deck
from backend.models.session_log import SessionLog
from backend.models.stats import DailyStats, GlobalStats

__all__ = ["Base", "Card", "DailyStats", "Deck", "GlobalStats", "SessionLog"]
