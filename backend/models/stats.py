"""Global and per-day study statistics."""

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.base import Base, TimestampMixin


class GlobalStats(Base, TimestampMixin):
    """Lifetime totals. A single row with id 1."""

    __tablename__ = "global_stats"

    id: Mapped[int] = mapped_column(primary_key=True)
    total_review_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_study_time_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class DailyStats(Base, TimestampMixin):
    __tablename__ = "daily_stats"

    day: Mapped[str] = mapped_column(String(10), primary_key=True)  # YYYY-MM-DD
    review_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    wrong_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    study_time_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reviewed_card_ids: Mapped[str] = mapped_column(Text, nullable=False, default="[]")  # JSON array
