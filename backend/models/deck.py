"""Deck model: a named collection of phrase cards and its study queue."""

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class Deck(Base, TimestampMixin):
    """A deck owning cards, the pending study order and lifetime totals."""

    __tablename__ = "decks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    queue: Mapped[str] = mapped_column(Text, nullable=False, default="[]")  # JSON array of card ids
    total_study_time_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_review_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    cards: Mapped[list["Card"]] = relationship(  # type: ignore[name-defined] # noqa: F821
        back_populates="deck", cascade="all, delete-orphan"
    )
    session_logs: Mapped[list["SessionLog"]] = relationship(  # type: ignore[name-defined] # noqa: F821
        back_populates="deck", cascade="all, delete-orphan"
    )
