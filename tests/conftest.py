import os
import tempfile
from pathlib import Path

# Point the app's default engine at a throwaway database before it is imported.
os.environ.setdefault(
    "RECALLFLOW_DATABASE_URL",
    f"sqlite+aiosqlite:///{Path(tempfile.mkdtemp()) / 'recallflow-test.db'}",
)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from backend.api import deck_locks, exam_router, study_router  # noqa: E402
from backend.database import get_session  # noqa: E402
from backend.main import app  # noqa: E402
from backend.models import Base  # noqa: E402
from backend.srs.records import CardRecord, DeckRecord  # noqa: E402


class RecordingEvents:
    """Session event sink that remembers every call in order."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def on_review(self, card_id: str, is_correct: bool) -> None:
        self.calls.append(("review", card_id, is_correct))

    def on_time_update(self, delta_seconds: int) -> None:
        self.calls.append(("time", delta_seconds))

    def on_update_deck(self, deck: DeckRecord) -> None:
        self.calls.append(("deck", deck))

    def on_session_complete(self, duration_seconds: int, correct_count: int, wrong_count: int) -> None:
        self.calls.append(("complete", duration_seconds, correct_count, wrong_count))

    def of_kind(self, kind: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == kind]

    @property
    def kinds(self) -> list[str]:
        return [call[0] for call in self.calls]


def make_deck(*card_ids: str, queue: list[str] | None = None, name: str = "Test deck") -> DeckRecord:
    cards = [CardRecord(id=card_id, english=f"en-{card_id}", chinese=f"zh-{card_id}") for card_id in card_ids]
    return DeckRecord(
        id="deck-1",
        name=name,
        cards=cards,
        queue=list(card_ids) if queue is None else queue,
    )


@pytest.fixture
def events() -> RecordingEvents:
    return RecordingEvents()


@pytest.fixture
def deck_factory():
    return make_deck


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'recallflow.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def _session_override():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session_override
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()
    study_router._active_sessions.clear()
    exam_router._active_exams.clear()
    deck_locks._busy_decks.clear()
