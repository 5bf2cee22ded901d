import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from datetime import date  # noqa: E402
from typing import List  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from pingpong.database import get_session, import_models  # noqa: E402
from pingpong.main import app  # noqa: E402
from pingpong.models.player import Player  # noqa: E402
from pingpong.models.tournament import Tournament, TournamentFormat, TournamentStatus  # noqa: E402
from pingpong.services.notifier import RecordingNotifier, get_notifier  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share the same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. Tables are dropped after every test: rankings span every player row
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a fresh schema"""
    import_models()
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="notifier")
def notifier_fixture() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(name="client")
def client_fixture(session: Session, notifier: RecordingNotifier):
    """Test client on the shared in-memory DB; events land in the notifier fixture"""
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_notifier] = lambda: notifier

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Builders
# ============================================================================


@pytest.fixture
def make_players(session: Session):
    def _make(count: int, prefix: str = "Player") -> List[Player]:
        players = [Player(name=f"{prefix} {i + 1}") for i in range(count)]
        session.add_all(players)
        session.commit()
        for p in players:
            session.refresh(p)
        return players

    return _make


@pytest.fixture
def make_tournament(session: Session):
    def _make(
        fmt: TournamentFormat = TournamentFormat.elimination,
        sets_per_match: int = 3,
        max_players: int = 32,
        status: TournamentStatus = TournamentStatus.pending,
        name: str = "Club Open",
    ) -> Tournament:
        tournament = Tournament(
            name=name,
            format=fmt,
            status=status,
            sets_per_match=sets_per_match,
            max_players=max_players,
            start_date=date(2026, 3, 1),
        )
        session.add(tournament)
        session.commit()
        session.refresh(tournament)
        return tournament

    return _make

