import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Iterator

from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./tournament.db")

_is_sqlite = DATABASE_URL.startswith("sqlite")
_connect_args = {"check_same_thread": False} if _is_sqlite else {}
_echo = os.getenv("SQL_ECHO", "false").lower() in ("true", "1", "yes")

if _is_sqlite and ":memory:" not in DATABASE_URL:
    db_path = DATABASE_URL.replace("sqlite:///", "", 1)
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

engine: Engine = create_engine(
    DATABASE_URL,
    echo=_echo,
    connect_args=_connect_args,
)


def get_session() -> Generator[Session, None, None]:
    """Get database session"""
    with Session(engine) as session:
        yield session


def import_models() -> None:
    """Import all models so they are registered with SQLModel metadata"""
    from pingpong.models.group import GroupPlayerLink, TournamentGroup  # noqa: F401
    from pingpong.models.match import Match  # noqa: F401
    from pingpong.models.match_set import MatchSet  # noqa: F401
    from pingpong.models.player import Player  # noqa: F401
    from pingpong.models.tournament import Tournament  # noqa: F401
    from pingpong.models.tournament_result import TournamentResult  # noqa: F401


def init_db() -> None:
    """Initialize database - create all tables"""
    import_models()
    SQLModel.metadata.create_all(engine)


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """
    Run one logical engine step inside the session's transaction.
    - Commits on success
    - Rolls back on exception

    Usage:
        with transaction(session):
            session.add(...)
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
