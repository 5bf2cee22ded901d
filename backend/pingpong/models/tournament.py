from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from pingpong.models.group import TournamentGroup
    from pingpong.models.match import Match
    from pingpong.models.tournament_result import TournamentResult


class TournamentFormat(str, Enum):
    elimination = "elimination"
    round_robin = "round_robin"
    groups_elimination = "groups_elimination"
    double_elimination = "double_elimination"  # declared, no generator


class TournamentStatus(str, Enum):
    pending = "Pending"
    in_progress = "InProgress"
    finished = "Finished"


POINTS_PER_SET = 11


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    format: TournamentFormat = Field(sa_column=Column(String, nullable=False))
    status: TournamentStatus = Field(
        default=TournamentStatus.pending, sa_column=Column(String, nullable=False, default="Pending")
    )
    sets_per_match: int = Field(default=5)  # odd, 3..7 (best of N)
    max_players: int = Field(default=32)
    points_per_set: int = Field(default=POINTS_PER_SET)
    start_date: date
    end_date: Optional[date] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    matches: List["Match"] = Relationship(back_populates="tournament")
    groups: List["TournamentGroup"] = Relationship(back_populates="tournament")
    results: List["TournamentResult"] = Relationship(back_populates="tournament")
