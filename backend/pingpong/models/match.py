from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from pingpong.models.match_set import MatchSet
    from pingpong.models.tournament import Tournament


class MatchStatus(str, Enum):
    pending = "Pending"
    in_progress = "InProgress"
    finished = "Finished"


DEFAULT_PHASE = "Principal"


class Match(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)

    # player2_id is null for a bye
    player1_id: int = Field(foreign_key="player.id")
    player2_id: Optional[int] = Field(default=None, foreign_key="player.id")

    round_number: int
    phase: str = Field(default=DEFAULT_PHASE)
    sequence_in_round: int = Field(default=1)  # creation order inside (round, phase)

    status: MatchStatus = Field(
        default=MatchStatus.pending, sa_column=Column(String, nullable=False, default="Pending")
    )
    sets_player1: int = Field(default=0)
    sets_player2: int = Field(default=0)
    winner_id: Optional[int] = Field(default=None, foreign_key="player.id")

    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="matches")
    sets: List["MatchSet"] = Relationship(
        back_populates="match", sa_relationship_kwargs={"order_by": "MatchSet.set_number"}
    )

    @property
    def is_bye(self) -> bool:
        return self.player2_id is None

    def has_player(self, player_id: int) -> bool:
        return player_id is not None and player_id in (self.player1_id, self.player2_id)
