from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from pingpong.models.tournament import Tournament


class TournamentResult(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint("tournament_id", "player_id", name="uq_result_tournament_player"),
        SAUniqueConstraint("tournament_id", "final_position", name="uq_result_tournament_position"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    player_id: int = Field(foreign_key="player.id", index=True)
    final_position: int  # 1-based
    points_awarded: int
    created_at: datetime = Field(default_factory=datetime.utcnow)

    tournament: "Tournament" = Relationship(back_populates="results")
