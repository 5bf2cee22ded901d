from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from pingpong.models.match import Match


class MatchSet(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("match_id", "set_number", name="uq_match_set_number"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(foreign_key="match.id", index=True)
    set_number: int  # 1-based, contiguous
    player1_points: int
    player2_points: int
    winner_id: int = Field(foreign_key="player.id")

    match: "Match" = Relationship(back_populates="sets")
