from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from pingpong.models.player import Player
    from pingpong.models.tournament import Tournament


class GroupPlayerLink(SQLModel, table=True):
    group_id: Optional[int] = Field(default=None, foreign_key="tournamentgroup.id", primary_key=True)
    player_id: Optional[int] = Field(default=None, foreign_key="player.id", primary_key=True)


class TournamentGroup(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str  # "Group A", "Group B", ...
    created_at: datetime = Field(default_factory=datetime.utcnow)

    tournament: "Tournament" = Relationship(back_populates="groups")
    players: List["Player"] = Relationship(link_model=GroupPlayerLink)
