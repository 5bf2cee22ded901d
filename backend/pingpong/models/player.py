from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class Player(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: Optional[str] = Field(default=None, unique=True)
    phone: Optional[str] = None

    # Cumulative points: only finalization adds, only tournament deletion subtracts
    points: int = Field(default=0, index=True)
    # Derived from points by recompute_rankings(); null until the first recompute
    ranking: Optional[int] = Field(default=None)

    active: bool = Field(default=True)
    deactivated_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})
