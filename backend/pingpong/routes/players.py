from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from sqlalchemy import or_
from sqlmodel import Session, select

from pingpong.database import get_session
from pingpong.models.group import GroupPlayerLink
from pingpong.models.match import Match
from pingpong.models.player import Player
from pingpong.services.errors import InvalidStateError
from pingpong.utils.sql import count_where

router = APIRouter()


class PlayerCreate(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        if v is None or not v.strip():
            return None
        if "@" not in v:
            raise ValueError("email must be a valid address")
        return v.strip().lower()


class PlayerUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if v is not None and (not v or not v.strip()):
            raise ValueError("name cannot be empty")
        return v.strip() if v else v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        if v is None:
            return v
        if "@" not in v:
            raise ValueError("email must be a valid address")
        return v.strip().lower()


class PlayerResponse(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    points: int
    ranking: Optional[int] = None
    active: bool
    created_at: datetime

    class Config:
        from_attributes = True


def _ensure_email_free(session: Session, email: Optional[str], player_id: Optional[int] = None) -> None:
    if not email:
        return
    existing = session.exec(select(Player).where(Player.email == email)).first()
    if existing and existing.id != player_id:
        raise HTTPException(status_code=400, detail="A player with this email already exists")


def _get_player_or_404(session: Session, player_id: int) -> Player:
    player = session.get(Player, player_id)
    if not player:
        raise HTTPException(status_code=404, detail="Player not found")
    return player


@router.get("/players", response_model=List[PlayerResponse])
def list_players(active_only: bool = False, search: Optional[str] = None, session: Session = Depends(get_session)):
    """List players by name"""
    query = select(Player)
    if active_only:
        query = query.where(Player.active == True)  # noqa: E712
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Player.name.ilike(pattern), Player.email.ilike(pattern)))
    return session.exec(query.order_by(Player.name, Player.id)).all()


@router.post("/players", response_model=PlayerResponse, status_code=201)
def create_player(player_data: PlayerCreate, session: Session = Depends(get_session)):
    _ensure_email_free(session, player_data.email)
    player = Player(**player_data.model_dump())
    session.add(player)
    session.commit()
    session.refresh(player)
    return player


@router.get("/players/{player_id}", response_model=PlayerResponse)
def get_player(player_id: int, session: Session = Depends(get_session)):
    return _get_player_or_404(session, player_id)


@router.put("/players/{player_id}", response_model=PlayerResponse)
def update_player(player_id: int, player_data: PlayerUpdate, session: Session = Depends(get_session)):
    """Update identity fields. Points and ranking are engine-owned and never editable here."""
    player = _get_player_or_404(session, player_id)
    update_data = player_data.model_dump(exclude_unset=True)
    if "email" in update_data:
        _ensure_email_free(session, update_data["email"], player_id)

    for key, value in update_data.items():
        setattr(player, key, value)
    player.updated_at = datetime.utcnow()

    session.add(player)
    session.commit()
    session.refresh(player)
    return player


@router.patch("/players/{player_id}/deactivate", response_model=PlayerResponse)
def deactivate_player(player_id: int, session: Session = Depends(get_session)):
    player = _get_player_or_404(session, player_id)
    player.active = False
    player.deactivated_at = datetime.utcnow()
    session.add(player)
    session.commit()
    session.refresh(player)
    return player


@router.patch("/players/{player_id}/reactivate", response_model=PlayerResponse)
def reactivate_player(player_id: int, session: Session = Depends(get_session)):
    player = _get_player_or_404(session, player_id)
    player.active = True
    player.deactivated_at = None
    session.add(player)
    session.commit()
    session.refresh(player)
    return player


@router.delete("/players/{player_id}", status_code=204)
def delete_player(player_id: int, session: Session = Depends(get_session)):
    """Hard delete. Players who appear in any match must be deactivated instead."""
    player = _get_player_or_404(session, player_id)
    played = count_where(
        session, Match.id, or_(Match.player1_id == player_id, Match.player2_id == player_id)
    )
    if played:
        raise InvalidStateError(f"Player has {played} match(es); deactivate instead of deleting")
    if count_where(session, GroupPlayerLink.group_id, GroupPlayerLink.player_id == player_id):
        raise InvalidStateError("Player is assigned to a tournament group; deactivate instead of deleting")

    session.delete(player)
    session.commit()
    return None
