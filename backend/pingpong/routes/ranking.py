from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlmodel import Session

from pingpong.database import get_session
from pingpong.models.tournament import TournamentStatus
from pingpong.services.standings import recompute_rankings
from pingpong.services.stats import (
    global_stats,
    leaders,
    player_history,
    player_stats,
    ranking_table,
    top_players,
    tournament_history,
    tournament_results,
)

router = APIRouter()


class RankingEntryResponse(BaseModel):
    rank: int
    player_id: int
    name: str
    points: int
    wins: int
    losses: int
    total_matches: int
    win_rate: int
    trend: str
    tournaments_played: int
    tournaments_won: int


class HistoryEntryResponse(BaseModel):
    tournament_id: int
    tournament_name: str
    played_on: Optional[date] = None
    position: int
    points_earned: int
    total_points: int


class PlayerHistoryResponse(BaseModel):
    player_id: int
    name: str
    points: int
    points_evolution: List[HistoryEntryResponse]


class PodiumEntry(BaseModel):
    position: int
    player_id: int
    name: str


class TournamentHistoryEntry(BaseModel):
    id: int
    name: str
    format: str
    status: str
    start_date: date
    end_date: Optional[date] = None
    matches: int
    results: int
    podium: List[PodiumEntry]


class TournamentResultEntry(BaseModel):
    position: int
    player_id: int
    name: str
    ranking: Optional[int] = None
    points_awarded: int


@router.get("/ranking", response_model=List[RankingEntryResponse])
def get_ranking(
    search: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    session: Session = Depends(get_session),
):
    """Players with points, ranked by points (only players who have earned points appear)"""
    return [e.to_dict() for e in ranking_table(session, limit=limit, search=search)]


@router.get("/ranking/top", response_model=List[RankingEntryResponse])
def get_top_ranking(session: Session = Depends(get_session)):
    return [e.to_dict() for e in top_players(session)]


@router.get("/ranking/stats")
def get_global_stats(session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Club totals: players, points, tournaments, matches"""
    return global_stats(session)


@router.get("/ranking/leaders")
def get_leaders(session: Session = Depends(get_session)) -> Dict[str, Any]:
    return leaders(session)


@router.get("/ranking/tournaments", response_model=List[TournamentHistoryEntry])
def get_tournament_history(
    status: Optional[TournamentStatus] = None,
    limit: int = Query(default=10, ge=1, le=100),
    session: Session = Depends(get_session),
):
    """Newest tournaments first, each with its podium"""
    return tournament_history(session, status=status, limit=limit)


@router.post("/ranking/recompute")
def recompute_ranking(session: Session = Depends(get_session)) -> Dict[str, int]:
    """Rewrite every player's ranking from current points"""
    return {"players_ranked": recompute_rankings(session)}


@router.get("/ranking/players/{player_id}/stats")
def get_player_stats(player_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    return player_stats(session, player_id)


@router.get("/ranking/players/{player_id}/history", response_model=PlayerHistoryResponse)
def get_player_history(
    player_id: int,
    limit: int = Query(default=10, ge=1, le=100),
    session: Session = Depends(get_session),
):
    """Recent tournament results, oldest first, with running points total"""
    history = player_history(session, player_id, limit=limit)
    return PlayerHistoryResponse(
        player_id=history.player_id,
        name=history.name,
        points=history.points,
        points_evolution=[HistoryEntryResponse(**vars(e)) for e in history.entries],
    )


@router.get("/ranking/tournaments/{tournament_id}/results", response_model=List[TournamentResultEntry])
def get_tournament_results(tournament_id: int, session: Session = Depends(get_session)):
    return tournament_results(session, tournament_id)
