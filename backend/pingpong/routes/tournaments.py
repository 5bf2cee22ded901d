from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator, model_validator
from sqlmodel import Session, select

from pingpong.database import get_session
from pingpong.models.group import TournamentGroup
from pingpong.models.match import Match
from pingpong.models.tournament import Tournament, TournamentFormat, TournamentStatus
from pingpong.models.tournament_result import TournamentResult
from pingpong.routes.matches import MatchResponse, match_to_response
from pingpong.services.bracket_generator import generate_bracket
from pingpong.services.errors import InvalidStateError
from pingpong.services.notifier import Notifier, get_notifier
from pingpong.services.progression import check_tournament_completion
from pingpong.services.seeding import SEEDING_AUTOMATIC, SEEDING_MANUAL, SeedPosition
from pingpong.services.standings import delete_tournament
from pingpong.services.stats import tournament_stats

router = APIRouter()

MIN_SETS_PER_MATCH = 3
MAX_SETS_PER_MATCH = 7
MIN_PLAYERS = 2
MAX_PLAYERS = 128


def _check_sets_per_match(v):
    if v is None:
        return v
    if v < MIN_SETS_PER_MATCH or v > MAX_SETS_PER_MATCH or v % 2 == 0:
        raise ValueError(f"sets_per_match must be odd and between {MIN_SETS_PER_MATCH} and {MAX_SETS_PER_MATCH}")
    return v


def _check_max_players(v):
    if v is None:
        return v
    if v < MIN_PLAYERS or v > MAX_PLAYERS:
        raise ValueError(f"max_players must be between {MIN_PLAYERS} and {MAX_PLAYERS}")
    return v


class TournamentCreate(BaseModel):
    name: str
    description: Optional[str] = None
    format: TournamentFormat
    sets_per_match: int = 5
    max_players: int = 32
    start_date: date
    end_date: Optional[date] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()

    @field_validator("sets_per_match")
    @classmethod
    def validate_sets_per_match(cls, v):
        return _check_sets_per_match(v)

    @field_validator("max_players")
    @classmethod
    def validate_max_players(cls, v):
        return _check_max_players(v)

    @model_validator(mode="after")
    def validate_date_range(self):
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        return self


class TournamentUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    format: Optional[TournamentFormat] = None
    sets_per_match: Optional[int] = None
    max_players: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if v is not None and (not v or not v.strip()):
            raise ValueError("name cannot be empty")
        return v.strip() if v else v

    @field_validator("sets_per_match")
    @classmethod
    def validate_sets_per_match(cls, v):
        return _check_sets_per_match(v)

    @field_validator("max_players")
    @classmethod
    def validate_max_players(cls, v):
        return _check_max_players(v)

    @model_validator(mode="after")
    def validate_date_range(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        return self


class TournamentResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    format: TournamentFormat
    status: TournamentStatus
    sets_per_match: int
    max_players: int
    points_per_set: int
    start_date: date
    end_date: Optional[date] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class GroupResponse(BaseModel):
    id: int
    name: str
    player_ids: List[int]


class ResultResponse(BaseModel):
    player_id: int
    final_position: int
    points_awarded: int

    class Config:
        from_attributes = True


class TournamentDetailResponse(TournamentResponse):
    matches: List[MatchResponse] = []
    groups: List[GroupResponse] = []
    results: List[ResultResponse] = []


class ManualPositionIn(BaseModel):
    position: int
    player_id: int


class GenerateBracketRequest(BaseModel):
    player_ids: List[int] = []
    seeding_mode: str = SEEDING_AUTOMATIC
    manual_positions: Optional[List[ManualPositionIn]] = None
    group_size: Optional[int] = None

    @field_validator("seeding_mode")
    @classmethod
    def validate_seeding_mode(cls, v):
        if v not in (SEEDING_AUTOMATIC, SEEDING_MANUAL):
            raise ValueError(f"seeding_mode must be '{SEEDING_AUTOMATIC}' or '{SEEDING_MANUAL}'")
        return v


class ManualSeedingRequest(BaseModel):
    positions: List[ManualPositionIn]
    group_size: Optional[int] = None


class GenerateBracketResponse(BaseModel):
    matches_created: int
    groups_created: int


class CompletionResponse(BaseModel):
    finished: bool
    already_finished: bool = False
    pending_matches: int = 0
    total_matches: int = 0
    champion_id: Optional[int] = None


class DeleteTournamentResponse(BaseModel):
    points_removed: int
    total_points_removed: int


def _get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


@router.get("/tournaments", response_model=List[TournamentResponse])
def list_tournaments(
    status: Optional[TournamentStatus] = None,
    format: Optional[TournamentFormat] = None,
    session: Session = Depends(get_session),
):
    """List tournaments, newest first"""
    query = select(Tournament)
    if status is not None:
        query = query.where(Tournament.status == status)
    if format is not None:
        query = query.where(Tournament.format == format)
    return session.exec(query.order_by(Tournament.created_at.desc(), Tournament.id.desc())).all()


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(tournament_data: TournamentCreate, session: Session = Depends(get_session)):
    tournament = Tournament(**tournament_data.model_dump())
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentDetailResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    """Tournament with its matches (and sets), groups and final results"""
    tournament = _get_tournament_or_404(session, tournament_id)

    matches = session.exec(
        select(Match)
        .where(Match.tournament_id == tournament_id)
        .order_by(Match.round_number, Match.phase, Match.sequence_in_round, Match.id)
    ).all()
    groups = session.exec(
        select(TournamentGroup).where(TournamentGroup.tournament_id == tournament_id).order_by(TournamentGroup.id)
    ).all()
    results = session.exec(
        select(TournamentResult)
        .where(TournamentResult.tournament_id == tournament_id)
        .order_by(TournamentResult.final_position)
    ).all()

    return TournamentDetailResponse(
        **TournamentResponse.model_validate(tournament).model_dump(),
        matches=[match_to_response(m) for m in matches],
        groups=[GroupResponse(id=g.id, name=g.name, player_ids=[p.id for p in g.players]) for g in groups],
        results=[ResultResponse.model_validate(r) for r in results],
    )


@router.put("/tournaments/{tournament_id}", response_model=TournamentResponse)
def update_tournament(tournament_id: int, tournament_data: TournamentUpdate, session: Session = Depends(get_session)):
    """Edit a tournament. Only allowed before the bracket exists."""
    tournament = _get_tournament_or_404(session, tournament_id)
    if tournament.status != TournamentStatus.pending:
        raise InvalidStateError("Only Pending tournaments can be edited")

    update_data = tournament_data.model_dump(exclude_unset=True)
    start = update_data.get("start_date", tournament.start_date)
    end = update_data.get("end_date", tournament.end_date)
    if end and end < start:
        raise HTTPException(status_code=422, detail="end_date must be >= start_date")

    for key, value in update_data.items():
        setattr(tournament, key, value)
    tournament.updated_at = datetime.utcnow()

    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.delete("/tournaments/{tournament_id}", response_model=DeleteTournamentResponse)
def delete_tournament_endpoint(tournament_id: int, force: bool = False, session: Session = Depends(get_session)):
    """Delete a tournament; awarded points are taken back and rankings recomputed"""
    return delete_tournament(session, tournament_id, force=force)


@router.post("/tournaments/{tournament_id}/generate-bracket", response_model=GenerateBracketResponse)
def generate_bracket_endpoint(
    tournament_id: int,
    body: GenerateBracketRequest,
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    positions = [SeedPosition(p.position, p.player_id) for p in body.manual_positions or []]
    result = generate_bracket(
        session,
        tournament_id,
        body.player_ids,
        seeding_mode=body.seeding_mode,
        manual_positions=positions,
        group_size=body.group_size,
        notifier=notifier,
    )
    return GenerateBracketResponse(matches_created=result.matches_created, groups_created=result.groups_created)


@router.post("/tournaments/{tournament_id}/manual-seeding", response_model=GenerateBracketResponse)
def manual_seeding_endpoint(
    tournament_id: int,
    body: ManualSeedingRequest,
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    """Shortcut for generate-bracket with seeding_mode=manual"""
    result = generate_bracket(
        session,
        tournament_id,
        [p.player_id for p in body.positions],
        seeding_mode=SEEDING_MANUAL,
        manual_positions=[SeedPosition(p.position, p.player_id) for p in body.positions],
        group_size=body.group_size,
        notifier=notifier,
    )
    return GenerateBracketResponse(matches_created=result.matches_created, groups_created=result.groups_created)


@router.post("/tournaments/{tournament_id}/check-completion", response_model=CompletionResponse)
def check_completion_endpoint(
    tournament_id: int,
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    report = check_tournament_completion(session, tournament_id, notifier)
    return CompletionResponse(
        finished=report.finished,
        already_finished=report.already_finished,
        pending_matches=report.pending_matches,
        total_matches=report.total_matches,
        champion_id=report.champion_id,
    )


@router.get("/tournaments/{tournament_id}/stats")
def get_tournament_stats(tournament_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    return tournament_stats(session, tournament_id)
