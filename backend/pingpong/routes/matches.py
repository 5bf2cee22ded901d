"""
Match runtime: listing, start, and result submission.

PUT /matches/{id}/result is the only way a result enters the system; it runs
validation, persistence and progression as one step.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from pingpong.database import get_session
from pingpong.models.match import Match, MatchStatus
from pingpong.models.tournament import Tournament
from pingpong.services.notifier import Notifier, get_notifier
from pingpong.services.progression import ProgressionState
from pingpong.services.result_validator import SetScore, record_result, start_match
from pingpong.services.stats import tournament_completion_stats

router = APIRouter()


class MatchSetResponse(BaseModel):
    set_number: int
    player1_points: int
    player2_points: int
    winner_id: int

    class Config:
        from_attributes = True


class MatchResponse(BaseModel):
    id: int
    tournament_id: int
    player1_id: int
    player2_id: Optional[int] = None
    round_number: int
    phase: str
    sequence_in_round: int
    status: str
    sets_player1: int
    sets_player2: int
    winner_id: Optional[int] = None
    is_bye: bool
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    sets: List[MatchSetResponse] = []


class SetScoreIn(BaseModel):
    player1_score: int
    player2_score: int


class MatchResultRequest(BaseModel):
    winner_id: int
    sets: List[SetScoreIn]
    status: Optional[str] = None


class MatchResultResponse(BaseModel):
    match: MatchResponse
    next_round_matches_created: int = 0
    tournament_finished: bool = False


class TournamentCompletionEntry(BaseModel):
    id: int
    name: str
    status: str
    total_matches: int
    completed_matches: int
    has_results: bool
    completion_percentage: int


def match_to_response(m: Match) -> MatchResponse:
    return MatchResponse(
        id=m.id,
        tournament_id=m.tournament_id,
        player1_id=m.player1_id,
        player2_id=m.player2_id,
        round_number=m.round_number,
        phase=m.phase,
        sequence_in_round=m.sequence_in_round,
        status=m.status,
        sets_player1=m.sets_player1,
        sets_player2=m.sets_player2,
        winner_id=m.winner_id,
        is_bye=m.is_bye,
        started_at=m.started_at,
        completed_at=m.completed_at,
        sets=[MatchSetResponse.model_validate(s) for s in m.sets],
    )


def _ensure_tournament(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


@router.get("/matches/tournament/{tournament_id}", response_model=List[MatchResponse])
def list_tournament_matches(
    tournament_id: int,
    round_number: Optional[int] = None,
    phase: Optional[str] = None,
    status: Optional[MatchStatus] = None,
    session: Session = Depends(get_session),
):
    """Matches of a tournament ordered by round, then creation order within the round"""
    _ensure_tournament(session, tournament_id)

    query = select(Match).where(Match.tournament_id == tournament_id)
    if round_number is not None:
        query = query.where(Match.round_number == round_number)
    if phase is not None:
        query = query.where(Match.phase == phase)
    if status is not None:
        query = query.where(Match.status == status)

    matches = session.exec(query.order_by(Match.round_number, Match.phase, Match.sequence_in_round, Match.id)).all()
    return [match_to_response(m) for m in matches]


@router.get("/matches/in-progress/tournament/{tournament_id}", response_model=List[MatchResponse])
def list_in_progress_matches(tournament_id: int, session: Session = Depends(get_session)):
    _ensure_tournament(session, tournament_id)
    matches = session.exec(
        select(Match)
        .where(Match.tournament_id == tournament_id, Match.status == MatchStatus.in_progress)
        .order_by(Match.started_at, Match.id)
    ).all()
    return [match_to_response(m) for m in matches]


@router.get("/matches/tournament-completion-stats", response_model=List[TournamentCompletionEntry])
def get_tournament_completion_stats(session: Session = Depends(get_session)):
    """Finished vs total matches for every tournament"""
    return tournament_completion_stats(session)


@router.get("/matches/{match_id}", response_model=MatchResponse)
def get_match(match_id: int, session: Session = Depends(get_session)):
    match = session.get(Match, match_id)
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")
    return match_to_response(match)


@router.put("/matches/{match_id}/start", response_model=MatchResponse)
def start_match_endpoint(
    match_id: int,
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return match_to_response(start_match(session, match_id, notifier))


@router.put("/matches/{match_id}/result", response_model=MatchResultResponse)
def submit_match_result(
    match_id: int,
    body: MatchResultRequest,
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Record a result.

    Errors come back as {"detail", "error"}:
    400 invalid_state (already finished), 404 not_found,
    409 conflict (winner disagrees with scores), 422 validation_failure.
    """
    outcome = record_result(
        session,
        match_id,
        winner_id=body.winner_id,
        sets=[SetScore(s.player1_score, s.player2_score) for s in body.sets],
        notifier=notifier,
        status=body.status,
    )
    progression = outcome.progression
    return MatchResultResponse(
        match=match_to_response(outcome.match),
        next_round_matches_created=progression.matches_created,
        tournament_finished=progression.state == ProgressionState.finalized,
    )
