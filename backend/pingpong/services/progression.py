"""
Progression Engine - what happens after a match finishes.

Cohort = all matches sharing (tournament, round, phase). When every match of
a cohort is Finished its winners, in creation order, are paired into the
next round; a single winner closes the tournament.

reconcile_cohort() is idempotent: if the next round already exists nothing
is created. Callers hold the cohort lock from reading to commit so concurrent
completions of a round generate exactly one next round.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from sqlmodel import Session, select

from pingpong.database import transaction
from pingpong.models.match import Match, MatchStatus
from pingpong.models.tournament import Tournament, TournamentFormat, TournamentStatus
from pingpong.services.bracket_generator import build_match, pair_consecutive
from pingpong.services.errors import InvalidStateError, NotFoundError
from pingpong.services.locks import cohort_lock, tournament_lock
from pingpong.services.notifier import Notifier
from pingpong.services.standings import FinalizationResult, after_finalization, finalize_tournament
from pingpong.utils.sql import count_where

logger = logging.getLogger(__name__)


def progression_lock(tournament: Tournament, match: Match) -> threading.Lock:
    """
    Lock guarding progression for this match.
    Round robin finishes on the last match of *any* round, so it locks the
    whole tournament; elimination only needs the match's cohort.
    """
    if TournamentFormat(tournament.format) == TournamentFormat.round_robin:
        return tournament_lock(tournament.id)
    return cohort_lock(tournament.id, match.round_number, match.phase)


class ProgressionState(str, Enum):
    open = "open"                                  # cohort still has unfinished matches
    empty = "empty"                                # no matches / no winners in cohort
    next_round_generated = "next_round_generated"
    already_advanced = "already_advanced"          # next round existed already
    finalized = "finalized"
    waiting = "waiting"                            # round robin: other matches pending
    manual = "manual"                              # format without automatic progression
    closed = "closed"                              # tournament not InProgress


@dataclass
class ProgressionOutcome:
    state: ProgressionState
    matches_created: int = 0
    champion_id: Optional[int] = None
    finalization: Optional[FinalizationResult] = None

    def complete(self, session: Session, notifier: Notifier) -> None:
        """Run post-commit work (ranking rewrite + finish event) if the tournament closed."""
        if self.finalization is not None:
            after_finalization(session, self.finalization, notifier)


def _finalize(session: Session, tournament_id: int, champion_id: Optional[int]) -> ProgressionOutcome:
    result = finalize_tournament(session, tournament_id, champion_id)
    return ProgressionOutcome(
        state=ProgressionState.finalized,
        champion_id=result.champion_id if result else champion_id,
        finalization=result,
    )


def load_cohort(session: Session, tournament_id: int, round_number: int, phase: str) -> List[Match]:
    return list(
        session.exec(
            select(Match)
            .where(
                Match.tournament_id == tournament_id,
                Match.round_number == round_number,
                Match.phase == phase,
            )
            .order_by(Match.sequence_in_round, Match.id)
        ).all()
    )


def reconcile_cohort(session: Session, tournament_id: int, round_number: int, phase: str) -> ProgressionOutcome:
    """
    Bring the cohort's successor up to date. Flushes, never commits.

    Returns the resulting state; safe to call any number of times.
    """
    cohort = load_cohort(session, tournament_id, round_number, phase)
    if not cohort:
        return ProgressionOutcome(state=ProgressionState.empty)

    if any(m.status != MatchStatus.finished for m in cohort):
        return ProgressionOutcome(state=ProgressionState.open)

    # Creation order is the seeding of the next round
    winners = [m.winner_id for m in cohort if m.winner_id is not None]

    if not winners:
        return ProgressionOutcome(state=ProgressionState.empty)
    if len(winners) == 1:
        return _finalize(session, tournament_id, winners[0])

    next_round = round_number + 1
    existing = count_where(
        session,
        Match.id,
        Match.tournament_id == tournament_id,
        Match.round_number == next_round,
        Match.phase == phase,
    )
    if existing:
        return ProgressionOutcome(state=ProgressionState.already_advanced)

    planned = pair_consecutive(winners, round_number=next_round)
    session.add_all([build_match(tournament_id, p, phase=phase) for p in planned])
    session.flush()

    logger.info(
        f"Tournament {tournament_id} {phase} round {round_number} resolved: "
        f"{len(planned)} matches created for round {next_round}"
    )
    return ProgressionOutcome(state=ProgressionState.next_round_generated, matches_created=len(planned))


# ============================================================================
# Per-format progression
# ============================================================================


def _advance_elimination(session: Session, tournament: Tournament, match: Match) -> ProgressionOutcome:
    return reconcile_cohort(session, tournament.id, match.round_number, match.phase)


def _advance_round_robin(session: Session, tournament: Tournament, match: Match) -> ProgressionOutcome:
    remaining = count_where(
        session, Match.id, Match.tournament_id == tournament.id, Match.status != MatchStatus.finished
    )
    if remaining:
        return ProgressionOutcome(state=ProgressionState.waiting)
    # Champion comes from the standings
    return _finalize(session, tournament.id, None)


def _advance_manual(session: Session, tournament: Tournament, match: Match) -> ProgressionOutcome:
    return ProgressionOutcome(state=ProgressionState.manual)


_ADVANCERS: Dict[TournamentFormat, Callable[[Session, Tournament, Match], ProgressionOutcome]] = {
    TournamentFormat.elimination: _advance_elimination,
    TournamentFormat.round_robin: _advance_round_robin,
    TournamentFormat.groups_elimination: _advance_manual,
    TournamentFormat.double_elimination: _advance_manual,
}


def advance_after_match(session: Session, match: Match) -> ProgressionOutcome:
    """Run progression for a match that just became Finished (caller's transaction)."""
    tournament = session.get(Tournament, match.tournament_id)
    if not tournament:
        raise NotFoundError("Tournament not found")
    if tournament.status != TournamentStatus.in_progress:
        return ProgressionOutcome(state=ProgressionState.closed)
    return _ADVANCERS[TournamentFormat(tournament.format)](session, tournament, match)


# ============================================================================
# Completion check (repair path)
# ============================================================================


@dataclass
class CompletionReport:
    finished: bool
    already_finished: bool = False
    pending_matches: int = 0
    total_matches: int = 0
    champion_id: Optional[int] = None


def check_tournament_completion(session: Session, tournament_id: int, notifier: Notifier) -> CompletionReport:
    """
    Finalize an InProgress tournament whose matches are all Finished.

    The champion is the winner of the highest-round match; round robin takes
    the standings leader instead. Nothing changes while any match is still open.
    """
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError("Tournament not found")
    if tournament.status == TournamentStatus.finished:
        return CompletionReport(finished=True, already_finished=True)
    if tournament.status == TournamentStatus.pending:
        raise InvalidStateError("Tournament has not started")

    matches = session.exec(
        select(Match)
        .where(Match.tournament_id == tournament_id)
        .order_by(Match.round_number.desc(), Match.id)
    ).all()
    pending = [m for m in matches if m.status != MatchStatus.finished]
    if pending:
        return CompletionReport(finished=False, pending_matches=len(pending), total_matches=len(matches))

    final_match = next((m for m in matches if m.winner_id is not None), None)
    if final_match is None:
        raise InvalidStateError("Cannot determine the tournament winner")

    champion_id = final_match.winner_id
    if TournamentFormat(tournament.format) == TournamentFormat.round_robin:
        champion_id = None

    with progression_lock(tournament, final_match):
        with transaction(session):
            outcome = _finalize(session, tournament_id, champion_id)
    outcome.complete(session, notifier)

    return CompletionReport(
        finished=True,
        already_finished=outcome.finalization is None,
        total_matches=len(matches),
        champion_id=outcome.champion_id,
    )
