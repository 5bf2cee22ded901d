"""
Result Validator - accept or reject a submitted match result.

The authoritative winner is derived from the set scores; the caller's
declared winner must agree with it. Accepted results overwrite any stored
set detail and flow straight into the Progression Engine inside the same
transaction, serialized per cohort.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from sqlmodel import Session, select

from pingpong.database import transaction
from pingpong.models.match import Match, MatchStatus
from pingpong.models.match_set import MatchSet
from pingpong.models.tournament import Tournament
from pingpong.services.errors import ConflictError, InvalidStateError, NotFoundError, ValidationFailure
from pingpong.services.notifier import MATCH_STARTED, MATCH_UPDATED, Notifier, NullNotifier, safe_emit
from pingpong.services.progression import ProgressionOutcome, advance_after_match, progression_lock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SetScore:
    player1_score: int
    player2_score: int


@dataclass
class ValidatedResult:
    sets_player1: int
    sets_player2: int
    winner_id: int
    set_winners: List[int] = field(default_factory=list)


@dataclass
class ResultOutcome:
    match: Match
    progression: ProgressionOutcome


def sets_to_win(sets_per_match: int) -> int:
    """Best of N: ceil(N / 2) sets win the match."""
    return math.ceil(sets_per_match / 2)


def validate_result(
    match: Match, winner_id: int, sets: Sequence[SetScore], sets_per_match: int
) -> ValidatedResult:
    """
    Check a submitted result against the match and the tournament's set format.

    Raises:
        InvalidStateError: match already Finished
        ValidationFailure: inconsistent set data
        ConflictError: declared winner disagrees with the scores
    """
    if match.status == MatchStatus.finished:
        raise InvalidStateError("Match is already finished")

    if match.is_bye or not match.has_player(winner_id):
        raise ValidationFailure("Winner must be one of the match players")

    if not sets:
        raise ValidationFailure("At least one set is required")

    needed = sets_to_win(sets_per_match)
    won_1 = 0
    won_2 = 0
    set_winners: List[int] = []
    clinched_at: Optional[int] = None

    for index, s in enumerate(sets, start=1):
        if s.player1_score < 0 or s.player2_score < 0:
            raise ValidationFailure(f"Set {index}: scores cannot be negative")
        if s.player1_score == s.player2_score:
            raise ValidationFailure(f"Set {index}: scores cannot be tied ({s.player1_score}-{s.player2_score})")
        if s.player1_score > s.player2_score:
            won_1 += 1
            set_winners.append(match.player1_id)
        else:
            won_2 += 1
            set_winners.append(match.player2_id)
        if clinched_at is None and (won_1 >= needed or won_2 >= needed):
            clinched_at = index

    if won_1 < needed and won_2 < needed:
        missing = needed - max(won_1, won_2)
        raise ValidationFailure(
            f"Match is not complete: {needed} sets are needed to win, "
            f"current {won_1}-{won_2} ({missing} more set(s) required)"
        )

    if won_1 >= needed and won_2 >= needed:
        raise ValidationFailure("Only one player can win the match")

    if len(sets) > sets_per_match:
        raise ValidationFailure(f"Sets cannot exceed {sets_per_match} for this match format")

    if clinched_at is not None and clinched_at < len(sets):
        raise ValidationFailure(
            f"Match was decided after set {clinched_at}; additional sets cannot be recorded"
        )

    actual_winner = match.player1_id if won_1 >= needed else match.player2_id
    if winner_id != actual_winner:
        raise ConflictError(
            f"Declared winner {winner_id} does not match the set results (actual winner: {actual_winner})"
        )

    return ValidatedResult(sets_player1=won_1, sets_player2=won_2, winner_id=actual_winner, set_winners=set_winners)


def apply_result(session: Session, match: Match, result: ValidatedResult, sets: Sequence[SetScore]) -> None:
    """Write the accepted result; replaces all previously stored sets."""
    match.sets_player1 = result.sets_player1
    match.sets_player2 = result.sets_player2
    match.winner_id = result.winner_id
    match.status = MatchStatus.finished
    match.completed_at = datetime.utcnow()
    session.add(match)

    for old in session.exec(select(MatchSet).where(MatchSet.match_id == match.id)).all():
        session.delete(old)
    # Deletes must reach the DB before re-inserting the same set numbers
    session.flush()

    session.add_all(
        [
            MatchSet(
                match_id=match.id,
                set_number=number,
                player1_points=s.player1_score,
                player2_points=s.player2_score,
                winner_id=winner,
            )
            for number, (s, winner) in enumerate(zip(sets, result.set_winners), start=1)
        ]
    )
    session.flush()


def record_result(
    session: Session,
    match_id: int,
    winner_id: int,
    sets: Sequence[SetScore],
    notifier: Optional[Notifier] = None,
    status: Optional[str] = None,
) -> ResultOutcome:
    """
    Validate and persist a match result, then run progression.

    Everything from re-reading the match to the commit happens under the
    progression lock, so the last two results of a round cannot both
    generate the next round.
    """
    notifier = notifier or NullNotifier()

    if status is not None and status != MatchStatus.finished:
        raise ValidationFailure(f"Results can only be recorded with status {MatchStatus.finished.value}")

    match = session.get(Match, match_id)
    if not match:
        raise NotFoundError("Match not found")

    tournament = session.get(Tournament, match.tournament_id)
    if not tournament:
        raise NotFoundError("Tournament not found")

    with progression_lock(tournament, match):
        session.refresh(match)

        result = validate_result(match, winner_id, sets, tournament.sets_per_match)

        with transaction(session):
            apply_result(session, match, result, sets)
            outcome = advance_after_match(session, match)

    session.refresh(match)
    logger.info(
        f"Result accepted for match {match.id}: {result.sets_player1}-{result.sets_player2}, "
        f"winner {result.winner_id}, progression {outcome.state}"
    )

    safe_emit(
        notifier,
        match.tournament_id,
        MATCH_UPDATED,
        {
            "match_id": match.id,
            "tournament_id": match.tournament_id,
            "result": {
                "sets_player1": result.sets_player1,
                "sets_player2": result.sets_player2,
                "winner_id": result.winner_id,
            },
        },
    )
    outcome.complete(session, notifier)
    return ResultOutcome(match=match, progression=outcome)


def start_match(session: Session, match_id: int, notifier: Optional[Notifier] = None) -> Match:
    """Pending -> InProgress for a match with two players."""
    notifier = notifier or NullNotifier()

    match = session.get(Match, match_id)
    if not match:
        raise NotFoundError("Match not found")
    if match.status != MatchStatus.pending:
        raise InvalidStateError("Match is not pending")
    if match.is_bye:
        raise InvalidStateError("A bye cannot be started")

    with transaction(session):
        match.status = MatchStatus.in_progress
        match.started_at = datetime.utcnow()
        session.add(match)

    session.refresh(match)
    safe_emit(notifier, match.tournament_id, MATCH_STARTED, {"match_id": match.id, "tournament_id": match.tournament_id})
    return match
