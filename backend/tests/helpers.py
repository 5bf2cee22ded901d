from typing import List, Optional

from sqlmodel import Session, select

from pingpong.models.match import Match, MatchStatus
from pingpong.services.result_validator import SetScore, sets_to_win


def winning_sets(match: Match, winner_id: int, sets_per_match: int = 3) -> List[SetScore]:
    """Straight-sets win for winner_id."""
    needed = sets_to_win(sets_per_match)
    if winner_id == match.player1_id:
        return [SetScore(11, 6)] * needed
    return [SetScore(6, 11)] * needed


def open_matches(session: Session, tournament_id: int, round_number: Optional[int] = None) -> List[Match]:
    query = select(Match).where(Match.tournament_id == tournament_id, Match.status != MatchStatus.finished)
    if round_number is not None:
        query = query.where(Match.round_number == round_number)
    return list(session.exec(query.order_by(Match.round_number, Match.sequence_in_round, Match.id)).all())


def round_matches(session: Session, tournament_id: int, round_number: int) -> List[Match]:
    return list(
        session.exec(
            select(Match)
            .where(Match.tournament_id == tournament_id, Match.round_number == round_number)
            .order_by(Match.sequence_in_round, Match.id)
        ).all()
    )


def play_out(session: Session, tournament_id: int, sets_per_match: int = 3, notifier=None, pick_winner=None) -> int:
    """
    Record results for every open match, round after round, until nothing is
    left to play. player1 wins unless pick_winner(match) says otherwise.
    Returns the number of results recorded.
    """
    from pingpong.services.result_validator import record_result

    recorded = 0
    while True:
        matches = open_matches(session, tournament_id)
        if not matches:
            return recorded
        for m in matches:
            winner = pick_winner(m) if pick_winner else m.player1_id
            record_result(session, m.id, winner, winning_sets(m, winner, sets_per_match), notifier=notifier)
            recorded += 1
