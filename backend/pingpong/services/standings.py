"""
Standings Calculator - final placement, point awards and global ranking.

Finalization happens once per tournament. Placement is by raw win count
over every match of the tournament (bye-advances included). Ties keep the
order in which players first won, scanning later rounds first; an optional
set-difference tiebreak can be switched on with STANDINGS_TIEBREAK.

The ranking table is rewritten in one locked read-all/write-all pass.
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from sqlmodel import Session, select

from pingpong.database import transaction
from pingpong.models.group import GroupPlayerLink, TournamentGroup
from pingpong.models.match import Match, MatchStatus
from pingpong.models.match_set import MatchSet
from pingpong.models.player import Player
from pingpong.models.tournament import Tournament, TournamentStatus
from pingpong.models.tournament_result import TournamentResult
from pingpong.services.errors import InvalidStateError, NotFoundError
from pingpong.services.notifier import TOURNAMENT_FINISHED, Notifier, NullNotifier, safe_emit

logger = logging.getLogger(__name__)

POINTS_BY_POSITION = {
    1: 100,
    2: 75,
    3: 50,
    4: 25,
    5: 10,
    6: 10,
    7: 5,
    8: 5,
}
PARTICIPATION_POINTS = 1

_RANKING_LOCK = threading.Lock()


class Tiebreak(str, Enum):
    input_order = "input_order"
    set_difference = "set_difference"


DEFAULT_TIEBREAK = Tiebreak(os.getenv("STANDINGS_TIEBREAK", Tiebreak.input_order.value))


@dataclass
class Standing:
    player_id: int
    wins: int
    set_difference: int = 0
    position: int = 0
    points: int = 0


@dataclass
class FinalizationResult:
    tournament_id: int
    champion_id: Optional[int]
    standings: List[Standing] = field(default_factory=list)

    def payload(self) -> Dict[str, Any]:
        return {
            "tournament_id": self.tournament_id,
            "winner": self.champion_id,
            "results": [
                {"player_id": s.player_id, "final_position": s.position, "points_awarded": s.points}
                for s in self.standings
            ],
        }


def points_for_position(position: int) -> int:
    return POINTS_BY_POSITION.get(position, PARTICIPATION_POINTS)


def calculate_final_positions(
    matches: Sequence[Match], tiebreak: Tiebreak = Tiebreak.input_order
) -> List[Standing]:
    """
    Rank every participant of the given matches.

    Order: wins desc, then (set_difference only) sets won - sets lost desc,
    then input order. Input order is the order of each player's first win
    with matches scanned round desc / id asc; players without a win follow
    in order of appearance.
    """
    ordered = sorted(matches, key=lambda m: (-m.round_number, m.id or 0))

    wins: Dict[int, int] = {}
    for m in ordered:
        if m.winner_id is not None:
            wins[m.winner_id] = wins.get(m.winner_id, 0) + 1

    winless: List[int] = []
    for m in ordered:
        for pid in (m.player1_id, m.player2_id):
            if pid is not None and pid not in wins and pid not in winless:
                winless.append(pid)

    set_diff: Dict[int, int] = {}
    for m in ordered:
        if m.status != MatchStatus.finished or m.player2_id is None:
            continue
        set_diff[m.player1_id] = set_diff.get(m.player1_id, 0) + m.sets_player1 - m.sets_player2
        set_diff[m.player2_id] = set_diff.get(m.player2_id, 0) + m.sets_player2 - m.sets_player1

    standings = [
        Standing(player_id=pid, wins=wins.get(pid, 0), set_difference=set_diff.get(pid, 0))
        for pid in list(wins) + winless
    ]

    if tiebreak == Tiebreak.set_difference:
        standings.sort(key=lambda s: (-s.wins, -s.set_difference))
    else:
        standings.sort(key=lambda s: -s.wins)

    for position, s in enumerate(standings, start=1):
        s.position = position
        s.points = points_for_position(position)
    return standings


def finalize_tournament(
    session: Session,
    tournament_id: int,
    champion_id: Optional[int] = None,
    tiebreak: Optional[Tiebreak] = None,
) -> Optional[FinalizationResult]:
    """
    Write TournamentResult rows, award points and mark the tournament Finished.

    Runs inside the caller's transaction (flush only). Returns None when the
    tournament is already Finished, so a second call never re-awards points.
    Call after_finalization() once the caller has committed.
    """
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError("Tournament not found")
    if tournament.status == TournamentStatus.finished:
        logger.info(f"Tournament {tournament_id} is already finished")
        return None
    if tournament.status == TournamentStatus.pending:
        raise InvalidStateError("Cannot finalize a tournament that has not started")

    existing = session.exec(
        select(TournamentResult).where(TournamentResult.tournament_id == tournament_id)
    ).first()
    if existing:
        logger.warning(f"Tournament {tournament_id} already has results; not finalizing again")
        return None

    matches = session.exec(
        select(Match)
        .where(Match.tournament_id == tournament_id)
        .order_by(Match.round_number.desc(), Match.id)
    ).all()
    standings = calculate_final_positions(matches, tiebreak or DEFAULT_TIEBREAK)

    for s in standings:
        session.add(
            TournamentResult(
                tournament_id=tournament_id,
                player_id=s.player_id,
                final_position=s.position,
                points_awarded=s.points,
            )
        )
        player = session.get(Player, s.player_id)
        # SQL-side increment; concurrent finalizations must not lose points
        player.points = Player.points + s.points
        session.add(player)

    tournament.status = TournamentStatus.finished
    tournament.end_date = date.today()
    tournament.updated_at = datetime.utcnow()
    session.add(tournament)
    session.flush()

    if champion_id is None and standings:
        champion_id = standings[0].player_id

    logger.info(
        f"Tournament {tournament_id} finalized: champion {champion_id}, "
        f"{len(standings)} results, {sum(s.points for s in standings)} points awarded"
    )
    return FinalizationResult(tournament_id=tournament_id, champion_id=champion_id, standings=standings)


def recompute_rankings(session: Session) -> int:
    """
    Rewrite Player.ranking for every player: points desc, id asc, ranks 1..N.
    One transaction, serialized against other recomputes. Returns player count.
    """
    with _RANKING_LOCK:
        with transaction(session):
            players = session.exec(select(Player).order_by(Player.points.desc(), Player.id)).all()
            for rank, player in enumerate(players, start=1):
                if player.ranking != rank:
                    player.ranking = rank
                    session.add(player)
    return len(players)


def after_finalization(session: Session, result: FinalizationResult, notifier: Optional[Notifier] = None) -> None:
    """Post-commit half of finalization: ranking rewrite, then notification."""
    recompute_rankings(session)
    safe_emit(notifier or NullNotifier(), result.tournament_id, TOURNAMENT_FINISHED, result.payload())


def delete_tournament(
    session: Session,
    tournament_id: int,
    force: bool = False,
) -> Dict[str, int]:
    """
    Delete a tournament, reversing any points it awarded.

    Without force, a tournament that has matches is refused. Returns
    {"points_removed": <result rows>, "total_points_removed": <sum>}.
    """
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError("Tournament not found")

    matches = session.exec(select(Match).where(Match.tournament_id == tournament_id)).all()
    if matches and not force:
        raise InvalidStateError(
            "Tournament has matches; use force=true to delete it with all its data"
        )

    with transaction(session):
        results = session.exec(
            select(TournamentResult).where(TournamentResult.tournament_id == tournament_id)
        ).all()
        total_removed = 0
        for r in results:
            player = session.get(Player, r.player_id)
            if player:
                player.points = Player.points - r.points_awarded
                session.add(player)
            total_removed += r.points_awarded
            session.delete(r)

        for m in matches:
            for s in session.exec(select(MatchSet).where(MatchSet.match_id == m.id)).all():
                session.delete(s)
        session.flush()
        for m in matches:
            session.delete(m)

        groups = session.exec(select(TournamentGroup).where(TournamentGroup.tournament_id == tournament_id)).all()
        for g in groups:
            for link in session.exec(select(GroupPlayerLink).where(GroupPlayerLink.group_id == g.id)).all():
                session.delete(link)
        session.flush()
        for g in groups:
            session.delete(g)
        session.flush()

        session.delete(tournament)

    logger.info(
        f"Tournament {tournament_id} deleted: {len(matches)} matches, "
        f"{len(results)} results, {total_removed} points reversed"
    )
    if results:
        recompute_rankings(session)

    return {"points_removed": len(results), "total_points_removed": total_removed}
