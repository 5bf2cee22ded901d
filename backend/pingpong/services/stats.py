"""
Statistics - read-side aggregations over tournaments, matches and results.

Nothing in here writes. Ranking views only list players with points > 0;
rank numbers are assigned over that filtered list, points desc then id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import or_
from sqlmodel import Session, select

from pingpong.models.match import Match, MatchStatus
from pingpong.models.player import Player
from pingpong.models.tournament import Tournament, TournamentStatus
from pingpong.models.tournament_result import TournamentResult
from pingpong.services.errors import NotFoundError
from pingpong.utils.sql import count_where

TREND_WINDOW = 5
TOP_PLAYERS = 10

TREND_UP = "up"
TREND_STABLE = "stable"
TREND_DOWN = "down"


def _percent(part: int, total: int) -> int:
    return round(part * 100 / total) if total else 0


# ============================================================================
# Tournament progress
# ============================================================================


def tournament_stats(session: Session, tournament_id: int) -> Dict[str, Any]:
    """Match counts by status, completion percent and distinct players."""
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError("Tournament not found")

    matches = session.exec(select(Match).where(Match.tournament_id == tournament_id)).all()
    by_status = {status: 0 for status in MatchStatus}
    players = set()
    for m in matches:
        by_status[MatchStatus(m.status)] += 1
        players.add(m.player1_id)
        if m.player2_id is not None:
            players.add(m.player2_id)

    return {
        "tournament": {
            "id": tournament.id,
            "name": tournament.name,
            "format": tournament.format,
            "status": tournament.status,
        },
        "matches": {
            "total": len(matches),
            "completed": by_status[MatchStatus.finished],
            "pending": by_status[MatchStatus.pending],
            "in_progress": by_status[MatchStatus.in_progress],
            "progress": _percent(by_status[MatchStatus.finished], len(matches)),
        },
        "players": len(players),
    }


# ============================================================================
# Player records
# ============================================================================


def finished_matches_for(session: Session, player_id: int) -> List[Match]:
    """Finished matches of a player in completion order (oldest first)."""
    return list(
        session.exec(
            select(Match)
            .where(
                or_(Match.player1_id == player_id, Match.player2_id == player_id),
                Match.status == MatchStatus.finished,
            )
            .order_by(Match.completed_at, Match.id)
        ).all()
    )


def trend_for(matches: Sequence[Match], player_id: int) -> str:
    """4+ wins in the last five finished matches is up, 1 or fewer is down."""
    recent = list(matches)[-TREND_WINDOW:]
    recent_wins = sum(1 for m in recent if m.winner_id == player_id)
    if recent_wins >= 4:
        return TREND_UP
    if recent_wins <= 1:
        return TREND_DOWN
    return TREND_STABLE


@dataclass
class RankingEntry:
    rank: int
    player_id: int
    name: str
    points: int
    wins: int = 0
    losses: int = 0
    total_matches: int = 0
    win_rate: int = 0
    trend: str = TREND_STABLE
    tournaments_played: int = 0
    tournaments_won: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "player_id": self.player_id,
            "name": self.name,
            "points": self.points,
            "wins": self.wins,
            "losses": self.losses,
            "total_matches": self.total_matches,
            "win_rate": self.win_rate,
            "trend": self.trend,
            "tournaments_played": self.tournaments_played,
            "tournaments_won": self.tournaments_won,
        }


def _ranking_entry(session: Session, rank: int, player: Player) -> RankingEntry:
    matches = finished_matches_for(session, player.id)
    wins = sum(1 for m in matches if m.winner_id == player.id)
    results = session.exec(select(TournamentResult).where(TournamentResult.player_id == player.id)).all()
    return RankingEntry(
        rank=rank,
        player_id=player.id,
        name=player.name,
        points=player.points,
        wins=wins,
        losses=len(matches) - wins,
        total_matches=len(matches),
        win_rate=_percent(wins, len(matches)),
        trend=trend_for(matches, player.id),
        tournaments_played=len(results),
        tournaments_won=sum(1 for r in results if r.final_position == 1),
    )


def ranking_table(session: Session, limit: Optional[int] = None, search: Optional[str] = None) -> List[RankingEntry]:
    """Players with points, best first. ``search`` matches name or email (case-insensitive)."""
    players = session.exec(
        select(Player).where(Player.points > 0).order_by(Player.points.desc(), Player.id)
    ).all()

    entries: List[RankingEntry] = []
    for rank, player in enumerate(players, start=1):
        if search:
            needle = search.lower()
            if needle not in player.name.lower() and needle not in (player.email or "").lower():
                continue
        entries.append(_ranking_entry(session, rank, player))
        if limit is not None and len(entries) >= limit:
            break
    return entries


def top_players(session: Session) -> List[RankingEntry]:
    return ranking_table(session, limit=TOP_PLAYERS)


def player_stats(session: Session, player_id: int) -> Dict[str, Any]:
    player = session.get(Player, player_id)
    if not player:
        raise NotFoundError("Player not found")

    all_matches = session.exec(
        select(Match).where(or_(Match.player1_id == player_id, Match.player2_id == player_id))
    ).all()
    finished = [m for m in all_matches if m.status == MatchStatus.finished]

    wins = 0
    sets_won = 0
    sets_lost = 0
    tournaments = set()
    for m in finished:
        tournaments.add(m.tournament_id)
        if m.winner_id == player_id:
            wins += 1
        if m.player1_id == player_id:
            sets_won += m.sets_player1
            sets_lost += m.sets_player2
        else:
            sets_won += m.sets_player2
            sets_lost += m.sets_player1

    results = session.exec(
        select(TournamentResult)
        .where(TournamentResult.player_id == player_id)
        .order_by(TournamentResult.final_position)
    ).all()
    points_earned = sum(r.points_awarded for r in results)

    return {
        "player": {"id": player.id, "name": player.name, "ranking": player.ranking, "points": player.points},
        "matches": {
            "total": len(all_matches),
            "finished": len(finished),
            "in_progress": sum(1 for m in all_matches if m.status == MatchStatus.in_progress),
            "pending": sum(1 for m in all_matches if m.status == MatchStatus.pending),
            "wins": wins,
            "losses": len(finished) - wins,
            "win_rate": _percent(wins, len(finished)),
        },
        "sets": {
            "won": sets_won,
            "lost": sets_lost,
            "win_rate": _percent(sets_won, sets_won + sets_lost),
        },
        "tournaments": {
            "played": len(tournaments),
            "results": len(results),
            "best_position": results[0].final_position if results else None,
            "total_points_earned": points_earned,
        },
    }


@dataclass
class HistoryEntry:
    tournament_id: int
    tournament_name: str
    played_on: Optional[date]
    position: int
    points_earned: int
    total_points: int = 0


@dataclass
class PlayerHistory:
    player_id: int
    name: str
    points: int
    entries: List[HistoryEntry] = field(default_factory=list)


def player_history(session: Session, player_id: int, limit: int = 10) -> PlayerHistory:
    """
    The player's most recent ``limit`` tournament results, oldest first,
    with a running total of points earned across them.
    """
    player = session.get(Player, player_id)
    if not player:
        raise NotFoundError("Player not found")

    rows = session.exec(
        select(TournamentResult, Tournament)
        .join(Tournament, Tournament.id == TournamentResult.tournament_id)
        .where(TournamentResult.player_id == player_id)
        .order_by(TournamentResult.created_at.desc(), TournamentResult.id.desc())
        .limit(limit)
    ).all()

    history = PlayerHistory(player_id=player.id, name=player.name, points=player.points)
    running = 0
    for result, tournament in reversed(rows):
        running += result.points_awarded
        history.entries.append(
            HistoryEntry(
                tournament_id=tournament.id,
                tournament_name=tournament.name,
                played_on=tournament.end_date or tournament.start_date,
                position=result.final_position,
                points_earned=result.points_awarded,
                total_points=running,
            )
        )
    return history


def tournament_results(session: Session, tournament_id: int) -> List[Dict[str, Any]]:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError("Tournament not found")

    rows = session.exec(
        select(TournamentResult, Player)
        .join(Player, Player.id == TournamentResult.player_id)
        .where(TournamentResult.tournament_id == tournament_id)
        .order_by(TournamentResult.final_position)
    ).all()
    return [
        {
            "position": result.final_position,
            "player_id": player.id,
            "name": player.name,
            "ranking": player.ranking,
            "points_awarded": result.points_awarded,
        }
        for result, player in rows
    ]


# ============================================================================
# Club-wide reports
# ============================================================================

PODIUM_SIZE = 3


def global_stats(session: Session) -> Dict[str, Any]:
    """Totals across players, tournaments and matches, plus the points leader and newest tournament."""
    players = session.exec(select(Player).order_by(Player.points.desc(), Player.id)).all()
    tournaments = session.exec(select(Tournament).order_by(Tournament.created_at.desc(), Tournament.id.desc())).all()
    statuses = session.exec(select(Match.status)).all()

    total_points = sum(p.points for p in players)
    completed_tournaments = sum(1 for t in tournaments if t.status == TournamentStatus.finished)
    leader = players[0] if players else None
    latest = tournaments[0] if tournaments else None

    return {
        "total_players": len(players),
        "total_tournaments": len(tournaments),
        "total_points": total_points,
        "average_points": round(total_points / len(players)) if players else 0,
        "completed_tournaments": completed_tournaments,
        "total_matches": len(statuses),
        "completed_matches": sum(1 for s in statuses if s == MatchStatus.finished),
        "completion_rate": _percent(completed_tournaments, len(tournaments)),
        "top_player": {"id": leader.id, "name": leader.name, "points": leader.points} if leader else None,
        "latest_tournament": (
            {"id": latest.id, "name": latest.name, "start_date": latest.start_date} if latest else None
        ),
    }


def leaders(session: Session) -> Dict[str, Optional[Dict[str, Any]]]:
    """
    Three leaderboards, each None when nobody qualifies:
      points       most points (points > 0)
      ranking      best ranking number among players with points
      most_active  most matches played, either side, byes included
    """
    by_points = session.exec(
        select(Player).where(Player.points > 0).order_by(Player.points.desc(), Player.id)
    ).first()
    by_ranking = session.exec(
        select(Player)
        .where(Player.points > 0, Player.ranking.is_not(None))
        .order_by(Player.ranking, Player.id)
    ).first()

    appearances: Dict[int, int] = {}
    for player1_id, player2_id in session.exec(select(Match.player1_id, Match.player2_id)).all():
        for pid in (player1_id, player2_id):
            if pid is not None:
                appearances[pid] = appearances.get(pid, 0) + 1
    most_active = None
    if appearances:
        pid = min(appearances, key=lambda p: (-appearances[p], p))
        player = session.get(Player, pid)
        most_active = {"id": player.id, "name": player.name, "total_matches": appearances[pid]}

    return {
        "points": {"id": by_points.id, "name": by_points.name, "points": by_points.points} if by_points else None,
        "ranking": (
            {"id": by_ranking.id, "name": by_ranking.name, "ranking": by_ranking.ranking} if by_ranking else None
        ),
        "most_active": most_active,
    }


def tournament_history(
    session: Session, status: Optional[TournamentStatus] = None, limit: int = 10
) -> List[Dict[str, Any]]:
    """Newest tournaments first with match/result counts and the top three finishers."""
    query = select(Tournament).order_by(Tournament.created_at.desc(), Tournament.id.desc()).limit(limit)
    if status is not None:
        query = query.where(Tournament.status == status)

    history = []
    for t in session.exec(query).all():
        match_count = count_where(session, Match.id, Match.tournament_id == t.id)
        results = session.exec(
            select(TournamentResult, Player)
            .join(Player, Player.id == TournamentResult.player_id)
            .where(TournamentResult.tournament_id == t.id)
            .order_by(TournamentResult.final_position)
        ).all()
        history.append(
            {
                "id": t.id,
                "name": t.name,
                "format": t.format,
                "status": t.status,
                "start_date": t.start_date,
                "end_date": t.end_date,
                "matches": match_count,
                "results": len(results),
                "podium": [
                    {"position": r.final_position, "player_id": p.id, "name": p.name}
                    for r, p in results[:PODIUM_SIZE]
                ],
            }
        )
    return history


def tournament_completion_stats(session: Session) -> List[Dict[str, Any]]:
    """Per-tournament completion overview, in id order."""
    counts: Dict[int, List[int]] = {}
    for tournament_id, status in session.exec(select(Match.tournament_id, Match.status)).all():
        total, completed = counts.get(tournament_id, [0, 0])
        counts[tournament_id] = [total + 1, completed + (1 if status == MatchStatus.finished else 0)]
    with_results = set(session.exec(select(TournamentResult.tournament_id).distinct()).all())

    overview = []
    for t in session.exec(select(Tournament).order_by(Tournament.id)).all():
        total, completed = counts.get(t.id, [0, 0])
        overview.append(
            {
                "id": t.id,
                "name": t.name,
                "status": t.status,
                "total_matches": total,
                "completed_matches": completed,
                "has_results": t.id in with_results,
                "completion_percentage": _percent(completed, total),
            }
        )
    return overview
