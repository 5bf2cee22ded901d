from datetime import datetime, timedelta

import pytest

from pingpong.models.match import Match, MatchStatus
from pingpong.models.tournament import TournamentStatus
from pingpong.services.bracket_generator import generate_bracket
from pingpong.services.errors import NotFoundError
from pingpong.services.seeding import SEEDING_MANUAL, SeedPosition
from pingpong.services.stats import (
    TREND_DOWN,
    TREND_STABLE,
    TREND_UP,
    global_stats,
    leaders,
    player_history,
    player_stats,
    ranking_table,
    top_players,
    tournament_completion_stats,
    tournament_history,
    tournament_results,
    tournament_stats,
    trend_for,
)
from tests.helpers import play_out


def _draw(session, tournament, players):
    generate_bracket(
        session,
        tournament.id,
        [],
        seeding_mode=SEEDING_MANUAL,
        manual_positions=[SeedPosition(i + 1, p.id) for i, p in enumerate(players)],
    )


def test_tournament_stats_progress(session, make_players, make_tournament):
    players = make_players(5)
    tournament = make_tournament()
    _draw(session, tournament, players)

    stats = tournament_stats(session, tournament.id)

    # 5 players in 8 slots: two real matches plus one bye
    assert stats["matches"] == {"total": 3, "completed": 1, "pending": 2, "in_progress": 0, "progress": 33}
    assert stats["players"] == 5
    assert stats["tournament"]["status"] == TournamentStatus.in_progress


def test_tournament_stats_unknown(session):
    with pytest.raises(NotFoundError):
        tournament_stats(session, 77)


@pytest.mark.parametrize(
    "wins,trend",
    [([1, 1, 1, 1, 0], TREND_UP), ([1, 1, 0, 0, 0], TREND_STABLE), ([1, 0, 0, 0, 0], TREND_DOWN)],
)
def test_trend_uses_last_five(wins, trend):
    # older matches are all losses and must be ignored
    history = [Match(winner_id=2, player1_id=1, player2_id=2, round_number=1, tournament_id=1)] * 3
    history += [
        Match(winner_id=1 if w else 2, player1_id=1, player2_id=2, round_number=1, tournament_id=1) for w in wins
    ]
    assert trend_for(history, 1) == trend


def test_ranking_table_lists_players_with_points(session, make_players, make_tournament):
    players = make_players(4)
    idle = make_players(1, prefix="Idle")[0]
    tournament = make_tournament()
    _draw(session, tournament, players)
    play_out(session, tournament.id)
    session.expire_all()

    table = ranking_table(session)

    assert [e.player_id for e in table] == [players[0].id, players[2].id, players[1].id, players[3].id]
    assert [e.rank for e in table] == [1, 2, 3, 4]
    assert idle.id not in [e.player_id for e in table]

    champion = table[0]
    assert (champion.wins, champion.losses, champion.total_matches) == (2, 0, 2)
    assert champion.win_rate == 100
    assert champion.tournaments_played == 1
    assert champion.tournaments_won == 1
    assert table[3].win_rate == 0
    assert table[3].trend == TREND_DOWN


def test_ranking_search_keeps_global_rank(session, make_players, make_tournament):
    players = make_players(4)
    tournament = make_tournament()
    _draw(session, tournament, players)
    play_out(session, tournament.id)

    (entry,) = ranking_table(session, search="player 2")
    assert entry.player_id == players[1].id
    assert entry.rank == 3


def test_top_players_is_capped(session, make_players, make_tournament):
    players = make_players(16)
    tournament = make_tournament()
    _draw(session, tournament, players)
    play_out(session, tournament.id)

    assert len(ranking_table(session)) == 16
    top = top_players(session)
    assert len(top) == 10
    assert top[0].points == 100


def test_player_stats(session, make_players, make_tournament):
    players = make_players(4)
    tournament = make_tournament()
    _draw(session, tournament, players)
    play_out(session, tournament.id)

    stats = player_stats(session, players[2].id)

    # P3 beat P4 2-0, lost the final to P1 0-2
    assert stats["matches"]["wins"] == 1
    assert stats["matches"]["losses"] == 1
    assert stats["matches"]["win_rate"] == 50
    assert stats["sets"] == {"won": 2, "lost": 2, "win_rate": 50}
    assert stats["tournaments"]["best_position"] == 2
    assert stats["tournaments"]["total_points_earned"] == 75
    assert stats["player"]["points"] == 75


def test_player_stats_unknown(session):
    with pytest.raises(NotFoundError):
        player_stats(session, 404)


def test_player_history_running_total(session, make_players, make_tournament):
    players = make_players(4)
    first = make_tournament(name="Spring")
    _draw(session, first, players)
    play_out(session, first.id)

    second = make_tournament(name="Summer")
    _draw(session, second, list(reversed(players)))
    play_out(session, second.id)

    history = player_history(session, players[0].id)

    assert [e.tournament_name for e in history.entries] == ["Spring", "Summer"]
    assert [e.points_earned for e in history.entries] == [100, 25]
    assert [e.total_points for e in history.entries] == [100, 125]
    assert history.entries[0].played_on is not None

    latest = player_history(session, players[0].id, limit=1)
    assert [e.tournament_name for e in latest.entries] == ["Summer"]


def test_tournament_results_in_position_order(session, make_players, make_tournament):
    players = make_players(4)
    tournament = make_tournament()
    _draw(session, tournament, players)
    play_out(session, tournament.id)

    rows = tournament_results(session, tournament.id)

    assert [r["position"] for r in rows] == [1, 2, 3, 4]
    assert [r["player_id"] for r in rows] == [players[0].id, players[2].id, players[1].id, players[3].id]
    assert rows[0]["ranking"] == 1
    assert rows[0]["points_awarded"] == 100


def test_in_progress_matches_are_counted(session, make_players, make_tournament):
    a, b = make_players(2)
    tournament = make_tournament(status=TournamentStatus.in_progress)
    session.add(
        Match(tournament_id=tournament.id, player1_id=a.id, player2_id=b.id, round_number=1,
              status=MatchStatus.in_progress, started_at=datetime.utcnow() - timedelta(minutes=5))
    )
    session.commit()

    stats = tournament_stats(session, tournament.id)
    assert stats["matches"]["in_progress"] == 1
    assert stats["matches"]["progress"] == 0
    assert player_stats(session, a.id)["matches"]["in_progress"] == 1


# ============================================================================
# Club-wide reports
# ============================================================================


@pytest.fixture
def club(session, make_players, make_tournament):
    """A finished four-player cup (player1 always wins), a newer Pending open and an idle guest."""
    players = make_players(4)
    guest = make_players(1, prefix="Guest")[0]
    cup = make_tournament(name="Spring Cup")
    _draw(session, cup, players)
    play_out(session, cup.id)
    winter = make_tournament(name="Winter Open")
    return players, guest, cup, winter


def test_global_stats(session, club):
    players, _, _, winter = club

    stats = global_stats(session)

    assert stats["total_players"] == 5
    assert stats["total_tournaments"] == 2
    assert stats["completed_tournaments"] == 1
    assert stats["completion_rate"] == 50
    assert stats["total_points"] == 250
    assert stats["average_points"] == 50
    assert (stats["total_matches"], stats["completed_matches"]) == (3, 3)
    assert stats["top_player"] == {"id": players[0].id, "name": "Player 1", "points": 100}
    assert stats["latest_tournament"]["id"] == winter.id


def test_global_stats_empty_club(session):
    stats = global_stats(session)

    assert stats["total_players"] == 0
    assert stats["average_points"] == 0
    assert stats["completion_rate"] == 0
    assert stats["top_player"] is None
    assert stats["latest_tournament"] is None


def test_leaders(session, club):
    players, _, _, _ = club

    board = leaders(session)

    assert board["points"] == {"id": players[0].id, "name": "Player 1", "points": 100}
    assert board["ranking"] == {"id": players[0].id, "name": "Player 1", "ranking": 1}
    # players 1 and 3 both reached the final; the lower id wins the tie
    assert board["most_active"] == {"id": players[0].id, "name": "Player 1", "total_matches": 2}


def test_leaders_without_points_or_matches(session, make_players):
    make_players(2)
    assert leaders(session) == {"points": None, "ranking": None, "most_active": None}


def test_tournament_history_newest_first_with_podium(session, club):
    players, _, cup, winter = club

    history = tournament_history(session)

    assert [t["id"] for t in history] == [winter.id, cup.id]
    assert (history[0]["matches"], history[0]["results"], history[0]["podium"]) == (0, 0, [])
    finished = history[1]
    assert (finished["matches"], finished["results"]) == (3, 4)
    assert [(p["position"], p["player_id"]) for p in finished["podium"]] == [
        (1, players[0].id),
        (2, players[2].id),
        (3, players[1].id),
    ]


def test_tournament_history_filters_and_limit(session, club):
    _, _, cup, winter = club

    assert [t["id"] for t in tournament_history(session, status=TournamentStatus.finished)] == [cup.id]
    assert [t["id"] for t in tournament_history(session, limit=1)] == [winter.id]


def test_tournament_completion_stats(session, club):
    _, _, cup, winter = club

    overview = tournament_completion_stats(session)

    assert overview == [
        {
            "id": cup.id,
            "name": "Spring Cup",
            "status": TournamentStatus.finished,
            "total_matches": 3,
            "completed_matches": 3,
            "has_results": True,
            "completion_percentage": 100,
        },
        {
            "id": winter.id,
            "name": "Winter Open",
            "status": TournamentStatus.pending,
            "total_matches": 0,
            "completed_matches": 0,
            "has_results": False,
            "completion_percentage": 0,
        },
    ]
