import math
import random
import threading
from datetime import date
from itertools import combinations

import pytest
from sqlmodel import Session, SQLModel, create_engine, select

from pingpong.database import import_models
from pingpong.models.group import TournamentGroup
from pingpong.models.match import Match, MatchStatus
from pingpong.models.player import Player
from pingpong.models.tournament import Tournament, TournamentFormat, TournamentStatus
from pingpong.services.bracket_generator import (
    generate_bracket,
    group_name,
    pair_consecutive,
    partition_groups,
    plan_elimination,
    plan_round_robin,
)
from pingpong.services.errors import (
    InvalidStateError,
    NotFoundError,
    UnsupportedFormatError,
    ValidationFailure,
)
from pingpong.services.notifier import BRACKET_GENERATED, MANUAL_SEEDING_COMPLETED
from pingpong.services.seeding import BYE, SEEDING_MANUAL, RandomSeeding, SeedPosition


# ============================================================================
# Pairing
# ============================================================================


def test_pair_consecutive_pairs_in_order():
    planned = pair_consecutive([1, 2, 3, 4], round_number=1)
    assert [(p.player1_id, p.player2_id) for p in planned] == [(1, 2), (3, 4)]
    assert [p.sequence_in_round for p in planned] == [1, 2]


def test_pair_consecutive_bye_handling():
    planned = pair_consecutive([1, BYE, BYE, 4, BYE, BYE], round_number=2)

    # (1, BYE) -> bye for 1, (BYE, 4) -> swapped to bye for 4, (BYE, BYE) dropped
    assert [(p.player1_id, p.player2_id) for p in planned] == [(1, None), (4, None)]
    assert all(p.is_bye for p in planned)
    assert all(p.round_number == 2 for p in planned)


def test_pair_consecutive_odd_tail_gets_bye():
    planned = pair_consecutive([7, 8, 9], round_number=3)
    assert [(p.player1_id, p.player2_id) for p in planned] == [(7, 8), (9, None)]
    assert not planned[0].is_bye
    assert planned[1].is_bye


@pytest.mark.parametrize("n", range(2, 18))
def test_elimination_round_one_covers_every_player(n):
    players = list(range(1, n + 1))
    slots = RandomSeeding(random.Random(n)).bracket_slots(players)
    planned = plan_elimination(slots)

    assert len(slots) == 2 ** math.ceil(math.log2(n))
    assert len(planned) == math.ceil(n / 2)
    seen = [p.player1_id for p in planned] + [p.player2_id for p in planned if p.player2_id is not None]
    assert sorted(seen) == players


# ============================================================================
# Round robin
# ============================================================================


@pytest.mark.parametrize("n", range(2, 10))
def test_round_robin_every_pair_meets_once(n):
    players = list(range(1, n + 1))
    planned = plan_round_robin(players)

    assert len(planned) == n * (n - 1) // 2
    pairs = {frozenset((p.player1_id, p.player2_id)) for p in planned}
    assert pairs == {frozenset(c) for c in combinations(players, 2)}

    rounds = {p.round_number for p in planned}
    assert len(rounds) == (n - 1 if n % 2 == 0 else n)


@pytest.mark.parametrize("n", [4, 5, 6, 7])
def test_round_robin_nobody_plays_twice_in_a_round(n):
    planned = plan_round_robin(list(range(1, n + 1)))
    by_round = {}
    for p in planned:
        by_round.setdefault(p.round_number, []).extend([p.player1_id, p.player2_id])
    for players in by_round.values():
        assert len(players) == len(set(players))


def test_round_robin_first_round_pairs_outside_in():
    planned = plan_round_robin([1, 2, 3, 4])
    first = [(p.player1_id, p.player2_id) for p in planned if p.round_number == 1]
    assert first == [(1, 4), (2, 3)]


# ============================================================================
# Groups
# ============================================================================


@pytest.mark.parametrize("index,name", [(0, "Group A"), (1, "Group B"), (25, "Group Z"), (26, "Group AA")])
def test_group_name(index, name):
    assert group_name(index) == name


def test_partition_groups_sizes():
    groups = partition_groups(list(range(10)), 4)
    assert [name for name, _ in groups] == ["Group A", "Group B", "Group C"]
    assert [len(members) for _, members in groups] == [4, 4, 2]


def test_partition_groups_rejects_tiny_groups():
    with pytest.raises(ValidationFailure):
        partition_groups([1, 2, 3], 1)


# ============================================================================
# generate_bracket
# ============================================================================


def _matches(session: Session, tournament_id: int):
    return session.exec(
        select(Match).where(Match.tournament_id == tournament_id).order_by(Match.round_number, Match.sequence_in_round)
    ).all()


def test_generate_elimination_with_byes(session, make_players, make_tournament, notifier):
    players = make_players(5)
    tournament = make_tournament()

    result = generate_bracket(
        session, tournament.id, [p.id for p in players], notifier=notifier, rng=random.Random(5)
    )

    assert result.matches_created == 3
    assert result.groups_created == 0

    matches = _matches(session, tournament.id)
    assert len(matches) == 3
    byes = [m for m in matches if m.player2_id is None]
    assert len(byes) == 1
    assert byes[0].status == MatchStatus.finished
    assert byes[0].winner_id == byes[0].player1_id
    assert (byes[0].sets_player1, byes[0].sets_player2) == (1, 0)
    assert all(m.status == MatchStatus.pending for m in matches if m.player2_id is not None)

    session.refresh(tournament)
    assert tournament.status == TournamentStatus.in_progress

    assert notifier.names() == [BRACKET_GENERATED]
    topic, _, payload = notifier.events[0]
    assert topic == f"tournament-{tournament.id}"
    assert payload == {"tournament_id": tournament.id, "matches": 3}


def test_generate_manual_seeding_synthesizes_bye_matches(session, make_players, make_tournament, notifier):
    a, b, c = make_players(3)
    tournament = make_tournament()

    result = generate_bracket(
        session,
        tournament.id,
        [],
        seeding_mode=SEEDING_MANUAL,
        manual_positions=[SeedPosition(1, a.id), SeedPosition(2, b.id), SeedPosition(3, c.id)],
        notifier=notifier,
    )

    assert result.matches_created == 2
    first, second = _matches(session, tournament.id)
    assert (first.player1_id, first.player2_id) == (a.id, b.id)
    assert (second.player1_id, second.player2_id) == (c.id, None)
    assert second.status == MatchStatus.finished
    assert second.winner_id == c.id
    assert notifier.names() == [MANUAL_SEEDING_COMPLETED]


def test_generate_manual_unknown_player_is_not_found(session, make_players, make_tournament):
    a, b = make_players(2)
    tournament = make_tournament()

    with pytest.raises(NotFoundError):
        generate_bracket(
            session,
            tournament.id,
            [],
            seeding_mode=SEEDING_MANUAL,
            manual_positions=[SeedPosition(1, a.id), SeedPosition(2, 9999)],
        )


def test_generate_automatic_ignores_unknown_players(session, make_players, make_tournament):
    players = make_players(4)
    tournament = make_tournament()

    result = generate_bracket(session, tournament.id, [p.id for p in players] + [9999])
    assert result.matches_created == 2


def test_generate_requires_two_players(session, make_players, make_tournament):
    (only,) = make_players(1)
    tournament = make_tournament()

    with pytest.raises(ValidationFailure, match="At least 2"):
        generate_bracket(session, tournament.id, [only.id, 9999])


def test_generate_rejects_more_than_max_players(session, make_players, make_tournament):
    players = make_players(5)
    tournament = make_tournament(max_players=4)

    with pytest.raises(ValidationFailure, match="at most 4"):
        generate_bracket(session, tournament.id, [p.id for p in players])


def test_generate_only_once(session, make_players, make_tournament):
    players = make_players(4)
    tournament = make_tournament()
    generate_bracket(session, tournament.id, [p.id for p in players])

    with pytest.raises(InvalidStateError):
        generate_bracket(session, tournament.id, [p.id for p in players])
    assert len(_matches(session, tournament.id)) == 2


def test_generate_unknown_tournament(session, make_players):
    players = make_players(2)
    with pytest.raises(NotFoundError):
        generate_bracket(session, 424242, [p.id for p in players])


def test_generate_double_elimination_is_rejected_and_rolled_back(session, make_players, make_tournament, notifier):
    players = make_players(4)
    tournament = make_tournament(fmt=TournamentFormat.double_elimination)

    with pytest.raises(UnsupportedFormatError):
        generate_bracket(session, tournament.id, [p.id for p in players], notifier=notifier)

    assert isinstance(UnsupportedFormatError("x"), InvalidStateError)
    session.refresh(tournament)
    assert tournament.status == TournamentStatus.pending
    assert _matches(session, tournament.id) == []
    assert notifier.events == []


def test_generate_round_robin(session, make_players, make_tournament):
    players = make_players(5)
    tournament = make_tournament(fmt=TournamentFormat.round_robin)

    result = generate_bracket(session, tournament.id, [p.id for p in players])

    assert result.matches_created == 10
    matches = _matches(session, tournament.id)
    assert {m.round_number for m in matches} == {1, 2, 3, 4, 5}
    assert all(m.status == MatchStatus.pending and m.player2_id is not None for m in matches)


def test_generate_groups_creates_no_matches(session, make_players, make_tournament):
    players = make_players(10)
    tournament = make_tournament(fmt=TournamentFormat.groups_elimination)

    result = generate_bracket(session, tournament.id, [p.id for p in players], group_size=4, rng=random.Random(2))

    assert result.matches_created == 0
    assert result.groups_created == 3
    assert _matches(session, tournament.id) == []

    groups = session.exec(
        select(TournamentGroup).where(TournamentGroup.tournament_id == tournament.id).order_by(TournamentGroup.id)
    ).all()
    assert [g.name for g in groups] == ["Group A", "Group B", "Group C"]
    assert [len(g.players) for g in groups] == [4, 4, 2]
    members = sorted(p.id for g in groups for p in g.players)
    assert members == sorted(p.id for p in players)

    refreshed = session.get(Tournament, tournament.id)
    assert refreshed.status == TournamentStatus.in_progress


def test_concurrent_generation_creates_one_round(tmp_path):
    """Two threads draw the same Pending tournament at the same moment."""
    import_models()
    engine = create_engine(
        f"sqlite:///{tmp_path / 'draw.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        players = [Player(name=f"P{i}") for i in range(4)]
        tournament = Tournament(
            name="Draw Race", format=TournamentFormat.elimination, sets_per_match=3, start_date=date(2026, 3, 1)
        )
        session.add_all(players + [tournament])
        session.commit()
        tournament_id = tournament.id
        player_ids = [p.id for p in players]

    barrier = threading.Barrier(2)
    errors = []

    def draw():
        try:
            with Session(engine) as s:
                barrier.wait(timeout=30)
                generate_bracket(s, tournament_id, player_ids)
        except Exception as exc:  # collected and asserted below
            errors.append(exc)

    threads = [threading.Thread(target=draw) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert len(errors) == 1
    assert isinstance(errors[0], InvalidStateError)
    with Session(engine) as session:
        assert len(_matches(session, tournament_id)) == 2
        assert session.get(Tournament, tournament_id).status == TournamentStatus.in_progress

    engine.dispose()
