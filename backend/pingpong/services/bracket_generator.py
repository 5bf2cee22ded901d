"""
Bracket Generator - initial schedule for a Pending tournament.

One generator per TournamentFormat:
  elimination         consecutive slot pairs (0,1), (2,3), ...; byes auto-advance
  round_robin         circle method, phantom BYE for odd counts
  groups_elimination  random partition into groups (no matches emitted)
  double_elimination  declared but rejected

Matches and the Pending -> InProgress flip are committed together.
"""

import logging
import os
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlmodel import Session, select

from pingpong.database import transaction
from pingpong.models.group import TournamentGroup
from pingpong.models.match import DEFAULT_PHASE, Match, MatchStatus
from pingpong.models.player import Player
from pingpong.models.tournament import Tournament, TournamentFormat, TournamentStatus
from pingpong.services.errors import (
    InvalidStateError,
    NotFoundError,
    UnsupportedFormatError,
    ValidationFailure,
)
from pingpong.services.locks import tournament_lock
from pingpong.services.notifier import (
    BRACKET_GENERATED,
    MANUAL_SEEDING_COMPLETED,
    Notifier,
    NullNotifier,
    safe_emit,
)
from pingpong.services.seeding import (
    BYE,
    SEEDING_AUTOMATIC,
    SeedingStrategy,
    SeedPosition,
    make_seeding,
)
from pingpong.utils.sql import count_where

logger = logging.getLogger(__name__)

DEFAULT_GROUP_SIZE = int(os.getenv("DEFAULT_GROUP_SIZE", "4"))


@dataclass(frozen=True)
class PlannedMatch:
    """A match to create. player2_id None means a bye-advance for player1."""
    player1_id: int
    player2_id: Optional[int]
    round_number: int
    sequence_in_round: int

    @property
    def is_bye(self) -> bool:
        return self.player2_id is None


@dataclass
class BracketResult:
    matches_created: int = 0
    groups_created: int = 0


# ============================================================================
# Pure planning (no session)
# ============================================================================


def pair_consecutive(entries: Sequence[Optional[int]], round_number: int) -> List[PlannedMatch]:
    """
    Pair entries (0,1), (2,3), ...

    - two players   -> regular match
    - one player    -> bye-advance for that player (odd tail counts as a BYE)
    - two BYEs      -> dropped
    """
    planned: List[PlannedMatch] = []
    for i in range(0, len(entries), 2):
        a = entries[i]
        b = entries[i + 1] if i + 1 < len(entries) else BYE
        if a is BYE and b is BYE:
            continue
        if a is BYE:
            a, b = b, BYE
        planned.append(
            PlannedMatch(
                player1_id=a,
                player2_id=b,
                round_number=round_number,
                sequence_in_round=len(planned) + 1,
            )
        )
    return planned


def plan_elimination(slots: Sequence[Optional[int]]) -> List[PlannedMatch]:
    """Round 1 of a single-elimination bracket from a padded slot list."""
    return pair_consecutive(slots, round_number=1)


def plan_round_robin(entries: Sequence[int]) -> List[PlannedMatch]:
    """
    Circle method. Returns every real pairing exactly once.

    Position 0 stays fixed; after each round position 1 moves to the end and
    the other entries shift one place left. Pairings with the phantom BYE
    (odd counts) are skipped, so that player sits the round out.
    """
    circle: List[Optional[int]] = list(entries)
    if len(circle) % 2 == 1:
        circle.append(BYE)
    n = len(circle)

    planned: List[PlannedMatch] = []
    for round_number in range(1, n):
        sequence = 0
        for i in range(n // 2):
            a = circle[i]
            b = circle[n - 1 - i]
            if a is BYE or b is BYE:
                continue
            sequence += 1
            planned.append(
                PlannedMatch(player1_id=a, player2_id=b, round_number=round_number, sequence_in_round=sequence)
            )
        if n > 2:
            circle = [circle[0]] + circle[2:] + [circle[1]]
    return planned


def group_name(index: int) -> str:
    """0 -> 'Group A', 25 -> 'Group Z', 26 -> 'Group AA'."""
    letters = ""
    index += 1
    while index > 0:
        index, rem = divmod(index - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return f"Group {letters}"


def partition_groups(entries: Sequence[int], group_size: int) -> List[Tuple[str, List[int]]]:
    """Split entries into ceil(n / group_size) sequential chunks named A, B, C, ..."""
    if group_size < 2:
        raise ValidationFailure("group_size must be >= 2")
    groups: List[Tuple[str, List[int]]] = []
    for index, start in enumerate(range(0, len(entries), group_size)):
        groups.append((group_name(index), list(entries[start:start + group_size])))
    return groups


def build_match(tournament_id: int, planned: PlannedMatch, phase: str = DEFAULT_PHASE) -> Match:
    """Materialize a planned match; byes are born Finished with a nominal 1-0."""
    match = Match(
        tournament_id=tournament_id,
        player1_id=planned.player1_id,
        player2_id=planned.player2_id,
        round_number=planned.round_number,
        sequence_in_round=planned.sequence_in_round,
        phase=phase,
    )
    if planned.is_bye:
        match.status = MatchStatus.finished
        match.winner_id = planned.player1_id
        match.sets_player1 = 1
        match.sets_player2 = 0
        match.completed_at = datetime.utcnow()
    return match


# ============================================================================
# Per-format generators
# ============================================================================

_Generator = Callable[[Session, Tournament, List[int], SeedingStrategy, int], BracketResult]


def _generate_elimination(
    session: Session, tournament: Tournament, player_ids: List[int], seeding: SeedingStrategy, group_size: int
) -> BracketResult:
    slots = seeding.bracket_slots(player_ids)
    planned = plan_elimination(slots)
    session.add_all([build_match(tournament.id, p) for p in planned])
    byes = sum(1 for p in planned if p.is_bye)
    logger.info(
        f"Elimination bracket for tournament {tournament.id}: {len(slots)} slots, "
        f"{len(planned) - byes} matches, {byes} byes"
    )
    return BracketResult(matches_created=len(planned))


def _generate_round_robin(
    session: Session, tournament: Tournament, player_ids: List[int], seeding: SeedingStrategy, group_size: int
) -> BracketResult:
    entries = seeding.entry_order(player_ids)
    planned = plan_round_robin(entries)
    session.add_all([build_match(tournament.id, p) for p in planned])
    rounds = max((p.round_number for p in planned), default=0)
    logger.info(
        f"Round robin for tournament {tournament.id}: {len(entries)} players, "
        f"{rounds} rounds, {len(planned)} matches"
    )
    return BracketResult(matches_created=len(planned))


def _generate_groups(
    session: Session, tournament: Tournament, player_ids: List[int], seeding: SeedingStrategy, group_size: int
) -> BracketResult:
    entries = seeding.group_order(player_ids)
    groups = partition_groups(entries, group_size)
    players_by_id = {p.id: p for p in session.exec(select(Player).where(Player.id.in_(entries))).all()}
    for name, member_ids in groups:
        session.add(
            TournamentGroup(
                tournament_id=tournament.id,
                name=name,
                players=[players_by_id[pid] for pid in member_ids],
            )
        )
    logger.info(f"Groups for tournament {tournament.id}: {len(groups)} groups of up to {group_size}")
    return BracketResult(groups_created=len(groups))


def _reject_double_elimination(
    session: Session, tournament: Tournament, player_ids: List[int], seeding: SeedingStrategy, group_size: int
) -> BracketResult:
    raise UnsupportedFormatError("Double elimination brackets are not supported")


_GENERATORS: Dict[TournamentFormat, _Generator] = {
    TournamentFormat.elimination: _generate_elimination,
    TournamentFormat.round_robin: _generate_round_robin,
    TournamentFormat.groups_elimination: _generate_groups,
    TournamentFormat.double_elimination: _reject_double_elimination,
}


# ============================================================================
# Public API
# ============================================================================


def resolve_players(session: Session, requested_ids: Sequence[int], strict: bool) -> List[int]:
    """
    Return the requested ids that exist, in request order.
    strict=True rejects the request when any id is unknown.
    """
    if not requested_ids:
        return []
    found = set(session.exec(select(Player.id).where(Player.id.in_(list(requested_ids)))).all())
    missing = [pid for pid in requested_ids if pid not in found]
    if missing:
        if strict:
            raise NotFoundError(f"Unknown player ids: {missing}")
        logger.warning(f"Ignoring unknown player ids: {missing}")
    return [pid for pid in requested_ids if pid in found]


def generate_bracket(
    session: Session,
    tournament_id: int,
    player_ids: Sequence[int],
    seeding_mode: str = SEEDING_AUTOMATIC,
    manual_positions: Optional[Sequence[SeedPosition]] = None,
    group_size: Optional[int] = None,
    notifier: Optional[Notifier] = None,
    rng: Optional[random.Random] = None,
) -> BracketResult:
    """
    Generate the initial schedule for a Pending tournament and move it to InProgress.

    The status check and the inserts run under the tournament lock, so two
    concurrent calls produce a single round 1.

    Raises:
        NotFoundError: unknown tournament, or unknown player in a manual draw
        InvalidStateError: tournament is not Pending / already drawn / format has no generator
        ValidationFailure: fewer than 2 players, too many players, bad positions
    """
    notifier = notifier or NullNotifier()
    seeding = make_seeding(seeding_mode, manual_positions, rng)

    with tournament_lock(tournament_id):
        tournament = session.get(Tournament, tournament_id)
        if not tournament:
            raise NotFoundError("Tournament not found")
        session.refresh(tournament)
        if tournament.status != TournamentStatus.pending:
            raise InvalidStateError(
                f"Bracket can only be generated for Pending tournaments (status is {tournament.status})"
            )
        if count_where(session, Match.id, Match.tournament_id == tournament_id):
            raise InvalidStateError("Tournament already has matches")

        fmt = TournamentFormat(tournament.format)
        resolved = resolve_players(session, seeding.requested_player_ids(player_ids), strict=seeding.is_manual)

        if len(resolved) < 2:
            raise ValidationFailure("At least 2 players are required")
        if len(resolved) > tournament.max_players:
            raise ValidationFailure(
                f"Tournament allows at most {tournament.max_players} players, got {len(resolved)}"
            )

        with transaction(session):
            result = _GENERATORS[fmt](session, tournament, resolved, seeding, group_size or DEFAULT_GROUP_SIZE)
            tournament.status = TournamentStatus.in_progress
            tournament.updated_at = datetime.utcnow()
            session.add(tournament)

    event_name = MANUAL_SEEDING_COMPLETED if seeding.is_manual else BRACKET_GENERATED
    safe_emit(notifier, tournament_id, event_name, {"tournament_id": tournament_id, "matches": result.matches_created})
    return result
