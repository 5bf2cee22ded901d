"""
Seeding strategies - how players are placed into bracket slots before round 1.

Two variants share one interface:
  RandomSeeding  uniform Fisher-Yates shuffle, byes padded to the tail
  ManualSeeding  caller-supplied position -> player mapping

A slot list always has a power-of-two length; ``None`` marks a BYE slot.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from pingpong.services.errors import ValidationFailure

BYE = None

SEEDING_AUTOMATIC = "automatic"
SEEDING_MANUAL = "manual"


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (1 for n <= 1)."""
    if n <= 1:
        return 1
    return 1 << (n - 1).bit_length()


@dataclass(frozen=True)
class SeedPosition:
    position: int  # 1-based bracket slot
    player_id: int


class SeedingStrategy(Protocol):
    is_manual: bool

    def requested_player_ids(self, player_ids: Sequence[int]) -> List[int]:
        ...

    def bracket_slots(self, player_ids: Sequence[int]) -> List[Optional[int]]:
        ...

    def entry_order(self, player_ids: Sequence[int]) -> List[int]:
        ...

    def group_order(self, player_ids: Sequence[int]) -> List[int]:
        ...


class RandomSeeding:
    """Uniform random seeding.

    Players are shuffled, then BYE placeholders fill the trailing slots up to
    the next power of two. Real players are therefore paired with each other
    first, at most one of them meets a BYE, and the remaining BYE pairs are
    dropped by the generator.
    """

    is_manual = False

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def requested_player_ids(self, player_ids: Sequence[int]) -> List[int]:
        return _dedupe(player_ids)

    def bracket_slots(self, player_ids: Sequence[int]) -> List[Optional[int]]:
        shuffled = list(player_ids)
        self._rng.shuffle(shuffled)
        slots: List[Optional[int]] = list(shuffled)
        while len(slots) < next_power_of_two(len(player_ids)):
            slots.append(BYE)
        return slots

    def entry_order(self, player_ids: Sequence[int]) -> List[int]:
        # Round robin pairs everyone with everyone; caller order only decides the round
        return list(player_ids)

    def group_order(self, player_ids: Sequence[int]) -> List[int]:
        shuffled = list(player_ids)
        self._rng.shuffle(shuffled)
        return shuffled


class ManualSeeding:
    """Caller-specified seeding (drag & drop draw)."""

    is_manual = True

    def __init__(self, positions: Sequence[SeedPosition]) -> None:
        if not positions:
            raise ValidationFailure("Manual seeding requires at least one position")

        self.slot_count = next_power_of_two(len(positions))
        seen_positions = set()
        seen_players = set()
        for p in positions:
            if p.position < 1 or p.position > self.slot_count:
                raise ValidationFailure(
                    f"Position {p.position} is outside the bracket (1..{self.slot_count})"
                )
            if p.position in seen_positions:
                raise ValidationFailure(f"Position {p.position} is assigned more than once")
            if p.player_id in seen_players:
                raise ValidationFailure(f"Player {p.player_id} is seeded more than once")
            seen_positions.add(p.position)
            seen_players.add(p.player_id)

        self.positions = sorted(positions, key=lambda p: p.position)

    def requested_player_ids(self, player_ids: Sequence[int]) -> List[int]:
        return [p.player_id for p in self.positions]

    def bracket_slots(self, player_ids: Sequence[int]) -> List[Optional[int]]:
        slots: List[Optional[int]] = [BYE] * self.slot_count
        for p in self.positions:
            slots[p.position - 1] = p.player_id
        return slots

    def entry_order(self, player_ids: Sequence[int]) -> List[int]:
        return [p.player_id for p in self.positions]

    def group_order(self, player_ids: Sequence[int]) -> List[int]:
        return [p.player_id for p in self.positions]


def make_seeding(
    seeding_mode: str,
    manual_positions: Optional[Sequence[SeedPosition]] = None,
    rng: Optional[random.Random] = None,
) -> SeedingStrategy:
    if seeding_mode == SEEDING_AUTOMATIC:
        return RandomSeeding(rng)
    if seeding_mode == SEEDING_MANUAL:
        return ManualSeeding(manual_positions or [])
    raise ValidationFailure(f"Unknown seeding mode: {seeding_mode!r}")


def _dedupe(ids: Sequence[int]) -> List[int]:
    seen = set()
    out: List[int] = []
    for pid in ids:
        if pid not in seen:
            seen.add(pid)
            out.append(pid)
    return out
