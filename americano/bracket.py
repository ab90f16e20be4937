"""Pairing helpers for the Americano doubles format."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from .exceptions import DuplicatePlayer, InvalidRosterSize

MIN_PLAYERS = 4
MAX_UNIQUE_ATTEMPTS = 10

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Player:
    id: int
    name: str


@dataclass(frozen=True)
class Round:
    team_a: Tuple[Player, Player]
    team_b: Tuple[Player, Player]
    bench: Tuple[Player, ...] = ()

    @property
    def players(self) -> Tuple[Player, ...]:
        return self.team_a + self.team_b + self.bench


Schedule = Tuple[Round, ...]

# Each row is (team A positions, team B positions, bench positions) into the
# shuffled roster. Round one never benches the front of the list.
FIXED_DESIGNS: dict[int, Tuple[Tuple[Tuple[int, ...], Tuple[int, ...], Tuple[int, ...]], ...]] = {
    4: (
        ((0, 1), (2, 3), ()),
        ((0, 2), (1, 3), ()),
        ((0, 3), (1, 2), ()),
    ),
    5: (
        ((0, 3), (1, 2), (4,)),
        ((1, 4), (2, 3), (0,)),
        ((0, 2), (3, 4), (1,)),
        ((1, 3), (0, 4), (2,)),
        ((2, 4), (0, 1), (3,)),
    ),
    6: (
        ((0, 1), (2, 3), (4, 5)),
        ((2, 4), (3, 5), (0, 1)),
        ((0, 4), (1, 5), (2, 3)),
        ((0, 2), (1, 3), (4, 5)),
        ((2, 5), (3, 4), (0, 1)),
        ((0, 5), (1, 4), (2, 3)),
        ((0, 3), (1, 2), (4, 5)),
        ((2, 3), (4, 5), (0, 1)),
        ((0, 1), (4, 5), (2, 3)),
    ),
}


def shuffle_players(players: Sequence[Player], rng: random.Random | None = None) -> List[Player]:
    """Return a uniformly shuffled copy of ``players``."""
    shuffled = list(players)
    (rng or random).shuffle(shuffled)
    return shuffled


def prioritize_players(order: Sequence[Player], front: Iterable[Player]) -> List[Player]:
    """Move ``front`` players to the head of ``order``.

    The moved players keep their relative order from ``order``. Players in
    ``front`` that are missing from ``order`` are ignored.
    """
    moved = {player.id for player in front}
    leading = [player for player in order if player.id in moved]
    return leading + [player for player in order if player.id not in moved]


def generate_schedule(
    players: Sequence[Player],
    prior_bench: Sequence[Player] = (),
    *,
    rng: random.Random | None = None,
) -> Schedule:
    """Create an Americano schedule for ``players``.

    The roster is shuffled first. Players benched in the final round of the
    previous tournament are moved to the front so round one keeps them on
    court. Rosters of four to six players follow fixed designs where every
    pair partners at least once; larger rosters rotate through the order.
    """
    _validate_roster(players)
    order = prioritize_players(shuffle_players(players, rng), prior_bench)

    design = FIXED_DESIGNS.get(len(order))
    if design is None:
        return _rotation_rounds(order)

    return tuple(
        Round(
            team_a=(order[team_a[0]], order[team_a[1]]),
            team_b=(order[team_b[0]], order[team_b[1]]),
            bench=tuple(order[index] for index in bench),
        )
        for team_a, team_b, bench in design
    )


def generate_unique_schedule(
    players: Sequence[Player],
    prior_bench: Sequence[Player] = (),
    previous_schedule: Sequence[Round] | None = None,
    *,
    rng: random.Random | None = None,
    max_attempts: int = MAX_UNIQUE_ATTEMPTS,
) -> Schedule:
    """Generate a schedule that differs from ``previous_schedule`` when possible.

    Gives up after ``max_attempts`` and returns the last schedule generated.
    """
    previous = tuple(previous_schedule) if previous_schedule else None
    schedule = generate_schedule(players, prior_bench, rng=rng)
    attempts = 1
    while previous is not None and schedule == previous and attempts < max_attempts:
        schedule = generate_schedule(players, prior_bench, rng=rng)
        attempts += 1

    if previous is not None and schedule == previous:
        logger.warning("Schedule repeated the previous tournament after %s attempts.", attempts)
    else:
        logger.debug("Generated schedule with %s rounds in %s attempt(s).", len(schedule), attempts)
    return schedule


def _validate_roster(players: Sequence[Player]) -> None:
    if len(players) < MIN_PLAYERS:
        raise InvalidRosterSize(len(players), MIN_PLAYERS)
    seen: set[int] = set()
    for player in players:
        if player.id in seen:
            raise DuplicatePlayer(player.id)
        seen.add(player.id)


def _rotation_rounds(order: Sequence[Player]) -> Schedule:
    """Return one full rotation: round ``i`` plays positions ``i`` to ``i + 3``."""
    count = len(order)
    rounds: List[Round] = []
    for start in range(count):
        playing = [order[(start + offset) % count] for offset in range(4)]
        on_court = {player.id for player in playing}
        rounds.append(
            Round(
                team_a=(playing[0], playing[1]),
                team_b=(playing[2], playing[3]),
                bench=tuple(player for player in order if player.id not in on_court),
            )
        )
    return tuple(rounds)
