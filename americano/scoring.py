"""Round scores and the running player ranking."""

from __future__ import annotations

from typing import Dict, List, Mapping, NamedTuple, Sequence, Tuple

from .bracket import Round
from .exceptions import ScoreOutOfRange

POINTS_PER_ROUND = 16


class ScorePair(NamedTuple):
    score_a: int
    score_b: int


ScoreLedger = Dict[int, ScorePair]
PlayerTotals = Dict[int, int]


def score_pair(score_a: int) -> ScorePair:
    """Split the round's points between the two teams."""
    if isinstance(score_a, bool) or not isinstance(score_a, int):
        raise ScoreOutOfRange(score_a, POINTS_PER_ROUND)
    if score_a < 0 or score_a > POINTS_PER_ROUND:
        raise ScoreOutOfRange(score_a, POINTS_PER_ROUND)
    return ScorePair(score_a, POINTS_PER_ROUND - score_a)


def record_score(ledger: ScoreLedger, round_index: int, score_a: int) -> ScorePair:
    """Store the score for ``round_index``, replacing any earlier entry."""
    pair = score_pair(score_a)
    ledger[round_index] = pair
    return pair


def compute_totals(schedule: Sequence[Round], ledger: Mapping[int, ScorePair]) -> PlayerTotals:
    """Sum each player's share of the scored rounds.

    Every player starts at zero in first-round order. Benched players and
    unscored rounds add nothing.
    """
    totals: PlayerTotals = {}
    if schedule:
        for player in schedule[0].players:
            totals[player.id] = 0

    for index, round_ in enumerate(schedule):
        pair = ledger.get(index)
        if pair is None:
            continue
        for player in round_.team_a:
            totals[player.id] = totals.get(player.id, 0) + pair.score_a
        for player in round_.team_b:
            totals[player.id] = totals.get(player.id, 0) + pair.score_b
        for player in round_.bench:
            totals.setdefault(player.id, 0)
    return totals


def rank(totals: Mapping[int, int]) -> List[Tuple[int, int]]:
    """Return ``(player_id, score)`` rows, highest score first.

    ``sorted`` is stable, so tied players keep their insertion order.
    """
    return sorted(totals.items(), key=lambda item: -item[1])
