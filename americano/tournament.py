"""Session lifecycle for one Americano tournament.

A :class:`TournamentSession` wraps a :class:`~americano.storage.StateStore` and
turns the user's actions (open the page, move between rounds, tap a score,
start over) into new :class:`SessionState` values. Every state it returns has
already been written to the store, so a reload resumes where the user left off
until the entries expire.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from .bracket import Player, Round, Schedule, generate_schedule, generate_unique_schedule
from .exceptions import CorruptedPersistedState, ScoreOutOfRange
from .scoring import ScoreLedger, ScorePair, compute_totals, rank, record_score, score_pair
from .storage import StateStore

SCHEDULE_KEY = "schedule"
ROUND_KEY = "currentRoundIndex"
SCORES_KEY = "scores"
BENCH_KEY = "lastBenched"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionState:
    schedule: Schedule
    current_round_index: int = 0
    scores: ScoreLedger = field(default_factory=dict)

    @property
    def round_count(self) -> int:
        return len(self.schedule)

    @property
    def has_previous(self) -> bool:
        return self.current_round_index > 0

    @property
    def has_next(self) -> bool:
        return self.current_round_index < len(self.schedule) - 1


class TournamentSession:
    """Controller for the tournament of a single browser session."""

    def __init__(self, store: StateStore, *, rng: random.Random | None = None):
        self.store = store
        self.rng = rng

    def load(self) -> SessionState | None:
        """Return the persisted tournament, or ``None`` when there is none to resume."""
        raw = self.store.get(SCHEDULE_KEY)
        if raw is None:
            return None
        try:
            schedule = schedule_from_payload(raw)
        except CorruptedPersistedState as exc:
            logger.warning("Discarding stored schedule: %s", exc)
            self.store.remove(SCHEDULE_KEY)
            return None
        if not schedule:
            self.store.remove(SCHEDULE_KEY)
            return None
        return SessionState(
            schedule=schedule,
            current_round_index=self._load_round_index(len(schedule)),
            scores=self._load_scores(len(schedule)),
        )

    def initialize_or_resume(self, players: Sequence[Player]) -> SessionState:
        state = self.load()
        if state is not None:
            if _roster_ids(state.schedule) == {player.id for player in players}:
                logger.debug("Resuming tournament at round %s.", state.current_round_index + 1)
                return state
            logger.info("Roster changed since the stored schedule; generating a new one.")

        schedule = generate_schedule(players, self._load_bench(), rng=self.rng)
        logger.info("Generated a %s-round schedule for %s players.", len(schedule), len(players))
        return self._begin(schedule)

    def current_round(self, state: SessionState) -> Round:
        return state.schedule[state.current_round_index]

    def advance(self, state: SessionState) -> SessionState:
        return self._move_to(state, state.current_round_index + 1)

    def retreat(self, state: SessionState) -> SessionState:
        return self._move_to(state, state.current_round_index - 1)

    def submit_score(self, state: SessionState, score_a: int) -> SessionState:
        """Record ``score_a`` for team A of the current round; team B gets the rest."""
        scores = dict(state.scores)
        record_score(scores, state.current_round_index, score_a)
        self.store.set(SCORES_KEY, scores_to_payload(scores))
        return replace(state, scores=scores)

    def ranking(self, state: SessionState) -> List[Tuple[Player, int]]:
        lookup = {player.id: player for round_ in state.schedule for player in round_.players}
        totals = compute_totals(state.schedule, state.scores)
        return [(lookup[player_id], score) for player_id, score in rank(totals)]

    def start_new_tournament(
        self, players: Sequence[Player], state: SessionState | None
    ) -> SessionState:
        """Discard scores and cursor and draw a schedule unlike the last one.

        Players benched in the final round of ``state`` are carried over so the
        new schedule keeps them on court in round one.
        """
        previous = state.schedule if state is not None else None
        prior_bench: Tuple[Player, ...] = previous[-1].bench if previous else ()
        schedule = generate_unique_schedule(players, prior_bench, previous, rng=self.rng)

        if prior_bench:
            self.store.set(BENCH_KEY, [_player_payload(player) for player in prior_bench])
        else:
            self.store.remove(BENCH_KEY)
        self.store.remove(ROUND_KEY)
        self.store.remove(SCORES_KEY)
        logger.info("Started a new tournament; carrying %s benched player(s).", len(prior_bench))
        return self._begin(schedule)

    def _begin(self, schedule: Schedule) -> SessionState:
        state = SessionState(schedule=schedule)
        self.store.set(SCHEDULE_KEY, schedule_to_payload(schedule))
        self.store.set(ROUND_KEY, state.current_round_index)
        self.store.set(SCORES_KEY, scores_to_payload(state.scores))
        return state

    def _move_to(self, state: SessionState, index: int) -> SessionState:
        index = max(0, min(index, len(state.schedule) - 1))
        if index == state.current_round_index:
            return state
        self.store.set(ROUND_KEY, index)
        return replace(state, current_round_index=index)

    def _load_round_index(self, round_count: int) -> int:
        value = self.store.get(ROUND_KEY)
        if isinstance(value, bool) or not isinstance(value, int):
            return 0
        return max(0, min(value, round_count - 1))

    def _load_scores(self, round_count: int) -> ScoreLedger:
        raw = self.store.get(SCORES_KEY)
        if raw is None:
            return {}
        try:
            scores = scores_from_payload(raw)
        except CorruptedPersistedState as exc:
            logger.warning("Discarding stored scores: %s", exc)
            self.store.remove(SCORES_KEY)
            return {}
        return {index: pair for index, pair in scores.items() if 0 <= index < round_count}

    def _load_bench(self) -> List[Player]:
        raw = self.store.get(BENCH_KEY)
        if raw is None:
            return []
        try:
            return [_player_from_payload(item) for item in raw]
        except (CorruptedPersistedState, TypeError) as exc:
            logger.warning("Ignoring stored bench carry: %s", exc)
            self.store.remove(BENCH_KEY)
            return []


def schedule_to_payload(schedule: Sequence[Round]) -> List[Dict[str, Any]]:
    return [
        {
            "team_a": [_player_payload(player) for player in round_.team_a],
            "team_b": [_player_payload(player) for player in round_.team_b],
            "bench": [_player_payload(player) for player in round_.bench],
        }
        for round_ in schedule
    ]


def schedule_from_payload(data: Any) -> Schedule:
    if not isinstance(data, list):
        raise CorruptedPersistedState("schedule is not a list")
    rounds: List[Round] = []
    for item in data:
        if not isinstance(item, Mapping):
            raise CorruptedPersistedState("round is not an object")
        try:
            team_a = tuple(_player_from_payload(player) for player in item["team_a"])
            team_b = tuple(_player_from_payload(player) for player in item["team_b"])
            bench = tuple(_player_from_payload(player) for player in item.get("bench", []))
        except (KeyError, TypeError) as exc:
            raise CorruptedPersistedState(f"round is malformed: {exc}") from exc
        if len(team_a) != 2 or len(team_b) != 2:
            raise CorruptedPersistedState("teams must have exactly two players")
        rounds.append(Round(team_a=team_a, team_b=team_b, bench=bench))
    return tuple(rounds)


def scores_to_payload(scores: Mapping[int, ScorePair]) -> Dict[str, List[int]]:
    return {str(index): [pair.score_a, pair.score_b] for index, pair in scores.items()}


def scores_from_payload(data: Any) -> ScoreLedger:
    if not isinstance(data, Mapping):
        raise CorruptedPersistedState("scores are not an object")
    scores: ScoreLedger = {}
    for key, value in data.items():
        try:
            index = int(key)
            score_a, score_b = value
            pair = score_pair(score_a)
        except (ScoreOutOfRange, TypeError, ValueError) as exc:
            raise CorruptedPersistedState(f"invalid score for round {key!r}") from exc
        if pair.score_b != score_b:
            raise CorruptedPersistedState(f"score for round {key!r} does not add up")
        scores[index] = pair
    return scores


def _player_payload(player: Player) -> Dict[str, Any]:
    return {"id": player.id, "name": player.name}


def _player_from_payload(data: Any) -> Player:
    if not isinstance(data, Mapping):
        raise CorruptedPersistedState("player is not an object")
    player_id = data.get("id")
    name = data.get("name")
    if isinstance(player_id, bool) or not isinstance(player_id, int) or not isinstance(name, str):
        raise CorruptedPersistedState(f"invalid player {data!r}")
    return Player(id=player_id, name=name)


def _roster_ids(schedule: Sequence[Round]) -> set[int]:
    return {player.id for round_ in schedule for player in round_.players}
