"""Turn caller-supplied roster records into players."""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping

from .bracket import Player
from .exceptions import RosterUnavailable


def display_name(first_name: str, last_name: str) -> str:
    """Return "First L." style names used on score sheets."""
    first = first_name.strip()
    last = last_name.strip()
    if not last:
        return first
    return f"{first} {last[0]}."


def parse_roster(records: Iterable[Mapping[str, Any]] | None) -> List[Player]:
    """Build players from ``{id, firstName, lastName}`` records.

    Extra fields such as ``phone`` are ignored.
    """
    if records is None:
        raise RosterUnavailable("No roster was provided.")

    players: List[Player] = []
    for index, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise RosterUnavailable(f"Roster entry {index} is not an object.")
        player_id = record.get("id")
        first_name = record.get("firstName")
        last_name = record.get("lastName", "")
        if isinstance(player_id, bool) or not isinstance(player_id, int):
            raise RosterUnavailable(f"Roster entry {index} has no numeric id.")
        if not isinstance(first_name, str) or not first_name.strip():
            raise RosterUnavailable(f"Roster entry {index} has no first name.")
        if not isinstance(last_name, str):
            raise RosterUnavailable(f"Roster entry {index} has an invalid last name.")
        players.append(Player(id=player_id, name=display_name(first_name, last_name)))
    return players
