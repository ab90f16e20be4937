"""Time-limited key/value storage for an in-progress tournament."""

from __future__ import annotations

import json
import logging
import os
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict

from sqlmodel import Session, select

from .database import StateEntry
from .exceptions import CorruptedPersistedState

STATE_TTL_SECONDS = int(os.getenv("AMERICANO_STATE_TTL_SECONDS", "3600"))  # 1 hour default

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class StateStore(ABC):
    """Stores JSON values stamped with an expiry instant.

    Subclasses provide raw access to the encoded entries. Expired and
    undecodable entries are deleted on read and reported as absent.
    """

    def __init__(self, *, ttl_seconds: int = STATE_TTL_SECONDS, clock: Clock = time.time):
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        expiry = int((self.clock() + ttl) * 1000)
        self._save(key, json.dumps({"value": value, "expiry": expiry}))

    def get(self, key: str) -> Any | None:
        raw = self._load(key)
        if raw is None:
            return None
        try:
            value, expiry = _decode_entry(raw)
        except CorruptedPersistedState as exc:
            logger.warning("Discarding corrupted state entry %r: %s", key, exc)
            self._delete(key)
            return None
        if self.clock() * 1000 > expiry:
            logger.debug("State entry %r expired.", key)
            self._delete(key)
            return None
        return value

    def remove(self, key: str) -> None:
        self._delete(key)

    @abstractmethod
    def clear(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def _load(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def _save(self, key: str, payload: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def _delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryStateStore(StateStore):
    """Keeps entries in a dict; used by tests and single-process tools."""

    def __init__(self, *, ttl_seconds: int = STATE_TTL_SECONDS, clock: Clock = time.time):
        super().__init__(ttl_seconds=ttl_seconds, clock=clock)
        self.entries: Dict[str, str] = {}

    def __contains__(self, key: str) -> bool:
        return key in self.entries

    def clear(self) -> None:
        self.entries.clear()

    def _load(self, key: str) -> str | None:
        return self.entries.get(key)

    def _save(self, key: str, payload: str) -> None:
        self.entries[key] = payload

    def _delete(self, key: str) -> None:
        self.entries.pop(key, None)


class DatabaseStateStore(StateStore):
    """Keeps entries in the ``StateEntry`` table, scoped to one browser session."""

    def __init__(
        self,
        session: Session,
        session_id: str,
        *,
        ttl_seconds: int = STATE_TTL_SECONDS,
        clock: Clock = time.time,
    ):
        super().__init__(ttl_seconds=ttl_seconds, clock=clock)
        self.session = session
        self.session_id = session_id

    def clear(self) -> None:
        entries = self.session.exec(
            select(StateEntry).where(StateEntry.session_id == self.session_id)
        ).all()
        for entry in entries:
            self.session.delete(entry)
        self.session.commit()

    def _entry(self, key: str) -> StateEntry | None:
        return self.session.exec(
            select(StateEntry).where(
                (StateEntry.session_id == self.session_id) & (StateEntry.key == key)
            )
        ).first()

    def _load(self, key: str) -> str | None:
        entry = self._entry(key)
        return entry.payload if entry else None

    def _save(self, key: str, payload: str) -> None:
        entry = self._entry(key)
        if entry is None:
            entry = StateEntry(session_id=self.session_id, key=key, payload=payload)
        else:
            entry.payload = payload
        self.session.add(entry)
        self.session.commit()

    def _delete(self, key: str) -> None:
        entry = self._entry(key)
        if entry is None:
            return
        self.session.delete(entry)
        self.session.commit()


def _decode_entry(raw: str) -> tuple[Any, float]:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise CorruptedPersistedState(str(exc)) from exc
    if not isinstance(data, dict) or "value" not in data or "expiry" not in data:
        raise CorruptedPersistedState("entry is missing its value or expiry")
    expiry = data["expiry"]
    if isinstance(expiry, bool) or not isinstance(expiry, (int, float)):
        raise CorruptedPersistedState(f"invalid expiry {expiry!r}")
    return data["value"], expiry
