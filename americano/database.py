"""Database engine and tables for persisted tournament state."""

from __future__ import annotations

import os
from typing import Iterator

from sqlalchemy.engine import Engine
from sqlmodel import Field, Session, SQLModel, create_engine

DEFAULT_SQLITE_PATH = "sqlite:///./americano.db"


def _build_engine_url() -> str:
    """Return the configured database URL or fall back to SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_SQLITE_PATH)


def _build_engine() -> Engine:
    url = _build_engine_url()
    engine_kwargs = {}
    if url.startswith("sqlite"):
        # SQLite needs check_same_thread disabled for FastAPI concurrency,
        # but passing this flag to other drivers (e.g., psycopg2) raises errors.
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(url, **engine_kwargs)


engine = _build_engine()


class StateEntry(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    session_id: str = Field(nullable=False, index=True, max_length=64)
    key: str = Field(nullable=False, max_length=64)
    payload: str = Field(nullable=False)


def init_db() -> None:
    """Create tables if they don't already exist."""
    SQLModel.metadata.create_all(engine)


def get_session() -> Iterator[Session]:
    """Yield a SQLModel session for dependency injection."""
    with Session(engine) as session:
        yield session
