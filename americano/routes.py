from __future__ import annotations

import hmac
import logging
import os
import secrets
import time
from typing import Any

from fastapi import APIRouter, Body, Depends, Form, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from .bracket import Player, Round
from .database import get_session
from .exceptions import DuplicatePlayer, InvalidRosterSize, RosterUnavailable, ScoreOutOfRange
from .roster import parse_roster
from .storage import STATE_TTL_SECONDS, DatabaseStateStore
from .tournament import SessionState, TournamentSession

router = APIRouter()

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = os.getenv("AMERICANO_SESSION_COOKIE", "americano_session")
SESSION_SECRET = os.getenv("AMERICANO_SESSION_SECRET") or os.getenv("SECRET_KEY") or secrets.token_hex(32)
SESSION_MAX_AGE = STATE_TTL_SECONDS
COOKIE_SECURE = os.getenv("AMERICANO_COOKIE_SECURE", "true").lower() != "false"


def _sign_payload(payload: str) -> str:
    secret = SESSION_SECRET.encode("utf-8")
    return hmac.new(secret, payload.encode("utf-8"), "sha256").hexdigest()


def _encode_session(token: str) -> str:
    timestamp = str(int(time.time()))
    payload = f"{token}|{timestamp}"
    signature = _sign_payload(payload)
    return f"{payload}|{signature}"


def _decode_session(raw: str) -> str | None:
    """Return the session token when the cookie is authentic and fresh."""
    try:
        token, timestamp, signature = raw.split("|")
    except ValueError:
        return None
    payload = f"{token}|{timestamp}"
    expected = _sign_payload(payload)
    if not hmac.compare_digest(expected, signature):
        return None
    try:
        issued_at = int(timestamp)
    except ValueError:
        return None
    if int(time.time()) - issued_at > SESSION_MAX_AGE:
        return None
    return token


def _session_id(request: Request) -> str | None:
    cookie_value = request.cookies.get(SESSION_COOKIE_NAME)
    return _decode_session(cookie_value) if cookie_value else None


def _tournament(session: Session, session_id: str) -> TournamentSession:
    return TournamentSession(DatabaseStateStore(session, session_id))


def _respond(payload: dict[str, object], session_id: str) -> JSONResponse:
    response = JSONResponse(payload)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=_encode_session(session_id),
        max_age=SESSION_MAX_AGE,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
        path="/",
    )
    return response


def _roster_from_body(payload: Any) -> list[Player]:
    if not isinstance(payload, dict):
        raise HTTPException(status_code=422, detail="Expected a JSON object with a players list")
    try:
        return parse_roster(payload.get("players"))
    except RosterUnavailable as exc:
        logger.info("Rejected roster: %s", exc)
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _require_state(tournament: TournamentSession) -> SessionState:
    state = tournament.load()
    if state is None:
        raise HTTPException(status_code=404, detail="No tournament in progress")
    return state


@router.post("/tournament", name="initialize_tournament")
async def initialize_tournament(
    request: Request,
    payload: Any = Body(...),
    session: Session = Depends(get_session),
):
    players = _roster_from_body(payload)
    session_id = _session_id(request) or secrets.token_hex(16)
    tournament = _tournament(session, session_id)
    try:
        state = tournament.initialize_or_resume(players)
    except (InvalidRosterSize, DuplicatePlayer) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _respond(_state_context(tournament, state), session_id)


@router.get("/tournament", name="tournament_state")
async def tournament_state(request: Request, session: Session = Depends(get_session)):
    session_id = _require_session_id(request)
    tournament = _tournament(session, session_id)
    state = _require_state(tournament)
    return _respond(_state_context(tournament, state), session_id)


@router.post("/tournament/next", name="next_round")
async def next_round(request: Request, session: Session = Depends(get_session)):
    session_id = _require_session_id(request)
    tournament = _tournament(session, session_id)
    state = tournament.advance(_require_state(tournament))
    return _respond(_state_context(tournament, state), session_id)


@router.post("/tournament/previous", name="previous_round")
async def previous_round(request: Request, session: Session = Depends(get_session)):
    session_id = _require_session_id(request)
    tournament = _tournament(session, session_id)
    state = tournament.retreat(_require_state(tournament))
    return _respond(_state_context(tournament, state), session_id)


@router.post("/tournament/score", name="record_score")
async def record_score(
    request: Request,
    session: Session = Depends(get_session),
    score: int = Form(...),
):
    session_id = _require_session_id(request)
    tournament = _tournament(session, session_id)
    state = _require_state(tournament)
    try:
        state = tournament.submit_score(state, score)
    except ScoreOutOfRange as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _respond(_state_context(tournament, state), session_id)


@router.get("/tournament/ranking", name="ranking")
async def ranking(request: Request, session: Session = Depends(get_session)):
    session_id = _require_session_id(request)
    tournament = _tournament(session, session_id)
    state = _require_state(tournament)
    return _respond({"ranking": _ranking_rows(tournament, state)}, session_id)


@router.post("/tournament/new", name="new_tournament")
async def new_tournament(
    request: Request,
    payload: Any = Body(...),
    session: Session = Depends(get_session),
):
    players = _roster_from_body(payload)
    session_id = _session_id(request) or secrets.token_hex(16)
    tournament = _tournament(session, session_id)
    try:
        state = tournament.start_new_tournament(players, tournament.load())
    except (InvalidRosterSize, DuplicatePlayer) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _respond(_state_context(tournament, state), session_id)


def _require_session_id(request: Request) -> str:
    session_id = _session_id(request)
    if not session_id:
        raise HTTPException(status_code=404, detail="No tournament in progress")
    return session_id


def _player_payload(player: Player) -> dict[str, object]:
    return {"id": player.id, "name": player.name}


def _round_payload(round_: Round) -> dict[str, object]:
    return {
        "team_a": [_player_payload(player) for player in round_.team_a],
        "team_b": [_player_payload(player) for player in round_.team_b],
        "bench": [_player_payload(player) for player in round_.bench],
    }


def _ranking_rows(tournament: TournamentSession, state: SessionState) -> list[dict[str, object]]:
    return [
        {"position": position, "id": player.id, "name": player.name, "score": score}
        for position, (player, score) in enumerate(tournament.ranking(state), start=1)
    ]


def _state_context(tournament: TournamentSession, state: SessionState) -> dict[str, object]:
    current = state.scores.get(state.current_round_index)
    return {
        "round_index": state.current_round_index,
        "round_count": state.round_count,
        "round": _round_payload(tournament.current_round(state)),
        "score": list(current) if current else None,
        "scores": {str(index): list(pair) for index, pair in sorted(state.scores.items())},
        "ranking": _ranking_rows(tournament, state),
        "has_previous": state.has_previous,
        "has_next": state.has_next,
    }
