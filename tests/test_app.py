import pytest
import pytest_asyncio
import httpx
from sqlmodel import Session, select

from americano import app
from americano.database import StateEntry, engine, init_db

from conftest import TEST_DB

ROSTER = {
    "players": [
        {"id": 10669, "firstName": "Lars", "lastName": "Foleide", "phone": "+47 98454499"},
        {"id": 12197, "firstName": "Anh", "lastName": "Nguyen Pham"},
        {"id": 12345, "firstName": "Bob", "lastName": "Dahl"},
        {"id": 15678, "firstName": "Alice", "lastName": "Dahl"},
    ]
}


@pytest.fixture(autouse=True)
def _cleanup_db():
    engine.dispose()
    if TEST_DB.exists():
        TEST_DB.unlink()
    init_db()
    yield
    engine.dispose()
    if TEST_DB.exists():
        TEST_DB.unlink()


@pytest_asyncio.fixture
async def async_client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.mark.asyncio
async def test_initialize_returns_first_round(async_client):
    response = await async_client.post("/tournament", json=ROSTER)
    assert response.status_code == 200
    body = response.json()
    assert body["round_index"] == 0
    assert body["round_count"] == 3
    assert body["has_previous"] is False
    assert body["has_next"] is True
    assert body["round"]["bench"] == []
    names = {player["name"] for player in body["round"]["team_a"] + body["round"]["team_b"]}
    assert names == {"Lars F.", "Anh N.", "Bob D.", "Alice D."}
    assert "americano_session" in response.cookies


@pytest.mark.asyncio
async def test_reload_resumes_the_same_schedule(async_client):
    first = (await async_client.post("/tournament", json=ROSTER)).json()
    await async_client.post("/tournament/next")
    resumed = (await async_client.post("/tournament", json=ROSTER)).json()
    assert resumed["round_index"] == 1
    state = (await async_client.get("/tournament")).json()
    assert state["round_index"] == 1
    assert first["round_count"] == state["round_count"]


@pytest.mark.asyncio
async def test_navigation_stays_within_schedule(async_client):
    await async_client.post("/tournament", json=ROSTER)
    for _ in range(5):
        response = await async_client.post("/tournament/next")
    assert response.json()["round_index"] == 2
    assert response.json()["has_next"] is False
    for _ in range(5):
        response = await async_client.post("/tournament/previous")
    assert response.json()["round_index"] == 0


@pytest.mark.asyncio
async def test_score_updates_ranking(async_client):
    start = (await async_client.post("/tournament", json=ROSTER)).json()
    response = await async_client.post("/tournament/score", data={"score": 10})
    assert response.status_code == 200
    body = response.json()
    assert body["score"] == [10, 6]
    team_a_ids = {player["id"] for player in start["round"]["team_a"]}

    ranking = (await async_client.get("/tournament/ranking")).json()["ranking"]
    assert [row["position"] for row in ranking] == [1, 2, 3, 4]
    assert {row["id"] for row in ranking[:2]} == team_a_ids
    assert [row["score"] for row in ranking] == [10, 10, 6, 6]


@pytest.mark.asyncio
async def test_score_out_of_range_is_rejected(async_client):
    await async_client.post("/tournament", json=ROSTER)
    response = await async_client.post("/tournament/score", data={"score": 17})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_navigation_without_tournament_is_not_found(async_client):
    response = await async_client.post("/tournament/next")
    assert response.status_code == 404
    response = await async_client.get("/tournament/ranking")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_small_roster_is_rejected(async_client):
    response = await async_client.post("/tournament", json={"players": ROSTER["players"][:3]})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_malformed_roster_is_rejected(async_client):
    response = await async_client.post("/tournament", json={"players": [{"firstName": "Bob"}]})
    assert response.status_code == 422
    response = await async_client.post("/tournament", json=[1, 2, 3])
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_new_tournament_clears_scores(async_client):
    await async_client.post("/tournament", json=ROSTER)
    await async_client.post("/tournament/score", data={"score": 12})
    await async_client.post("/tournament/next")
    response = await async_client.post("/tournament/new", json=ROSTER)
    assert response.status_code == 200
    body = response.json()
    assert body["round_index"] == 0
    assert body["scores"] == {}
    assert all(row["score"] == 0 for row in body["ranking"])


@pytest.mark.asyncio
async def test_state_is_stored_per_session(async_client):
    await async_client.post("/tournament", json=ROSTER)
    with Session(engine) as session:
        entries = session.exec(select(StateEntry)).all()
    assert {entry.key for entry in entries} == {"schedule", "currentRoundIndex", "scores"}
    assert len({entry.session_id for entry in entries}) == 1
