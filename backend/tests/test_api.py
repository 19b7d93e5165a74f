"""HTTP surface: routing, typed denials as 200, error mapping."""

import httpx
import pytest

from favmatch.errors import ContentionError
from favmatch.main import create_app


@pytest.fixture
def app(test_settings, services):
    # ASGITransport does not run the lifespan; wire the services directly
    application = create_app(test_settings)
    application.state.services = services
    return application


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test/api/v1") as c:
        yield c


async def create_user(client, user_id: str, **body):
    resp = await client.put(f"/users/{user_id}", json={"display_name": user_id.title(), **body})
    assert resp.status_code == 200
    return resp.json()


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_profile_create_and_update(client):
    created = await create_user(client, "alice", gender="female", location="tokyo")
    assert created["gender"] == "female"
    assert created["match_gender"] == "everyone"

    resp = await client.put("/users/alice", json={"match_location": "local"})
    assert resp.json()["match_location"] == "local"
    assert resp.json()["display_name"] == "Alice"


async def test_invalid_enum_is_rejected(client):
    resp = await client.put("/users/alice", json={"gender": "robot"})
    assert resp.status_code == 422


async def test_unknown_user_is_404(client):
    assert (await client.get("/users/ghost")).status_code == 404
    assert (await client.post("/users/ghost/matches/search")).status_code == 404
    assert (await client.get("/users/ghost/quota")).status_code == 404


async def test_favorites_and_quota_flow(client):
    await create_user(client, "alice")
    for tid in ["1", "2", "3"]:
        resp = await client.post("/users/alice/favorites/anime", json={"title_id": tid, "title": f"Show {tid}"})
        assert resp.json()["success"]

    listed = (await client.get("/users/alice/favorites")).json()
    assert [t["title_id"] for t in listed["anime"]] == ["1", "2", "3"]
    assert listed["drama"] == []

    for tid in ["1", "2"]:
        assert (await client.delete(f"/users/alice/favorites/anime/{tid}")).json()["success"]

    denied = await client.delete("/users/alice/favorites/anime/3")
    assert denied.status_code == 200
    body = denied.json()
    assert body["success"] is False
    assert body["reason"] == "cooldown"
    assert body["cooldown_remaining_seconds"] == 120

    quota = (await client.get("/users/alice/quota")).json()
    assert quota["state"] == "cooldown"
    assert quota["remaining_changes"] == 0
    assert quota["favorites_count"] == {"anime": 1}


async def test_unknown_category_is_422(client):
    await create_user(client, "alice")
    resp = await client.post("/users/alice/favorites/manga", json={"title_id": "1"})
    assert resp.status_code == 422


async def test_matches_over_http(client, clock):
    await create_user(client, "alice")
    await create_user(client, "bob")
    for user_id in ["alice", "bob"]:
        for tid in ["1", "2", "3"]:
            await client.post(f"/users/{user_id}/favorites/drama", json={"title_id": tid})

    matches = (await client.get("/users/alice/matches")).json()
    assert matches["total"] == 1
    assert matches["matches"][0]["user_id"] == "bob"
    assert matches["matches"][0]["match_strength"] == 3

    search = (await client.post("/users/alice/matches/search")).json()
    assert search["allowed"] is True
    assert search["new_matches"] == []
    assert search["remaining"] == 1


async def test_premium_upgrade(client):
    await create_user(client, "alice")
    resp = await client.post("/users/alice/premium")
    assert resp.json()["tier"] == "premium"
    assert resp.json()["remaining_matches"] is None


async def test_contention_is_409(app, client, services, monkeypatch):
    await create_user(client, "alice")

    async def conflict(*args, **kwargs):
        raise ContentionError("Could not match, please try again", attempts=3)

    monkeypatch.setattr(services.matching, "search_matches", conflict)
    resp = await client.post("/users/alice/matches/search")
    assert resp.status_code == 409
    assert resp.json()["attempts"] == 3
