"""
User endpoint tests: registration, login, the blogs list and the
current user's settings.
"""
import pytest
from httpx import AsyncClient


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _register(client: AsyncClient, username: str, password: str = "pw", email=None) -> str:
    """Create *username* and return a bearer token for it."""
    resp = await client.post("/api/v1/users", json={
        "username": username, "password": password, "email": email,
    })
    assert resp.status_code == 201
    resp = await client.post("/api/v1/auth/token", json={
        "username": username, "password": password,
    })
    assert resp.status_code == 200
    return resp.json()["token"]


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_user(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/users", json={
        "username": "newuser", "password": "pw", "email": "new@example.com",
    })
    assert resp.status_code == 201
    assert resp.json() == {"created": True}


@pytest.mark.asyncio
async def test_create_user_twice_fails(async_client: AsyncClient):
    payload = {"username": "dup_user", "password": "pw"}
    assert (await async_client.post("/api/v1/users", json=payload)).status_code == 201
    assert (await async_client.post("/api/v1/users", json=payload)).status_code == 400


@pytest.mark.asyncio
async def test_create_user_missing_password(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/users", json={"username": "nopass"})
    assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_login_returns_token(async_client: AsyncClient):
    token = await _register(async_client, "alice", "secret")
    assert isinstance(token, str) and token


@pytest.mark.asyncio
async def test_login_failures_look_the_same(async_client: AsyncClient):
    await _register(async_client, "alice", "secret")

    wrong = await async_client.post("/api/v1/auth/token", json={
        "username": "alice", "password": "wrong",
    })
    unknown = await async_client.post("/api/v1/auth/token", json={
        "username": "mallory", "password": "secret",
    })
    assert wrong.status_code == unknown.status_code == 400
    assert wrong.json() == unknown.json()


# ---------------------------------------------------------------------------
# Blogs and settings
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_blogs(async_client: AsyncClient):
    assert (await async_client.get("/api/v1/blogs")).json() == []
    await _register(async_client, "bob")
    await _register(async_client, "alice")

    resp = await async_client.get("/api/v1/blogs")
    assert resp.status_code == 200
    assert resp.json() == [{"name": "alice"}, {"name": "bob"}]


@pytest.mark.asyncio
async def test_settings_read_and_update(async_client: AsyncClient):
    token = await _register(async_client, "alice", email="old@example.com")

    resp = await async_client.get("/api/v1/users/me/settings", headers=_auth(token))
    assert resp.status_code == 200
    assert resp.json() == {"email": "old@example.com"}

    resp = await async_client.patch(
        "/api/v1/users/me/settings", json={"email": "new@example.com"}, headers=_auth(token)
    )
    assert resp.status_code == 200

    resp = await async_client.get("/api/v1/users/me/settings", headers=_auth(token))
    assert resp.json() == {"email": "new@example.com"}


@pytest.mark.asyncio
async def test_settings_require_login(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/users/me/settings")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_invalid_token_rejected(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/users/me/settings", headers=_auth("not-a-jwt"))
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_health_reports_round_trips(async_client: AsyncClient):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    assert resp.headers["x-storage-round-trips"] == "0"
    assert "x-response-time-ms" in resp.headers
