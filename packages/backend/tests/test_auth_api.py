"""Auth API tests — registration, cookie login, logout, session check.

Learn: These use `unauthenticated_client`, so the real cookie → JWT →
user pipeline runs. The token is copied out of Set-Cookie and put back
into the client's jar, as a browser would.
"""

import pytest

from murmur.auth.jwt import verify_token

REGISTER_BODY = {
    "username": "dave",
    "displayName": "Dave Example",
    "email": "dave@example.com",
    "password": "hunter22",
}


async def _register(client, **overrides):
    return await client.post("/api/v1/auth/register", json={**REGISTER_BODY, **overrides})


# ═══════════════════════════════════════════════════════════
# Registration
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_register_sets_auth_cookie(unauthenticated_client):
    r = await _register(unauthenticated_client)
    assert r.status_code == 201

    user = r.json()["user"]
    assert user["username"] == "dave"
    assert user["displayName"] == "Dave Example"
    assert "passwordHash" not in user

    set_cookie = r.headers["set-cookie"]
    assert set_cookie.startswith("access_token=")
    assert "HttpOnly" in set_cookie
    assert "samesite=lax" in set_cookie.lower()
    assert "Max-Age=604800" in set_cookie

    claims = verify_token(r.cookies["access_token"])
    assert claims.user_id == user["id"]
    assert claims.username == "dave"


@pytest.mark.asyncio
async def test_register_duplicate_username(unauthenticated_client):
    assert (await _register(unauthenticated_client)).status_code == 201
    r = await _register(unauthenticated_client, email="other@example.com")
    assert r.status_code == 409
    assert r.json()["detail"] == "Username already taken"


@pytest.mark.asyncio
async def test_register_duplicate_email(unauthenticated_client):
    assert (await _register(unauthenticated_client)).status_code == 201
    r = await _register(unauthenticated_client, username="dave2")
    assert r.status_code == 409
    assert r.json()["detail"] == "Email already registered"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "field,value",
    [
        ("username", "ab"),
        ("username", "has space"),
        ("username", "x" * 21),
        ("displayName", ""),
        ("email", "not-an-email"),
        ("password", "short"),
    ],
)
async def test_register_validation(unauthenticated_client, field, value):
    r = await _register(unauthenticated_client, **{field: value})
    assert r.status_code == 422


# ═══════════════════════════════════════════════════════════
# Login / Logout
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
@pytest.mark.parametrize("identifier", ["alice", "alice@example.com"])
async def test_login_by_username_or_email(unauthenticated_client, alice, identifier):
    r = await unauthenticated_client.post(
        "/api/v1/auth/login",
        json={"identifier": identifier, "password": "password123"},
    )
    assert r.status_code == 200
    assert r.json()["user"]["id"] == alice.id
    assert "access_token" in r.cookies


@pytest.mark.asyncio
async def test_login_wrong_password(unauthenticated_client, alice):
    r = await unauthenticated_client.post(
        "/api/v1/auth/login",
        json={"identifier": "alice", "password": "wrong-password"},
    )
    assert r.status_code == 401
    assert "set-cookie" not in r.headers


@pytest.mark.asyncio
async def test_login_unknown_user(unauthenticated_client):
    r = await unauthenticated_client.post(
        "/api/v1/auth/login",
        json={"identifier": "nobody", "password": "password123"},
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_login_inactive_user(unauthenticated_client, db_session, alice):
    alice.is_active = False
    await db_session.commit()

    r = await unauthenticated_client.post(
        "/api/v1/auth/login",
        json={"identifier": "alice", "password": "password123"},
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_logout_clears_cookie(unauthenticated_client):
    r = await _register(unauthenticated_client)
    unauthenticated_client.cookies.set("access_token", r.cookies["access_token"])

    r = await unauthenticated_client.post("/api/v1/auth/logout")
    assert r.status_code == 200
    assert r.json()["message"] == "Logged out"
    assert "Max-Age=0" in r.headers["set-cookie"]


@pytest.mark.asyncio
async def test_logout_requires_auth(unauthenticated_client):
    r = await unauthenticated_client.post("/api/v1/auth/logout")
    assert r.status_code == 401


# ═══════════════════════════════════════════════════════════
# Current user
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_me_with_cookie(unauthenticated_client):
    r = await _register(unauthenticated_client)
    unauthenticated_client.cookies.set("access_token", r.cookies["access_token"])

    r = await unauthenticated_client.get("/api/v1/auth/me")
    assert r.status_code == 200
    assert r.json()["user"]["username"] == "dave"


@pytest.mark.asyncio
async def test_me_with_bearer_header(unauthenticated_client):
    token = (await _register(unauthenticated_client)).cookies["access_token"]
    unauthenticated_client.cookies.clear()

    r = await unauthenticated_client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"}
    )
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_me_without_token(unauthenticated_client):
    r = await unauthenticated_client.get("/api/v1/auth/me")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_me_with_invalid_token(unauthenticated_client):
    unauthenticated_client.cookies.set("access_token", "garbage")
    r = await unauthenticated_client.get("/api/v1/auth/me")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_check_reports_session_state(unauthenticated_client):
    r = await unauthenticated_client.get("/api/v1/auth/check")
    assert r.status_code == 200
    assert r.json() == {"isAuthenticated": False, "user": None}

    unauthenticated_client.cookies.set("access_token", "garbage")
    r = await unauthenticated_client.get("/api/v1/auth/check")
    assert r.status_code == 200
    assert r.json()["isAuthenticated"] is False

    token = (await _register(unauthenticated_client)).cookies["access_token"]
    unauthenticated_client.cookies.set("access_token", token)
    r = await unauthenticated_client.get("/api/v1/auth/check")
    assert r.json()["isAuthenticated"] is True
    assert r.json()["user"]["username"] == "dave"
