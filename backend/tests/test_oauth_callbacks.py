from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from sqlalchemy import func, select

from neuronnook.core.config import Settings
from neuronnook.models.user import User
from neuronnook.services.oauth_base import encode_state


async def count_users(app):
    async with app.state.database.session() as session:
        return (await session.execute(select(func.count()).select_from(User))).scalar_one()


async def login_with(client, provider, code="auth-code"):
    return await client.get(f"/auth/{provider}/callback", params={"code": code, "state": encode_state(False)})


@pytest.mark.asyncio
async def test_login_redirects_to_consent(client):
    response = await client.get("/auth/google", params={"link": "true"})

    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert location.netloc == "accounts.google.com"
    assert "state" in parse_qs(location.query)


@pytest.mark.asyncio
async def test_missing_code_fails(client, app, provider_stub):
    response = await client.get("/auth/google/callback")

    assert response.status_code == 302
    assert response.headers["location"] == "/?error=no_code"
    assert provider_stub.requests == []


@pytest.mark.asyncio
async def test_token_exchange_failure_creates_no_user(client, app, provider_stub):
    provider_stub.exchange["google"] = (400, {"error": "invalid_grant"})

    response = await login_with(client, "google")

    assert response.headers["location"] == "/?error=token_exchange_failed"
    assert "session" not in response.cookies
    assert await count_users(app) == 0


@pytest.mark.asyncio
async def test_user_info_failure(client, app, provider_stub):
    provider_stub.identity["microsoft"] = (500, {"error": "boom"})

    response = await login_with(client, "microsoft")

    assert response.headers["location"] == "/?error=user_info_failed"
    assert await count_users(app) == 0


@pytest.mark.asyncio
async def test_provider_timeout_has_its_own_reason(client, provider_stub):
    provider_stub.fail_with = httpx.ReadTimeout

    response = await login_with(client, "google")

    assert response.headers["location"] == "/?error=provider_timeout"


@pytest.mark.asyncio
async def test_unreachable_provider_has_its_own_reason(client, app, provider_stub):
    provider_stub.fail_with = httpx.ConnectError

    response = await login_with(client, "microsoft")

    assert response.headers["location"] == "/?error=provider_unavailable"
    assert "session" not in response.cookies
    assert await count_users(app) == 0


@pytest.mark.asyncio
async def test_google_login_creates_user_and_sets_session(client, app):
    response = await login_with(client, "google")

    assert response.status_code == 302
    assert response.headers["location"] == "/dashboard"
    set_cookie = response.headers["set-cookie"].lower()
    assert "httponly" in set_cookie
    assert "samesite=lax" in set_cookie
    assert "max-age=604800" in set_cookie
    assert "path=/" in set_cookie

    user = await app.state.credential_store.find_by_email("alice@x.com")
    assert user.name == "Alice"
    assert user.image == "https://img.example/alice.png"
    assert user.google_connected is True
    assert user.google_access_token == "google-access"
    assert user.google_refresh_token == "google-refresh"
    assert user.microsoft_connected is False

    session = app.state.session_codec.verify(response.cookies["session"])
    assert session.user_id == user.id
    assert session.email == "alice@x.com"


@pytest.mark.asyncio
async def test_repeat_login_updates_existing_user(client, app, provider_stub):
    await login_with(client, "google")
    provider_stub.exchange["google"] = (200, {"access_token": "google-access-2", "expires_in": 3599})

    response = await login_with(client, "google")

    assert response.headers["location"] == "/dashboard"
    assert await count_users(app) == 1
    user = await app.state.credential_store.find_by_email("alice@x.com")
    assert user.google_access_token == "google-access-2"
    # No refresh token in the second response: the stored one survives.
    assert user.google_refresh_token == "google-refresh"


@pytest.mark.asyncio
async def test_link_microsoft_to_google_account(client, app):
    await login_with(client, "google")

    response = await client.get(
        "/auth/microsoft/callback",
        params={"code": "ms-code", "state": encode_state(True)},
    )

    assert response.status_code == 302
    assert response.headers["location"] == "/dashboard?linked=microsoft"
    assert "session" not in response.cookies
    assert await count_users(app) == 1
    user = await app.state.credential_store.find_by_email("alice@x.com")
    assert user.google_connected is True
    assert user.microsoft_connected is True
    assert user.microsoft_access_token == "ms-access"
    assert user.microsoft_refresh_token == "ms-refresh"


@pytest.mark.asyncio
async def test_link_without_session_writes_nothing(client, app):
    response = await client.get(
        "/auth/microsoft/callback",
        params={"code": "ms-code", "state": encode_state(True)},
    )

    assert response.headers["location"] == "/?error=not_authenticated"
    assert await count_users(app) == 0


@pytest.mark.asyncio
async def test_link_with_invalid_session(client, app):
    client.cookies.set("session", "forged.token.value")

    response = await client.get(
        "/auth/google/callback",
        params={"code": "g-code", "state": encode_state(True)},
    )

    assert response.headers["location"] == "/?error=invalid_session"
    assert await count_users(app) == 0


@pytest.mark.asyncio
async def test_malformed_state_falls_back_to_login(client, app):
    response = await client.get("/auth/google/callback", params={"code": "auth-code", "state": "%%%garbage"})

    assert response.headers["location"] == "/dashboard"
    assert await count_users(app) == 1


@pytest.mark.asyncio
async def test_persistence_failure_redirects_with_generic_reason(client, app, monkeypatch):
    async def broken_create(fields):
        raise RuntimeError("database down")

    monkeypatch.setattr(app.state.credential_store, "create", broken_create)

    response = await login_with(client, "google")

    assert response.headers["location"] == "/?error=callback_failed"
    assert "session" not in response.cookies


def test_redirects_default_to_local_frontend(monkeypatch):
    monkeypatch.delenv("FRONTEND_PUBLIC_URL", raising=False)
    settings = Settings(_env_file=None, DATABASE_URL="sqlite+aiosqlite://")

    assert settings.frontend_url("/dashboard") == "http://localhost:3000/dashboard"
    assert settings.frontend_url("/?error=no_code") == "http://localhost:3000/?error=no_code"
