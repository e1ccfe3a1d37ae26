from urllib.parse import parse_qs

import httpx
import pytest

from neuronnook.core.config import Settings
from neuronnook.core.database import Database
from neuronnook.core.security import SessionCodec
from neuronnook.main import create_app
from neuronnook.services.credential_store import CredentialStore

GOOGLE_SCOPES = (
    "openid https://www.googleapis.com/auth/userinfo.email "
    "https://www.googleapis.com/auth/gmail.readonly "
    "https://www.googleapis.com/auth/drive.readonly "
    "https://www.googleapis.com/auth/photoslibrary.readonly"
)


class ProviderStub:
    """Fake Google and Microsoft endpoints served through httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.exchange = {
            "google": (200, {"access_token": "google-access", "refresh_token": "google-refresh", "expires_in": 3599}),
            "microsoft": (200, {"access_token": "ms-access", "refresh_token": "ms-refresh", "expires_in": 3600}),
        }
        self.refresh = {
            "google": (200, {"access_token": "google-fresh", "expires_in": 3599}),
            "microsoft": (200, {"access_token": "ms-fresh", "expires_in": 3600}),
        }
        self.identity = {
            "google": (200, {"email": "alice@x.com", "name": "Alice", "picture": "https://img.example/alice.png"}),
            "microsoft": (200, {"mail": None, "userPrincipalName": "alice@x.com", "displayName": "Alice A."}),
        }
        # Google tokens the tokeninfo endpoint accepts; anything else is "expired".
        self.valid_google_tokens = {"google-access", "google-fresh"}
        self.fail_with = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with(f"simulated {self.fail_with.__name__}", request=request)

        url = request.url
        if url.host == "oauth2.googleapis.com" and url.path == "/token":
            return self._token("google", request)
        if url.host == "login.microsoftonline.com" and url.path.endswith("/oauth2/v2.0/token"):
            return self._token("microsoft", request)
        if url.host == "www.googleapis.com" and url.path == "/oauth2/v2/userinfo":
            status, body = self.identity["google"]
            return httpx.Response(status, json=body)
        if url.host == "graph.microsoft.com" and url.path == "/v1.0/me":
            status, body = self.identity["microsoft"]
            return httpx.Response(status, json=body)
        if url.host == "oauth2.googleapis.com" and url.path == "/tokeninfo":
            token = url.params.get("access_token")
            if token in self.valid_google_tokens:
                return httpx.Response(200, json={"scope": GOOGLE_SCOPES, "expires_in": 3500, "email": "alice@x.com"})
            return httpx.Response(400, json={"error": "invalid_token", "error_description": "Invalid Value"})
        return httpx.Response(404, json={"error": "not found"})

    def _token(self, provider: str, request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        grant_type = form["grant_type"][0]
        status, body = (self.exchange if grant_type == "authorization_code" else self.refresh)[provider]
        return httpx.Response(status, json=body)

    def token_requests(self, grant_type: str):
        return [
            r for r in self.requests
            if r.method == "POST" and parse_qs(r.content.decode()).get("grant_type") == [grant_type]
        ]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        JWT_SECRET="test-secret",
        GOOGLE_CLIENT_ID="google-client-id",
        GOOGLE_CLIENT_SECRET="google-client-secret",
        MICROSOFT_CLIENT_ID="ms-client-id",
        MICROSOFT_CLIENT_SECRET="ms-client-secret",
        APP_URL="http://testserver",
        # Relative redirects keep Location assertions host-free.
        FRONTEND_PUBLIC_URL="",
    )


@pytest.fixture
async def database(settings):
    db = Database(settings.DATABASE_URL)
    yield db
    await db.dispose()


@pytest.fixture
def store(database):
    return CredentialStore(database)


@pytest.fixture
def codec():
    return SessionCodec("test-secret")


@pytest.fixture
def provider_stub():
    return ProviderStub()


@pytest.fixture
async def app(settings, provider_stub):
    application = create_app(settings, http_transport=httpx.MockTransport(provider_stub.handler))
    yield application
    await application.state.database.dispose()


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
