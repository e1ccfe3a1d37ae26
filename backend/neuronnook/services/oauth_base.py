import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from neuronnook.core.errors import (
    ProviderTimeout,
    ProviderUnavailable,
    TokenExchangeFailed,
    UserInfoFailed,
)
from neuronnook.schemas.auth import ProviderIdentity, TokenSet
from neuronnook.utils.logger import get_logger

logger = get_logger("oauth")

DEFAULT_TIMEOUT_SECONDS = 10.0


def encode_state(linking: bool) -> str:
    # Not signed: a forged state can only flip the link flag, and linking still
    # requires a valid session cookie.
    raw = json.dumps({"link": linking}, separators=(",", ":"))
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def decode_state(state: Optional[str]) -> bool:
    """Return True only for a well-formed state that asks to link. Anything else is a login."""
    if not state:
        return False
    try:
        data = json.loads(base64.b64decode(state, validate=True).decode("utf-8"))
    except (binascii.Error, ValueError, UnicodeDecodeError):
        logger.warning("Ignoring malformed OAuth state")
        return False
    return isinstance(data, dict) and data.get("link") is True


@dataclass
class ProviderConfig:
    name: str
    authorize_url: str
    token_url: str
    userinfo_url: str
    client_id: Optional[str]
    client_secret: Optional[str]
    redirect_uri: str
    scopes: List[str]
    auth_params: Dict[str, str] = field(default_factory=dict)
    # Microsoft identity platform v2 wants the scope repeated on token requests
    scope_on_token_requests: bool = False

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)


class OAuthProviderClient:
    """
    Authorization-code and refresh-token flows against one provider.

    Exchange and identity failures raise, aborting the login in progress. Refresh
    failures return None so the caller can keep using the stored access token.
    """

    def __init__(
        self,
        config: ProviderConfig,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.timeout = timeout
        self.transport = transport

    @property
    def name(self) -> str:
        return self.config.name

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            async with self._http_client() as client:
                return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"[{self.name}] {method} {url} timed out: {e}")
            raise ProviderTimeout(f"{self.name.capitalize()} request timed out")
        except httpx.RequestError as e:
            logger.error(f"[{self.name}] {method} {url} failed: {type(e).__name__}: {e}")
            raise ProviderUnavailable(f"{self.name.capitalize()} is unavailable")

    def _require_client_credentials(self) -> None:
        if not self.config.client_id or not self.config.client_secret:
            raise ValueError(f"{self.name.capitalize()} Client ID and Secret must be configured.")

    def build_authorization_url(self, linking: bool) -> str:
        if not self.config.client_id:
            raise ValueError(f"{self.name.capitalize()} Client ID must be configured.")

        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "response_type": "code",
            "scope": self.config.scope,
            **self.config.auth_params,
            "state": encode_state(linking),
        }
        return f"{self.config.authorize_url}?{urlencode(params)}"

    async def exchange_code_for_tokens(self, code: str) -> TokenSet:
        self._require_client_credentials()

        data = {
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.config.redirect_uri,
        }
        if self.config.scope_on_token_requests:
            data["scope"] = self.config.scope

        response = await self._request("POST", self.config.token_url, data=data)
        if not response.is_success:
            logger.error(f"[{self.name}] Token exchange failed ({response.status_code}): {response.text}")
            raise TokenExchangeFailed(self.name, response.text, response.status_code)

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict) or not payload.get("access_token"):
            logger.error(f"[{self.name}] Token exchange returned no access_token")
            raise TokenExchangeFailed(self.name, "missing access_token", response.status_code)

        logger.info(f"[{self.name}] Token exchange successful")
        return TokenSet(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_in=payload.get("expires_in"),
        )

    async def fetch_identity(self, access_token: str) -> ProviderIdentity:
        response = await self._request(
            "GET",
            self.config.userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if not response.is_success:
            logger.error(f"[{self.name}] User info failed ({response.status_code}): {response.text}")
            raise UserInfoFailed(self.name, response.text, response.status_code)

        identity = self.parse_identity(response.json())
        if identity is None:
            logger.error(f"[{self.name}] User info carried no email address")
            raise UserInfoFailed(self.name, "missing email", response.status_code)
        return identity

    def parse_identity(self, data: Dict[str, Any]) -> Optional[ProviderIdentity]:
        email = data.get("email")
        if not email:
            return None
        return ProviderIdentity(email=email, name=data.get("name"), picture=data.get("picture"))

    async def refresh_access_token(self, refresh_token: Optional[str]) -> Optional[str]:
        if not refresh_token:
            return None
        if not self.config.client_id or not self.config.client_secret:
            logger.warning(f"[{self.name}] Cannot refresh token: client credentials not configured")
            return None

        data = {
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        if self.config.scope_on_token_requests:
            data["scope"] = self.config.scope

        try:
            response = await self._request("POST", self.config.token_url, data=data)
        except (ProviderTimeout, ProviderUnavailable) as e:
            logger.error(f"[{self.name}] Error refreshing token: {e.message}")
            return None

        if not response.is_success:
            logger.error(f"[{self.name}] Failed to refresh token ({response.status_code}): {response.text}")
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.error(f"[{self.name}] Refresh response was not JSON")
            return None

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(access_token, str) or not access_token:
            logger.error(f"[{self.name}] Refresh response carried no access token")
            return None
        return access_token
