from typing import Any, Dict, List, Optional

import httpx

from neuronnook.core.config import Settings
from neuronnook.core.errors import ProviderAPIError
from neuronnook.services.oauth_base import DEFAULT_TIMEOUT_SECONDS, OAuthProviderClient, ProviderConfig
from neuronnook.utils.logger import get_logger

logger = get_logger("google_auth")

class GoogleAuthService(OAuthProviderClient):
    GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
    GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
    GOOGLE_TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"
    SCOPES = [
        "openid",
        "email",
        "profile",
        "https://www.googleapis.com/auth/gmail.readonly",
        "https://www.googleapis.com/auth/drive.readonly",
        "https://www.googleapis.com/auth/photoslibrary.readonly",
        "https://www.googleapis.com/auth/photoslibrary",
    ]

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "GoogleAuthService":
        config = ProviderConfig(
            name="google",
            authorize_url=cls.GOOGLE_AUTH_URL,
            token_url=cls.GOOGLE_TOKEN_URL,
            userinfo_url=cls.GOOGLE_USERINFO_URL,
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            redirect_uri=settings.redirect_uri_for("google"),
            scopes=list(cls.SCOPES),
            auth_params={
                "access_type": "offline",  # Important for refresh token
                "prompt": "consent",       # Force consent to get refresh token
                "include_granted_scopes": "true",
            },
        )
        return cls(config, timeout=settings.PROVIDER_TIMEOUT_SECONDS or DEFAULT_TIMEOUT_SECONDS, transport=transport)

    async def get_token_info(self, access_token: str) -> Dict[str, Any]:
        """Ask Google which scopes the access token actually carries."""
        response = await self._request(
            "GET",
            self.GOOGLE_TOKENINFO_URL,
            params={"access_token": access_token},
        )
        if not response.is_success:
            logger.warning(f"Token info failed ({response.status_code})")
            raise ProviderAPIError(response.status_code, "Failed to get token info", details=response.text)
        return response.json()

    @staticmethod
    def granted_scopes(token_info: Dict[str, Any]) -> List[str]:
        scope = token_info.get("scope") or ""
        return scope.split()
