from typing import Any, Dict, Optional

import httpx

from neuronnook.core.config import Settings
from neuronnook.schemas.auth import ProviderIdentity
from neuronnook.services.oauth_base import DEFAULT_TIMEOUT_SECONDS, OAuthProviderClient, ProviderConfig

class MicrosoftAuthService(OAuthProviderClient):
    # Using v2.0 endpoint
    MICROSOFT_AUTH_BASE = "https://login.microsoftonline.com"
    GRAPH_API_BASE = "https://graph.microsoft.com/v1.0"

    SCOPES = [
        "openid",
        "email",
        "profile",
        "offline_access",
        "User.Read",
        "Files.Read.All",
    ]

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "MicrosoftAuthService":
        tenant = settings.MICROSOFT_TENANT_ID or "common"
        base_url = f"{cls.MICROSOFT_AUTH_BASE}/{tenant}/oauth2/v2.0"
        config = ProviderConfig(
            name="microsoft",
            authorize_url=f"{base_url}/authorize",
            token_url=f"{base_url}/token",
            userinfo_url=f"{cls.GRAPH_API_BASE}/me",
            client_id=settings.MICROSOFT_CLIENT_ID,
            client_secret=settings.MICROSOFT_CLIENT_SECRET,
            redirect_uri=settings.redirect_uri_for("microsoft"),
            scopes=list(cls.SCOPES),
            auth_params={"response_mode": "query"},
            scope_on_token_requests=True,
        )
        return cls(config, timeout=settings.PROVIDER_TIMEOUT_SECONDS or DEFAULT_TIMEOUT_SECONDS, transport=transport)

    def parse_identity(self, data: Dict[str, Any]) -> Optional[ProviderIdentity]:
        # Personal accounts often have no "mail"; the UPN is the sign-in address.
        email = data.get("mail") or data.get("userPrincipalName")
        if not email:
            return None
        return ProviderIdentity(email=email, name=data.get("displayName"))
