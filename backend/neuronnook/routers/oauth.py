from typing import Dict, Optional

from fastapi import APIRouter, Cookie, Depends, Request
from fastapi.responses import RedirectResponse

from neuronnook.core.config import Settings
from neuronnook.core.errors import NeuronNookError
from neuronnook.core.security import SESSION_COOKIE_NAME, SessionCodec, get_session_codec, set_session_cookie
from neuronnook.routers.auth import get_oauth_clients
from neuronnook.services.auth_flow import OAuthCallbackFlow
from neuronnook.services.credential_store import CredentialStore, get_credential_store
from neuronnook.services.oauth_base import OAuthProviderClient
from neuronnook.utils.logger import get_logger

logger = get_logger("oauth_router")


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def build_oauth_router(provider: str) -> APIRouter:
    router = APIRouter(prefix=f"/auth/{provider}", tags=[f"{provider.capitalize()} Auth"])

    @router.get("")
    async def login(
        link: Optional[str] = None,
        clients: Dict[str, OAuthProviderClient] = Depends(get_oauth_clients),
    ):
        """
        Redirects to the provider's consent screen.
        `link=true` marks the flow as attaching this provider to the logged-in user.
        """
        linking = link == "true"
        try:
            auth_url = clients[provider].build_authorization_url(linking=linking)
        except ValueError as e:
            logger.error(f"Cannot start {provider} login: {e}")
            raise NeuronNookError(str(e)) from e
        logger.info(f"Redirecting to {provider} consent (link={linking})")
        return RedirectResponse(auth_url, status_code=302)

    @router.get("/callback")
    async def callback(
        code: Optional[str] = None,
        state: Optional[str] = None,
        session: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE_NAME),
        clients: Dict[str, OAuthProviderClient] = Depends(get_oauth_clients),
        store: CredentialStore = Depends(get_credential_store),
        codec: SessionCodec = Depends(get_session_codec),
        settings: Settings = Depends(get_app_settings),
    ):
        """
        Handles the provider redirect: exchanges the code, then logs in, signs up,
        or links, and redirects back to the frontend.
        """
        flow = OAuthCallbackFlow(clients[provider], store, codec)
        result = await flow.run(code, state, session)

        response = RedirectResponse(settings.frontend_url(result.redirect_path), status_code=302)
        if result.session_token:
            set_session_cookie(response, result.session_token, secure=settings.is_production)
        return response

    return router


google_router = build_oauth_router("google")
microsoft_router = build_oauth_router("microsoft")
