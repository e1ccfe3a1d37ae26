from typing import Dict, Optional

from fastapi import APIRouter, Cookie, Depends, Request
from fastapi.responses import JSONResponse

from neuronnook.core.errors import InvalidSession, NeuronNookError, Unauthenticated, UserNotFound
from neuronnook.core.security import (
    SESSION_COOKIE_NAME,
    SessionCodec,
    clear_session_cookie,
    get_session_codec,
)
from neuronnook.models.user import User
from neuronnook.schemas.auth import SessionPayload
from neuronnook.schemas.user import UserResponse
from neuronnook.services.credential_store import CredentialStore, get_credential_store
from neuronnook.services.google_auth_service import GoogleAuthService
from neuronnook.services.oauth_base import OAuthProviderClient
from neuronnook.services.token_service import ProviderAccess, get_fresh_access_token
from neuronnook.utils.logger import get_logger

logger = get_logger("auth")
router = APIRouter(prefix="/auth", tags=["auth"])
profile_router = APIRouter(tags=["auth"])

REQUIRED_GOOGLE_SCOPES = {
    "photoslibrary.readonly": "https://www.googleapis.com/auth/photoslibrary.readonly",
    "photoslibrary": "https://www.googleapis.com/auth/photoslibrary",
    "gmail.readonly": "https://www.googleapis.com/auth/gmail.readonly",
    "drive.readonly": "https://www.googleapis.com/auth/drive.readonly",
}


def get_oauth_clients(request: Request) -> Dict[str, OAuthProviderClient]:
    return request.app.state.oauth_clients


async def get_current_session(
    session: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE_NAME),
    codec: SessionCodec = Depends(get_session_codec),
) -> SessionPayload:
    if not session:
        raise Unauthenticated()
    payload = codec.verify(session)
    if payload is None:
        raise InvalidSession()
    return payload


async def get_current_user(
    session: SessionPayload = Depends(get_current_session),
    store: CredentialStore = Depends(get_credential_store),
) -> User:
    user = await store.find_by_email(session.email)
    if user is None:
        raise UserNotFound()
    return user


def require_provider(provider: str):
    """
    Build a dependency that yields a live access token for `provider`.

    A refresh is attempted on every request when a refresh token is stored; if it
    fails the stored access token is used as is.
    """

    async def dependency(
        user: User = Depends(get_current_user),
        store: CredentialStore = Depends(get_credential_store),
        clients: Dict[str, OAuthProviderClient] = Depends(get_oauth_clients),
    ) -> ProviderAccess:
        return await get_fresh_access_token(user, clients[provider], store)

    return dependency


@profile_router.get("/me", response_model=UserResponse)
async def read_users_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/logout")
async def logout():
    response = JSONResponse({"status": "ok"})
    return clear_session_cookie(response)


@router.post("/clear-tokens")
async def clear_tokens(
    current_user: User = Depends(get_current_user),
    store: CredentialStore = Depends(get_credential_store),
):
    """Forget every provider credential so the next login re-consents to all scopes."""
    try:
        await store.update(current_user.id, {
            "google_access_token": None,
            "google_refresh_token": None,
            "microsoft_access_token": None,
            "microsoft_refresh_token": None,
        })
    except NeuronNookError as e:
        logger.error(f"Failed to clear tokens for user {current_user.id}: {e.message}")
        raise NeuronNookError("Failed to clear tokens") from e

    logger.info(f"Cleared provider tokens for user {current_user.id}")
    return {
        "message": "All tokens cleared successfully",
        "note": "Please log in again to re-authenticate with all scopes",
    }


@router.get("/tokeninfo")
async def token_info(
    access: ProviderAccess = Depends(require_provider("google")),
    clients: Dict[str, OAuthProviderClient] = Depends(get_oauth_clients),
):
    """Report which scopes the (refreshed) Google access token actually carries."""
    google: GoogleAuthService = clients["google"]
    info = await google.get_token_info(access.access_token)
    scopes = google.granted_scopes(info)

    has_required = {label: scope in scopes for label, scope in REQUIRED_GOOGLE_SCOPES.items()}
    has_photos = has_required["photoslibrary.readonly"] or has_required["photoslibrary"]

    return {
        "tokenInfo": info,
        "analysis": {
            "totalScopes": len(scopes),
            "scopes": scopes,
            "hasRequiredScopes": has_required,
            "verdict": (
                "Token has Google Photos scope"
                if has_photos
                else "Token is MISSING Google Photos scope - need to re-authenticate"
            ),
        },
    }
