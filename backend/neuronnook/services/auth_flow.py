from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from neuronnook.core.errors import OAuthError, ProviderTimeout, ProviderUnavailable
from neuronnook.core.security import SessionCodec
from neuronnook.models.user import User
from neuronnook.schemas.auth import ProviderIdentity, TokenSet
from neuronnook.services.credential_store import CredentialStore
from neuronnook.services.oauth_base import OAuthProviderClient, decode_state
from neuronnook.utils.logger import get_logger

logger = get_logger("auth_flow")


class CallbackState(str, Enum):
    AWAITING_CODE = "awaiting_code"
    EXCHANGING_TOKENS = "exchanging_tokens"
    FETCHING_IDENTITY = "fetching_identity"
    LINKING = "linking"
    UPSERTING = "upserting"
    SESSION_ISSUED = "session_issued"
    LINKED = "linked"
    FAILED = "failed"


class FailureReason:
    NO_CODE = "no_code"
    TOKEN_EXCHANGE_FAILED = "token_exchange_failed"
    USER_INFO_FAILED = "user_info_failed"
    NOT_AUTHENTICATED = "not_authenticated"
    INVALID_SESSION = "invalid_session"
    PROVIDER_TIMEOUT = "provider_timeout"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    CALLBACK_FAILED = "callback_failed"


@dataclass
class CallbackResult:
    state: CallbackState
    redirect_path: str
    session_token: Optional[str] = None
    user: Optional[User] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state != CallbackState.FAILED


def _failed(reason: str) -> CallbackResult:
    return CallbackResult(state=CallbackState.FAILED, redirect_path=f"/?error={reason}", error=reason)


class OAuthCallbackFlow:
    """
    Drives one provider callback from authorization code to a terminal state.

    Login/signup ends with a fresh session token for the caller to set as a cookie.
    Linking attaches the provider to the user of the current session and leaves the
    session untouched.
    """

    def __init__(self, client: OAuthProviderClient, store: CredentialStore, codec: SessionCodec):
        self.client = client
        self.store = store
        self.codec = codec
        self.state = CallbackState.AWAITING_CODE

    @property
    def provider(self) -> str:
        return self.client.name

    def _enter(self, state: CallbackState) -> None:
        logger.debug(f"[{self.provider}] {self.state.value} -> {state.value}")
        self.state = state

    def _provider_fields(self, tokens: TokenSet) -> Dict[str, Any]:
        fields: Dict[str, Any] = {f"{self.provider}_access_token": tokens.access_token}
        # Providers omit refresh_token on re-consent; keep the stored one then.
        if tokens.refresh_token:
            fields[f"{self.provider}_refresh_token"] = tokens.refresh_token
        return fields

    async def run(
        self,
        code: Optional[str],
        state: Optional[str],
        session_token: Optional[str],
    ) -> CallbackResult:
        try:
            result = await self._run(code, state, session_token)
        except OAuthError as e:
            logger.error(f"[{self.provider}] OAuth callback failed: {e.reason} {e.detail}")
            result = _failed(e.reason)
        except ProviderTimeout:
            result = _failed(FailureReason.PROVIDER_TIMEOUT)
        except ProviderUnavailable:
            result = _failed(FailureReason.PROVIDER_UNAVAILABLE)
        except Exception:
            logger.exception(f"[{self.provider}] OAuth callback failed")
            result = _failed(FailureReason.CALLBACK_FAILED)
        if self.state != result.state:
            self._enter(result.state)
        return result

    async def _run(
        self,
        code: Optional[str],
        state: Optional[str],
        session_token: Optional[str],
    ) -> CallbackResult:
        if not code:
            logger.warning(f"[{self.provider}] No authorization code received")
            return _failed(FailureReason.NO_CODE)

        linking = decode_state(state)

        self._enter(CallbackState.EXCHANGING_TOKENS)
        tokens = await self.client.exchange_code_for_tokens(code)

        self._enter(CallbackState.FETCHING_IDENTITY)
        identity = await self.client.fetch_identity(tokens.access_token)
        logger.info(f"[{self.provider}] User info received for {identity.email}")

        if linking:
            self._enter(CallbackState.LINKING)
            return await self._link(tokens, session_token)

        self._enter(CallbackState.UPSERTING)
        return await self._upsert(tokens, identity)

    async def _link(self, tokens: TokenSet, session_token: Optional[str]) -> CallbackResult:
        if not session_token:
            return _failed(FailureReason.NOT_AUTHENTICATED)

        session = self.codec.verify(session_token)
        if session is None:
            return _failed(FailureReason.INVALID_SESSION)

        user = await self.store.find_by_email(session.email)
        if user is None:
            logger.warning(f"[{self.provider}] Session user {session.email} no longer exists")
            return _failed(FailureReason.INVALID_SESSION)

        user = await self.store.update(user.id, self._provider_fields(tokens))
        logger.info(f"[{self.provider}] Linked to user {user.id}")
        return CallbackResult(
            state=CallbackState.LINKED,
            redirect_path=f"/dashboard?linked={self.provider}",
            user=user,
        )

    async def _upsert(self, tokens: TokenSet, identity: ProviderIdentity) -> CallbackResult:
        user = await self.store.find_by_email(identity.email)
        fields = self._provider_fields(tokens)

        if user is None:
            logger.info(f"[{self.provider}] Creating new user {identity.email}")
            user = await self.store.create({
                "email": identity.email,
                "name": identity.name,
                "image": identity.picture,
                **fields,
            })
        else:
            # Email is left out so the existing row is matched by id only.
            if identity.picture:
                fields["image"] = identity.picture
            user = await self.store.update(user.id, fields)

        token = self.codec.issue(user)
        self._enter(CallbackState.SESSION_ISSUED)
        return CallbackResult(
            state=CallbackState.SESSION_ISSUED,
            redirect_path="/dashboard",
            session_token=token,
            user=user,
        )
