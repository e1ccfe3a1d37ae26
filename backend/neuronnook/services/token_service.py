from dataclasses import dataclass

from neuronnook.core.errors import ProviderNotConnected
from neuronnook.models.user import User
from neuronnook.services.credential_store import CredentialStore
from neuronnook.services.oauth_base import OAuthProviderClient
from neuronnook.utils.logger import get_logger

logger = get_logger("token_service")


@dataclass
class ProviderAccess:
    """What a collaborator receives: the resolved user and a live bearer token."""
    user: User
    provider: str
    access_token: str


async def get_fresh_access_token(
    user: User,
    client: OAuthProviderClient,
    store: CredentialStore,
) -> ProviderAccess:
    provider = client.name
    stored_token = user.access_token(provider)
    if not user.is_connected(provider) or not stored_token:
        raise ProviderNotConnected(provider)

    access_token = stored_token
    refresh_token = user.refresh_token(provider)
    if refresh_token:
        new_token = await client.refresh_access_token(refresh_token)
        if new_token:
            access_token = new_token
            try:
                await store.update(user.id, {f"{provider}_access_token": new_token})
            except Exception as e:
                # The refreshed token is still good for this request.
                logger.error(f"Failed to persist refreshed {provider} token for user {user.id}: {e}")
        else:
            logger.info(f"Using stored {provider} token for user {user.id}")

    return ProviderAccess(user=user, provider=provider, access_token=access_token)
