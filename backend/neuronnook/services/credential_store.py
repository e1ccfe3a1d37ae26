import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from neuronnook.core.database import Database
from neuronnook.core.errors import DuplicateKeyError, UpdateFailedError
from neuronnook.models.user import PROVIDERS, User
from neuronnook.utils.logger import get_logger

logger = get_logger("credential_store")

WRITABLE_FIELDS = frozenset({
    "email",
    "name",
    "image",
    "google_connected",
    "google_access_token",
    "google_refresh_token",
    "microsoft_connected",
    "microsoft_access_token",
    "microsoft_refresh_token",
})


def user_key(user_id: Any) -> str:
    # Ids are stored as uuid4 hex; accept UUID objects and anything that stringifies to an id.
    if isinstance(user_id, uuid.UUID):
        return user_id.hex
    return str(user_id)


def normalize_user_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a partial user write and keep each connected flag in step with its
    access token. Writing a token derives the flag; writing connected=False alone
    clears the token.
    """
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown user fields: {sorted(unknown)}")

    values = dict(fields)
    for provider in PROVIDERS:
        token_key = f"{provider}_access_token"
        flag_key = f"{provider}_connected"
        if token_key in values:
            values[flag_key] = bool(values[token_key])
        elif flag_key in values:
            if values[flag_key]:
                raise ValueError(f"{flag_key}=True requires {token_key}")
            values[token_key] = None
    return values


class CredentialStore:
    """Persistence for users and their provider tokens."""

    def __init__(self, database: Database):
        self.database = database

    async def find_by_email(self, email: str) -> Optional[User]:
        async with self.database.session() as session:
            result = await session.execute(select(User).where(User.email == email))
            return result.scalar_one_or_none()

    async def find_by_id(self, user_id: Any) -> Optional[User]:
        async with self.database.session() as session:
            return await session.get(User, user_key(user_id))

    async def create(self, fields: Dict[str, Any]) -> User:
        values = normalize_user_fields(fields)
        if not values.get("email"):
            raise ValueError("email is required")
        values.setdefault("google_connected", False)
        values.setdefault("microsoft_connected", False)

        now = datetime.utcnow()
        user = User(**values, created_at=now, updated_at=now)
        async with self.database.session() as session:
            session.add(user)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.warning(f"Duplicate user create rejected for {values['email']}")
                raise DuplicateKeyError(values["email"])
        logger.info(f"Created user {user.id} ({user.email})")
        return user

    async def update(self, user_id: Any, fields: Dict[str, Any]) -> User:
        """
        Apply a partial write and return the fresh row.

        Matches by id first, then by the supplied email. When neither matches and an
        email is supplied the row is inserted, so a given email never ends up on two
        rows. If nothing was written the row is re-read by id before giving up.
        """
        values = normalize_user_fields(fields)
        user_id = user_key(user_id)
        now = datetime.utcnow()
        email = values.get("email")

        try:
            user = await self._apply_update(user_id, values, now)
        except IntegrityError:
            logger.warning(f"Update for {user_id} collided on email {email}")
            raise DuplicateKeyError(email or "")

        if user is not None:
            return user

        user = await self.find_by_id(user_id)
        if user is None:
            logger.error(f"Update matched no user for id {user_id}")
            raise UpdateFailedError(user_id)
        return user

    async def _apply_update(self, user_id: str, values: Dict[str, Any], now: datetime) -> Optional[User]:
        email = values.get("email")
        async with self.database.session() as session:
            async with session.begin():
                user = await session.get(User, user_id)
                if user is None and email:
                    result = await session.execute(select(User).where(User.email == email))
                    user = result.scalar_one_or_none()
                    if user is not None:
                        logger.info(f"Update for {user_id} matched user {user.id} by email")
                if user is None and email:
                    values.setdefault("google_connected", False)
                    values.setdefault("microsoft_connected", False)
                    user = User(id=user_id, created_at=now)
                    session.add(user)
                    logger.info(f"Update upserted new user {user_id} ({email})")

                if user is not None:
                    for key, value in values.items():
                        setattr(user, key, value)
                    user.updated_at = now
        return user

    async def delete(self, user_id: Any) -> bool:
        async with self.database.session() as session:
            async with session.begin():
                user = await session.get(User, user_key(user_id))
                if user is None:
                    return False
                await session.delete(user)
        logger.info(f"Deleted user {user_id}")
        return True


def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.credential_store
