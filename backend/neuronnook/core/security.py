from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from fastapi import Request, Response
from pydantic import ValidationError

from neuronnook.models.user import User
from neuronnook.schemas.auth import SessionPayload
from neuronnook.utils.logger import get_logger

logger = get_logger("security")

ALGORITHM = "HS256"
SESSION_EXPIRE_DAYS = 7
SESSION_COOKIE_NAME = "session"
SESSION_COOKIE_MAX_AGE = 60 * 60 * 24 * SESSION_EXPIRE_DAYS


class SessionCodec:
    """Signs and verifies the stateless session token."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = ALGORITHM,
        expires_delta: timedelta = timedelta(days=SESSION_EXPIRE_DAYS),
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expires_delta = expires_delta

    def issue(self, user: User, expires_delta: Optional[timedelta] = None) -> str:
        expire = datetime.utcnow() + (expires_delta if expires_delta is not None else self.expires_delta)
        to_encode = {"userId": str(user.id), "email": user.email, "exp": expire}
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> Optional[SessionPayload]:
        # Every failure collapses to None so callers cannot tell them apart.
        if not token:
            return None
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
            return SessionPayload.model_validate(payload)
        except (JWTError, ValidationError) as e:
            logger.debug(f"Session verification failed: {type(e).__name__}")
            return None


def get_session_codec(request: Request) -> SessionCodec:
    return request.app.state.session_codec


def set_session_cookie(response: Response, token: str, secure: bool) -> Response:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        max_age=SESSION_COOKIE_MAX_AGE,
        path="/",
        httponly=True,
        secure=secure,
        samesite="lax",
    )
    return response


def clear_session_cookie(response: Response) -> Response:
    response.delete_cookie(key=SESSION_COOKIE_NAME, path="/")
    return response
