from typing import Any, Optional


class NeuronNookError(Exception):
    """Base error; carries the HTTP status it should be rendered with."""

    status_code = 500
    message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


# Authentication: always the same message, whichever check failed.
class Unauthenticated(NeuronNookError):
    status_code = 401
    message = "Not authenticated"


class InvalidSession(Unauthenticated):
    pass


class UserNotFound(NeuronNookError):
    status_code = 404
    message = "User not found"


class ProviderNotConnected(NeuronNookError):
    status_code = 403

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"{provider.capitalize()} not connected")


class ProviderAPIError(NeuronNookError):
    """A collaborator call against a provider resource API failed."""

    status_code = 502
    message = "Provider request failed"

    def __init__(self, status_code: int, message: Optional[str] = None, details: Any = None):
        self.details = details
        super().__init__(message, status_code)


class ProviderTimeout(NeuronNookError):
    status_code = 504
    message = "Provider request timed out"


class ProviderUnavailable(NeuronNookError):
    status_code = 502
    message = "Provider unavailable"


class OAuthError(NeuronNookError):
    status_code = 502
    reason = "callback_failed"

    def __init__(self, provider: str, detail: str = "", provider_status: Optional[int] = None):
        self.provider = provider
        self.detail = detail
        self.provider_status = provider_status
        super().__init__(f"{provider}: {self.reason}")


class TokenExchangeFailed(OAuthError):
    reason = "token_exchange_failed"


class UserInfoFailed(OAuthError):
    reason = "user_info_failed"


class DuplicateKeyError(NeuronNookError):
    status_code = 409

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"User with email {email} already exists")


class UpdateFailedError(NeuronNookError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Failed to update user with id: {user_id}")
