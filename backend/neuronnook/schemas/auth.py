from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

class SessionPayload(BaseModel):
    """Identity carried by the signed session cookie."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    email: str

class TokenSet(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None

class ProviderIdentity(BaseModel):
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None
