from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional

class UserResponse(BaseModel):
    """Profile returned to the browser. Provider tokens are never part of it."""
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    google_connected: bool
    microsoft_connected: bool
    created_at: datetime
    updated_at: datetime
