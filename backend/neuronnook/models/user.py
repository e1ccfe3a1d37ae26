import uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Boolean, DateTime
from datetime import datetime
from typing import Optional
from neuronnook.core.database import Base

PROVIDERS = ("google", "microsoft")

def new_user_id() -> str:
    return uuid.uuid4().hex

class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_user_id)
    email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    image: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # A connected flag is true iff the matching access token is set
    google_connected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    google_access_token: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    google_refresh_token: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    microsoft_connected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    microsoft_access_token: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    microsoft_refresh_token: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def is_connected(self, provider: str) -> bool:
        return bool(getattr(self, f"{provider}_connected"))

    def access_token(self, provider: str) -> Optional[str]:
        return getattr(self, f"{provider}_access_token")

    def refresh_token(self, provider: str) -> Optional[str]:
        return getattr(self, f"{provider}_refresh_token")
