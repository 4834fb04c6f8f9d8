"""Identity and profile models."""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import SQLModel

PROFILES_TABLE = "users_profiles"


class UserProfile(SQLModel):
    """Links an auth identity to the raw mobile number it signed up with."""

    user_id: str
    mobile_number: str


class AuthUser(SQLModel):
    id: str
    email: Optional[str] = None


class AuthSession(SQLModel):
    """Session issued by the auth API. Held in memory only."""

    access_token: str
    refresh_token: str = ""
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    expires_at: Optional[int] = None  # unix seconds
    user: AuthUser

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc).timestamp() >= self.expires_at
