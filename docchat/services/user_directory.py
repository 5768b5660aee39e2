from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol
import logging

from sqlalchemy.orm import Session

from docchat.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserProfile:
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


def display_name(profile: Optional[UserProfile], default: str = "User") -> str:
    """first + last name, first name, username, email local part, then default"""
    if profile is None:
        return default
    if profile.first_name and profile.last_name:
        return f"{profile.first_name} {profile.last_name}"
    if profile.first_name:
        return profile.first_name
    if profile.username:
        return profile.username
    if profile.email:
        return profile.email.split("@")[0]
    return default


class UserDirectory(Protocol):
    def get_profile(self, user_id: str) -> Optional[UserProfile]: ...


class SqlUserDirectory:
    """Looks profiles up in the shared users table"""

    def __init__(self, db: Session):
        self.db = db

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            logger.debug(f"No profile found for user {user_id}")
            return None
        return UserProfile(
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            username=user.username,
            created_at=user.created_at,
            last_login=user.last_login,
        )
