from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum

from ..timeutil import utcnow


class UserRole(str, Enum):
    PHOTOGRAPHER = "photographer"
    ADMIN = "admin"


class UserBase(SQLModel):
    email: str = Field(index=True, max_length=255)
    display_name: str = Field(max_length=60)
    avatar_url: Optional[str] = Field(default=None, max_length=500)
    bio: Optional[str] = Field(default=None, max_length=500)
    role: UserRole = Field(default=UserRole.PHOTOGRAPHER)
    created_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None


class User(UserBase, table=True):
    user_id: Optional[int] = Field(default=None, primary_key=True)
    # Equal to email while the account is live, NULL once soft-deleted,
    # so email stays unique among non-deleted users only
    active_email: Optional[str] = Field(default=None, unique=True, max_length=255)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class UserSummary(SQLModel):
    user_id: int
    display_name: str
    avatar_url: Optional[str] = None


class UserPublic(SQLModel):
    user_id: int
    display_name: str
    avatar_url: Optional[str]
    bio: Optional[str]
    role: UserRole
    created_at: datetime


class UserMe(UserPublic):
    email: str


class UserProfile(UserPublic):
    submission_count: int = 0
    featured_count: int = 0


class UserUpdate(SQLModel):
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=60)
    avatar_url: Optional[str] = Field(default=None, max_length=500)
    bio: Optional[str] = Field(default=None, max_length=500)
