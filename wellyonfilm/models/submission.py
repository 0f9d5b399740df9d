from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON, Index
from typing import Optional, List
from datetime import datetime
from enum import Enum

from ..timeutil import utcnow
from .user import UserSummary


class CategoryType(str, Enum):
    FIXED = "fixed"
    ROTATING = "rotating"
    OPEN = "open"


class SubmissionBase(SQLModel):
    user_id: int = Field(foreign_key="user.user_id", index=True)
    month_year: str = Field(foreign_key="month.month_year", index=True, max_length=7)
    photo_url: str = Field(max_length=500)
    thumbnail_url: str = Field(max_length=500)
    category_type: CategoryType = Field(index=True)
    # Fixed sub-category id for fixed, the month's theme id for rotating, NULL for open
    category: Optional[str] = Field(default=None, max_length=50)
    camera: Optional[str] = Field(default=None, max_length=100)
    film_stock: Optional[str] = Field(default=None, max_length=100)
    location: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    is_featured: bool = Field(default=False)
    is_removed: bool = Field(default=False)
    removed_reason: Optional[str] = Field(default=None, max_length=500)
    removed_at: Optional[datetime] = None
    removed_by: Optional[int] = Field(default=None, foreign_key="user.user_id")
    moderation_resolved_at: Optional[datetime] = None
    edited_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class Submission(SubmissionBase, table=True):
    __table_args__ = (
        Index("ix_submission_user_month", "user_id", "month_year"),
    )

    submission_id: Optional[int] = Field(default=None, primary_key=True)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    @property
    def is_active(self) -> bool:
        return not self.is_removed and self.deleted_at is None


class SubmissionDetails(SQLModel):
    camera: Optional[str] = Field(default=None, max_length=100)
    film_stock: Optional[str] = Field(default=None, max_length=100)
    location: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    tags: List[str] = []


class SubmissionMetadataUpdate(SQLModel):
    """The only fields an owner may change after upload."""

    model_config = {"extra": "forbid"}

    camera: Optional[str] = Field(default=None, max_length=100)
    film_stock: Optional[str] = Field(default=None, max_length=100)
    location: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    tags: Optional[List[str]] = None


class SubmissionPublic(SQLModel):
    submission_id: int
    user: UserSummary
    photo_url: str
    thumbnail_url: str
    category_type: CategoryType
    category: Optional[str]
    details: SubmissionDetails
    month_year: str
    is_featured: bool
    edited_at: Optional[datetime]
    created_at: datetime


class SubmissionAdmin(SubmissionPublic):
    is_removed: bool
    removed_reason: Optional[str]
    deleted_at: Optional[datetime]


class SubmissionCard(SQLModel):
    submission_id: int
    thumbnail_url: str
    category_type: CategoryType
    user: UserSummary
    is_featured: bool


def active_clause():
    """SQL form of ``Submission.is_active``; every count and listing goes through it."""
    return (Submission.is_removed == False) & (Submission.deleted_at.is_(None))  # noqa: E712
