from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum

from ..timeutil import utcnow


class MonthStatus(str, Enum):
    OPEN = "open"
    JUDGING = "judging"
    CLOSED = "closed"


class MonthBase(SQLModel):
    month_year: str = Field(index=True, unique=True, max_length=7)  # e.g. "2025-01"
    rotating_category_id: str = Field(max_length=50)
    rotating_category_name: str = Field(max_length=100)
    rotating_category_description: Optional[str] = Field(default=None, max_length=1000)
    sponsor_name: Optional[str] = Field(default=None, max_length=100)
    sponsor_url: Optional[str] = Field(default=None, max_length=255)
    submissions_open: datetime
    submissions_close: datetime
    status: MonthStatus = Field(default=MonthStatus.OPEN, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    finalized_at: Optional[datetime] = None


class Month(MonthBase, table=True):
    month_id: Optional[int] = Field(default=None, primary_key=True)
    # True only while status is open, NULL otherwise: the unique index
    # allows a single open month without relying on partial indexes
    open_slot: Optional[bool] = Field(default=True, unique=True)


class RotatingCategory(SQLModel):
    id: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    sponsor_name: Optional[str] = Field(default=None, max_length=100)
    sponsor_url: Optional[str] = Field(default=None, max_length=255)


class MonthPublic(SQLModel):
    month_id: int
    month_year: str
    display_name: str
    rotating_category: RotatingCategory
    submissions_open: datetime
    submissions_close: datetime
    status: MonthStatus
    finalized_at: Optional[datetime] = None


class MonthWithStats(MonthPublic):
    submission_count: int
    featured_count: int


class MonthSummary(SQLModel):
    month_id: int
    month_year: str
    display_name: str  # e.g. "January 2025"
    rotating_category_name: str
    submission_count: int
    featured_count: int
    cover_image_url: Optional[str] = None
