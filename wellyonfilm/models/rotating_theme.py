from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime

from ..timeutil import utcnow


class RotatingThemeBase(SQLModel):
    name: str = Field(max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    sponsor_name: Optional[str] = Field(default=None, max_length=100)
    sponsor_url: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=utcnow)


class RotatingTheme(RotatingThemeBase, table=True):
    # Slug such as "golden-hour"; months copy it into rotating_category_id
    theme_id: str = Field(primary_key=True, max_length=50)


class RotatingThemePublic(RotatingThemeBase):
    theme_id: str
