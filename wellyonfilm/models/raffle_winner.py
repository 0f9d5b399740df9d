from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime

from ..timeutil import utcnow
from .user import UserSummary


class RaffleWinnerBase(SQLModel):
    user_id: int = Field(foreign_key="user.user_id", index=True)
    # Unique: one draw per month, first writer wins
    month_year: str = Field(foreign_key="month.month_year", unique=True, max_length=7)
    created_at: datetime = Field(default_factory=utcnow)


class RaffleWinner(RaffleWinnerBase, table=True):
    winner_id: Optional[int] = Field(default=None, primary_key=True)


class RaffleWinnerPublic(SQLModel):
    winner_id: int
    month_year: str
    user: UserSummary
    created_at: datetime
