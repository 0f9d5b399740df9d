from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from typing import Optional
from datetime import datetime

from ..timeutil import utcnow


class JudgeAssignmentBase(SQLModel):
    user_id: int = Field(foreign_key="user.user_id", index=True)
    month_year: str = Field(foreign_key="month.month_year", index=True, max_length=7)
    created_at: datetime = Field(default_factory=utcnow)


class JudgeAssignment(JudgeAssignmentBase, table=True):
    __table_args__ = (
        UniqueConstraint("user_id", "month_year", name="uq_judge_assignment_user_month"),
    )

    assignment_id: Optional[int] = Field(default=None, primary_key=True)
