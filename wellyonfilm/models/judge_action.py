from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from typing import Optional, List
from datetime import datetime
from enum import Enum

from ..timeutil import utcnow
from .submission import SubmissionAdmin, SubmissionPublic


class JudgeActionType(str, Enum):
    PASS = "pass"
    SHORTLIST = "shortlist"
    FLAG = "flag"


class JudgeActionBase(SQLModel):
    submission_id: int = Field(foreign_key="submission.submission_id", index=True)
    judge_user_id: int = Field(foreign_key="user.user_id", index=True)
    action: JudgeActionType
    flag_reason: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class JudgeAction(JudgeActionBase, table=True):
    # One current action per judge per submission; re-voting updates the row
    __table_args__ = (
        UniqueConstraint("judge_user_id", "submission_id", name="uq_judge_action_judge_submission"),
    )

    action_id: Optional[int] = Field(default=None, primary_key=True)


class JudgeActionPublic(JudgeActionBase):
    action_id: int


class JudgingStatus(SQLModel):
    submission_id: int
    shortlist_count: int = 0
    flag_count: int = 0
    pass_count: int = 0
    actions: List[JudgeActionPublic] = []


class JudgingQueueItem(SQLModel):
    submission: SubmissionPublic
    status: JudgingStatus
    my_action: Optional[JudgeActionType] = None


class ModerationItem(SQLModel):
    submission: SubmissionAdmin
    flag_count: int
    flag_reasons: List[str] = []
    awaiting_review: bool
    moderation_resolved_at: Optional[datetime] = None
