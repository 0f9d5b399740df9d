from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime

from ..constants import COMMENT_MAX_LENGTH
from ..timeutil import utcnow
from .user import UserSummary


class CommentBase(SQLModel):
    submission_id: int = Field(foreign_key="submission.submission_id", index=True)
    user_id: int = Field(foreign_key="user.user_id", index=True)
    body: str = Field(max_length=COMMENT_MAX_LENGTH)
    is_flagged: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)


class Comment(CommentBase, table=True):
    comment_id: Optional[int] = Field(default=None, primary_key=True)
    flagged_by: Optional[int] = Field(default=None, foreign_key="user.user_id")


class CommentPublic(SQLModel):
    comment_id: int
    submission_id: int
    user: UserSummary
    body: str
    created_at: datetime


class CommentAdmin(CommentPublic):
    is_flagged: bool
