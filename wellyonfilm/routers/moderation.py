from fastapi import APIRouter, Depends
from sqlmodel import Session
from typing import Optional, List
from pydantic import BaseModel

from ..services.auth import get_current_user
from ..services.database import get_session
from ..services import comments as comment_service
from ..services import judging as judging_service
from ..services import submissions as submission_service
from ..models.comment import CommentAdmin
from ..models.judge_action import ModerationItem
from ..models.submission import SubmissionAdmin
from ..models.user import User

router = APIRouter(
    prefix="/moderation",
    tags=["Moderation"]
)


class RemoveRequest(BaseModel):
    reason: str


class CommentResolution(BaseModel):
    keep: bool


@router.get("/queue", response_model=List[ModerationItem])
def read_queue(
    month_year: Optional[str] = None,
    filter: judging_service.ModerationFilter = judging_service.ModerationFilter.FLAGGED,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    return judging_service.moderation_queue(session, current_user, month_year, filter)


@router.post("/submissions/{submission_id}/approve", response_model=SubmissionAdmin)
def approve_submission(
    submission_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    submission = judging_service.approve_submission(session, current_user, submission_id)
    return submission_service.present_one(session, submission, current_user)


@router.post("/submissions/{submission_id}/remove", response_model=SubmissionAdmin)
def remove_submission(
    submission_id: int,
    request: RemoveRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    submission = submission_service.remove_submission(session, submission_id, current_user, request.reason)
    return submission_service.present_one(session, submission, current_user)


@router.get("/comments", response_model=List[CommentAdmin])
def read_flagged_comments(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    comments = comment_service.list_flagged_comments(session, current_user)
    return comment_service.present_comments(session, comments, admin=True)


@router.post("/comments/{comment_id}", response_model=Optional[CommentAdmin])
def resolve_comment(
    comment_id: int,
    resolution: CommentResolution,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    comment = comment_service.resolve_comment(session, current_user, comment_id, resolution.keep)
    if comment is None:
        return None
    return comment_service.present_comments(session, [comment], admin=True)[0]
