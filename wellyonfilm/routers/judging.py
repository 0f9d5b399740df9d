from fastapi import APIRouter, Depends
from sqlmodel import Session
from typing import Optional, List
from pydantic import BaseModel

from ..services.auth import get_current_user
from ..services.database import get_session
from ..services import judging as judging_service
from ..services import months as month_service
from ..models.judge_action import JudgeActionPublic, JudgeActionType, JudgingQueueItem, JudgingStatus
from ..models.submission import CategoryType
from ..models.user import User

router = APIRouter(
    prefix="/judging",
    tags=["Judging"]
)


class JudgeActionRequest(BaseModel):
    action: JudgeActionType
    flag_reason: Optional[str] = None


@router.post("/submissions/{submission_id}/action", response_model=JudgeActionPublic)
def record_action(
    submission_id: int,
    request: JudgeActionRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    return judging_service.record_judge_action(
        session, submission_id, current_user, request.action, request.flag_reason
    )


@router.get("/submissions/{submission_id}/status", response_model=JudgingStatus)
def read_status(
    submission_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    return judging_service.get_judging_status(session, submission_id, current_user)


@router.get("/{month_year}/queue", response_model=List[JudgingQueueItem])
def read_queue(
    month_year: str,
    filter: judging_service.QueueFilter = judging_service.QueueFilter.ALL,
    category_type: Optional[CategoryType] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    month_service.get_month(session, month_year)
    return judging_service.judging_queue(session, month_year, current_user, filter, category_type)


@router.get("/{month_year}/shortlisted", response_model=List[int])
def read_shortlisted(
    month_year: str,
    min_judges: int = 1,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    month_service.get_month(session, month_year)
    judging_service.require_judge_or_admin(session, current_user, month_year)
    return judging_service.shortlisted_submission_ids(session, month_year, min_judges)
