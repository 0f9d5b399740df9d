from fastapi import APIRouter, Depends
from sqlmodel import Session
from typing import Optional, List
from pydantic import BaseModel, model_validator
from datetime import datetime

from ..services.auth import get_current_user
from ..services.database import get_session
from ..services import judging as judging_service
from ..services import months as month_service
from ..services import submissions as submission_service
from ..models.month import MonthPublic, MonthStatus, MonthSummary, MonthWithStats, RotatingCategory
from ..models.rotating_theme import RotatingThemePublic
from ..models.submission import SubmissionPublic
from ..models.user import User, UserPublic

router = APIRouter(
    prefix="/months",
    tags=["Months"]
)


class MonthCreate(BaseModel):
    month_year: str
    # Either a full theme, or the id of one already in the catalogue
    rotating_category: Optional[RotatingCategory] = None
    rotating_theme_id: Optional[str] = None
    submissions_open: datetime
    submissions_close: datetime

    @model_validator(mode="after")
    def check_theme(self):
        if (self.rotating_category is None) == (self.rotating_theme_id is None):
            raise ValueError("Give exactly one of rotating_category or rotating_theme_id")
        return self


class MonthUpdate(BaseModel):
    rotating_category: Optional[RotatingCategory] = None
    submissions_open: Optional[datetime] = None
    submissions_close: Optional[datetime] = None


class MonthTransition(BaseModel):
    status: MonthStatus


class FinalizeRequest(BaseModel):
    # Admin picks that take their bucket's slots ahead of the shortlist ranking
    pinned_submission_ids: List[int] = []


class FinalizeResponse(BaseModel):
    month: MonthPublic
    featured: List[SubmissionPublic]


class JudgeAssignRequest(BaseModel):
    user_id: int


@router.get("", response_model=List[MonthPublic])
def list_months(session: Session = Depends(get_session)):
    month_service.close_elapsed_submission_windows(session)
    return [month_service.month_public(m) for m in month_service.list_months(session)]


@router.get("/current", response_model=Optional[MonthPublic])
def read_current_month(session: Session = Depends(get_session)):
    month = month_service.get_current_month(session)
    return month_service.month_public(month) if month else None


@router.get("/archive", response_model=List[MonthSummary])
def read_archive(session: Session = Depends(get_session)):
    return month_service.get_archived_months(session)


@router.get("/themes", response_model=List[RotatingThemePublic])
def read_rotating_themes(session: Session = Depends(get_session)):
    return month_service.list_rotating_themes(session)


@router.put("/themes", response_model=RotatingThemePublic)
def save_rotating_theme(
    theme: RotatingCategory,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    return month_service.save_rotating_theme(session, current_user, theme)


@router.get("/{month_year}", response_model=MonthWithStats)
def read_month(month_year: str, session: Session = Depends(get_session)):
    return month_service.get_month_with_stats(session, month_year)


@router.get("/{month_year}/featured", response_model=List[SubmissionPublic])
def read_featured(month_year: str, session: Session = Depends(get_session)):
    month_service.get_month(session, month_year)
    return submission_service.present(session, submission_service.get_featured_submissions(session, month_year))


@router.post("", response_model=MonthPublic, status_code=201)
def create_month(
    month: MonthCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    created = month_service.create_month(
        session,
        current_user,
        month.month_year,
        month.rotating_category or month.rotating_theme_id,
        month.submissions_open,
        month.submissions_close,
    )
    return month_service.month_public(created)


@router.patch("/{month_year}", response_model=MonthPublic)
def update_month(
    month_year: str,
    update: MonthUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    month = month_service.update_month_theme(
        session,
        current_user,
        month_year,
        rotating_category=update.rotating_category,
        submissions_open=update.submissions_open,
        submissions_close=update.submissions_close,
    )
    return month_service.month_public(month)


@router.post("/{month_year}/status", response_model=MonthPublic)
def transition_month(
    month_year: str,
    transition: MonthTransition,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    month = month_service.transition_month(session, current_user, month_year, transition.status)
    return month_service.month_public(month)


@router.post("/{month_year}/finalize", response_model=FinalizeResponse)
def finalize_month(
    month_year: str,
    request: Optional[FinalizeRequest] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    pinned = request.pinned_submission_ids if request else []
    month = judging_service.finalize_month(session, current_user, month_year, pinned)
    featured = submission_service.get_featured_submissions(session, month_year)
    return {
        "month": month_service.month_public(month),
        "featured": submission_service.present(session, featured),
    }


@router.get("/{month_year}/judges", response_model=List[UserPublic])
def read_judges(month_year: str, session: Session = Depends(get_session)):
    month_service.get_month(session, month_year)
    return judging_service.list_judges(session, month_year)


@router.post("/{month_year}/judges", response_model=List[UserPublic], status_code=201)
def assign_judge(
    month_year: str,
    request: JudgeAssignRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    judging_service.assign_judge(session, current_user, month_year, request.user_id)
    return judging_service.list_judges(session, month_year)


@router.delete("/{month_year}/judges/{user_id}", status_code=204)
def unassign_judge(
    month_year: str,
    user_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    judging_service.unassign_judge(session, current_user, month_year, user_id)
