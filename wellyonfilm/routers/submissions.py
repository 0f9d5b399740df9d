from fastapi import APIRouter, Depends, UploadFile, File, Form
from sqlmodel import Session
from typing import Optional, List, Union
from pydantic import BaseModel

from ..services.auth import get_current_user, get_optional_user
from ..services.database import get_session
from ..services.s3 import PhotoStorage, get_storage
from ..services import comments as comment_service
from ..services import submissions as submission_service
from ..models.comment import CommentPublic
from ..models.submission import (
    CategoryType,
    SubmissionAdmin,
    SubmissionCard,
    SubmissionMetadataUpdate,
    SubmissionPublic,
)
from ..models.user import User

router = APIRouter(
    prefix="/submissions",
    tags=["Submissions"]
)


class SubmissionDetail(SubmissionPublic):
    comment_count: int
    more_from_photographer: List[SubmissionCard]


class QuotaResponse(BaseModel):
    month_year: str
    used: int
    remaining: int


class CommentCreate(BaseModel):
    body: str


@router.get("", response_model=List[Union[SubmissionAdmin, SubmissionPublic]])
def list_submissions(
    month_year: Optional[str] = None,
    category_type: Optional[CategoryType] = None,
    category: Optional[str] = None,
    user_id: Optional[int] = None,
    featured: bool = False,
    include_inactive: bool = False,
    skip: int = 0,
    limit: int = 100,
    session: Session = Depends(get_session),
    viewer: Optional[User] = Depends(get_optional_user)
):
    submissions = submission_service.list_submissions(
        session,
        month_year=month_year,
        category_type=category_type,
        category=category,
        user_id=user_id,
        featured_only=featured,
        viewer=viewer,
        include_inactive=include_inactive,
        skip=skip,
        limit=limit,
    )
    return submission_service.present(session, submissions, viewer)


@router.get("/cards", response_model=List[SubmissionCard])
def list_submission_cards(
    month_year: str,
    category_type: Optional[CategoryType] = None,
    session: Session = Depends(get_session)
):
    submissions = submission_service.list_submissions(session, month_year=month_year, category_type=category_type)
    return submission_service.present_cards(session, submissions)


@router.get("/quota", response_model=QuotaResponse)
def read_quota(
    month_year: str,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    used = submission_service.count_active(session, current_user.user_id, month_year)
    remaining = submission_service.remaining_quota(session, current_user.user_id, month_year)
    return QuotaResponse(month_year=month_year, used=used, remaining=remaining)


@router.post("", response_model=SubmissionPublic, status_code=201)
async def create_submission(
    month_year: str = Form(...),
    category_type: CategoryType = Form(...),
    category: Optional[str] = Form(None),
    camera: Optional[str] = Form(None),
    film_stock: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: List[str] = Form([]),
    file: UploadFile = File(...),
    session: Session = Depends(get_session),
    storage: PhotoStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user)
):
    # Read the file contents before passing them on for validation and upload
    file_content = await file.read()

    submission = submission_service.create_submission(
        session,
        current_user,
        month_year,
        category_type,
        category or None,
        file_content,
        file.content_type,
        submission_service.parse_details(
            camera=camera,
            film_stock=film_stock,
            location=location,
            description=description,
            tags=tags,
        ),
        storage,
    )
    return submission_service.present_one(session, submission, current_user)


@router.get("/{submission_id}", response_model=SubmissionDetail)
def read_submission(
    submission_id: int,
    session: Session = Depends(get_session),
    viewer: Optional[User] = Depends(get_optional_user)
):
    submission = submission_service.get_submission(session, submission_id, viewer)
    others = submission_service.get_other_submissions_by_user(session, submission.user_id, submission_id)
    return SubmissionDetail(
        **submission_service.present_one(session, submission).model_dump(),
        comment_count=comment_service.count_comments(session, submission_id),
        more_from_photographer=submission_service.present_cards(session, others),
    )


@router.patch("/{submission_id}", response_model=SubmissionPublic)
def edit_submission(
    submission_id: int,
    patch: SubmissionMetadataUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    submission = submission_service.edit_metadata(session, submission_id, current_user, patch)
    return submission_service.present_one(session, submission, current_user)


@router.delete("/{submission_id}", status_code=204)
def delete_submission(
    submission_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    submission_service.delete_submission(session, submission_id, current_user)


@router.get("/{submission_id}/comments", response_model=List[CommentPublic])
def read_comments(submission_id: int, session: Session = Depends(get_session)):
    return comment_service.present_comments(session, comment_service.list_comments(session, submission_id))


@router.post("/{submission_id}/comments", response_model=CommentPublic, status_code=201)
def add_comment(
    submission_id: int,
    comment: CommentCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    created = comment_service.add_comment(session, submission_id, current_user, comment.body)
    return comment_service.present_comments(session, [created])[0]


@router.post("/comments/{comment_id}/flag", status_code=204)
def flag_comment(
    comment_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    comment_service.flag_comment(session, comment_id, current_user)
