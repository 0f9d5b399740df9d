from fastapi import APIRouter, Depends
from sqlmodel import Session
from typing import Optional, List
from pydantic import BaseModel

from ..services.auth import get_current_user, get_optional_user
from ..services.database import get_session
from ..services import submissions as submission_service
from ..services import users as user_service
from ..models.submission import SubmissionPublic
from ..models.user import User, UserMe, UserProfile, UserPublic, UserRole, UserUpdate

router = APIRouter(
    prefix="/users",
    tags=["User"]
)


@router.get("/me", response_model=UserMe)
def read_current_user(current_user: User = Depends(get_current_user)):
    return current_user


@router.put("/me", response_model=UserMe)
def update_current_user(
    update: UserUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    return user_service.update_profile(session, current_user, update)


@router.delete("/me", status_code=204)
def delete_current_user(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    # Submissions and comments stay, credited to "Deleted User"
    user_service.soft_delete_user(session, current_user, current_user.user_id)


@router.get("", response_model=List[UserPublic])
def list_users(
    role: Optional[UserRole] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    user_service.require_admin(current_user, "list accounts")
    return user_service.list_users(session, role)


@router.get("/{user_id}", response_model=UserProfile)
def read_user(user_id: int, session: Session = Depends(get_session)):
    return user_service.get_user_profile(session, user_id)


@router.get("/{user_id}/submissions", response_model=List[SubmissionPublic])
def read_user_submissions(
    user_id: int,
    month_year: Optional[str] = None,
    session: Session = Depends(get_session),
    viewer: Optional[User] = Depends(get_optional_user)
):
    user_service.get_user(session, user_id)
    submissions = submission_service.list_submissions(session, month_year=month_year, user_id=user_id)
    return submission_service.present(session, submissions, viewer)


class RoleUpdateRequest(BaseModel):
    role: UserRole


@router.put("/{user_id}/role", response_model=UserPublic)
def update_role(
    user_id: int,
    request: RoleUpdateRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    return user_service.set_role(session, current_user, user_id, request.role)


@router.delete("/{user_id}", status_code=204)
def delete_user(
    user_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    user_service.soft_delete_user(session, current_user, user_id)
