import logging
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..constants import DELETED_USER_NAME
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..models.submission import Submission, active_clause
from ..models.user import User, UserProfile, UserRole, UserSummary, UserUpdate
from ..timeutil import utcnow

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValidationError("A valid email address is required")
    return email


def require_admin(user: User, action: str = "do this") -> None:
    if user is None or not user.is_admin:
        raise ForbiddenError(f"Only administrators can {action}")


def find_by_email(session: Session, email: str) -> Optional[User]:
    return session.exec(
        select(User).where(User.active_email == normalize_email(email))
    ).first()


def create_user(
    session: Session,
    email: str,
    display_name: str,
    role: UserRole = UserRole.PHOTOGRAPHER,
) -> User:
    email = normalize_email(email)
    display_name = (display_name or "").strip()
    if not display_name:
        raise ValidationError("Display name is required")

    if find_by_email(session, email):
        raise ValidationError("An account with this email already exists")

    user = User(email=email, active_email=email, display_name=display_name, role=role)
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        # Lost a race against a concurrent sign-up with the same address
        session.rollback()
        raise ValidationError("An account with this email already exists")
    session.refresh(user)
    logger.info("Created %s account %s", user.role.value, user.user_id)
    return user


def get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user or user.is_deleted:
        raise NotFoundError("User not found")
    return user


def list_users(session: Session, role: Optional[UserRole] = None) -> list[User]:
    statement = select(User).where(User.deleted_at.is_(None))
    if role is not None:
        statement = statement.where(User.role == role)
    return list(session.exec(statement.order_by(User.created_at, User.user_id)).all())


def update_profile(session: Session, user: User, update: UserUpdate) -> User:
    changes = update.model_dump(exclude_unset=True)
    if "display_name" in changes and not (changes["display_name"] or "").strip():
        raise ValidationError("Display name is required")
    for field, value in changes.items():
        setattr(user, field, value.strip() if isinstance(value, str) else value)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def set_role(session: Session, caller: User, user_id: int, role: UserRole) -> User:
    require_admin(caller, "change roles")
    user = get_user(session, user_id)
    user.role = role
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Admin %s set role of user %s to %s", caller.user_id, user_id, role.value)
    return user


def soft_delete_user(session: Session, caller: User, user_id: int) -> User:
    if caller.user_id != user_id:
        require_admin(caller, "delete other accounts")
    user = get_user(session, user_id)
    user.deleted_at = utcnow()
    # Frees the address for a new account; history stays attributed to the row
    user.active_email = None
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Soft-deleted user %s (by %s)", user_id, caller.user_id)
    return user


def deleted_user_summary(user_id: int) -> UserSummary:
    return UserSummary(user_id=user_id, display_name=DELETED_USER_NAME, avatar_url=None)


def user_summary(user: Optional[User], user_id: Optional[int] = None) -> UserSummary:
    if user is None or user.is_deleted:
        return deleted_user_summary(user.user_id if user is not None else user_id)
    return UserSummary(user_id=user.user_id, display_name=user.display_name, avatar_url=user.avatar_url)


def summaries_for(session: Session, user_ids: Iterable[int]) -> dict[int, UserSummary]:
    """Summaries keyed by id; deleted or missing accounts get the placeholder."""
    ids = set(user_ids)
    if not ids:
        return {}
    users = {u.user_id: u for u in session.exec(select(User).where(User.user_id.in_(ids))).all()}
    return {user_id: user_summary(users.get(user_id), user_id) for user_id in ids}


def get_user_profile(session: Session, user_id: int) -> UserProfile:
    user = get_user(session, user_id)
    active = (Submission.user_id == user_id) & active_clause()
    submission_count = session.exec(select(func.count()).select_from(Submission).where(active)).one()
    featured_count = session.exec(
        select(func.count()).select_from(Submission).where(active & (Submission.is_featured == True))  # noqa: E712
    ).one()
    return UserProfile(
        **user.model_dump(include={"user_id", "display_name", "avatar_url", "bio", "role", "created_at"}),
        submission_count=submission_count,
        featured_count=featured_count,
    )
