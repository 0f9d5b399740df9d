"""
Submission ledger: per-user, per-month photo entries.

A submission is *active* while it is neither removed by moderation nor
deleted by its owner; quota, galleries, judging and the raffle all count
active rows only (``active_clause``).
"""
import logging
from datetime import datetime
from typing import Optional

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import func
from sqlmodel import Session, select

from ..constants import FIXED_CATEGORY_IDS, MAX_TAGS, SUBMISSION_LIMITS
from ..errors import (
    ForbiddenError,
    InvalidCategoryError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from ..models.month import Month, MonthStatus
from ..models.submission import (
    CategoryType,
    Submission,
    SubmissionAdmin,
    SubmissionCard,
    SubmissionDetails,
    SubmissionMetadataUpdate,
    SubmissionPublic,
    active_clause,
)
from ..models.user import User
from ..timeutil import as_utc, utcnow
from .images import inspect_image
from .months import ensure_accepting_submissions, get_month
from .s3 import PhotoStorage
from .users import require_admin, summaries_for

logger = logging.getLogger(__name__)


class EditWindowClosedError(ForbiddenError):
    pass


def clean_tags(tags: Optional[list[str]]) -> list[str]:
    cleaned = []
    for tag in tags or []:
        tag = tag.strip()
        if tag and tag.lower() not in (t.lower() for t in cleaned):
            cleaned.append(tag)
    if len(cleaned) > MAX_TAGS:
        raise ValidationError(f"A photo can have at most {MAX_TAGS} tags")
    return cleaned


def parse_details(**fields) -> SubmissionDetails:
    """Build the photo details from raw form fields, reporting bad values as ValidationError."""
    try:
        return SubmissionDetails(**fields)
    except SchemaValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "details"
        raise ValidationError(f"Invalid {field}: {error['msg']}")


def resolve_category(month: Month, category_type: CategoryType, category: Optional[str]) -> Optional[str]:
    """The value stored in ``Submission.category`` for the chosen bucket."""
    if category_type == CategoryType.FIXED:
        if category not in FIXED_CATEGORY_IDS:
            raise InvalidCategoryError(
                f"Fixed submissions need one of: {', '.join(FIXED_CATEGORY_IDS)}"
            )
        return category
    if category_type == CategoryType.ROTATING:
        if category not in (None, month.rotating_category_id):
            raise InvalidCategoryError(f"This month's rotating theme is '{month.rotating_category_id}'")
        return month.rotating_category_id
    if category is not None:
        raise InvalidCategoryError("Open submissions do not take a category")
    return None


def count_active(session: Session, user_id: int, month_year: str) -> int:
    return session.exec(
        select(func.count())
        .select_from(Submission)
        .where((Submission.user_id == user_id) & (Submission.month_year == month_year) & active_clause())
    ).one()


def remaining_quota(session: Session, user_id: int, month_year: str) -> int:
    return max(SUBMISSION_LIMITS["max_per_month"] - count_active(session, user_id, month_year), 0)


def _quota_error() -> QuotaExceededError:
    return QuotaExceededError(
        f"You can have at most {SUBMISSION_LIMITS['max_per_month']} submissions per month"
    )


def create_submission(
    session: Session,
    caller: User,
    month_year: str,
    category_type: CategoryType,
    category: Optional[str],
    file_content: bytes,
    content_type: str,
    details: Optional[SubmissionDetails],
    storage: PhotoStorage,
    now: Optional[datetime] = None,
) -> Submission:
    details = details or SubmissionDetails()
    month = get_month(session, month_year)
    ensure_accepting_submissions(session, month, now)
    stored_category = resolve_category(month, category_type, category)
    if count_active(session, caller.user_id, month_year) >= SUBMISSION_LIMITS["max_per_month"]:
        raise _quota_error()
    inspect_image(file_content, content_type)
    tags = clean_tags(details.tags)

    stored = storage.store_submission(file_content, content_type, month_year, caller.user_id)

    # Lock the owner's row so concurrent uploads by one user are counted one at a time
    session.exec(select(User).where(User.user_id == caller.user_id).with_for_update()).one()
    if count_active(session, caller.user_id, month_year) >= SUBMISSION_LIMITS["max_per_month"]:
        session.rollback()
        storage.delete_photo(stored)
        raise _quota_error()

    submission = Submission(
        user_id=caller.user_id,
        month_year=month_year,
        photo_url=stored.photo_url,
        thumbnail_url=stored.thumbnail_url,
        category_type=category_type,
        category=stored_category,
        camera=details.camera,
        film_stock=details.film_stock,
        location=details.location,
        description=details.description,
        tags=tags,
    )
    session.add(submission)
    session.commit()
    session.refresh(submission)
    logger.info(
        "User %s submitted %s (%s) to %s",
        caller.user_id, submission.submission_id, category_type.value, month_year,
    )
    return submission


def can_view(submission: Submission, viewer: Optional[User]) -> bool:
    if submission.is_active:
        return True
    return viewer is not None and (viewer.is_admin or viewer.user_id == submission.user_id)


def get_submission(session: Session, submission_id: int, viewer: Optional[User] = None) -> Submission:
    submission = session.get(Submission, submission_id)
    if not submission or not can_view(submission, viewer):
        raise NotFoundError("Submission not found")
    return submission


def get_active_submission(session: Session, submission_id: int) -> Submission:
    submission = session.get(Submission, submission_id)
    if not submission or not submission.is_active:
        raise NotFoundError("Submission not found")
    return submission


def edit_metadata(
    session: Session,
    submission_id: int,
    caller: User,
    patch: SubmissionMetadataUpdate,
    now: Optional[datetime] = None,
) -> Submission:
    submission = get_active_submission(session, submission_id)
    if submission.user_id != caller.user_id:
        raise ForbiddenError("Only the photographer can edit this submission")

    month = get_month(session, submission.month_year)
    now = as_utc(now) or utcnow()
    if month.status != MonthStatus.OPEN or as_utc(month.submissions_close) <= now:
        raise EditWindowClosedError("Submissions can only be edited until the month's deadline")

    changes = patch.model_dump(exclude_unset=True)
    if "tags" in changes:
        changes["tags"] = clean_tags(changes["tags"])
    for field, value in changes.items():
        setattr(submission, field, value)
    submission.edited_at = now
    session.add(submission)
    session.commit()
    session.refresh(submission)
    return submission


def delete_submission(session: Session, submission_id: int, caller: User) -> Submission:
    submission = session.get(Submission, submission_id)
    if not submission or submission.deleted_at is not None:
        raise NotFoundError("Submission not found")
    if submission.user_id != caller.user_id:
        if not submission.is_active:
            raise NotFoundError("Submission not found")
        raise ForbiddenError("Only the photographer can delete this submission")

    submission.deleted_at = utcnow()
    session.add(submission)
    session.commit()
    session.refresh(submission)
    logger.info("User %s deleted submission %s", caller.user_id, submission_id)
    return submission


def remove_submission(session: Session, submission_id: int, moderator: User, reason: str) -> Submission:
    require_admin(moderator, "remove submissions")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to remove a submission")
    submission = session.get(Submission, submission_id)
    if not submission:
        raise NotFoundError("Submission not found")
    if submission.is_removed:
        return submission

    submission.is_removed = True
    submission.removed_reason = reason
    submission.removed_at = utcnow()
    submission.removed_by = moderator.user_id
    session.add(submission)
    session.commit()
    session.refresh(submission)
    logger.info("Moderator %s removed submission %s: %s", moderator.user_id, submission_id, reason)
    return submission


def list_submissions(
    session: Session,
    month_year: Optional[str] = None,
    category_type: Optional[CategoryType] = None,
    category: Optional[str] = None,
    user_id: Optional[int] = None,
    featured_only: bool = False,
    viewer: Optional[User] = None,
    include_inactive: bool = False,
    skip: int = 0,
    limit: Optional[int] = None,
) -> list[Submission]:
    statement = select(Submission)
    if include_inactive:
        require_admin(viewer, "list removed or deleted submissions")
    else:
        statement = statement.where(active_clause())
    if month_year is not None:
        statement = statement.where(Submission.month_year == month_year)
    if category_type is not None:
        statement = statement.where(Submission.category_type == category_type)
    if category is not None:
        statement = statement.where(Submission.category == category)
    if user_id is not None:
        statement = statement.where(Submission.user_id == user_id)
    if featured_only:
        statement = statement.where(Submission.is_featured == True)  # noqa: E712

    statement = statement.order_by(Submission.created_at, Submission.submission_id).offset(skip)
    if limit is not None:
        statement = statement.limit(limit)
    return list(session.exec(statement).all())


def get_featured_submissions(session: Session, month_year: str) -> list[Submission]:
    return list_submissions(session, month_year=month_year, featured_only=True)


def get_other_submissions_by_user(
    session: Session, user_id: int, exclude_submission_id: int, limit: int = 4
) -> list[Submission]:
    return list(
        session.exec(
            select(Submission)
            .where(
                (Submission.user_id == user_id)
                & (Submission.submission_id != exclude_submission_id)
                & active_clause()
            )
            .order_by(Submission.created_at.desc(), Submission.submission_id.desc())
            .limit(limit)
        ).all()
    )


def _details(submission: Submission) -> SubmissionDetails:
    return SubmissionDetails(
        camera=submission.camera,
        film_stock=submission.film_stock,
        location=submission.location,
        description=submission.description,
        tags=list(submission.tags or []),
    )


def present(session: Session, submissions: list[Submission], viewer: Optional[User] = None) -> list[SubmissionPublic]:
    """Attach author summaries; admins also see the moderation fields."""
    summaries = summaries_for(session, (s.user_id for s in submissions))
    model = SubmissionAdmin if viewer is not None and viewer.is_admin else SubmissionPublic
    results = []
    for s in submissions:
        data = dict(
            submission_id=s.submission_id,
            user=summaries[s.user_id],
            photo_url=s.photo_url,
            thumbnail_url=s.thumbnail_url,
            category_type=s.category_type,
            category=s.category,
            details=_details(s),
            month_year=s.month_year,
            is_featured=s.is_featured,
            edited_at=as_utc(s.edited_at),
            created_at=as_utc(s.created_at),
        )
        if model is SubmissionAdmin:
            data.update(is_removed=s.is_removed, removed_reason=s.removed_reason, deleted_at=as_utc(s.deleted_at))
        results.append(model(**data))
    return results


def present_one(session: Session, submission: Submission, viewer: Optional[User] = None) -> SubmissionPublic:
    return present(session, [submission], viewer)[0]


def present_cards(session: Session, submissions: list[Submission]) -> list[SubmissionCard]:
    summaries = summaries_for(session, (s.user_id for s in submissions))
    return [
        SubmissionCard(
            submission_id=s.submission_id,
            thumbnail_url=s.thumbnail_url,
            category_type=s.category_type,
            user=summaries[s.user_id],
            is_featured=s.is_featured,
        )
        for s in submissions
    ]
