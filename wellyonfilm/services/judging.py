"""
Judging consensus: judge panels, judge actions and the featured set.

Each assigned judge holds at most one current action (pass, shortlist or
flag) per submission. Tallies are computed with grouped queries rather than
by scanning every action. Finalization picks the featured submissions per
category bucket and closes the month in a single transaction.
"""
import logging
from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..constants import FEATURED_COUNT, FIXED_CATEGORY_IDS, MAX_JUDGES_PER_MONTH
from ..errors import (
    AlreadyFinalizedError,
    ConcurrencyConflictError,
    DuplicateAssignmentError,
    ForbiddenError,
    InvalidTransitionError,
    JudgePanelFullError,
    JudgingClosedError,
    NotFoundError,
    ValidationError,
)
from ..models.judge_action import (
    JudgeAction,
    JudgeActionPublic,
    JudgeActionType,
    JudgingQueueItem,
    JudgingStatus,
    ModerationItem,
)
from ..models.judge_assignment import JudgeAssignment
from ..models.month import Month, MonthStatus
from ..models.submission import CategoryType, Submission, active_clause
from ..models.user import User
from ..timeutil import as_utc, utcnow
from .months import _compare_and_swap, get_month, sync_month_status
from .submissions import get_active_submission, list_submissions, present
from .users import get_user, require_admin

logger = logging.getLogger(__name__)


class QueueFilter(str, Enum):
    ALL = "all"
    PENDING = "pending"
    REVIEWED = "reviewed"
    SHORTLISTED = "shortlisted"
    FLAGGED = "flagged"


class ModerationFilter(str, Enum):
    FLAGGED = "flagged"
    REMOVED = "removed"
    ALL = "all"


# Judge panels

def is_judge_for_month(session: Session, user_id: int, month_year: str) -> bool:
    return session.exec(
        select(JudgeAssignment).where(
            (JudgeAssignment.user_id == user_id) & (JudgeAssignment.month_year == month_year)
        )
    ).first() is not None


def list_judges(session: Session, month_year: str) -> list[User]:
    return list(
        session.exec(
            select(User)
            .join(JudgeAssignment, JudgeAssignment.user_id == User.user_id)
            .where((JudgeAssignment.month_year == month_year) & User.deleted_at.is_(None))
            .order_by(JudgeAssignment.created_at, JudgeAssignment.assignment_id)
        ).all()
    )


def assign_judge(session: Session, caller: User, month_year: str, user_id: int) -> JudgeAssignment:
    require_admin(caller, "assign judges")
    month = get_month(session, month_year)
    if month.status == MonthStatus.CLOSED:
        raise JudgingClosedError(f"Month {month_year} is closed")
    get_user(session, user_id)

    # Serialise panel changes for this month so the cap holds under concurrent requests
    session.exec(select(Month).where(Month.month_id == month.month_id).with_for_update()).one()
    if is_judge_for_month(session, user_id, month_year):
        raise DuplicateAssignmentError(f"User {user_id} is already judging {month_year}")
    panel_size = session.exec(
        select(func.count()).select_from(JudgeAssignment).where(JudgeAssignment.month_year == month_year)
    ).one()
    if panel_size >= MAX_JUDGES_PER_MONTH:
        raise JudgePanelFullError(f"{month_year} already has {MAX_JUDGES_PER_MONTH} judges")

    assignment = JudgeAssignment(user_id=user_id, month_year=month_year)
    session.add(assignment)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise DuplicateAssignmentError(f"User {user_id} is already judging {month_year}")
    session.refresh(assignment)
    logger.info("Assigned judge %s to %s", user_id, month_year)
    return assignment


def unassign_judge(session: Session, caller: User, month_year: str, user_id: int) -> None:
    require_admin(caller, "change judges")
    month = get_month(session, month_year)
    if month.status == MonthStatus.CLOSED:
        raise JudgingClosedError(f"Month {month_year} is closed")
    assignment = session.exec(
        select(JudgeAssignment).where(
            (JudgeAssignment.user_id == user_id) & (JudgeAssignment.month_year == month_year)
        )
    ).first()
    if not assignment:
        raise NotFoundError("Judge assignment not found")
    session.delete(assignment)
    session.commit()
    logger.info("Removed judge %s from %s", user_id, month_year)


def require_judge_or_admin(session: Session, user: User, month_year: str) -> None:
    if user.is_admin or is_judge_for_month(session, user.user_id, month_year):
        return
    raise ForbiddenError(f"Only judges for {month_year} can see judging")


# Judge actions

def record_judge_action(
    session: Session,
    submission_id: int,
    judge: User,
    action: JudgeActionType,
    flag_reason: Optional[str] = None,
) -> JudgeAction:
    submission = session.get(Submission, submission_id)
    if not submission:
        raise NotFoundError("Submission not found")
    if not is_judge_for_month(session, judge.user_id, submission.month_year):
        raise ForbiddenError(f"You are not a judge for {submission.month_year}")
    if not submission.is_active:
        raise NotFoundError("Submission not found")
    month = sync_month_status(session, get_month(session, submission.month_year))
    if month.status != MonthStatus.JUDGING:
        raise JudgingClosedError(f"Judging for {month.month_year} is not in progress")

    if action == JudgeActionType.FLAG:
        flag_reason = (flag_reason or "").strip()
        if not flag_reason:
            raise ValidationError("Flagging a submission requires a reason")
    else:
        flag_reason = None

    judge_action = _upsert_action(session, submission_id, judge.user_id, action, flag_reason)
    logger.info("Judge %s marked submission %s as %s", judge.user_id, submission_id, action.value)
    return judge_action


def _find_action(session: Session, submission_id: int, judge_user_id: int, lock: bool = False) -> Optional[JudgeAction]:
    statement = select(JudgeAction).where(
        (JudgeAction.submission_id == submission_id) & (JudgeAction.judge_user_id == judge_user_id)
    )
    if lock:
        statement = statement.with_for_update()
    return session.exec(statement).first()


def _upsert_action(
    session: Session,
    submission_id: int,
    judge_user_id: int,
    action: JudgeActionType,
    flag_reason: Optional[str],
) -> JudgeAction:
    existing = _find_action(session, submission_id, judge_user_id, lock=True)
    if existing is None:
        judge_action = JudgeAction(
            submission_id=submission_id,
            judge_user_id=judge_user_id,
            action=action,
            flag_reason=flag_reason,
        )
        session.add(judge_action)
        try:
            session.commit()
            session.refresh(judge_action)
            return judge_action
        except IntegrityError:
            # A concurrent vote by the same judge inserted first; update that row instead
            session.rollback()
            existing = _find_action(session, submission_id, judge_user_id, lock=True)
            if existing is None:
                raise ConcurrencyConflictError("Judge action changed concurrently, please retry")

    existing.action = action
    existing.flag_reason = flag_reason
    existing.updated_at = utcnow()
    session.add(existing)
    session.commit()
    session.refresh(existing)
    return existing


# Tallies

def _tallies(session: Session, submission_ids: Sequence[int]) -> dict[int, JudgingStatus]:
    statuses = {sid: JudgingStatus(submission_id=sid) for sid in submission_ids}
    if not statuses:
        return statuses
    rows = session.exec(
        select(JudgeAction.submission_id, JudgeAction.action, func.count(JudgeAction.action_id))
        .where(JudgeAction.submission_id.in_(list(statuses)))
        .group_by(JudgeAction.submission_id, JudgeAction.action)
    ).all()
    for submission_id, action, count in rows:
        status = statuses[submission_id]
        if action == JudgeActionType.SHORTLIST:
            status.shortlist_count = count
        elif action == JudgeActionType.FLAG:
            status.flag_count = count
        else:
            status.pass_count = count
    return statuses


def get_judging_status(session: Session, submission_id: int, viewer: User) -> JudgingStatus:
    submission = session.get(Submission, submission_id)
    if not submission:
        raise NotFoundError("Submission not found")
    require_judge_or_admin(session, viewer, submission.month_year)
    status = _tallies(session, [submission_id])[submission_id]
    actions = session.exec(
        select(JudgeAction)
        .where(JudgeAction.submission_id == submission_id)
        .order_by(JudgeAction.created_at, JudgeAction.action_id)
    ).all()
    status.actions = [JudgeActionPublic.model_validate(a, from_attributes=True) for a in actions]
    return status


def tallies_for_month(session: Session, month_year: str) -> dict[int, JudgingStatus]:
    """Counts for every active submission of the month, keyed by submission id."""
    ids = session.exec(
        select(Submission.submission_id).where((Submission.month_year == month_year) & active_clause())
    ).all()
    return _tallies(session, list(ids))


def shortlisted_submission_ids(session: Session, month_year: str, min_judges: int = 1) -> list[int]:
    return [
        sid for sid, status in sorted(tallies_for_month(session, month_year).items())
        if status.shortlist_count >= min_judges
    ]


def flagged_submission_ids(session: Session, month_year: Optional[str] = None) -> list[int]:
    statement = (
        select(JudgeAction.submission_id)
        .join(Submission, Submission.submission_id == JudgeAction.submission_id)
        .where(JudgeAction.action == JudgeActionType.FLAG)
        .distinct()
    )
    if month_year is not None:
        statement = statement.where(Submission.month_year == month_year)
    return sorted(session.exec(statement).all())


def judging_queue(
    session: Session,
    month_year: str,
    judge: User,
    queue_filter: QueueFilter = QueueFilter.ALL,
    category_type: Optional[CategoryType] = None,
) -> list[JudgingQueueItem]:
    require_judge_or_admin(session, judge, month_year)
    sync_month_status(session, get_month(session, month_year))
    submissions = list_submissions(session, month_year=month_year, category_type=category_type)
    statuses = _tallies(session, [s.submission_id for s in submissions])
    mine = {
        a.submission_id: a.action
        for a in session.exec(
            select(JudgeAction).where(
                (JudgeAction.judge_user_id == judge.user_id)
                & JudgeAction.submission_id.in_([s.submission_id for s in submissions])
            )
        ).all()
    }

    def keep(submission: Submission) -> bool:
        status = statuses[submission.submission_id]
        if queue_filter == QueueFilter.PENDING:
            return submission.submission_id not in mine
        if queue_filter == QueueFilter.REVIEWED:
            return submission.submission_id in mine
        if queue_filter == QueueFilter.SHORTLISTED:
            return status.shortlist_count > 0
        if queue_filter == QueueFilter.FLAGGED:
            return status.flag_count > 0
        return True

    kept = [s for s in submissions if keep(s)]
    return [
        JudgingQueueItem(submission=public, status=statuses[s.submission_id], my_action=mine.get(s.submission_id))
        for s, public in zip(kept, present(session, kept))
    ]


# Moderation

def _flag_details(session: Session, submission_ids: Sequence[int]) -> dict[int, tuple[datetime, list[str]]]:
    details: dict[int, tuple[datetime, list[str]]] = {}
    if not submission_ids:
        return details
    for flag in session.exec(
        select(JudgeAction)
        .where((JudgeAction.action == JudgeActionType.FLAG) & JudgeAction.submission_id.in_(list(submission_ids)))
        .order_by(JudgeAction.updated_at)
    ).all():
        latest, reasons = details.get(flag.submission_id, (None, []))
        updated = as_utc(flag.updated_at)
        details[flag.submission_id] = (max(latest, updated) if latest else updated, reasons + [flag.flag_reason])
    return details


def awaiting_review(submission: Submission, latest_flag: Optional[datetime]) -> bool:
    """Flagged, not removed, and not approved since the most recent flag."""
    if submission.is_removed or latest_flag is None:
        return False
    resolved = as_utc(submission.moderation_resolved_at)
    return resolved is None or latest_flag > resolved


def moderation_queue(
    session: Session,
    moderator: User,
    month_year: Optional[str] = None,
    queue_filter: ModerationFilter = ModerationFilter.FLAGGED,
) -> list[ModerationItem]:
    require_admin(moderator, "moderate submissions")
    statement = select(Submission).where(Submission.deleted_at.is_(None))
    if month_year is not None:
        statement = statement.where(Submission.month_year == month_year)
    if queue_filter == ModerationFilter.REMOVED:
        statement = statement.where(Submission.is_removed == True)  # noqa: E712
    elif queue_filter == ModerationFilter.FLAGGED:
        statement = statement.where(
            (Submission.is_removed == False)  # noqa: E712
            & Submission.submission_id.in_(
                select(JudgeAction.submission_id).where(JudgeAction.action == JudgeActionType.FLAG)
            )
        )
    submissions = list(session.exec(statement.order_by(Submission.created_at, Submission.submission_id)).all())
    flags = _flag_details(session, [s.submission_id for s in submissions])

    if queue_filter == ModerationFilter.FLAGGED:
        submissions = [s for s in submissions if awaiting_review(s, flags.get(s.submission_id, (None, []))[0])]

    items = []
    for submission, public in zip(submissions, present(session, submissions, moderator)):
        latest, reasons = flags.get(submission.submission_id, (None, []))
        items.append(
            ModerationItem(
                submission=public,
                flag_count=len(reasons),
                flag_reasons=reasons,
                awaiting_review=awaiting_review(submission, latest),
                moderation_resolved_at=as_utc(submission.moderation_resolved_at),
            )
        )
    return items


def approve_submission(session: Session, moderator: User, submission_id: int) -> Submission:
    """Clear a submission from the moderation queue; judge flags stay on record."""
    require_admin(moderator, "moderate submissions")
    submission = get_active_submission(session, submission_id)
    submission.moderation_resolved_at = utcnow()
    session.add(submission)
    session.commit()
    session.refresh(submission)
    logger.info("Moderator %s approved submission %s", moderator.user_id, submission_id)
    return submission


# Finalization

def featured_buckets() -> dict[tuple[CategoryType, Optional[str]], int]:
    """Featured slots per bucket: one per fixed sub-category, then rotating and open."""
    per_fixed_category = FEATURED_COUNT["fixed"] // len(FIXED_CATEGORY_IDS)
    buckets: dict[tuple[CategoryType, Optional[str]], int] = {
        (CategoryType.FIXED, category): per_fixed_category for category in FIXED_CATEGORY_IDS
    }
    buckets[(CategoryType.ROTATING, None)] = FEATURED_COUNT["rotating"]
    buckets[(CategoryType.OPEN, None)] = FEATURED_COUNT["open"]
    return buckets


def bucket_of(submission: Submission) -> tuple[CategoryType, Optional[str]]:
    if submission.category_type == CategoryType.FIXED:
        return (CategoryType.FIXED, submission.category)
    return (submission.category_type, None)


def ranking_key(submission: Submission, shortlist_counts: dict[int, int]):
    # Most shortlists first; ties go to the earlier submission
    return (
        -shortlist_counts.get(submission.submission_id, 0),
        as_utc(submission.created_at),
        submission.submission_id,
    )


def select_featured(
    eligible: Iterable[Submission],
    shortlist_counts: dict[int, int],
    pinned_ids: Sequence[int] = (),
) -> list[Submission]:
    """
    Choose the featured set. Pinned submissions take their bucket's slots
    first; remaining slots go to the highest-ranked submissions. Slots never
    move between buckets.
    """
    quotas = featured_buckets()
    by_bucket: dict[tuple, list[Submission]] = defaultdict(list)
    by_id = {}
    for submission in eligible:
        by_id[submission.submission_id] = submission
        by_bucket[bucket_of(submission)].append(submission)

    pinned_by_bucket: dict[tuple, list[Submission]] = defaultdict(list)
    for submission_id in dict.fromkeys(pinned_ids):
        submission = by_id.get(submission_id)
        if submission is None or bucket_of(submission) not in quotas:
            raise ValidationError(f"Submission {submission_id} is not eligible to be featured")
        pinned_by_bucket[bucket_of(submission)].append(submission)

    featured = []
    for bucket, quota in quotas.items():
        pinned = pinned_by_bucket.get(bucket, [])
        if len(pinned) > quota:
            raise ValidationError(f"Too many pinned submissions for {bucket[0].value} {bucket[1] or ''}".strip())
        pinned_set = {s.submission_id for s in pinned}
        ranked = sorted(
            (s for s in by_bucket.get(bucket, []) if s.submission_id not in pinned_set),
            key=lambda s: ranking_key(s, shortlist_counts),
        )
        featured.extend(pinned + ranked[: quota - len(pinned)])
    return featured


def finalize_month(
    session: Session,
    caller: User,
    month_year: str,
    pinned_ids: Optional[Sequence[int]] = None,
) -> Month:
    require_admin(caller, "finalize months")
    month = sync_month_status(session, get_month(session, month_year))
    if month.status == MonthStatus.CLOSED:
        raise AlreadyFinalizedError(f"Month {month_year} has already been finalized")
    if month.status != MonthStatus.JUDGING:
        raise InvalidTransitionError(f"Month {month_year} must be in judging before it can be finalized")

    eligible = list_submissions(session, month_year=month_year)
    statuses = _tallies(session, [s.submission_id for s in eligible])
    shortlist_counts = {sid: status.shortlist_count for sid, status in statuses.items()}
    featured = select_featured(eligible, shortlist_counts, pinned_ids or ())
    featured_ids = [s.submission_id for s in featured]

    # Flip the month first: the conditional UPDATE is what stops a second finalizer
    if not _compare_and_swap(session, month, MonthStatus.JUDGING, MonthStatus.CLOSED, finalized_at=utcnow()):
        session.rollback()
        if get_month(session, month_year).status == MonthStatus.CLOSED:
            raise AlreadyFinalizedError(f"Month {month_year} has already been finalized")
        raise ConcurrencyConflictError(f"Month {month_year} changed status concurrently")

    if featured_ids:
        session.exec(
            update(Submission)
            .where(Submission.submission_id.in_(featured_ids))
            .values(is_featured=True)
            .execution_options(synchronize_session=False)
        )
    session.commit()
    session.refresh(month)
    logger.info(
        "Finalized %s with %d featured submissions%s",
        month_year, len(featured_ids), f" ({len(pinned_ids)} pinned)" if pinned_ids else "",
    )
    return month
