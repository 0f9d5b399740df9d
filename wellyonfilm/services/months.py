"""
Month lifecycle: open -> judging -> closed, never backwards.

Every status change goes through ``_compare_and_swap`` so two requests racing
on the same month cannot both win. The ``open_slot`` column backs the "only
one open month" rule at the database level.
"""
import logging
import re
from datetime import datetime
from typing import Optional, Union

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..errors import (
    ConcurrencyConflictError,
    InvalidTransitionError,
    MonthAlreadyOpenError,
    NotFoundError,
    StateError,
    SubmissionsClosedError,
    ValidationError,
)
from ..models.month import Month, MonthPublic, MonthStatus, MonthSummary, MonthWithStats, RotatingCategory
from ..models.rotating_theme import RotatingTheme
from ..models.submission import Submission, active_clause
from ..models.user import User
from ..timeutil import as_utc, utcnow
from .users import require_admin

logger = logging.getLogger(__name__)

MONTH_KEY_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

ALLOWED_TRANSITIONS = {
    MonthStatus.OPEN: {MonthStatus.JUDGING},
    MonthStatus.JUDGING: {MonthStatus.CLOSED},
    MonthStatus.CLOSED: set(),
}


def format_month_year(month_year: str) -> str:
    return datetime.strptime(f"{month_year}-01", "%Y-%m-%d").strftime("%B %Y")


def validate_month_key(month_year: str) -> str:
    if not month_year or not MONTH_KEY_PATTERN.match(month_year):
        raise ValidationError("Month must use the YYYY-MM format")
    return month_year


def month_public(month: Month) -> MonthPublic:
    return MonthPublic(
        month_id=month.month_id,
        month_year=month.month_year,
        display_name=format_month_year(month.month_year),
        rotating_category=RotatingCategory(
            id=month.rotating_category_id,
            name=month.rotating_category_name,
            description=month.rotating_category_description,
            sponsor_name=month.sponsor_name,
            sponsor_url=month.sponsor_url,
        ),
        submissions_open=as_utc(month.submissions_open),
        submissions_close=as_utc(month.submissions_close),
        status=month.status,
        finalized_at=as_utc(month.finalized_at),
    )


def get_month(session: Session, month_year: str) -> Month:
    month = session.exec(select(Month).where(Month.month_year == month_year)).first()
    if not month:
        raise NotFoundError(f"Month {month_year} not found")
    return month


def list_months(session: Session) -> list[Month]:
    return list(session.exec(select(Month).order_by(Month.month_year.desc())).all())


def _open_month(session: Session) -> Optional[Month]:
    return session.exec(select(Month).where(Month.status == MonthStatus.OPEN)).first()


# Rotating theme catalogue

def theme_category(theme: RotatingTheme) -> RotatingCategory:
    return RotatingCategory(
        id=theme.theme_id,
        name=theme.name,
        description=theme.description,
        sponsor_name=theme.sponsor_name,
        sponsor_url=theme.sponsor_url,
    )


def list_rotating_themes(session: Session) -> list[RotatingTheme]:
    return list(session.exec(select(RotatingTheme).order_by(RotatingTheme.name)).all())


def get_rotating_theme(session: Session, theme_id: str) -> RotatingTheme:
    theme = session.get(RotatingTheme, theme_id)
    if not theme:
        raise NotFoundError(f"Rotating theme {theme_id} not found")
    return theme


def save_rotating_theme(session: Session, caller: User, category: RotatingCategory) -> RotatingTheme:
    """Add a theme to the catalogue, or update the wording of an existing one."""
    require_admin(caller, "edit rotating themes")
    theme = session.get(RotatingTheme, category.id) or RotatingTheme(theme_id=category.id, name=category.name)
    theme.name = category.name
    theme.description = category.description
    theme.sponsor_name = category.sponsor_name
    theme.sponsor_url = category.sponsor_url
    session.add(theme)
    session.commit()
    session.refresh(theme)
    return theme


def create_month(
    session: Session,
    caller: User,
    month_year: str,
    rotating_category: Union[RotatingCategory, str],
    submissions_open: datetime,
    submissions_close: datetime,
) -> Month:
    require_admin(caller, "create months")
    validate_month_key(month_year)
    submissions_open = as_utc(submissions_open)
    submissions_close = as_utc(submissions_close)
    if submissions_close <= submissions_open:
        raise ValidationError("Submissions must close after they open")

    if session.exec(select(Month).where(Month.month_year == month_year)).first():
        raise ValidationError(f"Month {month_year} already exists")
    close_elapsed_submission_windows(session)
    current = _open_month(session)
    if current:
        raise MonthAlreadyOpenError(
            f"Month {current.month_year} is still open; move it to judging first"
        )

    # A bare id picks a theme from the catalogue; a new inline theme is added to it
    if isinstance(rotating_category, str):
        rotating_category = theme_category(get_rotating_theme(session, rotating_category))
    elif session.get(RotatingTheme, rotating_category.id) is None:
        session.add(
            RotatingTheme(
                theme_id=rotating_category.id,
                name=rotating_category.name,
                description=rotating_category.description,
                sponsor_name=rotating_category.sponsor_name,
                sponsor_url=rotating_category.sponsor_url,
            )
        )

    month = Month(
        month_year=month_year,
        rotating_category_id=rotating_category.id,
        rotating_category_name=rotating_category.name,
        rotating_category_description=rotating_category.description,
        sponsor_name=rotating_category.sponsor_name,
        sponsor_url=rotating_category.sponsor_url,
        submissions_open=submissions_open,
        submissions_close=submissions_close,
        status=MonthStatus.OPEN,
        open_slot=True,
    )
    session.add(month)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        if _open_month(session):
            raise MonthAlreadyOpenError("Another month was opened concurrently")
        raise ConcurrencyConflictError(f"Month {month_year} was created concurrently")
    session.refresh(month)
    logger.info("Opened month %s (closes %s)", month_year, submissions_close.isoformat())
    return month


def update_month_theme(
    session: Session,
    caller: User,
    month_year: str,
    rotating_category: Optional[RotatingCategory] = None,
    submissions_open: Optional[datetime] = None,
    submissions_close: Optional[datetime] = None,
) -> Month:
    require_admin(caller, "edit months")
    month = get_month(session, month_year)
    if month.status == MonthStatus.CLOSED:
        raise StateError(f"Month {month_year} is closed and can no longer be edited")

    if rotating_category is not None:
        # Rotating submissions reference the theme id, so only its wording may change
        if rotating_category.id != month.rotating_category_id:
            raise ValidationError("The rotating theme id cannot change once the month exists")
        month.rotating_category_name = rotating_category.name
        month.rotating_category_description = rotating_category.description
        month.sponsor_name = rotating_category.sponsor_name
        month.sponsor_url = rotating_category.sponsor_url

    if submissions_open is not None or submissions_close is not None:
        if month.status != MonthStatus.OPEN:
            raise StateError("The submission window can only change while the month is open")
        new_open = as_utc(submissions_open) if submissions_open else as_utc(month.submissions_open)
        new_close = as_utc(submissions_close) if submissions_close else as_utc(month.submissions_close)
        if new_close <= new_open:
            raise ValidationError("Submissions must close after they open")
        month.submissions_open = new_open
        month.submissions_close = new_close

    session.add(month)
    session.commit()
    session.refresh(month)
    return month


def _compare_and_swap(session: Session, month: Month, expected: MonthStatus, new: MonthStatus, **values) -> bool:
    """Single UPDATE ... WHERE status = expected. Returns False when another writer got there first."""
    statement = (
        update(Month)
        .where((Month.month_id == month.month_id) & (Month.status == expected))
        .values(status=new, open_slot=True if new == MonthStatus.OPEN else None, **values)
        .execution_options(synchronize_session=False)
    )
    result = session.exec(statement)
    return result.rowcount == 1


def start_judging(session: Session, month: Month) -> Month:
    if MonthStatus.JUDGING not in ALLOWED_TRANSITIONS[month.status]:
        raise InvalidTransitionError(
            f"Cannot move month {month.month_year} from {month.status.value} to judging"
        )
    if not _compare_and_swap(session, month, MonthStatus.OPEN, MonthStatus.JUDGING):
        session.rollback()
        raise ConcurrencyConflictError(f"Month {month.month_year} changed status concurrently")
    session.commit()
    session.refresh(month)
    logger.info("Month %s moved to judging", month.month_year)
    return month


def transition_month(session: Session, caller: User, month_year: str, target: MonthStatus) -> Month:
    require_admin(caller, "change month status")
    month = sync_month_status(session, get_month(session, month_year))
    if target not in ALLOWED_TRANSITIONS[month.status]:
        raise InvalidTransitionError(
            f"Cannot move month {month_year} from {month.status.value} to {target.value}"
        )
    if target == MonthStatus.CLOSED:
        # Closing always goes through finalization so the featured set is written first
        from .judging import finalize_month

        return finalize_month(session, caller, month_year)
    return start_judging(session, month)


def close_elapsed_submission_windows(session: Session, now: Optional[datetime] = None) -> list[str]:
    """Move any open month whose submission window has passed into judging."""
    now = as_utc(now) or utcnow()
    moved = []
    for month in session.exec(select(Month).where(Month.status == MonthStatus.OPEN)).all():
        if as_utc(month.submissions_close) > now:
            continue
        if _compare_and_swap(session, month, MonthStatus.OPEN, MonthStatus.JUDGING):
            moved.append(month.month_year)
    if moved:
        session.commit()
        logger.info("Submission window elapsed, moved to judging: %s", ", ".join(moved))
    return moved


def get_current_month(session: Session, now: Optional[datetime] = None) -> Optional[Month]:
    close_elapsed_submission_windows(session, now)
    return _open_month(session)


def sync_month_status(session: Session, month: Month, now: Optional[datetime] = None) -> Month:
    """Apply the deadline rollover to ``month`` before its status is checked."""
    if month.status == MonthStatus.OPEN and as_utc(month.submissions_close) <= (as_utc(now) or utcnow()):
        close_elapsed_submission_windows(session, now)
        session.refresh(month)
    return month


def ensure_accepting_submissions(session: Session, month: Month, now: Optional[datetime] = None) -> None:
    """Raise SubmissionsClosedError unless the month is open and inside its window."""
    now = as_utc(now) or utcnow()
    sync_month_status(session, month, now)
    if month.status != MonthStatus.OPEN:
        raise SubmissionsClosedError(f"Submissions for {month.month_year} are closed")
    if as_utc(month.submissions_open) > now:
        raise SubmissionsClosedError(f"Submissions for {month.month_year} have not opened yet")


def _submission_counts(session: Session, month_years: list[str]) -> tuple[dict[str, int], dict[str, int]]:
    if not month_years:
        return {}, {}
    rows = session.exec(
        select(
            Submission.month_year,
            func.count(Submission.submission_id),
            func.sum(case((Submission.is_featured == True, 1), else_=0)),  # noqa: E712
        )
        .where(Submission.month_year.in_(month_years) & active_clause())
        .group_by(Submission.month_year)
    ).all()
    totals = {month_year: count for month_year, count, _ in rows}
    featured = {month_year: int(featured or 0) for month_year, _, featured in rows}
    return totals, featured


def get_month_with_stats(session: Session, month_year: str) -> MonthWithStats:
    month = get_month(session, month_year)
    totals, featured = _submission_counts(session, [month_year])
    return MonthWithStats(
        **month_public(month).model_dump(),
        submission_count=totals.get(month_year, 0),
        featured_count=featured.get(month_year, 0),
    )


def get_archived_months(session: Session) -> list[MonthSummary]:
    months = session.exec(
        select(Month).where(Month.status == MonthStatus.CLOSED).order_by(Month.month_year.desc())
    ).all()
    keys = [m.month_year for m in months]
    totals, featured = _submission_counts(session, keys)

    covers: dict[str, str] = {}
    if keys:
        for submission in session.exec(
            select(Submission)
            .where(Submission.month_year.in_(keys) & active_clause() & (Submission.is_featured == True))  # noqa: E712
            .order_by(Submission.submission_id)
        ).all():
            covers.setdefault(submission.month_year, submission.thumbnail_url)

    return [
        MonthSummary(
            month_id=m.month_id,
            month_year=m.month_year,
            display_name=format_month_year(m.month_year),
            rotating_category_name=m.rotating_category_name,
            submission_count=totals.get(m.month_year, 0),
            featured_count=featured.get(m.month_year, 0),
            cover_image_url=covers.get(m.month_year),
        )
        for m in months
    ]
