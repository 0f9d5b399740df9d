from sqlalchemy import func
from sqlmodel import Session, SQLModel, select

from ..models.month import Month, MonthStatus
from ..models.submission import Submission, active_clause


class CommunityStats(SQLModel):
    total_submissions: int
    unique_photographers: int
    months_published: int
    featured_photos: int


def community_stats(session: Session) -> CommunityStats:
    total, photographers = session.exec(
        select(func.count(Submission.submission_id), func.count(func.distinct(Submission.user_id)))
        .where(active_clause())
    ).one()
    featured = session.exec(
        select(func.count())
        .select_from(Submission)
        .where(active_clause() & (Submission.is_featured == True))  # noqa: E712
    ).one()
    published = session.exec(
        select(func.count()).select_from(Month).where(Month.status == MonthStatus.CLOSED)
    ).one()
    return CommunityStats(
        total_submissions=total,
        unique_photographers=photographers,
        months_published=published,
        featured_photos=featured,
    )
