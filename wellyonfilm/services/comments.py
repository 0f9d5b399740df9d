import logging
from typing import Optional

from sqlalchemy import func
from sqlmodel import Session, select

from ..constants import COMMENT_MAX_LENGTH
from ..errors import NotFoundError, ValidationError
from ..models.comment import Comment, CommentAdmin, CommentPublic
from ..models.user import User
from ..timeutil import as_utc
from .submissions import get_active_submission
from .users import require_admin, summaries_for

logger = logging.getLogger(__name__)


def add_comment(session: Session, submission_id: int, user: User, body: str) -> Comment:
    get_active_submission(session, submission_id)
    body = (body or "").strip()
    if not body:
        raise ValidationError("Comment cannot be empty")
    if len(body) > COMMENT_MAX_LENGTH:
        raise ValidationError(f"Comments are limited to {COMMENT_MAX_LENGTH} characters")

    comment = Comment(submission_id=submission_id, user_id=user.user_id, body=body)
    session.add(comment)
    session.commit()
    session.refresh(comment)
    return comment


def list_comments(session: Session, submission_id: int) -> list[Comment]:
    get_active_submission(session, submission_id)
    return list(
        session.exec(
            select(Comment)
            .where((Comment.submission_id == submission_id) & (Comment.is_flagged == False))  # noqa: E712
            .order_by(Comment.created_at, Comment.comment_id)
        ).all()
    )


def count_comments(session: Session, submission_id: int) -> int:
    return session.exec(
        select(func.count())
        .select_from(Comment)
        .where((Comment.submission_id == submission_id) & (Comment.is_flagged == False))  # noqa: E712
    ).one()


def flag_comment(session: Session, comment_id: int, user: User) -> Comment:
    comment = session.get(Comment, comment_id)
    if not comment or comment.is_flagged:
        raise NotFoundError("Comment not found")
    comment.is_flagged = True
    comment.flagged_by = user.user_id
    session.add(comment)
    session.commit()
    session.refresh(comment)
    logger.info("User %s flagged comment %s", user.user_id, comment_id)
    return comment


def list_flagged_comments(session: Session, moderator: User) -> list[Comment]:
    require_admin(moderator, "review flagged comments")
    return list(
        session.exec(
            select(Comment).where(Comment.is_flagged == True).order_by(Comment.created_at)  # noqa: E712
        ).all()
    )


def resolve_comment(session: Session, moderator: User, comment_id: int, keep: bool) -> Optional[Comment]:
    """Restore a flagged comment, or delete it for good (returns None)."""
    require_admin(moderator, "review flagged comments")
    comment = session.get(Comment, comment_id)
    if not comment:
        raise NotFoundError("Comment not found")
    if keep:
        comment.is_flagged = False
        comment.flagged_by = None
        session.add(comment)
    else:
        session.delete(comment)
    session.commit()
    logger.info("Moderator %s %s comment %s", moderator.user_id, "restored" if keep else "deleted", comment_id)
    if not keep:
        return None
    session.refresh(comment)
    return comment


def present_comments(session: Session, comments: list[Comment], admin: bool = False) -> list[CommentPublic]:
    summaries = summaries_for(session, (c.user_id for c in comments))
    model = CommentAdmin if admin else CommentPublic
    results = []
    for c in comments:
        data = dict(
            comment_id=c.comment_id,
            submission_id=c.submission_id,
            user=summaries[c.user_id],
            body=c.body,
            created_at=as_utc(c.created_at),
        )
        if admin:
            data["is_flagged"] = c.is_flagged
        results.append(model(**data))
    return results
