import pytest

from conftest import MONTH
from wellyonfilm.constants import COMMENT_MAX_LENGTH
from wellyonfilm.errors import ForbiddenError, NotFoundError, ValidationError
from wellyonfilm.models.month import MonthStatus
from wellyonfilm.services import comments as comment_service
from wellyonfilm.services import months as month_service
from wellyonfilm.services import submissions as submission_service
from wellyonfilm.services.stats import community_stats


def test_add_and_list_comments(session, make_user, open_month, add_submission):
    author, reader = make_user(), make_user()
    submission = add_submission(author)

    first = comment_service.add_comment(session, submission.submission_id, reader, "  Lovely grain  ")
    comment_service.add_comment(session, submission.submission_id, author, "Thanks!")
    assert first.body == "Lovely grain"

    comments = comment_service.present_comments(session, comment_service.list_comments(session, submission.submission_id))
    assert [c.body for c in comments] == ["Lovely grain", "Thanks!"]
    assert comments[0].user.user_id == reader.user_id
    assert comment_service.count_comments(session, submission.submission_id) == 2


@pytest.mark.parametrize("body", ["", "   ", "x" * (COMMENT_MAX_LENGTH + 1)])
def test_comment_length(session, photographer, open_month, add_submission, body):
    submission = add_submission(photographer)
    with pytest.raises(ValidationError):
        comment_service.add_comment(session, submission.submission_id, photographer, body)


def test_no_comments_on_inactive_submissions(session, photographer, open_month, add_submission):
    submission = add_submission(photographer)
    submission_service.delete_submission(session, submission.submission_id, photographer)
    with pytest.raises(NotFoundError):
        comment_service.add_comment(session, submission.submission_id, photographer, "Hello")


def test_flagged_comment_review(session, admin, make_user, open_month, add_submission):
    author, troll = make_user(), make_user()
    submission = add_submission(author)
    kept = comment_service.add_comment(session, submission.submission_id, troll, "Nice")
    dropped = comment_service.add_comment(session, submission.submission_id, troll, "Spam link")

    comment_service.flag_comment(session, kept.comment_id, author)
    comment_service.flag_comment(session, dropped.comment_id, author)
    assert comment_service.list_comments(session, submission.submission_id) == []
    with pytest.raises(NotFoundError):
        comment_service.flag_comment(session, kept.comment_id, author)

    with pytest.raises(ForbiddenError):
        comment_service.list_flagged_comments(session, author)
    flagged = comment_service.list_flagged_comments(session, admin)
    assert [c.comment_id for c in flagged] == [kept.comment_id, dropped.comment_id]
    assert comment_service.present_comments(session, flagged, admin=True)[0].is_flagged

    restored = comment_service.resolve_comment(session, admin, kept.comment_id, keep=True)
    assert not restored.is_flagged
    assert comment_service.resolve_comment(session, admin, dropped.comment_id, keep=False) is None

    assert [c.comment_id for c in comment_service.list_comments(session, submission.submission_id)] == [kept.comment_id]
    with pytest.raises(NotFoundError):
        comment_service.resolve_comment(session, admin, dropped.comment_id, keep=True)


def test_community_stats(session, admin, make_user, open_month, add_submission):
    a, b = make_user(), make_user()
    add_submission(a)
    add_submission(a)
    removed = add_submission(b)
    submission_service.remove_submission(session, removed.submission_id, admin, "Duplicate")

    stats = community_stats(session)
    assert stats.total_submissions == 2
    assert stats.unique_photographers == 1
    assert stats.months_published == 0
    assert stats.featured_photos == 0

    month_service.transition_month(session, admin, MONTH, MonthStatus.JUDGING)
    month_service.transition_month(session, admin, MONTH, MonthStatus.CLOSED)
    stats = community_stats(session)
    assert stats.months_published == 1
    assert stats.featured_photos == 2
