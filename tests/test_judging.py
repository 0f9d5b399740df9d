from datetime import timedelta

import pytest
from sqlmodel import select

from conftest import MONTH, THEME
from wellyonfilm.errors import (
    DuplicateAssignmentError,
    ForbiddenError,
    JudgePanelFullError,
    JudgingClosedError,
    NotFoundError,
    ValidationError,
)
from wellyonfilm.models.judge_action import JudgeAction, JudgeActionType
from wellyonfilm.models.month import MonthStatus
from wellyonfilm.models.submission import CategoryType
from wellyonfilm.services import judging as judging_service
from wellyonfilm.services import months as month_service
from wellyonfilm.services import submissions as submission_service
from wellyonfilm.services.judging import ModerationFilter, QueueFilter
from wellyonfilm.timeutil import utcnow


@pytest.fixture
def judges(session, admin, make_user, open_month):
    panel = [make_user(display_name=f"Judge {i}") for i in range(1, 4)]
    for judge in panel:
        judging_service.assign_judge(session, admin, MONTH, judge.user_id)
    return panel


def test_panel_is_capped(session, admin, make_user, judges):
    assert [j.user_id for j in judging_service.list_judges(session, MONTH)] == [j.user_id for j in judges]
    with pytest.raises(JudgePanelFullError):
        judging_service.assign_judge(session, admin, MONTH, make_user().user_id)


def test_duplicate_assignment(session, admin, photographer, open_month):
    judging_service.assign_judge(session, admin, MONTH, photographer.user_id)
    with pytest.raises(DuplicateAssignmentError):
        judging_service.assign_judge(session, admin, MONTH, photographer.user_id)


def test_only_admins_assign(session, make_user, open_month):
    a, b = make_user(), make_user()
    with pytest.raises(ForbiddenError):
        judging_service.assign_judge(session, a, MONTH, b.user_id)


def test_unassign(session, admin, judges):
    judging_service.unassign_judge(session, admin, MONTH, judges[0].user_id)
    assert not judging_service.is_judge_for_month(session, judges[0].user_id, MONTH)
    with pytest.raises(NotFoundError):
        judging_service.unassign_judge(session, admin, MONTH, judges[0].user_id)


def test_actions_only_while_judging(session, admin, photographer, judges, add_submission):
    submission = add_submission(photographer)
    with pytest.raises(JudgingClosedError):
        judging_service.record_judge_action(session, submission.submission_id, judges[0], JudgeActionType.SHORTLIST)

    month_service.transition_month(session, admin, MONTH, MonthStatus.JUDGING)
    judging_service.record_judge_action(session, submission.submission_id, judges[0], JudgeActionType.SHORTLIST)

    month_service.transition_month(session, admin, MONTH, MonthStatus.CLOSED)
    with pytest.raises(JudgingClosedError):
        judging_service.record_judge_action(session, submission.submission_id, judges[1], JudgeActionType.PASS)


def test_non_judges_cannot_act(session, admin, make_user, judges, add_submission):
    outsider = make_user()
    submission = add_submission(outsider)
    month_service.transition_month(session, admin, MONTH, MonthStatus.JUDGING)
    with pytest.raises(ForbiddenError):
        judging_service.record_judge_action(session, submission.submission_id, outsider, JudgeActionType.SHORTLIST)
    with pytest.raises(ForbiddenError):
        judging_service.get_judging_status(session, submission.submission_id, outsider)


def test_revotes_keep_one_action(session, admin, photographer, judges, add_submission):
    submission = add_submission(photographer)
    month_service.transition_month(session, admin, MONTH, MonthStatus.JUDGING)

    judge = judges[0]
    for action in (JudgeActionType.PASS, JudgeActionType.SHORTLIST, JudgeActionType.PASS, JudgeActionType.SHORTLIST):
        judging_service.record_judge_action(session, submission.submission_id, judge, action)
    judging_service.record_judge_action(
        session, submission.submission_id, judge, JudgeActionType.FLAG, flag_reason="Digital, not film"
    )

    actions = session.exec(
        select(JudgeAction).where(
            (JudgeAction.submission_id == submission.submission_id) & (JudgeAction.judge_user_id == judge.user_id)
        )
    ).all()
    assert len(actions) == 1
    assert actions[0].action == JudgeActionType.FLAG
    assert actions[0].flag_reason == "Digital, not film"

    status = judging_service.get_judging_status(session, submission.submission_id, admin)
    assert (status.shortlist_count, status.flag_count, status.pass_count) == (0, 1, 0)

    judging_service.record_judge_action(session, submission.submission_id, judge, JudgeActionType.SHORTLIST)
    status = judging_service.get_judging_status(session, submission.submission_id, judge)
    assert (status.shortlist_count, status.flag_count) == (1, 0)
    assert status.actions[0].flag_reason is None


def test_flag_requires_reason(session, admin, photographer, judges, add_submission):
    submission = add_submission(photographer)
    month_service.transition_month(session, admin, MONTH, MonthStatus.JUDGING)
    with pytest.raises(ValidationError):
        judging_service.record_judge_action(session, submission.submission_id, judges[0], JudgeActionType.FLAG, "  ")


def test_cannot_judge_inactive_submission(session, admin, photographer, judges, add_submission):
    submission = add_submission(photographer)
    submission_service.remove_submission(session, submission.submission_id, admin, "Duplicate")
    month_service.transition_month(session, admin, MONTH, MonthStatus.JUDGING)
    with pytest.raises(NotFoundError):
        judging_service.record_judge_action(session, submission.submission_id, judges[0], JudgeActionType.SHORTLIST)


def test_queue_filters(session, admin, photographer, judges, add_submission):
    first = add_submission(photographer, category_type=CategoryType.FIXED, category="art")
    second = add_submission(photographer)
    third = add_submission(photographer, category_type=CategoryType.ROTATING)
    month_service.transition_month(session, admin, MONTH, MonthStatus.JUDGING)

    judge, other = judges[0], judges[1]
    judging_service.record_judge_action(session, first.submission_id, judge, JudgeActionType.SHORTLIST)
    judging_service.record_judge_action(session, second.submission_id, other, JudgeActionType.FLAG, "Blurry scan")

    def ids(queue_filter, category_type=None):
        return [
            item.submission.submission_id
            for item in judging_service.judging_queue(session, MONTH, judge, queue_filter, category_type)
        ]

    assert ids(QueueFilter.ALL) == [first.submission_id, second.submission_id, third.submission_id]
    assert ids(QueueFilter.PENDING) == [second.submission_id, third.submission_id]
    assert ids(QueueFilter.REVIEWED) == [first.submission_id]
    assert ids(QueueFilter.SHORTLISTED) == [first.submission_id]
    assert ids(QueueFilter.FLAGGED) == [second.submission_id]
    assert ids(QueueFilter.ALL, CategoryType.ROTATING) == [third.submission_id]

    item = judging_service.judging_queue(session, MONTH, judge)[0]
    assert item.my_action == JudgeActionType.SHORTLIST
    assert item.status.shortlist_count == 1

    assert judging_service.shortlisted_submission_ids(session, MONTH) == [first.submission_id]
    assert judging_service.flagged_submission_ids(session, MONTH) == [second.submission_id]


def test_single_flag_reaches_moderation(session, admin, make_user, judges, add_submission):
    photographer = make_user()
    submission = add_submission(photographer)
    month_service.transition_month(session, admin, MONTH, MonthStatus.JUDGING)

    judging_service.record_judge_action(session, submission.submission_id, judges[0], JudgeActionType.SHORTLIST)
    judging_service.record_judge_action(session, submission.submission_id, judges[1], JudgeActionType.SHORTLIST)
    judging_service.record_judge_action(
        session, submission.submission_id, judges[2], JudgeActionType.FLAG, "Possible copyright issue"
    )

    queue = judging_service.moderation_queue(session, admin, MONTH)
    assert [item.submission.submission_id for item in queue] == [submission.submission_id]
    assert queue[0].flag_count == 1
    assert queue[0].flag_reasons == ["Possible copyright issue"]
    assert queue[0].awaiting_review

    with pytest.raises(ForbiddenError):
        judging_service.moderation_queue(session, judges[0], MONTH)


def test_approval_clears_until_flagged_again(session, admin, photographer, judges, add_submission):
    submission = add_submission(photographer)
    month_service.transition_month(session, admin, MONTH, MonthStatus.JUDGING)
    judging_service.record_judge_action(session, submission.submission_id, judges[0], JudgeActionType.FLAG, "Too dark")

    approved = judging_service.approve_submission(session, admin, submission.submission_id)
    assert judging_service.moderation_queue(session, admin, MONTH) == []
    all_items = judging_service.moderation_queue(session, admin, MONTH, ModerationFilter.ALL)
    assert not all_items[0].awaiting_review

    # Keep the approval strictly older than the next flag
    approved.moderation_resolved_at = approved.moderation_resolved_at - timedelta(seconds=1)
    session.add(approved)
    session.commit()

    judging_service.record_judge_action(session, submission.submission_id, judges[1], JudgeActionType.FLAG, "Watermark")
    queue = judging_service.moderation_queue(session, admin, MONTH)
    assert queue[0].flag_count == 2
    assert queue[0].awaiting_review


def test_removed_submissions_leave_flag_queue(session, admin, photographer, judges, add_submission):
    submission = add_submission(photographer)
    month_service.transition_month(session, admin, MONTH, MonthStatus.JUDGING)
    judging_service.record_judge_action(session, submission.submission_id, judges[0], JudgeActionType.FLAG, "AI image")
    submission_service.remove_submission(session, submission.submission_id, admin, "AI image")

    assert judging_service.moderation_queue(session, admin, MONTH) == []
    removed = judging_service.moderation_queue(session, admin, MONTH, ModerationFilter.REMOVED)
    assert [item.submission.submission_id for item in removed] == [submission.submission_id]
    assert removed[0].submission.removed_reason == "AI image"


@pytest.fixture
def elapsed_month(session, admin, make_user):
    """A month still marked open although its submission window has passed."""
    now = utcnow()
    month_service.create_month(session, admin, MONTH, THEME, now - timedelta(days=14), now - timedelta(minutes=1))
    panel = [make_user(display_name=f"Judge {i}") for i in range(1, 4)]
    for judge in panel:
        judging_service.assign_judge(session, admin, MONTH, judge.user_id)
    assert month_service.get_month(session, MONTH).status == MonthStatus.OPEN
    return panel


def test_judging_starts_once_window_has_passed(session, photographer, elapsed_month, add_submission):
    submission = add_submission(photographer)
    judge = elapsed_month[0]

    action = judging_service.record_judge_action(session, submission.submission_id, judge, JudgeActionType.SHORTLIST)
    assert action.action == JudgeActionType.SHORTLIST
    assert month_service.get_month(session, MONTH).status == MonthStatus.JUDGING


def test_queue_after_window_has_passed(session, photographer, elapsed_month, add_submission):
    submission = add_submission(photographer)
    queue = judging_service.judging_queue(session, MONTH, elapsed_month[0])
    assert [item.submission.submission_id for item in queue] == [submission.submission_id]
    assert month_service.get_month(session, MONTH).status == MonthStatus.JUDGING


def test_finalize_after_window_has_passed(session, admin, photographer, elapsed_month, add_submission):
    submission = add_submission(photographer)
    month = judging_service.finalize_month(session, admin, MONTH)
    assert month.status == MonthStatus.CLOSED
    assert [s.submission_id for s in submission_service.get_featured_submissions(session, MONTH)] == [
        submission.submission_id
    ]


def test_close_after_window_has_passed(session, admin, elapsed_month):
    month = month_service.transition_month(session, admin, MONTH, MonthStatus.CLOSED)
    assert month.status == MonthStatus.CLOSED
    assert month.finalized_at is not None
