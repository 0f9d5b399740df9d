import pytest

from wellyonfilm.constants import DELETED_USER_NAME
from wellyonfilm.errors import ForbiddenError, NotFoundError, ValidationError
from wellyonfilm.models.user import UserRole, UserUpdate
from wellyonfilm.services import users as user_service


def test_create_user_normalizes_email(session):
    user = user_service.create_user(session, "  Kiri@Example.COM ", "Kiri")
    assert user.email == "kiri@example.com"
    assert user.role == UserRole.PHOTOGRAPHER
    assert user_service.find_by_email(session, "KIRI@example.com").user_id == user.user_id


def test_duplicate_email_is_rejected(session):
    user_service.create_user(session, "kiri@example.com", "Kiri")
    with pytest.raises(ValidationError):
        user_service.create_user(session, "kiri@example.com", "Someone Else")


@pytest.mark.parametrize("email", ["", "no-at-sign", "@example.com", "kiri@"])
def test_invalid_email(session, email):
    with pytest.raises(ValidationError):
        user_service.create_user(session, email, "Kiri")


def test_soft_delete_frees_email_and_anonymizes(session, photographer):
    email = photographer.email
    user_service.soft_delete_user(session, photographer, photographer.user_id)

    with pytest.raises(NotFoundError):
        user_service.get_user(session, photographer.user_id)
    summaries = user_service.summaries_for(session, [photographer.user_id])
    assert summaries[photographer.user_id].display_name == DELETED_USER_NAME
    assert summaries[photographer.user_id].avatar_url is None

    again = user_service.create_user(session, email, "Back Again")
    assert again.user_id != photographer.user_id


def test_only_admins_delete_other_accounts(session, make_user):
    a, b = make_user(), make_user()
    with pytest.raises(ForbiddenError):
        user_service.soft_delete_user(session, a, b.user_id)


def test_set_role_requires_admin(session, admin, make_user):
    a, b = make_user(), make_user()
    with pytest.raises(ForbiddenError):
        user_service.set_role(session, a, b.user_id, UserRole.ADMIN)

    promoted = user_service.set_role(session, admin, b.user_id, UserRole.ADMIN)
    assert promoted.is_admin
    assert [u.user_id for u in user_service.list_users(session, UserRole.ADMIN)] == [admin.user_id, b.user_id]


def test_update_profile(session, photographer):
    updated = user_service.update_profile(session, photographer, UserUpdate(bio=" Shoots on Portra "))
    assert updated.bio == "Shoots on Portra"
    assert updated.display_name == photographer.display_name


def test_profile_counts_active_submissions(session, photographer, open_month, add_submission):
    add_submission(photographer)
    removed = add_submission(photographer)
    removed.is_removed = True
    session.add(removed)
    session.commit()

    profile = user_service.get_user_profile(session, photographer.user_id)
    assert profile.submission_count == 1
    assert profile.featured_count == 0
