import itertools
import os
from datetime import timedelta
from io import BytesIO

# Must be set before the app modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from wellyonfilm.main import app
from wellyonfilm.models.month import MonthStatus, RotatingCategory
from wellyonfilm.models.submission import CategoryType, Submission
from wellyonfilm.models.user import UserRole
from wellyonfilm.services.auth import create_tokens
from wellyonfilm.services.database import get_session
from wellyonfilm.services.months import create_month, transition_month
from wellyonfilm.services.s3 import StoredPhoto, get_storage
from wellyonfilm.services.users import create_user
from wellyonfilm.timeutil import utcnow

MONTH = "2025-01"
THEME = RotatingCategory(id="golden-hour", name="Golden Hour", description="Last light of the day")


class FakeStorage:
    """Records uploads and deletions instead of talking to S3."""

    def __init__(self):
        self.stored = []
        self.deleted = []

    def store_submission(self, file_content, content_type, month_year, user_id):
        n = len(self.stored) + 1
        photo = StoredPhoto(
            photo_url=f"https://bucket.test/submissions/{month_year}/{user_id}-{n}.jpg",
            thumbnail_url=f"https://bucket.test/submissions/{month_year}/thumbnails/{user_id}-{n}.jpg",
        )
        self.stored.append(photo)
        return photo

    def delete_photo(self, photo):
        self.deleted.append(photo)


def make_image(width=1600, height=1000, image_format="JPEG") -> bytes:
    output = BytesIO()
    Image.new("RGB", (width, height), (180, 120, 60)).save(output, format=image_format)
    return output.getvalue()


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="storage")
def storage_fixture():
    return FakeStorage()


@pytest.fixture(scope="session")
def jpeg():
    return make_image()


@pytest.fixture(name="client")
def client_fixture(session, storage):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session):
    counter = itertools.count(1)

    def _make(role=UserRole.PHOTOGRAPHER, display_name=None):
        n = next(counter)
        return create_user(session, f"user{n}@example.com", display_name or f"Photographer {n}", role)

    return _make


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, "Admin")


@pytest.fixture
def photographer(make_user):
    return make_user()


@pytest.fixture
def open_month(session, admin):
    now = utcnow()
    return create_month(session, admin, MONTH, THEME, now - timedelta(days=1), now + timedelta(days=14))


@pytest.fixture
def judging_month(session, admin, open_month):
    return transition_month(session, admin, MONTH, MonthStatus.JUDGING)


@pytest.fixture
def add_submission(session):
    """Insert a submission row directly, skipping upload and window checks."""
    counter = itertools.count(1)

    def _add(user, month_year=MONTH, category_type=CategoryType.OPEN, category=None, created_at=None):
        n = next(counter)
        if category_type == CategoryType.ROTATING and category is None:
            category = THEME.id
        submission = Submission(
            user_id=user.user_id,
            month_year=month_year,
            photo_url=f"https://bucket.test/{n}.jpg",
            thumbnail_url=f"https://bucket.test/thumbnails/{n}.jpg",
            category_type=category_type,
            category=category,
            created_at=created_at or utcnow(),
        )
        session.add(submission)
        session.commit()
        session.refresh(submission)
        return submission

    return _add


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_tokens(user.user_id)['access_token']}"}

    return _headers
