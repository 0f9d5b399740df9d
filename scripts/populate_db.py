import sys
import os

# Add the project root directory to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlmodel import Session, select
from datetime import timedelta
import random

from wellyonfilm.constants import FIXED_CATEGORY_IDS
from wellyonfilm.models.judge_assignment import JudgeAssignment
from wellyonfilm.models.month import Month, MonthStatus
from wellyonfilm.models.rotating_theme import RotatingTheme
from wellyonfilm.models.submission import CategoryType, Submission
from wellyonfilm.models.user import User, UserRole
from wellyonfilm.config import S3_URL
from wellyonfilm.services.database import create_db_and_tables, engine
from wellyonfilm.timeutil import utcnow

# Test data
test_users = [
    {"display_name": "Aroha Ngata", "email": "aroha@example.com", "role": UserRole.ADMIN},
    {"display_name": "Tom Hale", "email": "tom@example.com"},
    {"display_name": "Mere Rangi", "email": "mere@example.com"},
    {"display_name": "Sam Chen", "email": "sam@example.com"},
    {"display_name": "Lucy Park", "email": "lucy@example.com"},
    {"display_name": "Jack Moana", "email": "jack@example.com"},
]

cameras = ["Pentax K1000", "Canon AE-1", "Nikon FM2", "Olympus OM-1", "Mamiya 7"]
film_stocks = ["Portra 400", "HP5+", "Ektar 100", "Tri-X 400", "Gold 200"]
locations = ["Cuba Street", "Oriental Bay", "Mt Victoria", "Island Bay", "Kelburn"]

rotating_themes = [
    {"theme_id": "golden-hour", "name": "Golden Hour", "description": "The last light of the day on Wellington's hills and harbour"},
    {"theme_id": "southerly", "name": "Southerly", "description": "Weather rolling in off Cook Strait"},
    {"theme_id": "night-shift", "name": "Night Shift", "description": "The city after dark"},
]


def create_users(session: Session):
    users = []
    for user_data in test_users:
        if session.exec(select(User).where(User.active_email == user_data["email"])).first():
            continue
        user = User(
            email=user_data["email"],
            active_email=user_data["email"],
            display_name=user_data["display_name"],
            role=user_data.get("role", UserRole.PHOTOGRAPHER),
        )
        users.append(user)

    session.add_all(users)
    session.commit()
    return list(session.exec(select(User)).all())


def create_themes(session: Session):
    for theme_data in rotating_themes:
        if not session.get(RotatingTheme, theme_data["theme_id"]):
            session.add(RotatingTheme(**theme_data))
    session.commit()


def create_month(session: Session) -> Month:
    now = utcnow()
    month_year = now.strftime("%Y-%m")
    month = session.exec(select(Month).where(Month.month_year == month_year)).first()
    if month:
        return month

    month = Month(
        month_year=month_year,
        rotating_category_id="golden-hour",
        rotating_category_name="Golden Hour",
        rotating_category_description="The last light of the day on Wellington's hills and harbour",
        submissions_open=now - timedelta(days=5),
        submissions_close=now + timedelta(days=20),
        status=MonthStatus.OPEN,
        open_slot=True,
    )
    session.add(month)
    session.commit()
    session.refresh(month)
    return month


def create_submissions(session: Session, users: list[User], month: Month):
    photographers = [u for u in users if u.role == UserRole.PHOTOGRAPHER]
    for user in photographers:
        # Between one and three photos each, the monthly limit
        for i in range(random.randint(1, 3)):
            category_type = random.choice(list(CategoryType))
            category = None
            if category_type == CategoryType.FIXED:
                category = random.choice(FIXED_CATEGORY_IDS)
            elif category_type == CategoryType.ROTATING:
                category = month.rotating_category_id

            folder = f"submissions/{month.month_year}"
            session.add(
                Submission(
                    user_id=user.user_id,
                    month_year=month.month_year,
                    photo_url=f"{S3_URL}/{folder}/{user.user_id}-seed-{i}.jpg",
                    thumbnail_url=f"{S3_URL}/{folder}/thumbnails/{user.user_id}-seed-{i}.jpg",
                    category_type=category_type,
                    category=category,
                    camera=random.choice(cameras),
                    film_stock=random.choice(film_stocks),
                    location=random.choice(locations),
                    tags=["wellington"],
                )
            )
    session.commit()


def assign_judges(session: Session, users: list[User], month: Month):
    for user in [u for u in users if u.role == UserRole.PHOTOGRAPHER][:2]:
        session.add(JudgeAssignment(user_id=user.user_id, month_year=month.month_year))
    session.commit()


def main():
    create_db_and_tables()

    with Session(engine) as session:
        # Create users
        users = create_users(session)
        print(f"Seeded {len(users)} users")

        create_themes(session)
        month = create_month(session)
        print(f"Using month {month.month_year}")

        if not session.exec(select(Submission).where(Submission.month_year == month.month_year)).first():
            create_submissions(session, users, month)
            assign_judges(session, users, month)
            print("Created submissions and judge assignments")

if __name__ == "__main__":
    main()
