from sqlmodel import SQLModel, Session, create_engine

from ..config import DATABASE_URL

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# SQLAlchemy database engine
engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)


def create_db_and_tables():
    # Import every table module so SQLModel.metadata knows about it
    from ..models import comment, judge_action, judge_assignment, month, raffle_winner, rotating_theme, submission, user  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
