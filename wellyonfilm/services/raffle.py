import logging
import random
import secrets
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..errors import AlreadyDrawnError, MonthNotClosedError, NoParticipantsError
from ..models.month import MonthStatus
from ..models.raffle_winner import RaffleWinner, RaffleWinnerPublic
from ..models.submission import Submission, active_clause
from ..models.user import User
from ..timeutil import as_utc
from .months import get_month
from .users import require_admin, summaries_for

logger = logging.getLogger(__name__)


def get_raffle_winner(session: Session, month_year: str) -> Optional[RaffleWinner]:
    return session.exec(select(RaffleWinner).where(RaffleWinner.month_year == month_year)).first()


def list_raffle_winners(session: Session) -> list[RaffleWinner]:
    return list(session.exec(select(RaffleWinner).order_by(RaffleWinner.month_year.desc())).all())


def eligible_participants(session: Session, month_year: str) -> list[int]:
    """Distinct live accounts with at least one active submission, in id order."""
    return sorted(
        session.exec(
            select(Submission.user_id)
            .join(User, User.user_id == Submission.user_id)
            .where((Submission.month_year == month_year) & active_clause() & User.deleted_at.is_(None))
            .distinct()
        ).all()
    )


def draw_winner(participants: list[int], rng: Optional[random.Random] = None) -> int:
    """Uniform pick over the participants; pass a seeded Random for reproducible draws."""
    return (rng or secrets.SystemRandom()).choice(participants)


def run_raffle(session: Session, month_year: str, caller: User, rng: Optional[random.Random] = None) -> RaffleWinner:
    require_admin(caller, "run the raffle")
    month = get_month(session, month_year)

    existing = get_raffle_winner(session, month_year)
    if existing:
        raise AlreadyDrawnError(f"The raffle for {month_year} has already been drawn", existing)
    if month.status != MonthStatus.CLOSED:
        raise MonthNotClosedError(f"The raffle for {month_year} opens once the month is closed")

    participants = eligible_participants(session, month_year)
    if not participants:
        raise NoParticipantsError(f"Nobody has an eligible submission in {month_year}")

    winner = RaffleWinner(user_id=draw_winner(participants, rng), month_year=month_year)
    session.add(winner)
    try:
        session.commit()
    except IntegrityError:
        # Another admin's draw was stored first; that one stands
        session.rollback()
        raise AlreadyDrawnError(
            f"The raffle for {month_year} has already been drawn", get_raffle_winner(session, month_year)
        )
    session.refresh(winner)
    logger.info("Raffle for %s drawn from %d participants: user %s", month_year, len(participants), winner.user_id)
    return winner


def present_winners(session: Session, winners: list[RaffleWinner]) -> list[RaffleWinnerPublic]:
    summaries = summaries_for(session, (w.user_id for w in winners))
    return [
        RaffleWinnerPublic(
            winner_id=w.winner_id,
            month_year=w.month_year,
            user=summaries[w.user_id],
            created_at=as_utc(w.created_at),
        )
        for w in winners
    ]
