from fastapi import APIRouter, Depends
from sqlmodel import Session
from typing import Optional, List

from ..services.auth import get_current_user
from ..services.database import get_session
from ..services import months as month_service
from ..services import raffle as raffle_service
from ..services.users import require_admin
from ..models.raffle_winner import RaffleWinnerPublic
from ..models.user import User

router = APIRouter(
    prefix="/raffle",
    tags=["Raffle"]
)


@router.get("", response_model=List[RaffleWinnerPublic])
def list_winners(session: Session = Depends(get_session)):
    return raffle_service.present_winners(session, raffle_service.list_raffle_winners(session))


@router.get("/{month_year}", response_model=Optional[RaffleWinnerPublic])
def read_winner(month_year: str, session: Session = Depends(get_session)):
    month_service.get_month(session, month_year)
    winner = raffle_service.get_raffle_winner(session, month_year)
    return raffle_service.present_winners(session, [winner])[0] if winner else None


@router.get("/{month_year}/participants", response_model=List[int])
def read_participants(
    month_year: str,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    require_admin(current_user, "view raffle participants")
    month_service.get_month(session, month_year)
    return raffle_service.eligible_participants(session, month_year)


@router.post("/{month_year}", response_model=RaffleWinnerPublic, status_code=201)
def run_raffle(
    month_year: str,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    # A repeat draw answers 409 with the stored winner attached
    winner = raffle_service.run_raffle(session, month_year, current_user)
    return raffle_service.present_winners(session, [winner])[0]
