from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..services.database import get_session
from ..services.stats import CommunityStats, community_stats

router = APIRouter(
    prefix="/stats",
    tags=["Stats"]
)


@router.get("", response_model=CommunityStats)
def read_stats(session: Session = Depends(get_session)):
    return community_stats(session)
