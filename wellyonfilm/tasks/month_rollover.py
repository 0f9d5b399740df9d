import logging
from datetime import datetime
from typing import Optional

from sqlmodel import Session

from ..config import LOG_LEVEL
from ..services.database import engine
from ..services.months import close_elapsed_submission_windows

logger = logging.getLogger(__name__)


def rollover_elapsed_months(session: Session, now: Optional[datetime] = None) -> list[str]:
    """Move months whose submission deadline has passed from open to judging"""
    moved = close_elapsed_submission_windows(session, now)
    if not moved:
        logger.debug("No open month has reached its deadline")
    return moved


def main():
    logging.basicConfig(level=LOG_LEVEL)
    with Session(engine) as session:
        rollover_elapsed_months(session)


if __name__ == "__main__":
    main()
