from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from dailyprep.core.auth import TokenData, get_current_user
from dailyprep.core.clock import Clock, get_clock
from dailyprep.core.database import get_db
from dailyprep.services.identity import IdentityDirectory, get_identity_directory
from dailyprep.services.leaderboard import LeaderboardService

router = APIRouter()


class LeaderboardEntryOut(BaseModel):
    rank: int
    email: str
    name: str
    score: int
    total_questions: int
    percentage: float
    is_current_user: bool
    submitted_at: Optional[datetime] = None


class LeaderboardResponse(BaseModel):
    date: date
    entries: List[LeaderboardEntryOut]


@router.get("", response_model=LeaderboardResponse)
def leaderboard(test_date: Optional[date] = Query(None, alias="date"), user: TokenData = Depends(get_current_user),
                db: Session = Depends(get_db), clock: Clock = Depends(get_clock),
                directory: IdentityDirectory = Depends(get_identity_directory)):
    board = LeaderboardService(db, clock, directory).for_date(user.sub, test_date)
    return LeaderboardResponse(
        date=board.date,
        entries=[LeaderboardEntryOut(**vars(e)) for e in board.entries],
    )
