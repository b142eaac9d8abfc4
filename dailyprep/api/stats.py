from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from dailyprep.core.auth import TokenData, get_current_user
from dailyprep.core.clock import Clock, get_clock
from dailyprep.core.database import get_db
from dailyprep.services.stats import StatsService

router = APIRouter()


class PlatformStatsOut(BaseModel):
    total_users: int
    total_tests_taken: int
    tests_today: int
    average_platform_score: int


class PersonalStatsOut(BaseModel):
    current_streak: int
    longest_streak: int
    total_tests_completed: int
    average_score: int
    best_score: int
    last_test_date: Optional[date] = None


class StatsResponse(BaseModel):
    platform: PlatformStatsOut
    personal: PersonalStatsOut


class RawTestOut(BaseModel):
    date: date
    score: int
    completed_at: Optional[str] = None


class StreakDebugResponse(BaseModel):
    user_id: str
    today: date
    total_tests: int
    unique_dates: List[date]
    last_test_date: Optional[date] = None
    days_since_last_test: Optional[int] = None
    raw_tests: List[RawTestOut]


@router.get("", response_model=StatsResponse)
def platform_stats(user: TokenData = Depends(get_current_user), db: Session = Depends(get_db),
                   clock: Clock = Depends(get_clock)):
    service = StatsService(db, clock)
    p = service.platform()
    me = service.personal(user.sub)
    return StatsResponse(platform=PlatformStatsOut(**vars(p)), personal=PersonalStatsOut(**vars(me)))


@router.get("/streak-debug", response_model=StreakDebugResponse)
def streak_debug(user: TokenData = Depends(get_current_user), db: Session = Depends(get_db),
                 clock: Clock = Depends(get_clock)):
    d = StatsService(db, clock).streak_debug(user.sub)
    return StreakDebugResponse(
        user_id=d.user_id,
        today=d.today,
        total_tests=d.total_tests,
        unique_dates=d.unique_dates,
        last_test_date=d.last_test_date,
        days_since_last_test=d.days_since_last_test,
        raw_tests=[
            RawTestOut(
                date=t.test_date, score=t.score,
                completed_at=t.submitted_at.isoformat() if t.submitted_at else None,
            )
            for t in d.raw_tests
        ],
    )
