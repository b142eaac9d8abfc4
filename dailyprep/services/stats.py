from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import Float, cast, distinct, func, select
from sqlalchemy.orm import Session

from dailyprep.core.clock import Clock
from dailyprep.core.config import settings
from dailyprep.models.orm import TestAttempt
from dailyprep.services import streaks
from dailyprep.services.scoring import percentage, round_half_up


@dataclass(frozen=True)
class PlatformStats:
    total_users: int
    total_tests_taken: int
    tests_today: int
    average_platform_score: int


@dataclass(frozen=True)
class PersonalStats:
    current_streak: int
    longest_streak: int
    total_tests_completed: int
    average_score: int
    best_score: int
    last_test_date: Optional[date]


@dataclass(frozen=True)
class HistoryItem:
    attempt_id: str
    test_date: date
    score: int
    total_questions: int
    percentage: int
    submitted_at: Optional[datetime]


@dataclass(frozen=True)
class StreakDebug:
    user_id: str
    today: date
    total_tests: int
    unique_dates: List[date]
    last_test_date: Optional[date]
    days_since_last_test: Optional[int]
    raw_tests: List[HistoryItem]


class StatsService:
    def __init__(self, db: Session, clock: Clock):
        self.db = db
        self.clock = clock

    def completed_attempts(self, user_id: str, limit: Optional[int] = None) -> List[TestAttempt]:
        stmt = (
            select(TestAttempt)
            .where(TestAttempt.user_id == user_id, TestAttempt.completed_at.is_not(None))
            .order_by(TestAttempt.test_date.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.db.scalars(stmt))

    def platform(self) -> PlatformStats:
        completed = TestAttempt.completed_at.is_not(None)
        total_users = self.db.scalar(select(func.count(distinct(TestAttempt.user_id)))) or 0
        total_tests = self.db.scalar(select(func.count()).select_from(TestAttempt).where(completed)) or 0
        tests_today = self.db.scalar(
            select(func.count()).select_from(TestAttempt).where(completed, TestAttempt.test_date == self.clock.today())
        ) or 0
        avg = self.db.scalar(
            select(func.avg(cast(TestAttempt.score, Float) / TestAttempt.total_questions * 100)).where(completed)
        )
        return PlatformStats(
            total_users=total_users,
            total_tests_taken=total_tests,
            tests_today=tests_today,
            average_platform_score=round_half_up(float(avg or 0)),
        )

    def personal(self, user_id: str) -> PersonalStats:
        attempts = self.completed_attempts(user_id)
        summary = streaks.summarize((a.test_date for a in attempts), self.clock.today())
        total_score = sum(a.score or 0 for a in attempts)
        total_questions = sum(a.total_questions for a in attempts)
        return PersonalStats(
            current_streak=summary.current,
            longest_streak=summary.longest,
            total_tests_completed=len(attempts),
            average_score=percentage(total_score, total_questions),
            best_score=max((percentage(a.score or 0, a.total_questions) for a in attempts), default=0),
            last_test_date=attempts[0].test_date if attempts else None,
        )

    def history(self, user_id: str, limit: int = settings.HISTORY_LIMIT) -> List[HistoryItem]:
        return [_history_item(a) for a in self.completed_attempts(user_id, limit)]

    def streak_debug(self, user_id: str) -> StreakDebug:
        attempts = self.completed_attempts(user_id)
        today = self.clock.today()
        dates = [a.test_date for a in attempts]
        last, days = streaks.days_since(dates, today)
        return StreakDebug(
            user_id=user_id,
            today=today,
            total_tests=len(attempts),
            unique_dates=streaks.distinct_dates(dates),
            last_test_date=last,
            days_since_last_test=days,
            raw_tests=[_history_item(a) for a in attempts],
        )


def _history_item(a: TestAttempt) -> HistoryItem:
    score = a.score or 0
    return HistoryItem(
        attempt_id=a.id,
        test_date=a.test_date,
        score=score,
        total_questions=a.total_questions,
        percentage=percentage(score, a.total_questions),
        submitted_at=a.completed_at,
    )
