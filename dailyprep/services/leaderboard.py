import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from dailyprep.core.clock import Clock
from dailyprep.core.config import settings
from dailyprep.core.errors import ValidationError
from dailyprep.models.orm import TestAttempt
from dailyprep.services.identity import IdentityDirectory
from dailyprep.services.scoring import round_one_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    email: str
    name: str
    score: int
    total_questions: int
    percentage: float
    is_current_user: bool
    submitted_at: Optional[datetime]


@dataclass(frozen=True)
class Leaderboard:
    date: date
    entries: List[LeaderboardEntry]


class LeaderboardService:
    def __init__(self, db: Session, clock: Clock, directory: IdentityDirectory,
                 size: int = settings.LEADERBOARD_SIZE):
        self.db = db
        self.clock = clock
        self.directory = directory
        self.size = size

    def top_attempts(self, test_date: date) -> List[TestAttempt]:
        """Completed attempts ranked by score, earliest completion first on ties."""
        return list(self.db.scalars(
            select(TestAttempt)
            .where(TestAttempt.test_date == test_date, TestAttempt.completed_at.is_not(None))
            .order_by(TestAttempt.score.desc(), TestAttempt.completed_at.asc(), TestAttempt.id.asc())
            .limit(self.size)
        ))

    def for_date(self, user_id: str, test_date: Optional[date] = None) -> Leaderboard:
        test_date = test_date or self.clock.yesterday()
        if test_date >= self.clock.today():
            raise ValidationError(f"Leaderboards are only available for past dates, got {test_date}")

        entries = []
        for rank, attempt in enumerate(self.top_attempts(test_date), start=1):
            identity = self.directory.resolve(attempt.user_id)
            score = attempt.score or 0
            entries.append(LeaderboardEntry(
                rank=rank,
                email=identity.email,
                name=identity.name,
                score=score,
                total_questions=attempt.total_questions,
                percentage=round_one_decimal(score / attempt.total_questions * 100),
                is_current_user=attempt.user_id == user_id,
                submitted_at=attempt.completed_at,
            ))
        logger.info(f"Leaderboard for {test_date}: {len(entries)} entries")
        return Leaderboard(date=test_date, entries=entries)
