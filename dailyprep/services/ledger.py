from datetime import datetime
from typing import Dict

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from dailyprep.core.database import insert_for
from dailyprep.core.errors import ValidationError
from dailyprep.models.orm import OPTION_LETTERS, UserAnswer


def normalize_option(option) -> str:
    letter = option.strip().upper() if isinstance(option, str) else ""
    if letter not in OPTION_LETTERS:
        raise ValidationError(f"Invalid option {option!r}; expected one of {', '.join(OPTION_LETTERS)}")
    return letter


class AnswerLedger:
    """Per-attempt answers, one row per (attempt, question), last write wins."""

    def __init__(self, db: Session):
        self.db = db

    def record(self, attempt_id: str, question_id: int, option: str, is_correct: bool, now: datetime) -> None:
        stmt = insert_for(self.db, UserAnswer).values(
            attempt_id=attempt_id,
            question_id=question_id,
            user_answer=option,
            is_correct=is_correct,
            answered_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["attempt_id", "question_id"],
            set_={
                "user_answer": stmt.excluded.user_answer,
                "is_correct": stmt.excluded.is_correct,
                "answered_at": stmt.excluded.answered_at,
            },
        )
        self.db.execute(stmt)

    def correct_count(self, attempt_id: str) -> int:
        return self.db.scalar(
            select(func.count()).select_from(UserAnswer).where(
                UserAnswer.attempt_id == attempt_id, UserAnswer.is_correct.is_(True)
            )
        ) or 0

    def answers_for(self, attempt_id: str) -> Dict[int, UserAnswer]:
        rows = self.db.scalars(select(UserAnswer).where(UserAnswer.attempt_id == attempt_id)).all()
        return {a.question_id: a for a in rows}
