from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Integer,
    String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from dailyprep.core.database import Base

OPTION_LETTERS = ("A", "B", "C", "D")
DAILY_SET_SIZE = 25


class Question(Base):
    __tablename__ = "questions"
    __table_args__ = (
        Index("idx_questions_subject", "subject"),
        CheckConstraint("correct_answer IN ('A','B','C','D')", name="ck_questions_correct_answer"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    option_a: Mapped[str] = mapped_column(Text, nullable=False)
    option_b: Mapped[str] = mapped_column(Text, nullable=False)
    option_c: Mapped[str] = mapped_column(Text, nullable=False)
    option_d: Mapped[str] = mapped_column(Text, nullable=False)
    correct_answer: Mapped[str] = mapped_column(String(1), nullable=False)
    explanation: Mapped[Optional[str]] = mapped_column(Text)
    subject: Mapped[str] = mapped_column(String(100), nullable=False)
    difficulty: Mapped[Optional[str]] = mapped_column(String(20))
    image_url: Mapped[Optional[str]] = mapped_column(String(500))
    video_url: Mapped[Optional[str]] = mapped_column(String(500))
    video_type: Mapped[Optional[str]] = mapped_column(String(20))

    def options(self) -> dict:
        return {"A": self.option_a, "B": self.option_b, "C": self.option_c, "D": self.option_d}


class DailyQuestionSet(Base):
    __tablename__ = "daily_question_sets"

    test_date: Mapped[date] = mapped_column(Date, primary_key=True)
    question_ids: Mapped[List[int]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class TestAttempt(Base):
    __tablename__ = "test_attempts"
    __test__ = False  # keep pytest from collecting the model
    __table_args__ = (
        UniqueConstraint("user_id", "test_date", name="uq_test_attempt_user_date"),
        Index("idx_ta_test_date", "test_date"),
        Index("idx_ta_user", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    test_date: Mapped[date] = mapped_column(Date, ForeignKey("daily_question_sets.test_date"), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    score: Mapped[Optional[int]] = mapped_column(Integer)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False, default=DAILY_SET_SIZE)

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class UserAnswer(Base):
    __tablename__ = "user_answers"

    attempt_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("test_attempts.id"), primary_key=True
    )
    question_id: Mapped[int] = mapped_column(Integer, ForeignKey("questions.id"), primary_key=True)
    user_answer: Mapped[str] = mapped_column(String(1), nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    answered_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
