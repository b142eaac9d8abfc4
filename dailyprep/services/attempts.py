"""
Attempt lifecycle: NotStarted -> InProgress -> Completed.

An attempt is identified by (user, test date). ``start`` is idempotent,
answers may be rewritten freely until completion, and the first ``submit``
scores the attempt exactly once; later submits replay the stored result.
"""
import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from dailyprep.core.cache import DailySetCache
from dailyprep.core.clock import Clock
from dailyprep.core.database import insert_for
from dailyprep.core.errors import DataIntegrityError, NotFoundError, StateConflictError, ValidationError
from dailyprep.models.orm import DAILY_SET_SIZE, Question, TestAttempt
from dailyprep.services.catalog import QuestionCatalog
from dailyprep.services.daily_set import ensure_daily_set, load_daily_set
from dailyprep.services.ledger import AnswerLedger, normalize_option
from dailyprep.services.scoring import percentage

logger = logging.getLogger(__name__)


class AttemptState(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def attempt_state(attempt: Optional[TestAttempt]) -> AttemptState:
    if attempt is None:
        return AttemptState.NOT_STARTED
    if attempt.completed_at is None:
        return AttemptState.IN_PROGRESS
    return AttemptState.COMPLETED


@dataclass(frozen=True)
class StartResult:
    attempt_id: str
    test_date: date
    created: bool


@dataclass(frozen=True)
class ReviewItem:
    question_id: int
    question_text: str
    options: Dict[str, str]
    correct_answer: str
    explanation: Optional[str]
    subject: str
    image_url: Optional[str]
    video_url: Optional[str]
    video_type: Optional[str]
    user_answer: Optional[str]
    is_correct: bool


@dataclass(frozen=True)
class SubmitResult:
    attempt_id: str
    score: int
    total_questions: int
    percentage: int
    test_date: date
    results: List[ReviewItem] = field(default_factory=list)


@dataclass(frozen=True)
class TodayView:
    test_date: date
    questions: List[Question]
    attempt_id: Optional[str]
    is_completed: bool
    score: Optional[int]


class AttemptService:
    def __init__(self, db: Session, clock: Clock, cache: Optional[DailySetCache] = None):
        self.db = db
        self.clock = clock
        self.cache = cache
        self.catalog = QuestionCatalog(db)
        self.ledger = AnswerLedger(db)

    def _find(self, user_id: str, test_date: date) -> Optional[TestAttempt]:
        return self.db.scalar(
            select(TestAttempt).where(TestAttempt.user_id == user_id, TestAttempt.test_date == test_date)
        )

    def _owned(self, attempt_id: str, user_id: str) -> TestAttempt:
        # Row lock serializes answer writes against scoring where the dialect supports it.
        attempt = self.db.scalar(
            select(TestAttempt)
            .where(TestAttempt.id == attempt_id, TestAttempt.user_id == user_id)
            .with_for_update()
        )
        if attempt is None:
            raise NotFoundError("Attempt not found", attempt_id=attempt_id)
        return attempt

    def _question_ids(self, attempt: TestAttempt) -> List[int]:
        ids = load_daily_set(self.db, attempt.test_date, self.cache)
        if ids is None:
            raise DataIntegrityError(
                f"No daily question set stored for {attempt.test_date}",
                attempt_id=attempt.id, test_date=str(attempt.test_date),
            )
        return ids

    def start(self, user_id: str, test_date: Optional[date] = None) -> StartResult:
        test_date = test_date or self.clock.today()
        if test_date > self.clock.today():
            raise ValidationError(f"Cannot start a test for a future date ({test_date})")

        existing = self._find(user_id, test_date)
        if existing is not None:
            return StartResult(attempt_id=existing.id, test_date=test_date, created=False)

        ensure_daily_set(self.db, self.catalog, test_date, self.clock.now(), self.cache)

        new_id = str(uuid.uuid4())
        stmt = insert_for(self.db, TestAttempt).values(
            id=new_id,
            user_id=user_id,
            test_date=test_date,
            started_at=self.clock.now(),
            total_questions=DAILY_SET_SIZE,
        ).on_conflict_do_nothing(index_elements=["user_id", "test_date"])
        self.db.execute(stmt)
        self.db.commit()

        attempt = self._find(user_id, test_date)
        if attempt is None:
            raise DataIntegrityError(f"Attempt for {test_date} missing after creation", user_id=user_id)
        created = attempt.id == new_id
        if created:
            logger.info(f"Started attempt {attempt.id} for user {user_id} on {test_date}")
        return StartResult(attempt_id=attempt.id, test_date=test_date, created=created)

    def record_answer(self, attempt_id: str, user_id: str, question_id: int, option: str) -> bool:
        letter = normalize_option(option)
        attempt = self._owned(attempt_id, user_id)
        if attempt.is_completed:
            raise StateConflictError("Test already completed", attempt_id=attempt_id)
        if question_id not in self._question_ids(attempt):
            raise NotFoundError("Question is not part of this test", question_id=question_id)
        question = self.catalog.get_question(question_id)
        if question is None:
            raise NotFoundError("Question not found", question_id=question_id)

        is_correct = letter == question.correct_answer
        self.ledger.record(attempt.id, question_id, letter, is_correct, self.clock.now())
        self.db.commit()
        return is_correct

    def submit(self, attempt_id: str, user_id: str) -> SubmitResult:
        attempt = self._owned(attempt_id, user_id)
        question_ids = self._question_ids(attempt)

        if not attempt.is_completed:
            score = self.ledger.correct_count(attempt.id)
            result = self.db.execute(
                update(TestAttempt)
                .where(TestAttempt.id == attempt.id, TestAttempt.completed_at.is_(None))
                .values(completed_at=self.clock.now(), score=score)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            if result.rowcount:
                logger.info(f"Attempt {attempt.id} submitted with score {score}/{attempt.total_questions}")
            else:
                logger.info(f"Attempt {attempt.id} was submitted concurrently; replaying stored result")
            self.db.refresh(attempt)

        score = attempt.score or 0
        total = attempt.total_questions
        return SubmitResult(
            attempt_id=attempt.id,
            score=score,
            total_questions=total,
            percentage=percentage(score, total),
            test_date=attempt.test_date,
            results=self._review(attempt.id, question_ids),
        )

    def _review(self, attempt_id: str, question_ids: List[int]) -> List[ReviewItem]:
        answers = self.ledger.answers_for(attempt_id)
        items = []
        for q in self.catalog.get_questions(question_ids):
            answer = answers.get(q.id)
            items.append(ReviewItem(
                question_id=q.id,
                question_text=q.question_text,
                options=q.options(),
                correct_answer=q.correct_answer,
                explanation=q.explanation,
                subject=q.subject,
                image_url=q.image_url,
                video_url=q.video_url,
                video_type=q.video_type,
                user_answer=answer.user_answer if answer else None,
                is_correct=bool(answer and answer.is_correct),
            ))
        return items

    def today(self, user_id: str) -> TodayView:
        test_date = self.clock.today()
        question_ids = ensure_daily_set(self.db, self.catalog, test_date, self.clock.now(), self.cache)
        attempt = self._find(user_id, test_date)
        return TodayView(
            test_date=test_date,
            questions=self.catalog.get_questions(question_ids),
            attempt_id=attempt.id if attempt else None,
            is_completed=attempt_state(attempt) is AttemptState.COMPLETED,
            score=attempt.score if attempt else None,
        )
