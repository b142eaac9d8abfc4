"""
Diagnostic performance report.

Built from a user's completed attempts in the trailing window (most recent
first) and the per-question outcomes of the latest attempt. The pure
functions here take typed records; ``DiagnosticService`` loads them.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from dailyprep.core.cache import DailySetCache
from dailyprep.core.clock import Clock
from dailyprep.core.config import settings
from dailyprep.core.errors import DataIntegrityError, NoHistoryError
from dailyprep.models.orm import TestAttempt
from dailyprep.services.catalog import QuestionCatalog
from dailyprep.services.daily_set import load_daily_set
from dailyprep.services.ledger import AnswerLedger
from dailyprep.services.scoring import percentage, round_half_up, round_one_decimal

logger = logging.getLogger(__name__)

TREND_WINDOW = 3
TREND_MIN_ATTEMPTS = 4
RECENT_LIMIT = 5
NO_SUBJECT = "None"

BALANCED = "balanced"
TOO_FAST = "too_fast"
TOO_SLOW = "too_slow"


@dataclass(frozen=True)
class AttemptRecord:
    attempt_id: str
    test_date: date
    score: int
    total_questions: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def raw_percentage(self) -> float:
        return self.score / self.total_questions * 100 if self.total_questions else 0.0


@dataclass(frozen=True)
class QuestionOutcome:
    question_id: int
    subject: str
    user_answer: Optional[str]
    is_correct: bool

    @property
    def answered(self) -> bool:
        return self.user_answer is not None


@dataclass(frozen=True)
class SubjectStats:
    subject: str
    correct: int
    incorrect: int
    total: int
    percentage: int
    accuracy: int


@dataclass(frozen=True)
class SpeedAnalysis:
    questions_per_minute: float = 0.0
    avg_time_per_question: int = 0
    accuracy_vs_speed: str = BALANCED


@dataclass(frozen=True)
class Diagnosis:
    issue: str
    recommendation: str


@dataclass(frozen=True)
class RecentPerformance:
    date: date
    score: int
    total: int
    percentage: int


@dataclass(frozen=True)
class DiagnosticReport:
    overall_accuracy: int
    total_attempts: int
    total_questions: int
    total_answered: int
    avg_time_per_question: int
    average_score: int
    trend: int
    subject_breakdown: List[SubjectStats]
    weakest_subject: str
    strongest_subject: str
    speed_analysis: SpeedAnalysis
    concept_vs_speed: Diagnosis
    recent_performance: List[RecentPerformance] = field(default_factory=list)


def dedupe_by_date(attempts: Sequence[AttemptRecord]) -> List[AttemptRecord]:
    """Keep the first attempt seen for each test date, preserving order."""
    seen = set()
    unique = []
    for a in attempts:
        if a.test_date in seen:
            continue
        seen.add(a.test_date)
        unique.append(a)
    return unique


def _mean_percentage(attempts: Sequence[AttemptRecord]) -> float:
    return sum(a.raw_percentage for a in attempts) / len(attempts)


def compute_trend(attempts: Sequence[AttemptRecord]) -> int:
    """Mean percentage of the 3 latest attempts minus that of the 3 before them."""
    if len(attempts) < TREND_MIN_ATTEMPTS:
        return 0
    recent = attempts[:TREND_WINDOW]
    previous = attempts[TREND_WINDOW:TREND_WINDOW * 2]
    return round_half_up(_mean_percentage(recent) - _mean_percentage(previous))


def subject_breakdown(outcomes: Sequence[QuestionOutcome]) -> List[SubjectStats]:
    grouped: Dict[str, List[QuestionOutcome]] = OrderedDict()
    for o in sorted(outcomes, key=lambda o: o.subject):
        grouped.setdefault(o.subject, []).append(o)

    stats = []
    for subject, items in grouped.items():
        correct = sum(1 for o in items if o.answered and o.is_correct)
        incorrect = sum(1 for o in items if o.answered and not o.is_correct)
        answered = correct + incorrect
        stats.append(SubjectStats(
            subject=subject,
            correct=correct,
            incorrect=incorrect,
            total=len(items),
            percentage=percentage(correct, len(items)),
            accuracy=round_half_up(correct / answered * 100) if answered else 0,
        ))
    return stats


def weakest_and_strongest(stats: Sequence[SubjectStats]) -> Tuple[str, str]:
    if not stats:
        return NO_SUBJECT, NO_SUBJECT
    ranked = sorted(stats, key=lambda s: s.percentage)
    return ranked[0].subject, ranked[-1].subject


def analyze_speed(latest: AttemptRecord) -> SpeedAnalysis:
    if latest.started_at is None or latest.completed_at is None or not latest.total_questions:
        return SpeedAnalysis()
    elapsed = (latest.completed_at - latest.started_at).total_seconds()
    if elapsed <= 0:
        return SpeedAnalysis()

    per_minute = round_one_decimal(latest.total_questions / (elapsed / 60))
    avg_time = round_half_up(elapsed / latest.total_questions)
    accuracy = latest.raw_percentage
    if per_minute > 1.5 and accuracy < 70:
        pace = TOO_FAST
    elif per_minute < 0.5 and accuracy < 70:
        pace = TOO_SLOW
    else:
        pace = BALANCED
    return SpeedAnalysis(questions_per_minute=per_minute, avg_time_per_question=avg_time, accuracy_vs_speed=pace)


@dataclass(frozen=True)
class DiagnosisContext:
    accuracy: float
    pace: float
    pace_class: str
    weakest_subject: str


@dataclass(frozen=True)
class DiagnosisRule:
    issue: str
    applies: Callable[[DiagnosisContext], bool]
    template: str

    def recommendation(self, ctx: DiagnosisContext) -> str:
        return self.template.format(accuracy=round_half_up(ctx.accuracy), weakest=ctx.weakest_subject)


# Evaluated top to bottom; the first rule that applies wins.
DIAGNOSIS_RULES: Tuple[DiagnosisRule, ...] = (
    DiagnosisRule(
        "concepts",
        lambda c: c.accuracy < 60,
        "Your accuracy is {accuracy}%. Focus on strengthening fundamentals in {weakest}. "
        "Review basic concepts before attempting more questions.",
    ),
    DiagnosisRule(
        "speed",
        lambda c: 0 < c.pace < 0.7 and c.accuracy < 80,
        "You're taking too long per question. Practice more to improve speed while "
        "maintaining accuracy. Try timed practice sessions.",
    ),
    DiagnosisRule(
        "accuracy",
        lambda c: c.pace_class == TOO_FAST,
        "You're rushing through questions. Slow down and read carefully. "
        "Accuracy matters more than speed.",
    ),
    DiagnosisRule(
        "balanced",
        lambda c: c.accuracy >= 80 and c.pace >= 0.8,
        "Great job! Your performance is well-balanced. Keep practicing to maintain "
        "consistency. Focus on {weakest} to reach 90%+.",
    ),
)

DEFAULT_RULE = DiagnosisRule(
    "accuracy",
    lambda c: True,
    "Work on accuracy in {weakest}. Review incorrect answers and understand why you got them wrong.",
)


def diagnose(ctx: DiagnosisContext, rules: Sequence[DiagnosisRule] = DIAGNOSIS_RULES) -> Diagnosis:
    rule = next((r for r in rules if r.applies(ctx)), DEFAULT_RULE)
    return Diagnosis(issue=rule.issue, recommendation=rule.recommendation(ctx))


def build_report(attempts: Sequence[AttemptRecord], latest_outcomes: Sequence[QuestionOutcome]) -> DiagnosticReport:
    attempts = dedupe_by_date(attempts)
    if not attempts:
        raise NoHistoryError("No test history found. Complete at least one test to see your diagnostic analysis")

    total_score = sum(a.score for a in attempts)
    total_questions = sum(a.total_questions for a in attempts)
    latest = attempts[0]

    breakdown = subject_breakdown(latest_outcomes)
    weakest, strongest = weakest_and_strongest(breakdown)
    speed = analyze_speed(latest)
    diagnosis = diagnose(DiagnosisContext(
        accuracy=latest.raw_percentage,
        pace=speed.questions_per_minute,
        pace_class=speed.accuracy_vs_speed,
        weakest_subject=weakest,
    ))

    return DiagnosticReport(
        overall_accuracy=percentage(total_score, total_questions),
        total_attempts=len(attempts),
        total_questions=latest.total_questions,
        total_answered=sum(1 for o in latest_outcomes if o.answered),
        avg_time_per_question=speed.avg_time_per_question,
        average_score=round_half_up(total_score / len(attempts)),
        trend=compute_trend(attempts),
        subject_breakdown=breakdown,
        weakest_subject=weakest,
        strongest_subject=strongest,
        speed_analysis=speed,
        concept_vs_speed=diagnosis,
        recent_performance=[
            RecentPerformance(
                date=a.test_date, score=a.score, total=a.total_questions,
                percentage=percentage(a.score, a.total_questions),
            )
            for a in attempts[:RECENT_LIMIT]
        ],
    )


class DiagnosticService:
    def __init__(self, db: Session, clock: Clock, cache: Optional[DailySetCache] = None,
                 window_days: int = settings.DIAGNOSTIC_WINDOW_DAYS):
        self.db = db
        self.clock = clock
        self.cache = cache
        self.window_days = window_days

    def recent_attempts(self, user_id: str) -> List[AttemptRecord]:
        since = self.clock.today() - timedelta(days=self.window_days)
        rows = self.db.scalars(
            select(TestAttempt)
            .where(
                TestAttempt.user_id == user_id,
                TestAttempt.completed_at.is_not(None),
                TestAttempt.test_date >= since,
            )
            .order_by(TestAttempt.test_date.desc(), TestAttempt.completed_at.desc())
        ).all()
        return [
            AttemptRecord(
                attempt_id=r.id, test_date=r.test_date, score=r.score or 0,
                total_questions=r.total_questions, started_at=r.started_at, completed_at=r.completed_at,
            )
            for r in rows
        ]

    def outcomes(self, attempt: AttemptRecord) -> List[QuestionOutcome]:
        question_ids = load_daily_set(self.db, attempt.test_date, self.cache)
        if question_ids is None:
            raise DataIntegrityError(
                f"No daily question set stored for {attempt.test_date}", attempt_id=attempt.attempt_id
            )
        answers = AnswerLedger(self.db).answers_for(attempt.attempt_id)
        outcomes = []
        for q in QuestionCatalog(self.db).get_questions(question_ids):
            answer = answers.get(q.id)
            outcomes.append(QuestionOutcome(
                question_id=q.id,
                subject=q.subject,
                user_answer=answer.user_answer if answer else None,
                is_correct=bool(answer and answer.is_correct),
            ))
        return outcomes

    def report(self, user_id: str) -> DiagnosticReport:
        attempts = dedupe_by_date(self.recent_attempts(user_id))
        if not attempts:
            raise NoHistoryError("No test history found. Complete at least one test to see your diagnostic analysis")
        report = build_report(attempts, self.outcomes(attempts[0]))
        logger.info(f"Diagnostic for user {user_id}: {report.total_attempts} attempts, issue={report.concept_vs_speed.issue}")
        return report
