from dataclasses import asdict
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from dailyprep.core.auth import TokenData, get_current_user
from dailyprep.core.cache import DailySetCache, get_daily_set_cache
from dailyprep.core.clock import Clock, get_clock
from dailyprep.core.database import get_db
from dailyprep.services.diagnostics import DiagnosticService

router = APIRouter()


class SubjectStatsOut(BaseModel):
    subject: str
    correct: int
    incorrect: int
    total: int
    percentage: int
    accuracy: int


class SpeedAnalysisOut(BaseModel):
    questions_per_minute: float
    avg_time_per_question: int
    accuracy_vs_speed: str


class DiagnosisOut(BaseModel):
    issue: str
    recommendation: str


class RecentPerformanceOut(BaseModel):
    date: date
    score: int
    total: int
    percentage: int


class DiagnosticResponse(BaseModel):
    overall_accuracy: int
    total_attempts: int
    total_questions: int
    total_answered: int
    avg_time_per_question: int
    average_score: int
    trend: int
    subject_breakdown: List[SubjectStatsOut]
    weakest_subject: str
    strongest_subject: str
    speed_analysis: SpeedAnalysisOut
    concept_vs_speed: DiagnosisOut
    recent_performance: List[RecentPerformanceOut]


@router.get("", response_model=DiagnosticResponse)
def diagnostic(user: TokenData = Depends(get_current_user), db: Session = Depends(get_db),
               clock: Clock = Depends(get_clock),
               cache: Optional[DailySetCache] = Depends(get_daily_set_cache)):
    report = DiagnosticService(db, clock, cache).report(user.sub)
    return DiagnosticResponse(**asdict(report))
