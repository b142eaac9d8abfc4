from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from dailyprep.core.auth import TokenData, get_current_user
from dailyprep.core.cache import DailySetCache, get_daily_set_cache
from dailyprep.core.clock import Clock, get_clock
from dailyprep.core.database import get_db
from dailyprep.services.attempts import AttemptService
from dailyprep.services.stats import StatsService

router = APIRouter()


class StartRequest(BaseModel):
    test_date: Optional[date] = None


class StartResponse(BaseModel):
    attempt_id: str
    test_date: date


class AnswerRequest(BaseModel):
    attempt_id: str = Field(min_length=1)
    question_id: int
    answer: str = Field(min_length=1, max_length=1)


class AnswerResponse(BaseModel):
    success: bool = True
    is_correct: bool


class SubmitRequest(BaseModel):
    attempt_id: str = Field(min_length=1)


class ReviewOut(BaseModel):
    question_id: int
    question_text: str
    options: Dict[str, str]
    correct_answer: str
    explanation: Optional[str] = None
    subject: str
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    video_type: Optional[str] = None
    user_answer: Optional[str] = None
    is_correct: bool


class SubmitResponse(BaseModel):
    attempt_id: str
    score: int
    total_questions: int
    percentage: int
    test_date: date
    results: List[ReviewOut]


class QuestionOut(BaseModel):
    id: int
    question_text: str
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    subject: str
    difficulty: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    video_type: Optional[str] = None

    model_config = {"from_attributes": True}


class TodayResponse(BaseModel):
    questions: List[QuestionOut]
    attempt_id: Optional[str] = None
    is_completed: bool
    score: Optional[int] = None
    test_date: date


class HistoryOut(BaseModel):
    id: str
    test_date: date
    score: int
    total_questions: int
    percentage: int
    submitted_at: Optional[datetime] = None


class HistoryResponse(BaseModel):
    tests: List[HistoryOut]


def get_attempt_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    cache: Optional[DailySetCache] = Depends(get_daily_set_cache),
) -> AttemptService:
    return AttemptService(db, clock, cache)


@router.post("/start", response_model=StartResponse, status_code=status.HTTP_201_CREATED)
def start_test(response: Response, payload: Optional[StartRequest] = None,
               user: TokenData = Depends(get_current_user),
               service: AttemptService = Depends(get_attempt_service)):
    result = service.start(user.sub, payload.test_date if payload else None)
    if not result.created:
        response.status_code = status.HTTP_200_OK
    return StartResponse(attempt_id=result.attempt_id, test_date=result.test_date)


@router.post("/answer", response_model=AnswerResponse)
def record_answer(payload: AnswerRequest, user: TokenData = Depends(get_current_user),
                  service: AttemptService = Depends(get_attempt_service)):
    is_correct = service.record_answer(payload.attempt_id, user.sub, payload.question_id, payload.answer)
    return AnswerResponse(is_correct=is_correct)


@router.post("/submit", response_model=SubmitResponse)
def submit_test(payload: SubmitRequest, user: TokenData = Depends(get_current_user),
                service: AttemptService = Depends(get_attempt_service)):
    result = service.submit(payload.attempt_id, user.sub)
    return SubmitResponse(
        attempt_id=result.attempt_id,
        score=result.score,
        total_questions=result.total_questions,
        percentage=result.percentage,
        test_date=result.test_date,
        results=[ReviewOut(**vars(item)) for item in result.results],
    )


@router.get("/today", response_model=TodayResponse)
def today(user: TokenData = Depends(get_current_user), service: AttemptService = Depends(get_attempt_service)):
    view = service.today(user.sub)
    return TodayResponse(
        questions=[QuestionOut.model_validate(q) for q in view.questions],
        attempt_id=view.attempt_id,
        is_completed=view.is_completed,
        score=view.score,
        test_date=view.test_date,
    )


@router.get("/history", response_model=HistoryResponse)
def history(user: TokenData = Depends(get_current_user), db: Session = Depends(get_db),
            clock: Clock = Depends(get_clock)):
    items = StatsService(db, clock).history(user.sub)
    return HistoryResponse(tests=[
        HistoryOut(
            id=i.attempt_id, test_date=i.test_date, score=i.score, total_questions=i.total_questions,
            percentage=i.percentage, submitted_at=i.submitted_at,
        )
        for i in items
    ])
