"""
Daily set generation.

Exactly one ordered set of question ids exists per calendar date. The first
caller of the day draws the set; concurrent callers race on the primary key
of ``daily_question_sets`` and everyone re-reads whatever row won.
"""
import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from dailyprep.core.cache import DailySetCache
from dailyprep.core.database import insert_for
from dailyprep.core.errors import DataIntegrityError
from dailyprep.models.orm import DAILY_SET_SIZE, DailyQuestionSet
from dailyprep.services.catalog import QuestionCatalog

logger = logging.getLogger(__name__)


def load_daily_set(db: Session, test_date: date, cache: Optional[DailySetCache] = None) -> Optional[List[int]]:
    """Stored question ids for ``test_date`` or None if no set exists yet."""
    if cache is not None:
        cached = cache.get(test_date)
        if cached is not None:
            return cached
    ids = db.scalar(select(DailyQuestionSet.question_ids).where(DailyQuestionSet.test_date == test_date))
    if ids is None:
        return None
    ids = [int(q) for q in ids]
    if cache is not None:
        cache.set(test_date, ids)
    return ids


def ensure_daily_set(
    db: Session,
    catalog: QuestionCatalog,
    test_date: date,
    now: datetime,
    cache: Optional[DailySetCache] = None,
) -> List[int]:
    existing = load_daily_set(db, test_date, cache)
    if existing is not None:
        return existing

    drawn = catalog.random_question_ids(DAILY_SET_SIZE)
    stmt = insert_for(db, DailyQuestionSet).values(
        test_date=test_date, question_ids=drawn, created_at=now
    ).on_conflict_do_nothing(index_elements=["test_date"])
    db.execute(stmt)
    db.commit()

    stored = load_daily_set(db, test_date, cache)
    if stored is None:
        raise DataIntegrityError(f"Daily set for {test_date} vanished after creation", test_date=str(test_date))
    if stored == drawn:
        logger.info(f"Created daily set for {test_date} with {len(stored)} questions")
    else:
        logger.info(f"Daily set for {test_date} was created concurrently; using the stored one")
    return stored
