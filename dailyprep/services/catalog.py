from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from dailyprep.core.errors import InsufficientCatalogError
from dailyprep.models.orm import Question


class QuestionCatalog:
    """Read-only access to the question catalog."""

    def __init__(self, db: Session):
        self.db = db

    def count(self) -> int:
        return self.db.scalar(select(func.count()).select_from(Question)) or 0

    def get_question(self, question_id: int) -> Optional[Question]:
        return self.db.get(Question, question_id)

    def random_question_ids(self, n: int) -> List[int]:
        available = self.count()
        if available < n:
            raise InsufficientCatalogError(
                f"Catalog holds {available} questions, {n} are needed for a daily set",
                available=available, required=n,
            )
        return list(self.db.scalars(select(Question.id).order_by(func.random()).limit(n)))

    def get_questions(self, question_ids: Sequence[int]) -> List[Question]:
        """Questions for the given ids, in the order the ids were given."""
        if not question_ids:
            return []
        rows = self.db.scalars(select(Question).where(Question.id.in_(list(question_ids)))).all()
        by_id: Dict[int, Question] = {q.id: q for q in rows}
        return [by_id[qid] for qid in question_ids if qid in by_id]
