"""Question bank access: random picks with novelty fallback, level-clear counts."""
from __future__ import annotations
import random
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import distinct, func, select
from sqlalchemy.orm import Session

from .models import QUIZ_ATTEMPT, Question, StudyLog


@dataclass
class LevelStatus:
    mode: str
    level: int
    total: int
    solved_unique: int

    @property
    def cleared(self) -> bool:
        if self.total <= 0:
            return True
        return self.solved_unique >= self.total


def _active_ids(db: Session, mode: str, level: int) -> list[str]:
    stmt = (
        select(Question.q_id)
        .where(Question.mode == mode, Question.level == level, Question.is_active.is_(True))
        .order_by(Question.q_id)
    )
    return list(db.execute(stmt).scalars())


def pick_question(
    db: Session,
    mode: str,
    level: int,
    exclude_ids: Optional[Iterable[str]] = None,
    *,
    rng: Optional[random.Random] = None,
) -> Optional[Question]:
    """Uniform pick among active questions; repeats beat returning nothing."""
    pool = _active_ids(db, mode, level)
    if not pool:
        return None
    excluded = set(exclude_ids or ())
    fresh = [qid for qid in pool if qid not in excluded]
    candidates = fresh or pool
    chooser = rng or random
    return db.get(Question, chooser.choice(candidates))


def get_question_by_id(db: Session, q_id: str) -> Optional[Question]:
    return db.get(Question, q_id)


def level_status(db: Session, user_id: str, mode: str, level: int) -> LevelStatus:
    total = db.execute(
        select(func.count())
        .select_from(Question)
        .where(Question.mode == mode, Question.level == level, Question.is_active.is_(True))
    ).scalar_one()
    solved = db.execute(
        select(func.count(distinct(StudyLog.q_id))).where(
            StudyLog.user_id == user_id,
            StudyLog.mode == mode,
            StudyLog.level == level,
            StudyLog.event_type == QUIZ_ATTEMPT,
        )
    ).scalar_one()
    return LevelStatus(mode=mode, level=level, total=int(total or 0), solved_unique=int(solved or 0))


def question_payload(q: Question) -> dict:
    """Public view of a question; the answer key stays server-side."""
    return {
        "q_id": q.q_id,
        "topic": q.mode,
        "level": q.level,
        "prompt": q.prompt,
        "choices": list(q.choices or []),
        "media": q.media,
    }
