"""Append-only attempt log (``study_logs``)."""
from __future__ import annotations
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .grading import GradeResult
from .models import QUIZ_ATTEMPT, Question, Signal, StudyLog

logger = logging.getLogger(__name__)


def record_attempt(
    db: Session,
    *,
    user_id: str,
    question: Question,
    level: int,
    result: GradeResult,
    signal: Optional[str] = None,
    event_type: str = QUIZ_ATTEMPT,
    ref_id: Optional[str] = None,
) -> Optional[StudyLog]:
    """Insert one attempt inside a savepoint.

    A failed insert is logged and dropped: the learner still gets the verdict,
    and the surrounding unit of work carries on.
    """
    row = StudyLog(
        user_id=user_id,
        q_id=question.q_id,
        event_type=event_type,
        ref_id=ref_id or question.q_id,
        mode=question.mode,
        level=level,
        is_correct=result.is_correct,
        user_answer=result.canonical_user_choice or result.raw_answer,
        raw_answer=result.raw_answer,
        signal=signal or Signal.NEUTRAL.value,
        created_at=datetime.utcnow(),
    )
    try:
        with db.begin_nested():
            db.add(row)
            db.flush()
    except SQLAlchemyError:
        logger.warning("Attempt log write failed for user=%s q_id=%s", user_id, question.q_id, exc_info=True)
        return None
    return row


def recent_question_ids(db: Session, user_id: str, mode: str, limit: int) -> List[str]:
    if limit <= 0:
        return []
    stmt = (
        select(StudyLog.q_id)
        .where(StudyLog.user_id == user_id, StudyLog.mode == mode)
        .order_by(StudyLog.created_at.desc(), StudyLog.id.desc())
        .limit(limit)
    )
    return [str(x) for x in db.execute(stmt).scalars()]


def attempts_since(
    db: Session,
    user_id: str,
    since: datetime,
    *,
    only_wrong: bool = False,
    event_type: Optional[str] = QUIZ_ATTEMPT,
) -> List[StudyLog]:
    stmt = select(StudyLog).where(StudyLog.user_id == user_id, StudyLog.created_at >= since)
    if event_type is not None:
        stmt = stmt.where(StudyLog.event_type == event_type)
    if only_wrong:
        stmt = stmt.where(StudyLog.is_correct.is_(False))
    stmt = stmt.order_by(StudyLog.created_at.asc(), StudyLog.id.asc())
    return list(db.execute(stmt).scalars())


def attempts_for_session(db: Session, placement_id: str) -> List[StudyLog]:
    stmt = select(StudyLog).where(StudyLog.ref_id == placement_id).order_by(StudyLog.id.asc())
    return list(db.execute(stmt).scalars())
