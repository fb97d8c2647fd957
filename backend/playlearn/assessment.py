"""Placement flow: a fixed number of graded questions converging on a level.

A placement is ACTIVE until its ``asked_count`` reaches the target, then
FINISHED for good. Only a finished placement writes its working level into
the learner's record.
"""
from __future__ import annotations
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from . import attempts, questions
from .errors import AlreadyCompleted, Exhausted
from .grading import GradeResult, grade
from .models import PLACEMENT_ATTEMPT, PlacementSession, Question, Signal, UserProgress
from .proficiency import apply_outcome, clamp_level

logger = logging.getLogger(__name__)


class AssessmentState(str, Enum):
    ACTIVE = "active"
    FINISHED = "finished"


def state_of(session: PlacementSession) -> AssessmentState:
    return AssessmentState.FINISHED if session.is_done else AssessmentState.ACTIVE


@dataclass
class AssessmentStep:
    session: PlacementSession
    result: GradeResult
    question: Question
    next_question: Optional[Question] = None
    summary: Dict[str, Any] = field(default_factory=dict)

    @property
    def finished(self) -> bool:
        return bool(self.session.is_done)


class AssessmentMachine:
    def __init__(self, target_count: int = 5, rng: Optional[random.Random] = None) -> None:
        self.target_count = target_count
        self.rng = rng

    def start(self, db: Session, user: UserProgress, mode: str) -> tuple[PlacementSession, Question]:
        level = clamp_level(user.current_level)
        first = questions.pick_question(db, mode, level, rng=self.rng)
        if first is None:
            raise Exhausted(f"No active {mode} question at level {level}", {"topic": mode, "level": level})
        session = PlacementSession(
            user_id=user.user_id,
            mode=mode,
            asked_count=0,
            correct_count=0,
            start_level=level,
            current_level=level,
            last_q_id=first.q_id,
            asked_q_ids=[first.q_id],
            is_done=False,
        )
        db.add(session)
        db.flush()
        logger.info("Placement %s started for %s (%s, level %s)", session.placement_id, user.user_id, mode, level)
        return session, first

    def materialize(self, db: Session, placement_id: str, user_id: str, question: Question) -> PlacementSession:
        """Create a placement from the answered question when none was started."""
        level = clamp_level(question.level)
        session = PlacementSession(
            placement_id=placement_id,
            user_id=user_id,
            mode=question.mode,
            asked_count=0,
            correct_count=0,
            start_level=level,
            current_level=level,
            last_q_id=question.q_id,
            asked_q_ids=[question.q_id],
            is_done=False,
        )
        db.add(session)
        db.flush()
        logger.info("Placement %s materialized lazily for %s from question %s", placement_id, user_id, question.q_id)
        return session

    @staticmethod
    def is_idle(session: PlacementSession, expiry: Optional[timedelta], now: Optional[datetime] = None) -> bool:
        if not expiry or session.is_done:
            return False
        now = now or datetime.utcnow()
        return (session.updated_at or session.created_at) < now - expiry

    def submit(
        self,
        db: Session,
        session: PlacementSession,
        user: UserProgress,
        question: Question,
        user_answer: str,
        signal: Optional[str] = None,
    ) -> AssessmentStep:
        if session.is_done:
            raise AlreadyCompleted(
                "This placement is already finished; start a new one to retake it",
                {"placement_id": session.placement_id},
            )

        result = grade(question.choices, question.answer, user_answer)
        asked = (session.asked_count or 0) + 1
        correct = (session.correct_count or 0) + (1 if result.is_correct else 0)
        level = apply_outcome(session.current_level, result.is_correct, signal)
        done = asked >= self.target_count
        seen = list(session.asked_q_ids or [])
        if question.q_id not in seen:
            seen.append(question.q_id)

        next_q: Optional[Question] = None
        if not done:
            # Resolve the follow-up before writing anything so a dry bank
            # leaves the placement untouched
            next_q = questions.pick_question(db, session.mode, level, seen, rng=self.rng)
            if next_q is None:
                raise Exhausted(
                    f"No active {session.mode} question at level {level}",
                    {"topic": session.mode, "level": level},
                )
            if next_q.q_id not in seen:
                seen.append(next_q.q_id)

        attempts.record_attempt(
            db,
            user_id=user.user_id,
            question=question,
            level=question.level,
            result=result,
            signal=signal or Signal.NEUTRAL.value,
            event_type=PLACEMENT_ATTEMPT,
            ref_id=session.placement_id,
        )

        session.asked_count = asked
        session.correct_count = correct
        session.current_level = level
        session.asked_q_ids = seen
        session.last_q_id = next_q.q_id if next_q is not None else question.q_id
        summary: Dict[str, Any] = {}
        if done:
            now = datetime.utcnow()
            session.is_done = True
            session.finished_at = now
            summary = {
                "asked": asked,
                "correct": correct,
                "start_level": session.start_level,
                "final_level": level,
            }
        db.flush()

        if done:
            # Authoritative level goes last
            if user.current_level != level:
                logger.info("Level change for %s: %s -> %s (placement)", user.user_id, user.current_level, level)
            user.current_level = level
            user.placement_done = True
            user.last_mode = session.mode
            user.correct_streak = 0
            user.pending_promotion_level = None
            user.pending_promotion_reason = None
            db.flush()
            logger.info("Placement %s finished for %s: %s/%s correct, level %s",
                        session.placement_id, user.user_id, correct, asked, level)

        return AssessmentStep(session=session, result=result, question=question, next_question=next_q, summary=summary)
