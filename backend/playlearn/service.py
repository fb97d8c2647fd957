"""Request-scoped operations of the learning backend.

Each public method is one unit of work: it takes the relevant per-key locks,
reads rows FOR UPDATE, applies the rules from :mod:`playlearn.grading`,
:mod:`playlearn.proficiency` and :mod:`playlearn.assessment`, and commits
once. Store failures roll everything back and surface as
:class:`~playlearn.errors.StoreUnavailable`.
"""
from __future__ import annotations
import logging
import random
from contextlib import contextmanager
from datetime import timedelta
from typing import Any, Dict, Iterator, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from . import attempts, questions, review
from .assessment import AssessmentMachine, state_of
from .errors import Exhausted, NotFound, QuizError, StoreUnavailable, ValidationError
from .grading import grade
from .locks import assessment_key, discard_lock, keyed_lock, user_key
from .models import MAX_LEVEL, MIN_LEVEL, PlacementSession, Question, Signal, Topic, UserProgress
from .proficiency import REASON_LEVEL_CLEAR, ProficiencyTracker, clamp_level
from .settings import settings

logger = logging.getLogger(__name__)


def resolve_user_id(raw: Optional[str]) -> str:
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return settings.default_user_id


def parse_topic(topic: Any) -> str:
    value = topic.value if isinstance(topic, Topic) else str(topic or "").strip().lower()
    try:
        return Topic(value).value
    except ValueError:
        raise ValidationError(f"Unknown topic: {topic}", {"allowed": [t.value for t in Topic]})


def parse_signal(signal: Any) -> Optional[str]:
    if signal is None:
        return None
    value = signal.value if isinstance(signal, Signal) else str(signal).strip().lower()
    try:
        return Signal(value).value
    except ValueError:
        raise ValidationError(f"Unknown difficulty signal: {signal}", {"allowed": [s.value for s in Signal]})


def parse_level(level: Any) -> int:
    try:
        value = int(level)
    except (TypeError, ValueError):
        raise ValidationError("level must be an integer")
    if not MIN_LEVEL <= value <= MAX_LEVEL:
        raise ValidationError(f"level must be between {MIN_LEVEL} and {MAX_LEVEL}", {"level": value})
    return value


def parse_answer(user_answer: Any) -> str:
    text = "" if user_answer is None else str(user_answer)
    if not text.strip():
        raise ValidationError("user_answer must not be empty")
    return text


class LearningService:
    def __init__(
        self,
        db: Session,
        *,
        tracker: Optional[ProficiencyTracker] = None,
        machine: Optional[AssessmentMachine] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.db = db
        self.rng = rng
        self.tracker = tracker or ProficiencyTracker(settings.progression_policy, settings.promotion_streak)
        self.machine = machine or AssessmentMachine(settings.assessment_question_count, rng=rng)

    # ---- plumbing ---------------------------------------------------------

    @contextmanager
    def unit_of_work(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except QuizError:
            self.db.rollback()
            raise
        except (OperationalError, DBAPIError) as exc:
            self.db.rollback()
            logger.error("Datastore failure: %s", exc)
            raise StoreUnavailable("The datastore is unavailable; please retry") from exc
        except Exception:
            self.db.rollback()
            raise

    def ensure_user(self, user_id: str, mode: Optional[str] = None, *, for_update: bool = False) -> UserProgress:
        user = self.db.get(UserProgress, user_id, with_for_update=for_update)
        if user is not None:
            return user
        user = UserProgress(
            user_id=user_id,
            current_level=clamp_level(settings.default_level),
            exp_points=0,
            placement_done=False,
            last_mode=mode or settings.default_topic,
            correct_streak=0,
        )
        try:
            with self.db.begin_nested():
                self.db.add(user)
                self.db.flush()
        except IntegrityError:
            # Created concurrently by another worker
            user = self.db.get(UserProgress, user_id, with_for_update=for_update)
            if user is None:
                raise
        else:
            logger.info("Created learner %s at level %s", user_id, user.current_level)
        return user

    def _load_question(self, q_id: str) -> Question:
        q = questions.get_question_by_id(self.db, q_id)
        if q is None:
            raise NotFound(f"Question {q_id} not found", {"q_id": q_id})
        return q

    @staticmethod
    def user_state_payload(user: UserProgress) -> Dict[str, Any]:
        return {
            "user_id": user.user_id,
            "level": user.current_level,
            "topic": user.last_mode,
            "assessment_completed": bool(user.placement_done),
            "streak": user.correct_streak or 0,
            "pending_promotion": (
                {"level": user.pending_promotion_level, "reason": user.pending_promotion_reason}
                if user.pending_promotion_level is not None
                else None
            ),
        }

    # ---- practice ---------------------------------------------------------

    def get_question(self, topic: Any, level: Any, user_id: Optional[str] = None) -> Dict[str, Any]:
        mode = parse_topic(topic)
        level = parse_level(level)
        if not user_id:
            q = questions.pick_question(self.db, mode, level, rng=self.rng)
            if q is None:
                raise questions_exhausted(mode, level)
            return {"question": questions.question_payload(q), "level_cleared": False, "promotion_offer": None}

        with keyed_lock(user_key(user_id)), self.unit_of_work():
            user = self.ensure_user(user_id, mode, for_update=True)
            recent = attempts.recent_question_ids(self.db, user_id, mode, settings.recent_exclude_count)
            q = questions.pick_question(self.db, mode, level, recent, rng=self.rng)
            if q is None:
                raise questions_exhausted(mode, level)
            status = questions.level_status(self.db, user_id, mode, level)
            offer = None
            if status.cleared and level == user.current_level and level < MAX_LEVEL:
                offer = self.tracker.offer_promotion(user, REASON_LEVEL_CLEAR)
            return {
                "question": questions.question_payload(q),
                "level_cleared": status.cleared,
                "promotion_offer": offer,
            }

    def submit_answer(
        self, user_id: str, q_id: str, user_answer: Any, signal: Any = None
    ) -> Dict[str, Any]:
        answer = parse_answer(user_answer)
        sig = parse_signal(signal)
        with keyed_lock(user_key(user_id)), self.unit_of_work():
            q = self._load_question(q_id)
            user = self.ensure_user(user_id, q.mode, for_update=True)
            result = grade(q.choices, q.answer, answer)
            attempts.record_attempt(
                self.db, user_id=user_id, question=q, level=q.level, result=result, signal=sig
            )
            update = self.tracker.record_outcome(user, result.is_correct, sig)
            user.last_mode = q.mode
            self.db.flush()
            return {
                "q_id": q.q_id,
                "verdict": {
                    "is_correct": result.is_correct,
                    "canonical_user_choice": result.canonical_user_choice,
                    "canonical_answer_key": result.canonical_answer_key,
                    "resolved_choice_index": result.resolved_choice_index,
                    "raw_answer": result.raw_answer,
                },
                "explanation": q.explanation,
                "previous_level": update.previous_level,
                "updated_level": update.level,
                "streak": update.streak,
                "promotion_offer": update.promotion_offer,
            }

    def apply_difficulty_feedback(self, user_id: str, signal: Any) -> Dict[str, Any]:
        sig = parse_signal(signal)
        if sig is None:
            raise ValidationError("signal is required")
        with keyed_lock(user_key(user_id)), self.unit_of_work():
            user = self.ensure_user(user_id, for_update=True)
            update = self.tracker.apply_feedback(user, sig)
            return {"signal": sig, "previous_level": update.previous_level, "level": update.level}

    def respond_promotion(self, user_id: str, accept: bool) -> Dict[str, Any]:
        with keyed_lock(user_key(user_id)), self.unit_of_work():
            user = self.ensure_user(user_id, for_update=True)
            reason = user.pending_promotion_reason
            update = self.tracker.resolve_promotion(user, bool(accept))
            return {
                "accepted": bool(accept),
                "reason": reason,
                "previous_level": update.previous_level,
                "level": update.level,
                "topic": user.last_mode,
            }

    def get_user_state(self, user_id: str) -> Dict[str, Any]:
        with keyed_lock(user_key(user_id)), self.unit_of_work():
            user = self.ensure_user(user_id)
            return self.user_state_payload(user)

    def set_topic(self, user_id: str, topic: Any) -> Dict[str, Any]:
        mode = parse_topic(topic)
        with keyed_lock(user_key(user_id)), self.unit_of_work():
            user = self.ensure_user(user_id, mode, for_update=True)
            user.last_mode = mode
            self.db.flush()
            return self.user_state_payload(user)

    def get_level_status(self, user_id: str, topic: Any, level: Any = None) -> Dict[str, Any]:
        mode = parse_topic(topic)
        with self.unit_of_work():
            if level is None:
                level = self.ensure_user(user_id, mode).current_level
            status = questions.level_status(self.db, user_id, mode, parse_level(level))
            return {
                "topic": status.mode,
                "level": status.level,
                "total": status.total,
                "solved_unique": status.solved_unique,
                "cleared": status.cleared,
            }

    # ---- placement --------------------------------------------------------

    def start_assessment(self, user_id: str, topic: Any) -> Dict[str, Any]:
        mode = parse_topic(topic)
        with keyed_lock(user_key(user_id)), self.unit_of_work():
            user = self.ensure_user(user_id, mode, for_update=True)
            session, first = self.machine.start(self.db, user, mode)
            return {
                "session_id": session.placement_id,
                "topic": mode,
                "level": session.current_level,
                "target_count": self.machine.target_count,
                "first_question": questions.question_payload(first),
            }

    def submit_assessment_answer(
        self,
        user_id: str,
        session_id: str,
        q_id: str,
        user_answer: Any,
        signal: Any = None,
    ) -> Dict[str, Any]:
        answer = parse_answer(user_answer)
        sig = parse_signal(signal)
        with keyed_lock(assessment_key(session_id)), self.unit_of_work():
            session = self.db.get(PlacementSession, session_id, with_for_update=True)
            # The placement's owner is authoritative over the caller's id
            owner = session.user_id if session is not None else user_id
            with keyed_lock(user_key(owner)):
                q = self._load_question(q_id)
                if session is not None and self.machine.is_idle(session, self._idle_expiry()):
                    logger.info("Placement %s idle past expiry; restarting it", session_id)
                    self.db.delete(session)
                    self.db.flush()
                    session = None
                if session is None:
                    session = self.machine.materialize(self.db, session_id, owner, q)
                user = self.ensure_user(owner, q.mode, for_update=True)
                step = self.machine.submit(self.db, session, user, q, answer, sig)
                payload: Dict[str, Any] = {
                    "session_id": session.placement_id,
                    "state": state_of(session).value,
                    "verdict": {
                        "is_correct": step.result.is_correct,
                        "canonical_user_choice": step.result.canonical_user_choice,
                        "canonical_answer_key": step.result.canonical_answer_key,
                        "resolved_choice_index": step.result.resolved_choice_index,
                        "raw_answer": step.result.raw_answer,
                    },
                    "explanation": q.explanation,
                    "asked": session.asked_count,
                    "correct": session.correct_count,
                    "working_level": session.current_level,
                }
                if step.finished:
                    payload["final_level"] = session.current_level
                    payload["summary"] = step.summary
                    payload["answers"] = [
                        {"q_id": lg.q_id, "level": lg.level, "is_correct": bool(lg.is_correct)}
                        for lg in attempts.attempts_for_session(self.db, session.placement_id)
                    ]
                else:
                    payload["next_question"] = questions.question_payload(step.next_question)
        if step.finished:
            discard_lock(assessment_key(session_id))
        return payload

    @staticmethod
    def _idle_expiry() -> Optional[timedelta]:
        minutes = settings.assessment_idle_expiry_minutes
        return timedelta(minutes=minutes) if minutes > 0 else None

    # ---- review -----------------------------------------------------------

    def save_item(self, user_id: str, item_type: str, key: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not (key or "").strip():
            raise ValidationError("key must not be empty")
        with self.unit_of_work():
            default_mode = Topic.TOEIC.value if item_type == "vocab" else Topic.GRAMMAR.value
            self.ensure_user(user_id, default_mode)
            item = review.save_item(self.db, user_id, item_type, key.strip(), payload)
            return review.item_payload(item)

    def get_review_items(self, user_id: str, limit: int = 5, item_type: Optional[str] = None) -> Dict[str, Any]:
        with self.unit_of_work():
            self.ensure_user(user_id)
            items = review.review_items(self.db, user_id, limit, item_type)
            return {"items": [review.item_payload(it) for it in items]}

    def get_learning_summary(self, user_id: str, days: int = 7) -> Dict[str, Any]:
        with self.unit_of_work():
            self.ensure_user(user_id)
            return review.learning_summary(self.db, user_id, days)

    def get_today_notes(self, user_id: str, only_wrong: bool = False) -> Dict[str, Any]:
        with self.unit_of_work():
            self.ensure_user(user_id)
            notes = review.today_notes(self.db, user_id, only_wrong=only_wrong)
            return {"only_wrong": only_wrong, "notes": notes}

    def review_wrong_answer(self, user_id: str) -> Dict[str, Any]:
        with self.unit_of_work():
            self.ensure_user(user_id)
            since = review.local_day_start()
            wrong = attempts.attempts_since(self.db, user_id, since, only_wrong=True)
            if not wrong:
                raise NotFound("No wrong answers today to review")
            today_ids = [lg.q_id for lg in attempts.attempts_since(self.db, user_id, since)]
            first = wrong[0]
            q = questions.pick_question(self.db, first.mode, first.level, today_ids, rng=self.rng)
            if q is None:
                raise questions_exhausted(first.mode, first.level)
            return {"based_on": first.q_id, "question": questions.question_payload(q)}


def questions_exhausted(mode: str, level: int) -> Exhausted:
    return Exhausted(f"No active {mode} question at level {level}", {"topic": mode, "level": level})
