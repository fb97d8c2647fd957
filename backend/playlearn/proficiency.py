"""Level rules.

Pure functions over levels plus :class:`ProficiencyTracker`, which applies
them to a :class:`~playlearn.models.UserProgress` row. Callers own the
database session and the per-user lock; nothing here commits.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from .errors import NotFound, ValidationError
from .models import MAX_LEVEL, MIN_LEVEL, Signal, UserProgress

logger = logging.getLogger(__name__)

POLICY_OUTCOME = "outcome"
POLICY_STREAK = "streak"

REASON_STREAK = "streak"
REASON_LEVEL_CLEAR = "level_clear"


def clamp_level(level: int) -> int:
    return max(MIN_LEVEL, min(MAX_LEVEL, int(level)))


def _signal_value(signal) -> Optional[str]:
    if signal is None:
        return None
    return signal.value if isinstance(signal, Signal) else str(signal)


def apply_outcome(current_level: int, is_correct: bool, signal=None) -> int:
    # Wrong answers only cost a level when the learner says it was hard
    if is_correct:
        return clamp_level(current_level + 1)
    if _signal_value(signal) == Signal.HARD.value:
        return clamp_level(current_level - 1)
    return clamp_level(current_level)


def apply_feedback(current_level: int, signal) -> int:
    value = _signal_value(signal)
    if value == Signal.EASY.value:
        return clamp_level(current_level + 1)
    if value == Signal.HARD.value:
        return clamp_level(current_level - 1)
    return clamp_level(current_level)


@dataclass
class ProgressUpdate:
    previous_level: int
    level: int
    streak: int
    promotion_offer: Optional[int] = None

    @property
    def changed(self) -> bool:
        return self.previous_level != self.level


class ProficiencyTracker:
    def __init__(self, policy: str = POLICY_OUTCOME, streak_threshold: int = 5) -> None:
        if policy not in (POLICY_OUTCOME, POLICY_STREAK):
            raise ValueError(f"unknown progression policy: {policy}")
        self.policy = policy
        self.streak_threshold = streak_threshold

    def record_outcome(self, user: UserProgress, is_correct: bool, signal=None) -> ProgressUpdate:
        previous = user.current_level
        if user.pending_promotion_level is not None:
            # Offer must be resolved first; the level is frozen until then
            return ProgressUpdate(previous, previous, user.correct_streak or 0, user.pending_promotion_level)

        if self.policy == POLICY_OUTCOME:
            new_level = apply_outcome(previous, is_correct, signal)
            streak = (user.correct_streak or 0) + 1 if is_correct and new_level == previous else 0
            self._set_level(user, new_level, "graded answer")
            user.correct_streak = streak
            return ProgressUpdate(previous, new_level, streak)

        if is_correct:
            user.correct_streak = (user.correct_streak or 0) + 1
            offer = None
            if user.correct_streak >= self.streak_threshold and previous < MAX_LEVEL:
                offer = self.offer_promotion(user, REASON_STREAK)
            return ProgressUpdate(previous, previous, user.correct_streak, offer)

        new_level = apply_outcome(previous, False, signal)
        user.correct_streak = 0
        self._set_level(user, new_level, "hard signal")
        return ProgressUpdate(previous, new_level, 0)

    def apply_feedback(self, user: UserProgress, signal) -> ProgressUpdate:
        if user.pending_promotion_level is not None:
            raise ValidationError(
                "A promotion offer is pending; accept or decline it first",
                {"offered_level": user.pending_promotion_level},
            )
        previous = user.current_level
        new_level = apply_feedback(previous, signal)
        if new_level != previous:
            user.correct_streak = 0
        self._set_level(user, new_level, f"feedback:{_signal_value(signal)}")
        return ProgressUpdate(previous, new_level, user.correct_streak or 0)

    def offer_promotion(self, user: UserProgress, reason: str) -> Optional[int]:
        if user.pending_promotion_level is not None:
            return user.pending_promotion_level
        target = clamp_level(user.current_level + 1)
        user.pending_promotion_level = target
        user.pending_promotion_reason = reason
        logger.info("Promotion offer for %s: %s -> %s (%s)", user.user_id, user.current_level, target, reason)
        return target

    def resolve_promotion(self, user: UserProgress, accept: bool) -> ProgressUpdate:
        offered = user.pending_promotion_level
        if offered is None:
            raise NotFound("No promotion offer is pending")
        previous = user.current_level
        user.pending_promotion_level = None
        user.pending_promotion_reason = None
        user.correct_streak = 0
        if accept:
            self._set_level(user, offered, "promotion accepted")
        else:
            logger.info("Promotion declined by %s at level %s", user.user_id, previous)
        return ProgressUpdate(previous, user.current_level, 0)

    @staticmethod
    def _set_level(user: UserProgress, level: int, reason: str) -> None:
        if user.current_level != level:
            logger.info("Level change for %s: %s -> %s (%s)", user.user_id, user.current_level, level, reason)
            user.current_level = level
