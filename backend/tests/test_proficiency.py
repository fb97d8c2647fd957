import pytest

from playlearn.errors import NotFound, ValidationError
from playlearn.models import MAX_LEVEL, MIN_LEVEL, UserProgress
from playlearn.proficiency import (
    POLICY_OUTCOME,
    POLICY_STREAK,
    REASON_STREAK,
    ProficiencyTracker,
    apply_feedback,
    apply_outcome,
    clamp_level,
)


def make_user(level=4, streak=0):
    return UserProgress(
        user_id="learner",
        current_level=level,
        correct_streak=streak,
        pending_promotion_level=None,
        pending_promotion_reason=None,
    )


@pytest.mark.parametrize("level", range(-3, 15))
@pytest.mark.parametrize("is_correct", [True, False])
@pytest.mark.parametrize("signal", [None, "hard", "easy", "neutral"])
def test_outcome_stays_in_range(level, is_correct, signal):
    assert MIN_LEVEL <= apply_outcome(level, is_correct, signal) <= MAX_LEVEL


def test_wrong_answer_without_hard_keeps_level():
    assert apply_outcome(5, False) == 5
    assert apply_outcome(5, False, "neutral") == 5
    assert apply_outcome(5, False, "easy") == 5


def test_wrong_then_hard_from_level_five():
    level = apply_outcome(5, False)
    assert level == 5
    level = apply_outcome(level, False, "hard")
    assert level == 4


def test_outcome_sequence():
    level = 5
    level = apply_outcome(level, True)
    level = apply_outcome(level, False, "neutral")
    level = apply_outcome(level, False, "hard")
    assert level == 5


def test_bounds_are_sticky():
    assert apply_outcome(MAX_LEVEL, True) == MAX_LEVEL
    assert apply_outcome(MIN_LEVEL, False, "hard") == MIN_LEVEL
    assert clamp_level(0) == MIN_LEVEL


def test_feedback_moves_by_one():
    assert apply_feedback(4, "easy") == 5
    assert apply_feedback(4, "hard") == 3
    assert apply_feedback(4, "neutral") == 4
    level = 8
    for _ in range(5):
        level = apply_feedback(level, "easy")
    assert level == MAX_LEVEL


def test_unknown_policy_rejected():
    with pytest.raises(ValueError):
        ProficiencyTracker("random")


def test_outcome_policy_moves_level():
    tracker = ProficiencyTracker(POLICY_OUTCOME)
    user = make_user(4)
    update = tracker.record_outcome(user, True)
    assert (update.previous_level, update.level) == (4, 5)
    assert user.current_level == 5
    tracker.record_outcome(user, False, "hard")
    assert user.current_level == 4


def test_streak_policy_offers_after_threshold():
    tracker = ProficiencyTracker(POLICY_STREAK, streak_threshold=5)
    user = make_user(4)
    for _ in range(4):
        update = tracker.record_outcome(user, True)
        assert update.promotion_offer is None
    update = tracker.record_outcome(user, True)
    assert update.promotion_offer == 5
    assert user.current_level == 4
    assert user.pending_promotion_reason == REASON_STREAK

    accepted = tracker.resolve_promotion(user, True)
    assert accepted.level == 5
    assert user.current_level == 5
    assert user.correct_streak == 0
    assert user.pending_promotion_level is None


def test_streak_policy_wrong_resets_streak():
    tracker = ProficiencyTracker(POLICY_STREAK, streak_threshold=3)
    user = make_user(4)
    tracker.record_outcome(user, True)
    tracker.record_outcome(user, True)
    tracker.record_outcome(user, False)
    assert user.correct_streak == 0
    assert user.current_level == 4
    tracker.record_outcome(user, False, "hard")
    assert user.current_level == 3


def test_declined_offer_keeps_level():
    tracker = ProficiencyTracker(POLICY_STREAK, streak_threshold=1)
    user = make_user(6)
    tracker.record_outcome(user, True)
    update = tracker.resolve_promotion(user, False)
    assert update.level == 6
    assert user.pending_promotion_level is None


def test_pending_offer_freezes_level():
    tracker = ProficiencyTracker(POLICY_OUTCOME)
    user = make_user(4)
    tracker.offer_promotion(user, "level_clear")
    update = tracker.record_outcome(user, True)
    assert update.level == 4
    assert update.promotion_offer == 5
    with pytest.raises(ValidationError):
        tracker.apply_feedback(user, "easy")


def test_resolve_without_offer():
    with pytest.raises(NotFound):
        ProficiencyTracker().resolve_promotion(make_user(), True)


def test_no_offer_at_max_level():
    tracker = ProficiencyTracker(POLICY_STREAK, streak_threshold=1)
    user = make_user(MAX_LEVEL)
    assert tracker.record_outcome(user, True).promotion_offer is None
