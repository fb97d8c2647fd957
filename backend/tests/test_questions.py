from playlearn import questions
from playlearn.attempts import record_attempt
from playlearn.grading import grade


def test_pick_ignores_inactive(bank):
    seen = {questions.pick_question(bank, "toeic", 3).q_id for _ in range(40)}
    assert seen == {"toeic-3-0", "toeic-3-1", "toeic-3-2"}


def test_pick_honors_exclusions(bank):
    for _ in range(10):
        q = questions.pick_question(bank, "toeic", 3, ["toeic-3-0", "toeic-3-1"])
        assert q.q_id == "toeic-3-2"


def test_pick_falls_back_when_everything_is_excluded(bank):
    q = questions.pick_question(bank, "toeic", 3, ["toeic-3-0", "toeic-3-1", "toeic-3-2"])
    assert q is not None
    assert q.level == 3


def test_pick_empty_pool(bank):
    assert questions.pick_question(bank, "travel", 3) is None
    assert questions.pick_question(bank, "grammar", 4) is None


def test_payload_hides_answer(bank):
    payload = questions.question_payload(questions.get_question_by_id(bank, "toeic-3-0"))
    assert "answer" not in payload
    assert payload["choices"] == ["cat", "dog", "bird"]


def test_level_status_counts_distinct_attempts(bank):
    status = questions.level_status(bank, "amy", "grammar", 3)
    assert (status.total, status.solved_unique, status.cleared) == (2, 0, False)

    q0 = questions.get_question_by_id(bank, "grammar-3-0")
    q1 = questions.get_question_by_id(bank, "grammar-3-1")
    for q, answer in ((q0, "3"), (q0, "1"), (q1, "go")):
        record_attempt(bank, user_id="amy", question=q, level=q.level, result=grade(q.choices, q.answer, answer))
    bank.commit()

    status = questions.level_status(bank, "amy", "grammar", 3)
    assert status.solved_unique == 2
    assert status.cleared


def test_empty_level_counts_as_cleared(bank):
    assert questions.level_status(bank, "amy", "travel", 2).cleared
