import pytest

from playlearn.errors import ValidationError
from playlearn.intents import ANSWER_FORMAT_HINT, IntentHandler


@pytest.fixture
def handler(service):
    return IntentHandler(service)


def clear_toeic_three(service, user_id="joe"):
    for q_id in ("toeic-3-0", "toeic-3-1", "toeic-3-2"):
        service.submit_answer(user_id, q_id, "3")


def test_hints_only_on_first_question(handler):
    first = handler.handle("joe", "next")
    assert first["kind"] == "question"
    assert ANSWER_FORMAT_HINT in first["hints"]
    assert first["question"]["level"] == 3
    second = handler.handle("joe", "next")
    assert "hints" not in second


def test_easy_signal_moves_next_question_up(handler):
    out = handler.handle("joe", "next", signal="easy")
    assert out["question"]["level"] == 4


def test_unknown_intent(handler):
    with pytest.raises(ValidationError):
        handler.handle("joe", "dance")


def test_switch_topic(handler):
    with pytest.raises(ValidationError):
        handler.handle("joe", "switch_topic")
    out = handler.handle("joe", "switch_topic", topic="grammar")
    assert out["topic"] == "grammar"
    assert out["question"]["topic"] == "grammar"


def test_cleared_level_then_accept(handler, service):
    clear_toeic_three(service)
    offered = handler.handle("joe", "next")
    assert offered["kind"] == "offer"
    assert offered["offer"] == {"level": 4, "reason": "level_clear"}

    # Anything but accept/decline repeats the offer
    assert handler.handle("joe", "summary")["kind"] == "offer"

    accepted = handler.handle("joe", "accept")
    assert accepted["kind"] == "question"
    assert accepted["level"] == 4
    assert accepted["question"]["level"] == 4


def test_decline_opens_menu(handler, service):
    clear_toeic_three(service)
    handler.handle("joe", "next")
    declined = handler.handle("joe", "decline")
    assert declined["kind"] == "menu"
    assert declined["level"] == 3

    assert handler.handle("joe", "next")["kind"] == "menu"
    topics = handler.handle("joe", "menu_topic")
    assert topics["kind"] == "topics"
    assert "travel" in topics["topics"]

    # Menu is gone once a choice was made
    assert handler.handle("joe", "wrong_notes")["kind"] == "notes"


def test_menu_review_returns_wrong_notes(handler, service):
    clear_toeic_three(service)
    handler.handle("joe", "next")
    handler.handle("joe", "decline")
    out = handler.handle("joe", "menu_review")
    assert out["kind"] == "notes"
    assert len(out["notes"]) == 3


def test_stop_returns_wrong_notes(handler, service):
    service.submit_answer("joe", "toeic-3-0", "1")
    service.submit_answer("joe", "toeic-4-0", "2")
    out = handler.handle("joe", "stop")
    assert out["kind"] == "notes"
    assert [n["q_id"] for n in out["notes"]] == ["toeic-3-0"]
    summary = handler.handle("joe", "summary")
    assert len(summary["notes"]) == 2


def test_review_wrong(handler, service):
    service.submit_answer("joe", "toeic-3-0", "1")
    out = handler.handle("joe", "review_wrong")
    assert out["kind"] == "question"
    assert out["based_on"] == "toeic-3-0"
