import pytest

from playlearn.grading import TokenKind, classify_token, grade

ANIMALS = ["cat", "dog", "bird"]
FIVE = ["one", "two", "three", "four", "five"]


def test_ordinal_key_and_ordinal_answer():
    r = grade(ANIMALS, "2", "2")
    assert r.is_correct
    assert r.canonical_user_choice == "dog"
    assert r.resolved_choice_index == 1


def test_letter_key_matches_ordinal_answer():
    r = grade(ANIMALS, "B", "2")
    assert r.is_correct
    assert r.canonical_answer_key == "B"


def test_text_key_matches_text_answer():
    r = grade(ANIMALS, "dog", "dog")
    assert r.is_correct
    assert r.resolved_choice_index is None


def test_text_key_matches_choice_picked_by_number():
    r = grade(ANIMALS, "dog", "2")
    assert r.is_correct
    assert r.canonical_user_choice == "dog"


@pytest.mark.parametrize("i", range(len(FIVE)))
def test_every_encoding_pair_agrees(i):
    letter = "ABCDE"[i]
    for key in (str(i + 1), letter, letter.lower()):
        for answer in (str(i + 1), letter, letter.lower(), f"  {i + 1} "):
            assert grade(FIVE, key, answer).is_correct, (key, answer)


def test_wrong_index_is_incorrect():
    assert not grade(ANIMALS, "2", "3").is_correct
    assert not grade(ANIMALS, "B", "a").is_correct


def test_text_fallback_is_case_insensitive():
    assert grade(ANIMALS, "Dog", "  dOG ").is_correct
    assert grade([], "went", "Went").is_correct
    assert not grade([], "went", "gone").is_correct


def test_multi_digit_answer_is_an_ordinal():
    tok = classify_token("12")
    assert tok.kind is TokenKind.ORDINAL
    assert tok.index == 11
    r = grade(ANIMALS, "2", "12")
    assert not r.is_correct
    # Out of range: shown as typed rather than raising
    assert r.canonical_user_choice == "12"
    assert r.resolved_choice_index == 11


def test_zero_is_text():
    assert classify_token("0").kind is TokenKind.TEXT
    assert not grade(ANIMALS, "1", "0").is_correct


def test_letters_widen_with_choice_count():
    six = FIVE + ["six"]
    assert classify_token("F").kind is TokenKind.TEXT
    assert classify_token("F", len(six)).index == 5
    assert grade(six, "6", "f").is_correct


def test_letter_key_without_choices():
    assert grade([], "A", "1").is_correct
    assert grade(None, "b", "B").is_correct


@pytest.mark.parametrize("key,answer", [(None, None), ("", ""), (None, "1"), ("2", None), (3, 3)])
def test_never_raises(key, answer):
    grade(ANIMALS, key, answer)


def test_numeric_key_value_is_classified_like_a_string():
    assert grade(ANIMALS, 2, "B").is_correct


def test_very_long_digit_run_is_text():
    long_answer = "1" * 5000
    assert classify_token(long_answer).kind is TokenKind.TEXT
    r = grade(ANIMALS, "2", long_answer)
    assert not r.is_correct
    assert r.resolved_choice_index is None
    assert r.canonical_user_choice == long_answer


def test_six_digit_ordinal_still_resolves():
    assert classify_token("100000").index == 99999
    assert classify_token("1000000").kind is TokenKind.TEXT
