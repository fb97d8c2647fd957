"""Answer grading.

User answers and stored answer keys arrive in three shapes: a 1-based ordinal
("2"), a choice letter ("B") or literal text ("dog"). Both sides go through
the same :func:`classify_token` and the verdict is decided by comparing the
classified values, so "B" and "2" agree on a three-choice question.

Runs of up to six digits are ordinals ("12" is the twelfth choice); when the
question has fewer choices the answer falls back to text comparison.
"""
from __future__ import annotations
import re
import string
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence

_DIGITS = re.compile(r"^\d+$")
MIN_LETTERS = 5
# Longer digit runs cannot name a choice; they are graded as text
MAX_ORDINAL_DIGITS = 6


class TokenKind(str, Enum):
    ORDINAL = "ordinal"
    LETTER = "letter"
    TEXT = "text"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    raw: str
    index: Optional[int] = None  # zero-based, set for ORDINAL and LETTER


@dataclass(frozen=True)
class GradeResult:
    is_correct: bool
    canonical_user_choice: str
    canonical_answer_key: str
    resolved_choice_index: Optional[int]
    raw_answer: str


def normalize_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def letter_alphabet(choice_count: int = 0) -> str:
    """A-E, widened to cover every choice of a longer list (up to Z)."""
    width = max(MIN_LETTERS, min(choice_count, len(string.ascii_uppercase)))
    return string.ascii_uppercase[:width]


def classify_token(value: Any, choice_count: int = 0) -> Token:
    raw = normalize_text(value)
    if len(raw) <= MAX_ORDINAL_DIGITS and _DIGITS.match(raw):
        n = int(raw)
        if n >= 1:
            return Token(TokenKind.ORDINAL, raw, n - 1)
    upper = raw.upper()
    if len(upper) == 1:
        letters = letter_alphabet(choice_count)
        if upper in letters:
            return Token(TokenKind.LETTER, raw, letters.index(upper))
    return Token(TokenKind.TEXT, raw)


def grade(choices: Optional[Sequence[Any]], answer_key: Any, user_answer: Any) -> GradeResult:
    """Grade ``user_answer`` against ``answer_key``. Never raises."""
    options = [normalize_text(c) for c in (choices or [])]
    user = classify_token(user_answer, len(options))
    key = classify_token(answer_key, len(options))

    resolved = user.index
    if resolved is not None and resolved < len(options):
        canonical_user = options[resolved]
    else:
        canonical_user = user.raw

    if key.kind is not TokenKind.TEXT and resolved is not None:
        is_correct = key.index == resolved
    else:
        key_upper = key.raw.upper()
        is_correct = canonical_user.upper() == key_upper or user.raw.upper() == key_upper

    return GradeResult(
        is_correct=is_correct,
        canonical_user_choice=canonical_user,
        canonical_answer_key=key.raw,
        resolved_choice_index=resolved,
        raw_answer=user.raw,
    )
