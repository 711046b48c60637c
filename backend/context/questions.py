"""
Duplicate-question detection.

An interviewer who did not get an answer tends to re-read the same
question, often with a lead-in ("Here's the question one more time: ...").
Pure functions only.
"""

from __future__ import annotations

import re

from spec import (
    DUPLICATE_MIN_QUESTION_CHARS,
    DUPLICATE_MIN_WORD_CHARS,
    DUPLICATE_OVERLAP_RATIO,
)


# Lead-ins an interviewer uses when repeating a question
_FILLER_PREFIXES = (
    re.compile(
        r"^here'?s?\s+(the\s+)?(question\s+)?"
        r"(one\s+more\s+time|first\s+question|next\s+question)[\s.:,]*"
    ),
    re.compile(
        r"^(let'?s?\s+)?(go\s+back\s+to\s+)?(the\s+)?"
        r"(question|first\s+question)[\s.:,]*"
    ),
)
_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_question(text: str) -> str:
    """Lowercase, strip lead-ins and punctuation, collapse whitespace."""
    normalized = text.lower().strip()
    for prefix in _FILLER_PREFIXES:
        normalized = prefix.sub("", normalized, count=1)
    normalized = _PUNCTUATION.sub(" ", normalized)
    return _WHITESPACE.sub(" ", normalized).strip()


def _significant_words(normalized: str) -> set[str]:
    return {w for w in normalized.split(" ") if len(w) >= DUPLICATE_MIN_WORD_CHARS}


def is_same_question(
    previous: str,
    current: str,
    *,
    threshold: float = DUPLICATE_OVERLAP_RATIO,
) -> bool:
    """
    True when current is a near-repetition of previous.

    Short or empty questions are never duplicates. Otherwise equal
    normalized text, or a significant-word overlap ratio (shared words
    over the larger word count) of at least `threshold`, counts.
    """
    if not previous or not current:
        return False
    if (
        len(previous) < DUPLICATE_MIN_QUESTION_CHARS
        or len(current) < DUPLICATE_MIN_QUESTION_CHARS
    ):
        return False

    a = normalize_question(previous)
    b = normalize_question(current)
    if a == b:
        return True

    words_a = _significant_words(a)
    words_b = _significant_words(b)
    largest = max(len(words_a), len(words_b))
    if largest == 0:
        return False

    return len(words_a & words_b) / largest >= threshold
