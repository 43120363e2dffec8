"""
Card content helpers: question types, legacy normalization and answer preview.

None of this touches scheduling fields. Helpers read fields off dicts, ORM
rows and pydantic cards alike. Typed, fully defaulted records are built by
``models.Card.from_record``.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional


class QuestionType:
    FREE = "free"
    FOUR = "four"
    MULTI = "multi"

    ALL = (FREE, FOUR, MULTI)
    CHOICE = (FOUR, MULTI)


QUESTION_TYPE_LABELS = {
    QuestionType.FREE: "Free answer",
    QuestionType.FOUR: "4 choices",
    QuestionType.MULTI: "Multiple choice",
}

MIN_CHOICES = 2
MAX_CHOICES = 8
FOUR_CHOICES = 4

DEFAULT_REPETITIONS = 0
DEFAULT_EASE_FACTOR = 2.5
DEFAULT_INTERVAL = 1

# camelCase keys written by the browser version of the app
_CAMEL_KEYS = {
    "questionType": "question_type",
    "questionImage": "question_image",
    "questionText": "question_text",
    "answerText": "answer_text",
    "correctChoiceIndex": "correct_choice_index",
    "easeFactor": "ease_factor",
    "nextReview": "next_review",
    "createdAt": "created_at",
}


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what SQLite DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def type_label(question_type: Optional[str]) -> str:
    return QUESTION_TYPE_LABELS.get(question_type, QUESTION_TYPE_LABELS[QuestionType.FREE])


def is_choice_type(question_type: Optional[str]) -> bool:
    return question_type in QuestionType.CHOICE


def card_field(card: Any, name: str, default=None):
    if isinstance(card, dict):
        return card.get(name, default)
    return getattr(card, name, default)


def snake_case_keys(record: dict) -> dict:
    """Map camelCase export keys onto our field names. Unknown keys pass through."""
    out = {}
    for key, value in record.items():
        out[_CAMEL_KEYS.get(key, key)] = value
    return out


def normalize_card(record: dict) -> dict:
    """
    Repair the keys of a stored record.

    Records written before choice questions existed have no question_type and
    keep their answer in ``answer``. They become free-answer cards. Records
    that already carry a question_type are returned as-is.

    Values are left as stored (timestamps stay strings, missing scheduling
    fields stay missing). Go through ``Card.from_record`` before scheduling.
    """
    record = snake_case_keys(record)
    if record.get("question_type"):
        return record
    normalized = dict(record)
    normalized["question_type"] = QuestionType.FREE
    normalized["answer_text"] = record.get("answer") or ""
    normalized["choices"] = []
    normalized["correct_choice_index"] = None
    return normalized


def answer_preview(card: Any) -> str:
    """
    The canonical correct answer of a card as a single string.

    Never raises: malformed or legacy cards give an empty string.
    """
    try:
        question_type = card_field(card, "question_type")
        if question_type == QuestionType.FREE or not question_type:
            return card_field(card, "answer_text") or card_field(card, "answer") or ""
        choices = card_field(card, "choices") or []
        index = card_field(card, "correct_choice_index")
        if isinstance(index, bool) or not isinstance(index, int):
            return ""
        if index < 0 or index >= len(choices):
            return ""
        choice = choices[index]
        return choice if isinstance(choice, str) else ""
    except (TypeError, AttributeError, KeyError):
        return ""


def matches_query(card: Any, query: Optional[str]) -> bool:
    """Case-insensitive match on the answer preview or the question text."""
    if not query:
        return True
    needle = query.lower()
    question_text = card_field(card, "question_text") or ""
    return needle in answer_preview(card).lower() or needle in question_text.lower()


def clean_choices(question_type: str, choices: list[str], correct_choice_index: Optional[int]) -> list[str]:
    """
    Validate the choice list of a choice-type card and return it trimmed.

    Raises ValueError on a bad slot count, fewer than two filled choices or a
    correct index that does not point at a filled choice.
    """
    trimmed = [c.strip() for c in choices]
    if question_type == QuestionType.FOUR and len(trimmed) != FOUR_CHOICES:
        raise ValueError(f"a 4-choice card needs exactly {FOUR_CHOICES} choices")
    if not MIN_CHOICES <= len(trimmed) <= MAX_CHOICES:
        raise ValueError(f"choice cards take between {MIN_CHOICES} and {MAX_CHOICES} choices")
    if len([c for c in trimmed if c]) < MIN_CHOICES:
        raise ValueError(f"at least {MIN_CHOICES} choices must be filled in")
    if correct_choice_index is None or not 0 <= correct_choice_index < len(trimmed):
        raise ValueError("correct_choice_index is out of range")
    if not trimmed[correct_choice_index]:
        raise ValueError("the correct choice is empty")
    return trimmed


def new_card(content: dict, now: Optional[datetime] = None) -> dict:
    """Fresh card record: new id, creation time and default scheduling state."""
    now = now or utcnow()
    return {
        **content,
        "id": uuid.uuid4().hex,
        "repetitions": DEFAULT_REPETITIONS,
        "ease_factor": DEFAULT_EASE_FACTOR,
        "interval": DEFAULT_INTERVAL,
        "next_review": now,
        "created_at": now,
    }
