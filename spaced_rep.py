"""
SM-2 Spaced Repetition Algorithm (four-button variant)

Quality ratings:
0 - Again, didn't remember (lapse)
1 - Hard
2 - Normal
3 - Easy
"""

import logging
import math
import random
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from pydantic import BaseModel

from cards import (
    DEFAULT_EASE_FACTOR,
    DEFAULT_INTERVAL,
    DEFAULT_REPETITIONS,
    card_field,
    utcnow,
)

logger = logging.getLogger("memocurve.scheduler")

MIN_EASE_FACTOR = 1.3
MAX_QUALITY = 3
QUALITIES = (0, 1, 2, 3)
SECOND_INTERVAL = 3
UPCOMING_LIMIT = 5
MASTERED_INTERVAL = 7


class InvalidQualityError(ValueError):
    pass


class SchedulingState(BaseModel):
    repetitions: int
    ease_factor: float
    interval: int
    next_review: datetime


def _scheduling_fields(card: Any) -> tuple[int, float, int]:
    repetitions = card_field(card, "repetitions")
    ease_factor = card_field(card, "ease_factor")
    interval = card_field(card, "interval")
    return (
        DEFAULT_REPETITIONS if repetitions is None else repetitions,
        DEFAULT_EASE_FACTOR if ease_factor is None else ease_factor,
        DEFAULT_INTERVAL if interval is None else interval,
    )


def validate_quality(quality: Any) -> int:
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidQualityError(f"quality must be an integer, got {quality!r}")
    if not 0 <= quality <= MAX_QUALITY:
        raise InvalidQualityError(f"quality must be between 0 and {MAX_QUALITY}, got {quality}")
    return quality


def next_ease_factor(ease_factor: float, quality: int) -> float:
    # EF' = EF + 0.1 - (3 - q) * (0.08 + (3 - q) * 0.02), floored at 1.3
    miss = MAX_QUALITY - quality
    return max(MIN_EASE_FACTOR, ease_factor + 0.1 - miss * (0.08 + miss * 0.02))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_next_state(card: Any, quality: int, now: Optional[datetime] = None) -> SchedulingState:
    """
    Compute a card's scheduling state after a review.

    Args:
        card: ORM row, pydantic card or dict. Missing scheduling fields
            fall back to the new-card defaults.
        quality: Rating 0-3 (0=again, 3=easy)
        now: Review time; defaults to the current UTC time

    Returns:
        The new scheduling state. The card itself is not modified.
    """
    quality = validate_quality(quality)
    repetitions, ease_factor, interval = _scheduling_fields(card)

    # The ease factor moves on every review, lapses included
    ease_factor = next_ease_factor(ease_factor, quality)

    if quality < 1:
        repetitions = 0
        interval = 1
    else:
        repetitions += 1
        if repetitions == 1:
            interval = 1
        elif repetitions == 2:
            interval = SECOND_INTERVAL
        else:
            interval = _round_half_up(interval * ease_factor)

    now = now or utcnow()
    return SchedulingState(
        repetitions=repetitions,
        ease_factor=ease_factor,
        interval=interval,
        next_review=now + timedelta(days=interval),
    )


def calculate_sm2(card: Any, quality: int, now: Optional[datetime] = None) -> Any:
    """Apply a review to a mutable card in place and return it."""
    state = compute_next_state(card, quality, now=now)
    card.repetitions = state.repetitions
    card.ease_factor = state.ease_factor
    card.interval = state.interval
    card.next_review = state.next_review
    logger.debug(
        "card %s rated %d -> interval %d, ease %.2f",
        card_field(card, "id"), quality, state.interval, state.ease_factor,
    )
    return card


def preview_intervals(card: Any) -> list[int]:
    """Interval in days each rating would give, indexed by quality."""
    return [compute_next_state(card, q).interval for q in QUALITIES]


# --- Due-set selection ---

def is_due(card: Any, now: Optional[datetime] = None) -> bool:
    next_review = card_field(card, "next_review")
    if next_review is None:
        return True
    return next_review <= (now or utcnow())


def partition_cards(cards: Iterable[Any], now: Optional[datetime] = None) -> tuple[list, list]:
    """Split cards into (due, not_due), both in collection order."""
    now = now or utcnow()
    due, not_due = [], []
    for card in cards:
        (due if is_due(card, now) else not_due).append(card)
    return due, not_due


def select_due(
    cards: Iterable[Any],
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
    shuffle: bool = False,
    rng: Optional[random.Random] = None,
) -> list:
    """Cards due for review, in collection order unless shuffled."""
    due, _ = partition_cards(cards, now)
    if shuffle:
        (rng or random.Random()).shuffle(due)
    if limit is not None:
        due = due[:limit]
    return due


def upcoming_preview(cards: Iterable[Any], now: Optional[datetime] = None, limit: int = UPCOMING_LIMIT) -> list:
    """The next cards to come due, soonest first. Informational only."""
    _, not_due = partition_cards(cards, now)
    not_due.sort(key=lambda c: card_field(c, "next_review"))
    return not_due[:limit]


def days_until(card: Any, now: Optional[datetime] = None) -> int:
    """Whole days until the card is due, rounded up. 0 when already due."""
    now = now or utcnow()
    if is_due(card, now):
        return 0
    seconds = (card_field(card, "next_review") - now).total_seconds()
    return math.ceil(seconds / 86400)


def collection_stats(cards: Iterable[Any], now: Optional[datetime] = None) -> dict:
    cards = list(cards)
    due, _ = partition_cards(cards, now)
    learned = [c for c in cards if _scheduling_fields(c)[0] > 0]
    return {
        "total": len(cards),
        "due": len(due),
        "new": len(cards) - len(learned),
        "learned": len(learned),
        "mastered": len([c for c in cards if _scheduling_fields(c)[2] > MASTERED_INTERVAL]),
    }
