"""
Review session: walks the user through today's due cards.

Each card is first presented, then revealed once the user has answered, then
rated. Rating runs the scheduler and moves on to the next card. The session
only keeps its own cursor; persisting the new state is up to the caller.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from cards import answer_preview, card_field, is_choice_type
from spaced_rep import SchedulingState, compute_next_state

logger = logging.getLogger("memocurve.session")

PRESENTING = "presenting"
REVEALED = "revealed"
FINISHED = "finished"


class SessionStateError(RuntimeError):
    pass


@dataclass
class Reveal:
    answer: str
    response: Union[int, str]
    correct: Optional[bool] = None  # only known for choice cards


@dataclass
class ReviewOutcome:
    card_id: str
    quality: int
    state: SchedulingState
    correct: Optional[bool] = None


@dataclass
class ReviewSession:
    cards: list[Any]
    index: int = 0
    revealed: Optional[Reveal] = None
    outcomes: list[ReviewOutcome] = field(default_factory=list)

    @property
    def state(self) -> str:
        if self.index >= len(self.cards):
            return FINISHED
        return REVEALED if self.revealed is not None else PRESENTING

    @property
    def current(self) -> Optional[Any]:
        if self.state == FINISHED:
            return None
        return self.cards[self.index]

    @property
    def progress(self) -> tuple[int, int]:
        return min(self.index + 1, len(self.cards)), len(self.cards)

    def reveal(self, response: Union[int, str]) -> Reveal:
        """
        Show the answer after the user responded.

        ``response`` is the picked choice index for choice cards and the
        typed answer for free cards. An empty response cannot be revealed.
        """
        if self.state != PRESENTING:
            raise SessionStateError(f"cannot reveal while {self.state}")
        card = self.current
        correct = None
        if is_choice_type(card_field(card, "question_type")):
            if isinstance(response, bool) or not isinstance(response, int):
                raise SessionStateError("pick a choice before revealing the answer")
            correct = response == card_field(card, "correct_choice_index")
        else:
            if not isinstance(response, str) or not response.strip():
                raise SessionStateError("type an answer before revealing it")
            response = response.strip()
        self.revealed = Reveal(answer=answer_preview(card), response=response, correct=correct)
        return self.revealed

    def rate(self, quality: int, now: Optional[datetime] = None) -> ReviewOutcome:
        """Rate the revealed card and advance. Returns the new scheduling state."""
        if self.state != REVEALED:
            raise SessionStateError(f"cannot rate while {self.state}")
        card = self.current
        state = compute_next_state(card, quality, now=now)
        outcome = ReviewOutcome(
            card_id=card_field(card, "id"), quality=quality,
            state=state, correct=self.revealed.correct,
        )
        self.outcomes.append(outcome)
        self.revealed = None
        self.index += 1
        if self.state == FINISHED:
            logger.info("session finished after %d cards", len(self.outcomes))
        return outcome

    def summary(self) -> dict:
        histogram = {str(q): 0 for q in range(4)}
        for outcome in self.outcomes:
            histogram[str(outcome.quality)] += 1
        return {
            "reviewed": len(self.outcomes),
            "lapses": histogram["0"],
            "quality_histogram": histogram,
        }
