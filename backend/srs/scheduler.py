"""Review-queue scheduler for study sessions.

After every answer the answered card is taken off the head of the queue,
its streak counters are updated and it is spliced back into the queue at a
distance that depends on the outcome:

- Correct: 2^(consecutive_correct + 1) positions back (4, 8, 16, ...), an
  exponential back-off approximating spaced repetition.
- Wrong: 2 positions back, except on every third consecutive miss (3rd, 6th,
  9th, ...) where the card is pushed 10 positions back.

Offsets larger than the remaining queue append the card to the end. The
scheduler is deterministic and has no error conditions.
"""

from dataclasses import dataclass, replace
from datetime import datetime

from backend.config import utcnow

# Re-insertion distances for wrong answers
WRONG_OFFSET = 2
ESCALATED_WRONG_OFFSET = 10
ESCALATION_EVERY = 3  # every Nth consecutive miss escalates


@dataclass(frozen=True)
class CardState:
    """The review counters of a card."""

    consecutive_correct: int = 0
    consecutive_wrong: int = 0
    total_reviews: int = 0
    last_reviewed_at: datetime | None = None


@dataclass
class ReviewResult:
    """The result of scheduling one answer."""

    new_state: CardState
    queue: list[str]
    insert_offset: int  # where the card actually landed, 0-based
    requested_offset: int  # distance asked for before clamping


def update_counters(
    state: CardState,
    is_correct: bool,
    review_time: datetime | None = None,
) -> CardState:
    """Apply one answer to the streak counters.

    The counter for the opposite outcome is reset, so exactly one streak is
    non-zero afterwards. ``total_reviews`` always grows by one.
    """
    review_time = review_time or utcnow()
    if is_correct:
        correct, wrong = state.consecutive_correct + 1, 0
    else:
        correct, wrong = 0, state.consecutive_wrong + 1
    return replace(
        state,
        consecutive_correct=correct,
        consecutive_wrong=wrong,
        total_reviews=state.total_reviews + 1,
        last_reviewed_at=review_time,
    )


class QueueScheduler:
    """Spaced re-insertion of answered cards into a study queue."""

    def __init__(
        self,
        wrong_offset: int = WRONG_OFFSET,
        escalated_wrong_offset: int = ESCALATED_WRONG_OFFSET,
        escalation_every: int = ESCALATION_EVERY,
    ) -> None:
        self.wrong_offset = wrong_offset
        self.escalated_wrong_offset = escalated_wrong_offset
        self.escalation_every = escalation_every

    def requested_offset(self, new_state: CardState, is_correct: bool) -> int:
        """Distance from the new queue front at which the card should land.

        Evaluated on the counters *after* the answer was applied.
        """
        if is_correct:
            return 2 ** (new_state.consecutive_correct + 1)
        wrong = new_state.consecutive_wrong
        if wrong > 0 and wrong % self.escalation_every == 0:
            return self.escalated_wrong_offset
        return self.wrong_offset

    def review(
        self,
        queue: list[str],
        state: CardState,
        is_correct: bool,
        review_time: datetime | None = None,
    ) -> ReviewResult:
        """Schedule an answer for the card at the head of ``queue``.

        Args:
            queue: Current queue; the answered card id is ``queue[0]``.
            state: The answered card's counters before the answer.
            is_correct: The verdict.
            review_time: When the answer was given (defaults to now).

        Returns:
            The new counters, the full new queue and the offsets used.
        """
        card_id, rest = queue[0], list(queue[1:])
        new_state = update_counters(state, is_correct, review_time)
        requested = self.requested_offset(new_state, is_correct)

        if requested >= len(rest):
            offset = len(rest)
            rest.append(card_id)
        else:
            offset = requested
            rest.insert(offset, card_id)

        return ReviewResult(
            new_state=new_state,
            queue=rest,
            insert_offset=offset,
            requested_offset=requested,
        )
