"""
Comparison Session
──────────────────
Head-to-head binary insertion with a hard cap on the number of questions.

The new game is compared against the middle of the remaining window of the
existing list (best first). Preferring the new game narrows the window
upwards, preferring the existing one narrows it downwards. The session
resolves at low_index + 1 once the window is empty or MAX_COMPARISONS
answers have been given; with the cap hit early the game lands on the
current lower boundary, which trades precision for a bounded number of
questions.

The arithmetic lives in the pure functions next_bounds() / is_settled();
ComparisonSession only drives them and keeps the undo stack. Nothing here
touches a RankOrder: the caller inserts at resolved_position afterwards.
"""
import logging
import math
from collections.abc import Sequence

from playedit.schemas.comparisons import (
    MAX_COMPARISONS,
    ComparisonBounds,
    ComparisonChoice,
    ComparisonSessionSnapshot,
    SessionState,
)

logger = logging.getLogger(__name__)


class ComparisonSessionError(Exception):
    """Raised when a session is driven from a state that does not allow it."""
    pass


# ── Pure transitions ─────────────────────────────────────────────────────────


def midpoint(bounds: ComparisonBounds) -> int:
    return (bounds.low_index + bounds.high_index) // 2


def is_settled(bounds: ComparisonBounds, max_comparisons: int = MAX_COMPARISONS) -> bool:
    """True once the window is empty or the question budget is spent."""
    return (
        bounds.low_index > bounds.high_index
        or bounds.comparison_count >= max_comparisons
    )


def next_bounds(bounds: ComparisonBounds, choice: ComparisonChoice) -> ComparisonBounds:
    """Window after answering the question asked at midpoint(bounds)."""
    mid = midpoint(bounds)
    if choice == ComparisonChoice.NEW_ITEM:
        return ComparisonBounds(
            low_index=bounds.low_index,
            high_index=mid - 1,
            comparison_count=bounds.comparison_count + 1,
        )
    return ComparisonBounds(
        low_index=mid + 1,
        high_index=bounds.high_index,
        comparison_count=bounds.comparison_count + 1,
    )


def estimated_total(existing_count: int, max_comparisons: int = MAX_COMPARISONS) -> int:
    """Progress-bar hint for how many questions a list of this size needs."""
    if existing_count <= 1:
        return 1
    return min(math.ceil(math.log2(existing_count)) + 2, max_comparisons)


def resolve_first_pair(
    first_item_id: int,
    second_item_id: int,
    choice: ComparisonChoice,
) -> tuple[int, int]:
    """
    Two-item variant for a ranking that does not exist yet.

    *first_item_id* plays the "new item" side. Returns (winner, loser); hand
    them to RankOrder.place_first_pair.
    """
    if choice == ComparisonChoice.NEW_ITEM:
        return first_item_id, second_item_id
    return second_item_id, first_item_id


# ── Session ──────────────────────────────────────────────────────────────────


class ComparisonSession:
    """
    One insertion attempt for *new_item_id* against *existing_item_ids*.

    States: AWAITING_CHOICE -> ... -> RESOLVED, or CANCELLED from any
    awaiting state. Single writer only.
    """

    def __init__(
        self,
        new_item_id: int,
        existing_item_ids: Sequence[int],
        max_comparisons: int = MAX_COMPARISONS,
    ) -> None:
        if not 1 <= max_comparisons <= MAX_COMPARISONS:
            raise ValueError(f"max_comparisons must be between 1 and {MAX_COMPARISONS}")

        self.new_item_id = new_item_id
        self.existing_item_ids = list(existing_item_ids)
        self.max_comparisons = max_comparisons
        self._history: list[ComparisonBounds] = []
        self._bounds = ComparisonBounds(
            low_index=0,
            high_index=len(self.existing_item_ids) - 1,
            comparison_count=0,
        )
        self._state = SessionState.AWAITING_CHOICE
        self._resolved_position: int | None = None
        self._settle()

    # ── Read-only view ───────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def bounds(self) -> ComparisonBounds:
        return self._bounds

    @property
    def history(self) -> tuple[ComparisonBounds, ...]:
        return tuple(self._history)

    @property
    def comparison_count(self) -> int:
        return self._bounds.comparison_count

    @property
    def resolved_position(self) -> int | None:
        return self._resolved_position

    @property
    def is_resolved(self) -> bool:
        return self._state == SessionState.RESOLVED

    @property
    def can_undo(self) -> bool:
        return bool(self._history) and self._state != SessionState.CANCELLED

    @property
    def current_opponent_id(self) -> int | None:
        """The existing item the new one is currently up against."""
        if self._state != SessionState.AWAITING_CHOICE:
            return None
        return self.existing_item_ids[midpoint(self._bounds)]

    @property
    def estimated_total(self) -> int:
        return estimated_total(len(self.existing_item_ids), self.max_comparisons)

    # ── Transitions ──────────────────────────────────────────────────────────

    def apply(self, choice: ComparisonChoice) -> SessionState:
        """Record the user's answer to the current question."""
        if self._state != SessionState.AWAITING_CHOICE:
            raise ComparisonSessionError(
                f"cannot apply a choice to a {self._state.value} session"
            )

        choice = ComparisonChoice(choice)
        self._history.append(self._bounds)
        self._bounds = next_bounds(self._bounds, choice)
        self._settle()
        return self._state

    def undo(self) -> ComparisonBounds | None:
        """
        Re-ask the last answered question.

        Works from RESOLVED too. Returns the restored bounds, or None when
        there is nothing to undo.
        """
        if self._state == SessionState.CANCELLED:
            raise ComparisonSessionError("cannot undo a cancelled session")
        if not self._history:
            return None

        self._bounds = self._history.pop()
        self._state = SessionState.AWAITING_CHOICE
        self._resolved_position = None
        self._settle()
        return self._bounds

    def cancel(self) -> None:
        """Abandon the attempt. The caller's ranking was never touched."""
        if self._state == SessionState.RESOLVED:
            raise ComparisonSessionError("session already resolved")
        self._state = SessionState.CANCELLED
        self._history.clear()

    def _settle(self) -> None:
        if is_settled(self._bounds, self.max_comparisons):
            self._state = SessionState.RESOLVED
            self._resolved_position = self._bounds.low_index + 1
            logger.debug(
                "item=%s resolved at #%d after %d comparisons",
                self.new_item_id,
                self._resolved_position,
                self._bounds.comparison_count,
            )

    # ── Snapshots ────────────────────────────────────────────────────────────

    def snapshot(self) -> ComparisonSessionSnapshot:
        return ComparisonSessionSnapshot(
            new_item_id=self.new_item_id,
            existing_item_ids=list(self.existing_item_ids),
            max_comparisons=self.max_comparisons,
            state=self._state,
            bounds=self._bounds,
            history=list(self._history),
            resolved_position=self._resolved_position,
        )

    @classmethod
    def from_snapshot(cls, snapshot: ComparisonSessionSnapshot) -> "ComparisonSession":
        """
        Rebuild a session from a client-held snapshot.

        State and resolved position are recomputed from the bounds; a
        snapshot whose bounds fall outside the existing list is rejected.
        The question budget never exceeds MAX_COMPARISONS, whatever the
        client sends back.
        """
        session = cls(
            snapshot.new_item_id,
            snapshot.existing_item_ids,
            min(snapshot.max_comparisons, MAX_COMPARISONS),
        )
        size = len(snapshot.existing_item_ids)
        for bounds in (*snapshot.history, snapshot.bounds):
            if not (0 <= bounds.low_index <= size and -1 <= bounds.high_index < size):
                raise ComparisonSessionError(
                    f"bounds {bounds.low_index}..{bounds.high_index} do not fit a list of {size}"
                )

        session._history = list(snapshot.history)
        session._bounds = snapshot.bounds
        session._resolved_position = None
        if snapshot.state == SessionState.CANCELLED:
            session._state = SessionState.CANCELLED
            session._history.clear()
        else:
            session._state = SessionState.AWAITING_CHOICE
            session._settle()
        return session
