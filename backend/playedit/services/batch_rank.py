"""
Batch re-rank: rebuild an owner's whole ranking one game at a time.

The first two games meet head to head and become #1 / #2 directly. Every
later game runs a ComparisonSession against the games placed so far and is
inserted where it resolves. undo() steps back one answer inside the current
game, or, with no answers to take back, un-places the previous game.

The caller shuffles *item_ids* beforehand and persists pending_shifts()
once is_complete is True.
"""
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from playedit.schemas.comparisons import ComparisonChoice
from playedit.schemas.rankings import PositionShift
from playedit.services.comparison_session import (
    MAX_COMPARISONS,
    ComparisonSession,
    resolve_first_pair,
)
from playedit.services.rank_order import RankOrder, diff_orders

logger = logging.getLogger(__name__)


class BatchRankError(Exception):
    """Raised when a batch session is driven after it completed."""
    pass


@dataclass(frozen=True)
class _Placement:
    """Undo point taken right before a game was placed."""

    index: int
    order_before: RankOrder
    first_pair: bool = False


class BatchRankSession:
    def __init__(
        self,
        owner_id: str,
        item_ids: Sequence[int],
        max_comparisons: int = MAX_COMPARISONS,
    ) -> None:
        if len(set(item_ids)) != len(item_ids):
            raise BatchRankError("item_ids must not repeat")

        self.owner_id = owner_id
        self.item_ids = list(item_ids)
        self.max_comparisons = max_comparisons
        self._order = RankOrder(owner_id)
        self._index = 0
        self._session: ComparisonSession | None = None
        self._placements: list[_Placement] = []

        if len(self.item_ids) == 1:
            # A lone game needs no comparison
            self._order.insert_at(1, self.item_ids[0])
            self._index = 1
        self._start_current()

    # ── State ────────────────────────────────────────────────────────────────

    @property
    def is_complete(self) -> bool:
        return self._index >= len(self.item_ids)

    @property
    def placed_count(self) -> int:
        return len(self._order)

    @property
    def in_first_pair(self) -> bool:
        return self._index == 0 and len(self.item_ids) >= 2

    @property
    def current_item_id(self) -> int | None:
        if self.is_complete:
            return None
        return self.item_ids[self._index]

    @property
    def current_opponent_id(self) -> int | None:
        if self.is_complete:
            return None
        if self.in_first_pair:
            return self.item_ids[1]
        return self._session.current_opponent_id if self._session else None

    @property
    def comparison_session(self) -> ComparisonSession | None:
        return self._session

    @property
    def rank_order(self) -> RankOrder:
        return self._order.copy()

    @property
    def can_undo(self) -> bool:
        return bool(self._placements) or bool(self._session and self._session.can_undo)

    def pending_shifts(self) -> list[PositionShift]:
        """Every position set so far, relative to an empty ranking."""
        return diff_orders(RankOrder(self.owner_id), self._order)

    # ── Transitions ──────────────────────────────────────────────────────────

    def apply(self, choice: ComparisonChoice) -> None:
        """Answer the current head-to-head. NEW_ITEM = current_item_id wins."""
        if self.is_complete:
            raise BatchRankError("all games are already placed")

        if self.in_first_pair:
            winner, loser = resolve_first_pair(self.item_ids[0], self.item_ids[1], choice)
            self._placements.append(
                _Placement(index=0, order_before=self._order.copy(), first_pair=True)
            )
            self._order.place_first_pair(winner, loser)
            self._index = 2
            self._start_current()
            return

        self._session.apply(choice)
        if self._session.is_resolved:
            self._place_resolved()

    def undo(self) -> bool:
        """Take back the last answer. Returns False when there is nothing to undo."""
        if self._session is not None and self._session.can_undo:
            self._session.undo()
            return True

        if not self._placements:
            return False

        placement = self._placements.pop()
        self._order = placement.order_before
        self._index = placement.index
        self._start_current()
        logger.debug(
            "owner=%s undid placement, back to game %d of %d",
            self.owner_id,
            self._index + 1,
            len(self.item_ids),
        )
        return True

    # ── Internals ────────────────────────────────────────────────────────────

    def _start_current(self) -> None:
        self._session = None
        if self.is_complete or self.in_first_pair:
            return

        self._session = ComparisonSession(
            self.item_ids[self._index],
            self._order.item_ids(),
            self.max_comparisons,
        )
        if self._session.is_resolved:
            self._place_resolved()

    def _place_resolved(self) -> None:
        item_id = self.item_ids[self._index]
        position = self._session.resolved_position
        self._placements.append(
            _Placement(index=self._index, order_before=self._order.copy())
        )
        self._order.insert_at(position, item_id)
        logger.debug("owner=%s placed item=%s at #%d", self.owner_id, item_id, position)

        self._index += 1
        self._start_current()
