"""
Rank Order
──────────
The contiguous 1..N position sequence for one owner's list.

An owner's games live in two disjoint collections:
  • ranked   — positions 1..N, no gaps, no duplicates (1 = favourite)
  • unranked — logged but not placed, ordered by created_at

Every mutation is computed off to the side, validated, and only then swapped
in with a single assignment, so a failed operation leaves the order exactly
as it was. Each mutation returns the PositionShift rows the store collaborator
must apply (see db.store.RankingStore.apply_shift).
"""
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

from playedit.schemas.rankings import PositionShift, RankedItem, UnrankedItem

logger = logging.getLogger(__name__)


# ── Errors ───────────────────────────────────────────────────────────────────


class RankOrderInvariantError(Exception):
    """Raised when a ranked list is not exactly positions 1..N."""
    pass


class InvalidPositionError(ValueError):
    """Raised when a position is outside the range an operation accepts."""
    pass


class DuplicateItemError(Exception):
    """Raised when the item is already part of the owner's list."""
    pass


class RankingNotFoundError(Exception):
    """Raised when the item is not in the collection the operation needs."""
    pass


# ── Helpers ──────────────────────────────────────────────────────────────────


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _unranked_sort_key(item: UnrankedItem) -> tuple:
    return (item.created_at, item.id if item.id is not None else 0)


def validate_positions(items: Iterable[RankedItem]) -> None:
    """Raise RankOrderInvariantError unless positions are exactly 1..N."""
    positions = sorted(item.rank_position for item in items)
    expected = list(range(1, len(positions) + 1))
    if positions != expected:
        raise RankOrderInvariantError(
            f"rank positions must be 1..{len(expected)}, got {positions}"
        )


def diff_orders(before: "RankOrder", after: "RankOrder") -> list[PositionShift]:
    """
    Net change set turning *before*'s ranked list into *after*'s.

    Items whose position did not change are left out.
    """
    old = {item.item_id: item.rank_position for item in before.ranked}
    new = {item.item_id: item.rank_position for item in after.ranked}

    shifts = []
    for item_id in sorted(old.keys() | new.keys()):
        if old.get(item_id) != new.get(item_id):
            shifts.append(PositionShift(
                item_id=item_id,
                old_position=old.get(item_id),
                new_position=new.get(item_id),
            ))
    return shifts


# ── RankOrder ────────────────────────────────────────────────────────────────


class RankOrder:
    """
    Caller-owned snapshot of one owner's list.

    Not thread-safe: one writer at a time. Different owners' orders share
    nothing and can be used concurrently.
    """

    def __init__(
        self,
        owner_id: str,
        ranked: Iterable[RankedItem] = (),
        unranked: Iterable[UnrankedItem] = (),
    ) -> None:
        self.owner_id = owner_id
        ranked_items = tuple(sorted(ranked, key=lambda i: i.rank_position))
        unranked_items = tuple(sorted(unranked, key=_unranked_sort_key))
        self._check(ranked_items, unranked_items)
        self._ranked = ranked_items
        self._unranked = unranked_items

    # ── Accessors ────────────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._ranked)

    def __repr__(self) -> str:
        return (
            f"RankOrder(owner_id={self.owner_id!r}, "
            f"ranked={self.item_ids()!r}, unranked={len(self._unranked)})"
        )

    @property
    def ranked(self) -> list[RankedItem]:
        return list(self._ranked)

    @property
    def unranked(self) -> list[UnrankedItem]:
        return list(self._unranked)

    @property
    def positions(self) -> list[int]:
        return [item.rank_position for item in self._ranked]

    def item_ids(self) -> list[int]:
        """Ranked item ids, best first."""
        return [item.item_id for item in self._ranked]

    def item_at(self, position: int) -> RankedItem:
        self._require_position(position, len(self._ranked))
        return self._ranked[position - 1]

    def position_of(self, item_id: int) -> int:
        for item in self._ranked:
            if item.item_id == item_id:
                return item.rank_position
        raise RankingNotFoundError(f"Item {item_id} is not ranked")

    def is_ranked(self, item_id: int) -> bool:
        return any(item.item_id == item_id for item in self._ranked)

    def copy(self) -> "RankOrder":
        return RankOrder(self.owner_id, self._ranked, self._unranked)

    # ── Core shift operations ────────────────────────────────────────────────

    def insert_at(
        self,
        position: int,
        item_id: int,
        *,
        record_id: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> list[PositionShift]:
        """
        Insert a brand-new item at *position* (1..N+1).

        Every item at or below *position* moves down one place.
        """
        self._require_position(position, len(self._ranked) + 1)
        if self._knows(item_id):
            raise DuplicateItemError(f"Item {item_id} is already in this list")

        new_item = RankedItem(
            id=record_id,
            owner_id=self.owner_id,
            item_id=item_id,
            rank_position=position,
            metadata=metadata or {},
        )
        shifted, shifts = self._shift(self._ranked, lambda p: p >= position, +1)
        shifts.append(PositionShift(item_id=item_id, new_position=position))

        self._commit([*shifted, new_item], self._unranked)
        return shifts

    def remove_at(self, position: int) -> list[PositionShift]:
        """
        Detach the item at *position*; everything below moves up one place.

        The first returned shift is the removed item (new_position None).
        """
        removed = self.item_at(position)
        rest = [item for item in self._ranked if item.item_id != removed.item_id]
        shifted, shifts = self._shift(rest, lambda p: p > position, -1)
        shifts.insert(0, PositionShift(item_id=removed.item_id, old_position=position))

        self._commit(shifted, self._unranked)
        return shifts

    def move_to(self, old_position: int, new_position: int) -> list[PositionShift]:
        """
        Move the item at *old_position* to *new_position*.

        Moving up pushes the items in [new, old) down one place; moving down
        pulls the items in (old, new] up one place. Same position: no-op.
        """
        size = len(self._ranked)
        self._require_position(old_position, size)
        self._require_position(new_position, size)
        if old_position == new_position:
            return []

        moving = self._ranked[old_position - 1]
        rest = [item for item in self._ranked if item.item_id != moving.item_id]
        if new_position < old_position:
            shifted, shifts = self._shift(
                rest, lambda p: new_position <= p < old_position, +1
            )
        else:
            shifted, shifts = self._shift(
                rest, lambda p: old_position < p <= new_position, -1
            )

        moved = moving.model_copy(update={"rank_position": new_position})
        shifts.insert(0, PositionShift(
            item_id=moving.item_id,
            old_position=old_position,
            new_position=new_position,
        ))

        self._commit([*shifted, moved], self._unranked)
        return shifts

    # ── Ranked <-> unranked transitions ──────────────────────────────────────

    def place(self, item_id: int, position: int) -> list[PositionShift]:
        """Move an unranked item into the ranked sequence at *position*."""
        source = self._find_unranked(item_id)
        self._require_position(position, len(self._ranked) + 1)

        placed = RankedItem(
            id=source.id,
            owner_id=self.owner_id,
            item_id=item_id,
            rank_position=position,
            metadata=dict(source.metadata),
        )
        shifted, shifts = self._shift(self._ranked, lambda p: p >= position, +1)
        shifts.append(PositionShift(item_id=item_id, new_position=position))

        remaining = [item for item in self._unranked if item.item_id != item_id]
        self._commit([*shifted, placed], remaining)
        return shifts

    def unrank(
        self,
        item_id: int,
        *,
        created_at: datetime | None = None,
    ) -> list[PositionShift]:
        """Take a ranked item out of the sequence and compact the positions below it."""
        position = self.position_of(item_id)
        source = self._ranked[position - 1]

        rest = [item for item in self._ranked if item.item_id != item_id]
        shifted, shifts = self._shift(rest, lambda p: p > position, -1)
        shifts.insert(0, PositionShift(item_id=item_id, old_position=position))

        demoted = UnrankedItem(
            id=source.id,
            owner_id=self.owner_id,
            item_id=item_id,
            created_at=created_at or _utcnow(),
            metadata=dict(source.metadata),
        )
        self._commit(shifted, [*self._unranked, demoted])
        return shifts

    def rerank(self, item_id: int, new_position: int) -> list[PositionShift]:
        """Re-place an already ranked item (the re-rank flow)."""
        return self.move_to(self.position_of(item_id), new_position)

    def place_first_pair(self, winner_id: int, loser_id: int) -> list[PositionShift]:
        """
        Seed an empty ranking from a single head-to-head: winner #1, loser #2.

        Either item may come from the unranked collection or be brand new.
        """
        if self._ranked:
            raise RankOrderInvariantError(
                "place_first_pair needs an empty ranking, "
                f"found {len(self._ranked)} ranked items"
            )
        if winner_id == loser_id:
            raise DuplicateItemError("winner and loser must be different items")

        scratch = self.copy()
        shifts = scratch.rank(winner_id, 1) + scratch.rank(loser_id, 2)
        self._ranked, self._unranked = scratch._ranked, scratch._unranked
        return shifts

    def rank(self, item_id: int, position: int) -> list[PositionShift]:
        """place() if the item is waiting in the unranked list, else insert_at()."""
        if any(item.item_id == item_id for item in self._unranked):
            return self.place(item_id, position)
        return self.insert_at(position, item_id)

    # ── Internals ────────────────────────────────────────────────────────────

    def _knows(self, item_id: int) -> bool:
        return self.is_ranked(item_id) or any(
            item.item_id == item_id for item in self._unranked
        )

    def _find_unranked(self, item_id: int) -> UnrankedItem:
        for item in self._unranked:
            if item.item_id == item_id:
                return item
        raise RankingNotFoundError(f"Item {item_id} is not in the unranked list")

    @staticmethod
    def _require_position(position: int, upper: int) -> None:
        if not 1 <= position <= upper:
            raise InvalidPositionError(
                f"position {position} is outside 1..{upper}"
            )

    @staticmethod
    def _shift(
        items: Iterable[RankedItem],
        predicate: Callable[[int], bool],
        delta: int,
    ) -> tuple[list[RankedItem], list[PositionShift]]:
        out: list[RankedItem] = []
        shifts: list[PositionShift] = []
        for item in items:
            if predicate(item.rank_position):
                new_position = item.rank_position + delta
                out.append(item.model_copy(update={"rank_position": new_position}))
                shifts.append(PositionShift(
                    item_id=item.item_id,
                    old_position=item.rank_position,
                    new_position=new_position,
                ))
            else:
                out.append(item)
        return out, shifts

    def _check(
        self,
        ranked: tuple[RankedItem, ...],
        unranked: tuple[UnrankedItem, ...],
    ) -> None:
        validate_positions(ranked)

        for item in (*ranked, *unranked):
            if item.owner_id != self.owner_id:
                raise RankOrderInvariantError(
                    f"item {item.item_id} belongs to {item.owner_id}, not {self.owner_id}"
                )

        ids = [item.item_id for item in ranked] + [item.item_id for item in unranked]
        if len(ids) != len(set(ids)):
            raise RankOrderInvariantError("an item appears more than once in the list")

    def _commit(
        self,
        ranked: list[RankedItem],
        unranked: list[UnrankedItem],
    ) -> None:
        ranked_items = tuple(sorted(ranked, key=lambda i: i.rank_position))
        unranked_items = tuple(sorted(unranked, key=_unranked_sort_key))
        self._check(ranked_items, unranked_items)
        self._ranked, self._unranked = ranked_items, unranked_items
        logger.debug(
            "owner=%s ranked=%d unranked=%d",
            self.owner_id,
            len(ranked_items),
            len(unranked_items),
        )
