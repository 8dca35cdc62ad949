"""
Taste match computation.

How similar are two users' rankings?

1. Shared games are matched by canonical id (falling back to the raw item
   id), so different editions of the same game line up.
2. No shared games -> 0, "no signal".
3. One shared game -> Spearman is undefined, use the linear distance of the
   two positions relative to the longer of the two full lists.
4. Two or more -> Spearman's rho over the shared games re-ranked 1..n within
   each list, mapped from [-1, 1] onto [0, 100].

Scores are truncated to whole percentages.
"""
import logging
from collections.abc import Sequence
from typing import Protocol

from playedit.schemas.taste import SharedRankItem, TasteMatchResult

logger = logging.getLogger(__name__)

DIVERGENCE_LIMIT = 5


class RankedRow(Protocol):
    """Anything carrying an item id, an optional canonical id and a position."""

    item_id: int
    canonical_id: int | None
    rank_position: int


def identity_of(row: RankedRow) -> int:
    return row.canonical_id if row.canonical_id is not None else row.item_id


def _clamp_score(value: float) -> int:
    return max(0, min(100, int(value)))


def _shared_pairs(
    mine: Sequence[RankedRow],
    theirs: Sequence[RankedRow],
) -> list[tuple[int, int, int]]:
    """(identity, my_rank, their_rank) for every one of my games they also ranked."""
    first_of_theirs: dict[int, RankedRow] = {}
    for row in theirs:
        first_of_theirs.setdefault(identity_of(row), row)

    pairs = []
    for row in mine:
        key = identity_of(row)
        partner = first_of_theirs.get(key)
        if partner is not None:
            pairs.append((key, row.rank_position, partner.rank_position))
    return pairs


def _relative_ranks(ranks: Sequence[int]) -> list[int]:
    """Re-rank *ranks* 1..n among themselves (stable on ties)."""
    order = sorted(range(len(ranks)), key=lambda i: ranks[i])
    relative = [0] * len(ranks)
    for rank, idx in enumerate(order, start=1):
        relative[idx] = rank
    return relative


def spearman_rho(my_relative: Sequence[int], their_relative: Sequence[int]) -> float:
    n = len(my_relative)
    sum_d_squared = sum((a - b) ** 2 for a, b in zip(my_relative, their_relative))
    denominator = n * (n * n - 1)
    if denominator == 0:
        return 0.0
    return 1 - (6 * sum_d_squared) / denominator


def compare_taste(
    mine: Sequence[RankedRow],
    theirs: Sequence[RankedRow],
) -> TasteMatchResult:
    """Full taste-match breakdown between my ranked list and theirs."""
    pairs = _shared_pairs(mine, theirs)
    my_total = len(mine)
    their_total = len(theirs)

    if not pairs:
        return TasteMatchResult(
            score=0,
            method="none",
            shared_count=0,
            my_total=my_total,
            their_total=their_total,
        )

    logger.debug(
        "taste match: %d shared games, mine=%d theirs=%d",
        len(pairs),
        my_total,
        their_total,
    )

    if len(pairs) == 1:
        key, my_rank, their_rank = pairs[0]
        longest = max(my_total, their_total)
        difference = abs(my_rank - their_rank)
        score = 100 if longest == 0 else _clamp_score(100 - int(difference / longest * 100))
        item = SharedRankItem(
            identity=key,
            my_rank=my_rank,
            their_rank=their_rank,
            my_relative_rank=1,
            their_relative_rank=1,
            rank_difference=0,
        )
        return TasteMatchResult(
            score=score,
            method="linear",
            shared_count=1,
            my_total=my_total,
            their_total=their_total,
            agreements=1 if difference == 0 else 0,
            shared=[item],
        )

    my_relative = _relative_ranks([p[1] for p in pairs])
    their_relative = _relative_ranks([p[2] for p in pairs])
    rho = spearman_rho(my_relative, their_relative)
    score = _clamp_score((rho + 1) / 2 * 100)

    shared = [
        SharedRankItem(
            identity=key,
            my_rank=my_rank,
            their_rank=their_rank,
            my_relative_rank=mr,
            their_relative_rank=tr,
            rank_difference=mr - tr,
        )
        for (key, my_rank, their_rank), mr, tr in zip(pairs, my_relative, their_relative)
    ]
    shared.sort(key=lambda s: s.my_relative_rank)

    divergent = [s for s in shared if s.rank_difference != 0]
    divergent.sort(key=lambda s: -abs(s.rank_difference))

    return TasteMatchResult(
        score=score,
        method="spearman",
        shared_count=len(shared),
        my_total=my_total,
        their_total=their_total,
        agreements=sum(1 for s in shared if s.rank_difference == 0),
        shared=shared,
        biggest_divergences=divergent[:DIVERGENCE_LIMIT],
    )


def compute_taste_match(mine: Sequence[RankedRow], theirs: Sequence[RankedRow]) -> int:
    """0-100 taste match; 0 when the lists share nothing."""
    return compare_taste(mine, theirs).score
