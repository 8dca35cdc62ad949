"""
Taste match request/response schemas.
"""
from typing import Literal

from pydantic import BaseModel, Field


class RankedEntry(BaseModel):
    """Minimal ranked row used for cross-user matching."""

    item_id: int
    canonical_id: int | None = None
    rank_position: int = Field(ge=1)


class SharedRankItem(BaseModel):
    """A game both users have ranked."""

    identity: int  # canonical id, or the raw item id when none is recorded
    my_rank: int
    their_rank: int
    my_relative_rank: int
    their_relative_rank: int
    rank_difference: int  # relative ranks; positive = I placed it lower


class TasteMatchResult(BaseModel):
    """0-100 similarity between two ranked lists."""

    score: int = Field(ge=0, le=100)
    method: Literal["none", "linear", "spearman"]
    shared_count: int
    my_total: int
    their_total: int
    agreements: int = 0  # same relative rank
    shared: list[SharedRankItem] = Field(default_factory=list)
    biggest_divergences: list[SharedRankItem] = Field(default_factory=list)


class TasteMatchResponse(TasteMatchResult):
    """GET /taste/{owner_id}/match/{friend_id}."""

    owner_id: str
    friend_id: str
    friend_username: str
