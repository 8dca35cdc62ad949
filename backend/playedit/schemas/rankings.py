"""
Ranking request/response schemas.

RankedItem / UnrankedItem are the two disjoint collections an owner's list
is made of. Both are frozen: RankOrder replaces them, it never mutates them.
"""
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RankedItem(BaseModel):
    """A game holding a position in the owner's contiguous 1..N ranking."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int | None = None
    owner_id: str
    item_id: int
    rank_position: int = Field(ge=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class UnrankedItem(BaseModel):
    """A logged game with no position; peers are ordered by created_at."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int | None = None
    owner_id: str
    item_id: int
    created_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are UTC so peers stay comparable
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class PositionShift(BaseModel):
    """
    One row of the change set produced by a RankOrder operation.

    old_position None  -> the item just entered the ranked sequence.
    new_position None  -> the item just left it (removed or unranked).
    """

    model_config = ConfigDict(frozen=True)

    item_id: int
    old_position: int | None = None
    new_position: int | None = None

    @model_validator(mode="after")
    def must_change_something(self) -> "PositionShift":
        if self.old_position is None and self.new_position is None:
            raise ValueError("a shift needs an old or a new position")
        return self


# ── API payloads ──────────────────────────────────────────────────────────────


class PlaceRankingRequest(BaseModel):
    """Payload for POST /rankings/{owner_id}/place."""

    item_id: int
    position: int = Field(ge=1)


class MoveRankingRequest(BaseModel):
    """Payload for PATCH /rankings/{owner_id}/move."""

    item_id: int
    new_position: int = Field(ge=1)


class RankingListResponse(BaseModel):
    """An owner's full list: ranked by position, unranked by creation time."""

    owner_id: str
    ranked: list[RankedItem]
    unranked: list[UnrankedItem]


class RankingChangeResponse(BaseModel):
    """Result of a place / move / unrank / remove call."""

    owner_id: str
    shifts: list[PositionShift]
    ranked: list[RankedItem]
