"""
Comparison session schemas.

A ComparisonSessionSnapshot carries everything needed to resume a session,
so HTTP clients can own the state between head-to-head steps.
"""
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

MAX_COMPARISONS = 10


class ComparisonChoice(str, Enum):
    """Which side of the head-to-head the user preferred."""

    NEW_ITEM = "new_item"
    EXISTING_ITEM = "existing_item"


class SessionState(str, Enum):
    AWAITING_CHOICE = "awaiting_choice"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class ComparisonBounds(BaseModel):
    """Binary-search window over the existing list (0-based indices)."""

    model_config = ConfigDict(frozen=True)

    low_index: int
    high_index: int
    comparison_count: int = Field(default=0, ge=0)


class ComparisonSessionSnapshot(BaseModel):
    new_item_id: int
    existing_item_ids: list[int]
    max_comparisons: int = Field(default=MAX_COMPARISONS, ge=1, le=MAX_COMPARISONS)
    state: SessionState
    bounds: ComparisonBounds
    history: list[ComparisonBounds] = Field(default_factory=list)
    resolved_position: int | None = None


# ── API payloads ──────────────────────────────────────────────────────────────


class StartComparisonRequest(BaseModel):
    """Payload for POST /comparisons/start."""

    new_item_id: int
    existing_item_ids: list[int] = Field(
        default_factory=list,
        description="The owner's ranked item ids, best first",
    )


class ChooseRequest(BaseModel):
    """Payload for POST /comparisons/choose."""

    session: ComparisonSessionSnapshot
    choice: ComparisonChoice


class UndoRequest(BaseModel):
    """Payload for POST /comparisons/undo."""

    session: ComparisonSessionSnapshot


class ComparisonStepResponse(BaseModel):
    session: ComparisonSessionSnapshot
    current_opponent_id: int | None = None
    resolved_position: int | None = None
    can_undo: bool = False
    estimated_total: int
