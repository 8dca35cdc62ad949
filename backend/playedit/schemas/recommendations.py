"""
Recommendation schemas.

A Recommendation is one scored candidate. Once persisted it carries an id
and an action the owner can move it through:

  pending -> dismissed | want_to_play | ranked
"""
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from playedit.schemas.predictions import GamePrediction

RecommendationSource = Literal["friend_ranked", "genre_discovery"]
RecommendationAction = Literal["pending", "dismissed", "want_to_play", "ranked"]


class CatalogGame(BaseModel):
    """Catalog snapshot for one game (title, art, genres, tags, critic score)."""

    item_id: int
    canonical_id: int | None = None
    title: str
    cover_url: str | None = None
    genres: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    metacritic_score: int | None = None


class RecommendationCandidate(BaseModel):
    game: CatalogGame
    source: RecommendationSource
    source_friend_id: str | None = None
    source_friend_name: str | None = None
    source_friend_rank: int | None = None
    source_friend_total: int | None = None


class Recommendation(RecommendationCandidate):
    id: int | None = None
    action: RecommendationAction = "pending"
    prediction: GamePrediction
    predicted_summary: str


class RecommendationOutcome(BaseModel):
    """How a prediction held up once the game was actually ranked."""

    actual_rank_position: int
    actual_percentile: float
    prediction_accuracy: float  # predicted - actual; positive = overestimated


class RecommendationState(BaseModel):
    """Where a stored recommendation stands after the owner acted on it."""

    id: int
    item_id: int
    action: RecommendationAction
    dismiss_reason: str | None = None
    dismissed_until: datetime | None = None
    acted_at: datetime | None = None
    outcome: RecommendationOutcome | None = None


# ── API payloads ──────────────────────────────────────────────────────────────


class DismissRequest(BaseModel):
    """Payload for POST /recommendations/{owner_id}/{recommendation_id}/dismiss."""

    reason: str | None = Field(default=None, max_length=200)


class RecommendationListResponse(BaseModel):
    owner_id: str
    recommendations: list[Recommendation]
