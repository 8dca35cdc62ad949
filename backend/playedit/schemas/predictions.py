"""
Prediction schemas.

PredictionContext is assembled once per screen (see
services.context_builder) and reused across many predict() calls.
"""
import math

from pydantic import BaseModel, Field

TIER_FRIENDS = "friends"
TIER_GENRE = "genre"
TIER_METACRITIC = "metacritic"

CONFIDENCE_LABELS = {
    1: "Guess",
    2: "Low",
    3: "Medium",
    4: "High",
    5: "Very High",
}

# (min share of the list, min absolute spread) per confidence level
_RANK_SPREAD = {
    5: (0.05, 1),
    4: (0.10, 2),
    3: (0.15, 3),
    2: (0.20, 4),
    1: (0.30, 5),
}

MIN_RANKED_FOR_PREDICTION = 5


# ── Inputs ────────────────────────────────────────────────────────────────────


class RankedGameData(BaseModel):
    """One of the owner's ranked games, with the catalog fields tiers need."""

    item_id: int
    canonical_id: int | None = None
    rank_position: int = Field(ge=1)
    genres: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    metacritic_score: int | None = None


class FriendRankedGame(BaseModel):
    item_id: int
    canonical_id: int | None = None
    rank_position: int = Field(ge=1)
    total_games: int = Field(ge=1)


class FriendData(BaseModel):
    user_id: str
    username: str
    taste_match: int = Field(ge=0, le=100)
    games: list[FriendRankedGame] = Field(default_factory=list)


class PredictionContext(BaseModel):
    my_games: list[RankedGameData] = Field(default_factory=list)
    friends: list[FriendData] = Field(default_factory=list)

    @property
    def my_game_count(self) -> int:
        return len(self.my_games)

    @property
    def has_enough_data(self) -> bool:
        return self.my_game_count >= MIN_RANKED_FOR_PREDICTION


class PredictionTarget(BaseModel):
    """The unranked game being predicted."""

    item_id: int
    canonical_id: int | None = None
    genres: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    metacritic_score: int | None = None


# ── Outputs ───────────────────────────────────────────────────────────────────


class FriendSignal(BaseModel):
    friend_name: str
    friend_rank_percentile: float  # 100 = their #1
    taste_match: int
    weight: float


class GamePrediction(BaseModel):
    predicted_percentile: float = Field(ge=0, le=100)  # 100 = would be their #1
    confidence: int = Field(ge=1, le=5)
    tiers_used: list[str] = Field(default_factory=list)
    friend_signals: list[FriendSignal] = Field(default_factory=list)
    top_genre_affinity: float | None = None
    top_tag_affinity: float | None = None

    @property
    def confidence_label(self) -> str:
        return CONFIDENCE_LABELS[self.confidence]

    @property
    def summary_text(self) -> str:
        if self.predicted_percentile >= 65:
            return "You'll love this"
        if self.predicted_percentile >= 40:
            return "Could go either way"
        return "Not your vibe"

    def estimated_rank(self, list_size: int) -> tuple[int, int]:
        """
        Likely landing range (lower, upper) if the game joined a list of
        *list_size* ranked games. Lower confidence widens the range.
        """
        raw_center = (list_size + 1) * (1.0 - self.predicted_percentile / 100.0)
        center = max(1, math.floor(raw_center + 0.5))
        share, floor = _RANK_SPREAD[self.confidence]
        spread = max(floor, int(list_size * share))
        return max(1, center - spread), min(list_size + 1, center + spread)


class PredictionRequest(BaseModel):
    """Payload for POST /predictions."""

    context: PredictionContext
    targets: list[PredictionTarget]


class PredictionResult(BaseModel):
    item_id: int
    prediction: GamePrediction | None = None
    confidence_label: str | None = None
    summary_text: str | None = None
