"""
Recommendation service: candidate gathering and scoring.

Candidates come from two sources:
  1. friend_ranked   — the top half of lists from friends with a strong
                       taste match (70+)
  2. genre_discovery — well-reviewed catalog games (metacritic 75+) in one
                       of the owner's three favourite genres

Every candidate goes through the PredictionEngine; only "You'll love this"
predictions (65+) are kept, best first.

Stored recommendations fill a fixed number of slots. A new batch skips
games that are still pending, saved to want-to-play, or dismissed less than
six months ago. Ranking a recommended game records how close the
prediction came.
"""
import logging
from collections import defaultdict
from collections.abc import Collection, Iterable, Mapping, Sequence
from datetime import datetime, timedelta

from playedit.schemas.predictions import PredictionContext, PredictionTarget
from playedit.schemas.recommendations import (
    CatalogGame,
    Recommendation,
    RecommendationCandidate,
    RecommendationAction,
    RecommendationOutcome,
)
from playedit.services.prediction_engine import PredictionEngine, rank_percentile

logger = logging.getLogger(__name__)

FRIEND_CANDIDATE_MIN_MATCH = 70
GENRE_CANDIDATE_MIN_METACRITIC = 75
GENRE_CANDIDATE_LIMIT = 20
TOP_GENRE_MIN_GAMES = 2
DEFAULT_SLOTS = 10
DEFAULT_MIN_PERCENTILE = 65.0
DISMISS_DURATION = timedelta(days=182)


class RecommendationStateError(Exception):
    """Raised when a stored recommendation cannot take the requested action."""
    pass


def top_genres(context: PredictionContext, limit: int = 3) -> list[str]:
    """The owner's best-loved genres (2+ games), highest average percentile first."""
    totals: dict[str, list[float]] = defaultdict(list)
    for game in context.my_games:
        percentile = rank_percentile(game.rank_position, context.my_game_count)
        for genre in game.genres:
            totals[genre].append(percentile)

    averages = [
        (genre, sum(values) / len(values))
        for genre, values in totals.items()
        if len(values) >= TOP_GENRE_MIN_GAMES
    ]
    averages.sort(key=lambda pair: -pair[1])
    return [genre for genre, _ in averages[:limit]]


def gather_friend_candidates(
    context: PredictionContext,
    catalog: Mapping[int, CatalogGame],
    excluded: Collection[int] = (),
) -> list[RecommendationCandidate]:
    """Games from the top half of close friends' lists the owner has not seen."""
    candidates: list[RecommendationCandidate] = []
    seen: set[int] = set(excluded)

    for friend in context.friends:
        if friend.taste_match < FRIEND_CANDIDATE_MIN_MATCH:
            continue

        top_half = max(1, len(friend.games) // 2)
        ordered = sorted(friend.games, key=lambda g: g.rank_position)[:top_half]
        for game in ordered:
            if game.item_id in seen:
                continue
            info = catalog.get(game.item_id)
            if info is None:
                continue

            seen.add(game.item_id)
            candidates.append(RecommendationCandidate(
                game=info,
                source="friend_ranked",
                source_friend_id=friend.user_id,
                source_friend_name=friend.username,
                source_friend_rank=game.rank_position,
                source_friend_total=len(friend.games),
            ))

    return candidates


def gather_genre_candidates(
    context: PredictionContext,
    pool: Iterable[CatalogGame],
    excluded: Collection[int] = (),
    limit: int = GENRE_CANDIDATE_LIMIT,
) -> list[RecommendationCandidate]:
    """Well-reviewed games from *pool* sharing one of the owner's top genres."""
    favourites = set(top_genres(context))
    if not favourites:
        return []

    candidates: list[RecommendationCandidate] = []
    seen: set[int] = set(excluded)
    ranked_pool = sorted(
        (g for g in pool if (g.metacritic_score or 0) >= GENRE_CANDIDATE_MIN_METACRITIC),
        key=lambda g: -(g.metacritic_score or 0),
    )
    for game in ranked_pool:
        if game.item_id in seen:
            continue
        if not favourites.intersection(game.genres):
            continue

        seen.add(game.item_id)
        candidates.append(RecommendationCandidate(game=game, source="genre_discovery"))
        if len(candidates) >= limit:
            break

    return candidates


def score_candidates(
    candidates: Sequence[RecommendationCandidate],
    context: PredictionContext,
    *,
    slots: int = DEFAULT_SLOTS,
    min_percentile: float = DEFAULT_MIN_PERCENTILE,
    engine: PredictionEngine | None = None,
) -> list[Recommendation]:
    """Predict every candidate and keep the best *slots* at or above *min_percentile*."""
    engine = engine or PredictionEngine()
    scored: list[Recommendation] = []

    for candidate in candidates:
        game = candidate.game
        prediction = engine.predict(
            PredictionTarget(
                item_id=game.item_id,
                canonical_id=game.canonical_id,
                genres=game.genres,
                tags=game.tags,
                metacritic_score=game.metacritic_score,
            ),
            context,
        )
        if prediction is None or prediction.predicted_percentile < min_percentile:
            continue

        scored.append(Recommendation(
            **candidate.model_dump(),
            prediction=prediction,
            predicted_summary=prediction.summary_text,
        ))

    scored.sort(key=lambda r: -r.prediction.predicted_percentile)
    logger.debug(
        "scored %d candidates, %d above %.0f",
        len(candidates),
        len(scored),
        min_percentile,
    )
    return scored[: max(0, slots)]


def prediction_outcome(
    predicted_percentile: float,
    rank_position: int,
    total_games: int,
) -> RecommendationOutcome:
    """Compare a recommendation's prediction with where the game actually landed."""
    actual = rank_percentile(rank_position, total_games)
    return RecommendationOutcome(
        actual_rank_position=rank_position,
        actual_percentile=actual,
        prediction_accuracy=predicted_percentile - actual,
    )


# ── Stored recommendation state ──────────────────────────────────────────────


def open_slots(pending_count: int, slots: int = DEFAULT_SLOTS) -> int:
    """How many new recommendations a batch may add next to the pending ones."""
    return max(0, slots - pending_count)


def dismissal_expiry(now: datetime) -> datetime:
    return now + DISMISS_DURATION


def blocks_new_batch(
    action: RecommendationAction,
    dismissed_until: datetime | None,
    now: datetime,
) -> bool:
    """
    True if a stored recommendation keeps its game out of the next batch.

    Pending and want-to-play games stay out; a dismissed game only until
    its dismissal expires. Ranked games are already in the library.
    """
    if action in ("pending", "want_to_play"):
        return True
    if action == "dismissed":
        return dismissed_until is not None and dismissed_until > now
    return False


def check_action(current: RecommendationAction, target: RecommendationAction) -> None:
    """Ranked recommendations are closed; the owner can only dismiss or save the rest."""
    if target not in ("dismissed", "want_to_play"):
        raise RecommendationStateError(f"cannot set a recommendation to {target}")
    if current == "ranked":
        raise RecommendationStateError("recommendation was already ranked")
