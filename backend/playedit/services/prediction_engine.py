"""
Prediction Engine
─────────────────
Estimates where an unranked game would land in the owner's list, as a
percentile (100 = would become their #1), with a 1-5 confidence.

Three independent tiers, any of which may be unavailable:
  • friends     — taste-match weighted average of friends' rank percentiles
  • genre / tag — the owner's own average percentile per shared genre / tag
  • metacritic  — least-squares line of the owner's percentile on critic score

The blend weights, the small-library boost and the "genre drag" penalty are
fixed policy and reproduced exactly; do not tune them here.
"""
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from playedit.schemas.predictions import (
    TIER_FRIENDS,
    TIER_GENRE,
    TIER_METACRITIC,
    FriendSignal,
    GamePrediction,
    PredictionContext,
    PredictionTarget,
    RankedGameData,
)
from playedit.services.taste_match import identity_of

logger = logging.getLogger(__name__)

# ── Policy constants ──────────────────────────────────────────────────────────

MIN_FRIEND_TASTE_MATCH = 30
MIN_TAG_MATCHES = 2
MIN_METACRITIC_GAMES = 5
SMALL_LIBRARY_SIZE = 30
STRONG_GENRE_LIBRARY_SIZE = 10
THIN_DATA_LIBRARY_SIZE = 5
AFFINITY_BOOST_RATE = 0.3
AFFINITY_FLOOR = 20.0

# (friend, genre/tag, metacritic) before normalization
WEIGHTS_THIN_DATA = (0.0, 0.20, 0.80)
WEIGHTS_MANY_FRIENDS = (0.60, 0.30, 0.10)
WEIGHTS_ONE_FRIEND = (0.55, 0.30, 0.15)
WEIGHTS_NO_FRIENDS = (0.0, 0.70, 0.30)

GENRE_DRAG_MAX_PENALTY = 20.0
GENRE_DRAG_REDUCTION_RATE = 0.4


def rank_percentile(rank_position: int, total: int) -> float:
    """Position 1 -> 100, position *total* -> 0."""
    return (1.0 - (rank_position - 1) / max(total - 1, 1)) * 100.0


def count_confidence(matches: int) -> float:
    """How much of the small-library boost a genre/tag with *matches* games earns."""
    if matches >= 5:
        return 1.0
    if matches >= 3:
        return 0.9
    return 0.75


@dataclass(frozen=True)
class FriendTier:
    percentile: float
    signals: list[FriendSignal]

    @property
    def count(self) -> int:
        return len(self.signals)

    @property
    def average_taste_match(self) -> int:
        return sum(s.taste_match for s in self.signals) // max(len(self.signals), 1)


class PredictionEngine:
    """
    Stateless; one instance can serve any number of owners and threads.
    """

    def predict(
        self,
        target: PredictionTarget,
        context: PredictionContext,
    ) -> GamePrediction | None:
        """Predict *target* for the owner described by *context*, or None."""
        if not context.has_enough_data:
            return None

        friends = self.friend_tier(target, context)
        genre = self.genre_affinity(target.genres, context)
        tag = self.tag_affinity(target.tags, context)
        genre_tag = self.blend_genre_tag(genre, tag)
        metacritic = self.metacritic_tier(target.metacritic_score, context)

        blended = self.blend(friends, genre_tag, metacritic, context)
        if blended is None:
            return None

        tiers_used = []
        if friends is not None:
            tiers_used.append(TIER_FRIENDS)
        if genre_tag is not None:
            tiers_used.append(TIER_GENRE)
        if metacritic is not None:
            tiers_used.append(TIER_METACRITIC)

        return GamePrediction(
            predicted_percentile=blended,
            confidence=self.confidence(friends, genre_tag, metacritic, context),
            tiers_used=tiers_used,
            friend_signals=friends.signals if friends else [],
            top_genre_affinity=genre,
            top_tag_affinity=tag,
        )

    # ── Tier 1: friends ──────────────────────────────────────────────────────

    def friend_tier(
        self,
        target: PredictionTarget,
        context: PredictionContext,
    ) -> FriendTier | None:
        target_key = target.canonical_id if target.canonical_id is not None else target.item_id

        signals = []
        for friend in context.friends:
            if friend.taste_match < MIN_FRIEND_TASTE_MATCH:
                continue

            match = next(
                (
                    game for game in friend.games
                    if identity_of(game) == target_key or game.item_id == target.item_id
                ),
                None,
            )
            if match is None:
                continue

            signals.append(FriendSignal(
                friend_name=friend.username,
                friend_rank_percentile=rank_percentile(match.rank_position, match.total_games),
                taste_match=friend.taste_match,
                weight=friend.taste_match / 100.0,
            ))

        if not signals:
            return None

        total_weight = sum(s.weight for s in signals)
        weighted = sum(s.friend_rank_percentile * s.weight for s in signals)
        return FriendTier(percentile=weighted / total_weight, signals=signals)

    # ── Tier 2: genre / tag affinity ─────────────────────────────────────────

    def genre_affinity(
        self,
        genres: Sequence[str],
        context: PredictionContext,
    ) -> float | None:
        return self._affinity(genres, context, lambda g: g.genres, min_matches=1)

    def tag_affinity(
        self,
        tags: Sequence[str],
        context: PredictionContext,
    ) -> float | None:
        return self._affinity(tags, context, lambda g: g.tags, min_matches=MIN_TAG_MATCHES)

    def _affinity(self, labels, context, labels_of, *, min_matches: int) -> float | None:
        if not labels or context.my_game_count < THIN_DATA_LIBRARY_SIZE:
            return None

        total = context.my_game_count
        scores = []
        for label in labels:
            matching: list[RankedGameData] = [g for g in context.my_games if label in labels_of(g)]
            if len(matching) < min_matches:
                continue

            average = sum(rank_percentile(g.rank_position, total) for g in matching) / len(matching)
            if total < SMALL_LIBRARY_SIZE and average > 50:
                average += (average - 50) * AFFINITY_BOOST_RATE * count_confidence(len(matching))
            scores.append(average)

        if not scores:
            return None
        return max(AFFINITY_FLOOR, sum(scores) / len(scores))

    @staticmethod
    def blend_genre_tag(genre: float | None, tag: float | None) -> float | None:
        if genre is not None and tag is not None:
            return genre * 0.5 + tag * 0.5
        return genre if genre is not None else tag

    # ── Tier 3: metacritic ───────────────────────────────────────────────────

    def metacritic_tier(
        self,
        metacritic: int | None,
        context: PredictionContext,
    ) -> float | None:
        if not metacritic or metacritic <= 0:
            return None

        scored = [g for g in context.my_games if (g.metacritic_score or 0) > 0]
        if len(scored) < MIN_METACRITIC_GAMES:
            return None

        total = context.my_game_count
        n = float(len(scored))
        xs = [float(g.metacritic_score) for g in scored]
        ys = [rank_percentile(g.rank_position, total) for g in scored]

        sum_x = sum(xs)
        sum_y = sum(ys)
        sum_xy = sum(x * y for x, y in zip(xs, ys))
        sum_x2 = sum(x * x for x in xs)

        variance_x = n * sum_x2 - sum_x * sum_x
        if variance_x <= 0:
            return None

        slope = (n * sum_xy - sum_x * sum_y) / variance_x
        intercept = sum_y / n - slope * (sum_x / n)
        return max(0.0, min(100.0, intercept + slope * metacritic))

    # ── Blend ────────────────────────────────────────────────────────────────

    @staticmethod
    def tier_weights(
        friends: FriendTier | None,
        genre_tag: float | None,
        metacritic: float | None,
        context: PredictionContext,
    ) -> tuple[float, float, float]:
        """Normalized (friend, genre/tag, metacritic) weights; all zero if nothing is available."""
        friend_count = friends.count if friends else 0

        if context.my_game_count < THIN_DATA_LIBRARY_SIZE:
            table = WEIGHTS_THIN_DATA
        elif friend_count >= 2:
            table = WEIGHTS_MANY_FRIENDS
        elif friend_count == 1:
            table = WEIGHTS_ONE_FRIEND
        else:
            table = WEIGHTS_NO_FRIENDS

        friend_w = table[0] if friends is not None else 0.0
        genre_w = table[1] if genre_tag is not None else 0.0
        meta_w = table[2] if metacritic is not None else 0.0

        total = friend_w + genre_w + meta_w
        if total <= 0:
            return 0.0, 0.0, 0.0
        return friend_w / total, genre_w / total, meta_w / total

    def blend(
        self,
        friends: FriendTier | None,
        genre_tag: float | None,
        metacritic: float | None,
        context: PredictionContext,
    ) -> float | None:
        if friends is None and genre_tag is None and metacritic is None:
            return None

        friend_w, genre_w, meta_w = self.tier_weights(friends, genre_tag, metacritic, context)
        if friend_w + genre_w + meta_w <= 0:
            return None

        blended = 0.0
        if friends is not None:
            blended += friends.percentile * friend_w
        if genre_tag is not None:
            blended += genre_tag * genre_w
        if metacritic is not None:
            blended += metacritic * meta_w

        logger.debug(
            "blend: friend=%s genre_tag=%s metacritic=%s blended=%.2f",
            friends.percentile if friends else None,
            genre_tag,
            metacritic,
            blended,
        )

        # Genre drag: friends love it, but the owner's genre/tag history disagrees
        if friends is not None and genre_tag is not None:
            if genre_tag < 50:
                blended -= (50 - genre_tag) / 50.0 * GENRE_DRAG_MAX_PENALTY
            elif genre_tag < 70 and friends.percentile > 80:
                reduction = (70 - genre_tag) / 20.0 * GENRE_DRAG_REDUCTION_RATE
                blended -= friends.percentile * friend_w * reduction

        return max(0.0, min(100.0, blended))

    # ── Confidence ───────────────────────────────────────────────────────────

    @staticmethod
    def confidence(
        friends: FriendTier | None,
        genre_tag: float | None,
        metacritic: float | None,
        context: PredictionContext,
    ) -> int:
        friend_count = friends.count if friends else 0
        avg_match = friends.average_taste_match if friends else 0
        strong_genre = genre_tag is not None and context.my_game_count >= STRONG_GENRE_LIBRARY_SIZE
        has_metacritic = metacritic is not None

        if friend_count >= 3 and avg_match >= 50 and strong_genre:
            return 5
        if friend_count >= 2 and avg_match >= 40:
            return 4
        if friend_count >= 2 or (strong_genre and has_metacritic):
            return 4
        if (friend_count == 1 and strong_genre) or strong_genre:
            return 3
        if genre_tag is not None:
            return 2
        return 1


_default_engine = PredictionEngine()


def predict(target: PredictionTarget, context: PredictionContext) -> GamePrediction | None:
    """Module-level convenience around a shared, stateless engine."""
    return _default_engine.predict(target, context)
