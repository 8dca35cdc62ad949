import unittest

from playedit.schemas.predictions import (
    FriendData,
    FriendRankedGame,
    FriendSignal,
    GamePrediction,
    PredictionContext,
    PredictionTarget,
    RankedGameData,
)
from playedit.services.prediction_engine import (
    FriendTier,
    PredictionEngine,
    count_confidence,
    predict,
    rank_percentile,
)


def _games(count: int, genres: dict[int, list[str]] | None = None, **fields) -> list[RankedGameData]:
    genres = genres or {}
    return [
        RankedGameData(item_id=rank, rank_position=rank, genres=genres.get(rank, []), **fields)
        for rank in range(1, count + 1)
    ]


def _friend(name: str, match: int, item_id: int, rank: int, total: int) -> FriendData:
    return FriendData(
        user_id=name,
        username=name,
        taste_match=match,
        games=[FriendRankedGame(item_id=item_id, rank_position=rank, total_games=total)],
    )


def _tier(*pairs: tuple[float, int]) -> FriendTier:
    signals = [
        FriendSignal(
            friend_name=f"f{i}",
            friend_rank_percentile=percentile,
            taste_match=match,
            weight=match / 100.0,
        )
        for i, (percentile, match) in enumerate(pairs)
    ]
    total = sum(s.weight for s in signals)
    return FriendTier(
        percentile=sum(s.friend_rank_percentile * s.weight for s in signals) / total,
        signals=signals,
    )


class TestPredictionHelpers(unittest.TestCase):
    def test_rank_percentile(self) -> None:
        self.assertEqual(rank_percentile(1, 10), 100.0)
        self.assertEqual(rank_percentile(10, 10), 0.0)
        self.assertEqual(rank_percentile(1, 1), 100.0)
        self.assertAlmostEqual(rank_percentile(2, 11), 90.0)

    def test_count_confidence(self) -> None:
        self.assertEqual(count_confidence(6), 1.0)
        self.assertEqual(count_confidence(3), 0.9)
        self.assertEqual(count_confidence(2), 0.75)


class TestPredictionEngine(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = PredictionEngine()

    def test_four_ranked_games_is_not_enough(self) -> None:
        context = PredictionContext(
            my_games=_games(4, {1: ["RPG"], 2: ["RPG"]}),
            friends=[_friend("ana", 90, 77, 1, 10)],
        )
        target = PredictionTarget(item_id=77, genres=["RPG"], metacritic_score=90)
        self.assertIsNone(self.engine.predict(target, context))
        self.assertIsNone(predict(target, context))

    def test_no_signal_at_all(self) -> None:
        context = PredictionContext(my_games=_games(10))
        self.assertIsNone(self.engine.predict(PredictionTarget(item_id=77), context))

    def test_friend_dominant_blend_with_genre_drag(self) -> None:
        context = PredictionContext(my_games=_games(10))
        friends = _tier((90.0, 80), (70.0, 60))
        self.assertAlmostEqual(friends.percentile, 81.428571, places=5)

        weights = self.engine.tier_weights(friends, 65.0, None, context)
        self.assertAlmostEqual(weights[0], 2 / 3)
        self.assertAlmostEqual(weights[1], 1 / 3)
        self.assertEqual(weights[2], 0.0)

        # undragged blend is ~75.95; friend share reduced by (70-65)/20*0.4
        blended = self.engine.blend(friends, 65.0, None, context)
        self.assertAlmostEqual(blended, 70.523810, places=5)

    def test_genre_drag_below_fifty_is_a_flat_penalty(self) -> None:
        context = PredictionContext(my_games=_games(10))
        blended = self.engine.blend(_tier((90.0, 70)), 30.0, None, context)
        self.assertAlmostEqual(blended, (90 * 0.55 + 30 * 0.30) / 0.85 - 8.0)

    def test_no_drag_without_friends(self) -> None:
        context = PredictionContext(my_games=_games(10))
        self.assertAlmostEqual(self.engine.blend(None, 30.0, 60.0, context), 30 * 0.7 + 60 * 0.3)

    def test_weight_tables(self) -> None:
        context = PredictionContext(my_games=_games(10))
        self.assertEqual(self.engine.tier_weights(None, None, None, context), (0.0, 0.0, 0.0))

        one = self.engine.tier_weights(_tier((80.0, 50)), 50.0, 50.0, context)
        for got, want in zip(one, (0.55, 0.30, 0.15)):
            self.assertAlmostEqual(got, want)

        many = self.engine.tier_weights(_tier((80.0, 50), (60.0, 50)), 50.0, 50.0, context)
        for got, want in zip(many, (0.60, 0.30, 0.10)):
            self.assertAlmostEqual(got, want)

        thin = PredictionContext(my_games=_games(4))
        for got, want in zip(self.engine.tier_weights(_tier((80.0, 50)), 50.0, 50.0, thin), (0.0, 0.2, 0.8)):
            self.assertAlmostEqual(got, want)

    def test_friend_tier_skips_weak_matches_and_uses_raw_id_fallback(self) -> None:
        context = PredictionContext(
            my_games=_games(10),
            friends=[
                _friend("weak", 20, 77, 1, 5),
                _friend("close", 80, 77, 2, 11),
                _friend("other", 90, 55, 1, 5),
            ],
        )
        tier = self.engine.friend_tier(PredictionTarget(item_id=77, canonical_id=700), context)
        self.assertEqual([s.friend_name for s in tier.signals], ["close"])
        self.assertAlmostEqual(tier.percentile, 90.0)

    def test_genre_affinity(self) -> None:
        context = PredictionContext(
            my_games=_games(10, {5: ["RPG"], 6: ["RPG"], 10: ["Horror"]}),
        )
        self.assertAlmostEqual(self.engine.genre_affinity(["RPG"], context), 50.0)
        self.assertEqual(self.engine.genre_affinity(["Horror"], context), 20.0)
        self.assertIsNone(self.engine.genre_affinity(["Racing"], context))
        self.assertIsNone(self.engine.genre_affinity([], context))

    def test_small_library_boost(self) -> None:
        context = PredictionContext(my_games=_games(10, {1: ["RPG"], 4: ["RPG"]}))
        # percentiles 100 and 66.67 -> 83.33, boosted by 33.33 * 0.3 * 0.75
        self.assertAlmostEqual(self.engine.genre_affinity(["RPG"], context), 83.333333 + 7.5, places=4)

    def test_tags_need_two_matching_games(self) -> None:
        games = _games(10)
        games[0] = games[0].model_copy(update={"tags": ["Co-op"]})
        context = PredictionContext(my_games=games)
        self.assertIsNone(self.engine.tag_affinity(["Co-op"], context))

    def test_blend_genre_tag(self) -> None:
        self.assertEqual(PredictionEngine.blend_genre_tag(60.0, 80.0), 70.0)
        self.assertEqual(PredictionEngine.blend_genre_tag(None, 80.0), 80.0)
        self.assertIsNone(PredictionEngine.blend_genre_tag(None, None))

    def test_metacritic_regression(self) -> None:
        games = [
            RankedGameData(item_id=i, rank_position=i, metacritic_score=score)
            for i, score in enumerate((90, 85, 80, 75, 70), start=1)
        ]
        context = PredictionContext(my_games=games)
        self.assertAlmostEqual(self.engine.metacritic_tier(80, context), 50.0)
        self.assertEqual(self.engine.metacritic_tier(99, context), 100.0)
        self.assertIsNone(self.engine.metacritic_tier(None, context))
        self.assertIsNone(self.engine.metacritic_tier(0, context))

    def test_metacritic_needs_variance_and_five_scores(self) -> None:
        flat = PredictionContext(my_games=_games(6, metacritic_score=80))
        self.assertIsNone(self.engine.metacritic_tier(85, flat))

        sparse = _games(6)
        sparse[0] = sparse[0].model_copy(update={"metacritic_score": 90})
        self.assertIsNone(self.engine.metacritic_tier(85, PredictionContext(my_games=sparse)))

    def test_confidence_table(self) -> None:
        small = PredictionContext(my_games=_games(6))
        large = PredictionContext(my_games=_games(12))
        three = _tier((80.0, 60), (70.0, 50), (60.0, 50))
        two_close = _tier((80.0, 45), (70.0, 40))
        two_far = _tier((80.0, 35), (70.0, 35))
        one = _tier((80.0, 60))

        self.assertEqual(PredictionEngine.confidence(three, 60.0, None, large), 5)
        self.assertEqual(PredictionEngine.confidence(three, 60.0, None, small), 4)
        self.assertEqual(PredictionEngine.confidence(two_close, None, None, small), 4)
        self.assertEqual(PredictionEngine.confidence(two_far, None, None, small), 4)
        self.assertEqual(PredictionEngine.confidence(None, 60.0, 70.0, large), 4)
        self.assertEqual(PredictionEngine.confidence(one, 60.0, None, large), 3)
        self.assertEqual(PredictionEngine.confidence(None, 60.0, None, large), 3)
        self.assertEqual(PredictionEngine.confidence(one, 60.0, None, small), 2)
        self.assertEqual(PredictionEngine.confidence(None, None, 70.0, large), 1)
        self.assertEqual(PredictionEngine.confidence(one, None, None, large), 1)

    def test_full_prediction(self) -> None:
        context = PredictionContext(
            my_games=_games(10, {1: ["RPG"], 2: ["RPG"], 3: ["RPG"]}),
            friends=[
                _friend("ana", 80, 77, 2, 11),
                _friend("ben", 60, 77, 4, 11),
            ],
        )
        prediction = self.engine.predict(PredictionTarget(item_id=77, genres=["RPG"]), context)

        self.assertEqual(prediction.tiers_used, ["friends", "genre"])
        self.assertEqual(prediction.confidence, 4)
        self.assertEqual(len(prediction.friend_signals), 2)
        self.assertGreater(prediction.predicted_percentile, 80)
        self.assertLessEqual(prediction.predicted_percentile, 100)
        self.assertEqual(prediction.summary_text, "You'll love this")


class TestGamePrediction(unittest.TestCase):
    def test_labels(self) -> None:
        self.assertEqual(GamePrediction(predicted_percentile=70, confidence=5).confidence_label, "Very High")
        self.assertEqual(GamePrediction(predicted_percentile=50, confidence=1).summary_text, "Could go either way")
        self.assertEqual(GamePrediction(predicted_percentile=39.9, confidence=1).summary_text, "Not your vibe")

    def test_estimated_rank_widens_with_low_confidence(self) -> None:
        sure = GamePrediction(predicted_percentile=50, confidence=5)
        guess = GamePrediction(predicted_percentile=50, confidence=1)

        self.assertEqual(sure.estimated_rank(20), (10, 12))
        self.assertEqual(guess.estimated_rank(20), (5, 17))
        self.assertEqual(GamePrediction(predicted_percentile=100, confidence=3).estimated_rank(10), (1, 4))


if __name__ == "__main__":
    unittest.main()
