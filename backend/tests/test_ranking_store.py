import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from playedit.db.models import (
    Base,
    Friendship,
    FriendshipStatusEnum,
    Game,
    RecommendationActionEnum,
    User,
    UserGame,
    UserRecommendation,
    WantToPlay,
)
from playedit.db.store import RankingStore, StoreError
from playedit.schemas.predictions import GamePrediction
from playedit.schemas.rankings import PositionShift
from playedit.schemas.recommendations import CatalogGame, Recommendation
from playedit.services.recommendation_service import DISMISS_DURATION, RecommendationStateError

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _make_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()


def _seed(db) -> None:
    db.add_all([
        User(id="u1", username="owner"),
        User(id="u2", username="ana"),
        User(id="u3", username="ben"),
        User(id="u4", username="cy"),
    ])
    db.add_all([
        Game(id=1, title="Hades", genres=["Roguelike"], tags=["Indie"], metacritic_score=93),
        Game(id=2, title="Celeste", genres=["Platformer"], tags=["Indie"], metacritic_score=92),
        Game(id=3, title="Portal 2", genres=["Puzzle"], metacritic_score=95),
        Game(id=4, title="Outer Wilds", genres=["Adventure"], metacritic_score=85),
        Game(id=5, title="FIFA 23", genres=["Sports"], metacritic_score=70),
        Game(id=6, title="Hades (Switch)", parent_game_id=1, genres=["Roguelike"]),
    ])
    db.flush()
    db.add_all([
        UserGame(user_id="u1", game_id=1, rank_position=1, canonical_game_id=1),
        UserGame(user_id="u1", game_id=2, rank_position=2, canonical_game_id=2),
        UserGame(user_id="u1", game_id=3, rank_position=3, canonical_game_id=3),
        UserGame(user_id="u1", game_id=4, created_at=T0 + timedelta(days=2)),
        UserGame(user_id="u1", game_id=5, created_at=T0 + timedelta(days=1)),
        UserGame(user_id="u2", game_id=6, rank_position=1, canonical_game_id=1),
        UserGame(user_id="u2", game_id=3, rank_position=2, canonical_game_id=3),
    ])
    db.add_all([
        Friendship(user_id="u1", friend_id="u2", status=FriendshipStatusEnum.ACCEPTED),
        Friendship(user_id="u3", friend_id="u1", status=FriendshipStatusEnum.ACCEPTED),
        Friendship(user_id="u1", friend_id="u4", status=FriendshipStatusEnum.PENDING),
    ])
    db.commit()


def _positions(db, owner_id: str) -> dict[int, int | None]:
    rows = db.query(UserGame).filter(UserGame.user_id == owner_id).all()
    return {row.game_id: row.rank_position for row in rows}


class TestRankingStore(unittest.TestCase):
    def setUp(self) -> None:
        self.db = _make_session()
        _seed(self.db)
        self.store = RankingStore(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def test_load_order_splits_ranked_and_unranked(self) -> None:
        order = self.store.load_order("u1")
        self.assertEqual(order.item_ids(), [1, 2, 3])
        self.assertEqual([i.item_id for i in order.unranked], [5, 4])
        self.assertEqual(order.ranked[0].metadata["title"], "Hades")
        self.assertEqual(self.store.library_item_ids("u1"), {1, 2, 3, 4, 5})

    def test_apply_shift_persists_a_placement(self) -> None:
        order = self.store.load_order("u1")
        shifts = order.place(4, 2)
        touched = self.store.apply_shift("u1", shifts)

        self.assertEqual(touched, 3)
        self.assertEqual(_positions(self.db, "u1"), {1: 1, 4: 2, 2: 3, 3: 4, 5: None})

    def test_apply_shift_creates_rows_for_new_games(self) -> None:
        order = self.store.load_order("u1")
        self.store.apply_shift("u1", order.insert_at(1, 6))

        row = self.db.query(UserGame).filter_by(user_id="u1", game_id=6).one()
        self.assertEqual(row.rank_position, 1)
        self.assertEqual(row.canonical_game_id, 1)

    def test_failed_change_set_rolls_back_everything(self) -> None:
        before = _positions(self.db, "u1")
        shifts = [
            PositionShift(item_id=1, old_position=1, new_position=2),
            PositionShift(item_id=2, old_position=7, new_position=1),
        ]
        with self.assertRaises(StoreError):
            self.store.apply_shift("u1", shifts)
        self.assertEqual(_positions(self.db, "u1"), before)

    def test_unknown_game_is_rejected(self) -> None:
        with self.assertRaises(StoreError):
            self.store.apply_shift("u1", [PositionShift(item_id=999, new_position=4)])
        self.assertEqual(len(_positions(self.db, "u1")), 5)

    def test_delete_removes_row_and_compacts(self) -> None:
        order = self.store.load_order("u1")
        shifts = order.remove_at(1)
        self.store.apply_shift("u1", shifts, deleted_item_ids=(1,))
        self.assertEqual(_positions(self.db, "u1"), {2: 1, 3: 2, 4: None, 5: None})

    def test_friends_are_accepted_from_either_side(self) -> None:
        self.assertEqual(self.store.accepted_friend_ids("u1"), ["u2", "u3"])
        self.assertEqual(self.store.username("u2"), "ana")
        self.assertIsNone(self.store.username("nobody"))

    def test_friend_games_and_game_data(self) -> None:
        games = self.store.fetch_friend_games("u2")
        self.assertEqual([(g.item_id, g.canonical_id, g.total_games) for g in games], [(6, 1, 2), (3, 3, 2)])

        data = self.store.fetch_game_data("u1")
        self.assertEqual([g.item_id for g in data], [1, 2, 3])
        self.assertEqual(data[0].genres, ["Roguelike"])
        self.assertEqual(data[0].metacritic_score, 93)

    def test_catalog_and_top_rated(self) -> None:
        catalog = self.store.catalog([6, 3])
        self.assertEqual(catalog[6].canonical_id, 1)
        self.assertEqual(catalog[3].title, "Portal 2")
        self.assertEqual(self.store.catalog([]), {})

        top = self.store.top_rated_games(90)
        self.assertEqual([g.item_id for g in top], [3, 1, 2])


def _recommendation(item_id: int, percentile: float, friend_id: str | None = None) -> Recommendation:
    return Recommendation(
        game=CatalogGame(item_id=item_id, title=f"Game {item_id}"),
        source="friend_ranked" if friend_id else "genre_discovery",
        source_friend_id=friend_id,
        prediction=GamePrediction(predicted_percentile=percentile, confidence=3, tiers_used=["genre"]),
        predicted_summary="You'll love this",
    )


class TestRecommendationStore(unittest.TestCase):
    def setUp(self) -> None:
        self.db = _make_session()
        _seed(self.db)
        self.db.add_all([
            Game(id=7, title="Elden Ring", genres=["RPG"], metacritic_score=96),
            Game(id=8, title="Tunic", genres=["Adventure"], metacritic_score=85),
        ])
        self.db.commit()
        self.store = RankingStore(self.db)
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        self.store.save_recommendations(
            "u1",
            [_recommendation(6, 70.0), _recommendation(7, 90.0, friend_id="u2")],
            now=self.now,
        )
        self.pending = {r.game.item_id: r for r in self.store.pending_recommendations("u1")}

    def tearDown(self) -> None:
        self.db.close()

    def test_pending_recommendations_best_first(self) -> None:
        pending = self.store.pending_recommendations("u1")
        self.assertEqual([r.game.item_id for r in pending], [7, 6])
        self.assertEqual(pending[0].source_friend_name, "ana")
        self.assertEqual(pending[0].game.title, "Elden Ring")
        self.assertEqual(pending[0].prediction.tiers_used, ["genre"])
        self.assertTrue(all(r.id is not None and r.action == "pending" for r in pending))
        self.assertEqual(self.store.recommendation_exclusions("u1", self.now), {6, 7})
        self.assertEqual(self.store.pending_recommendations("u2"), [])

    def test_dismissal_blocks_the_game_for_six_months(self) -> None:
        state = self.store.dismiss_recommendation("u1", self.pending[6].id, "not my thing", now=self.now)

        self.assertEqual(state.action, "dismissed")
        self.assertEqual(state.dismiss_reason, "not my thing")
        self.assertEqual(state.dismissed_until, self.now + DISMISS_DURATION)
        self.assertEqual([r.game.item_id for r in self.store.pending_recommendations("u1")], [7])
        self.assertIn(6, self.store.recommendation_exclusions("u1", self.now + timedelta(days=30)))
        self.assertNotIn(6, self.store.recommendation_exclusions("u1", self.now + timedelta(days=200)))

    def test_recommending_a_game_again_resets_its_row(self) -> None:
        self.store.dismiss_recommendation("u1", self.pending[6].id, now=self.now)
        self.store.save_recommendations("u1", [_recommendation(6, 75.0)], now=self.now + timedelta(days=200))

        rows = self.db.query(UserRecommendation).filter_by(user_id="u1", game_id=6).all()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].action, RecommendationActionEnum.PENDING)
        self.assertIsNone(rows[0].dismissed_until)
        self.assertEqual(rows[0].predicted_percentile, 75.0)

    def test_save_for_later_adds_want_to_play_row(self) -> None:
        state = self.store.save_for_later("u1", self.pending[7].id, now=self.now)
        self.assertEqual(state.action, "want_to_play")
        self.store.save_for_later("u1", self.pending[7].id, now=self.now)

        saved = self.db.query(WantToPlay).filter_by(user_id="u1").all()
        self.assertEqual([(w.game_id, w.source, w.source_friend_id) for w in saved], [(7, "friend_ranked", "u2")])
        self.assertIn(7, self.store.recommendation_exclusions("u1", self.now + timedelta(days=400)))

    def test_actions_are_scoped_to_the_owner(self) -> None:
        self.assertIsNone(self.store.dismiss_recommendation("u2", self.pending[6].id))
        self.assertIsNone(self.store.save_for_later("u1", 999))

    def test_ranking_records_the_outcome(self) -> None:
        outcome = self.store.record_outcome("u1", 6, rank_position=2, total_games=4, now=self.now)

        self.assertEqual(outcome.actual_rank_position, 2)
        self.assertAlmostEqual(outcome.actual_percentile, 200.0 / 3)
        self.assertAlmostEqual(outcome.prediction_accuracy, 70.0 - 200.0 / 3)
        row = self.db.query(UserRecommendation).filter_by(user_id="u1", game_id=6).one()
        self.assertEqual(row.action, RecommendationActionEnum.RANKED)
        self.assertNotIn(6, self.store.recommendation_exclusions("u1", self.now))

        with self.assertRaises(RecommendationStateError):
            self.store.dismiss_recommendation("u1", row.id)
        self.assertIsNone(self.store.record_outcome("u1", 8, rank_position=1, total_games=4))


if __name__ == "__main__":
    unittest.main()
