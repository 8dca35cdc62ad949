"""
Ranking store: the persistence collaborator for the engine.

Reads snapshots out of user_games / games / friendships and writes back the
PositionShift change sets RankOrder produces. apply_shift() runs the whole
change set in one transaction: either every row moves or none does.

Also keeps the owner's recommendation state: pending batches, dismissals,
want-to-play saves and prediction outcomes.
"""
import logging
from collections.abc import Callable, Collection, Iterable, Sequence
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from playedit.db.models import (
    Friendship,
    FriendshipStatusEnum,
    Game,
    RecommendationActionEnum,
    User,
    UserGame,
    UserRecommendation,
    WantToPlay,
)
from playedit.schemas.predictions import FriendRankedGame, GamePrediction, RankedGameData
from playedit.schemas.rankings import PositionShift, RankedItem, UnrankedItem
from playedit.schemas.recommendations import (
    CatalogGame,
    Recommendation,
    RecommendationAction,
    RecommendationOutcome,
    RecommendationState,
)
from playedit.services.rank_order import RankOrder
from playedit.services.recommendation_service import (
    blocks_new_batch,
    check_action,
    dismissal_expiry,
    prediction_outcome,
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when a change set cannot be applied; nothing was written."""
    pass


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _metadata(game: Game) -> dict:
    return {
        "title": game.title,
        "cover_url": game.cover_url,
        "canonical_id": game.canonical_id,
    }


def _catalog_game(game: Game) -> CatalogGame:
    return CatalogGame(
        item_id=game.id,
        canonical_id=game.canonical_id,
        title=game.title,
        cover_url=game.cover_url,
        genres=list(game.genres or []),
        tags=list(game.tags or []),
        metacritic_score=game.metacritic_score,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _recommendation(
    row: UserRecommendation,
    game: Game,
    friend_name: str | None,
) -> Recommendation:
    # Friend signals are not stored; the reloaded prediction keeps the headline numbers
    return Recommendation(
        id=row.id,
        action=row.action.value,
        game=_catalog_game(game),
        source=row.source,
        source_friend_id=row.source_friend_id,
        source_friend_name=friend_name,
        prediction=GamePrediction(
            predicted_percentile=row.predicted_percentile,
            confidence=row.confidence,
            tiers_used=list(row.tiers_used or []),
        ),
        predicted_summary=row.predicted_summary,
    )


def _recommendation_state(row: UserRecommendation) -> RecommendationState:
    outcome = None
    if row.actual_rank_position is not None:
        outcome = RecommendationOutcome(
            actual_rank_position=row.actual_rank_position,
            actual_percentile=row.actual_percentile,
            prediction_accuracy=row.prediction_accuracy,
        )
    return RecommendationState(
        id=row.id,
        item_id=row.game_id,
        action=row.action.value,
        dismiss_reason=row.dismiss_reason,
        dismissed_until=_aware(row.dismissed_until),
        acted_at=_aware(row.acted_at),
        outcome=outcome,
    )


class RankingStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    # ── Owner's list ─────────────────────────────────────────────────────────

    def _ranked_rows(self, owner_id: str) -> list[tuple[UserGame, Game]]:
        return (
            self.db.query(UserGame, Game)
            .join(Game, UserGame.game_id == Game.id)
            .filter(UserGame.user_id == owner_id, UserGame.rank_position.isnot(None))
            .order_by(UserGame.rank_position.asc())
            .all()
        )

    def fetch_ranked(self, owner_id: str) -> list[RankedItem]:
        """The owner's ranked games, best first."""
        return [
            RankedItem(
                id=row.id,
                owner_id=owner_id,
                item_id=row.game_id,
                rank_position=row.rank_position,
                metadata=_metadata(game),
            )
            for row, game in self._ranked_rows(owner_id)
        ]

    def fetch_unranked(self, owner_id: str) -> list[UnrankedItem]:
        """The owner's unranked games, oldest first."""
        rows = (
            self.db.query(UserGame, Game)
            .join(Game, UserGame.game_id == Game.id)
            .filter(UserGame.user_id == owner_id, UserGame.rank_position.is_(None))
            .order_by(UserGame.created_at.asc(), UserGame.id.asc())
            .all()
        )
        return [
            UnrankedItem(
                id=row.id,
                owner_id=owner_id,
                item_id=row.game_id,
                created_at=_aware(row.created_at),
                metadata=_metadata(game),
            )
            for row, game in rows
        ]

    def load_order(self, owner_id: str) -> RankOrder:
        return RankOrder(owner_id, self.fetch_ranked(owner_id), self.fetch_unranked(owner_id))

    def library_item_ids(self, owner_id: str) -> set[int]:
        """Every game the owner has logged, ranked or not."""
        rows = self.db.query(UserGame.game_id).filter(UserGame.user_id == owner_id).all()
        return {r[0] for r in rows}

    # ── Writes ───────────────────────────────────────────────────────────────

    def apply_shift(
        self,
        owner_id: str,
        shifts: Sequence[PositionShift],
        *,
        deleted_item_ids: Collection[int] = (),
    ) -> int:
        """
        Apply a change set atomically.

        A shift with old_position None for a game the owner never logged
        creates the user_games row. new_position None unranks the row unless
        the item is listed in *deleted_item_ids*, in which case the row is
        deleted. Returns the number of rows touched.
        """
        try:
            touched = self._apply(owner_id, shifts, deleted_item_ids)
            self.db.commit()
        except StoreError:
            self.db.rollback()
            logger.warning("owner=%s change set rejected, rolled back", owner_id)
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("owner=%s change set failed, rolled back: %s", owner_id, exc)
            raise StoreError(f"could not apply shifts for owner {owner_id}") from exc

        logger.info("owner=%s applied %d position changes", owner_id, touched)
        return touched

    def _apply(
        self,
        owner_id: str,
        shifts: Sequence[PositionShift],
        deleted_item_ids: Collection[int],
    ) -> int:
        item_ids = {s.item_id for s in shifts} | set(deleted_item_ids)
        if not item_ids:
            return 0

        rows = {
            row.game_id: row
            for row in (
                self.db.query(UserGame)
                .filter(UserGame.user_id == owner_id, UserGame.game_id.in_(item_ids))
                .with_for_update()
                .all()
            )
        }

        touched = 0
        for shift in shifts:
            row = rows.get(shift.item_id)
            if row is None:
                if shift.old_position is not None:
                    raise StoreError(f"item {shift.item_id} is not in owner {owner_id}'s list")
                row = self._new_row(owner_id, shift.item_id)
                rows[shift.item_id] = row
            elif row.rank_position != shift.old_position:
                raise StoreError(
                    f"item {shift.item_id} is at {row.rank_position}, "
                    f"change set expected {shift.old_position}"
                )
            row.rank_position = shift.new_position
            touched += 1

        for item_id in deleted_item_ids:
            row = rows.get(item_id)
            if row is None:
                raise StoreError(f"item {item_id} is not in owner {owner_id}'s list")
            self.db.delete(row)
            touched += 1

        self.db.flush()
        return touched

    def _new_row(self, owner_id: str, item_id: int) -> UserGame:
        game = self.db.query(Game).filter(Game.id == item_id).first()
        if game is None:
            raise StoreError(f"game {item_id} is not in the catalog")
        row = UserGame(
            user_id=owner_id,
            game_id=item_id,
            canonical_game_id=game.canonical_id,
        )
        self.db.add(row)
        return row

    # ── Social + catalog ─────────────────────────────────────────────────────

    def username(self, user_id: str) -> str | None:
        user = self.db.query(User).filter(User.id == user_id).first()
        return user.username if user else None

    def accepted_friend_ids(self, owner_id: str) -> list[str]:
        """Accepted friends, whichever side sent the request."""
        rows = (
            self.db.query(Friendship)
            .filter(
                Friendship.status == FriendshipStatusEnum.ACCEPTED,
                or_(Friendship.user_id == owner_id, Friendship.friend_id == owner_id),
            )
            .order_by(Friendship.id.asc())
            .all()
        )
        return [r.friend_id if r.user_id == owner_id else r.user_id for r in rows]

    def fetch_game_data(self, owner_id: str) -> list[RankedGameData]:
        """The owner's ranked games with the catalog fields the prediction tiers need."""
        return [
            RankedGameData(
                item_id=row.game_id,
                canonical_id=row.canonical_game_id,
                rank_position=row.rank_position,
                genres=list(game.genres or []),
                tags=list(game.tags or []),
                metacritic_score=game.metacritic_score,
            )
            for row, game in self._ranked_rows(owner_id)
        ]

    def fetch_friend_games(self, friend_id: str) -> list[FriendRankedGame]:
        rows = (
            self.db.query(UserGame)
            .filter(UserGame.user_id == friend_id, UserGame.rank_position.isnot(None))
            .order_by(UserGame.rank_position.asc())
            .all()
        )
        total = len(rows)
        return [
            FriendRankedGame(
                item_id=row.game_id,
                canonical_id=row.canonical_game_id,
                rank_position=row.rank_position,
                total_games=total,
            )
            for row in rows
        ]

    def catalog(self, item_ids: Iterable[int]) -> dict[int, CatalogGame]:
        ids = set(item_ids)
        if not ids:
            return {}
        games = self.db.query(Game).filter(Game.id.in_(ids)).all()
        return {g.id: _catalog_game(g) for g in games}

    def top_rated_games(self, min_score: int, limit: int = 50) -> list[CatalogGame]:
        games = (
            self.db.query(Game)
            .filter(Game.metacritic_score.isnot(None), Game.metacritic_score >= min_score)
            .order_by(Game.metacritic_score.desc(), Game.id.asc())
            .limit(limit)
            .all()
        )
        return [_catalog_game(g) for g in games]

    # ── Recommendations ──────────────────────────────────────────────────────

    def recommendation_exclusions(self, owner_id: str, now: datetime | None = None) -> set[int]:
        """Games a new batch must skip: pending, saved for later, or still dismissed."""
        now = now or _utcnow()
        rows = (
            self.db.query(UserRecommendation)
            .filter(UserRecommendation.user_id == owner_id)
            .all()
        )
        excluded = {
            row.game_id
            for row in rows
            if blocks_new_batch(row.action.value, _aware(row.dismissed_until), now)
        }
        saved = self.db.query(WantToPlay.game_id).filter(WantToPlay.user_id == owner_id).all()
        return excluded | {r[0] for r in saved}

    def pending_recommendations(self, owner_id: str) -> list[Recommendation]:
        """Pending recommendations, highest predicted percentile first."""
        rows = (
            self.db.query(UserRecommendation, Game)
            .join(Game, UserRecommendation.game_id == Game.id)
            .filter(
                UserRecommendation.user_id == owner_id,
                UserRecommendation.action == RecommendationActionEnum.PENDING,
            )
            .order_by(UserRecommendation.predicted_percentile.desc(), UserRecommendation.id.asc())
            .all()
        )
        names: dict[str, str | None] = {}
        for row, _ in rows:
            if row.source_friend_id and row.source_friend_id not in names:
                names[row.source_friend_id] = self.username(row.source_friend_id)
        return [
            _recommendation(row, game, names.get(row.source_friend_id))
            for row, game in rows
        ]

    def save_recommendations(
        self,
        owner_id: str,
        recommendations: Sequence[Recommendation],
        now: datetime | None = None,
    ) -> int:
        """
        Store a fresh batch as pending.

        A game recommended before (an expired dismissal, an old outcome) has
        its row reset rather than duplicated.
        """
        if not recommendations:
            return 0
        now = now or _utcnow()
        try:
            existing = {
                row.game_id: row
                for row in (
                    self.db.query(UserRecommendation)
                    .filter(
                        UserRecommendation.user_id == owner_id,
                        UserRecommendation.game_id.in_([r.game.item_id for r in recommendations]),
                    )
                    .all()
                )
            }
            for rec in recommendations:
                row = existing.get(rec.game.item_id)
                if row is None:
                    row = UserRecommendation(user_id=owner_id, game_id=rec.game.item_id)
                    self.db.add(row)
                row.source = rec.source
                row.source_friend_id = rec.source_friend_id
                row.predicted_percentile = rec.prediction.predicted_percentile
                row.predicted_summary = rec.predicted_summary
                row.confidence = rec.prediction.confidence
                row.tiers_used = list(rec.prediction.tiers_used)
                row.action = RecommendationActionEnum.PENDING
                row.dismiss_reason = None
                row.dismissed_until = None
                row.actual_rank_position = None
                row.actual_percentile = None
                row.prediction_accuracy = None
                row.recommended_at = now
                row.acted_at = None
                row.ranked_at = None
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("owner=%s recommendation batch failed, rolled back: %s", owner_id, exc)
            raise StoreError(f"could not save recommendations for owner {owner_id}") from exc

        logger.info("owner=%s saved %d recommendations", owner_id, len(recommendations))
        return len(recommendations)

    def dismiss_recommendation(
        self,
        owner_id: str,
        recommendation_id: int,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> RecommendationState | None:
        """Hide a recommendation; its game stays out of new batches for six months."""
        now = now or _utcnow()

        def dismiss(row: UserRecommendation) -> None:
            row.dismiss_reason = reason
            row.dismissed_until = dismissal_expiry(now)

        return self._act(owner_id, recommendation_id, "dismissed", now, dismiss)

    def save_for_later(
        self,
        owner_id: str,
        recommendation_id: int,
        now: datetime | None = None,
    ) -> RecommendationState | None:
        """Move a recommendation to the owner's want-to-play list."""
        now = now or _utcnow()

        def save(row: UserRecommendation) -> None:
            saved = (
                self.db.query(WantToPlay)
                .filter(WantToPlay.user_id == owner_id, WantToPlay.game_id == row.game_id)
                .first()
            )
            if saved is None:
                self.db.add(WantToPlay(
                    user_id=owner_id,
                    game_id=row.game_id,
                    source=row.source,
                    source_friend_id=row.source_friend_id,
                ))

        return self._act(owner_id, recommendation_id, "want_to_play", now, save)

    def _act(
        self,
        owner_id: str,
        recommendation_id: int,
        action: RecommendationAction,
        now: datetime,
        apply: Callable[[UserRecommendation], None],
    ) -> RecommendationState | None:
        row = (
            self.db.query(UserRecommendation)
            .filter(
                UserRecommendation.id == recommendation_id,
                UserRecommendation.user_id == owner_id,
            )
            .first()
        )
        if row is None:
            return None
        check_action(row.action.value, action)

        try:
            row.action = RecommendationActionEnum(action)
            row.acted_at = now
            apply(row)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"could not update recommendation {recommendation_id}") from exc

        logger.info("owner=%s recommendation=%d -> %s", owner_id, recommendation_id, action)
        return _recommendation_state(row)

    def record_outcome(
        self,
        owner_id: str,
        item_id: int,
        rank_position: int,
        total_games: int,
        now: datetime | None = None,
    ) -> RecommendationOutcome | None:
        """
        Close the recommendation for a game the owner just ranked and keep
        how far the prediction was off. None if the game was never recommended.
        """
        row = (
            self.db.query(UserRecommendation)
            .filter(UserRecommendation.user_id == owner_id, UserRecommendation.game_id == item_id)
            .first()
        )
        if row is None:
            return None

        now = now or _utcnow()
        outcome = prediction_outcome(row.predicted_percentile, rank_position, total_games)
        try:
            row.action = RecommendationActionEnum.RANKED
            row.actual_rank_position = outcome.actual_rank_position
            row.actual_percentile = outcome.actual_percentile
            row.prediction_accuracy = outcome.prediction_accuracy
            row.ranked_at = now
            row.acted_at = row.acted_at or now
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"could not record outcome for item {item_id}") from exc

        logger.info(
            "owner=%s item=%d ranked %d/%d, prediction off by %.1f",
            owner_id,
            item_id,
            rank_position,
            total_games,
            outcome.prediction_accuracy,
        )
        return outcome
