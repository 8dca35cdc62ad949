"""
SQLAlchemy ORM models.

Only the tables the ranking engine reads or writes: users, friendships,
the games catalog snapshot, user_games (one row per logged game) and the
recommendation state (recommendations, want_to_play).

user_games.rank_position is NULL for unranked games. The engine never sees
that NULL: db.store splits rows into RankedItem / UnrankedItem.
Generic column types keep the schema portable between Postgres and SQLite.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import DeclarativeBase, relationship


# ── Base ──────────────────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    pass


# ── Enums ─────────────────────────────────────────────────────────────────────

class FriendshipStatusEnum(str, PyEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class RecommendationActionEnum(str, PyEnum):
    PENDING = "pending"
    DISMISSED = "dismissed"
    WANT_TO_PLAY = "want_to_play"
    RANKED = "ranked"


# ── Timestamp helper ──────────────────────────────────────────────────────────

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_user_id() -> str:
    return str(uuid.uuid4())


# ── Models ────────────────────────────────────────────────────────────────────

class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_user_id)
    username = Column(String(32), unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    games = relationship(
        "UserGame",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<User {self.username}>"


class Friendship(Base):
    """
    Friend link between two users. Either side may have sent the request;
    only ACCEPTED rows count as friends.
    """
    __tablename__ = "friendships"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    friend_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = Column(
        SAEnum(FriendshipStatusEnum, name="friendship_status"),
        nullable=False,
        default=FriendshipStatusEnum.PENDING,
    )
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "friend_id", name="uq_friendship_pair"),
        CheckConstraint("user_id <> friend_id", name="chk_no_self_friendship"),
    )


class Game(Base):
    """
    Catalog snapshot for one game.

    parent_game_id points at the canonical edition so the same game on
    different platforms matches across users.
    """
    __tablename__ = "games"

    id = Column(Integer, primary_key=True)
    parent_game_id = Column(Integer, nullable=True, comment="Canonical edition, if any")
    title = Column(String(500), nullable=False)
    cover_url = Column(String(1000), nullable=True)
    genres = Column(JSON, nullable=False, default=list)
    tags = Column(JSON, nullable=False, default=list)
    metacritic_score = Column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "metacritic_score IS NULL OR (metacritic_score BETWEEN 0 AND 100)",
            name="chk_metacritic_range",
        ),
        Index("ix_games_metacritic", "metacritic_score"),
    )

    @property
    def canonical_id(self) -> int:
        return self.parent_game_id if self.parent_game_id is not None else self.id


class UserGame(Base):
    """
    A game in a user's library.

    rank_position is 1..N for ranked games and NULL for unranked ones.
    No unique index on (user_id, rank_position): shifts rewrite many rows
    inside one transaction and would collide mid-update.
    """
    __tablename__ = "user_games"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    rank_position = Column(Integer, nullable=True)
    canonical_game_id = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    user = relationship("User", back_populates="games")
    game = relationship("Game")

    __table_args__ = (
        UniqueConstraint("user_id", "game_id", name="uq_user_game"),
        CheckConstraint(
            "rank_position IS NULL OR rank_position >= 1",
            name="chk_rank_position_positive",
        ),
        Index("ix_user_games_user_rank", "user_id", "rank_position"),
    )


class UserRecommendation(Base):
    """
    One recommended game and what the owner did with it.

    PENDING rows fill the owner's slots. A DISMISSED row keeps the game out
    of new batches until dismissed_until; RANKED rows carry the prediction
    outcome once the game was placed.
    """
    __tablename__ = "recommendations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    source = Column(String(32), nullable=False)
    source_friend_id = Column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    predicted_percentile = Column(Float, nullable=False)
    predicted_summary = Column(String(64), nullable=False)
    confidence = Column(Integer, nullable=False)
    tiers_used = Column(JSON, nullable=False, default=list)
    action = Column(
        SAEnum(RecommendationActionEnum, name="recommendation_action"),
        nullable=False,
        default=RecommendationActionEnum.PENDING,
    )
    dismiss_reason = Column(String(200), nullable=True)
    dismissed_until = Column(DateTime(timezone=True), nullable=True)
    actual_rank_position = Column(Integer, nullable=True)
    actual_percentile = Column(Float, nullable=True)
    prediction_accuracy = Column(Float, nullable=True)
    recommended_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    acted_at = Column(DateTime(timezone=True), nullable=True)
    ranked_at = Column(DateTime(timezone=True), nullable=True)

    game = relationship("Game")

    __table_args__ = (
        UniqueConstraint("user_id", "game_id", name="uq_recommendation_user_game"),
        CheckConstraint("confidence BETWEEN 1 AND 5", name="chk_recommendation_confidence"),
        Index("ix_recommendations_user_action", "user_id", "action"),
    )


class WantToPlay(Base):
    """A game the owner saved for later, usually from a recommendation."""
    __tablename__ = "want_to_play"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    source = Column(String(32), nullable=True)
    source_friend_id = Column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "game_id", name="uq_want_to_play_user_game"),
    )
