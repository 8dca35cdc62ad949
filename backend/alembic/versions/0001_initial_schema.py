"""Initial schema — users, friendships, games, user_games

Revision ID: 0001
Revises: —
Create Date: 2026-09-01 00:00:00
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    # ── friendships ───────────────────────────────────────────────────────────
    op.create_table(
        "friendships",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(36),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("friend_id", sa.String(36),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "ACCEPTED", "DECLINED", name="friendship_status"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "friend_id", name="uq_friendship_pair"),
        sa.CheckConstraint("user_id <> friend_id", name="chk_no_self_friendship"),
    )

    # ── games ─────────────────────────────────────────────────────────────────
    op.create_table(
        "games",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("parent_game_id", sa.Integer, nullable=True,
                  comment="Canonical edition, if any"),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("cover_url", sa.String(1000), nullable=True),
        sa.Column("genres", sa.JSON, nullable=False),
        sa.Column("tags", sa.JSON, nullable=False),
        sa.Column("metacritic_score", sa.Integer, nullable=True),
        sa.CheckConstraint(
            "metacritic_score IS NULL OR (metacritic_score BETWEEN 0 AND 100)",
            name="chk_metacritic_range",
        ),
    )
    op.create_index("ix_games_metacritic", "games", ["metacritic_score"])

    # ── user_games ────────────────────────────────────────────────────────────
    # No unique index on (user_id, rank_position): shifts rewrite many rows
    # inside one transaction and would collide mid-update.
    op.create_table(
        "user_games",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(36),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("game_id", sa.Integer,
                  sa.ForeignKey("games.id", ondelete="CASCADE"), nullable=False),
        sa.Column("rank_position", sa.Integer, nullable=True),
        sa.Column("canonical_game_id", sa.Integer, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "game_id", name="uq_user_game"),
        sa.CheckConstraint(
            "rank_position IS NULL OR rank_position >= 1",
            name="chk_rank_position_positive",
        ),
    )
    op.create_index("ix_user_games_user_rank", "user_games", ["user_id", "rank_position"])


def downgrade() -> None:
    op.drop_index("ix_user_games_user_rank", table_name="user_games")
    op.drop_table("user_games")
    op.drop_index("ix_games_metacritic", table_name="games")
    op.drop_table("games")
    op.drop_table("friendships")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TYPE IF EXISTS friendship_status")
