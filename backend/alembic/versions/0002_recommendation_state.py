"""Recommendation state — recommendations, want_to_play

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-01 00:00:00
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── recommendations ───────────────────────────────────────────────────────
    op.create_table(
        "recommendations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(36),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("game_id", sa.Integer,
                  sa.ForeignKey("games.id", ondelete="CASCADE"), nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("source_friend_id", sa.String(36),
                  sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("predicted_percentile", sa.Float, nullable=False),
        sa.Column("predicted_summary", sa.String(64), nullable=False),
        sa.Column("confidence", sa.Integer, nullable=False),
        sa.Column("tiers_used", sa.JSON, nullable=False),
        sa.Column(
            "action",
            sa.Enum("PENDING", "DISMISSED", "WANT_TO_PLAY", "RANKED", name="recommendation_action"),
            nullable=False,
        ),
        sa.Column("dismiss_reason", sa.String(200), nullable=True),
        sa.Column("dismissed_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_rank_position", sa.Integer, nullable=True),
        sa.Column("actual_percentile", sa.Float, nullable=True),
        sa.Column("prediction_accuracy", sa.Float, nullable=True),
        sa.Column("recommended_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("acted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ranked_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "game_id", name="uq_recommendation_user_game"),
        sa.CheckConstraint("confidence BETWEEN 1 AND 5", name="chk_recommendation_confidence"),
    )
    op.create_index("ix_recommendations_user_action", "recommendations", ["user_id", "action"])

    # ── want_to_play ──────────────────────────────────────────────────────────
    op.create_table(
        "want_to_play",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(36),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("game_id", sa.Integer,
                  sa.ForeignKey("games.id", ondelete="CASCADE"), nullable=False),
        sa.Column("source", sa.String(32), nullable=True),
        sa.Column("source_friend_id", sa.String(36),
                  sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "game_id", name="uq_want_to_play_user_game"),
    )


def downgrade() -> None:
    op.drop_table("want_to_play")
    op.drop_index("ix_recommendations_user_action", table_name="recommendations")
    op.drop_table("recommendations")
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TYPE IF EXISTS recommendation_action")
