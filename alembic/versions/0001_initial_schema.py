"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "promotions",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("planned_tokens", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('draft','active','closed')",
            name=op.f("ck_promotions_status_enum"),
        ),
        sa.CheckConstraint("end_at > start_at", name=op.f("ck_promotions_window_order")),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_promotions")),
        sa.UniqueConstraint("name", name=op.f("uq_promotions_name")),
    )

    op.create_table(
        "tokens",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("promotion_id", ID, nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('available','used')", name=op.f("ck_tokens_status_enum")
        ),
        sa.ForeignKeyConstraint(
            ["promotion_id"],
            ["promotions.id"],
            name=op.f("fk_tokens_promotion_id_promotions"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_tokens")),
        sa.UniqueConstraint("code", name=op.f("uq_tokens_code")),
    )
    op.create_index(
        "ix_tokens_promotion_status", "tokens", ["promotion_id", "status"], unique=False
    )

    op.create_table(
        "players",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("promotion_id", ID, nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=False),
        sa.Column("gender", sa.String(length=1), nullable=True),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "gender IS NULL OR gender IN ('F','M')",
            name=op.f("ck_players_gender_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["promotion_id"],
            ["promotions.id"],
            name=op.f("fk_players_promotion_id_promotions"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_players")),
        sa.UniqueConstraint(
            "promotion_id", "phone", name="uq_players_promotion_phone"
        ),
    )
    op.create_index(op.f("ix_players_id"), "players", ["id"], unique=False)
    op.create_index(
        op.f("ix_players_promotion_id"), "players", ["promotion_id"], unique=False
    )

    op.create_table(
        "prize_types",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("promotion_id", ID, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("initial_stock", sa.Integer(), nullable=False),
        sa.Column("remaining_stock", sa.Integer(), nullable=False),
        sa.Column("weight", sa.Integer(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("gender_restriction", sa.String(length=1), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "remaining_stock >= 0 AND remaining_stock <= initial_stock",
            name=op.f("ck_prize_types_stock_bounds"),
        ),
        sa.CheckConstraint("weight > 0", name=op.f("ck_prize_types_weight_positive")),
        sa.CheckConstraint(
            "gender_restriction IS NULL OR gender_restriction IN ('F','M')",
            name=op.f("ck_prize_types_gender_restriction_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["promotion_id"],
            ["promotions.id"],
            name=op.f("fk_prize_types_promotion_id_promotions"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_prize_types")),
    )
    op.create_index(
        op.f("ix_prize_types_promotion_id"), "prize_types", ["promotion_id"], unique=False
    )

    op.create_table(
        "engine_configs",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("promotion_id", ID, nullable=False),
        sa.Column("fatigue_enabled", sa.Boolean(), nullable=False),
        sa.Column("fatigue_play_threshold", sa.Integer(), nullable=False),
        sa.Column("fatigue_play_base_penalty", sa.Float(), nullable=False),
        sa.Column("fatigue_play_increment", sa.Float(), nullable=False),
        sa.Column("fatigue_play_max", sa.Float(), nullable=False),
        sa.Column("fatigue_win_penalty", sa.Float(), nullable=False),
        sa.Column("fatigue_win_max", sa.Float(), nullable=False),
        sa.Column("fatigue_min_probability", sa.Float(), nullable=False),
        sa.Column("pacing_enabled", sa.Boolean(), nullable=False),
        sa.Column("pacing_too_fast_threshold", sa.Float(), nullable=False),
        sa.Column("pacing_too_fast_multiplier", sa.Float(), nullable=False),
        sa.Column("pacing_fast_threshold", sa.Float(), nullable=False),
        sa.Column("pacing_fast_multiplier", sa.Float(), nullable=False),
        sa.Column("pacing_slow_threshold", sa.Float(), nullable=False),
        sa.Column("pacing_slow_multiplier", sa.Float(), nullable=False),
        sa.Column("pacing_too_slow_threshold", sa.Float(), nullable=False),
        sa.Column("pacing_too_slow_multiplier", sa.Float(), nullable=False),
        sa.Column("time_pressure_enabled", sa.Boolean(), nullable=False),
        sa.Column("time_conservation_start_min", sa.Float(), nullable=False),
        sa.Column("time_distribution_start_min", sa.Float(), nullable=False),
        sa.Column("time_final_start_min", sa.Float(), nullable=False),
        sa.Column("time_conservation_boost", sa.Float(), nullable=False),
        sa.Column("time_distribution_max", sa.Float(), nullable=False),
        sa.Column("time_final_boost", sa.Float(), nullable=False),
        sa.Column("force_win_enabled", sa.Boolean(), nullable=False),
        sa.Column("force_win_threshold_min", sa.Float(), nullable=False),
        sa.Column("desperation_mode_enabled", sa.Boolean(), nullable=False),
        sa.Column("desperation_start_min", sa.Float(), nullable=False),
        sa.Column("max_probability", sa.Float(), nullable=False),
        sa.Column("min_probability", sa.Float(), nullable=False),
        sa.Column("logging_enabled", sa.Boolean(), nullable=False),
        sa.Column("base_probability", sa.Float(), nullable=True),
        sa.Column("pacing_basis", sa.String(length=20), nullable=False),
        sa.Column("prize_selection_policy", sa.String(length=20), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["promotion_id"],
            ["promotions.id"],
            name=op.f("fk_engine_configs_promotion_id_promotions"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_engine_configs")),
        sa.UniqueConstraint("promotion_id", name=op.f("uq_engine_configs_promotion_id")),
    )

    op.create_table(
        "play_events",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("token_id", ID, nullable=False),
        sa.Column("promotion_id", ID, nullable=False),
        sa.Column("player_id", ID, nullable=False),
        sa.Column("is_winner", sa.Boolean(), nullable=False),
        sa.Column("prize_type_id", ID, nullable=True),
        sa.Column("probability", sa.Float(), nullable=True),
        sa.Column("decision", sa.JSON(), nullable=True),
        sa.Column("played_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["player_id"],
            ["players.id"],
            name=op.f("fk_play_events_player_id_players"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["prize_type_id"],
            ["prize_types.id"],
            name=op.f("fk_play_events_prize_type_id_prize_types"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["promotion_id"],
            ["promotions.id"],
            name=op.f("fk_play_events_promotion_id_promotions"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["token_id"],
            ["tokens.id"],
            name=op.f("fk_play_events_token_id_tokens"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_play_events")),
        sa.UniqueConstraint("token_id", name=op.f("uq_play_events_token_id")),
    )
    op.create_index(
        "ix_play_events_promotion_player",
        "play_events",
        ["promotion_id", "player_id"],
        unique=False,
    )
    op.create_index(
        "ix_play_events_promotion_winner",
        "play_events",
        ["promotion_id", "is_winner"],
        unique=False,
    )

    op.create_table(
        "prize_assignments",
        sa.Column("id", ID, autoincrement=True, nullable=False),
        sa.Column("play_event_id", ID, nullable=False),
        sa.Column("prize_type_id", ID, nullable=False),
        sa.Column("player_id", ID, nullable=False),
        sa.Column("redemption_code", sa.String(length=64), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("redeemed_by", sa.String(length=100), nullable=True),
        sa.ForeignKeyConstraint(
            ["play_event_id"],
            ["play_events.id"],
            name=op.f("fk_prize_assignments_play_event_id_play_events"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["player_id"],
            ["players.id"],
            name=op.f("fk_prize_assignments_player_id_players"),
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["prize_type_id"],
            ["prize_types.id"],
            name=op.f("fk_prize_assignments_prize_type_id_prize_types"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_prize_assignments")),
        sa.UniqueConstraint(
            "play_event_id", name=op.f("uq_prize_assignments_play_event_id")
        ),
        sa.UniqueConstraint(
            "redemption_code", name=op.f("uq_prize_assignments_redemption_code")
        ),
    )
    op.create_index(
        op.f("ix_prize_assignments_player_id"),
        "prize_assignments",
        ["player_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_prize_assignments_prize_type_id"),
        "prize_assignments",
        ["prize_type_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_prize_assignments_prize_type_id"), table_name="prize_assignments")
    op.drop_index(op.f("ix_prize_assignments_player_id"), table_name="prize_assignments")
    op.drop_table("prize_assignments")
    op.drop_index("ix_play_events_promotion_winner", table_name="play_events")
    op.drop_index("ix_play_events_promotion_player", table_name="play_events")
    op.drop_table("play_events")
    op.drop_table("engine_configs")
    op.drop_index(op.f("ix_prize_types_promotion_id"), table_name="prize_types")
    op.drop_table("prize_types")
    op.drop_index(op.f("ix_players_promotion_id"), table_name="players")
    op.drop_index(op.f("ix_players_id"), table_name="players")
    op.drop_table("players")
    op.drop_index("ix_tokens_promotion_status", table_name="tokens")
    op.drop_table("tokens")
    op.drop_table("promotions")
