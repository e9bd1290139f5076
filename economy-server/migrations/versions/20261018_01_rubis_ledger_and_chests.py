"""rubis ledger, streamer presence and chest tables

Revision ID: 4c1e7a9b2d10
Revises: 
Create Date: 2026-10-18 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "4c1e7a9b2d10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="viewer"),
        sa.Column("rubis", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("rubis >= 0", name="ck_users_rubis_non_negative"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "streamers",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id")),
        sa.Column("is_live", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("mods_percent_bp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_streamers_slug", "streamers", ["slug"], unique=True)
    op.create_index("ix_streamers_user_id", "streamers", ["user_id"])

    op.create_table(
        "streamer_mods",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("streamer_id", sa.String(length=36), sa.ForeignKey("streamers.id"), nullable=False),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("removed_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_streamer_mods_streamer_id", "streamer_mods", ["streamer_id"])

    op.create_table(
        "live_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("streamer_id", sa.String(length=36), sa.ForeignKey("streamers.id"), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_live_sessions_streamer_id", "live_sessions", ["streamer_id"])

    op.create_table(
        "viewer_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("live_session_id", sa.Integer(), sa.ForeignKey("live_sessions.id"), nullable=False),
        sa.Column("viewer_key", sa.String(length=64), nullable=False),
        sa.Column("last_heartbeat_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_viewer_sessions_live_session_id", "viewer_sessions", ["live_session_id"])

    op.create_table(
        "stream_viewer_minutes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("streamer_id", sa.String(length=36), sa.ForeignKey("streamers.id"), nullable=False),
        sa.Column("live_session_id", sa.Integer(), sa.ForeignKey("live_sessions.id"), nullable=False),
        sa.Column("viewer_key", sa.String(length=64), nullable=False),
        sa.Column("bucket_ts", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("live_session_id", "viewer_key", "bucket_ts", name="uq_viewer_minute"),
    )
    op.create_index(
        "ix_stream_viewer_minutes_streamer_bucket",
        "stream_viewer_minutes",
        ["streamer_id", "bucket_ts"],
    )

    op.create_table(
        "rubis_lots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("origin", sa.String(length=40), nullable=False),
        sa.Column("weight_bp", sa.Integer(), nullable=False),
        sa.Column("amount_total", sa.Integer(), nullable=False),
        sa.Column("amount_remaining", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("meta", sa.Text(), nullable=False, server_default="{}"),
        sa.CheckConstraint("weight_bp >= 0 AND weight_bp <= 10000", name="ck_rubis_lots_weight"),
        sa.CheckConstraint(
            "amount_remaining >= 0 AND amount_remaining <= amount_total",
            name="ck_rubis_lots_remaining",
        ),
    )
    op.create_index("ix_rubis_lots_user_created", "rubis_lots", ["user_id", "created_at"])
    op.create_index("ix_rubis_lots_user_weight", "rubis_lots", ["user_id", "weight_bp"])

    op.create_table(
        "rubis_tx",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("purpose", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="succeeded"),
        sa.Column("from_user_id", sa.String(length=36), sa.ForeignKey("users.id")),
        sa.Column("to_user_id", sa.String(length=36), sa.ForeignKey("users.id")),
        sa.Column("streamer_id", sa.String(length=36), sa.ForeignKey("streamers.id")),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("support_value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("streamer_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("platform_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("burn_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("error", sa.Text()),
        sa.Column("meta", sa.Text(), nullable=False, server_default="{}"),
    )
    op.create_index("ix_rubis_tx_from_user_id", "rubis_tx", ["from_user_id"])
    op.create_index("ix_rubis_tx_to_user_id", "rubis_tx", ["to_user_id"])
    op.create_index("ix_rubis_tx_streamer_id", "rubis_tx", ["streamer_id"])

    op.create_table(
        "rubis_tx_lots",
        sa.Column("tx_id", sa.Integer(), sa.ForeignKey("rubis_tx.id"), nullable=False),
        sa.Column("lot_id", sa.Integer(), sa.ForeignKey("rubis_lots.id"), nullable=False),
        sa.Column("origin", sa.String(length=40), nullable=False),
        sa.Column("weight_bp", sa.Integer(), nullable=False),
        sa.Column("amount_used", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("tx_id", "lot_id"),
    )

    op.create_table(
        "rubis_tx_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tx_id", sa.Integer(), sa.ForeignKey("rubis_tx.id"), nullable=False),
        sa.Column("entity", sa.String(length=20), nullable=False),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id")),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_rubis_tx_entries_tx_id", "rubis_tx_entries", ["tx_id"])

    op.create_table(
        "cashout_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("streamer_id", sa.String(length=36), sa.ForeignKey("streamers.id"), nullable=False),
        sa.Column("amount_rubis", sa.Integer(), nullable=False),
        sa.Column("value_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("tx_id", sa.Integer(), sa.ForeignKey("rubis_tx.id"), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_cashout_requests_streamer_id", "cashout_requests", ["streamer_id"])

    op.create_table(
        "streamer_chests",
        sa.Column("streamer_id", sa.String(length=36), sa.ForeignKey("streamers.id"), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "streamer_chest_lots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("streamer_id", sa.String(length=36), sa.ForeignKey("streamers.id"), nullable=False),
        sa.Column("origin", sa.String(length=40), nullable=False),
        sa.Column("weight_bp", sa.Integer(), nullable=False),
        sa.Column("amount_total", sa.Integer(), nullable=False),
        sa.Column("amount_remaining", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("meta", sa.Text(), nullable=False, server_default="{}"),
        sa.CheckConstraint("weight_bp >= 0 AND weight_bp <= 2000", name="ck_chest_lots_weight_cap"),
    )
    op.create_index(
        "ix_streamer_chest_lots_streamer_weight",
        "streamer_chest_lots",
        ["streamer_id", "weight_bp"],
    )

    op.create_table(
        "streamer_chest_openings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("streamer_id", sa.String(length=36), sa.ForeignKey("streamers.id"), nullable=False),
        sa.Column("created_by_user_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="open"),
        sa.Column("opens_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closes_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("min_watch_minutes", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("closed_at", sa.DateTime(timezone=True)),
        sa.Column("meta", sa.Text(), nullable=False, server_default="{}"),
    )
    op.create_index("ix_streamer_chest_openings_streamer_id", "streamer_chest_openings", ["streamer_id"])
    op.create_index(
        "uq_streamer_chest_open_one",
        "streamer_chest_openings",
        ["streamer_id"],
        unique=True,
        sqlite_where=sa.text("status = 'open'"),
        postgresql_where=sa.text("status = 'open'"),
    )

    op.create_table(
        "streamer_chest_participants",
        sa.Column("opening_id", sa.Integer(), sa.ForeignKey("streamer_chest_openings.id"), nullable=False),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("opening_id", "user_id"),
    )
    op.create_index(
        "ix_streamer_chest_participants_opening",
        "streamer_chest_participants",
        ["opening_id", "joined_at"],
    )

    op.create_table(
        "streamer_chest_payouts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("opening_id", sa.Integer(), sa.ForeignKey("streamer_chest_openings.id"), nullable=False),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("breakdown", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("tx_id", sa.Integer(), sa.ForeignKey("rubis_tx.id")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("opening_id", "user_id", name="uq_chest_payout_opening_user"),
    )

    op.create_table(
        "streamer_chest_auto_state",
        sa.Column("streamer_id", sa.String(length=36), sa.ForeignKey("streamers.id"), primary_key=True),
        sa.Column("last_bucket_ts", sa.DateTime(timezone=True)),
        sa.Column("carry_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("streamer_chest_auto_state")
    op.drop_table("streamer_chest_payouts")
    op.drop_index("ix_streamer_chest_participants_opening", table_name="streamer_chest_participants")
    op.drop_table("streamer_chest_participants")
    op.drop_index("uq_streamer_chest_open_one", table_name="streamer_chest_openings")
    op.drop_index("ix_streamer_chest_openings_streamer_id", table_name="streamer_chest_openings")
    op.drop_table("streamer_chest_openings")
    op.drop_index("ix_streamer_chest_lots_streamer_weight", table_name="streamer_chest_lots")
    op.drop_table("streamer_chest_lots")
    op.drop_table("streamer_chests")
    op.drop_index("ix_cashout_requests_streamer_id", table_name="cashout_requests")
    op.drop_table("cashout_requests")
    op.drop_index("ix_rubis_tx_entries_tx_id", table_name="rubis_tx_entries")
    op.drop_table("rubis_tx_entries")
    op.drop_table("rubis_tx_lots")
    op.drop_index("ix_rubis_tx_streamer_id", table_name="rubis_tx")
    op.drop_index("ix_rubis_tx_to_user_id", table_name="rubis_tx")
    op.drop_index("ix_rubis_tx_from_user_id", table_name="rubis_tx")
    op.drop_table("rubis_tx")
    op.drop_index("ix_rubis_lots_user_weight", table_name="rubis_lots")
    op.drop_index("ix_rubis_lots_user_created", table_name="rubis_lots")
    op.drop_table("rubis_lots")
    op.drop_index("ix_stream_viewer_minutes_streamer_bucket", table_name="stream_viewer_minutes")
    op.drop_table("stream_viewer_minutes")
    op.drop_index("ix_viewer_sessions_live_session_id", table_name="viewer_sessions")
    op.drop_table("viewer_sessions")
    op.drop_index("ix_live_sessions_streamer_id", table_name="live_sessions")
    op.drop_table("live_sessions")
    op.drop_index("ix_streamer_mods_streamer_id", table_name="streamer_mods")
    op.drop_table("streamer_mods")
    op.drop_index("ix_streamers_user_id", table_name="streamers")
    op.drop_index("ix_streamers_slug", table_name="streamers")
    op.drop_table("streamers")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")
