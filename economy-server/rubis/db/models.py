"""SQLAlchemy ORM models."""
import uuid
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    PrimaryKeyConstraint,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.sql import func

from rubis.infrastructure.database.base import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    username = Column(String(50), unique=True, nullable=False, index=True)
    role = Column(String(20), nullable=False, default="viewer")
    rubis = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (CheckConstraint("rubis >= 0", name="ck_users_rubis_non_negative"),)


# --- Streamer, moderation and presence tables (owned by collaborating subsystems) ---


class Streamer(Base):
    __tablename__ = "streamers"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    is_live = Column(Boolean, nullable=False, default=False)
    mods_percent_bp = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class StreamerMod(Base):
    __tablename__ = "streamer_mods"

    id = Column(Integer, primary_key=True, autoincrement=True)
    streamer_id = Column(String(36), ForeignKey("streamers.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    removed_at = Column(DateTime(timezone=True))


class LiveSession(Base):
    __tablename__ = "live_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    streamer_id = Column(String(36), ForeignKey("streamers.id"), nullable=False, index=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True))


class ViewerSession(Base):
    __tablename__ = "viewer_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    live_session_id = Column(Integer, ForeignKey("live_sessions.id"), nullable=False, index=True)
    viewer_key = Column(String(64), nullable=False)
    last_heartbeat_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True))


class StreamViewerMinute(Base):
    __tablename__ = "stream_viewer_minutes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    streamer_id = Column(String(36), ForeignKey("streamers.id"), nullable=False)
    live_session_id = Column(Integer, ForeignKey("live_sessions.id"), nullable=False)
    viewer_key = Column(String(64), nullable=False)
    bucket_ts = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("live_session_id", "viewer_key", "bucket_ts", name="uq_viewer_minute"),
        Index("ix_stream_viewer_minutes_streamer_bucket", "streamer_id", "bucket_ts"),
    )


# --- Rubis ledger ---


class RubisLot(Base):
    __tablename__ = "rubis_lots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    origin = Column(String(40), nullable=False)
    weight_bp = Column(Integer, nullable=False)
    amount_total = Column(Integer, nullable=False)
    amount_remaining = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    meta = Column(Text, nullable=False, default="{}")

    __table_args__ = (
        CheckConstraint("weight_bp >= 0 AND weight_bp <= 10000", name="ck_rubis_lots_weight"),
        CheckConstraint(
            "amount_remaining >= 0 AND amount_remaining <= amount_total",
            name="ck_rubis_lots_remaining",
        ),
        Index("ix_rubis_lots_user_created", "user_id", "created_at"),
        Index("ix_rubis_lots_user_weight", "user_id", "weight_bp"),
    )


class RubisTx(Base):
    __tablename__ = "rubis_tx"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(20), nullable=False)  # mint, sink, support, cashout, transfer
    purpose = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default="succeeded")
    from_user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    to_user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    streamer_id = Column(String(36), ForeignKey("streamers.id"), nullable=True, index=True)
    amount = Column(Integer, nullable=False)
    support_value = Column(Integer, nullable=False, default=0)
    streamer_amount = Column(Integer, nullable=False, default=0)
    platform_amount = Column(Integer, nullable=False, default=0)
    burn_amount = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False)
    error = Column(Text)
    meta = Column(Text, nullable=False, default="{}")


class RubisTxLot(Base):
    __tablename__ = "rubis_tx_lots"

    tx_id = Column(Integer, ForeignKey("rubis_tx.id"), nullable=False)
    lot_id = Column(Integer, ForeignKey("rubis_lots.id"), nullable=False)
    origin = Column(String(40), nullable=False)
    weight_bp = Column(Integer, nullable=False)
    amount_used = Column(Integer, nullable=False)

    __table_args__ = (PrimaryKeyConstraint("tx_id", "lot_id"),)


class RubisTxEntry(Base):
    __tablename__ = "rubis_tx_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tx_id = Column(Integer, ForeignKey("rubis_tx.id"), nullable=False, index=True)
    entity = Column(String(20), nullable=False)  # user, platform_fee, platform_burn, chest
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    delta = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CashoutRequest(Base):
    __tablename__ = "cashout_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    streamer_id = Column(String(36), ForeignKey("streamers.id"), nullable=False, index=True)
    amount_rubis = Column(Integer, nullable=False)
    value_cents = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    tx_id = Column(Integer, ForeignKey("rubis_tx.id"), nullable=False)
    note = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


# --- Streamer chest ---


class StreamerChest(Base):
    __tablename__ = "streamer_chests"

    streamer_id = Column(String(36), ForeignKey("streamers.id"), primary_key=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class StreamerChestLot(Base):
    __tablename__ = "streamer_chest_lots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    streamer_id = Column(String(36), ForeignKey("streamers.id"), nullable=False)
    origin = Column(String(40), nullable=False)  # chest_deposit, chest_auto
    weight_bp = Column(Integer, nullable=False)
    amount_total = Column(Integer, nullable=False)
    amount_remaining = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    meta = Column(Text, nullable=False, default="{}")

    __table_args__ = (
        CheckConstraint("weight_bp >= 0 AND weight_bp <= 2000", name="ck_chest_lots_weight_cap"),
        Index("ix_streamer_chest_lots_streamer_weight", "streamer_id", "weight_bp"),
    )


class ChestOpening(Base):
    __tablename__ = "streamer_chest_openings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    streamer_id = Column(String(36), ForeignKey("streamers.id"), nullable=False, index=True)
    created_by_user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    status = Column(String(20), nullable=False, default="open")  # open, closed
    opens_at = Column(DateTime(timezone=True), nullable=False)
    closes_at = Column(DateTime(timezone=True), nullable=False)
    min_watch_minutes = Column(Integer, nullable=False, default=5)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    closed_at = Column(DateTime(timezone=True))
    meta = Column(Text, nullable=False, default="{}")

    __table_args__ = (
        Index(
            "uq_streamer_chest_open_one",
            "streamer_id",
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
    )


class ChestParticipant(Base):
    __tablename__ = "streamer_chest_participants"

    opening_id = Column(Integer, ForeignKey("streamer_chest_openings.id"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    joined_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        PrimaryKeyConstraint("opening_id", "user_id"),
        Index("ix_streamer_chest_participants_opening", "opening_id", "joined_at"),
    )


class ChestPayout(Base):
    __tablename__ = "streamer_chest_payouts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    opening_id = Column(Integer, ForeignKey("streamer_chest_openings.id"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    amount = Column(Integer, nullable=False)
    breakdown = Column(Text, nullable=False, default="{}")
    tx_id = Column(Integer, ForeignKey("rubis_tx.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("opening_id", "user_id", name="uq_chest_payout_opening_user"),)


class ChestAutoState(Base):
    __tablename__ = "streamer_chest_auto_state"

    streamer_id = Column(String(36), ForeignKey("streamers.id"), primary_key=True)
    last_bucket_ts = Column(DateTime(timezone=True))
    carry_minutes = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
