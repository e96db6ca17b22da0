from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Integer, BigInteger, DateTime, ForeignKey, Text, JSON, UniqueConstraint, Index
from sqlalchemy.types import TypeDecorator
from datetime import datetime, timezone
from .database import Base

def now_utc():
    return datetime.now(timezone.utc)

class UTCDateTime(TypeDecorator):
    """Stores naive UTC, always hands back aware UTC datetimes."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

class TimeEntry(Base):
    """One finished start->stop cycle or manual adjustment. Never updated."""

    __tablename__ = "time_entries"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    board_id: Mapped[str] = mapped_column(String(64), index=True)
    card_id: Mapped[str] = mapped_column(String(64), index=True)
    card_name: Mapped[str] = mapped_column(Text, default="")
    list_name: Mapped[str] = mapped_column(String(255), default="")
    member_id: Mapped[str] = mapped_column(String(64), index=True)
    member_name: Mapped[str] = mapped_column(String(255), default="")
    labels: Mapped[list] = mapped_column(JSON, default=list)  # [{"name": ..., "color": ...}]
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, index=True)
    ended_at: Mapped[datetime] = mapped_column(UTCDateTime)
    # may be negative for manual corrections
    duration_ms: Mapped[int] = mapped_column(BigInteger, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)

Index("idx_time_entries_board_started", TimeEntry.board_id, TimeEntry.started_at)

class ActiveTimer(Base):
    __tablename__ = "active_timers"
    __table_args__ = (UniqueConstraint("card_id", "member_id", name="uq_active_timer_card_member"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    board_id: Mapped[str] = mapped_column(String(64), index=True)
    card_id: Mapped[str] = mapped_column(String(64), index=True)
    member_id: Mapped[str] = mapped_column(String(64))
    member_name: Mapped[str] = mapped_column(String(255), default="")
    started_at: Mapped[datetime] = mapped_column(UTCDateTime)

class Estimate(Base):
    __tablename__ = "time_estimates"
    __table_args__ = (UniqueConstraint("card_id", "member_id", name="uq_estimate_card_member"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    board_id: Mapped[str] = mapped_column(String(64), index=True)
    card_id: Mapped[str] = mapped_column(String(64), index=True)
    member_id: Mapped[str] = mapped_column(String(64))
    member_name: Mapped[str] = mapped_column(String(255), default="")
    estimated_ms: Mapped[int] = mapped_column(BigInteger)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)

    history: Mapped[list["EstimateHistory"]] = relationship(
        back_populates="estimate", cascade="all, delete-orphan", passive_deletes=True
    )

class EstimateHistory(Base):
    """Append-only log of re-estimations made outside the grace period."""

    __tablename__ = "estimate_history"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    estimate_id: Mapped[int] = mapped_column(ForeignKey("time_estimates.id", ondelete="CASCADE"), index=True)
    board_id: Mapped[str] = mapped_column(String(64), index=True)
    card_id: Mapped[str] = mapped_column(String(64), index=True)
    member_id: Mapped[str] = mapped_column(String(64))
    member_name: Mapped[str] = mapped_column(String(255), default="")
    previous_ms: Mapped[int] = mapped_column(BigInteger)
    new_ms: Mapped[int] = mapped_column(BigInteger)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc, index=True)

    estimate: Mapped["Estimate"] = relationship(back_populates="history")
