"""
Scheduling Engine Models.

SQLAlchemy models backing the SQL state store and history sink:
- Learner item state (one row per user/item, versioned)
- Review events (append-only history)
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, Integer, String, TypeDecorator, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class UTCDateTime(TypeDecorator):
    """Stores UTC and always hands back aware datetimes (SQLite drops tzinfo)."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class LearnerItemStateRow(Base):
    """
    Retention state per learner per item.

    ``version`` is bumped by exactly one on every successful conditional update.
    """

    __tablename__ = "learner_item_state"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    stage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    due_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    consecutive_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (Index("idx_learner_item_state_due", "user_id", "due_at"),)

    def __repr__(self) -> str:
        return (
            f"<LearnerItemStateRow user={self.user_id} item={self.item_id} "
            f"stage={self.stage} v={self.version}>"
        )


class ReviewEventRow(Base):
    """Append-only review history. The unique key makes redelivery idempotent."""

    __tablename__ = "review_event"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    item_id: Mapped[str] = mapped_column(String(128), nullable=False)
    reviewed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    outcome: Mapped[str] = mapped_column(String(16), nullable=False)
    stage_before: Mapped[int] = mapped_column(Integer, nullable=False)
    stage_after: Mapped[int] = mapped_column(Integer, nullable=False)
    state_version: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "item_id", "reviewed_at", "state_version", name="uq_review_event_dedup"
        ),
        Index("idx_review_event_user", "user_id", "reviewed_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ReviewEventRow user={self.user_id} item={self.item_id} "
            f"{self.stage_before}->{self.stage_after}>"
        )
