"""
Admission queue models.

QueueEntry lifecycle:
  waiting -> active (lease granted, expires_at set, position cleared)
  active  -> expired (lease lapsed, detected lazily)
  waiting/active -> row deleted (session left)
Expired rows stay until an admin purges them, so `session_id` is indexed
but not unique; at most one waiting/active row per session is enforced
by the service while it holds the queue mutex.

QueueLock is a single-row table used purely as the queue mutex.
"""

import enum

from sqlalchemy import Column, Integer, String, Index, CheckConstraint

from ticketing.db.base import Base, TimestampMixin, UTCDateTime, utcnow

QUEUE_LOCK_ID = 1


class QueueStatus(str, enum.Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    EXPIRED = "expired"


class QueueEntry(Base, TimestampMixin):
    __tablename__ = "queue_entries"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(255), nullable=False, index=True)
    user_id = Column(Integer, nullable=True)
    position = Column(Integer, nullable=True)  # only set while waiting
    status = Column(String(20), nullable=False, default=QueueStatus.WAITING.value)
    joined_at = Column(UTCDateTime, nullable=False, default=utcnow)
    expires_at = Column(UTCDateTime, nullable=True)  # only set once active

    __table_args__ = (
        CheckConstraint("status IN ('waiting', 'active', 'expired')", name="check_queue_status"),
        CheckConstraint("position IS NULL OR position > 0", name="check_queue_position_positive"),
        Index("ix_queue_entries_status_position", "status", "position"),
        Index("ix_queue_entries_status_expires", "status", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<QueueEntry(id={self.id}, session={self.session_id}, status={self.status}, position={self.position})>"


class QueueLock(Base):
    __tablename__ = "queue_locks"

    id = Column(Integer, primary_key=True, autoincrement=False)
