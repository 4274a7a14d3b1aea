"""
Ticket model: one admission issued against an event.

Key design decisions:
- Status is monotonic: active -> used or active -> cancelled, both terminal
- Tickets are never deleted; cancelled rows keep the audit trail
- `ticket_number` is the public identifier printed on the ticket
"""

import enum

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, Index, CheckConstraint

from ticketing.db.base import Base, TimestampMixin, UTCDateTime, utcnow


class TicketStatus(str, enum.Enum):
    ACTIVE = "active"
    USED = "used"
    CANCELLED = "cancelled"


# Tickets that consume capacity
SOLD_STATUSES = (TicketStatus.ACTIVE.value, TicketStatus.USED.value)


class Ticket(Base, TimestampMixin):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    ticket_number = Column(String(20), unique=True, nullable=False)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    discount_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=TicketStatus.ACTIVE.value)
    purchase_date = Column(UTCDateTime, nullable=False, default=utcnow)
    cancelled_at = Column(UTCDateTime, nullable=True)
    used_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('active', 'used', 'cancelled')", name="check_ticket_status"),
        CheckConstraint("price >= 0", name="check_ticket_price_non_negative"),
        CheckConstraint(
            "discount_percentage >= 0 AND discount_percentage <= 100",
            name="check_ticket_discount_range",
        ),
        Index("ix_tickets_event_status", "event_id", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == TicketStatus.ACTIVE.value

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, number={self.ticket_number}, event={self.event_id}, status={self.status})>"
