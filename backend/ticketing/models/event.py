"""
Event model with ticket inventory tracking.

Key design decisions:
- `available_tickets` is denormalized (avoids COUNT over tickets on every purchase)
  and only ever changes under the event row lock held by the InventoryLedger
- CHECK constraints keep 0 <= available_tickets <= total_tickets at the DB level
- Index on `start_date` for the purchase-window checks and upcoming listings
"""

from sqlalchemy import Column, Integer, String, Numeric, Index, CheckConstraint

from ticketing.db.base import Base, TimestampMixin, UTCDateTime


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    location = Column(String(255), nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    start_date = Column(UTCDateTime, nullable=False)
    end_date = Column(UTCDateTime, nullable=False)
    total_tickets = Column(Integer, nullable=False)
    available_tickets = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("available_tickets >= 0", name="check_available_tickets_non_negative"),
        CheckConstraint("total_tickets > 0", name="check_total_tickets_positive"),
        CheckConstraint("available_tickets <= total_tickets", name="check_available_lte_total"),
        CheckConstraint("price >= 0", name="check_event_price_non_negative"),
        Index("ix_events_start_date", "start_date"),
    )

    @property
    def sold_tickets(self) -> int:
        return self.total_tickets - self.available_tickets

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, available={self.available_tickets}/{self.total_tickets})>"
