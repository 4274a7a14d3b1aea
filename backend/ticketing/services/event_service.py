"""
Event and ticket lookups plus event creation.

Capacity changes after creation go through InventoryLedger.resize; this
module never writes the ticket counters of an existing event.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from ticketing.core.exceptions import EventNotFoundError, TicketNotFoundError
from ticketing.core.logging import get_logger
from ticketing.db.base import utcnow
from ticketing.models.event import Event
from ticketing.models.ticket import Ticket
from ticketing.schemas.event import EventCreate

logger = get_logger(__name__)


async def create_event(db: AsyncSession, event_data: EventCreate) -> Event:
    """Create a new event with every ticket available."""
    if event_data.start_date <= utcnow():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Event start date must be in the future",
        )
    if event_data.end_date < event_data.start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Event end date must not be before its start date",
        )

    event = Event(
        title=event_data.title,
        description=event_data.description,
        location=event_data.location,
        price=event_data.price,
        start_date=event_data.start_date,
        end_date=event_data.end_date,
        total_tickets=event_data.total_tickets,
        available_tickets=event_data.total_tickets,
    )
    db.add(event)
    await db.flush()
    await db.refresh(event)

    logger.info("event_created", event_id=event.id, title=event.title, tickets=event.total_tickets)
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()

    if not event:
        raise EventNotFoundError(event_id)
    return event


async def get_ticket(db: AsyncSession, ticket_id: int) -> Ticket:
    result = await db.execute(select(Ticket).where(Ticket.id == ticket_id))
    ticket = result.scalar_one_or_none()

    if not ticket:
        raise TicketNotFoundError(ticket_id)
    return ticket


async def get_ticket_by_number(db: AsyncSession, ticket_number: str) -> Optional[Ticket]:
    """Read-only lookup by the printed ticket number. None when unknown."""
    result = await db.execute(select(Ticket).where(Ticket.ticket_number == ticket_number))
    return result.scalar_one_or_none()
