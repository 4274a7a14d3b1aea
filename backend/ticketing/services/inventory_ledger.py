"""
Ticket inventory ledger with pessimistic, per-event locking.

CONCURRENCY STRATEGY: SELECT ... FOR UPDATE on the Event row
=============================================================

Problem:
  Two buyers try to take the last ticket simultaneously.
  Both read available_tickets=1, both decrement to 0, both get a ticket.
  Result: Oversell.

Solution:
  Every operation that touches an event's counts starts by locking that
  event's row, then reads, checks and writes inside the same transaction:

  1. SELECT * FROM events WHERE id = :event_id FOR UPDATE
  2. Check available_tickets / ticket status / purchase window
  3. INSERT or UPDATE the ticket, UPDATE the event counter
  4. COMMIT (releases the lock)

  A second reserve/release/resize/mark_used on the same event blocks at
  step 1 until the first commits, then sees the committed counter. The
  critical section is a handful of single-row statements, so waiting is
  cheaper than an optimistic retry loop.

Invariant, after every commit:
  available_tickets == total_tickets - count(tickets in {active, used})

  reserve decrements exactly once per ticket created, release increments
  exactly once per active -> cancelled transition, and a second release of
  the same ticket fails on its status. The counter therefore stays paired
  with the ticket rows by construction, never by clamping.
"""

import secrets
import string
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing.core.exceptions import (
    BelowSoldFloorError,
    InvalidCapacityError,
    InvalidStateError,
    NoCapacityError,
    NotCancellableError,
    NotPurchasableError,
    TicketNotFoundError,
)
from ticketing.core.logging import get_logger
from ticketing.core.metrics import (
    record_capacity_change,
    record_reservation,
    record_ticket_transition,
    reservation_latency,
)
from ticketing.db.base import utcnow
from ticketing.db.locking import lock_event, run_in_transaction
from ticketing.models.event import Event
from ticketing.models.ticket import Ticket, TicketStatus

logger = get_logger(__name__)

TICKET_NUMBER_PREFIX = "TKT-"
TICKET_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
CENT = Decimal("0.01")


def discounted_price(base_price: Decimal, discount_percentage: Decimal | int | float = 0) -> Decimal:
    """Price after a percentage discount, rounded to cents."""
    discount = Decimal(str(discount_percentage))
    if discount < 0 or discount > 100:
        raise ValueError("discount_percentage must be between 0 and 100")
    price = Decimal(base_price) * (Decimal(100) - discount) / Decimal(100)
    return price.quantize(CENT, rounding=ROUND_HALF_UP)


async def _generate_ticket_number(session: AsyncSession) -> str:
    while True:
        number = TICKET_NUMBER_PREFIX + "".join(
            secrets.choice(TICKET_NUMBER_ALPHABET) for _ in range(8)
        )
        existing = await session.execute(
            select(Ticket.id).where(Ticket.ticket_number == number)
        )
        if existing.scalar_one_or_none() is None:
            return number


class InventoryLedger:
    """
    Owns Event.total_tickets / Event.available_tickets and the tickets
    issued against them. Request handlers never touch the counters directly.

    Each public method is one unit of work: its own session, its own
    transaction, its own event lock, retried on lock conflicts.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    async def reserve(
        self,
        event_id: int,
        price: Decimal,
        *,
        user_id: Optional[int] = None,
        discount_percentage: Decimal | int = 0,
    ) -> Ticket:
        """
        Issue one ticket and take one unit of capacity.

        Raises:
            EventNotFoundError: no such event
            NoCapacityError: available_tickets is 0 once the lock is held
            NotPurchasableError: the event has already started (or ended)
        """
        started = time.perf_counter()

        async def _reserve(session: AsyncSession) -> Ticket:
            event = await lock_event(session, event_id)

            if event.available_tickets <= 0:
                record_reservation("no_capacity")
                logger.warning("reserve_rejected", event_id=event_id, reason="no_capacity")
                raise NoCapacityError(event_id)

            if self._clock() >= event.start_date:
                record_reservation("not_purchasable")
                logger.warning("reserve_rejected", event_id=event_id, reason="not_purchasable")
                raise NotPurchasableError(event_id)

            ticket = Ticket(
                ticket_number=await _generate_ticket_number(session),
                event_id=event.id,
                user_id=user_id,
                price=price,
                discount_percentage=discount_percentage,
                status=TicketStatus.ACTIVE.value,
                purchase_date=self._clock(),
            )
            session.add(ticket)
            event.available_tickets -= 1
            await session.flush()
            return ticket

        ticket = await run_in_transaction(self._session_factory, _reserve, name="reserve")
        reservation_latency.observe(time.perf_counter() - started)
        record_reservation("success")

        logger.info(
            "ticket_reserved",
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            event_id=event_id,
            user_id=user_id,
        )
        return ticket

    async def release(self, ticket_id: int) -> Ticket:
        """
        Cancel an active ticket and give its unit of capacity back.

        Raises:
            TicketNotFoundError: no such ticket
            InvalidStateError: ticket is already cancelled or used
            NotCancellableError: the event has already started
        """

        async def _release(session: AsyncSession) -> Ticket:
            event_id = await self._event_id_for(session, ticket_id)
            # Event row first, then ticket row: same order as reserve
            event = await lock_event(session, event_id)
            ticket = await self._lock_ticket(session, ticket_id)

            if ticket.status == TicketStatus.CANCELLED.value:
                raise InvalidStateError(ticket_id, ticket.status, "Ticket is already cancelled")
            if ticket.status == TicketStatus.USED.value:
                raise InvalidStateError(ticket_id, ticket.status, "Cannot cancel used ticket")
            if self._clock() >= event.start_date:
                raise NotCancellableError(ticket_id)

            ticket.status = TicketStatus.CANCELLED.value
            ticket.cancelled_at = self._clock()
            event.available_tickets += 1
            await session.flush()
            return ticket

        ticket = await run_in_transaction(self._session_factory, _release, name="release")
        record_ticket_transition(TicketStatus.CANCELLED.value)

        logger.info("ticket_released", ticket_id=ticket.id, event_id=ticket.event_id)
        return ticket

    async def mark_used(self, ticket_id: int) -> Ticket:
        """active -> used. Capacity is unchanged: a used ticket is still sold."""

        async def _mark_used(session: AsyncSession) -> Ticket:
            event_id = await self._event_id_for(session, ticket_id)
            await lock_event(session, event_id)
            ticket = await self._lock_ticket(session, ticket_id)

            if not ticket.is_active:
                raise InvalidStateError(ticket_id, ticket.status, "Ticket is not active")

            ticket.status = TicketStatus.USED.value
            ticket.used_at = self._clock()
            await session.flush()
            return ticket

        ticket = await run_in_transaction(self._session_factory, _mark_used, name="mark_used")
        record_ticket_transition(TicketStatus.USED.value)

        logger.info("ticket_used", ticket_id=ticket.id, event_id=ticket.event_id)
        return ticket

    async def resize(self, event_id: int, new_total: int) -> Event:
        """
        Change an event's capacity without touching tickets already sold.

        Raises:
            EventNotFoundError: no such event
            InvalidCapacityError: new_total < 1
            BelowSoldFloorError: new_total is below the number already sold
        """

        async def _resize(session: AsyncSession) -> Event:
            event = await lock_event(session, event_id)

            if new_total < 1:
                raise InvalidCapacityError(new_total)

            sold = event.total_tickets - event.available_tickets
            if new_total < sold:
                record_capacity_change("below_sold_floor")
                logger.warning(
                    "resize_rejected",
                    event_id=event_id,
                    requested=new_total,
                    sold=sold,
                )
                raise BelowSoldFloorError(event_id, new_total, sold)

            event.total_tickets = new_total
            event.available_tickets = new_total - sold
            await session.flush()
            return event

        event = await run_in_transaction(self._session_factory, _resize, name="resize")
        record_capacity_change("success")

        logger.info(
            "event_resized",
            event_id=event_id,
            total_tickets=event.total_tickets,
            available_tickets=event.available_tickets,
        )
        return event

    @staticmethod
    async def _event_id_for(session: AsyncSession, ticket_id: int) -> int:
        result = await session.execute(select(Ticket.event_id).where(Ticket.id == ticket_id))
        event_id = result.scalar_one_or_none()
        if event_id is None:
            raise TicketNotFoundError(ticket_id)
        return event_id

    @staticmethod
    async def _lock_ticket(session: AsyncSession, ticket_id: int) -> Ticket:
        result = await session.execute(
            select(Ticket).where(Ticket.id == ticket_id).with_for_update()
        )
        ticket = result.scalar_one_or_none()
        if ticket is None:
            raise TicketNotFoundError(ticket_id)
        return ticket
