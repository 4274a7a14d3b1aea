"""
Ticket notification interface.
Purchase and cancellation confirmations are sent after the ledger
transaction has committed; a failed notification never undoes a sale.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from ticketing.core.logging import get_logger
from ticketing.models.ticket import Ticket

logger = get_logger(__name__)


class TicketNotifier(ABC):
    """
    Interface for ticket notification channels.

    Implementations:
    - LoggingNotifier: writes a structured log line per notification
    - (email / QR delivery would plug in here)
    """

    @abstractmethod
    async def ticket_purchased(self, ticket: Ticket) -> None:
        """
        Notify the buyer that a ticket was issued.

        Args:
            ticket: The committed, active ticket
        """
        pass

    @abstractmethod
    async def ticket_cancelled(self, ticket: Ticket) -> None:
        """
        Notify the holder that a ticket was cancelled.

        Args:
            ticket: The committed, cancelled ticket
        """
        pass


async def notify_safely(send: Callable[[Ticket], Awaitable[None]], ticket: Ticket) -> None:
    """Run one notification; failures are logged and dropped."""
    try:
        await send(ticket)
    except Exception as e:
        logger.error(
            "ticket_notification_failed",
            notification=getattr(send, "__name__", repr(send)),
            ticket_id=ticket.id,
            error=str(e),
        )
