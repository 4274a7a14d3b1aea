"""
Notifier that only logs - the default until a delivery channel is wired in.
"""

from ticketing.core.logging import get_logger
from ticketing.models.ticket import Ticket
from ticketing.services.interfaces.notifier import TicketNotifier

logger = get_logger(__name__)


class LoggingNotifier(TicketNotifier):
    """Writes one log line per notification."""

    async def ticket_purchased(self, ticket: Ticket) -> None:
        logger.info(
            "ticket_purchase_notification",
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            user_id=ticket.user_id,
        )

    async def ticket_cancelled(self, ticket: Ticket) -> None:
        logger.info(
            "ticket_cancellation_notification",
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            user_id=ticket.user_id,
        )
