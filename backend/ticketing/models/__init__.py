from ticketing.models.event import Event
from ticketing.models.ticket import Ticket, TicketStatus
from ticketing.models.queue_entry import QueueEntry, QueueLock, QueueStatus

__all__ = ["Event", "Ticket", "TicketStatus", "QueueEntry", "QueueLock", "QueueStatus"]
