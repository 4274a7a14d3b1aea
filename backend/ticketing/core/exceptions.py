"""
Domain errors raised by the inventory ledger and the admission queue.

Every error is a local, deterministic outcome. The API layer renders them
as ``{"detail": message, "code": CODE}`` with the status code carried here,
so services never build HTTP responses themselves.
"""

from enum import Enum


class ErrorCode(str, Enum):
    NO_CAPACITY = "NO_CAPACITY"
    NOT_PURCHASABLE = "NOT_PURCHASABLE"
    INVALID_STATE = "INVALID_STATE"
    NOT_CANCELLABLE = "NOT_CANCELLABLE"
    BELOW_SOLD_FLOOR = "BELOW_SOLD_FLOOR"
    INVALID_CAPACITY = "INVALID_CAPACITY"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    TICKET_NOT_FOUND = "TICKET_NOT_FOUND"
    TRANSACTION_CONFLICT = "TRANSACTION_CONFLICT"


class DomainError(Exception):
    """Base domain error with a code and a user-safe message."""

    code: ErrorCode
    status_code: int = 422

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class NoCapacityError(DomainError):
    code = ErrorCode.NO_CAPACITY
    status_code = 409

    def __init__(self, event_id: int) -> None:
        super().__init__("No tickets available for this event")
        self.event_id = event_id


class NotPurchasableError(DomainError):
    code = ErrorCode.NOT_PURCHASABLE

    def __init__(self, event_id: int) -> None:
        super().__init__("Cannot purchase tickets for past events or events that have started")
        self.event_id = event_id


class InvalidStateError(DomainError):
    """A ticket transition was attempted from a terminal status."""

    code = ErrorCode.INVALID_STATE

    def __init__(self, ticket_id: int, current_status: str, message: str) -> None:
        super().__init__(message)
        self.ticket_id = ticket_id
        self.current_status = current_status


class NotCancellableError(DomainError):
    code = ErrorCode.NOT_CANCELLABLE

    def __init__(self, ticket_id: int) -> None:
        super().__init__("Cannot cancel ticket for events that have already started")
        self.ticket_id = ticket_id


class BelowSoldFloorError(DomainError):
    code = ErrorCode.BELOW_SOLD_FLOOR

    def __init__(self, event_id: int, requested: int, sold: int) -> None:
        super().__init__(
            f"Cannot reduce capacity below sold count. Requested: {requested}, Sold: {sold}"
        )
        self.event_id = event_id
        self.requested = requested
        self.sold = sold


class InvalidCapacityError(DomainError):
    code = ErrorCode.INVALID_CAPACITY

    def __init__(self, requested: int) -> None:
        super().__init__("Total tickets must be at least 1")
        self.requested = requested


class EventNotFoundError(DomainError):
    code = ErrorCode.EVENT_NOT_FOUND
    status_code = 404

    def __init__(self, event_id: int) -> None:
        super().__init__(f"Event {event_id} not found")
        self.event_id = event_id


class TicketNotFoundError(DomainError):
    code = ErrorCode.TICKET_NOT_FOUND
    status_code = 404

    def __init__(self, ticket_id: int) -> None:
        super().__init__(f"Ticket {ticket_id} not found")
        self.ticket_id = ticket_id


class TransactionConflictError(DomainError):
    """Lock timeout or deadlock survived the retry budget. Nothing was committed."""

    code = ErrorCode.TRANSACTION_CONFLICT
    status_code = 503

    def __init__(self, operation: str, attempts: int) -> None:
        super().__init__("The system is busy, please try again")
        self.operation = operation
        self.attempts = attempts
