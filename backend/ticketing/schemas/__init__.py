from ticketing.schemas.event import EventCreate, EventResponse, CapacityUpdate
from ticketing.schemas.ticket import TicketPurchase, TicketResponse, TicketValidation
from ticketing.schemas.queue import (
    AdmissionResponse,
    LeaveResponse,
    QueuePolicyResponse,
    MaxUsersUpdate,
    MaxUsersResponse,
    ClearResponse,
    ActivateResponse,
    QueueStatsResponse,
)

__all__ = [
    "EventCreate", "EventResponse", "CapacityUpdate",
    "TicketPurchase", "TicketResponse", "TicketValidation",
    "AdmissionResponse", "LeaveResponse", "QueuePolicyResponse",
    "MaxUsersUpdate", "MaxUsersResponse", "ClearResponse",
    "ActivateResponse", "QueueStatsResponse",
]
