"""
Ticket endpoints with concurrency-safe purchase and cancellation.

Confirmation notifications run as background tasks, after the ledger
transaction has committed.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing.api.deps import get_inventory_ledger, get_notifier, get_session_factory
from ticketing.db.session import get_db
from ticketing.schemas.ticket import TicketPurchase, TicketResponse, TicketValidation
from ticketing.services.event_service import get_event, get_ticket, get_ticket_by_number
from ticketing.services.interfaces import TicketNotifier, notify_safely
from ticketing.services.inventory_ledger import InventoryLedger, discounted_price

router = APIRouter(prefix="/tickets", tags=["Tickets"])


@router.post("/", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def purchase_ticket_endpoint(
    data: TicketPurchase,
    background_tasks: BackgroundTasks,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    ledger: InventoryLedger = Depends(get_inventory_ledger),
    notifier: TicketNotifier = Depends(get_notifier),
):
    """
    Buy one ticket.

    Concurrency: the ledger locks the event row, so when several buyers race
    for the last ticket exactly one gets it and the rest get 409.
    """
    # Short read-only session; the ledger opens its own locked transaction
    async with session_factory() as session:
        event = await get_event(session, data.event_id)
        base_price = event.price

    ticket = await ledger.reserve(
        data.event_id,
        discounted_price(base_price, data.discount_percentage),
        user_id=data.user_id,
        discount_percentage=data.discount_percentage,
    )
    background_tasks.add_task(notify_safely, notifier.ticket_purchased, ticket)
    return ticket


@router.get(
    "/validate/{ticket_number}",
    response_model=TicketValidation,
    responses={404: {"model": TicketValidation}},
)
async def validate_ticket_endpoint(
    ticket_number: str,
    db: AsyncSession = Depends(get_db),
):
    """
    Door check by ticket number, before marking the ticket used.

    Unknown numbers get 404; cancelled or used tickets get 200 with valid=false.
    """
    ticket = await get_ticket_by_number(db, ticket_number)
    if ticket is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"valid": False, "ticket": None, "message": "Invalid ticket number"},
        )

    if not ticket.is_active:
        return TicketValidation(valid=False, message="Ticket has been cancelled or already used")
    return TicketValidation(
        valid=True,
        ticket=TicketResponse.model_validate(ticket),
        message="Valid ticket",
    )


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket_endpoint(
    ticket_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single ticket by ID."""
    return await get_ticket(db, ticket_id)


@router.post("/{ticket_id}/cancel", response_model=TicketResponse)
async def cancel_ticket_endpoint(
    ticket_id: int,
    background_tasks: BackgroundTasks,
    ledger: InventoryLedger = Depends(get_inventory_ledger),
    notifier: TicketNotifier = Depends(get_notifier),
):
    """Cancel an active ticket and return its capacity to the event."""
    ticket = await ledger.release(ticket_id)
    background_tasks.add_task(notify_safely, notifier.ticket_cancelled, ticket)
    return ticket


@router.post("/{ticket_id}/use", response_model=TicketResponse)
async def use_ticket_endpoint(
    ticket_id: int,
    ledger: InventoryLedger = Depends(get_inventory_ledger),
):
    """Mark a ticket as used at the door."""
    return await ledger.mark_used(ticket_id)
