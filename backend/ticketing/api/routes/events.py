"""
Event endpoints. Capacity changes go through the inventory ledger.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.api.deps import get_inventory_ledger
from ticketing.db.session import get_db
from ticketing.schemas.event import CapacityUpdate, EventCreate, EventResponse
from ticketing.services.event_service import create_event, get_event
from ticketing.services.inventory_ledger import InventoryLedger

router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    db: AsyncSession = Depends(get_db),
):
    """Create a new event with all tickets available."""
    return await create_event(db, event_data)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single event by ID, with live ticket counts."""
    return await get_event(db, event_id)


@router.put("/{event_id}/capacity", response_model=EventResponse)
async def resize_event_endpoint(
    event_id: int,
    data: CapacityUpdate,
    ledger: InventoryLedger = Depends(get_inventory_ledger),
):
    """
    Change total capacity. Fails with 422 if the new total is below the
    number of tickets already sold.
    """
    return await ledger.resize(event_id, data.total_tickets)
