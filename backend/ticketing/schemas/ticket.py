"""
Pydantic schemas for ticket purchase and lifecycle responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class TicketPurchase(BaseModel):
    event_id: int
    user_id: Optional[int] = None
    discount_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)


class TicketResponse(BaseModel):
    id: int
    ticket_number: str
    event_id: int
    user_id: Optional[int]
    price: Decimal
    discount_percentage: Decimal
    status: str
    purchase_date: datetime
    cancelled_at: Optional[datetime]
    used_at: Optional[datetime]

    model_config = {"from_attributes": True}


class TicketValidation(BaseModel):
    """Door check by ticket number; `ticket` is only filled in when valid."""

    valid: bool
    ticket: Optional[TicketResponse] = None
    message: str
