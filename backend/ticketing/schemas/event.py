"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import AwareDatetime, BaseModel, Field


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    location: Optional[str] = Field(None, max_length=255)
    price: Decimal = Field(default=Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    start_date: AwareDatetime
    end_date: AwareDatetime
    total_tickets: int = Field(..., gt=0, le=100000)


class CapacityUpdate(BaseModel):
    total_tickets: int


class EventResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    location: Optional[str]
    price: Decimal
    start_date: datetime
    end_date: datetime
    total_tickets: int
    available_tickets: int
    sold_tickets: int
    created_at: datetime

    model_config = {"from_attributes": True}
