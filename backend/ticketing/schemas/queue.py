"""
Pydantic schemas for the admission queue and its admin endpoints.
"""

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field


class AdmissionResponse(BaseModel):
    status: str
    can_access: bool
    message: str
    position: Optional[int] = None
    estimated_wait_time: Optional[int] = None
    expires_at: Optional[datetime] = None
    session_duration: Optional[int] = None
    queue_id: Optional[int] = None
    total_waiting: Optional[int] = None
    total_active: Optional[int] = None

    model_config = {"from_attributes": True}


class LeaveResponse(BaseModel):
    removed: bool
    message: str


class QueuePolicyResponse(BaseModel):
    queue_enabled: bool
    max_active_users: int
    session_duration: int


class MaxUsersUpdate(BaseModel):
    max_users: int = Field(..., ge=1, le=1000)


class MaxUsersResponse(BaseModel):
    max_users: int
    current_active: int
    activated: int
    over_limit: bool
    message: str


class ClearResponse(BaseModel):
    deleted_count: int


class ActivateResponse(BaseModel):
    activated_count: int
    active: int
    waiting: int


class QueueStatsResponse(BaseModel):
    total_waiting: int
    total_active: int
    total_expired: int
    queue_enabled: bool
    max_active_users: int
    average_wait_time: float
    longest_waiting: float
    recent_activity: list[dict[str, Any]]

    model_config = {"from_attributes": True}
