"""
Access queue endpoints. The caller's browser session is identified by the
X-Session-ID header; clients poll /status every few seconds while waiting.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header

from ticketing.api.deps import get_admission_controller
from ticketing.schemas.queue import AdmissionResponse, LeaveResponse
from ticketing.services.admission_service import QueueAdmissionController

router = APIRouter(prefix="/queue", tags=["Queue"])


@router.post("/join", response_model=AdmissionResponse)
async def join_queue_endpoint(
    x_session_id: str = Header(..., min_length=1, max_length=255),
    x_user_id: Optional[int] = Header(None),
    controller: QueueAdmissionController = Depends(get_admission_controller),
):
    """
    Join the queue. Grants access immediately when a slot is free, otherwise
    returns a position and a wait estimate. Safe to call on every page load.
    """
    return await controller.join(x_session_id, x_user_id)


@router.get("/status", response_model=AdmissionResponse)
async def queue_status_endpoint(
    x_session_id: str = Header(..., min_length=1, max_length=255),
    controller: QueueAdmissionController = Depends(get_admission_controller),
):
    """Current status; also promotes waiting sessions into free slots."""
    return await controller.check_status(x_session_id)


@router.delete("/leave", response_model=LeaveResponse)
async def leave_queue_endpoint(
    x_session_id: str = Header(..., min_length=1, max_length=255),
    controller: QueueAdmissionController = Depends(get_admission_controller),
):
    removed = await controller.leave(x_session_id)
    return LeaveResponse(
        removed=removed,
        message="Left queue successfully" if removed else "Not in queue",
    )
