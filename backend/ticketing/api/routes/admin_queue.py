"""
Admin controls for the access queue.
"""

from fastapi import APIRouter, Depends

from ticketing.api.deps import get_admission_controller
from ticketing.schemas.queue import (
    ActivateResponse,
    ClearResponse,
    MaxUsersResponse,
    MaxUsersUpdate,
    QueuePolicyResponse,
    QueueStatsResponse,
)
from ticketing.services.admission_service import QueueAdmissionController
from ticketing.services.policy_service import AdmissionPolicy

router = APIRouter(prefix="/admin/queue", tags=["Queue Admin"])


def _policy_response(policy: AdmissionPolicy) -> QueuePolicyResponse:
    return QueuePolicyResponse(
        queue_enabled=policy.enabled,
        max_active_users=policy.max_active_users,
        session_duration=policy.lease_minutes,
    )


@router.post("/enable", response_model=QueuePolicyResponse)
async def enable_queue_endpoint(
    controller: QueueAdmissionController = Depends(get_admission_controller),
):
    return _policy_response(await controller.set_enabled(True))


@router.post("/disable", response_model=QueuePolicyResponse)
async def disable_queue_endpoint(
    controller: QueueAdmissionController = Depends(get_admission_controller),
):
    """Stop enforcing the queue. Existing entries are kept as they are."""
    return _policy_response(await controller.set_enabled(False))


@router.put("/max-users", response_model=MaxUsersResponse)
async def set_max_users_endpoint(
    data: MaxUsersUpdate,
    controller: QueueAdmissionController = Depends(get_admission_controller),
):
    """
    Change the active-session ceiling and promote into any new room.
    Lowering it never evicts: sessions above the limit drain as leases lapse.
    """
    change = await controller.set_max_active_users(data.max_users)
    message = f"Max active users set to {change.max_users}"
    if change.over_limit:
        message += f"; {change.current_active} sessions are currently active, above the new limit"
    return MaxUsersResponse(
        max_users=change.max_users,
        current_active=change.current_active,
        activated=change.activated,
        over_limit=change.over_limit,
        message=message,
    )


@router.get("/stats", response_model=QueueStatsResponse)
async def queue_stats_endpoint(
    controller: QueueAdmissionController = Depends(get_admission_controller),
):
    return await controller.stats()


@router.delete("/clear-waiting", response_model=ClearResponse)
async def clear_waiting_endpoint(
    controller: QueueAdmissionController = Depends(get_admission_controller),
):
    return ClearResponse(deleted_count=await controller.clear_waiting())


@router.delete("/clear-expired", response_model=ClearResponse)
async def clear_expired_endpoint(
    controller: QueueAdmissionController = Depends(get_admission_controller),
):
    return ClearResponse(deleted_count=await controller.clear_expired())


@router.post("/activate-next", response_model=ActivateResponse)
async def activate_next_endpoint(
    controller: QueueAdmissionController = Depends(get_admission_controller),
):
    """Run one reconciliation pass now instead of waiting for the next poll."""
    activated = await controller.process_queue()
    stats = await controller.stats()
    return ActivateResponse(
        activated_count=activated,
        active=stats.total_active,
        waiting=stats.total_waiting,
    )
