"""
Queue admission control: a bounded pool of active sessions fed from a FIFO
waiting queue.

CONCURRENCY STRATEGY: one queue mutex, one transaction per decision
===================================================================

Problem:
  Two sessions join at once while one slot is free. Both count active=M-1,
  both insert an active row. Result: M+1 active sessions.
  Or: both compute max(position)+1 = 7 and two people stand at position 7.

Solution:
  Every mutation starts with SELECT ... FOR UPDATE on the single queue_locks
  row, then expires lapsed leases, counts, inserts/promotes and renumbers
  inside the same transaction. Joins and reconciliations are therefore
  linearized: no commit can push active above max_active_users, and
  positions among waiting entries are always exactly 1..W.

Lease expiry is lazy: a lapsed lease keeps counting as active until the next
join, check_status or process_queue runs the sweep. The optional background
reconciler (run_reconciler) only tightens that window.

Lowering max_active_users never evicts anyone. Active count may sit above
the new ceiling until leases drain; process_queue simply finds no room.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing.core.logging import get_logger
from ticketing.core.metrics import record_admission, record_queue_reconciliation
from ticketing.db.base import utcnow
from ticketing.db.locking import lock_queue, run_in_transaction
from ticketing.models.queue_entry import QueueEntry, QueueStatus
from ticketing.services.policy_service import (
    AdmissionPolicy,
    AdmissionPolicyStore,
    MINUTES_PER_QUEUED_USER,
)

logger = get_logger(__name__)

NOT_IN_QUEUE = "not_in_queue"
RECENT_ACTIVITY_WINDOW = timedelta(hours=1)
RECENT_ACTIVITY_LIMIT = 10

_NON_TERMINAL = (QueueStatus.WAITING.value, QueueStatus.ACTIVE.value)


@dataclass
class AdmissionResult:
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


@dataclass
class MaxUsersChange:
    max_users: int
    current_active: int
    activated: int
    over_limit: bool


@dataclass
class QueueStats:
    total_waiting: int
    total_active: int
    total_expired: int
    queue_enabled: bool
    max_active_users: int
    average_wait_time: float
    longest_waiting: float
    recent_activity: list = field(default_factory=list)


def estimated_wait_minutes(position: Optional[int]) -> int:
    """Linear estimate: everyone ahead takes MINUTES_PER_QUEUED_USER."""
    if not position:
        return 0
    return position * MINUTES_PER_QUEUED_USER


class QueueAdmissionController:
    """
    Owns QueueEntry rows. Every public method reads the admission policy once
    and uses that value for the whole decision.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy_store: AdmissionPolicyStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._policy_store = policy_store
        self._clock = clock

    # ------------------------------------------------------------------
    # Session operations
    # ------------------------------------------------------------------

    async def join(self, session_id: str, user_id: Optional[int] = None) -> AdmissionResult:
        """
        Enter the system: immediate lease when there is room, a place in line
        otherwise. Repeated calls return the existing entry unchanged.
        """
        policy = await self._policy_store.read()
        if not policy.enabled:
            record_admission("bypassed")
            return AdmissionResult(status=QueueStatus.ACTIVE.value, can_access=True, message="Queue is disabled")

        async def _join(session: AsyncSession) -> tuple[str, AdmissionResult]:
            await lock_queue(session)
            now = self._clock()

            existing = await self._current_entry(session, session_id)
            if existing is not None:
                if existing.status == QueueStatus.WAITING.value:
                    return "existing", self._result(existing, policy, now, "Already in queue")
                if existing.expires_at > now:
                    return "existing", self._result(existing, policy, now, "Already active")

            await self._expire_leases(session, now)
            active = await self._count(session, QueueStatus.ACTIVE, now)

            if active < policy.max_active_users:
                entry = QueueEntry(
                    session_id=session_id,
                    user_id=user_id,
                    status=QueueStatus.ACTIVE.value,
                    joined_at=now,
                    expires_at=now + policy.lease_duration,
                )
                session.add(entry)
                await session.flush()
                return "admitted", self._result(entry, policy, now, "Direct access granted")

            last_position = await session.scalar(
                select(func.max(QueueEntry.position)).where(
                    QueueEntry.status == QueueStatus.WAITING.value
                )
            )
            entry = QueueEntry(
                session_id=session_id,
                user_id=user_id,
                status=QueueStatus.WAITING.value,
                position=(last_position or 0) + 1,
                joined_at=now,
            )
            session.add(entry)
            await session.flush()
            return "queued", self._result(entry, policy, now, "Added to queue")

        outcome, result = await run_in_transaction(self._session_factory, _join, name="queue_join")
        record_admission(outcome)

        logger.info(
            "queue_joined",
            session_id=session_id,
            outcome=outcome,
            status=result.status,
            position=result.position,
        )
        return result

    async def check_status(self, session_id: str) -> AdmissionResult:
        """
        Reconcile the queue, then report this session's fresh state plus the
        global waiting/active counts.
        """
        policy = await self._policy_store.read()
        if not policy.enabled:
            return AdmissionResult(status=QueueStatus.ACTIVE.value, can_access=True, message="Queue is disabled")

        async def _check(session: AsyncSession) -> AdmissionResult:
            await lock_queue(session)
            now = self._clock()

            entry = await self._current_entry(session, session_id)
            if entry is None:
                return AdmissionResult(status=NOT_IN_QUEUE, can_access=False, message="Not in queue")

            await self._reconcile(session, policy.max_active_users, policy, now)
            await session.refresh(entry)

            result = self._result(entry, policy, now, "Queue status retrieved")
            result.total_waiting = await self._count(session, QueueStatus.WAITING, now)
            result.total_active = await self._count(session, QueueStatus.ACTIVE, now)
            return result

        return await run_in_transaction(self._session_factory, _check, name="queue_status")

    async def leave(self, session_id: str) -> bool:
        """Drop this session's waiting or active entry. True if one existed."""

        async def _leave(session: AsyncSession) -> bool:
            await lock_queue(session)
            result = await session.execute(
                delete(QueueEntry).where(
                    QueueEntry.session_id == session_id,
                    QueueEntry.status.in_(_NON_TERMINAL),
                )
            )
            if result.rowcount:
                await self._reorder(session)
            return bool(result.rowcount)

        removed = await run_in_transaction(self._session_factory, _leave, name="queue_leave")
        logger.info("queue_left", session_id=session_id, removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def process_queue(self, max_active: Optional[int] = None) -> int:
        """
        Expire lapsed leases, promote waiting entries into free slots in
        position order and close the gaps. Returns how many were promoted.

        `max_active` overrides the policy ceiling for this call only.
        """
        policy = await self._policy_store.read()
        ceiling = policy.max_active_users if max_active is None else max_active

        async def _process(session: AsyncSession) -> int:
            await lock_queue(session)
            return await self._reconcile(session, ceiling, policy, self._clock())

        return await run_in_transaction(self._session_factory, _process, name="process_queue")

    async def reorder_queue(self) -> None:
        """Renumber waiting entries 1..W. Normally done inside each mutation."""

        async def _reorder(session: AsyncSession) -> None:
            await lock_queue(session)
            await self._reorder(session)

        await run_in_transaction(self._session_factory, _reorder, name="reorder_queue")

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    async def set_enabled(self, enabled: bool) -> AdmissionPolicy:
        """Toggle enforcement. Existing entries are left exactly as they are."""
        policy = await self._policy_store.set_enabled(enabled)
        logger.info("queue_enforcement_changed", enabled=enabled)
        return policy

    async def set_max_active_users(self, max_active_users: int) -> MaxUsersChange:
        """
        Persist a new ceiling and run one reconciliation with it. Sessions
        above a lowered ceiling keep their leases until they lapse.
        """
        await self._policy_store.set_max_active_users(max_active_users)
        activated = await self.process_queue(max_active_users)

        async def _count_active(session: AsyncSession) -> int:
            return await self._count(session, QueueStatus.ACTIVE, self._clock())

        current_active = await run_in_transaction(
            self._session_factory, _count_active, name="count_active"
        )
        change = MaxUsersChange(
            max_users=max_active_users,
            current_active=current_active,
            activated=activated,
            over_limit=current_active > max_active_users,
        )
        logger.info(
            "queue_capacity_changed",
            max_users=max_active_users,
            current_active=current_active,
            activated=activated,
        )
        return change

    async def clear_waiting(self) -> int:
        return await self._purge(QueueStatus.WAITING)

    async def clear_expired(self) -> int:
        return await self._purge(QueueStatus.EXPIRED)

    async def stats(self) -> QueueStats:
        """Diagnostics, recomputed from the table on every call."""
        policy = await self._policy_store.read()

        async def _stats(session: AsyncSession) -> QueueStats:
            await lock_queue(session)
            now = self._clock()
            await self._expire_leases(session, now)

            waiting = (
                await session.execute(
                    select(QueueEntry)
                    .where(QueueEntry.status == QueueStatus.WAITING.value)
                    .order_by(QueueEntry.joined_at)
                )
            ).scalars().all()

            average_wait = 0.0
            longest = 0.0
            if waiting:
                total_wait = sum(estimated_wait_minutes(e.position) for e in waiting)
                average_wait = round(total_wait / len(waiting), 1)
                longest = round((now - waiting[0].joined_at).total_seconds() / 60, 1)

            recent = (
                await session.execute(
                    select(QueueEntry)
                    .where(QueueEntry.joined_at > now - RECENT_ACTIVITY_WINDOW)
                    .order_by(QueueEntry.joined_at.desc(), QueueEntry.id.desc())
                    .limit(RECENT_ACTIVITY_LIMIT)
                )
            ).scalars().all()

            return QueueStats(
                total_waiting=len(waiting),
                total_active=await self._count(session, QueueStatus.ACTIVE, now),
                total_expired=await self._count(session, QueueStatus.EXPIRED, now),
                queue_enabled=policy.enabled,
                max_active_users=policy.max_active_users,
                average_wait_time=average_wait,
                longest_waiting=longest,
                recent_activity=[
                    {
                        "id": e.id,
                        "status": e.status,
                        "joined_at": e.joined_at,
                        "expires_at": e.expires_at,
                        "user_id": e.user_id,
                    }
                    for e in recent
                ],
            )

        return await run_in_transaction(self._session_factory, _stats, name="queue_stats")

    # ------------------------------------------------------------------
    # Helpers (caller holds the queue mutex)
    # ------------------------------------------------------------------

    async def _reconcile(
        self,
        session: AsyncSession,
        ceiling: int,
        policy: AdmissionPolicy,
        now: datetime,
    ) -> int:
        expired = await self._expire_leases(session, now)
        active = await self._count(session, QueueStatus.ACTIVE, now)
        room = max(0, ceiling - active)

        promoted = 0
        if room > 0:
            candidates = (
                await session.execute(
                    select(QueueEntry)
                    .where(QueueEntry.status == QueueStatus.WAITING.value)
                    .order_by(QueueEntry.position)
                    .limit(room)
                )
            ).scalars().all()
            for entry in candidates:
                entry.status = QueueStatus.ACTIVE.value
                entry.position = None
                entry.expires_at = now + policy.lease_duration
            promoted = len(candidates)
            await session.flush()

        await self._reorder(session)
        record_queue_reconciliation(promoted, expired)

        if promoted or expired:
            logger.info("queue_promoted", promoted=promoted, expired=expired, active=active + promoted)
        return promoted

    async def _reorder(self, session: AsyncSession) -> None:
        waiting = (
            await session.execute(
                select(QueueEntry)
                .where(QueueEntry.status == QueueStatus.WAITING.value)
                .order_by(QueueEntry.position)
            )
        ).scalars().all()
        for index, entry in enumerate(waiting, start=1):
            if entry.position != index:
                entry.position = index
        await session.flush()

    async def _expire_leases(self, session: AsyncSession, now: datetime) -> int:
        result = await session.execute(
            update(QueueEntry)
            .where(
                QueueEntry.status == QueueStatus.ACTIVE.value,
                QueueEntry.expires_at <= now,
            )
            .values(status=QueueStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    @staticmethod
    async def _count(session: AsyncSession, status: QueueStatus, now: datetime) -> int:
        query = select(func.count(QueueEntry.id)).where(QueueEntry.status == status.value)
        if status == QueueStatus.ACTIVE:
            query = query.where(QueueEntry.expires_at > now)
        return await session.scalar(query) or 0

    @staticmethod
    async def _current_entry(session: AsyncSession, session_id: str) -> Optional[QueueEntry]:
        result = await session.execute(
            select(QueueEntry)
            .where(
                QueueEntry.session_id == session_id,
                QueueEntry.status.in_(_NON_TERMINAL),
            )
            .order_by(QueueEntry.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _purge(self, status: QueueStatus) -> int:
        async def _delete(session: AsyncSession) -> int:
            await lock_queue(session)
            result = await session.execute(
                delete(QueueEntry).where(QueueEntry.status == status.value)
            )
            return result.rowcount or 0

        deleted = await run_in_transaction(self._session_factory, _delete, name=f"clear_{status.value}")
        logger.info("queue_cleared", status=status.value, deleted=deleted)
        return deleted

    @staticmethod
    def _result(entry: QueueEntry, policy: AdmissionPolicy, now: datetime, message: str) -> AdmissionResult:
        if entry.status == QueueStatus.WAITING.value:
            return AdmissionResult(
                status=entry.status,
                can_access=False,
                message=message,
                position=entry.position,
                estimated_wait_time=estimated_wait_minutes(entry.position),
                queue_id=entry.id,
            )

        can_access = entry.status == QueueStatus.ACTIVE.value and entry.expires_at > now
        return AdmissionResult(
            status=entry.status,
            can_access=can_access,
            message=message if can_access else "Session expired",
            expires_at=entry.expires_at,
            session_duration=policy.lease_minutes if can_access else None,
            queue_id=entry.id,
        )


async def run_reconciler(controller: QueueAdmissionController, interval_seconds: float) -> None:
    """
    Call process_queue every `interval_seconds` until cancelled. Lazy checks
    stay authoritative; this only shortens how long a lapsed lease holds a slot.
    """
    logger.info("queue_reconciler_started", interval_seconds=interval_seconds)
    while True:
        try:
            await controller.process_queue()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("queue_reconciler_failed", error=str(e))
        await asyncio.sleep(interval_seconds)
