"""
Tests for queue admission: bounded active pool, FIFO positions, lazy lease
expiry and the admin operations.
"""

import asyncio

import pytest
from sqlalchemy import select

from ticketing.models.queue_entry import QueueEntry, QueueStatus
from ticketing.services.admission_service import NOT_IN_QUEUE, run_reconciler


async def entries(session_factory, status: QueueStatus = None) -> list[QueueEntry]:
    async with session_factory() as session:
        query = select(QueueEntry).order_by(QueueEntry.id)
        if status is not None:
            query = query.where(QueueEntry.status == status.value)
        return list((await session.execute(query)).scalars().all())


async def waiting_positions(session_factory) -> list[int]:
    return sorted(e.position for e in await entries(session_factory, QueueStatus.WAITING))


@pytest.mark.asyncio
async def test_admits_until_full_then_queues(controller, session_factory):
    """With two slots, S1 and S2 get in and S3 waits at position 1."""
    s1 = await controller.join("s1")
    s2 = await controller.join("s2")
    s3 = await controller.join("s3")

    assert (s1.status, s1.can_access) == ("active", True)
    assert (s2.status, s2.can_access) == ("active", True)
    assert s1.session_duration == 15
    assert s1.expires_at is not None and s1.position is None

    assert (s3.status, s3.can_access) == ("waiting", False)
    assert s3.position == 1
    assert s3.estimated_wait_time == 2
    assert s3.queue_id is not None


@pytest.mark.asyncio
async def test_leave_frees_slot_for_next_in_line(controller):
    """S1 leaves; the next reconciliation promotes S3."""
    for session_id in ("s1", "s2", "s3"):
        await controller.join(session_id)

    assert await controller.leave("s1") is True
    assert await controller.process_queue() == 1

    status = await controller.check_status("s3")
    assert status.status == "active"
    assert status.can_access is True
    assert status.position is None
    assert status.total_active == 2
    assert status.total_waiting == 0


@pytest.mark.asyncio
async def test_join_is_idempotent(controller, session_factory):
    """Joining twice returns the same place and creates one entry."""
    await controller.join("s1")
    await controller.join("s2")

    first = await controller.join("s3")
    second = await controller.join("s3")

    assert (first.status, first.position) == (second.status, second.position) == ("waiting", 1)
    assert first.queue_id == second.queue_id
    assert len([e for e in await entries(session_factory) if e.session_id == "s3"]) == 1

    again = await controller.join("s1")
    assert again.status == "active"
    assert len(await entries(session_factory)) == 3


@pytest.mark.asyncio
async def test_positions_stay_dense_after_leave(controller, policy_store, session_factory):
    """Leaving from the middle of the line closes the gap."""
    await policy_store.set_max_active_users(1)
    await controller.join("active")
    for i in range(1, 6):
        result = await controller.join(f"w{i}")
        assert result.position == i

    await controller.leave("w3")
    assert await waiting_positions(session_factory) == [1, 2, 3, 4]

    status = await controller.check_status("w4")
    assert status.position == 3
    assert status.estimated_wait_time == 6


@pytest.mark.asyncio
async def test_concurrent_joins_respect_bound_and_positions(controller, session_factory):
    """Eight simultaneous joins: two active, six waiting at 1..6."""
    results = await asyncio.gather(*(controller.join(f"s{i}") for i in range(8)))

    assert sum(r.status == "active" for r in results) == 2
    assert sorted(r.position for r in results if r.status == "waiting") == [1, 2, 3, 4, 5, 6]
    assert len(await entries(session_factory, QueueStatus.ACTIVE)) == 2
    assert await waiting_positions(session_factory) == [1, 2, 3, 4, 5, 6]


@pytest.mark.asyncio
async def test_lapsed_lease_expires_and_frees_slot(controller, policy_store, clock):
    """A lease past its expiry is marked expired on the next check."""
    await policy_store.set_max_active_users(1)
    await controller.join("s1")
    await controller.join("s2")

    clock.advance(minutes=16)
    expired = await controller.check_status("s1")
    assert expired.status == "expired"
    assert expired.can_access is False

    promoted = await controller.check_status("s2")
    assert promoted.status == "active"
    assert promoted.can_access is True
    assert promoted.total_active == 1


@pytest.mark.asyncio
async def test_lapsed_lease_counts_until_reconciled(controller, policy_store, clock, session_factory):
    """Expiry is lazy: nothing changes in the table until someone checks."""
    await policy_store.set_max_active_users(1)
    await controller.join("s1")
    clock.advance(minutes=20)

    assert len(await entries(session_factory, QueueStatus.ACTIVE)) == 1

    rejoin = await controller.join("s2")
    assert rejoin.status == "active"
    assert [e.session_id for e in await entries(session_factory, QueueStatus.EXPIRED)] == ["s1"]


@pytest.mark.asyncio
async def test_expired_session_can_join_again(controller, policy_store, clock, session_factory):
    await policy_store.set_max_active_users(1)
    await controller.join("s1")
    clock.advance(minutes=16)

    again = await controller.join("s1")

    assert again.status == "active"
    rows = [e for e in await entries(session_factory) if e.session_id == "s1"]
    assert sorted(e.status for e in rows) == ["active", "expired"]


@pytest.mark.asyncio
async def test_check_status_not_in_queue(controller):
    result = await controller.check_status("nobody")
    assert result.status == NOT_IN_QUEUE
    assert result.can_access is False


@pytest.mark.asyncio
async def test_leave_without_entry(controller):
    assert await controller.leave("nobody") is False


@pytest.mark.asyncio
async def test_disabled_queue_grants_access_without_entries(controller, policy_store, session_factory):
    """With enforcement off, join and status bypass the table entirely."""
    await policy_store.set_enabled(False)

    joined = await controller.join("s1")
    status = await controller.check_status("s9")

    assert (joined.status, joined.can_access) == ("active", True)
    assert (status.status, status.can_access) == ("active", True)
    assert await entries(session_factory) == []


@pytest.mark.asyncio
async def test_disable_keeps_existing_entries(controller, session_factory):
    """Turning the queue off neither deletes nor promotes anyone."""
    for session_id in ("s1", "s2", "s3"):
        await controller.join(session_id)

    policy = await controller.set_enabled(False)

    assert policy.enabled is False
    assert len(await entries(session_factory, QueueStatus.ACTIVE)) == 2
    assert await waiting_positions(session_factory) == [1]


@pytest.mark.asyncio
async def test_raise_max_users_promotes_waiting(controller, session_factory):
    for i in range(5):
        await controller.join(f"s{i}")

    change = await controller.set_max_active_users(4)

    assert change.activated == 2
    assert change.current_active == 4
    assert change.over_limit is False
    assert await waiting_positions(session_factory) == [1]


@pytest.mark.asyncio
async def test_lower_max_users_never_evicts(controller, session_factory):
    """Dropping the ceiling below the active count leaves leases alone."""
    await controller.set_max_active_users(3)
    for i in range(4):
        await controller.join(f"s{i}")

    change = await controller.set_max_active_users(1)

    assert change.activated == 0
    assert change.current_active == 3
    assert change.over_limit is True
    assert len(await entries(session_factory, QueueStatus.ACTIVE)) == 3

    late = await controller.join("late")
    assert late.status == "waiting"
    assert late.position == 2


@pytest.mark.asyncio
async def test_process_queue_override_is_not_persisted(controller, policy_store):
    for i in range(4):
        await controller.join(f"s{i}")

    assert await controller.process_queue(3) == 1
    assert (await policy_store.read()).max_active_users == 2
    assert await controller.process_queue() == 0


@pytest.mark.asyncio
async def test_clear_waiting_and_expired(controller, policy_store, clock):
    await policy_store.set_max_active_users(1)
    for i in range(4):
        await controller.join(f"s{i}")

    assert await controller.clear_waiting() == 3

    clock.advance(minutes=16)
    await controller.process_queue()
    assert await controller.clear_expired() == 1
    assert await controller.clear_expired() == 0


@pytest.mark.asyncio
async def test_stats(controller, clock):
    """Totals, wait estimates and recent activity are recomputed per call."""
    for i in range(4):
        await controller.join(f"s{i}")
    clock.advance(minutes=5)

    stats = await controller.stats()

    assert stats.total_active == 2
    assert stats.total_waiting == 2
    assert stats.total_expired == 0
    assert stats.queue_enabled is True
    assert stats.max_active_users == 2
    assert stats.average_wait_time == 3.0
    assert stats.longest_waiting == 5.0
    assert len(stats.recent_activity) == 4


@pytest.mark.asyncio
async def test_stats_recent_activity_follows_clock(controller, clock):
    """Only entries joined within the last hour of the controller's clock are listed."""
    await controller.join("old-1")
    await controller.join("old-2")
    clock.advance(minutes=90)
    await controller.join("new", user_id=7)

    stats = await controller.stats()

    assert [e["user_id"] for e in stats.recent_activity] == [7]
    assert stats.total_expired == 2


@pytest.mark.asyncio
async def test_reorder_queue_closes_gaps(controller, session_factory):
    for i in range(5):
        await controller.join(f"s{i}")

    async with session_factory() as session:
        async with session.begin():
            third = (
                await session.execute(
                    select(QueueEntry).where(QueueEntry.session_id == "s3")
                )
            ).scalar_one()
            third.position = 7

    await controller.reorder_queue()
    assert await waiting_positions(session_factory) == [1, 2, 3]


@pytest.mark.asyncio
async def test_reconciler_frees_lapsed_leases(controller, session_factory, clock):
    for sid in ("s1", "s2", "s3"):
        await controller.join(sid)
    clock.advance(minutes=16)

    task = asyncio.create_task(run_reconciler(controller, interval_seconds=0.01))
    try:
        for _ in range(200):
            if not await entries(session_factory, QueueStatus.WAITING):
                break
            await asyncio.sleep(0.01)
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    promoted = await entries(session_factory, QueueStatus.ACTIVE)
    assert [e.session_id for e in promoted] == ["s3"]


@pytest.mark.asyncio
async def test_reconciler_survives_failures():
    class FlakyController:
        calls = 0

        async def process_queue(self):
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("db down")
            return 0

    flaky = FlakyController()
    task = asyncio.create_task(run_reconciler(flaky, interval_seconds=0))
    for _ in range(50):
        if flaky.calls >= 3:
            break
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert flaky.calls >= 3
