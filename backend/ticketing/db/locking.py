"""
Transaction and row-lock helpers shared by the inventory ledger and the
admission queue.

LOCKING STRATEGY: Pessimistic, row-level, one transaction per unit of work
==========================================================================

  Every read-check-write on a shared counter happens inside one transaction
  that first takes an exclusive lock:

  - Inventory: SELECT ... FOR UPDATE on the Event row. reserve, release,
    resize and mark_used for the same event queue up behind each other;
    different events never contend.
  - Admission queue: SELECT ... FOR UPDATE on a single mutex row in
    queue_locks. Locking the QueueEntry rows themselves is not enough,
    because a row lock cannot stop another transaction from inserting a new
    waiting row with the same "max(position) + 1".

  The lock is released by COMMIT or ROLLBACK, so a unit of work either lands
  completely or not at all.

Retries:
  Lock timeouts and deadlocks surface as driver errors. Nothing was committed
  when they happen, so the whole unit of work is re-run from a fresh session.
  After the retry budget a TransactionConflictError reaches the caller.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing.core.config import get_settings
from ticketing.core.exceptions import EventNotFoundError, TransactionConflictError
from ticketing.core.logging import get_logger
from ticketing.core.metrics import record_transaction_conflict, record_transaction_retry
from ticketing.models.event import Event
from ticketing.models.queue_entry import QUEUE_LOCK_ID, QueueLock

logger = get_logger(__name__)
settings = get_settings()

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available, object_in_use
TRANSIENT_SQLSTATES = {"40001", "40P01", "55P03", "55006"}


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if code:
            return code
    # asyncpg errors arrive wrapped by the SQLAlchemy adapter
    cause = getattr(orig, "__cause__", None)
    return getattr(cause, "sqlstate", None)


def is_transient_error(exc: BaseException) -> bool:
    """True for lock timeouts, deadlocks and SQLite's 'database is locked'."""
    if isinstance(exc, OperationalError):
        return True
    if isinstance(exc, DBAPIError):
        return _sqlstate(exc) in TRANSIENT_SQLSTATES
    return False


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    operation: Callable[[AsyncSession], Awaitable[T]],
    *,
    name: str,
    attempts: Optional[int] = None,
) -> T:
    """
    Run `operation` inside one session and one transaction.

    Domain errors raised by the operation roll back and propagate untouched.
    Transient lock errors roll back and re-run the operation from scratch.
    """
    max_attempts = attempts or settings.LOCK_RETRY_ATTEMPTS

    for attempt in range(1, max_attempts + 1):
        try:
            async with session_factory() as session:
                async with session.begin():
                    return await operation(session)
        except DBAPIError as exc:
            if not is_transient_error(exc):
                raise
            if attempt == max_attempts:
                record_transaction_conflict(name)
                logger.warning(
                    "transaction_conflict",
                    operation=name,
                    attempts=attempt,
                    error=str(exc.orig),
                )
                raise TransactionConflictError(name, attempt) from exc

            record_transaction_retry(name)
            logger.info(
                "transaction_retry",
                operation=name,
                attempt=attempt,
                reason="lock_conflict",
            )
            await asyncio.sleep(0.005 * (2 ** (attempt - 1)) + random.uniform(0, 0.005))

    raise TransactionConflictError(name, max_attempts)


async def lock_event(session: AsyncSession, event_id: int) -> Event:
    """SELECT ... FOR UPDATE on one event row."""
    result = await session.execute(
        select(Event).where(Event.id == event_id).with_for_update()
    )
    event = result.scalar_one_or_none()
    if event is None:
        raise EventNotFoundError(event_id)
    return event


def _queue_mutex_for_update():
    return select(QueueLock).where(QueueLock.id == QUEUE_LOCK_ID).with_for_update()


async def lock_queue(session: AsyncSession) -> QueueLock:
    """Take the admission-queue mutex, creating the row on first use."""
    mutex = (await session.execute(_queue_mutex_for_update())).scalar_one_or_none()
    if mutex is not None:
        return mutex

    # Two first callers can both miss the row; the loser's insert fails and
    # it locks the winner's row instead.
    try:
        async with session.begin_nested():
            session.add(QueueLock(id=QUEUE_LOCK_ID))
    except IntegrityError:
        logger.info("queue_mutex_exists", lock_id=QUEUE_LOCK_ID)

    return (await session.execute(_queue_mutex_for_update())).scalar_one()
