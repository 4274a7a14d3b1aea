"""
FastAPI dependencies that hand the core services to route handlers.
Tests swap these out through app.dependency_overrides.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing.db.session import AsyncSessionLocal
from ticketing.services.admission_service import QueueAdmissionController
from ticketing.services.interfaces import LoggingNotifier, TicketNotifier
from ticketing.services.inventory_ledger import InventoryLedger
from ticketing.services.policy_service import AdmissionPolicyStore, get_policy_store


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return AsyncSessionLocal


def get_inventory_ledger(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> InventoryLedger:
    return InventoryLedger(session_factory)


def get_admission_controller(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    policy_store: AdmissionPolicyStore = Depends(get_policy_store),
) -> QueueAdmissionController:
    return QueueAdmissionController(session_factory, policy_store)


def get_notifier() -> TicketNotifier:
    return LoggingNotifier()
