"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from ticketing.api.routes import events, tickets, queue, admin_queue

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(events.router)
api_router.include_router(tickets.router)
api_router.include_router(queue.router)
api_router.include_router(admin_queue.router)
