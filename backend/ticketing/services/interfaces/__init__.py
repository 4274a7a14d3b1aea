"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .notifier import TicketNotifier, notify_safely
from .logging_notifier import LoggingNotifier

__all__ = ['TicketNotifier', 'LoggingNotifier', 'notify_safely']
