"""Approver notification dispatch."""

from competency_engine.notifications.dispatch import (
    DispatchResult,
    MagicLinkRecord,
    NotificationDispatcher,
    NullDispatcher,
    OutboxDispatcher,
)

__all__ = [
    "DispatchResult",
    "MagicLinkRecord",
    "NotificationDispatcher",
    "NullDispatcher",
    "OutboxDispatcher",
]
