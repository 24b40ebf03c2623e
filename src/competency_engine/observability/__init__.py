"""Observability: structured logging and the in-process event bus."""

from competency_engine.observability.events import EventBus, SubscriberFailure
from competency_engine.observability.logging import (
    LoggingSession,
    configure_structlog,
    mask_email,
    redact,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "EventBus",
    "LoggingSession",
    "SubscriberFailure",
    "configure_structlog",
    "mask_email",
    "redact",
    "setup_logging",
    "shutdown_logging",
]
