"""Loan notifications.

Provides:
- Message templates for each loan event
- Pluggable delivery transports (log, webhook, in-memory)
- A service that sends confirmations best-effort and reminders strictly
"""

from .service import LoanNotice, NotificationService
from .templates import TEMPLATES, TemplateId, render
from .transports import (
    LogTransport,
    NotificationError,
    RecordingTransport,
    SentMessage,
    Transport,
    WebhookTransport,
)

__all__ = [
    "LoanNotice",
    "NotificationService",
    "TEMPLATES",
    "TemplateId",
    "render",
    "LogTransport",
    "NotificationError",
    "RecordingTransport",
    "SentMessage",
    "Transport",
    "WebhookTransport",
]
