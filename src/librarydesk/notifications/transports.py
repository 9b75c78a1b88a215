"""Delivery transports for notifications.

A transport takes a template id, a recipient address and the template
context, and either delivers the message or raises ``NotificationError``.
The sender comes from the ``from_address`` and ``from_name`` context keys.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import requests

from .templates import TemplateId, render

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """A message could not be delivered."""

    pass


class Transport(ABC):
    """Abstract notification transport."""

    @abstractmethod
    def send(self, template_id: TemplateId, recipient: str, context: dict) -> None:
        """Deliver one message.

        Raises:
            NotificationError: If delivery failed
        """
        pass


class LogTransport(Transport):
    """Writes rendered messages to the log instead of delivering them."""

    def send(self, template_id: TemplateId, recipient: str, context: dict) -> None:
        subject, body = render(template_id, context)
        logger.info(
            "Notification %s from %s to %s: %s",
            template_id.value,
            context.get("from_address"),
            recipient,
            subject,
            extra={"template": template_id.value, "recipient": recipient, "body": body},
        )


@dataclass
class SentMessage:
    """A message captured by ``RecordingTransport``."""

    template_id: TemplateId
    recipient: str
    subject: str
    body: str
    context: dict = field(default_factory=dict)


class RecordingTransport(Transport):
    """Keeps rendered messages in memory. Used for dry runs and tests."""

    def __init__(self):
        self.sent: list[SentMessage] = []

    def send(self, template_id: TemplateId, recipient: str, context: dict) -> None:
        subject, body = render(template_id, context)
        self.sent.append(
            SentMessage(
                template_id=template_id,
                recipient=recipient,
                subject=subject,
                body=body,
                context=dict(context),
            )
        )

    def for_template(self, template_id: TemplateId) -> list[SentMessage]:
        return [m for m in self.sent if m.template_id == template_id]


def _json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class WebhookTransport(Transport):
    """Posts each message as JSON to an HTTP endpoint (mail relay, chat hook...)."""

    def __init__(self, url: str, timeout: int = 10):
        """Initialize transport.

        Args:
            url: Endpoint receiving the POST
            timeout: Request timeout in seconds
        """
        self.url = url
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": "librarydesk/0.1"})

    def send(self, template_id: TemplateId, recipient: str, context: dict) -> None:
        subject, body = render(template_id, context)
        payload = {
            "template": template_id.value,
            "from": {
                "email": context.get("from_address"),
                "name": context.get("from_name"),
            },
            "to": recipient,
            "subject": subject,
            "body": body,
            "context": {k: _json_value(v) for k, v in context.items()},
        }
        try:
            response = self._session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout:
            raise NotificationError("Notification request timed out")
        except requests.exceptions.HTTPError as e:
            raise NotificationError(f"HTTP error: {e.response.status_code}")
        except requests.exceptions.RequestException as e:
            raise NotificationError(f"Request failed: {e}")
