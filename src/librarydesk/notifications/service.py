"""Notification service for loan lifecycle messages.

Confirmations (created, returned, extended) are best-effort: a failure is
logged and reported as False, never raised, so that a completed loan
transaction is never undone by a mail problem. Reminders raise
``NotificationError`` and leave isolation to the batch that sends them.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..config import Config
from .templates import TemplateId
from .transports import LogTransport, NotificationError, Transport, WebhookTransport

logger = logging.getLogger(__name__)

DEFAULT_FROM_ADDRESS = "noreply@library.local"
DEFAULT_FROM_NAME = "Online Library"


@dataclass
class LoanNotice:
    """Everything a loan message needs, captured while the session is open."""

    loan_id: str
    user_email: str
    user_name: str
    book_title: str
    borrowed_at: datetime
    due_date: datetime
    returned_at: Optional[datetime] = None
    days_overdue: int = 0
    days_until_due: int = 0

    @classmethod
    def from_loan(cls, loan, user, book, now: datetime) -> "LoanNotice":
        """Build a notice from a loan and its user and book."""
        return cls(
            loan_id=loan.id,
            user_email=user.email,
            user_name=user.full_name,
            book_title=book.title,
            borrowed_at=loan.borrowed_at_dt,
            due_date=loan.due_date_dt,
            returned_at=loan.returned_at_dt,
            days_overdue=loan.days_overdue(now),
            days_until_due=max(loan.days_until_due(now), 0),
        )

    def context(self) -> dict:
        return {
            "loan_id": self.loan_id,
            "user_name": self.user_name,
            "book_title": self.book_title,
            "borrowed_at": self.borrowed_at,
            "due_date": self.due_date,
            "returned_at": self.returned_at,
            "days_overdue": self.days_overdue,
            "days_until_due": self.days_until_due,
        }


class NotificationService:
    """Sends loan messages through a transport."""

    def __init__(
        self,
        transport: Optional[Transport] = None,
        from_address: str = DEFAULT_FROM_ADDRESS,
        from_name: str = DEFAULT_FROM_NAME,
    ):
        """Initialize notification service.

        Args:
            transport: Delivery transport (default: log only)
            from_address: Sender address put on every message
            from_name: Sender display name put on every message
        """
        self.transport = transport or LogTransport()
        self.from_address = from_address
        self.from_name = from_name

    @classmethod
    def from_config(cls, config: Config) -> "NotificationService":
        """Pick the transport the configuration asks for."""
        if config.has_webhook():
            transport: Transport = WebhookTransport(config.webhook_url)
        else:
            transport = LogTransport()
        return cls(transport, from_address=config.from_email, from_name=config.from_name)

    # -------------------------------------------------------------------------
    # Confirmations (best-effort)
    # -------------------------------------------------------------------------

    def notify_loan_created(self, notice: LoanNotice) -> bool:
        """Confirm a new loan to the borrower."""
        return self._send_best_effort(TemplateId.LOAN_CREATED, notice)

    def notify_loan_returned(self, notice: LoanNotice) -> bool:
        """Confirm a return to the borrower."""
        return self._send_best_effort(TemplateId.LOAN_RETURNED, notice)

    def notify_loan_extended(self, notice: LoanNotice) -> bool:
        """Confirm the new due date to the borrower."""
        return self._send_best_effort(TemplateId.LOAN_EXTENDED, notice)

    # -------------------------------------------------------------------------
    # Reminders (raise on failure)
    # -------------------------------------------------------------------------

    def notify_overdue_reminder(self, notice: LoanNotice) -> None:
        """Remind a borrower that a book is overdue.

        Raises:
            NotificationError: If the transport failed
        """
        self._send(TemplateId.LOAN_OVERDUE, notice)

    def notify_due_soon(self, notice: LoanNotice) -> None:
        """Remind a borrower that a due date is approaching.

        Raises:
            NotificationError: If the transport failed
        """
        self._send(TemplateId.LOAN_DUE_SOON, notice)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _send(self, template_id: TemplateId, notice: LoanNotice) -> None:
        try:
            self.transport.send(template_id, notice.user_email, self._context(notice))
        except NotificationError:
            raise
        except Exception as e:
            raise NotificationError(str(e)) from e

        logger.info(
            "Sent %s to %s",
            template_id.value,
            notice.user_email,
            extra={"loan_id": notice.loan_id},
        )

    def _context(self, notice: LoanNotice) -> dict:
        context = notice.context()
        context["from_address"] = self.from_address
        context["from_name"] = self.from_name
        return context

    def _send_best_effort(self, template_id: TemplateId, notice: LoanNotice) -> bool:
        try:
            self._send(template_id, notice)
        except NotificationError as e:
            logger.warning(
                "Failed to send %s to %s: %s",
                template_id.value,
                notice.user_email,
                e,
                extra={"loan_id": notice.loan_id},
            )
            return False
        return True
