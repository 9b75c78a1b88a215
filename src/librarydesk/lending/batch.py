"""Reminder batches for overdue and soon-due loans.

Meant to be run by an external scheduler (cron or similar) through
``librarydesk loans process-overdue``. Every reminder gets its own session,
so one failure neither rolls back nor stops the others.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import select

from ..db.models import Book, User
from ..db.sqlite import Database, get_db
from ..notifications import LoanNotice, NotificationService
from ..utils import to_iso, utc_now
from .models import Loan
from .schemas import BatchReport

logger = logging.getLogger(__name__)


class OverdueProcessor:
    """Sends reminder notifications for loans that need one."""

    def __init__(
        self,
        db: Optional[Database] = None,
        notifier: Optional[NotificationService] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize processor.

        Args:
            db: Database instance
            notifier: Notification service
            clock: Returns the current UTC time (default: wall clock)
        """
        self.db = db or get_db()
        self.notifier = notifier or NotificationService()
        self.clock = clock or utc_now

    def run(self) -> BatchReport:
        """Remind every borrower holding an overdue loan.

        Returns:
            BatchReport. ``attempted`` counts every overdue loan processed,
            including those whose reminder failed.
        """
        now = self.clock()
        loan_ids = self._select_ids(
            Loan.returned_at.is_(None),
            Loan.due_date < to_iso(now),
        )
        report = self._remind_each(loan_ids, now, self.notifier.notify_overdue_reminder)

        logger.info(
            "Overdue batch finished: %d attempted, %d delivered, %d failed",
            report.attempted,
            report.delivered,
            report.failed,
        )
        return report

    def remind_due_soon(self, days: int = 3) -> BatchReport:
        """Remind borrowers whose loans fall due within ``days`` days."""
        now = self.clock()
        loan_ids = self._select_ids(
            Loan.returned_at.is_(None),
            Loan.due_date >= to_iso(now),
            Loan.due_date <= to_iso(now + timedelta(days=days)),
        )
        report = self._remind_each(loan_ids, now, self.notifier.notify_due_soon)

        logger.info(
            "Due-soon batch finished: %d attempted, %d delivered, %d failed",
            report.attempted,
            report.delivered,
            report.failed,
        )
        return report

    def _select_ids(self, *criteria) -> list[str]:
        with self.db.get_session() as session:
            stmt = select(Loan.id).where(*criteria).order_by(Loan.due_date)
            return list(session.execute(stmt).scalars().all())

    def _remind_each(
        self,
        loan_ids: list[str],
        now: datetime,
        send: Callable[[LoanNotice], None],
    ) -> BatchReport:
        report = BatchReport()

        for loan_id in loan_ids:
            report.attempted += 1
            try:
                self._remind_one(loan_id, now, send)
                report.delivered += 1
            except Exception as e:
                report.failed += 1
                report.failed_loan_ids.append(loan_id)
                logger.error(
                    "Failed to process reminder for loan %s: %s",
                    loan_id,
                    e,
                    extra={"loan_id": loan_id},
                )

        return report

    def _remind_one(
        self,
        loan_id: str,
        now: datetime,
        send: Callable[[LoanNotice], None],
    ) -> None:
        with self.db.get_session() as session:
            loan = session.get(Loan, loan_id)
            if not loan:
                raise LookupError(f"Loan {loan_id} disappeared during the batch")

            notice = LoanNotice.from_loan(
                loan,
                session.get(User, loan.user_id),
                session.get(Book, loan.book_id),
                now,
            )
            send(notice)

            loan.last_reminder_at = to_iso(now)
            loan.reminder_count = (loan.reminder_count or 0) + 1

        logger.info(
            "Reminder sent",
            extra={"loan_id": loan_id, "days_overdue": notice.days_overdue},
        )
