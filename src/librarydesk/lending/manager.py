"""Loan service: borrow, return and extend operations."""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_config
from ..db.models import Book, User, now_iso
from ..db.sqlite import Database, get_db
from ..notifications import LoanNotice, NotificationService
from ..utils import to_iso, utc_now
from .errors import EntityNotFound, LoanOperationFailed, LoanRejected, AlreadyReturned
from .models import Loan
from .rules import ensure_can_borrow, ensure_can_extend, ensure_can_return
from .schemas import LoanStatistics, LoanStatus, LoanSummary

logger = logging.getLogger(__name__)

OPEN_LOAN_INDEX = "ux_loans_open_user_book"


def _is_duplicate_open_loan(error: IntegrityError) -> bool:
    """The error comes from the one-open-loan-per-user-and-book index."""
    message = str(error.orig)
    # SQLite names the columns, other engines name the index
    return OPEN_LOAN_INDEX in message or "loans.user_id, loans.book_id" in message


class LoanService:
    """Manages the lifecycle of loans.

    Each operation runs in a single session: the loan row and the book's
    copy count are committed together or not at all. Notifications are sent
    after the commit and never affect the outcome.
    """

    def __init__(
        self,
        db: Optional[Database] = None,
        notifier: Optional[NotificationService] = None,
        clock: Optional[Callable[[], datetime]] = None,
        loan_days: Optional[int] = None,
        extension_days: Optional[int] = None,
    ):
        """Initialize loan service.

        Args:
            db: Database instance
            notifier: Notification service (default: from config)
            clock: Returns the current UTC time (default: wall clock)
            loan_days: Loan duration in days (default: from config, 21)
            extension_days: Default extension in days (default: from config, 14)
        """
        config = get_config()
        self.db = db or get_db()
        self.notifier = notifier or NotificationService.from_config(config)
        self.clock = clock or utc_now
        self.loan_days = loan_days if loan_days is not None else config.loan_days
        self.extension_days = (
            extension_days if extension_days is not None else config.extension_days
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def borrow(self, user_id: str, book_id: str) -> Loan:
        """Lend one copy of a book to a user.

        Args:
            user_id: Borrower ID
            book_id: Book ID

        Returns:
            The new loan

        Raises:
            EntityNotFound: If the user or book does not exist
            LoanRejected: If a borrow precondition fails
            LoanOperationFailed: If the change could not be persisted
        """
        now = self.clock()

        try:
            with self.db.get_session() as session:
                user = session.get(User, user_id)
                if not user:
                    raise EntityNotFound("User not found")
                book = session.get(Book, book_id)
                if not book:
                    raise EntityNotFound("Book not found")

                ensure_can_borrow(
                    user,
                    book,
                    open_loan_count=self._count_open_loans(session, user_id),
                    has_open_loan_for_book=(
                        self._find_open_loan(session, user_id, book_id) is not None
                    ),
                )

                # Conditional decrement: loses cleanly against a concurrent
                # borrow of the last copy
                claimed = session.execute(
                    update(Book)
                    .where(Book.id == book_id, Book.available_copies > 0)
                    .values(
                        available_copies=Book.available_copies - 1,
                        updated_at=now_iso(),
                    )
                    .execution_options(synchronize_session=False)
                ).rowcount
                if claimed != 1:
                    raise LoanRejected("This book is no longer available.")

                loan = Loan(
                    user_id=user_id,
                    book_id=book_id,
                    borrowed_at=to_iso(now),
                    due_date=to_iso(now + timedelta(days=self.loan_days)),
                )
                session.add(loan)
                try:
                    session.flush()
                except IntegrityError as e:
                    if not _is_duplicate_open_loan(e):
                        raise
                    raise LoanRejected("You have already borrowed this book.") from e
                session.refresh(book)

                notice = LoanNotice.from_loan(loan, user, book, now)

                session.commit()
                session.refresh(loan)
                session.expunge(loan)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to create loan",
                exc_info=e,
                extra={"user_id": user_id, "book_id": book_id},
            )
            raise LoanOperationFailed("The loan could not be created. Please try again.") from e

        logger.info(
            "Loan created",
            extra={"loan_id": loan.id, "user_id": user_id, "book_id": book_id},
        )
        self.notifier.notify_loan_created(notice)
        return loan

    def return_book(self, loan_id: str) -> Loan:
        """Close a loan and put the copy back on the shelf.

        Args:
            loan_id: Loan ID

        Returns:
            The returned loan

        Raises:
            EntityNotFound: If the loan does not exist
            AlreadyReturned: If the loan was already closed
            LoanOperationFailed: If the change could not be persisted
        """
        now = self.clock()

        try:
            with self.db.get_session() as session:
                loan = session.get(Loan, loan_id)
                if not loan:
                    raise EntityNotFound("Loan not found")
                ensure_can_return(loan.returned_at_dt)

                closed = session.execute(
                    update(Loan)
                    .where(Loan.id == loan_id, Loan.returned_at.is_(None))
                    .values(returned_at=to_iso(now), updated_at=now_iso())
                    .execution_options(synchronize_session=False)
                ).rowcount
                if closed != 1:
                    raise AlreadyReturned("This book has already been returned.")

                session.execute(
                    update(Book)
                    .where(
                        Book.id == loan.book_id,
                        Book.available_copies < Book.total_copies,
                    )
                    .values(
                        available_copies=Book.available_copies + 1,
                        updated_at=now_iso(),
                    )
                    .execution_options(synchronize_session=False)
                )
                session.flush()
                session.refresh(loan)

                book = session.get(Book, loan.book_id)
                user = session.get(User, loan.user_id)
                notice = LoanNotice.from_loan(loan, user, book, now)

                session.commit()
                session.refresh(loan)
                session.expunge(loan)
        except SQLAlchemyError as e:
            logger.error("Failed to return loan", exc_info=e, extra={"loan_id": loan_id})
            raise LoanOperationFailed("The return could not be recorded. Please try again.") from e

        logger.info("Loan returned", extra={"loan_id": loan_id})
        self.notifier.notify_loan_returned(notice)
        return loan

    def extend_loan(self, loan_id: str, extension_days: Optional[int] = None) -> Loan:
        """Push back the due date of an open, not yet overdue loan.

        Args:
            loan_id: Loan ID
            extension_days: Days to add (default: configured extension, 14)

        Returns:
            The extended loan

        Raises:
            ValueError: If extension_days is less than 1
            EntityNotFound: If the loan does not exist
            AlreadyReturned: If the loan was already closed
            ExtensionDenied: If the loan is overdue
            LoanOperationFailed: If the change could not be persisted
        """
        days = extension_days if extension_days is not None else self.extension_days
        if days < 1:
            raise ValueError("extension_days must be at least 1")

        now = self.clock()

        try:
            with self.db.get_session() as session:
                loan = session.get(Loan, loan_id)
                if not loan:
                    raise EntityNotFound("Loan not found")
                ensure_can_extend(loan.returned_at_dt, loan.due_date_dt, now)

                loan.due_date = to_iso(loan.due_date_dt + timedelta(days=days))
                session.flush()

                notice = LoanNotice.from_loan(
                    loan,
                    session.get(User, loan.user_id),
                    session.get(Book, loan.book_id),
                    now,
                )

                session.commit()
                session.refresh(loan)
                session.expunge(loan)
        except SQLAlchemyError as e:
            logger.error("Failed to extend loan", exc_info=e, extra={"loan_id": loan_id})
            raise LoanOperationFailed("The loan could not be extended. Please try again.") from e

        logger.info(
            "Loan extended",
            extra={"loan_id": loan_id, "new_due_date": loan.due_date},
        )
        self.notifier.notify_loan_extended(notice)
        return loan

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get a loan by ID.

        Args:
            loan_id: Loan ID

        Returns:
            Loan or None
        """
        with self.db.get_session() as session:
            loan = session.get(Loan, loan_id)
            if loan:
                session.expunge(loan)
            return loan

    def list_loans(
        self,
        user_id: Optional[str] = None,
        book_id: Optional[str] = None,
        status: Optional[LoanStatus] = None,
    ) -> list[Loan]:
        """List loans with optional filters, newest first.

        Args:
            user_id: Filter by borrower
            book_id: Filter by book
            status: Filter by derived status at the current time

        Returns:
            List of loans
        """
        with self.db.get_session() as session:
            stmt = select(Loan)

            if user_id:
                stmt = stmt.where(Loan.user_id == user_id)
            if book_id:
                stmt = stmt.where(Loan.book_id == book_id)
            if status:
                stmt = stmt.where(self._status_clause(status))

            stmt = stmt.order_by(Loan.borrowed_at.desc())

            loans = session.execute(stmt).scalars().all()
            for loan in loans:
                session.expunge(loan)
            return list(loans)

    def get_user_open_loans(self, user_id: str) -> list[Loan]:
        """Active and overdue loans of a user, soonest due first."""
        with self.db.get_session() as session:
            stmt = (
                select(Loan)
                .where(Loan.user_id == user_id, Loan.returned_at.is_(None))
                .order_by(Loan.due_date)
            )
            loans = session.execute(stmt).scalars().all()
            for loan in loans:
                session.expunge(loan)
            return list(loans)

    def get_user_loan_history(self, user_id: str) -> list[Loan]:
        """Every loan of a user, newest first."""
        return self.list_loans(user_id=user_id)

    def count_open_loans(self, user_id: str) -> int:
        """Number of loans counted against the user's cap."""
        with self.db.get_session() as session:
            return self._count_open_loans(session, user_id)

    def get_overdue_loans(self) -> list[Loan]:
        """Loans past their due date and not returned, most overdue first."""
        with self.db.get_session() as session:
            stmt = (
                select(Loan)
                .where(self._status_clause(LoanStatus.OVERDUE))
                .order_by(Loan.due_date)
            )
            loans = session.execute(stmt).scalars().all()
            for loan in loans:
                session.expunge(loan)
            return list(loans)

    def get_loans_due_soon(self, days: int = 3) -> list[Loan]:
        """Open loans that fall due within the next ``days`` days.

        Args:
            days: Number of days to look ahead

        Returns:
            List of loans, soonest due first
        """
        now = self.clock()
        with self.db.get_session() as session:
            stmt = (
                select(Loan)
                .where(
                    Loan.returned_at.is_(None),
                    Loan.due_date >= to_iso(now),
                    Loan.due_date <= to_iso(now + timedelta(days=days)),
                )
                .order_by(Loan.due_date)
            )
            loans = session.execute(stmt).scalars().all()
            for loan in loans:
                session.expunge(loan)
            return list(loans)

    def get_loan_summaries(
        self,
        user_id: Optional[str] = None,
        status: Optional[LoanStatus] = None,
    ) -> list[LoanSummary]:
        """Loans joined with their book and borrower, for display."""
        now = self.clock()
        with self.db.get_session() as session:
            stmt = (
                select(Loan, Book.title, User)
                .join(Book, Book.id == Loan.book_id)
                .join(User, User.id == Loan.user_id)
            )
            if user_id:
                stmt = stmt.where(Loan.user_id == user_id)
            if status:
                stmt = stmt.where(self._status_clause(status))
            stmt = stmt.order_by(Loan.borrowed_at.desc())

            summaries = []
            for loan, title, user in session.execute(stmt).all():
                summaries.append(
                    LoanSummary(
                        id=loan.id,
                        book_title=title,
                        user_email=user.email,
                        user_name=user.full_name,
                        status=loan.status_at(now),
                        borrowed_at=loan.borrowed_at_dt,
                        due_date=loan.due_date_dt,
                        days_overdue=loan.days_overdue(now),
                    )
                )
            return summaries

    def get_statistics(self) -> LoanStatistics:
        """Counts of active, overdue and this month's loans."""
        now = self.clock()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

        with self.db.get_session() as session:
            active = session.execute(
                select(func.count()).select_from(Loan).where(
                    self._status_clause(LoanStatus.ACTIVE)
                )
            ).scalar() or 0

            overdue = session.execute(
                select(func.count()).select_from(Loan).where(
                    self._status_clause(LoanStatus.OVERDUE)
                )
            ).scalar() or 0

            this_month = session.execute(
                select(func.count()).select_from(Loan).where(
                    Loan.borrowed_at >= to_iso(month_start)
                )
            ).scalar() or 0

            return LoanStatistics(
                active_loans=active,
                overdue_loans=overdue,
                total_loans_this_month=this_month,
            )

    # -------------------------------------------------------------------------
    # Batch
    # -------------------------------------------------------------------------

    def process_overdue_loans(self) -> int:
        """Send a reminder for every overdue loan.

        Returns:
            Number of loans a reminder was attempted for. Failed deliveries
            are included; use ``OverdueProcessor.run`` for the breakdown.
        """
        from .batch import OverdueProcessor

        report = OverdueProcessor(self.db, self.notifier, self.clock).run()
        return report.attempted

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _status_clause(self, status: LoanStatus):
        """SQL equivalent of ``derive_status`` at the current time."""
        now = to_iso(self.clock())
        if status == LoanStatus.RETURNED:
            return Loan.returned_at.isnot(None)
        if status == LoanStatus.OVERDUE:
            return and_(Loan.returned_at.is_(None), Loan.due_date < now)
        return and_(Loan.returned_at.is_(None), Loan.due_date >= now)

    @staticmethod
    def _count_open_loans(session: Session, user_id: str) -> int:
        return session.execute(
            select(func.count()).select_from(Loan).where(
                Loan.user_id == user_id,
                Loan.returned_at.is_(None),
            )
        ).scalar() or 0

    @staticmethod
    def _find_open_loan(session: Session, user_id: str, book_id: str) -> Optional[Loan]:
        return session.execute(
            select(Loan).where(
                Loan.user_id == user_id,
                Loan.book_id == book_id,
                Loan.returned_at.is_(None),
            )
        ).scalar_one_or_none()
