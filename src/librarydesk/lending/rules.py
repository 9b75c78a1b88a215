"""Loan rules shared by the lending service and the permission checks.

Each ``ensure_*`` function raises the matching ``LoanError`` when its rule is
broken and returns None otherwise. They never touch the database; callers
pass in the counts they need.
"""

from datetime import datetime
from typing import Optional

from ..db.models import Book, User
from ..utils import as_utc
from .errors import AlreadyReturned, ExtensionDenied, LoanRejected
from .schemas import LoanStatus


def derive_status(
    returned_at: Optional[datetime],
    due_date: datetime,
    now: datetime,
) -> LoanStatus:
    """Status of a loan at ``now``.

    A returned loan stays returned whatever its due date was; an open loan
    is overdue strictly after its due date. Naive datetimes are read as UTC.
    """
    if returned_at is not None:
        return LoanStatus.RETURNED
    if as_utc(now) > as_utc(due_date):
        return LoanStatus.OVERDUE
    return LoanStatus.ACTIVE


def ensure_can_borrow(
    user: User,
    book: Book,
    open_loan_count: int,
    has_open_loan_for_book: bool = False,
) -> None:
    """Check the borrow preconditions in the order users hit them.

    Args:
        user: Borrower
        book: Book to borrow
        open_loan_count: The user's loans that are active or overdue
        has_open_loan_for_book: The user already holds this book

    Raises:
        LoanRejected: With the reason of the first failing rule
    """
    if not user.is_active:
        raise LoanRejected("Your account is deactivated. You cannot borrow books.")

    if open_loan_count >= user.max_loans:
        raise LoanRejected(
            f"You have reached the limit of {user.max_loans} simultaneous loans."
        )

    if not book.is_available:
        raise LoanRejected("This book is no longer available.")

    if has_open_loan_for_book:
        raise LoanRejected("You have already borrowed this book.")


def ensure_can_return(returned_at: Optional[datetime]) -> None:
    """A loan can only be returned once."""
    if returned_at is not None:
        raise AlreadyReturned("This book has already been returned.")


def ensure_can_extend(
    returned_at: Optional[datetime],
    due_date: datetime,
    now: datetime,
) -> None:
    """Only open loans that are not yet overdue can be extended."""
    if returned_at is not None:
        raise AlreadyReturned("Cannot extend a loan that has already been returned.")
    if derive_status(returned_at, due_date, now) == LoanStatus.OVERDUE:
        raise ExtensionDenied("Cannot extend an overdue loan.")
