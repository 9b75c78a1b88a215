"""Capability checks used to decide which actions to offer a user.

The lending service validates again when an action runs. Both sides share
the predicates in ``lending.rules``.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from .db.models import Book, User
from .lending.errors import LoanError
from .lending.models import Loan
from .lending.rules import ensure_can_borrow, ensure_can_extend, ensure_can_return
from .utils import utc_now


class BookAction(str, Enum):
    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"
    BORROW = "borrow"


class LoanAction(str, Enum):
    VIEW = "view"
    RETURN = "return"
    EXTEND = "extend"


def can_book(
    user: Optional[User],
    action: BookAction,
    book: Book,
    open_loans: int = 0,
) -> bool:
    """Check whether ``user`` may perform ``action`` on ``book``.

    Args:
        user: Current user, None when anonymous
        action: Requested action
        book: Target book
        open_loans: The user's active and overdue loans, used for BORROW

    Returns:
        True if allowed
    """
    if user is None:
        return False

    if action == BookAction.VIEW:
        return True
    if action in (BookAction.EDIT, BookAction.DELETE):
        return user.is_admin
    if action == BookAction.BORROW:
        try:
            ensure_can_borrow(user, book, open_loans)
        except LoanError:
            return False
        return True

    return False


def can_loan(
    user: Optional[User],
    action: LoanAction,
    loan: Loan,
    now: Optional[datetime] = None,
) -> bool:
    """Check whether ``user`` may perform ``action`` on ``loan``.

    Only the borrower and admins can see or act on a loan.
    """
    if user is None:
        return False
    if loan.user_id != user.id and not user.is_admin:
        return False

    try:
        if action == LoanAction.VIEW:
            return True
        if action == LoanAction.RETURN:
            ensure_can_return(loan.returned_at_dt)
            return True
        if action == LoanAction.EXTEND:
            ensure_can_extend(loan.returned_at_dt, loan.due_date_dt, now or utc_now())
            return True
    except LoanError:
        return False

    return False


def book_capabilities(user: Optional[User], book: Book, open_loans: int = 0) -> set[BookAction]:
    """All book actions available to ``user``."""
    return {action for action in BookAction if can_book(user, action, book, open_loans)}


def loan_capabilities(
    user: Optional[User], loan: Loan, now: Optional[datetime] = None
) -> set[LoanAction]:
    """All loan actions available to ``user``."""
    now = now or utc_now()
    return {action for action in LoanAction if can_loan(user, action, loan, now)}
