"""Exceptions raised by loan operations.

Every error here is user-facing: the message is safe to show to the person
who asked for the operation.
"""


class LoanError(Exception):
    """Base exception for loan operations."""

    pass


class LoanRejected(LoanError):
    """A borrow request failed one of its preconditions."""

    pass


class AlreadyReturned(LoanError):
    """The loan is already closed."""

    pass


class ExtensionDenied(LoanError):
    """The loan cannot be extended because it is overdue."""

    pass


class LoanOperationFailed(LoanError):
    """Persisting the loan failed and the change was rolled back.

    The underlying cause is chained and logged, never part of the message.
    """

    pass


class EntityNotFound(LoanError, LookupError):
    """A user, book or loan referenced by an operation does not exist."""

    pass
