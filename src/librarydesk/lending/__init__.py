"""Book lending module.

Provides functionality for:
- Borrowing, returning and extending loans
- Loan status derived from the clock (active / returned / overdue)
- Per-user loan caps and duplicate-loan checks
- Overdue and due-soon reminder batches
"""

from .batch import OverdueProcessor
from .errors import (
    AlreadyReturned,
    EntityNotFound,
    ExtensionDenied,
    LoanError,
    LoanOperationFailed,
    LoanRejected,
)
from .manager import LoanService
from .models import Loan
from .rules import derive_status
from .schemas import BatchReport, LoanStatistics, LoanStatus, LoanSummary

__all__ = [
    "OverdueProcessor",
    "AlreadyReturned",
    "EntityNotFound",
    "ExtensionDenied",
    "LoanError",
    "LoanOperationFailed",
    "LoanRejected",
    "LoanService",
    "Loan",
    "derive_status",
    "BatchReport",
    "LoanStatistics",
    "LoanStatus",
    "LoanSummary",
]
