"""Pydantic schemas for loans."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class LoanStatus(str, Enum):
    """Status of a loan. Always derived, never stored."""

    ACTIVE = "active"
    RETURNED = "returned"
    OVERDUE = "overdue"


class LoanSummary(BaseModel):
    """Summary of a loan for listings and reports."""

    id: str
    book_title: str
    user_email: str
    user_name: str
    status: LoanStatus
    borrowed_at: datetime
    due_date: datetime
    days_overdue: int = 0


class LoanStatistics(BaseModel):
    """Counts shown on the loans admin page."""

    active_loans: int
    overdue_loans: int
    total_loans_this_month: int


class BatchReport(BaseModel):
    """Outcome of one reminder batch run.

    ``attempted`` counts every loan a reminder was tried for, whether or
    not the transport accepted it.
    """

    attempted: int = 0
    delivered: int = 0
    failed: int = 0
    failed_loan_ids: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0
