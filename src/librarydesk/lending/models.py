"""SQLAlchemy models for lending.

Tables:
- loans: One borrowing of one book by one user
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.models import Base, Book, User, generate_uuid, now_iso
from ..utils import as_utc, parse_iso, utc_now
from .rules import derive_status
from .schemas import LoanStatus


class Loan(Base):
    """Loan model - tracks one borrowing transaction.

    Status is not a column: it depends on the clock and is derived on
    every read from ``returned_at`` and ``due_date``.
    """

    __tablename__ = "loans"
    __table_args__ = (
        # At most one open loan per user and book
        Index(
            "ux_loans_open_user_book",
            "user_id",
            "book_id",
            unique=True,
            sqlite_where=text("returned_at IS NULL"),
            postgresql_where=text("returned_at IS NULL"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )
    book_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("books.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Dates (ISO-8601 UTC)
    borrowed_at: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    due_date: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    returned_at: Mapped[Optional[str]] = mapped_column(String(32), index=True)

    # Reminder tracking
    last_reminder_at: Mapped[Optional[str]] = mapped_column(String(32))
    reminder_count: Mapped[int] = mapped_column(Integer, default=0)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=now_iso)
    updated_at: Mapped[str] = mapped_column(String(32), default=now_iso, onupdate=now_iso)

    # Relationships
    book: Mapped["Book"] = relationship("Book")
    user: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return (
            f"<Loan(id={self.id}, user_id={self.user_id}, "
            f"book_id={self.book_id}, status={self.status.value})>"
        )

    @property
    def borrowed_at_dt(self) -> datetime:
        return parse_iso(self.borrowed_at)

    @property
    def due_date_dt(self) -> datetime:
        return parse_iso(self.due_date)

    @property
    def returned_at_dt(self) -> Optional[datetime]:
        return parse_iso(self.returned_at)

    def status_at(self, now: datetime) -> LoanStatus:
        """Status of this loan at the given time."""
        return derive_status(self.returned_at_dt, self.due_date_dt, now)

    @property
    def status(self) -> LoanStatus:
        """Status of this loan right now."""
        return self.status_at(utc_now())

    @property
    def is_open(self) -> bool:
        """Not yet returned (active or overdue)."""
        return self.returned_at is None

    @property
    def is_overdue(self) -> bool:
        return self.status == LoanStatus.OVERDUE

    def days_overdue(self, now: Optional[datetime] = None) -> int:
        """Whole days past the due date (0 if not overdue)."""
        now = as_utc(now or utc_now())
        if self.status_at(now) != LoanStatus.OVERDUE:
            return 0
        return (now - self.due_date_dt).days

    def days_until_due(self, now: Optional[datetime] = None) -> int:
        """Whole days left before the due date (negative once overdue)."""
        now = as_utc(now or utc_now())
        delta = self.due_date_dt - now
        if delta.total_seconds() < 0:
            return -((now - self.due_date_dt).days)
        return delta.days
