"""Admin dashboard statistics.

Provides the figures shown on the library dashboard:
- Catalog size and availability
- Active and inactive users
- Loan counts, overdue rate and monthly activity
- Most borrowed categories
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import and_, func, select

from ..db.models import Book, Category, User
from ..db.sqlite import Database, get_db
from ..lending.models import Loan
from ..utils import to_iso, utc_now


@dataclass
class BookStats:
    """Catalog figures."""

    total: int = 0
    available: int = 0  # titles with at least one copy on the shelf
    borrowed: int = 0  # copies currently on loan
    availability_rate: float = 0.0


@dataclass
class UserStats:
    total: int = 0
    active: int = 0
    inactive: int = 0


@dataclass
class LoanStats:
    active: int = 0
    overdue: int = 0
    this_month: int = 0
    overdue_rate: float = 0.0


@dataclass
class Dashboard:
    """Everything the dashboard shows."""

    books: BookStats
    users: UserStats
    loans: LoanStats
    loans_by_month: dict[str, int] = field(default_factory=dict)  # "YYYY-MM" -> count
    top_categories: list[tuple[str, int]] = field(default_factory=list)


def _rate(part: int, whole: int) -> float:
    """Percentage rounded to one decimal, 0 when ``whole`` is 0."""
    if not whole:
        return 0.0
    return round(part / whole * 100, 1)


def _month_keys(now: datetime, months: int) -> list[str]:
    """``YYYY-MM`` keys for the last ``months`` months, oldest first."""
    year, month = now.year, now.month
    keys = []
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


class DashboardStats:
    """Calculates dashboard statistics."""

    def __init__(
        self,
        db: Optional[Database] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db or get_db()
        self.clock = clock or utc_now

    def get_dashboard(self, months: int = 12, top: int = 5) -> Dashboard:
        """Collect all dashboard figures at the current time."""
        return Dashboard(
            books=self.get_book_stats(),
            users=self.get_user_stats(),
            loans=self.get_loan_stats(),
            loans_by_month=self.get_loans_by_month(months),
            top_categories=self.get_top_categories(top),
        )

    def get_book_stats(self) -> BookStats:
        with self.db.get_session() as session:
            total = session.execute(select(func.count(Book.id))).scalar() or 0
            available = session.execute(
                select(func.count(Book.id)).where(Book.available_copies > 0)
            ).scalar() or 0
            borrowed = session.execute(
                select(func.sum(Book.total_copies - Book.available_copies))
            ).scalar() or 0

        return BookStats(
            total=total,
            available=available,
            borrowed=borrowed,
            availability_rate=_rate(available, total),
        )

    def get_user_stats(self) -> UserStats:
        with self.db.get_session() as session:
            total = session.execute(select(func.count(User.id))).scalar() or 0
            active = session.execute(
                select(func.count(User.id)).where(User.is_active.is_(True))
            ).scalar() or 0

        return UserStats(total=total, active=active, inactive=total - active)

    def get_loan_stats(self) -> LoanStats:
        """Loan counts.

        ``active`` counts every open loan, overdue ones included, so the
        overdue rate is the share of open loans that are late.
        """
        now = self.clock()
        now_str = to_iso(now)
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

        with self.db.get_session() as session:
            active = session.execute(
                select(func.count(Loan.id)).where(Loan.returned_at.is_(None))
            ).scalar() or 0
            overdue = session.execute(
                select(func.count(Loan.id)).where(
                    and_(Loan.returned_at.is_(None), Loan.due_date < now_str)
                )
            ).scalar() or 0
            this_month = session.execute(
                select(func.count(Loan.id)).where(Loan.borrowed_at >= to_iso(month_start))
            ).scalar() or 0

        return LoanStats(
            active=active,
            overdue=overdue,
            this_month=this_month,
            overdue_rate=_rate(overdue, active),
        )

    def get_loans_by_month(self, months: int = 12) -> dict[str, int]:
        """Loans started per month, including months with none.

        Raises:
            ValueError: If months is less than 1
        """
        if months < 1:
            raise ValueError("months must be at least 1")

        keys = _month_keys(self.clock(), months)
        counts = dict.fromkeys(keys, 0)

        month = func.substr(Loan.borrowed_at, 1, 7)
        with self.db.get_session() as session:
            rows = session.execute(
                select(month, func.count(Loan.id))
                .where(Loan.borrowed_at >= f"{keys[0]}-01")
                .group_by(month)
            ).all()

        for key, count in rows:
            if key in counts:
                counts[key] = count
        return counts

    def get_top_categories(self, limit: int = 5) -> list[tuple[str, int]]:
        """Categories with the most loans, all time."""
        loan_count = func.count(Loan.id).label("loan_count")
        with self.db.get_session() as session:
            rows = session.execute(
                select(Category.name, loan_count)
                .join(Book, Book.category_id == Category.id)
                .join(Loan, Loan.book_id == Book.id)
                .group_by(Category.id)
                .order_by(loan_count.desc(), Category.name)
                .limit(limit)
            ).all()
        return [(name, count) for name, count in rows]
