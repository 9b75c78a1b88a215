"""Tests for LoanService."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError

from librarydesk.db.models import Book
from librarydesk.lending import (
    AlreadyReturned,
    EntityNotFound,
    ExtensionDenied,
    Loan,
    LoanOperationFailed,
    LoanRejected,
    LoanService,
    LoanStatus,
)
from librarydesk.notifications import NotificationError, NotificationService, TemplateId
from librarydesk.notifications.transports import Transport
from librarydesk.users import UserCreate
from librarydesk.utils import to_iso


def available(db, book_id: str) -> int:
    return db.get_book(book_id).available_copies


class BrokenTransport(Transport):
    """Transport whose every delivery fails."""

    def send(self, template_id, recipient, context):
        raise NotificationError("relay down")


# ============================================================================
# Borrow
# ============================================================================


class TestBorrow:
    """Tests for borrowing books."""

    def test_borrow_creates_active_loan(self, loans, db, user, book, clock):
        """Test that borrowing creates an active loan due in 21 days."""
        loan = loans.borrow(user.id, book.id)

        assert loan.id is not None
        assert loan.user_id == user.id
        assert loan.book_id == book.id
        assert loan.returned_at is None
        assert loan.borrowed_at_dt == clock.now
        assert loan.due_date_dt == clock.now + timedelta(days=21)
        assert loan.status_at(clock.now) == LoanStatus.ACTIVE

    def test_borrow_decrements_available(self, loans, db, user, book):
        loans.borrow(user.id, book.id)
        assert available(db, book.id) == 2

    def test_borrow_sends_confirmation(self, loans, user, book, transport):
        loans.borrow(user.id, book.id)

        sent = transport.for_template(TemplateId.LOAN_CREATED)
        assert len(sent) == 1
        assert sent[0].recipient == "reader@example.com"
        assert "1984" in sent[0].body

    def test_unknown_user(self, loans, book):
        with pytest.raises(EntityNotFound):
            loans.borrow("missing", book.id)

    def test_unknown_book(self, loans, user):
        with pytest.raises(EntityNotFound):
            loans.borrow(user.id, "missing")

    def test_inactive_user_rejected(self, loans, users, db, user, book):
        users.set_active(user.id, False)

        with pytest.raises(LoanRejected, match="deactivated"):
            loans.borrow(user.id, book.id)
        assert available(db, book.id) == 3

    def test_loan_cap_enforced(self, loans, users, user, make_book):
        """Test that the per-user cap counts active loans."""
        users.set_max_loans(user.id, 2)
        first, second, third = make_book("Alpha"), make_book("Beta"), make_book("Gamma")

        loans.borrow(user.id, first.id)
        loans.borrow(user.id, second.id)

        with pytest.raises(LoanRejected, match="limit of 2 simultaneous loans"):
            loans.borrow(user.id, third.id)

    def test_overdue_loans_count_against_cap(self, loans, users, user, make_book, clock):
        users.set_max_loans(user.id, 1)
        first, second = make_book("Alpha"), make_book("Beta")
        loans.borrow(user.id, first.id)

        clock.advance(days=30)

        with pytest.raises(LoanRejected, match="limit of 1"):
            loans.borrow(user.id, second.id)

    def test_returned_loans_free_the_cap(self, loans, users, user, make_book):
        users.set_max_loans(user.id, 1)
        first, second = make_book("Alpha"), make_book("Beta")
        loan = loans.borrow(user.id, first.id)
        loans.return_book(loan.id)

        assert loans.borrow(user.id, second.id).book_id == second.id

    def test_zero_cap_rejects_everything(self, loans, users, user, book):
        users.set_max_loans(user.id, 0)
        with pytest.raises(LoanRejected, match="limit of 0"):
            loans.borrow(user.id, book.id)

    def test_no_copy_available(self, loans, db, user, other_user, single_copy_book):
        loans.borrow(other_user.id, single_copy_book.id)

        with pytest.raises(LoanRejected, match="no longer available"):
            loans.borrow(user.id, single_copy_book.id)
        assert available(db, single_copy_book.id) == 0

    def test_duplicate_open_loan_rejected(self, loans, db, user, book):
        loans.borrow(user.id, book.id)

        with pytest.raises(LoanRejected, match="already borrowed"):
            loans.borrow(user.id, book.id)
        assert available(db, book.id) == 2

    def test_can_borrow_again_after_return(self, loans, user, book):
        loan = loans.borrow(user.id, book.id)
        loans.return_book(loan.id)

        again = loans.borrow(user.id, book.id)
        assert again.id != loan.id

    def test_inactive_reported_before_cap(self, loans, users, user, book):
        """Test that the first failing rule decides the message."""
        users.set_max_loans(user.id, 0)
        users.set_active(user.id, False)

        with pytest.raises(LoanRejected, match="deactivated"):
            loans.borrow(user.id, book.id)

    def test_last_copy_claimed_concurrently(self, loans, db, user, book, monkeypatch):
        """Test that the conditional decrement loses cleanly when copies run out."""
        monkeypatch.setattr(
            "librarydesk.lending.manager.ensure_can_borrow", lambda *a, **kw: None
        )
        with db.get_session() as session:
            session.execute(update(Book).where(Book.id == book.id).values(available_copies=0))

        with pytest.raises(LoanRejected, match="no longer available"):
            loans.borrow(user.id, book.id)

        assert loans.list_loans() == []
        assert available(db, book.id) == 0

    def test_duplicate_loan_raced_past_check(self, loans, db, user, book, monkeypatch):
        """Test that the open-loan index rejects a duplicate the service check missed."""
        loans.borrow(user.id, book.id)
        monkeypatch.setattr(LoanService, "_find_open_loan", staticmethod(lambda *a: None))

        with pytest.raises(LoanRejected, match="already borrowed"):
            loans.borrow(user.id, book.id)

        assert len(loans.list_loans()) == 1
        assert available(db, book.id) == 2

    def test_persistence_failure_rolls_back(self, loans, db, user, book):
        """Test that a failed insert leaves the copy count untouched."""
        with db.engine.begin() as conn:
            conn.execute(
                text(
                    "CREATE TRIGGER reject_loans BEFORE INSERT ON loans "
                    "BEGIN SELECT RAISE(ABORT, 'disk full'); END"
                )
            )

        with pytest.raises(LoanOperationFailed) as exc_info:
            loans.borrow(user.id, book.id)

        assert exc_info.value.__cause__ is not None
        assert "disk full" not in str(exc_info.value)
        assert available(db, book.id) == 3

    def test_confirmation_failure_keeps_loan(self, db, user, book, clock):
        service = LoanService(
            db, notifier=NotificationService(BrokenTransport()), clock=clock, loan_days=21
        )

        loan = service.borrow(user.id, book.id)

        assert service.get_loan(loan.id) is not None
        assert available(db, book.id) == 2


# ============================================================================
# Return
# ============================================================================


class TestReturn:
    """Tests for returning books."""

    def test_return_closes_loan(self, loans, db, user, book, clock):
        loan = loans.borrow(user.id, book.id)
        clock.advance(days=5)

        returned = loans.return_book(loan.id)

        assert returned.returned_at_dt == clock.now
        assert returned.status_at(clock.now) == LoanStatus.RETURNED
        assert available(db, book.id) == 3

    def test_return_sends_confirmation(self, loans, user, book, transport):
        loan = loans.borrow(user.id, book.id)
        loans.return_book(loan.id)

        assert len(transport.for_template(TemplateId.LOAN_RETURNED)) == 1

    def test_return_twice_rejected(self, loans, db, user, book):
        loan = loans.borrow(user.id, book.id)
        loans.return_book(loan.id)

        with pytest.raises(AlreadyReturned):
            loans.return_book(loan.id)
        assert available(db, book.id) == 3

    def test_return_overdue_loan(self, loans, user, book, clock):
        loan = loans.borrow(user.id, book.id)
        clock.advance(days=40)

        returned = loans.return_book(loan.id)
        assert returned.status_at(clock.now) == LoanStatus.RETURNED

    def test_return_unknown_loan(self, loans):
        with pytest.raises(EntityNotFound):
            loans.return_book("missing")

    def test_available_never_exceeds_total(self, loans, db, user, book):
        """Test that a return onto a full shelf does not overflow the count."""
        loan = loans.borrow(user.id, book.id)
        with db.get_session() as session:
            session.execute(update(Book).where(Book.id == book.id).values(available_copies=3))

        loans.return_book(loan.id)

        assert available(db, book.id) == 3


# ============================================================================
# Extend
# ============================================================================


class TestExtend:
    """Tests for extending loans."""

    def test_extend_pushes_due_date(self, loans, user, book, clock):
        loan = loans.borrow(user.id, book.id)

        extended = loans.extend_loan(loan.id)

        assert extended.due_date_dt == loan.due_date_dt + timedelta(days=14)

    def test_extend_custom_days(self, loans, user, book):
        loan = loans.borrow(user.id, book.id)
        extended = loans.extend_loan(loan.id, 7)
        assert extended.due_date_dt == loan.due_date_dt + timedelta(days=7)

    def test_extend_twice_accumulates(self, loans, user, book):
        loan = loans.borrow(user.id, book.id)
        loans.extend_loan(loan.id)
        extended = loans.extend_loan(loan.id)
        assert extended.due_date_dt == loan.due_date_dt + timedelta(days=28)

    def test_extend_sends_confirmation(self, loans, user, book, transport):
        loan = loans.borrow(user.id, book.id)
        loans.extend_loan(loan.id)
        assert len(transport.for_template(TemplateId.LOAN_EXTENDED)) == 1

    def test_extend_on_due_date_allowed(self, loans, user, book, clock):
        loan = loans.borrow(user.id, book.id)
        clock.now = loan.due_date_dt

        extended = loans.extend_loan(loan.id)
        assert extended.due_date_dt > loan.due_date_dt

    def test_extend_overdue_denied(self, loans, user, book, clock):
        loan = loans.borrow(user.id, book.id)
        clock.advance(days=22)

        with pytest.raises(ExtensionDenied):
            loans.extend_loan(loan.id)
        assert loans.get_loan(loan.id).due_date == loan.due_date

    def test_extend_returned_denied(self, loans, user, book):
        loan = loans.borrow(user.id, book.id)
        loans.return_book(loan.id)

        with pytest.raises(AlreadyReturned):
            loans.extend_loan(loan.id)

    def test_extend_invalid_days(self, loans, user, book):
        loan = loans.borrow(user.id, book.id)
        with pytest.raises(ValueError):
            loans.extend_loan(loan.id, 0)

    def test_extend_unknown_loan(self, loans):
        with pytest.raises(EntityNotFound):
            loans.extend_loan("missing")

    def test_naive_clock_read_as_utc(self, db, notifier, user, book):
        service = LoanService(db, notifier=notifier, clock=lambda: datetime(2025, 6, 10, 12))
        loan = service.borrow(user.id, book.id)

        extended = service.extend_loan(loan.id)

        assert extended.due_date == "2025-07-15T12:00:00.000000+00:00"


# ============================================================================
# Queries
# ============================================================================


class TestQueries:
    """Tests for loan queries and derived status."""

    def test_status_becomes_overdue_after_due_date(self, loans, user, book, clock):
        loan = loans.borrow(user.id, book.id)

        clock.now = loan.due_date_dt
        assert loan.status_at(clock.now) == LoanStatus.ACTIVE

        clock.advance(seconds=1)
        assert loan.status_at(clock.now) == LoanStatus.OVERDUE

    def test_list_by_status(self, loans, user, other_user, book, make_book, clock):
        late = loans.borrow(user.id, book.id)
        clock.advance(days=22)
        current = loans.borrow(other_user.id, book.id)
        closed = loans.borrow(user.id, make_book().id)
        loans.return_book(closed.id)

        assert [l.id for l in loans.list_loans(status=LoanStatus.OVERDUE)] == [late.id]
        assert [l.id for l in loans.list_loans(status=LoanStatus.ACTIVE)] == [current.id]
        assert [l.id for l in loans.list_loans(status=LoanStatus.RETURNED)] == [closed.id]

    def test_list_filters(self, loans, user, other_user, book):
        mine = loans.borrow(user.id, book.id)
        loans.borrow(other_user.id, book.id)

        assert [l.id for l in loans.list_loans(user_id=user.id)] == [mine.id]
        assert len(loans.list_loans(book_id=book.id)) == 2

    def test_user_open_loans_and_history(self, loans, user, book, make_book):
        open_loan = loans.borrow(user.id, book.id)
        closed = loans.borrow(user.id, make_book().id)
        loans.return_book(closed.id)

        assert [l.id for l in loans.get_user_open_loans(user.id)] == [open_loan.id]
        assert len(loans.get_user_loan_history(user.id)) == 2
        assert loans.count_open_loans(user.id) == 1

    def test_overdue_loans(self, loans, user, book, clock):
        loan = loans.borrow(user.id, book.id)
        assert loans.get_overdue_loans() == []

        clock.advance(days=25)
        overdue = loans.get_overdue_loans()
        assert [l.id for l in overdue] == [loan.id]
        assert overdue[0].days_overdue(clock.now) == 4

    def test_loans_due_soon(self, loans, user, book, clock):
        loan = loans.borrow(user.id, book.id)
        assert loans.get_loans_due_soon(3) == []

        clock.advance(days=19)
        assert [l.id for l in loans.get_loans_due_soon(3)] == [loan.id]

        clock.advance(days=3)
        assert loans.get_loans_due_soon(3) == []

    def test_loan_summaries(self, loans, user, book, clock):
        loans.borrow(user.id, book.id)
        clock.advance(days=23)

        summaries = loans.get_loan_summaries()
        assert len(summaries) == 1
        assert summaries[0].book_title == "1984"
        assert summaries[0].user_email == "reader@example.com"
        assert summaries[0].user_name == "Ada Reader"
        assert summaries[0].status == LoanStatus.OVERDUE
        assert summaries[0].days_overdue == 2

    def test_statistics(self, loans, user, other_user, book, make_book, clock):
        loans.borrow(user.id, book.id)
        clock.advance(days=22)
        loans.borrow(other_user.id, book.id)
        returned = loans.borrow(user.id, make_book().id)
        loans.return_book(returned.id)

        stats = loans.get_statistics()
        assert stats.active_loans == 1
        assert stats.overdue_loans == 1
        # Clock is now 2025-07-02: only the last two loans fall in July
        assert stats.total_loans_this_month == 2

    def test_get_loan_missing(self, loans):
        assert loans.get_loan("missing") is None


# ============================================================================
# Storage Invariants
# ============================================================================


class TestStorage:
    """Tests for constraints enforced by the database itself."""

    def test_one_open_loan_per_user_and_book(self, db, user, book, clock):
        now = to_iso(clock.now)
        with pytest.raises(IntegrityError):
            with db.get_session() as session:
                for _ in range(2):
                    session.add(
                        Loan(user_id=user.id, book_id=book.id, borrowed_at=now, due_date=now)
                    )
                session.flush()

    def test_returned_loans_do_not_block(self, db, user, book, clock):
        now = to_iso(clock.now)
        with db.get_session() as session:
            session.add(
                Loan(
                    user_id=user.id,
                    book_id=book.id,
                    borrowed_at=now,
                    due_date=now,
                    returned_at=now,
                )
            )
            session.add(Loan(user_id=user.id, book_id=book.id, borrowed_at=now, due_date=now))

        with db.get_session() as session:
            assert len(session.execute(select(Loan)).scalars().all()) == 2

    def test_available_cannot_go_negative(self, db, book):
        with pytest.raises(IntegrityError):
            with db.get_session() as session:
                session.execute(
                    update(Book).where(Book.id == book.id).values(available_copies=-1)
                )

    def test_default_loan_days_from_config(self, db, monkeypatch):
        monkeypatch.setenv("LIBRARYDESK_LOAN_DAYS", "30")
        service = LoanService(db)
        assert service.loan_days == 30
        assert service.extension_days == 14


class TestProcessOverdue:
    """Tests for the service-level overdue batch entry point."""

    def test_returns_attempted_count(self, loans, users, book, clock):
        for i in range(2):
            reader = users.create_user(
                UserCreate(
                    email=f"late{i}@example.com",
                    password="password",
                    first_name="Late",
                    last_name=str(i),
                )
            )
            loans.borrow(reader.id, book.id)
        clock.advance(days=30)

        assert loans.process_overdue_loans() == 2


class TestScenarios:
    """End-to-end loan lifecycles."""

    def test_single_copy_handover(self, loans, db, user, other_user, single_copy_book):
        book_id = single_copy_book.id
        first = loans.borrow(user.id, book_id)
        assert available(db, book_id) == 0

        with pytest.raises(LoanRejected):
            loans.borrow(other_user.id, book_id)
        assert available(db, book_id) == 0

        loans.return_book(first.id)
        assert available(db, book_id) == 1

        second = loans.borrow(other_user.id, book_id)
        assert second.user_id == other_user.id
        assert available(db, book_id) == 0

    def test_overdue_then_returned(self, loans, user, book, clock):
        start = clock.now
        loan = loans.borrow(user.id, book.id)
        assert loan.due_date_dt == start + timedelta(days=21)

        clock.now = start + timedelta(days=22)
        assert loans.get_loan(loan.id).status_at(clock.now) == LoanStatus.OVERDUE

        with pytest.raises(ExtensionDenied):
            loans.extend_loan(loan.id, 14)

        returned = loans.return_book(loan.id)
        clock.now = start + timedelta(days=400)
        assert returned.status_at(clock.now) == LoanStatus.RETURNED

    def test_copies_stay_in_bounds(self, loans, db, user, other_user, admin, book):
        """Test 0 <= available <= total across a mixed sequence of calls."""
        readers = [user, other_user, admin]
        open_loans = []
        for reader in readers:
            open_loans.append(loans.borrow(reader.id, book.id))
            assert 0 <= available(db, book.id) <= 3
        for loan in open_loans:
            loans.return_book(loan.id)
            assert 0 <= available(db, book.id) <= 3
        assert available(db, book.id) == 3
