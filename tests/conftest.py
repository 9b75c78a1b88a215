"""Pytest configuration and shared fixtures.

This module provides fixtures for testing librarydesk: an in-memory
database, a controllable clock, a recording notification transport and
sample catalog data.
"""

from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest

from librarydesk.catalog import CatalogManager
from librarydesk.config import reset_config
from librarydesk.db.models import Author, Book, Category, User
from librarydesk.db.schemas import AuthorCreate, BookCreate, CategoryCreate
from librarydesk.db.sqlite import Database, reset_db
from librarydesk.lending import LoanService
from librarydesk.notifications import NotificationService, RecordingTransport
from librarydesk.users import UserCreate, UserManager


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ============================================================================
# Infrastructure Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> Generator[None, None, None]:
    """Keep global state and environment out of every test."""
    for name in (
        "LIBRARYDESK_WEBHOOK_URL",
        "LIBRARYDESK_LOAN_DAYS",
        "LIBRARYDESK_EXTENSION_DAYS",
        "LIBRARYDESK_MAX_LOANS",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_db()
    reset_config()
    yield
    reset_db()
    reset_config()


@pytest.fixture
def db() -> Database:
    """Create an in-memory database for testing."""
    database = Database(":memory:")
    database.create_tables()
    return database


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def notifier(transport: RecordingTransport) -> NotificationService:
    return NotificationService(transport)


# ============================================================================
# Manager Fixtures
# ============================================================================


@pytest.fixture
def catalog(db: Database) -> CatalogManager:
    return CatalogManager(db)


@pytest.fixture
def users(db: Database) -> UserManager:
    return UserManager(db, default_max_loans=5)


@pytest.fixture
def loans(db: Database, notifier: NotificationService, clock: FakeClock) -> LoanService:
    """LoanService with a 21 day loan period and 14 day extensions."""
    return LoanService(db, notifier=notifier, clock=clock, loan_days=21, extension_days=14)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def author(catalog: CatalogManager) -> Author:
    return catalog.create_author(
        AuthorCreate(first_name="George", last_name="Orwell", birth_year=1903)
    )


@pytest.fixture
def category(catalog: CatalogManager) -> Category:
    return catalog.create_category(CategoryCreate(name="Science-Fiction"))


@pytest.fixture
def book(catalog: CatalogManager, author: Author, category: Category) -> Book:
    """A book with three copies on the shelf."""
    return catalog.create_book(
        BookCreate(
            title="1984",
            isbn="9782070368228",
            publication_year=1949,
            total_copies=3,
            author_id=author.id,
            category_id=category.id,
        )
    )


@pytest.fixture
def single_copy_book(catalog: CatalogManager, author: Author, category: Category) -> Book:
    return catalog.create_book(
        BookCreate(
            title="Animal Farm",
            isbn="9780451526342",
            publication_year=1945,
            total_copies=1,
            author_id=author.id,
            category_id=category.id,
        )
    )


@pytest.fixture
def user(users: UserManager) -> User:
    return users.create_user(
        UserCreate(
            email="reader@example.com",
            password="password",
            first_name="Ada",
            last_name="Reader",
        )
    )


@pytest.fixture
def other_user(users: UserManager) -> User:
    return users.create_user(
        UserCreate(
            email="other@example.com",
            password="password",
            first_name="Bob",
            last_name="Other",
        )
    )


@pytest.fixture
def admin(users: UserManager) -> User:
    return users.create_user(
        UserCreate(
            email="admin@example.com",
            password="admin1234",
            first_name="Admin",
            last_name="Library",
            is_admin=True,
        )
    )


@pytest.fixture
def make_book(catalog: CatalogManager, author: Author, category: Category):
    """Factory for extra books with valid ISBN-13s."""
    isbns = iter(
        [
            "9782070409228",
            "9782070360024",
            "9782070584628",
            "9782070360260",
            "9782253004516",
            "9782253151340",
            "9782266154345",
        ]
    )

    def _make(title: str = "Extra Book", copies: int = 2) -> Book:
        return catalog.create_book(
            BookCreate(
                title=title,
                isbn=next(isbns),
                publication_year=2000,
                total_copies=copies,
                author_id=author.id,
                category_id=category.id,
            )
        )

    return _make
