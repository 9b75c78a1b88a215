"""SQLite database operations.

Handles database connection, session management, and basic lookups.
"""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base, Book, User


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    """SQLite ships with foreign key enforcement turned off."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     LIBRARYDESK_DB_PATH env var or default location.
        """
        if db_path is None:
            db_path = os.environ.get(
                "LIBRARYDESK_DB_PATH",
                str(Path.home() / ".librarydesk" / "library.db"),
            )

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # so that all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        event.listen(self.engine, "connect", _enable_foreign_keys)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        # Import lending models to register them with Base
        from ..lending.models import Loan  # noqa: F401

        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager.

        Commits when the block exits normally and rolls back on any exception.
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # Lookups
    # ========================================================================

    def get_book(self, book_id: str, session: Optional[Session] = None) -> Optional[Book]:
        """Get a book by ID."""

        def _get(s: Session) -> Optional[Book]:
            return s.get(Book, book_id)

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                book = _get(s)
                if book:
                    s.expunge(book)
                return book

    def get_user(self, user_id: str, session: Optional[Session] = None) -> Optional[User]:
        """Get a user by ID."""

        def _get(s: Session) -> Optional[User]:
            return s.get(User, user_id)

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                user = _get(s)
                if user:
                    s.expunge(user)
                return user

    def get_user_by_email(
        self, email: str, session: Optional[Session] = None
    ) -> Optional[User]:
        """Get a user by email, ignoring case."""

        def _get(s: Session) -> Optional[User]:
            stmt = select(User).where(User.email == email.strip().lower())
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                user = _get(s)
                if user:
                    s.expunge(user)
                return user


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    _db = None
