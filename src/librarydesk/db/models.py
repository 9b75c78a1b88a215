"""SQLAlchemy ORM models for the library catalog and patrons.

Tables:
- authors: Book authors
- categories: Catalog categories with unique slugs
- books: Catalog entries with copy counts
- users: Patrons and librarians

Loans live in ``lending.models``.
"""

import json
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from ..utils import to_iso, utc_now
from .schemas import UserRole


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def now_iso() -> str:
    """Current UTC time in storage format."""
    return to_iso(utc_now())


class Author(Base):
    """Author model."""

    __tablename__ = "authors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    biography: Mapped[Optional[str]] = mapped_column(Text)
    birth_year: Mapped[Optional[int]] = mapped_column(Integer)

    created_at: Mapped[str] = mapped_column(String(32), default=now_iso)
    updated_at: Mapped[str] = mapped_column(String(32), default=now_iso, onupdate=now_iso)

    books: Mapped[list["Book"]] = relationship("Book", back_populates="author")

    def __repr__(self) -> str:
        return f"<Author(id={self.id}, name='{self.full_name}')>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Category(Base):
    """Category model. The slug is derived from the name by the catalog manager."""

    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[str] = mapped_column(String(32), default=now_iso)
    updated_at: Mapped[str] = mapped_column(String(32), default=now_iso, onupdate=now_iso)

    books: Mapped[list["Book"]] = relationship("Book", back_populates="category")

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, slug='{self.slug}')>"


class Book(Base):
    """Book model - one catalog entry with a number of physical copies."""

    __tablename__ = "books"
    __table_args__ = (
        CheckConstraint("total_copies >= 0", name="ck_books_total_copies"),
        CheckConstraint(
            "available_copies >= 0 AND available_copies <= total_copies",
            name="ck_books_available_copies",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    # Core fields
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    isbn: Mapped[str] = mapped_column(String(13), nullable=False, unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    publication_year: Mapped[int] = mapped_column(Integer, nullable=False)
    cover_image: Mapped[Optional[str]] = mapped_column(String(500))

    # Inventory
    total_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Ownership
    author_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("authors.id"), nullable=False, index=True
    )
    category_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("categories.id"), nullable=False, index=True
    )

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=now_iso)
    updated_at: Mapped[str] = mapped_column(String(32), default=now_iso, onupdate=now_iso)

    # Relationships
    author: Mapped["Author"] = relationship("Author", back_populates="books")
    category: Mapped["Category"] = relationship("Category", back_populates="books")

    def __repr__(self) -> str:
        return (
            f"<Book(id={self.id}, title='{self.title}', "
            f"available={self.available_copies}/{self.total_copies})>"
        )

    def initialize_available_copies(self) -> None:
        """Start a new book with every copy on the shelf."""
        if not self.available_copies and self.total_copies:
            self.available_copies = self.total_copies

    @property
    def is_available(self) -> bool:
        """At least one copy can be borrowed."""
        return self.available_copies > 0

    @property
    def copies_on_loan(self) -> int:
        return self.total_copies - self.available_copies

    def decrement_available(self) -> None:
        """Take one copy off the shelf. No-op when none are left.

        ``LoanService.borrow`` applies the same clamp in SQL with a conditional
        UPDATE (``WHERE available_copies > 0``).
        """
        if self.available_copies > 0:
            self.available_copies -= 1

    def increment_available(self) -> None:
        """Put one copy back. No-op when every copy is already on the shelf.

        ``LoanService.return_book`` applies the same clamp in SQL
        (``WHERE available_copies < total_copies``).
        """
        if self.available_copies < self.total_copies:
            self.available_copies += 1


class User(Base):
    """User model - patrons and admins."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    email: Mapped[str] = mapped_column(String(180), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    max_loans: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    roles: Mapped[Optional[str]] = mapped_column(Text)  # JSON array of UserRole

    created_at: Mapped[str] = mapped_column(String(32), default=now_iso)
    updated_at: Mapped[str] = mapped_column(String(32), default=now_iso, onupdate=now_iso)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def get_roles(self) -> list[str]:
        """Get roles as a list. Every user holds the basic user role."""
        roles = json.loads(self.roles) if self.roles else []
        if UserRole.USER.value not in roles:
            roles.append(UserRole.USER.value)
        return roles

    def set_roles(self, roles: list[str]) -> None:
        """Set roles from a list."""
        self.roles = json.dumps(sorted(set(roles)))

    @property
    def is_admin(self) -> bool:
        return UserRole.ADMIN.value in self.get_roles()
