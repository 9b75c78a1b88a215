"""Database module for local SQLite storage."""

from .models import Author, Base, Book, Category, User
from .schemas import (
    AuthorCreate,
    AuthorResponse,
    AuthorUpdate,
    BookCreate,
    BookResponse,
    BookSearch,
    BookUpdate,
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    UserRole,
)
from .sqlite import Database, get_db, reset_db

__all__ = [
    "Author",
    "Base",
    "Book",
    "Category",
    "User",
    "AuthorCreate",
    "AuthorResponse",
    "AuthorUpdate",
    "BookCreate",
    "BookResponse",
    "BookSearch",
    "BookUpdate",
    "CategoryCreate",
    "CategoryResponse",
    "CategoryUpdate",
    "UserRole",
    "Database",
    "get_db",
    "reset_db",
]
