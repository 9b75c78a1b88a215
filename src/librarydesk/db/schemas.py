"""Pydantic schemas for catalog data validation.

These schemas validate author, category and book input before it reaches
the ORM, and shape the responses handed back to the CLI.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..utils import is_valid_isbn, normalize_isbn


class UserRole(str, Enum):
    """Roles a user can hold."""

    USER = "user"
    ADMIN = "admin"


# ============================================================================
# Authors
# ============================================================================


class AuthorBase(BaseModel):
    """Base author fields."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    biography: Optional[str] = None
    birth_year: Optional[int] = Field(None, ge=0, le=2100)


class AuthorCreate(AuthorBase):
    """Schema for creating an author."""

    pass


class AuthorUpdate(BaseModel):
    """Schema for updating an author. All fields optional."""

    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    biography: Optional[str] = None
    birth_year: Optional[int] = Field(None, ge=0, le=2100)


class AuthorResponse(AuthorBase):
    """Schema for author responses."""

    id: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ============================================================================
# Categories
# ============================================================================


class CategoryCreate(BaseModel):
    """Schema for creating a category. The slug is derived from the name."""

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class CategoryUpdate(BaseModel):
    """Schema for updating a category."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None


class CategoryResponse(BaseModel):
    """Schema for category responses."""

    id: str
    name: str
    slug: str
    description: Optional[str]

    model_config = {"from_attributes": True}


# ============================================================================
# Books
# ============================================================================


class BookBase(BaseModel):
    """Base book fields common to create/update operations."""

    title: str = Field(..., min_length=2, max_length=255, description="Book title")
    isbn: str = Field(..., description="ISBN-10 or ISBN-13")
    description: Optional[str] = None
    publication_year: int = Field(..., ge=1000, le=2100)
    cover_image: Optional[str] = Field(None, max_length=500)
    author_id: str
    category_id: str

    @field_validator("isbn")
    @classmethod
    def validate_isbn(cls, v: str) -> str:
        """Normalize the ISBN and check its checksum."""
        v = normalize_isbn(v)
        if not is_valid_isbn(v):
            raise ValueError(f"Invalid ISBN: {v}")
        return v


class BookCreate(BookBase):
    """Schema for creating a new book."""

    total_copies: int = Field(0, ge=0)
    available_copies: int = Field(0, ge=0)

    @model_validator(mode="after")
    def available_within_total(self) -> "BookCreate":
        """Available copies can never exceed the total."""
        if self.available_copies > self.total_copies:
            raise ValueError("available_copies cannot exceed total_copies")
        return self


class BookUpdate(BaseModel):
    """Schema for updating a book. All fields optional."""

    title: Optional[str] = Field(None, min_length=2, max_length=255)
    isbn: Optional[str] = None
    description: Optional[str] = None
    publication_year: Optional[int] = Field(None, ge=1000, le=2100)
    cover_image: Optional[str] = Field(None, max_length=500)
    author_id: Optional[str] = None
    category_id: Optional[str] = None
    total_copies: Optional[int] = Field(None, ge=0)

    @field_validator("isbn")
    @classmethod
    def validate_isbn(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = normalize_isbn(v)
        if not is_valid_isbn(v):
            raise ValueError(f"Invalid ISBN: {v}")
        return v


class BookResponse(BaseModel):
    """Schema for book responses."""

    id: str
    title: str
    isbn: str
    description: Optional[str]
    publication_year: int
    cover_image: Optional[str]
    total_copies: int
    available_copies: int
    author_id: str
    category_id: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookSearch(BaseModel):
    """Search filters for the catalog."""

    query: Optional[str] = None
    category_id: Optional[str] = None
    author_id: Optional[str] = None
    available_only: bool = False
    limit: int = Field(50, ge=1, le=500)
