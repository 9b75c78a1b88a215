"""Tests for Pydantic schemas."""

import pytest
from pydantic import ValidationError

from librarydesk.db.schemas import BookCreate, BookSearch, BookUpdate, CategoryCreate


def book_data(**overrides) -> dict:
    data = {
        "title": "Fondation",
        "isbn": "9782070360260",
        "publication_year": 1951,
        "author_id": "author-1",
        "category_id": "category-1",
    }
    data.update(overrides)
    return data


class TestBookCreate:
    """Tests for BookCreate schema."""

    def test_minimal(self):
        book = BookCreate(**book_data())
        assert book.total_copies == 0
        assert book.available_copies == 0

    def test_short_title_rejected(self):
        with pytest.raises(ValidationError):
            BookCreate(**book_data(title="F"))

    def test_year_bounds(self):
        with pytest.raises(ValidationError):
            BookCreate(**book_data(publication_year=999))
        with pytest.raises(ValidationError):
            BookCreate(**book_data(publication_year=2101))

    def test_negative_copies_rejected(self):
        with pytest.raises(ValidationError):
            BookCreate(**book_data(total_copies=-1))

    def test_isbn10_accepted(self):
        assert BookCreate(**book_data(isbn="0-8044-2957-X")).isbn == "080442957X"


class TestBookUpdate:
    def test_all_optional(self):
        assert BookUpdate().model_dump(exclude_unset=True) == {}

    def test_isbn_validated(self):
        with pytest.raises(ValidationError):
            BookUpdate(isbn="123")


class TestOtherSchemas:
    def test_empty_category_name_rejected(self):
        with pytest.raises(ValidationError):
            CategoryCreate(name="")

    def test_search_limit_bounds(self):
        with pytest.raises(ValidationError):
            BookSearch(limit=0)
        assert BookSearch().limit == 50
