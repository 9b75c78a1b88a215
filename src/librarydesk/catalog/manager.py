"""Catalog manager for authors, categories and books."""

from typing import Optional

from sqlalchemy import delete, func, or_, select

from ..db.models import Author, Book, Category
from ..db.schemas import (
    AuthorCreate,
    AuthorUpdate,
    BookCreate,
    BookSearch,
    BookUpdate,
    CategoryCreate,
    CategoryUpdate,
)
from ..db.sqlite import Database, get_db
from ..lending.models import Loan
from ..utils import normalize_isbn, slugify


class CatalogManager:
    """Manages the library catalog."""

    def __init__(self, db: Optional[Database] = None):
        """Initialize catalog manager.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    # -------------------------------------------------------------------------
    # Authors
    # -------------------------------------------------------------------------

    def create_author(self, data: AuthorCreate) -> Author:
        """Create a new author.

        Args:
            data: Author creation data

        Returns:
            Created author
        """
        with self.db.get_session() as session:
            author = Author(
                first_name=data.first_name,
                last_name=data.last_name,
                biography=data.biography,
                birth_year=data.birth_year,
            )
            session.add(author)
            session.commit()
            session.refresh(author)
            session.expunge(author)
            return author

    def get_author(self, author_id: str) -> Optional[Author]:
        with self.db.get_session() as session:
            author = session.get(Author, author_id)
            if author:
                session.expunge(author)
            return author

    def list_authors(self, search: Optional[str] = None) -> list[Author]:
        """List authors ordered by last name.

        Args:
            search: Only authors whose first or last name contains this text

        Returns:
            List of authors
        """
        with self.db.get_session() as session:
            stmt = select(Author).order_by(Author.last_name, Author.first_name)

            if search:
                pattern = f"%{search}%"
                stmt = stmt.where(
                    or_(Author.first_name.ilike(pattern), Author.last_name.ilike(pattern))
                )

            authors = session.execute(stmt).scalars().all()
            for a in authors:
                session.expunge(a)
            return list(authors)

    def update_author(self, author_id: str, data: AuthorUpdate) -> Optional[Author]:
        with self.db.get_session() as session:
            author = session.get(Author, author_id)
            if not author:
                return None

            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(author, field, value)

            session.commit()
            session.refresh(author)
            session.expunge(author)
            return author

    def delete_author(self, author_id: str) -> bool:
        """Delete an author.

        Raises:
            ValueError: If the author still has books in the catalog
        """
        with self.db.get_session() as session:
            author = session.get(Author, author_id)
            if not author:
                return False

            if self._count_books(session, Book.author_id == author_id):
                raise ValueError("Cannot delete an author who still has books")

            session.delete(author)
            return True

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    def create_category(self, data: CategoryCreate) -> Category:
        """Create a new category with a slug derived from its name.

        Raises:
            ValueError: If the name or slug is already taken
        """
        slug = slugify(data.name)
        if not slug:
            raise ValueError(f"Cannot derive a slug from '{data.name}'")

        with self.db.get_session() as session:
            self._ensure_category_unique(session, data.name, slug)

            category = Category(name=data.name, slug=slug, description=data.description)
            session.add(category)
            session.commit()
            session.refresh(category)
            session.expunge(category)
            return category

    def get_category(self, category_id: str) -> Optional[Category]:
        with self.db.get_session() as session:
            category = session.get(Category, category_id)
            if category:
                session.expunge(category)
            return category

    def get_category_by_slug(self, slug: str) -> Optional[Category]:
        with self.db.get_session() as session:
            stmt = select(Category).where(Category.slug == slug)
            category = session.execute(stmt).scalar_one_or_none()
            if category:
                session.expunge(category)
            return category

    def list_categories(self) -> list[Category]:
        with self.db.get_session() as session:
            categories = session.execute(select(Category).order_by(Category.name)).scalars().all()
            for c in categories:
                session.expunge(c)
            return list(categories)

    def update_category(self, category_id: str, data: CategoryUpdate) -> Optional[Category]:
        """Update a category, regenerating the slug when the name changes."""
        with self.db.get_session() as session:
            category = session.get(Category, category_id)
            if not category:
                return None

            update_data = data.model_dump(exclude_unset=True)
            new_name = update_data.get("name")
            if new_name and new_name != category.name:
                slug = slugify(new_name)
                self._ensure_category_unique(session, new_name, slug, exclude_id=category_id)
                category.name = new_name
                category.slug = slug
            if "description" in update_data:
                category.description = update_data["description"]

            session.commit()
            session.refresh(category)
            session.expunge(category)
            return category

    def delete_category(self, category_id: str) -> bool:
        """Delete a category.

        Raises:
            ValueError: If the category still has books
        """
        with self.db.get_session() as session:
            category = session.get(Category, category_id)
            if not category:
                return False

            if self._count_books(session, Book.category_id == category_id):
                raise ValueError("Cannot delete a category that still has books")

            session.delete(category)
            return True

    # -------------------------------------------------------------------------
    # Books
    # -------------------------------------------------------------------------

    def create_book(self, data: BookCreate) -> Book:
        """Add a book to the catalog.

        Args:
            data: Book creation data

        Returns:
            Created book

        Raises:
            ValueError: If the ISBN exists or the author/category is unknown
        """
        with self.db.get_session() as session:
            if session.get(Author, data.author_id) is None:
                raise ValueError("Author not found")
            if session.get(Category, data.category_id) is None:
                raise ValueError("Category not found")
            if self._find_by_isbn(session, data.isbn):
                raise ValueError(f"A book with ISBN {data.isbn} already exists")

            book = Book(
                title=data.title,
                isbn=data.isbn,
                description=data.description,
                publication_year=data.publication_year,
                cover_image=data.cover_image,
                total_copies=data.total_copies,
                available_copies=data.available_copies,
                author_id=data.author_id,
                category_id=data.category_id,
            )
            book.initialize_available_copies()

            session.add(book)
            session.commit()
            session.refresh(book)
            session.expunge(book)
            return book

    def get_book(self, book_id: str) -> Optional[Book]:
        return self.db.get_book(book_id)

    def get_book_by_isbn(self, isbn: str) -> Optional[Book]:
        """Get a book by ISBN. Hyphens and spaces are ignored."""
        with self.db.get_session() as session:
            book = self._find_by_isbn(session, normalize_isbn(isbn))
            if book:
                session.expunge(book)
            return book

    def list_books(self) -> list[Book]:
        return self.search_books(BookSearch(limit=500))

    def search_books(self, search: BookSearch) -> list[Book]:
        """Search the catalog.

        The text query matches title, ISBN and author names. Results are
        ordered by title.

        Args:
            search: Search filters

        Returns:
            Matching books
        """
        with self.db.get_session() as session:
            stmt = select(Book).join(Author, Author.id == Book.author_id)

            if search.query:
                pattern = f"%{search.query}%"
                stmt = stmt.where(
                    or_(
                        Book.title.ilike(pattern),
                        Book.isbn.ilike(pattern),
                        Author.first_name.ilike(pattern),
                        Author.last_name.ilike(pattern),
                    )
                )
            if search.category_id:
                stmt = stmt.where(Book.category_id == search.category_id)
            if search.author_id:
                stmt = stmt.where(Book.author_id == search.author_id)
            if search.available_only:
                stmt = stmt.where(Book.available_copies > 0)

            stmt = stmt.order_by(Book.title).limit(search.limit)

            books = session.execute(stmt).scalars().all()
            for b in books:
                session.expunge(b)
            return list(books)

    def get_recent_books(self, limit: int = 10) -> list[Book]:
        """Most recently added books."""
        with self.db.get_session() as session:
            stmt = select(Book).order_by(Book.created_at.desc()).limit(limit)
            books = session.execute(stmt).scalars().all()
            for b in books:
                session.expunge(b)
            return list(books)

    def get_most_popular_books(self, limit: int = 10) -> list[tuple[Book, int]]:
        """Books with the most loans, with their loan counts."""
        with self.db.get_session() as session:
            loan_count = func.count(Loan.id).label("loan_count")
            stmt = (
                select(Book, loan_count)
                .outerjoin(Loan, Loan.book_id == Book.id)
                .group_by(Book.id)
                .order_by(loan_count.desc(), Book.title)
                .limit(limit)
            )
            rows = session.execute(stmt).all()
            for book, _ in rows:
                session.expunge(book)
            return [(book, count) for book, count in rows]

    def update_book(self, book_id: str, data: BookUpdate) -> Optional[Book]:
        """Update a book.

        Changing ``total_copies`` moves ``available_copies`` by the same
        amount, so copies on loan stay on loan.

        Raises:
            ValueError: If the new total is below the copies on loan, or the
                new ISBN belongs to another book
        """
        with self.db.get_session() as session:
            book = session.get(Book, book_id)
            if not book:
                return None

            update_data = data.model_dump(exclude_unset=True)

            new_total = update_data.pop("total_copies", None)
            if new_total is not None and new_total != book.total_copies:
                on_loan = book.copies_on_loan
                if new_total < on_loan:
                    raise ValueError(
                        f"Cannot reduce copies to {new_total}: {on_loan} are on loan"
                    )
                book.total_copies = new_total
                book.available_copies = new_total - on_loan

            isbn = update_data.get("isbn")
            if isbn and isbn != book.isbn:
                existing = self._find_by_isbn(session, isbn)
                if existing and existing.id != book_id:
                    raise ValueError(f"A book with ISBN {isbn} already exists")

            for field, value in update_data.items():
                if field in ("author_id", "category_id") and value is None:
                    continue
                setattr(book, field, value)

            session.commit()
            session.refresh(book)
            session.expunge(book)
            return book

    def delete_book(self, book_id: str) -> bool:
        """Delete a book together with its loan history."""
        with self.db.get_session() as session:
            book = session.get(Book, book_id)
            if not book:
                return False

            session.execute(delete(Loan).where(Loan.book_id == book_id))
            session.delete(book)
            return True

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _find_by_isbn(session, isbn: str) -> Optional[Book]:
        return session.execute(select(Book).where(Book.isbn == isbn)).scalar_one_or_none()

    @staticmethod
    def _count_books(session, criterion) -> int:
        return session.execute(
            select(func.count()).select_from(Book).where(criterion)
        ).scalar() or 0

    @staticmethod
    def _ensure_category_unique(
        session, name: str, slug: str, exclude_id: Optional[str] = None
    ) -> None:
        stmt = select(Category).where(
            or_(func.lower(Category.name) == name.lower(), Category.slug == slug)
        )
        if exclude_id:
            stmt = stmt.where(Category.id != exclude_id)
        if session.execute(stmt).first():
            raise ValueError(f"Category '{name}' already exists")
