"""Demo data for a fresh library database."""

import logging
import random
from dataclasses import dataclass
from typing import Optional

from .catalog import CatalogManager
from .db.schemas import AuthorCreate, BookCreate, CategoryCreate
from .db.sqlite import Database, get_db
from .users import UserCreate, UserManager

logger = logging.getLogger(__name__)


CATEGORIES = [
    ("Roman", "Œuvres de fiction narrative"),
    ("Science-Fiction", "Littérature d'anticipation"),
    ("Policier", "Romans policiers et thrillers"),
    ("Fantasy", "Littérature fantastique"),
    ("Histoire", "Livres historiques"),
    ("Biographie", "Récits de vie"),
    ("Philosophie", "Ouvrages philosophiques"),
    ("Science", "Vulgarisation scientifique"),
]

AUTHORS = [
    ("Victor", "Hugo", 1802),
    ("Albert", "Camus", 1913),
    ("J.K.", "Rowling", 1965),
    ("Isaac", "Asimov", 1920),
    ("Agatha", "Christie", 1890),
    ("George", "Orwell", 1903),
    ("Stephen", "King", 1947),
    ("J.R.R.", "Tolkien", 1892),
]

# (title, isbn, year, description, category index, author index)
BOOKS = [
    ("Les Misérables", "9782070409228", 1862, "Un des plus grands romans français", 0, 0),
    ("L'Étranger", "9782070360024", 1942, "Roman existentialiste", 0, 1),
    (
        "Harry Potter à l'école des sorciers",
        "9782070584628",
        1997,
        "Le début d'une saga mythique",
        3,
        2,
    ),
    ("Fondation", "9782070360260", 1951, "Saga de science-fiction épique", 1, 3),
    ("Le Crime de l'Orient-Express", "9782253004516", 1934, "Enquête d'Hercule Poirot", 2, 4),
    ("1984", "9782070368228", 1949, "Dystopie totalitaire", 1, 5),
    ("Ça", "9782253151340", 1986, "Terreur à Derry", 3, 6),
    ("Le Seigneur des Anneaux", "9782266154345", 1954, "Épopée fantasy", 3, 7),
]

ADMIN_EMAIL = "admin@bibliotheque.fr"
ADMIN_PASSWORD = "admin123"
USER_PASSWORD = "password"
USER_COUNT = 5


@dataclass
class SeedResult:
    """What a seed run created."""

    categories: int = 0
    authors: int = 0
    users: int = 0
    books: int = 0


def seed_demo_data(
    db: Optional[Database] = None, rng: Optional[random.Random] = None
) -> SeedResult:
    """Fill an empty database with demo categories, authors, users and books.

    Args:
        db: Database instance
        rng: Random source for copy counts (3 to 10 per book)

    Returns:
        SeedResult with the number of records created

    Raises:
        ValueError: If the catalog already holds categories
    """
    db = db or get_db()
    rng = rng or random.Random()
    catalog = CatalogManager(db)
    users = UserManager(db)

    if catalog.list_categories():
        raise ValueError("The database already contains data")

    result = SeedResult()

    categories = []
    for name, description in CATEGORIES:
        categories.append(
            catalog.create_category(CategoryCreate(name=name, description=description))
        )
        result.categories += 1

    authors = []
    for first_name, last_name, birth_year in AUTHORS:
        authors.append(
            catalog.create_author(
                AuthorCreate(first_name=first_name, last_name=last_name, birth_year=birth_year)
            )
        )
        result.authors += 1

    users.create_user(
        UserCreate(
            email=ADMIN_EMAIL,
            password=ADMIN_PASSWORD,
            first_name="Admin",
            last_name="Bibliothèque",
            is_admin=True,
        )
    )
    result.users += 1
    for i in range(1, USER_COUNT + 1):
        users.create_user(
            UserCreate(
                email=f"user{i}@example.com",
                password=USER_PASSWORD,
                first_name=f"User{i}",
                last_name="Test",
            )
        )
        result.users += 1

    for title, isbn, year, description, category_idx, author_idx in BOOKS:
        copies = rng.randint(3, 10)
        catalog.create_book(
            BookCreate(
                title=title,
                isbn=isbn,
                publication_year=year,
                description=description,
                total_copies=copies,
                available_copies=copies,
                author_id=authors[author_idx].id,
                category_id=categories[category_idx].id,
            )
        )
        result.books += 1

    logger.info(
        "Seeded %d categories, %d authors, %d users, %d books",
        result.categories,
        result.authors,
        result.users,
        result.books,
    )
    return result
