"""Utility functions for librarydesk."""

import re
import unicodedata
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Return an aware UTC datetime. Naive values are taken to be UTC.

    Example:
        >>> as_utc(datetime(2025, 1, 2, 3, 4)).tzinfo
        datetime.timezone.utc
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    """
    Serialize a datetime for storage.

    Naive datetimes are taken to be UTC. The output always carries
    microseconds so that stored values sort chronologically as strings.

    Example:
        >>> to_iso(datetime(2025, 1, 2, 3, 4, 5))
        '2025-01-02T03:04:05.000000+00:00'
    """
    return as_utc(value).isoformat(timespec="microseconds")


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a stored timestamp back into an aware UTC datetime.

    Example:
        >>> parse_iso("2025-01-02T03:04:05.000000+00:00").day
        2
        >>> parse_iso(None) is None
        True
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def slugify(text: str) -> str:
    """
    Build a URL slug from a display name.

    Accents are stripped, everything is lowercased and runs of other
    characters collapse into single hyphens.

    Example:
        >>> slugify("Science-Fiction")
        'science-fiction'
        >>> slugify("  Romans & Récits ")
        'romans-recits'
    """
    normalized = unicodedata.normalize("NFKD", text)
    ascii_text = normalized.encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_text.lower())
    return slug.strip("-")


def normalize_isbn(isbn: str) -> str:
    """
    Remove hyphens and spaces from an ISBN and uppercase a trailing X.

    Example:
        >>> normalize_isbn("978-0-306-40615-7")
        '9780306406157'
        >>> normalize_isbn("0-8044-2957-x")
        '080442957X'
    """
    return re.sub(r"[\s-]", "", isbn).upper()


def is_valid_isbn(isbn: str) -> bool:
    """
    Check an ISBN-10 or ISBN-13 checksum.

    Example:
        >>> is_valid_isbn("9780306406157")
        True
        >>> is_valid_isbn("080442957X")
        True
        >>> is_valid_isbn("9780306406158")
        False
    """
    isbn = normalize_isbn(isbn)

    if len(isbn) == 10:
        if not isbn[:9].isdigit() or not (isbn[9].isdigit() or isbn[9] == "X"):
            return False
        total = 0
        for position, char in enumerate(isbn):
            digit = 10 if char == "X" else int(char)
            total += (10 - position) * digit
        return total % 11 == 0

    if len(isbn) == 13:
        if not isbn.isdigit():
            return False
        total = sum(
            int(char) * (1 if position % 2 == 0 else 3)
            for position, char in enumerate(isbn)
        )
        return total % 10 == 0

    return False
