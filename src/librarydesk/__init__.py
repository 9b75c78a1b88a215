"""librarydesk - library loan management.

Catalog (books, authors, categories), patrons, loans with a borrow cap,
overdue reminders and an admin dashboard.
"""

__version__ = "0.1.0"
