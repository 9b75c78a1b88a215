"""Command-line interface for librarydesk.

Built with Typer for commands and Rich for output.
"""

import json
from typing import Optional

import typer
from pydantic import BaseModel
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import get_config
from .db import get_db
from .db.models import Book, User
from .db.schemas import (
    AuthorCreate,
    AuthorResponse,
    BookCreate,
    BookResponse,
    BookSearch,
    CategoryCreate,
    CategoryResponse,
)
from .logging_setup import configure_logging, resolve_level

# Create the main app
app = typer.Typer(
    name="librarydesk",
    help="Manage a lending library: catalog, users and loans.",
    no_args_is_help=True,
)

# Create sub-apps for command groups
authors_app = typer.Typer(help="Manage authors.")
app.add_typer(authors_app, name="authors")

categories_app = typer.Typer(help="Manage categories.")
app.add_typer(categories_app, name="categories")

books_app = typer.Typer(help="Manage the book catalog.")
app.add_typer(books_app, name="books")

users_app = typer.Typer(help="Manage library users.")
app.add_typer(users_app, name="users")

loans_app = typer.Typer(help="Borrow, return and extend loans.")
app.add_typer(loans_app, name="loans")

# Rich console for pretty output
console = Console()


@app.callback()
def _setup() -> None:
    """Manage a lending library: catalog, users and loans."""
    # An unknown level is reported by init-db; until then fall back to WARNING
    configure_logging(resolve_level(get_config().log_level))


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def print_json(items: list[BaseModel]) -> None:
    """Print models as a JSON array, unstyled so the output can be piped."""
    typer.echo(json.dumps([item.model_dump(mode="json") for item in items], indent=2))


def format_book_table(books: list[Book], title: str = "Books") -> Table:
    """Create a rich table for displaying books."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Title", style="cyan", no_wrap=False, max_width=40)
    table.add_column("ISBN", style="green")
    table.add_column("Year", justify="right")
    table.add_column("Available", justify="center")

    for book in books:
        available = f"{book.available_copies}/{book.total_copies}"
        style = "green" if book.available_copies else "red"
        table.add_row(
            book.id[:8],
            book.title,
            book.isbn,
            str(book.publication_year),
            f"[{style}]{available}[/{style}]",
        )

    return table


def _resolve_user(ref: str) -> Optional[User]:
    """Find a user by email or ID."""
    db = get_db()
    if "@" in ref:
        return db.get_user_by_email(ref)
    return db.get_user(ref)


def _resolve_book(ref: str) -> Optional[Book]:
    """Find a book by ISBN or ID."""
    from .catalog import CatalogManager

    catalog = CatalogManager(get_db())
    return catalog.get_book_by_isbn(ref) or catalog.get_book(ref)


# ============================================================================
# Setup Commands
# ============================================================================


@app.command("init-db")
def init_db() -> None:
    """Create the database tables."""
    config = get_config()
    errors = config.validate()
    if errors:
        for error in errors:
            print_error(error)
        raise typer.Exit(1)

    get_db().create_tables()
    print_success(f"Database ready at {config.db_path}")


@app.command()
def seed() -> None:
    """Load demo categories, authors, users and books."""
    from .seed import seed_demo_data

    try:
        result = seed_demo_data(get_db())
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(
        f"Seeded {result.categories} categories, {result.authors} authors, "
        f"{result.users} users and {result.books} books"
    )


@app.command()
def stats() -> None:
    """Show the library dashboard."""
    from .stats import DashboardStats

    dashboard = DashboardStats(get_db()).get_dashboard()

    table = Table(title="Library Overview", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")

    table.add_row("Books", str(dashboard.books.total))
    table.add_row("Available titles", str(dashboard.books.available))
    table.add_row("Copies on loan", str(dashboard.books.borrowed))
    table.add_row("Availability rate", f"{dashboard.books.availability_rate}%")
    table.add_row("Users", str(dashboard.users.total))
    table.add_row("Active users", str(dashboard.users.active))
    table.add_row("Inactive users", str(dashboard.users.inactive))
    table.add_row("Open loans", str(dashboard.loans.active))
    table.add_row("Overdue loans", str(dashboard.loans.overdue))
    table.add_row("Loans this month", str(dashboard.loans.this_month))
    table.add_row("Overdue rate", f"{dashboard.loans.overdue_rate}%")
    console.print(table)

    if any(dashboard.loans_by_month.values()):
        month_table = Table(title="Loans per Month", show_header=True, header_style="bold")
        month_table.add_column("Month")
        month_table.add_column("Loans", justify="right")
        for month, count in dashboard.loans_by_month.items():
            month_table.add_row(month, str(count))
        console.print(month_table)

    if dashboard.top_categories:
        console.print("\n[bold]Top Categories[/bold]")
        for name, count in dashboard.top_categories:
            console.print(f"  {name}: {count} loans")


# ============================================================================
# Author Commands
# ============================================================================


@authors_app.command("add")
def authors_add(
    first_name: str = typer.Argument(..., help="First name"),
    last_name: str = typer.Argument(..., help="Last name"),
    birth_year: Optional[int] = typer.Option(None, "--birth-year", "-y", help="Year of birth"),
    biography: Optional[str] = typer.Option(None, "--bio", help="Short biography"),
) -> None:
    """Add an author."""
    from .catalog import CatalogManager

    try:
        author = CatalogManager(get_db()).create_author(
            AuthorCreate(
                first_name=first_name,
                last_name=last_name,
                birth_year=birth_year,
                biography=biography,
            )
        )
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(f"Added author: {author.full_name}")
    print_info(f"ID: {author.id}")


@authors_app.command("list")
def authors_list(
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Filter by name"),
    as_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List authors."""
    from .catalog import CatalogManager

    authors = CatalogManager(get_db()).list_authors(search)
    if as_json:
        print_json([AuthorResponse.model_validate(a) for a in authors])
        return
    if not authors:
        print_info("No authors found.")
        return

    table = Table(title="Authors", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Name", style="cyan")
    table.add_column("Born", justify="right")

    for author in authors:
        table.add_row(
            author.id[:8], author.full_name, str(author.birth_year) if author.birth_year else "-"
        )

    console.print(table)


# ============================================================================
# Category Commands
# ============================================================================


@categories_app.command("add")
def categories_add(
    name: str = typer.Argument(..., help="Category name"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Description"),
) -> None:
    """Add a category."""
    from .catalog import CatalogManager

    try:
        category = CatalogManager(get_db()).create_category(
            CategoryCreate(name=name, description=description)
        )
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(f"Added category: {category.name} ({category.slug})")
    print_info(f"ID: {category.id}")


@categories_app.command("list")
def categories_list(
    as_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List categories."""
    from .catalog import CatalogManager

    categories = CatalogManager(get_db()).list_categories()
    if as_json:
        print_json([CategoryResponse.model_validate(c) for c in categories])
        return
    if not categories:
        print_info("No categories found.")
        return

    table = Table(title="Categories", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Name", style="cyan")
    table.add_column("Slug", style="green")
    table.add_column("Description", max_width=40)

    for category in categories:
        table.add_row(category.id[:8], category.name, category.slug, category.description or "-")

    console.print(table)


# ============================================================================
# Book Commands
# ============================================================================


@books_app.command("add")
def books_add(
    title: str = typer.Argument(..., help="Book title"),
    isbn: str = typer.Argument(..., help="ISBN-10 or ISBN-13"),
    author_id: str = typer.Option(..., "--author", "-a", help="Author ID"),
    category_id: str = typer.Option(..., "--category", "-c", help="Category ID"),
    year: int = typer.Option(..., "--year", "-y", help="Publication year"),
    copies: int = typer.Option(1, "--copies", "-n", help="Number of copies"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Description"),
) -> None:
    """Add a book to the catalog."""
    from .catalog import CatalogManager

    try:
        book = CatalogManager(get_db()).create_book(
            BookCreate(
                title=title,
                isbn=isbn,
                author_id=author_id,
                category_id=category_id,
                publication_year=year,
                total_copies=copies,
                available_copies=copies,
                description=description,
            )
        )
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(f"Added: {book.title} ({book.total_copies} copies)")
    print_info(f"ID: {book.id}")


@books_app.command("list")
def books_list(
    available: bool = typer.Option(False, "--available", "-a", help="Only available books"),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Category slug"),
    limit: int = typer.Option(50, "--limit", "-l", help="Max results"),
    as_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List books in the catalog."""
    from .catalog import CatalogManager

    catalog = CatalogManager(get_db())

    category_id = None
    if category:
        found = catalog.get_category_by_slug(category)
        if not found:
            print_error(f"Category not found: {category}")
            raise typer.Exit(1)
        category_id = found.id

    books = catalog.search_books(
        BookSearch(category_id=category_id, available_only=available, limit=limit)
    )
    if as_json:
        print_json([BookResponse.model_validate(b) for b in books])
        return
    if not books:
        print_info("No books found.")
        return

    console.print(format_book_table(books))


@books_app.command("search")
def books_search(
    query: str = typer.Argument(..., help="Title, ISBN or author name"),
    available: bool = typer.Option(False, "--available", "-a", help="Only available books"),
    limit: int = typer.Option(20, "--limit", "-l", help="Max results"),
) -> None:
    """Search the catalog."""
    from .catalog import CatalogManager

    books = CatalogManager(get_db()).search_books(
        BookSearch(query=query, available_only=available, limit=limit)
    )
    if not books:
        print_info(f"No books matching '{query}'.")
        return

    console.print(format_book_table(books, title=f"Results for '{query}'"))


@books_app.command("show")
def books_show(
    book_ref: str = typer.Argument(..., help="Book ISBN or ID"),
) -> None:
    """Show book details."""
    from .catalog import CatalogManager

    book = _resolve_book(book_ref)
    if not book:
        print_error(f"Book not found: {book_ref}")
        raise typer.Exit(1)

    catalog = CatalogManager(get_db())
    author = catalog.get_author(book.author_id)
    category = catalog.get_category(book.category_id)

    lines = [
        f"[bold]Author:[/bold] {author.full_name if author else '-'}",
        f"[bold]Category:[/bold] {category.name if category else '-'}",
        f"[bold]ISBN:[/bold] {book.isbn}",
        f"[bold]Published:[/bold] {book.publication_year}",
        f"[bold]Copies:[/bold] {book.available_copies} available of {book.total_copies}",
    ]
    if book.description:
        lines.append(f"\n{book.description}")

    console.print(Panel("\n".join(lines), title=book.title, subtitle=book.id))


@books_app.command("delete")
def books_delete(
    book_ref: str = typer.Argument(..., help="Book ISBN or ID"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
) -> None:
    """Delete a book and its loan history."""
    from .catalog import CatalogManager

    book = _resolve_book(book_ref)
    if not book:
        print_error(f"Book not found: {book_ref}")
        raise typer.Exit(1)

    if not force and not typer.confirm(f"Delete '{book.title}' and all its loans?"):
        return

    CatalogManager(get_db()).delete_book(book.id)
    print_success(f"Deleted: {book.title}")


# ============================================================================
# User Commands
# ============================================================================


@users_app.command("create")
def users_create(
    email: str = typer.Argument(..., help="Email address"),
    first_name: str = typer.Argument(..., help="First name"),
    last_name: str = typer.Argument(..., help="Last name"),
    password: str = typer.Option(
        ..., "--password", "-p", prompt=True, hide_input=True, help="Password"
    ),
    max_loans: Optional[int] = typer.Option(None, "--max-loans", help="Loan cap"),
    admin: bool = typer.Option(False, "--admin", help="Grant the admin role"),
) -> None:
    """Register a user."""
    from .users import UserCreate, UserManager

    try:
        user = UserManager(get_db()).create_user(
            UserCreate(
                email=email,
                password=password,
                first_name=first_name,
                last_name=last_name,
                max_loans=max_loans,
                is_admin=admin,
            )
        )
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(f"Created user: {user.email}")
    print_info(f"ID: {user.id}")


@users_app.command("list")
def users_list(
    active_only: bool = typer.Option(False, "--active", "-a", help="Only active users"),
    as_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List users."""
    from .users import UserManager, UserResponse

    manager = UserManager(get_db())
    users = manager.list_users(active_only=active_only)
    if as_json:
        print_json([UserResponse.model_validate(u) for u in users])
        return
    if not users:
        print_info("No users found.")
        return

    table = Table(title="Users", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Email", style="cyan")
    table.add_column("Name")
    table.add_column("Loans", justify="center")
    table.add_column("Status")

    for user in users:
        status = "[green]active[/green]" if user.is_active else "[red]inactive[/red]"
        if user.is_admin:
            status += " [magenta]admin[/magenta]"
        table.add_row(
            user.id[:8],
            user.email,
            user.full_name,
            f"{manager.count_open_loans(user.id)}/{user.max_loans}",
            status,
        )

    console.print(table)


def _set_active(user_ref: str, active: bool) -> None:
    from .users import UserManager

    user = _resolve_user(user_ref)
    if not user:
        print_error(f"User not found: {user_ref}")
        raise typer.Exit(1)

    UserManager(get_db()).set_active(user.id, active)
    print_success(f"{'Activated' if active else 'Deactivated'}: {user.email}")


@users_app.command("deactivate")
def users_deactivate(
    user_ref: str = typer.Argument(..., help="User email or ID"),
) -> None:
    """Deactivate a user. Open loans are kept."""
    _set_active(user_ref, False)


@users_app.command("activate")
def users_activate(
    user_ref: str = typer.Argument(..., help="User email or ID"),
) -> None:
    """Reactivate a user."""
    _set_active(user_ref, True)


# ============================================================================
# Loan Commands
# ============================================================================


def _print_loan_table(summaries: list, title: str) -> None:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Book", style="cyan", max_width=35)
    table.add_column("Borrower", style="green")
    table.add_column("Borrowed")
    table.add_column("Due")
    table.add_column("Status")

    colors = {"active": "green", "overdue": "red", "returned": "dim"}
    for s in summaries:
        color = colors[s.status.value]
        status = s.status.value
        if s.days_overdue:
            status += f" ({s.days_overdue}d)"
        table.add_row(
            s.id[:8],
            s.book_title,
            s.user_email,
            s.borrowed_at.strftime("%Y-%m-%d"),
            s.due_date.strftime("%Y-%m-%d"),
            f"[{color}]{status}[/{color}]",
        )

    console.print(table)


@loans_app.command("borrow")
def loans_borrow(
    user_ref: str = typer.Argument(..., help="Borrower email or ID"),
    book_ref: str = typer.Argument(..., help="Book ISBN or ID"),
) -> None:
    """Lend a book to a user."""
    from .lending import LoanError, LoanService

    user = _resolve_user(user_ref)
    if not user:
        print_error(f"User not found: {user_ref}")
        raise typer.Exit(1)
    book = _resolve_book(book_ref)
    if not book:
        print_error(f"Book not found: {book_ref}")
        raise typer.Exit(1)

    try:
        loan = LoanService(get_db()).borrow(user.id, book.id)
    except LoanError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(f"'{book.title}' lent to {user.email}")
    console.print(f"[dim]Due: {loan.due_date_dt:%Y-%m-%d} | Loan ID: {loan.id}[/dim]")


@loans_app.command("return")
def loans_return(
    loan_id: str = typer.Argument(..., help="Loan ID"),
) -> None:
    """Record a returned book."""
    from .lending import LoanError, LoanService

    try:
        LoanService(get_db()).return_book(loan_id)
    except LoanError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success("Book returned")


@loans_app.command("extend")
def loans_extend(
    loan_id: str = typer.Argument(..., help="Loan ID"),
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Days to add"),
) -> None:
    """Extend an open loan that is not overdue."""
    from .lending import LoanError, LoanService

    try:
        loan = LoanService(get_db()).extend_loan(loan_id, days)
    except (LoanError, ValueError) as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(f"Loan extended. New due date: {loan.due_date_dt:%Y-%m-%d}")


@loans_app.command("list")
def loans_list(
    user_ref: Optional[str] = typer.Option(None, "--user", "-u", help="Borrower email or ID"),
    status: Optional[str] = typer.Option(
        None, "--status", "-s", help="active, overdue or returned"
    ),
    as_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List loans."""
    from .lending import LoanService, LoanStatus

    status_enum = None
    if status:
        try:
            status_enum = LoanStatus(status.lower())
        except ValueError:
            print_error(f"Invalid status: {status}")
            console.print(f"[dim]Valid: {', '.join(s.value for s in LoanStatus)}[/dim]")
            raise typer.Exit(1)

    user_id = None
    if user_ref:
        user = _resolve_user(user_ref)
        if not user:
            print_error(f"User not found: {user_ref}")
            raise typer.Exit(1)
        user_id = user.id

    summaries = LoanService(get_db()).get_loan_summaries(user_id=user_id, status=status_enum)
    if as_json:
        print_json(summaries)
        return
    if not summaries:
        print_info("No loans found.")
        return

    _print_loan_table(summaries, "Loans")


@loans_app.command("overdue")
def loans_overdue() -> None:
    """Show overdue loans."""
    from .lending import LoanService, LoanStatus

    summaries = LoanService(get_db()).get_loan_summaries(status=LoanStatus.OVERDUE)
    if not summaries:
        print_success("No overdue loans.")
        return

    _print_loan_table(summaries, f"Overdue Loans ({len(summaries)})")


@loans_app.command("process-overdue")
def loans_process_overdue() -> None:
    """Send reminders for every overdue loan.

    Exits with status 1 if any reminder could not be delivered.
    """
    from .lending import OverdueProcessor
    from .notifications import NotificationService

    report = OverdueProcessor(
        get_db(), NotificationService.from_config(get_config())
    ).run()

    console.print(
        f"Processed {report.attempted} overdue loans: "
        f"{report.delivered} reminded, {report.failed} failed"
    )
    if not report.ok:
        for loan_id in report.failed_loan_ids:
            print_warning(f"Reminder failed for loan {loan_id}")
        raise typer.Exit(1)


@loans_app.command("remind-due-soon")
def loans_remind_due_soon(
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Look-ahead in days"),
) -> None:
    """Remind borrowers whose loans fall due soon."""
    from .lending import OverdueProcessor
    from .notifications import NotificationService

    config = get_config()
    report = OverdueProcessor(get_db(), NotificationService.from_config(config)).remind_due_soon(
        days if days is not None else config.due_soon_days
    )

    console.print(
        f"Processed {report.attempted} loans due soon: "
        f"{report.delivered} reminded, {report.failed} failed"
    )
    if not report.ok:
        for loan_id in report.failed_loan_ids:
            print_warning(f"Reminder failed for loan {loan_id}")
        raise typer.Exit(1)


# ============================================================================
# Version Command
# ============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"librarydesk version {__version__}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
