"""Command-line interface for BiblioTech.

Built with Typer for commands and Rich for beautiful output.
"""

import logging
from datetime import date
from pathlib import Path
from typing import NoReturn, Optional

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config import get_config
from .db.schemas import Book, BookCreate, BookUpdate, LoanRequest, LoanStatus
from .errors import BiblioTechError, ValidationError
from .storage import get_storage
from .utils import parse_local_date

# Create the main app
app = typer.Typer(
    name="bibliotech",
    help="School library loan tracking.",
    no_args_is_help=True,
)

# Create sub-apps for command groups
books_app = typer.Typer(help="Manage the book catalog.")
app.add_typer(books_app, name="books")

users_app = typer.Typer(help="Register and look up students and admins.")
app.add_typer(users_app, name="users")

loans_app = typer.Typer(help="Request, approve, return and track loans.")
app.add_typer(loans_app, name="loans")

# Rich console for pretty output
console = Console()


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at INFO level"),
) -> None:
    """School library loan tracking."""
    level = logging.INFO if verbose else getattr(logging, get_config().log_level, logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


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


def fail(error: Exception) -> NoReturn:
    """Report an error and exit with status 1."""
    print_error(str(error))
    raise typer.Exit(1)


def parse_today(value: Optional[str]) -> Optional[date]:
    """Parse the --today override."""
    if value is None:
        return None
    try:
        return parse_local_date(value)
    except ValidationError as e:
        fail(e)


def get_engine():
    """Create a loan engine on the global storage."""
    from .lending import LoanEngine

    return LoanEngine(get_storage())


def format_book_table(books: list[Book], title: str = "Books") -> Table:
    """Create a rich table for displaying books."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Title", style="cyan", no_wrap=False, max_width=40)
    table.add_column("Author", style="green", max_width=25)
    table.add_column("Status")

    for book in books:
        status = "[green]Available[/green]" if book.available else "[red]On loan[/red]"
        table.add_row(book.id[:8], book.title, book.author, status)

    return table


def format_status(loan: LoanRequest, today: Optional[date] = None) -> str:
    """Colored status text including the derived due state."""
    from .lending import compute_display_status, due_label

    if loan.status == LoanStatus.PENDING:
        return "[yellow]PENDING[/yellow]"
    if loan.status == LoanStatus.RETURNED:
        return "[dim]RETURNED[/dim]"

    info = compute_display_status(loan, today)
    if info.is_overdue:
        return f"[bold red]{loan.status.value} ({due_label(loan, today)})[/bold red]"
    if info.is_due_soon:
        return f"[yellow]ACTIVE ({due_label(loan, today)})[/yellow]"
    return f"[green]ACTIVE ({due_label(loan, today)})[/green]"


def format_loan_table(
    loans: list[LoanRequest], title: str = "Loans", today: Optional[date] = None
) -> Table:
    """Create a rich table for displaying loans."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Book", style="cyan", max_width=30)
    table.add_column("Student")
    table.add_column("Matricula")
    table.add_column("Pickup")
    table.add_column("Return")
    table.add_column("Status")

    for loan in loans:
        table.add_row(
            loan.id[:8],
            loan.book_title,
            loan.student_name,
            loan.student_matricula,
            loan.pickup_date.isoformat(),
            loan.return_date.isoformat(),
            format_status(loan, today),
        )

    return table


# ============================================================================
# Setup Commands
# ============================================================================


@app.command()
def init(
    seed: bool = typer.Option(True, "--seed/--no-seed", help="Add sample books to an empty catalog"),
) -> None:
    """Open the configured storage and prepare the catalog."""
    from .catalog import CatalogManager

    config = get_config()
    problems = config.validate()
    for problem in problems:
        print_warning(problem)

    try:
        storage = get_storage()
        seeded = CatalogManager(storage).seed_defaults() if seed else []
    except BiblioTechError as e:
        fail(e)

    location = config.local_path if storage.name == "local" else config.db_path
    print_success(f"Using {storage.name} storage at {location}")
    if seeded:
        console.print(f"[dim]Seeded {len(seeded)} sample books[/dim]")


# ============================================================================
# Book Commands
# ============================================================================


@books_app.command("add")
def books_add(
    title: str = typer.Option(..., "--title", "-t", help="Book title"),
    author: str = typer.Option(..., "--author", "-a", help="Book author"),
    description: str = typer.Option("", "--description", "-d", help="Short description"),
    cover: str = typer.Option("", "--cover", "-c", help="Cover image URL or data URI"),
) -> None:
    """Add a book to the catalog."""
    from .catalog import CatalogManager

    try:
        data = BookCreate(title=title, author=author, description=description, cover_url=cover)
    except PydanticValidationError as e:
        fail(ValidationError.from_pydantic(e))

    try:
        book = CatalogManager(get_storage()).add_book(data)
    except BiblioTechError as e:
        fail(e)

    print_success(f"Added: {book.title} by {book.author}")
    console.print(f"[dim]ID: {book.id}[/dim]")


@books_app.command("edit")
def books_edit(
    book_id: str = typer.Argument(..., help="Book ID"),
    title: Optional[str] = typer.Option(None, "--title", "-t", help="New title"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="New author"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="New description"),
    cover: Optional[str] = typer.Option(None, "--cover", "-c", help="New cover URL"),
) -> None:
    """Edit a book. Availability is not changed."""
    from .catalog import CatalogManager

    try:
        data = BookUpdate(title=title, author=author, description=description, cover_url=cover)
    except PydanticValidationError as e:
        fail(ValidationError.from_pydantic(e))

    try:
        book = CatalogManager(get_storage()).edit_book(book_id, data)
    except BiblioTechError as e:
        fail(e)

    print_success(f"Updated: {book.title}")


@books_app.command("list")
def books_list(
    available: bool = typer.Option(False, "--available", help="Only available books"),
    unavailable: bool = typer.Option(False, "--unavailable", help="Only books on loan"),
) -> None:
    """List the catalog."""
    from .catalog import CatalogManager

    availability = "available" if available else "unavailable" if unavailable else "all"
    try:
        books = CatalogManager(get_storage()).list_books(availability)
    except BiblioTechError as e:
        fail(e)

    if not books:
        console.print("[dim]No books found[/dim]")
        return

    console.print(format_book_table(books, title=f"Books ({len(books)})"))


@books_app.command("search")
def books_search(
    term: str = typer.Argument(..., help="Text to find in title or author"),
) -> None:
    """Search books by title or author."""
    from .catalog import CatalogManager

    try:
        books = CatalogManager(get_storage()).search_books(term)
    except BiblioTechError as e:
        fail(e)

    if not books:
        console.print(f"[dim]No books matching '{term}'[/dim]")
        return

    console.print(format_book_table(books, title=f"Results for '{term}'"))


@books_app.command("show")
def books_show(
    book_id: str = typer.Argument(..., help="Book ID"),
) -> None:
    """Show book details."""
    from .catalog import CatalogManager

    try:
        book = CatalogManager(get_storage()).get_book(book_id)
    except BiblioTechError as e:
        fail(e)

    status = "[green]AVAILABLE[/green]" if book.available else "[red]ON LOAN[/red]"
    console.print(Panel(
        f"[bold]{book.title}[/bold]\n"
        f"[green]{book.author}[/green]\n\n"
        f"{book.description or '[dim]No description[/dim]'}\n\n"
        f"Status: {status}",
        title=book.id,
    ))


@books_app.command("release")
def books_release(
    book_id: str = typer.Argument(..., help="Book ID"),
) -> None:
    """Put a book back on the shelf (manual restock)."""
    try:
        book = get_engine().release_book(book_id)
    except BiblioTechError as e:
        fail(e)

    print_success(f"'{book.title}' is available")


# ============================================================================
# User Commands
# ============================================================================


@users_app.command("register-student")
def users_register_student(
    name: str = typer.Argument(..., help="Student name"),
    matricula: str = typer.Argument(..., help="8-digit matricula"),
) -> None:
    """Register a student."""
    from .accounts import AccountManager

    try:
        user = AccountManager(get_storage()).register_student(name, matricula)
    except BiblioTechError as e:
        fail(e)

    print_success(f"Registered student {user.name} ({user.matricula})")


@users_app.command("register-admin")
def users_register_admin(
    name: str = typer.Argument(..., help="Admin name"),
    key: str = typer.Option(..., "--key", "-k", prompt=True, hide_input=True, help="Admin secret key"),
) -> None:
    """Register an admin (requires the admin secret key)."""
    from .accounts import AccountManager

    try:
        user = AccountManager(get_storage()).register_admin(name, key)
    except BiblioTechError as e:
        fail(e)

    print_success(f"Registered admin {user.name}")


@users_app.command("login")
def users_login(
    identifier: str = typer.Argument(..., help="Matricula (students) or name (admins)"),
) -> None:
    """Look up a user."""
    from .accounts import AccountManager

    try:
        user = AccountManager(get_storage()).login(identifier)
    except BiblioTechError as e:
        fail(e)

    console.print(f"[bold]{user.name}[/bold] [dim]{user.role.value}[/dim]")
    if user.matricula:
        console.print(f"Matricula: {user.matricula}")
    console.print(f"[dim]ID: {user.id}[/dim]")


# ============================================================================
# Loan Commands
# ============================================================================


@loans_app.command("request")
def loans_request(
    book_id: str = typer.Argument(..., help="Book ID"),
    matricula: str = typer.Argument(..., help="Requesting student's matricula"),
    pickup: str = typer.Option(..., "--pickup", "-p", help="Pickup date (YYYY-MM-DD)"),
    due: str = typer.Option(..., "--return", "-r", help="Return date (YYYY-MM-DD)"),
    today: Optional[str] = typer.Option(None, "--today", hidden=True),
) -> None:
    """Request a loan as a student. Prints the pickup payload."""
    from .accounts import AccountManager
    from .lending import encode_loan

    try:
        student = AccountManager(get_storage()).login(matricula)
        loan = get_engine().create_loan_request(
            book_id, student, pickup, due, today=parse_today(today)
        )
    except BiblioTechError as e:
        fail(e)

    print_success(f"Loan requested: {loan.book_title}")
    console.print(Panel(
        Text(encode_loan(loan)),
        title="Pickup code",
        subtitle=f"Pickup {loan.pickup_date} / Return {loan.return_date}",
    ))


@loans_app.command("approve")
def loans_approve(
    loan_id: str = typer.Argument(..., help="Loan ID"),
) -> None:
    """Approve a pending pickup by loan ID."""
    try:
        loan = get_engine().approve_pickup(loan_id)
    except BiblioTechError as e:
        fail(e)

    print_success(f"Loan confirmed for {loan.student_name}")


@loans_app.command("scan")
def loans_scan(
    payload: Optional[str] = typer.Argument(None, help="Scanned pickup payload (JSON)"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Read payload from a file"),
) -> None:
    """Approve a pending pickup from a scanned payload."""
    if file:
        try:
            payload = file.read_text(encoding="utf-8")
        except OSError as e:
            print_error(f"Cannot read {file}: {e.strerror or e}")
            raise typer.Exit(1)
    if not payload:
        print_error("Provide a payload or --file")
        raise typer.Exit(1)

    try:
        loan = get_engine().approve_payload(payload)
    except BiblioTechError as e:
        fail(e)

    print_success(f"Loan confirmed for {loan.student_name}: {loan.book_title}")


@loans_app.command("return")
def loans_return(
    loan_id: str = typer.Argument(..., help="Loan ID"),
) -> None:
    """Mark a loan as returned."""
    try:
        loan = get_engine().mark_returned(loan_id)
    except BiblioTechError as e:
        fail(e)

    print_success(f"'{loan.book_title}' returned by {loan.student_name}")


@loans_app.command("overdue")
def loans_overdue(
    loan_id: str = typer.Argument(..., help="Loan ID"),
) -> None:
    """Mark an active loan as overdue (frees the book)."""
    try:
        loan = get_engine().mark_overdue(loan_id)
    except BiblioTechError as e:
        fail(e)

    print_warning(f"Loan for '{loan.book_title}' marked overdue")


@loans_app.command("list")
def loans_list(
    status: Optional[LoanStatus] = typer.Option(None, "--status", "-s", help="Persisted status"),
    derived: Optional[str] = typer.Option(
        None, "--filter", "-f", help="Derived filter: overdue, due_soon, active, pending"
    ),
    matricula: Optional[str] = typer.Option(None, "--student", help="Only this student's loans"),
    today: Optional[str] = typer.Option(None, "--today", hidden=True),
) -> None:
    """List loans."""
    from .accounts import AccountManager
    from .lending import DerivedFilter, filter_by_derived_status

    day = parse_today(today)
    try:
        student_id = AccountManager(get_storage()).login(matricula).id if matricula else None
        loans = get_engine().list_loans(status=status, student_id=student_id)
    except BiblioTechError as e:
        fail(e)

    if derived:
        try:
            loans = list(filter_by_derived_status(loans, derived, day))
        except ValueError:
            print_error(f"Unknown filter: {derived}")
            console.print(f"[dim]Valid: {', '.join(f.value for f in DerivedFilter)}[/dim]")
            raise typer.Exit(1)

    if not loans:
        console.print("[dim]No loans found[/dim]")
        return

    console.print(format_loan_table(loans, title=f"Loans ({len(loans)})", today=day))


@loans_app.command("due-soon")
def loans_due_soon(
    today: Optional[str] = typer.Option(None, "--today", hidden=True),
) -> None:
    """Show active loans due within the next few days."""
    from .lending import DUE_SOON_DAYS, DerivedFilter, filter_by_derived_status

    day = parse_today(today)
    try:
        loans = list(filter_by_derived_status(get_engine().list_loans(), DerivedFilter.DUE_SOON, day))
    except BiblioTechError as e:
        fail(e)

    if not loans:
        console.print(f"[dim]No loans due in the next {DUE_SOON_DAYS} days[/dim]")
        return

    console.print(format_loan_table(loans, title="Due soon", today=day))


@loans_app.command("sweep")
def loans_sweep(
    today: Optional[str] = typer.Option(None, "--today", hidden=True),
) -> None:
    """Mark every active loan past its return date as overdue."""
    try:
        marked = get_engine().sweep_overdue(parse_today(today))
    except BiblioTechError as e:
        fail(e)

    if not marked:
        print_success("No overdue loans!")
        return

    print_warning(f"Marked {len(marked)} loan(s) overdue")
    for loan in marked:
        console.print(f"  {loan.book_title} - {loan.student_name} (due {loan.return_date})")


@loans_app.command("show")
def loans_show(
    loan_id: str = typer.Argument(..., help="Loan ID"),
    today: Optional[str] = typer.Option(None, "--today", hidden=True),
) -> None:
    """Show a loan report."""
    from .lending import due_label, report_status

    day = parse_today(today)
    try:
        loan = get_engine().get_loan(loan_id)
    except BiblioTechError as e:
        fail(e)

    lines = [
        f"[bold]{loan.book_title}[/bold]",
        f"Student: {loan.student_name} ({loan.student_matricula})",
        f"Pickup: {loan.pickup_date}",
        f"Return: {loan.return_date}",
        f"Status: {loan.status.value}",
    ]
    if loan.status in (LoanStatus.ACTIVE, LoanStatus.OVERDUE):
        badge = report_status(loan, day)
        color = "red" if badge == "OVERDUE" else "green"
        lines.append(f"[bold {color}]{badge}[/bold {color}] {due_label(loan, day)}")

    console.print(Panel("\n".join(lines), title=f"Loan {loan.id}"))


@loans_app.command("payload")
def loans_payload(
    loan_id: str = typer.Argument(..., help="Loan ID"),
) -> None:
    """Print a loan's transfer payload (the QR code content)."""
    from .lending import encode_loan

    try:
        loan = get_engine().get_loan(loan_id)
    except BiblioTechError as e:
        fail(e)

    console.print(encode_loan(loan), soft_wrap=True, markup=False, highlight=False)


@loans_app.command("stats")
def loans_stats(
    today: Optional[str] = typer.Option(None, "--today", hidden=True),
) -> None:
    """Show lending statistics."""
    try:
        stats = get_engine().get_stats(parse_today(today))
    except BiblioTechError as e:
        fail(e)

    table = Table(title=f"Lending stats ({stats.as_of})", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Total loans", str(stats.total_loans))
    table.add_row("Pending pickup", str(stats.pending))
    table.add_row("Active", str(stats.active))
    table.add_row("Marked overdue", str(stats.overdue))
    table.add_row("Returned", str(stats.returned))
    table.add_row("[red]Overdue now[/red]", str(stats.overdue_now))
    table.add_row("[yellow]Due soon[/yellow]", str(stats.due_soon))
    table.add_row("Books available", str(stats.books_available))
    table.add_row("Books on loan", str(stats.books_unavailable))
    console.print(table)


# ============================================================================
# Version Command
# ============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"bibliotech version {__version__}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
