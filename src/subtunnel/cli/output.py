"""Console output helpers for the CLI."""

from rich.console import Console
from rich.markup import escape

# soft_wrap keeps URLs and error messages on one line
console = Console(soft_wrap=True)


def print_success(message: str) -> None:
    console.print(f"[bold green]Success:[/bold green] {escape(message)}")


def print_error(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")


def print_warning(message: str) -> None:
    console.print(f"[bold yellow]Warning:[/bold yellow] {escape(message)}")


def print_plain(message: str) -> None:
    """Print text verbatim, without markup or highlighting."""
    console.print(message, markup=False, highlight=False)
