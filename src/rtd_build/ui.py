"""Rich terminal UI helpers for rtd-build."""

from typing import Sequence

from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from rtd_build.builder import BuildOutcome
from rtd_build.config import ProjectTarget

console = Console()


def create_table(
    title: str = "",
    show_header: bool = True,
    header_style: str = "bold magenta",
) -> Table:
    """Create a Rich table with the project's styling."""
    return Table(
        title=title,
        show_header=show_header,
        header_style=header_style,
        border_style="green",
    )


def success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def error(message: str) -> None:
    console.print(f"[red]✗[/red] {message}")


def warning(message: str) -> None:
    console.print(f"[yellow]⚠[/yellow] {message}")


def info(message: str) -> None:
    console.print(f"[blue]ℹ[/blue] {message}")


def print_markdown(text: str) -> None:
    """Render a markdown report, or print it raw when not on a terminal."""
    if console.is_terminal:
        console.print(Markdown(text))
    else:
        console.print(text, markup=False, highlight=False, soft_wrap=True)


def print_build_order(projects: Sequence[ProjectTarget]) -> None:
    """Print the resolved build order."""
    table = create_table(title="Build Order")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Project", style="cyan")
    table.add_column("Depends on")
    table.add_column("Path", style="dim")

    for i, project in enumerate(projects, 1):
        table.add_row(
            str(i),
            project.display_name,
            ", ".join(project.dependencies) or "-",
            str(project.path),
        )

    console.print(table)


def print_build_summary(outcomes: Sequence[BuildOutcome]) -> None:
    """Print a per-project status table."""
    table = create_table()
    table.add_column("Project", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Attempt", justify="right", style="dim")
    table.add_column("Duration", justify="right", style="dim")

    for outcome in outcomes:
        status = "[green]✓ PASS[/green]" if outcome.success else "[red]✗ FAIL[/red]"
        table.add_row(outcome.name, status, str(outcome.attempt), f"{outcome.duration_seconds:.1f}s")

    console.print(table)
