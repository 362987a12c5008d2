"""Utility functions for formatted CLI output."""

from typing import Any

import click


def print_header(title: str, width: int = 70, color: str = "cyan") -> None:
    """Print a formatted header.

    Args:
        title: Header title
        width: Header width
        color: Header color
    """
    click.echo()
    click.echo(click.style("=" * width, fg=color))
    click.echo(click.style(title, fg=color, bold=True))
    click.echo(click.style("=" * width, fg=color))
    click.echo()


def print_key_value(
    key: str, value: Any, key_color: str = "white", value_color: str = "cyan"
) -> None:
    """Print a key-value pair.

    Args:
        key: Key name
        value: Value
        key_color: Key color
        value_color: Value color
    """
    click.echo(
        click.style(f"  {key}: ", fg=key_color) + click.style(str(value), fg=value_color, bold=True)
    )


def print_step(message: str) -> None:
    """Print a progress line for the current stage."""
    click.echo(click.style(message, fg="white"))


def print_success(message: str) -> None:
    """Print a success message."""
    click.echo(click.style(f"✓ {message}", fg="green", bold=True))


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    click.echo(click.style(f"✗ {message}", fg="red", bold=True), err=True)


def print_warning(message: str) -> None:
    """Print a warning message."""
    click.echo(click.style(f"⚠ {message}", fg="yellow", bold=True))


def print_info(message: str) -> None:
    """Print an info message."""
    click.echo(click.style(f"ℹ {message}", fg="blue"))


def print_table(headers: list[str], rows: list[list[Any]], header_color: str = "cyan") -> None:
    """Print a formatted table.

    Args:
        headers: Table headers
        rows: Table rows
        header_color: Header color
    """
    if not rows:
        return

    col_widths = [len(str(h)) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            col_widths[i] = max(col_widths[i], len(str(cell)))

    header_row = " | ".join(str(h).ljust(col_widths[i]) for i, h in enumerate(headers))
    click.echo(click.style(header_row, fg=header_color, bold=True))
    click.echo(click.style("-" * len(header_row), dim=True))

    for row in rows:
        click.echo(" | ".join(str(cell).ljust(col_widths[i]) for i, cell in enumerate(row)))


def format_size(size: int) -> str:
    """Render a byte count the way humans read it (``1.5 MB``)."""
    if size < 1024:
        return f"{size} B"
    value = float(size)
    for unit in ("KB", "MB", "GB"):
        value /= 1024
        if value < 1024:
            return f"{value:.1f} {unit}"
    return f"{value / 1024:.1f} TB"


def print_summary(stats: dict[str, Any], title: str = "Summary") -> None:
    """Print the statistics of a cleanup run.

    Args:
        stats: Statistics dictionary returned by the cleanup runner
        title: Summary title
    """
    print_header(title)
    print_key_value("Matched", stats.get("matched", 0))
    print_key_value("Kept", stats.get("kept", 0))
    if stats.get("dry_run"):
        print_key_value("Would delete", stats.get("planned", 0))
    else:
        print_key_value("Deleted", stats.get("deleted", 0))
        print_key_value("Failed", stats.get("failed", 0))
    click.echo()
