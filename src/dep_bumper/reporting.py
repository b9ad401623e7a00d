"""
Console output for collected updates and commit sequences.

Uses Rich for color-coded output.
"""

import os
from typing import List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from .commit_sequence import CommitSequence
from .update import Update, group_by_name


def _relative(location: str) -> str:
    try:
        return os.path.relpath(location)
    except ValueError:
        return location


def _distinct(values) -> List:
    return list(dict.fromkeys(values))


class UpdateReporter:
    """Formats and displays update results."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def print_updates(self, updates: Sequence[Update]) -> None:
        """
        Print updates grouped by package, with the files that reference each.

        Args:
            updates: Collected updates
        """
        if not updates:
            self.console.print("🍵 No updates found", style="green")
            return

        self.console.print(f"💡 Found {'updates' if len(updates) > 1 else 'an update'}:")
        for name, group in group_by_name(updates).items():
            self.console.print()
            froms = ", ".join(str(v) for v in _distinct(u.version.from_ for u in group))
            self.console.print(
                f"📦 [bold]{name}[/bold] [yellow]{froms}[/yellow] => "
                f"[yellow]{group[0].version.to}[/yellow]"
            )
            for line in _distinct(
                f"  {_relative(u.target)} [dim]{u.version.from_ or ''}[/dim]" for u in group
            ):
                self.console.print(line)

    def print_written(self, location: str) -> None:
        self.console.print(f"💾 {_relative(location)}")

    def print_sequence(self, sequence: CommitSequence) -> None:
        """Print a table of the commits in a sequence and their state."""
        table = Table(title="📝 Commits", box=box.ROUNDED, title_style="bold cyan")
        table.add_column("#", justify="right")
        table.add_column("Message")
        table.add_column("Files", justify="center")
        table.add_column("State")

        for commit in sequence.commits:
            table.add_row(
                str(commit.position + 1),
                commit.message,
                str(len(commit.locations)),
                sequence.state_of(commit).value,
            )
        self.console.print(table)


def write_summary(updates: Sequence[Update]) -> str:
    """Summary text for changes written without committing."""
    return "Update dependencies" if updates else "No updates"


def write_report(updates: Sequence[Update]) -> str:
    """Markdown list of version changes written without committing."""
    return "\n".join(
        _distinct(f"- {u.name} {u.version.from_} => {u.version.to}" for u in updates)
    )
