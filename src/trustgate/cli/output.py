"""
Rich console rendering for trustgate commands.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, List, Sequence

from rich.console import Console
from rich.table import Table
from rich.theme import Theme


trust_theme = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
    "success": "green",
    "gain": "green",
    "loss": "red",
})

# Colour per trust level label; unknown labels render plain
LEVEL_STYLES = {
    "new": "dim",
    "starter": "dim",
    "growing": "white",
    "established": "cyan",
    "trusted": "blue",
    "leader": "magenta",
    "elite": "bold magenta",
}


def format_change(change: float) -> str:
    """Signed score delta as Rich markup."""
    if change > 0:
        return f"[gain]{change:+.2f}[/gain]"
    if change < 0:
        return f"[loss]{change:+.2f}[/loss]"
    return f"{change:+.2f}"


def format_level(level: str) -> str:
    style = LEVEL_STYLES.get(level)
    return f"[{style}]{level}[/{style}]" if style else level


class ConsoleOutput:
    """Themed console used by every CLI command."""

    def __init__(self, console: Console = None):
        self.console = console or Console(theme=trust_theme)

    def print(self, text: str = "", **kwargs):
        self.console.print(text, **kwargs)

    def print_error(self, text: str):
        self.console.print(f"[error]✗[/error] {text}")

    def print_success(self, text: str):
        self.console.print(f"[success]✓[/success] {text}")

    def print_warning(self, text: str):
        self.console.print(f"[warning]![/warning] {text}")

    def print_info(self, text: str):
        self.console.print(f"[info]•[/info] {text}")

    def print_dim(self, text: str):
        self.console.print(text, style="dim")

    def print_json(self, data: Any):
        """Machine-readable output; datetimes and enums go through str()."""
        self.console.print_json(json.dumps(data, default=str))

    def print_table(self, title: str, columns: Sequence[str], rows: Iterable[List[Any]]):
        table = Table(title=title, title_justify="left")
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*[str(cell) for cell in row])
        self.console.print(table)
