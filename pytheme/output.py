"""Console output helpers for the CLI and the sync engine."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Formats user-facing messages with rich.

    Errors always go to stderr, even in quiet mode. Everything else is
    suppressed when ``quiet`` is set.
    """

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    def print(self, message: str = "", style: Optional[str] = None) -> None:
        if self.quiet or self.json_output:
            return
        self.console.print(message, style=style, markup=False)

    def info(self, message: str) -> None:
        self.print(message)

    def success(self, message: str) -> None:
        self.print(message, style="green")

    def warning(self, message: str) -> None:
        self.print(message, style="yellow")

    def removed(self, message: str) -> None:
        self.print(message, style="red")

    def error(self, message: str) -> None:
        self.err_console.print(message, style="red", markup=False)

    def output_json(self, data: Any) -> None:
        """Print data as JSON (only in JSON mode)."""
        if not self.json_output:
            return
        self.console.print_json(json.dumps(data, default=str))

    def print_summary(self, title: str, rows: list[tuple[str, str]]) -> None:
        """Print a two column summary table.

        Args:
            title: Table title
            rows: (label, value) pairs
        """
        if self.quiet or self.json_output:
            return
        table = Table(title=title, show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        for label, value in rows:
            table.add_row(label, value)
        self.console.print(table)
