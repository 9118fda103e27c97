"""Output formatting for the command line."""

import json
import sys
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

from .utils import format_size as _format_size


class OutputFormatter:
    """Formats user-facing messages, tables and JSON output.

    Messages go to stdout except errors, which go to stderr. In quiet mode
    only errors are shown. In JSON mode plain messages are suppressed so
    that stdout stays machine readable.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        """Initialize output formatter.

        Args:
            json_output: Emit JSON instead of human readable text
            quiet: Suppress non-essential output
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console(highlight=False)
        self.error_console = Console(stderr=True, highlight=False)

    def _show(self) -> bool:
        return not self.quiet and not self.json_output

    def print(self, message: str = "") -> None:
        """Print a plain message."""
        if self._show():
            self.console.print(message)

    def info(self, message: str) -> None:
        """Print an informational message."""
        if self._show():
            self.console.print(message)

    def success(self, message: str) -> None:
        """Print a success message."""
        if self._show():
            self.console.print(f"[green]{message}[/green]")

    def warning(self, message: str) -> None:
        """Print a warning message."""
        if self._show():
            self.console.print(f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        """Print an error message to stderr (shown even when quiet)."""
        if self.json_output:
            sys.stderr.write(json.dumps({"error": message}) + "\n")
        else:
            self.error_console.print(f"[red]Error:[/red] {message}")

    def output_json(self, data: Any) -> None:
        """Write data as indented JSON to stdout."""
        sys.stdout.write(json.dumps(data, indent=2, default=str) + "\n")

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a titled list of key/value pairs."""
        if not self._show():
            return
        table = Table(title=title, show_header=False, box=None)
        table.add_column("Key", style="bold")
        table.add_column("Value")
        for key, value in items:
            table.add_row(key, str(value))
        self.console.print(table)

    def output_table(
        self,
        rows: list[dict[str, Any]],
        columns: list[str],
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        """Print rows as a table (or JSON in JSON mode)."""
        if self.json_output:
            self.output_json(rows)
            return
        if self.quiet:
            return
        headers = headers or {}
        table = Table()
        for column in columns:
            table.add_column(headers.get(column, column))
        for row in rows:
            table.add_row(*(str(row.get(column, "")) for column in columns))
        self.console.print(table)

    @staticmethod
    def format_size(size_bytes: int) -> str:
        return _format_size(size_bytes)
