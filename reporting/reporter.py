import sys
from typing import IO, Any, Dict, Iterable, List, Optional, Tuple

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from core.error_handling import truncate_string
from core.models import Leaf, Result


def printable_text(text: str) -> str:
    """Make text encodable as UTF-8; lone surrogates become \\udXXX escapes."""
    return text.encode("utf-8", "backslashreplace").decode("utf-8")


def escape_cell(text: str) -> str:
    return escape(printable_text(text))


class Reporter:
    MAX_VALUE_WIDTH = 120

    def __init__(self, include_empty: bool = False):
        self.include_empty = include_empty

    def render_dump(self, items: Iterable[Tuple[str, Leaf]], out: Optional[IO] = None) -> int:
        """Stream one text block per decoded value. Returns the number written."""
        out = out or sys.stdout
        count = 0
        for request, leaf in items:
            out.write(printable_text(f"key: {leaf.path}\nvalue: {leaf.value}\nrequest: {request}\n\n"))
            out.flush()
            count += 1
        return count

    def render_json(self, results: Iterable[Result]) -> List[Dict[str, Any]]:
        """Match results as a list of {method, url, xss} objects."""
        return [r.to_dict() for r in self._visible(results)]

    def render(self, results: Iterable[Result], console: Optional[Console] = None):
        """Print match results as a table."""
        console = console or Console()
        results = self._visible(results)
        if not any(r.leaves for r in results):
            console.print("[yellow]No reflected parameter values detected.[/yellow]")
            console.print("[dim]This does not guarantee absence of vulnerabilities.[/dim]")
            return

        table = Table(title="HARFLECT Reflection Report")
        table.add_column("Request", style="magenta")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="white")

        for result in results:
            for leaf in result.leaves:
                table.add_row(
                    escape_cell(result.request),
                    escape_cell(str(leaf.path)),
                    escape_cell(truncate_string(leaf.value, self.MAX_VALUE_WIDTH)),
                )

        console.print(table)

    def render_dump_table(self, items: Iterable[Tuple[str, Leaf]], console: Optional[Console] = None) -> int:
        """Print every decoded value as a table. Returns the number of rows."""
        console = console or Console()
        table = Table(title="HARFLECT Parameter Values")
        table.add_column("Request", style="magenta")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="white")

        count = 0
        for request, leaf in items:
            table.add_row(escape_cell(request), escape_cell(str(leaf.path)), escape_cell(truncate_string(leaf.value, self.MAX_VALUE_WIDTH)))
            count += 1

        if count:
            console.print(table)
        else:
            console.print("[yellow]No parameter values found.[/yellow]")
        return count

    def _visible(self, results: Iterable[Result]) -> List[Result]:
        if self.include_empty:
            return list(results)
        return [r for r in results if r.leaves]
