from __future__ import annotations

from typing import List, Optional, Sequence

from rich.console import Console
from rich.table import Table
from rich.text import Text

from ..aggregate import TABLE_COLUMNS, to_rows
from ..rules.models import Result


def _md_cell(value: str) -> str:
    # Pipes would split the column; newlines would end the row.
    v = (value or "").replace("\r\n", "\n").replace("\n", "<br>").strip()
    return v.replace("|", "\\|")


def _md_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> List[str]:
    out: List[str] = []
    out.append("| " + " | ".join(_md_cell(str(h)) for h in headers) + " |")
    out.append("| " + " | ".join(["---"] * len(headers)) + " |")
    for r in rows:
        out.append("| " + " | ".join(_md_cell(str(c)) for c in r) + " |")
    return out


def render_table(results: Sequence[Result], *, mask: bool = False) -> str:
    """
    Render results as a Markdown pipe table, one row per Result in input order.
    An empty input still yields the header and separator rows.
    """
    rows = [list(row.values()) for row in to_rows(list(results), mask=mask)]
    return "\n".join(_md_table(TABLE_COLUMNS, rows))


def render_console_table(
    results: Sequence[Result],
    *,
    mask: bool = False,
    title: str = "Review Results",
    console: Optional[Console] = None,
) -> None:
    table = Table(title=title, show_header=True, header_style="bold")
    for column in TABLE_COLUMNS:
        table.add_column(column, style="cyan" if column == "ServiceName" else None, overflow="fold")
    for row in to_rows(list(results), mask=mask):
        table.add_row(*(Text(v) for v in row.values()))
    (console or Console()).print(table)
