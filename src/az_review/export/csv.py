from __future__ import annotations

import csv
from pathlib import Path
from typing import Sequence

from ..aggregate import TABLE_COLUMNS, to_rows
from ..rules.models import Result
from ..util.errors import ExportError


def write_csv(results: Sequence[Result], path: Path, *, mask: bool = False) -> Path:
    """
    Write the results table as CSV. Row order is the input order; missed or
    absent rules are empty cells.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=list(TABLE_COLUMNS))
            writer.writeheader()
            for row in to_rows(list(results), mask=mask):
                writer.writerow(row)
    except OSError as e:
        raise ExportError(f"Failed to write CSV {path}: {e}") from e
    return path
