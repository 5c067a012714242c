from __future__ import annotations

from typing import Any, Dict, Optional

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table


class ScanProgress:
    def __init__(self, *, enabled: bool, console: Optional[Console] = None) -> None:
        self._enabled = bool(enabled)
        self._console = console or Console(stderr=True)
        self._progress: Optional[Progress] = None
        self._task: Optional[int] = None
        self._resources = 0
        self._started = False
        if self._enabled:
            self._progress = Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                TextColumn("{task.fields[group]}", justify="left"),
                TimeElapsedColumn(),
                console=self._console,
                transient=True,
            )

    def __enter__(self) -> ScanProgress:
        if self._progress and not self._started:
            self._progress.start()
            self._task = self._progress.add_task("Scanning", total=None, group="")
            self._started = True
        return self

    def __exit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        if self._progress and self._started:
            self._progress.stop()
            self._started = False

    def advance(self, resource_group: str, resources: int) -> None:
        """Progress callback for ReviewScanner.scan: one call per scanned resource group."""
        self._resources += resources
        if not self._progress or self._task is None:
            return
        self._progress.update(
            self._task,
            advance=1,
            group=f"{resource_group} ({self._resources} resources)",
        )


def render_run_summary_table(
    *,
    enabled: bool,
    status: str,
    metrics: Dict[str, Any],
    subscription_id: str,
    outputs: Dict[str, str],
    console: Optional[Console] = None,
) -> None:
    if not enabled:
        return
    table = Table(title="Run Summary", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Status", status)
    table.add_row("Subscription", subscription_id)
    table.add_row("Resource groups", str(metrics.get("resource_groups", 0)))
    table.add_row("Resources discovered", str(metrics.get("resources_discovered", 0)))
    table.add_row("Resources evaluated", str(metrics.get("resources_evaluated", 0)))
    table.add_row("Without workflow", str(metrics.get("resources_skipped", 0)))
    table.add_row("Rule misses", str(metrics.get("rule_misses", 0)))
    for name, path in outputs.items():
        table.add_row(name, path)
    (console or Console()).print(table)
