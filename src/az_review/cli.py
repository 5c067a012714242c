from __future__ import annotations

import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from time import perf_counter
from typing import Any, Dict, List, Optional

from .config import RunConfig, dump_config, load_run_config
from .inventory.base import InventoryProvider
from .logging import LogConfig, get_logger, setup_logging
from .render.table import render_console_table, render_table
from .report import (
    DirectorySnippetStore,
    compose_report,
    default_snippet_store,
    load_report_template,
    write_report,
)
from .rules.dispatcher import Dispatcher
from .rules.loader import load_catalog
from .scan import ReviewScanner
from .util.errors import ConfigError, ExitCode, ExportError, as_exit_code
from .util.rich_progress import ScanProgress, render_run_summary_table

LOG = get_logger(__name__)

CSV_NAME = "results.csv"
DASHBOARD_NAME = "dashboard.json"
RUN_SUMMARY_NAME = "run_summary.json"


class _StepTimers:
    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}

    def start(self, key: str) -> None:
        self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def _log_event(
    logger: Any,
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[_StepTimers] = None,
    timer_key: Optional[str] = None,
    **extra: Any,
) -> None:
    key = timer_key or step
    duration_ms = None
    if timers is not None:
        if phase == "start":
            timers.start(key)
        elif phase in {"complete", "error", "skipped"}:
            duration_ms = timers.finish(key)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    logger.log(level, message, extra=payload)


def _build_provider(cfg: RunConfig) -> InventoryProvider:
    if cfg.provider == "file":
        from .inventory.file import FileInventoryProvider

        if cfg.inventory is None:
            raise ConfigError("--provider file requires --inventory")
        return FileInventoryProvider(cfg.inventory)
    from .inventory.azure import AzureInventoryProvider

    return AzureInventoryProvider()


def _write_run_summary(outdir: Path, metrics: Dict[str, Any], cfg: RunConfig, outputs: Dict[str, str]) -> Path:
    summary = {"metrics": metrics, "config": dump_config(cfg), "outputs": outputs}
    path = outdir / RUN_SUMMARY_NAME
    try:
        path.write_text(json.dumps(summary, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Failed to write run summary {path}: {e}") from e
    return path


def cmd_scan(cfg: RunConfig, *, provider: Optional[InventoryProvider] = None) -> int:
    timers = _StepTimers()
    subscription_id = cfg.subscription_id or ""
    _log_event(
        LOG,
        logging.INFO,
        "Starting review scan",
        step="scan",
        phase="start",
        timers=timers,
        subscription_id=subscription_id,
        resource_group=cfg.resource_group,
        outdir=str(cfg.outdir),
    )

    # Rules and templates are validated before any discovery call.
    _log_event(LOG, logging.INFO, "Loading rule catalog", step="rules", phase="start", timers=timers)
    catalog = load_catalog(list(cfg.rules) or None)
    _log_event(
        LOG,
        logging.INFO,
        "Rule catalog ready",
        step="rules",
        phase="complete",
        timers=timers,
        workflows=len(catalog),
    )
    template = load_report_template(cfg.template)
    store = DirectorySnippetStore(cfg.snippets_dir) if cfg.snippets_dir else default_snippet_store()

    scanner = ReviewScanner(provider or _build_provider(cfg), Dispatcher(catalog))
    _log_event(LOG, logging.INFO, "Evaluating resources", step="evaluate", phase="start", timers=timers)
    try:
        with ScanProgress(enabled=cfg.summary and sys.stderr.isatty()) as progress:
            results = scanner.scan(subscription_id, cfg.resource_group, progress=progress.advance)
    except Exception as e:
        _log_event(
            LOG,
            logging.ERROR,
            "Evaluation failed",
            step="evaluate",
            phase="error",
            timers=timers,
            error=str(e),
        )
        raise
    metrics = asdict(scanner.stats)
    _log_event(
        LOG,
        logging.INFO,
        "Evaluation complete",
        step="evaluate",
        phase="complete",
        timers=timers,
        results=len(results),
        **metrics,
    )

    _log_event(LOG, logging.INFO, "Writing outputs", step="export", phase="start", timers=timers)
    outputs: Dict[str, str] = {}
    report_text = compose_report(
        template,
        customer=cfg.customer,
        table=render_table(results, mask=cfg.mask),
        results=results,
        store=store,
    )
    outputs["Report"] = str(write_report(cfg.report_path, report_text))
    if cfg.csv:
        from .export.csv import write_csv

        outputs["CSV"] = str(write_csv(results, cfg.outdir / CSV_NAME, mask=cfg.mask))
    if cfg.json:
        from .export.dashboard import write_dashboard_json

        outputs["Dashboard"] = str(write_dashboard_json(results, cfg.outdir / DASHBOARD_NAME, mask=cfg.mask))
    outputs["Run summary"] = str(_write_run_summary(cfg.outdir, metrics, cfg, outputs))
    _log_event(
        LOG,
        logging.INFO,
        "Outputs written",
        step="export",
        phase="complete",
        timers=timers,
        outputs=sorted(outputs.values()),
    )

    if cfg.summary:
        render_console_table(results, mask=cfg.mask)
        render_run_summary_table(
            enabled=True,
            status="OK",
            metrics=metrics,
            subscription_id=subscription_id,
            outputs=outputs,
        )
    _log_event(LOG, logging.INFO, "Review scan finished", step="scan", phase="complete", timers=timers)
    return int(ExitCode.OK)


def cmd_rules(cfg: RunConfig) -> int:
    catalog = load_catalog(list(cfg.rules) or None)
    for workflow in catalog:
        broken = sum(1 for r in workflow.rules if r.compile_errors)
        print(f"{workflow.name},{len(workflow.rules)},{broken},{workflow.source or ''}")
    return int(ExitCode.OK)


def main(argv: Optional[List[str]] = None) -> None:
    try:
        command, cfg = load_run_config(argv=argv)
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))

        if command == "scan":
            code = cmd_scan(cfg)
        elif command == "rules":
            code = cmd_rules(cfg)
        else:
            raise ConfigError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except BrokenPipeError:
        # Common when users pipe to `head` or similar tools.
        sys.exit(0)
    except Exception as e:
        setup_logging(LogConfig())
        LOG.error("Execution failed", extra={"error": str(e), "error_type": type(e).__name__})
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
