from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .util.errors import ConfigError
from .util.time import utc_now_iso

# --------
# Defaults
# --------
DEFAULT_CUSTOMER = "Contoso"
DEFAULT_REPORT_NAME = "Report.md"
PROVIDERS = {"azure", "file"}
ALLOWED_CONFIG_KEYS = {
    "subscription_id",
    "resource_group",
    "customer",
    "outdir",
    "report_name",
    "rules",
    "template",
    "snippets_dir",
    "provider",
    "inventory",
    "mask",
    "csv",
    "json",
    "summary",
    "json_logs",
    "log_level",
}
BOOL_CONFIG_KEYS = {"mask", "csv", "json", "summary", "json_logs"}
PATH_CONFIG_KEYS = {"outdir", "template", "snippets_dir", "inventory"}
STR_CONFIG_KEYS = {"subscription_id", "resource_group", "customer", "report_name", "provider", "log_level"}
ENV_PREFIX = "AZ_REVIEW_"


@dataclass(frozen=True)
class RunConfig:
    # Scope
    subscription_id: Optional[str] = None
    resource_group: Optional[str] = None

    # Report
    customer: str = DEFAULT_CUSTOMER
    outdir: Path = field(default_factory=Path.cwd)
    report_name: str = DEFAULT_REPORT_NAME
    rules: Tuple[Path, ...] = ()
    template: Optional[Path] = None
    snippets_dir: Optional[Path] = None

    # Discovery
    provider: str = "azure"  # azure|file
    inventory: Optional[Path] = None

    # Outputs
    mask: bool = True
    csv: bool = False
    json: bool = False
    summary: bool = True

    # Logging
    json_logs: bool = False
    log_level: str = "INFO"

    # Internal/derived
    started_at: str = field(default_factory=utc_now_iso)

    @property
    def report_path(self) -> Path:
        return self.outdir / self.report_name


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("Top-level config must be an object")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    return raw


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip().lower()
    if not raw:
        return None
    return raw in {"1", "true", "yes", "on"}


def _env_paths(name: str) -> Optional[List[str]]:
    raw = _env_str(name)
    if raw is None:
        return None
    return [p.strip() for p in raw.split(os.pathsep) if p.strip()]


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ConfigError(f"Config field '{key}' must be a boolean")


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS:
            continue
        if value is None:
            normalized[key] = None
            continue
        if key == "rules":
            if isinstance(value, str):
                normalized[key] = [value]
            elif isinstance(value, list) and all(isinstance(p, str) for p in value):
                normalized[key] = list(value)
            else:
                raise ConfigError("Config field 'rules' must be a path or a list of paths")
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in PATH_CONFIG_KEYS:
            if isinstance(value, (str, Path)):
                normalized[key] = value
            else:
                raise ConfigError(f"Config field '{key}' must be a string path")
        elif key in STR_CONFIG_KEYS:
            if isinstance(value, str):
                normalized[key] = value
            else:
                raise ConfigError(f"Config field '{key}' must be a string")
    return _compact_dict(normalized)


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def _merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow merge: values in b override a.
    """
    merged = dict(a)
    merged.update(b)
    return merged


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="az-review", description="Azure resource review")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")
        p.add_argument(
            "--rules",
            action="append",
            default=None,
            help="Rule document or directory (repeatable; default: built-in rules)",
        )

    # scan
    p_scan = subparsers.add_parser("scan", help="Evaluate resources and write the review report")
    add_common(p_scan)
    p_scan.add_argument("-s", "--subscription-id", default=None, help="Azure subscription id")
    p_scan.add_argument("-g", "--resource-group", default=None, help="Limit the scan to one resource group")
    p_scan.add_argument("-c", "--customer", default=None, help=f"Customer name in the report (default {DEFAULT_CUSTOMER})")
    p_scan.add_argument("--outdir", type=Path, default=None, help="Output directory (default: current directory)")
    p_scan.add_argument("--report-name", default=None, help=f"Report file name (default {DEFAULT_REPORT_NAME})")
    p_scan.add_argument("--template", type=Path, default=None, help="Report template (default: built-in)")
    p_scan.add_argument("--snippets-dir", type=Path, default=None, help="Recommendation snippet directory")
    p_scan.add_argument("--provider", default=None, choices=sorted(PROVIDERS), help="Inventory source (default azure)")
    p_scan.add_argument("--inventory", type=Path, default=None, help="Inventory export for --provider file")
    p_scan.add_argument(
        "--mask",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Mask subscription ids in outputs (default on, --no-mask to disable)",
    )
    p_scan.add_argument(
        "--csv",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Also write results.csv",
    )
    p_scan.add_argument(
        "--json",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Also write dashboard.json",
    )
    p_scan.add_argument(
        "--summary",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Print the results and run summary tables",
    )

    # rules
    p_rules = subparsers.add_parser("rules", help="List the workflows of the loaded rule catalog")
    add_common(p_rules)
    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[List[str]] = None,
) -> Tuple[str, RunConfig]:
    """
    Build RunConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (command, RunConfig) where command is the subcommand selected: scan|rules
    """
    ns = args if args is not None else build_parser().parse_args(argv)
    command = ns.command

    base: Dict[str, Any] = {
        "customer": DEFAULT_CUSTOMER,
        "report_name": DEFAULT_REPORT_NAME,
        "provider": "azure",
        "mask": True,
        "csv": False,
        "json": False,
        "summary": True,
        "json_logs": False,
        "log_level": "INFO",
    }

    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    env_cfg: Dict[str, Any] = _compact_dict(
        {
            key: (_env_bool if key in BOOL_CONFIG_KEYS else _env_str)(ENV_PREFIX + key.upper())
            for key in sorted(ALLOWED_CONFIG_KEYS - {"rules"})
        }
    )
    env_rules = _env_paths(ENV_PREFIX + "RULES")
    if env_rules:
        env_cfg["rules"] = env_rules

    cli_cfg: Dict[str, Any] = _compact_dict({key: getattr(ns, key, None) for key in ALLOWED_CONFIG_KEYS})

    merged = _merge_dicts(base, _merge_dicts(file_cfg, _merge_dicts(env_cfg, cli_cfg)))

    provider = str(merged.get("provider") or "azure").lower()
    if provider not in PROVIDERS:
        raise ConfigError(f"provider must be one of: {', '.join(sorted(PROVIDERS))}")
    inventory = Path(merged["inventory"]) if merged.get("inventory") else None
    subscription_id = merged.get("subscription_id")
    if command == "scan":
        if not subscription_id:
            raise ConfigError("A subscription id is required (--subscription-id or AZ_REVIEW_SUBSCRIPTION_ID)")
        if provider == "file" and inventory is None:
            raise ConfigError("--provider file requires --inventory")
    report_name = str(merged.get("report_name") or DEFAULT_REPORT_NAME)
    if Path(report_name).name != report_name:
        raise ConfigError("report_name must be a file name, not a path")

    cfg = RunConfig(
        subscription_id=str(subscription_id) if subscription_id else None,
        resource_group=str(merged["resource_group"]) if merged.get("resource_group") else None,
        customer=str(merged.get("customer") or DEFAULT_CUSTOMER),
        outdir=Path(merged["outdir"]) if merged.get("outdir") else Path.cwd(),
        report_name=report_name,
        rules=tuple(Path(p) for p in merged.get("rules") or ()),
        template=Path(merged["template"]) if merged.get("template") else None,
        snippets_dir=Path(merged["snippets_dir"]) if merged.get("snippets_dir") else None,
        provider=provider,
        inventory=inventory,
        mask=bool(merged["mask"]),
        csv=bool(merged["csv"]),
        json=bool(merged["json"]),
        summary=bool(merged["summary"]),
        json_logs=bool(merged["json_logs"]),
        log_level=str(merged.get("log_level") or "INFO").upper(),
    )
    return command, cfg


def dump_config(cfg: RunConfig) -> Dict[str, Any]:
    return {
        "subscription_id": cfg.subscription_id,
        "resource_group": cfg.resource_group,
        "customer": cfg.customer,
        "outdir": str(cfg.outdir),
        "report_name": cfg.report_name,
        "rules": [str(p) for p in cfg.rules],
        "template": str(cfg.template) if cfg.template else None,
        "snippets_dir": str(cfg.snippets_dir) if cfg.snippets_dir else None,
        "provider": cfg.provider,
        "inventory": str(cfg.inventory) if cfg.inventory else None,
        "mask": cfg.mask,
        "csv": cfg.csv,
        "json": cfg.json,
        "summary": cfg.summary,
        "json_logs": cfg.json_logs,
        "log_level": cfg.log_level,
        "started_at": cfg.started_at,
    }
