from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..logging import get_logger
from ..util.errors import ConfigError
from .base import Resource, parse_resource_id

LOG = get_logger(__name__)

DIAGNOSTICS_KEY = "diagnosticSettingsCount"


def _read_records(path: Path) -> List[Dict[str, Any]]:
    if not path.is_file():
        raise ConfigError(f"Inventory file not found: {path}")
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    try:
        if suffix == ".jsonl":
            data: Any = [json.loads(line) for line in text.splitlines() if line.strip()]
        elif suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or []
        else:
            data = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to parse inventory file {path}: {e}") from e

    # Accept a bare list or a Resource Graph style {"data": [...]} / {"resources": [...]} envelope.
    if isinstance(data, dict):
        data = data.get("data", data.get("resources"))
    if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
        raise ConfigError(f"Inventory file {path} must contain a list of resource objects")
    return data


def _as_count(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


class FileInventoryProvider:
    """
    Offline inventory over an exported list of ARM resource records.

    Each record may carry `diagnosticSettingsCount`; records without it report
    no diagnostic information. Record order is preserved.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._records = _read_records(self._path)
        self._diagnostics: Dict[str, Optional[int]] = {}
        LOG.info("Loaded inventory file", extra={"path": str(self._path), "records": len(self._records)})

    @staticmethod
    def _group_of(record: Dict[str, Any]) -> str:
        return str(record.get("resourceGroup") or "") or parse_resource_id(str(record.get("id") or ""))[1]

    @staticmethod
    def _subscription_of(record: Dict[str, Any]) -> str:
        return str(record.get("subscriptionId") or "") or parse_resource_id(str(record.get("id") or ""))[0]

    def _in_subscription(self, record: Dict[str, Any], subscription_id: str) -> bool:
        sub = self._subscription_of(record)
        return not sub or sub.lower() == subscription_id.lower()

    def list_resource_groups(self, subscription_id: str) -> List[str]:
        groups: Dict[str, str] = {}
        for record in self._records:
            if not self._in_subscription(record, subscription_id):
                continue
            group = self._group_of(record)
            if group and group.lower() not in groups:
                groups[group.lower()] = group
        return list(groups.values())

    def list_resources(self, subscription_id: str, resource_group: str) -> List[Resource]:
        out: List[Resource] = []
        for record in self._records:
            if not self._in_subscription(record, subscription_id):
                continue
            if self._group_of(record).lower() != resource_group.lower():
                continue
            clean = {k: v for k, v in record.items() if k != DIAGNOSTICS_KEY}
            resource = Resource.from_record(clean, subscription_id=subscription_id, resource_group=resource_group)
            self._diagnostics[resource.resource_id] = _as_count(record.get(DIAGNOSTICS_KEY))
            out.append(resource)
        return out

    def diagnostic_settings_count(self, resource_id: str) -> Optional[int]:
        if resource_id in self._diagnostics:
            return self._diagnostics[resource_id]
        for record in self._records:
            if str(record.get("id") or "") == resource_id:
                return _as_count(record.get(DIAGNOSTICS_KEY))
        return None
