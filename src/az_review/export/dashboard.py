from __future__ import annotations

import json
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

from ..aggregate import TABLE_COLUMNS, to_rows
from ..rules.models import Result
from ..util.errors import ExportError
from ..util.time import utc_now_iso

DATASET_RESOURCES = "resources"
DATASET_RESOURCE_TYPE_COUNT = "resourceTypeCount"

FILTER_NONE = "none"
FILTER_DROPDOWN = "dropdown"
FILTER_SEARCH = "search"
DROPDOWN_MAX_DISTINCT = 20

# Table column -> dashboard data key.
DATA_KEYS: Dict[str, str] = {
    "SubscriptionId": "subscriptionId",
    "ResourceGroup": "resourceGroup",
    "Type": "resourceType",
    "ServiceName": "serviceName",
    "SKU": "sku",
    "AvailabilityZones": "availabilityZones",
    "SLA": "sla",
    "PrivateEndpoints": "privateEndpoints",
    "DiagnosticSettings": "diagnosticSettings",
    "CAFNaming": "cafNaming",
}


def _filter_type(values: Sequence[Any], *, numeric: bool = False) -> str:
    if numeric:
        return FILTER_NONE
    return FILTER_DROPDOWN if len(set(values)) <= DROPDOWN_MAX_DISTINCT else FILTER_SEARCH


def _column(name: str, data_key: str, filter_type: str) -> Dict[str, str]:
    return {"name": name, "dataKey": data_key, "filterType": filter_type}


def _resource_rows(results: Sequence[Result], mask: bool) -> List[Dict[str, str]]:
    return [
        OrderedDict((DATA_KEYS[column], value) for column, value in row.items())
        for row in to_rows(list(results), mask=mask)
    ]


def _type_count_rows(resource_rows: Sequence[Dict[str, str]]) -> List[Dict[str, Any]]:
    counts: Dict[Tuple[str, str], int] = OrderedDict()
    for row in resource_rows:
        key = (row["subscriptionId"], row["resourceType"])
        counts[key] = counts.get(key, 0) + 1
    return [
        OrderedDict([("subscriptionId", sub), ("resourceType", rtype), ("count", n)])
        for (sub, rtype), n in counts.items()
    ]


def build_dashboard_payload(results: Sequence[Result], *, mask: bool = False) -> Dict[str, Any]:
    """
    Build the dashboard data contract:
    - datasets.resources: one row per Result, every row with the same keys.
    - datasets.resourceTypeCount: resources per (subscription, type), first-seen order.
    - columns: per dataset, [{name, dataKey, filterType}] in display order.
    """
    resources = _resource_rows(results, mask)
    type_counts = _type_count_rows(resources)

    resource_columns = [
        _column(column, DATA_KEYS[column], _filter_type([r[DATA_KEYS[column]] for r in resources]))
        for column in TABLE_COLUMNS
    ]
    type_count_columns = [
        _column("SubscriptionId", "subscriptionId", _filter_type([r["subscriptionId"] for r in type_counts])),
        _column("Type", "resourceType", _filter_type([r["resourceType"] for r in type_counts])),
        _column("Count", "count", _filter_type([r["count"] for r in type_counts], numeric=True)),
    ]
    return {
        "generatedAt": utc_now_iso(),
        "datasets": {
            DATASET_RESOURCES: resources,
            DATASET_RESOURCE_TYPE_COUNT: type_counts,
        },
        "columns": {
            DATASET_RESOURCES: resource_columns,
            DATASET_RESOURCE_TYPE_COUNT: type_count_columns,
        },
    }


def write_dashboard_json(results: Sequence[Result], path: Path, *, mask: bool = False) -> Path:
    payload = build_dashboard_payload(results, mask=mask)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Failed to write dashboard JSON {path}: {e}") from e
    return path
