from __future__ import annotations

import csv
import json
from pathlib import Path

from az_review.aggregate import TABLE_COLUMNS
from az_review.export.csv import write_csv
from az_review.export.dashboard import build_dashboard_payload, write_dashboard_json
from az_review.rules.models import Result, RuleResult

SUB = "00000000-1111-2222-3333-444444444444"


def _result(name: str, rtype: str, **outputs) -> Result:
    return Result(
        subscription_id=SUB,
        resource_group="rg",
        type=rtype,
        service_name=name,
        rule_results=tuple(RuleResult(k, v) for k, v in outputs.items()),
    )


RESULTS = [
    _result("st1", "Microsoft.Storage/storageAccounts", SKU="Standard_LRS", CAFNaming=True),
    _result("kv1", "Microsoft.KeyVault/vaults", SLA="99.99%"),
    _result("st2", "Microsoft.Storage/storageAccounts"),
]


def test_write_csv_has_table_columns_and_input_order(tmp_path: Path) -> None:
    path = write_csv(RESULTS, tmp_path / "out" / "results.csv", mask=True)

    with path.open(encoding="utf-8", newline="") as f:
        rows = list(csv.DictReader(f))

    assert list(rows[0].keys()) == list(TABLE_COLUMNS)
    assert [r["ServiceName"] for r in rows] == ["st1", "kv1", "st2"]
    assert rows[0]["SKU"] == "Standard_LRS"
    assert rows[0]["CAFNaming"] == "True"
    assert rows[2]["SKU"] == ""
    assert rows[0]["SubscriptionId"].startswith("xxxxxxxx-")


def test_dashboard_rows_share_keys_and_columns_describe_them() -> None:
    payload = build_dashboard_payload(RESULTS)

    resources = payload["datasets"]["resources"]
    assert len(resources) == 3
    keys = {tuple(r.keys()) for r in resources}
    assert len(keys) == 1
    assert [c["dataKey"] for c in payload["columns"]["resources"]] == list(next(iter(keys)))
    assert resources[0]["serviceName"] == "st1"
    assert resources[0]["sku"] == "Standard_LRS"

    counts = payload["datasets"]["resourceTypeCount"]
    assert counts == [
        {"subscriptionId": SUB, "resourceType": "Microsoft.Storage/storageAccounts", "count": 2},
        {"subscriptionId": SUB, "resourceType": "Microsoft.KeyVault/vaults", "count": 1},
    ]
    filters = {c["dataKey"]: c["filterType"] for c in payload["columns"]["resourceTypeCount"]}
    assert filters == {"subscriptionId": "dropdown", "resourceType": "dropdown", "count": "none"}


def test_dashboard_uses_search_filter_for_many_distinct_values() -> None:
    many = [_result(f"st{i}", "Microsoft.Storage/storageAccounts") for i in range(25)]
    columns = {c["dataKey"]: c for c in build_dashboard_payload(many)["columns"]["resources"]}
    assert columns["serviceName"]["filterType"] == "search"
    assert columns["resourceType"]["filterType"] == "dropdown"
    assert columns["serviceName"]["name"] == "ServiceName"


def test_write_dashboard_json(tmp_path: Path) -> None:
    path = write_dashboard_json(RESULTS, tmp_path / "dashboard.json")
    data = json.loads(path.read_text(encoding="utf-8"))
    assert set(data["datasets"]) == {"resources", "resourceTypeCount"}
    assert "generatedAt" in data
