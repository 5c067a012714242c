from __future__ import annotations

import csv
import json
from pathlib import Path

import pytest

from az_review.cli import main

SUB = "00000000-0000-0000-0000-000000000001"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for key in ("SUBSCRIPTION_ID", "CUSTOMER", "RESOURCE_GROUP", "RULES", "MASK", "PROVIDER", "INVENTORY", "OUTDIR"):
        monkeypatch.delenv(f"AZ_REVIEW_{key}", raising=False)


def _inventory(tmp_path: Path) -> Path:
    records = [
        {
            "id": f"/subscriptions/{SUB}/resourceGroups/rg-app/providers/Microsoft.KeyVault/vaults/kv-app",
            "name": "kv-app",
            "type": "Microsoft.KeyVault/vaults",
            "properties": {"sku": {"name": "standard"}},
            "diagnosticSettingsCount": 1,
        },
        {
            "id": f"/subscriptions/{SUB}/resourceGroups/rg-app/providers/Microsoft.Foo/bars/unknown",
            "name": "unknown",
            "type": "Microsoft.Foo/bars",
        },
    ]
    path = tmp_path / "inventory.json"
    path.write_text(json.dumps(records), encoding="utf-8")
    return path


def _run(argv) -> int:
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    return excinfo.value.code


def test_scan_with_file_provider_writes_outputs(tmp_path: Path) -> None:
    outdir = tmp_path / "out"
    code = _run(
        [
            "scan",
            "-s",
            SUB,
            "--provider",
            "file",
            "--inventory",
            str(_inventory(tmp_path)),
            "--outdir",
            str(outdir),
            "--no-summary",
            "--csv",
            "--json",
            "-c",
            "Fabrikam",
        ]
    )
    assert code == 0

    report = (outdir / "Report.md").read_text(encoding="utf-8")
    assert "Fabrikam" in report
    assert "kv-app" in report
    assert "unknown" not in report
    assert "{{results}}" not in report
    assert SUB not in report

    with (outdir / "results.csv").open(encoding="utf-8", newline="") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 1
    row = rows[0]
    assert row["ServiceName"] == "kv-app"
    assert row["SubscriptionId"] == "xxxxxxxx-xxxx-xxxx-xxxx-xxxxx" + SUB[29:]
    assert row["SKU"] == "standard"
    assert row["AvailabilityZones"] == "Yes"
    assert row["SLA"] == "99.99%"
    assert row["PrivateEndpoints"] == "False"
    assert row["DiagnosticSettings"] == "True"
    assert row["CAFNaming"] == "True"

    dashboard = json.loads((outdir / "dashboard.json").read_text(encoding="utf-8"))
    assert dashboard["datasets"]["resources"][0]["serviceName"] == "kv-app"

    summary = json.loads((outdir / "run_summary.json").read_text(encoding="utf-8"))
    assert summary["metrics"]["resources_discovered"] == 2
    assert summary["metrics"]["resources_evaluated"] == 1
    assert summary["config"]["customer"] == "Fabrikam"


def test_missing_rules_exit_with_rules_error(tmp_path: Path) -> None:
    code = _run(
        [
            "scan",
            "-s",
            SUB,
            "--provider",
            "file",
            "--inventory",
            str(_inventory(tmp_path)),
            "--rules",
            str(tmp_path / "nope"),
            "--outdir",
            str(tmp_path / "out"),
            "--no-summary",
        ]
    )
    assert code == 3
    assert not (tmp_path / "out" / "Report.md").exists()


def test_missing_subscription_exits_with_config_error() -> None:
    assert _run(["scan", "--no-summary"]) == 2


def test_rules_command_lists_builtin_workflows(capsys) -> None:
    assert _run(["rules"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 13
    assert any(line.startswith("KeyVault,6,0,") for line in lines)
