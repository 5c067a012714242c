from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from az_review.rules.catalog import WorkflowCatalog
from az_review.rules.loader import discover_rule_documents, load_catalog, parse_rule_document
from az_review.rules.models import Workflow
from az_review.util.errors import RuleDocumentError, RulesNotFoundError


def _write(path: Path, workflows) -> Path:
    path.write_text(json.dumps(workflows), encoding="utf-8")
    return path


def test_parse_rule_document_reads_workflows_and_actions() -> None:
    text = json.dumps(
        [
            {
                "WorkflowName": "Storage",
                "Rules": [
                    {"RuleName": "SKU", "Expression": "resource.sku.name"},
                    {
                        "ruleName": "AvailabilityZones",
                        "expression": "'ZRS' in resource.sku.name",
                        "actions": {
                            "onSuccess": {"name": "OutputExpression", "context": {"expression": "'Yes'"}},
                            "onFailure": "'No'",
                        },
                    },
                ],
            }
        ]
    )

    workflows = parse_rule_document(text, "storage.rules.json")

    assert [w.name for w in workflows] == ["Storage"]
    rules = workflows[0].rules
    assert [r.name for r in rules] == ["SKU", "AvailabilityZones"]
    assert rules[1].on_success is not None and rules[1].on_success.source == "'Yes'"
    assert rules[1].on_failure is not None and rules[1].on_failure.source == "'No'"
    assert workflows[0].source == "storage.rules.json"


def test_parse_rule_document_accepts_yaml() -> None:
    text = "- workflowName: KeyVault\n  rules:\n    - ruleName: SLA\n      expression: \"'99.99%'\"\n"
    workflows = parse_rule_document(text, "kv.rules.yaml")
    assert workflows[0].rules[0].expression.evaluate({}) == "99.99%"


@pytest.mark.parametrize(
    "text",
    [
        "{not json",
        json.dumps({"workflowName": "x"}),
        json.dumps([{"rules": []}]),
        json.dumps([{"workflowName": "x", "rules": {}}]),
        json.dumps([{"workflowName": "x", "rules": [{"expression": "true"}]}]),
        json.dumps([{"workflowName": "x", "rules": [{"ruleName": "a", "expression": 1}]}]),
        json.dumps([{"workflowName": "x", "rules": [{"ruleName": "a", "expression": "true", "actions": {"onSuccess": 5}}]}]),
    ],
)
def test_malformed_documents_raise_rule_document_error(text: str) -> None:
    with pytest.raises(RuleDocumentError):
        parse_rule_document(text, "bad.rules.json")


def test_bad_expression_is_kept_and_logged(caplog) -> None:
    text = json.dumps([{"workflowName": "x", "rules": [{"ruleName": "SKU", "expression": "resource..sku"}]}])
    with caplog.at_level(logging.WARNING):
        workflows = parse_rule_document(text, "x.rules.json")
    rule = workflows[0].rules[0]
    assert not rule.expression.ok
    assert rule.compile_errors
    assert any("does not compile" in r.getMessage() for r in caplog.records)


def test_discover_rule_documents_is_sorted_and_deduplicated(tmp_path: Path) -> None:
    nested = tmp_path / "nested"
    nested.mkdir()
    b = _write(tmp_path / "b.rules.json", [])
    a = _write(nested / "a.rules.json", [])
    (tmp_path / "notes.json").write_text("[]", encoding="utf-8")

    found = discover_rule_documents([tmp_path, b])

    assert found == sorted([a, b])


def test_load_catalog_fails_without_documents_or_workflows(tmp_path: Path) -> None:
    with pytest.raises(RulesNotFoundError):
        load_catalog([tmp_path])
    _write(tmp_path / "empty.rules.json", [])
    with pytest.raises(RulesNotFoundError):
        load_catalog([tmp_path])
    with pytest.raises(RulesNotFoundError):
        load_catalog([tmp_path / "missing"])


def test_load_catalog_aborts_on_malformed_document(tmp_path: Path) -> None:
    _write(tmp_path / "a.rules.json", [{"workflowName": "Storage", "rules": []}])
    (tmp_path / "b.rules.json").write_text("[{", encoding="utf-8")
    with pytest.raises(RuleDocumentError):
        load_catalog([tmp_path])


def test_duplicate_workflow_names_last_loaded_wins(tmp_path: Path, caplog) -> None:
    _write(tmp_path / "a.rules.json", [{"workflowName": "Storage", "rules": [{"ruleName": "SKU", "expression": "'a'"}]}])
    _write(tmp_path / "b.rules.json", [{"workflowName": "Storage", "rules": [{"ruleName": "SKU", "expression": "'b'"}]}])

    with caplog.at_level(logging.WARNING):
        catalog = load_catalog([tmp_path])

    workflow = catalog.get("Storage")
    assert workflow is not None
    assert workflow.rules[0].expression.evaluate({}) == "b"
    assert len(catalog) == 1
    assert any("Duplicate workflow" in r.getMessage() for r in caplog.records)


def test_catalog_lookup_misses_are_not_errors() -> None:
    catalog = WorkflowCatalog.from_workflows([Workflow(name="Storage", rules=())])
    assert catalog.get("CosmosDB") is None
    assert "CosmosDB" not in catalog
    assert "Storage" in catalog
    assert catalog.names() == ["Storage"]


def test_builtin_rules_load_and_compile() -> None:
    catalog = load_catalog()
    assert "Storage" in catalog
    assert "KeyVault" in catalog
    for workflow in catalog:
        assert [r.name for r in workflow.rules] == [
            "SKU",
            "AvailabilityZones",
            "SLA",
            "PrivateEndpoints",
            "DiagnosticSettings",
            "CAFNaming",
        ]
        assert not any(r.compile_errors for r in workflow.rules), workflow.name
