from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from az_review.config import DEFAULT_CUSTOMER
from az_review.report import (
    DirectorySnippetStore,
    build_recommendations,
    compose_report,
    default_snippet_store,
    distinct_types,
    format_report_date,
    load_report_template,
    recommendation_key,
    substitute_placeholders,
    write_report,
)
from az_review.rules.models import Result


class DictStore:
    def __init__(self, snippets: Dict[str, str]) -> None:
        self.snippets = snippets
        self.calls: list[str] = []

    def get(self, key: str) -> Optional[str]:
        self.calls.append(key)
        return self.snippets.get(key)


def _result(rtype: str) -> Result:
    return Result(subscription_id="s", resource_group="g", type=rtype, service_name="n", rule_results=())


def test_recommendation_key_replaces_slashes() -> None:
    assert recommendation_key("Microsoft.Storage/storageAccounts") == "Microsoft.Storage.storageAccounts.md"


def test_recommendations_follow_first_seen_distinct_types() -> None:
    results = [_result("A/x"), _result("B/y"), _result("A/x"), _result("C/z")]
    store = DictStore({"A.x.md": "snippet A", "C.z.md": "snippet C"})

    assert distinct_types(results) == ["A/x", "B/y", "C/z"]
    text = build_recommendations(results, store)

    assert store.calls == ["A.x.md", "B.y.md", "C.z.md"]
    assert text == "snippet A\n\nsnippet C"
    assert build_recommendations(results, store) == text


def test_substitute_placeholders_replaces_each_once_without_rescanning() -> None:
    template = "{{date}} {{customer}}\n{{results}}\n{{recommendations}}\n{{results}} {{other}}"
    values = {
        "date": "May 2024",
        "customer": "{{date}}",
        "results": "TABLE",
        "recommendations": "see {{results}} above",
    }

    text = substitute_placeholders(template, values)

    assert text == "May 2024 {{date}}\nTABLE\nsee {{results}} above\n{{results}} {{other}}"


def test_substitute_placeholders_without_placeholders_is_identity() -> None:
    assert substitute_placeholders("plain text {{unknown}}", {"date": "x"}) == "plain text {{unknown}}"


def test_compose_report_fills_every_placeholder() -> None:
    template = "# {{customer}} ({{date}})\n{{results}}\n{{recommendations}}"
    text = compose_report(
        template,
        customer="Fabrikam",
        table="| t |",
        results=[_result("A/x")],
        store=DictStore({"A.x.md": "rec"}),
        now=datetime(2024, 3, 5),
    )
    assert text == "# Fabrikam (March 2024)\n| t |\nrec"


def test_format_report_date_is_month_and_year() -> None:
    assert format_report_date(datetime(2023, 12, 31)) == "December 2023"


def test_directory_snippet_store_reads_files_case_insensitively(tmp_path: Path) -> None:
    (tmp_path / "Microsoft.Storage.storageAccounts.md").write_text("storage tips", encoding="utf-8")
    store = DirectorySnippetStore(tmp_path)

    assert store.get("Microsoft.Storage.storageAccounts.md") == "storage tips"
    assert store.get("microsoft.storage.storageaccounts.md") == "storage tips"
    assert store.get("Missing.md") is None
    assert store.get("../etc.md") is None


def test_builtin_template_and_snippets() -> None:
    template = load_report_template()
    for placeholder in ("{{date}}", "{{customer}}", "{{results}}", "{{recommendations}}"):
        assert placeholder in template
    assert default_snippet_store().get(recommendation_key("Microsoft.KeyVault/vaults"))


def test_write_report_creates_parent_dirs(tmp_path: Path) -> None:
    path = write_report(tmp_path / "out" / "Report.md", "hello")
    assert path.read_text(encoding="utf-8") == "hello"


def test_compose_report_falls_back_to_default_customer() -> None:
    text = compose_report("{{customer}}", customer="", table="", results=[], store=DictStore({}))
    assert text == DEFAULT_CUSTOMER
