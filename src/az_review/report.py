from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

from .config import DEFAULT_CUSTOMER
from .logging import get_logger
from .rules.models import Result
from .util.errors import ConfigError, ExportError
from .util.time import month_year

LOG = get_logger(__name__)

BUILTIN_TEMPLATES_DIR = Path(__file__).resolve().parent / "data" / "templates"
REPORT_TEMPLATE_NAME = "Report.md"

PLACEHOLDERS: Tuple[str, ...] = ("date", "customer", "results", "recommendations")


class SnippetStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...


class DirectorySnippetStore:
    """Snippets stored as files named by recommendation key under one directory."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def get(self, key: str) -> Optional[str]:
        # Keys come from ARM types; never let one escape the snippet directory.
        if not key or "/" in key or "\\" in key or key.startswith("."):
            return None
        path = self._root / key
        if not path.is_file():
            # Resource Graph reports ARM types lower-cased.
            path = self._find_case_insensitive(key)
            if path is None:
                return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            LOG.warning("Failed to read recommendation snippet", extra={"path": str(path), "error": str(e)})
            return None

    def _find_case_insensitive(self, key: str) -> Optional[Path]:
        if not self._root.is_dir():
            return None
        lowered = key.lower()
        for candidate in sorted(self._root.iterdir()):
            if candidate.is_file() and candidate.name.lower() == lowered:
                return candidate
        return None


def default_snippet_store() -> DirectorySnippetStore:
    return DirectorySnippetStore(BUILTIN_TEMPLATES_DIR)


def recommendation_key(resource_type: str) -> str:
    return resource_type.replace("/", ".") + ".md"


def distinct_types(results: Iterable[Result]) -> List[str]:
    seen: Dict[str, None] = {}
    for r in results:
        if r.type not in seen:
            seen[r.type] = None
    return list(seen)


def build_recommendations(results: Sequence[Result], store: SnippetStore) -> str:
    """
    One snippet per distinct resource type, in first-seen order, joined with newlines.
    A type without a snippet contributes an empty string.
    """
    parts: List[str] = []
    for rtype in distinct_types(results):
        snippet = store.get(recommendation_key(rtype))
        if snippet is None:
            LOG.debug("No recommendation snippet for type", extra={"resource_type": rtype})
        parts.append(snippet or "")
    return "\n".join(parts)


def format_report_date(now: Optional[datetime] = None) -> str:
    return month_year(now)


def substitute_placeholders(template: str, values: Mapping[str, str]) -> str:
    """
    Replace the first occurrence of each known `{{name}}` token in one pass over
    the original template. Substituted text is never scanned again, so values that
    contain placeholder syntax come out verbatim. Unknown tokens are left alone.
    """
    hits: List[Tuple[int, str]] = []
    for name in PLACEHOLDERS:
        if name not in values:
            continue
        pos = template.find("{{" + name + "}}")
        if pos >= 0:
            hits.append((pos, name))
    hits.sort()

    out: List[str] = []
    cursor = 0
    for pos, name in hits:
        out.append(template[cursor:pos])
        out.append(values[name])
        cursor = pos + len(name) + 4
    out.append(template[cursor:])
    return "".join(out)


def compose_report(
    template: str,
    *,
    customer: str,
    table: str,
    results: Sequence[Result],
    store: SnippetStore,
    now: Optional[datetime] = None,
) -> str:
    values = {
        "date": format_report_date(now),
        "customer": customer or DEFAULT_CUSTOMER,
        "results": table,
        "recommendations": build_recommendations(results, store),
    }
    return substitute_placeholders(template, values)


def load_report_template(path: Optional[Path] = None) -> str:
    p = Path(path) if path else BUILTIN_TEMPLATES_DIR / REPORT_TEMPLATE_NAME
    try:
        return p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Failed to read report template {p}: {e}") from e


def write_report(path: Path, text: str) -> Path:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Failed to write report {path}: {e}") from e
    return path
