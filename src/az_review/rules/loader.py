from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import yaml

from ..logging import get_logger
from ..util.errors import RuleDocumentError, RulesNotFoundError
from .catalog import WorkflowCatalog
from .expression import CompiledExpression, compile_expression
from .models import Rule, Workflow

LOG = get_logger(__name__)

BUILTIN_RULES_DIR = Path(__file__).resolve().parents[1] / "data" / "rules"
RULE_DOCUMENT_PATTERNS = ("*.rules.json", "*.rules.yaml", "*.rules.yml")

PathLike = Union[str, Path]


def discover_rule_documents(paths: Optional[Sequence[PathLike]] = None) -> List[Path]:
    """
    Resolve configured rule locations to a list of document paths.
    - Files are taken as-is; directories are searched recursively for RULE_DOCUMENT_PATTERNS.
    - Order is the configured order, sorted within each directory, without duplicates.
    - No configured paths means the built-in rule set.
    """
    roots = [Path(p) for p in paths] if paths else [BUILTIN_RULES_DIR]
    found: List[Path] = []
    seen = set()
    for root in roots:
        if root.is_dir():
            candidates = sorted({p for pattern in RULE_DOCUMENT_PATTERNS for p in root.rglob(pattern) if p.is_file()})
        elif root.is_file():
            candidates = [root]
        else:
            raise RulesNotFoundError(f"Rules path not found: {root}")
        for candidate in candidates:
            key = candidate.resolve()
            if key in seen:
                continue
            seen.add(key)
            found.append(candidate)
    return found


def _get(obj: Dict[str, Any], name: str) -> Any:
    # Accept both camelCase and the PascalCase used by RulesEngine workflow files.
    if name in obj:
        return obj[name]
    lowered = name.lower()
    for key, value in obj.items():
        if isinstance(key, str) and key.lower() == lowered:
            return value
    return None


def _load_structured(text: str, source: str) -> Any:
    suffix = Path(source).suffix.lower()
    try:
        if suffix == ".json":
            return json.loads(text)
        if suffix in {".yaml", ".yml"}:
            return yaml.safe_load(text)
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise RuleDocumentError(f"Failed to parse rule document {source}: {e}") from e


def _compile(expression: str, *, source: str, workflow: str, rule: str, part: str) -> CompiledExpression:
    compiled = compile_expression(expression)
    if compiled.error:
        LOG.warning(
            "Rule expression does not compile; rule will report a miss",
            extra={"source": source, "workflow": workflow, "rule": rule, "part": part, "error": compiled.error},
        )
    return compiled


def _parse_action(value: Any, *, source: str, workflow: str, rule: str, part: str) -> Optional[CompiledExpression]:
    if value is None:
        return None
    if isinstance(value, str):
        return _compile(value, source=source, workflow=workflow, rule=rule, part=part)
    if isinstance(value, dict):
        context = _get(value, "context")
        expression = _get(context, "expression") if isinstance(context, dict) else None
        if isinstance(expression, str):
            return _compile(expression, source=source, workflow=workflow, rule=rule, part=part)
    raise RuleDocumentError(
        f"{source}: workflow '{workflow}' rule '{rule}': action '{part}' must be an expression string "
        "or an OutputExpression object with context.expression"
    )


def _parse_rule(raw: Any, *, source: str, workflow: str, index: int) -> Rule:
    if not isinstance(raw, dict):
        raise RuleDocumentError(f"{source}: workflow '{workflow}' rule #{index} must be an object")
    name = _get(raw, "ruleName")
    if not isinstance(name, str) or not name.strip():
        raise RuleDocumentError(f"{source}: workflow '{workflow}' rule #{index} is missing ruleName")
    expression = _get(raw, "expression")
    if not isinstance(expression, str):
        raise RuleDocumentError(f"{source}: workflow '{workflow}' rule '{name}' must define a string expression")

    actions = _get(raw, "actions")
    if actions is not None and not isinstance(actions, dict):
        raise RuleDocumentError(f"{source}: workflow '{workflow}' rule '{name}': actions must be an object")
    actions = actions or {}

    return Rule(
        name=name,
        expression=_compile(expression, source=source, workflow=workflow, rule=name, part="expression"),
        on_success=_parse_action(
            _get(actions, "onSuccess"), source=source, workflow=workflow, rule=name, part="onSuccess"
        ),
        on_failure=_parse_action(
            _get(actions, "onFailure"), source=source, workflow=workflow, rule=name, part="onFailure"
        ),
    )


def parse_rule_document(text: str, source: str) -> List[Workflow]:
    """
    Parse one rule document: a list of {workflowName, rules: [{ruleName, expression, actions?}]}.
    Structural defects raise RuleDocumentError; expression syntax errors only degrade the rule.
    """
    data = _load_structured(text, source)
    if not isinstance(data, list):
        raise RuleDocumentError(f"{source}: top-level rule document must be a list of workflows")

    workflows: List[Workflow] = []
    for i, raw in enumerate(data):
        if not isinstance(raw, dict):
            raise RuleDocumentError(f"{source}: workflow #{i} must be an object")
        name = _get(raw, "workflowName")
        if not isinstance(name, str) or not name.strip():
            raise RuleDocumentError(f"{source}: workflow #{i} is missing workflowName")
        rules_raw = _get(raw, "rules")
        if not isinstance(rules_raw, list):
            raise RuleDocumentError(f"{source}: workflow '{name}' must define a list of rules")
        rules = tuple(_parse_rule(r, source=source, workflow=name, index=j) for j, r in enumerate(rules_raw))
        workflows.append(Workflow(name=name, rules=rules, source=source))
    return workflows


def load_workflows(documents: Iterable[Path]) -> List[Workflow]:
    workflows: List[Workflow] = []
    for path in documents:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise RuleDocumentError(f"Failed to read rule document {path}: {e}") from e
        parsed = parse_rule_document(text, str(path))
        LOG.debug("Loaded rule document", extra={"source": str(path), "workflows": len(parsed)})
        workflows.extend(parsed)
    return workflows


def load_catalog(paths: Optional[Sequence[PathLike]] = None) -> WorkflowCatalog:
    """
    Discover, parse and index every rule document. Fails before any evaluation when
    no documents or no workflows are available, or when any document is malformed.
    """
    documents = discover_rule_documents(paths)
    if not documents:
        raise RulesNotFoundError("Rules not found: no rule documents in the configured locations")
    workflows = load_workflows(documents)
    if not workflows:
        raise RulesNotFoundError("Rules not found: rule documents define no workflows")
    catalog = WorkflowCatalog.from_workflows(workflows)
    LOG.info(
        "Rule catalog loaded",
        extra={"documents": len(documents), "workflows": len(catalog)},
    )
    return catalog
