"""
Rule evaluation engine: workflow documents are loaded into a catalog, and each
batch of resources is dispatched to the workflow named by its label.
"""

from __future__ import annotations

from .catalog import WorkflowCatalog
from .dispatcher import Dispatcher
from .evaluator import RuleEvaluator
from .expression import CompiledExpression, EvaluationError, MissingPropertyError, compile_expression
from .loader import BUILTIN_RULES_DIR, discover_rule_documents, load_catalog, parse_rule_document
from .models import Result, Rule, RuleResult, Workflow

__all__ = [
    "BUILTIN_RULES_DIR",
    "CompiledExpression",
    "Dispatcher",
    "EvaluationError",
    "MissingPropertyError",
    "Result",
    "Rule",
    "RuleEvaluator",
    "RuleResult",
    "Workflow",
    "WorkflowCatalog",
    "compile_expression",
    "discover_rule_documents",
    "load_catalog",
    "parse_rule_document",
]
