from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple

from .expression import CompiledExpression


@dataclass(frozen=True)
class Rule:
    """
    A named expression evaluated against one resource.

    The expression value is the rule output unless an action overrides it:
    `on_success` replaces a truthy value, `on_failure` replaces a falsy one.
    """

    name: str
    expression: CompiledExpression
    on_success: Optional[CompiledExpression] = None
    on_failure: Optional[CompiledExpression] = None

    @property
    def compile_errors(self) -> Tuple[str, ...]:
        errors = []
        for expr in (self.expression, self.on_success, self.on_failure):
            if expr is not None and expr.error:
                errors.append(expr.error)
        return tuple(errors)


@dataclass(frozen=True)
class Workflow:
    name: str
    rules: Tuple[Rule, ...]
    source: Optional[str] = None


@dataclass(frozen=True)
class RuleResult:
    rule_name: str
    output: Any
    error: Optional[str] = None

    @property
    def missed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class Result:
    subscription_id: str
    resource_group: str
    type: str
    service_name: str
    rule_results: Tuple[RuleResult, ...]
    resource_id: str = ""
    location: str = ""

    def find(self, rule_name: str) -> Optional[RuleResult]:
        for rr in self.rule_results:
            if rr.rule_name == rule_name:
                return rr
        return None
