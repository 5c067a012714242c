from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..inventory.base import Resource
from ..logging import get_logger
from .expression import EvaluationError
from .models import Rule, RuleResult, Workflow

LOG = get_logger(__name__)

RESOURCE_NAME = "resource"
DIAGNOSTICS_NAME = "diagnostics"


def build_context(resource: Resource, auxiliary_input: Optional[int]) -> Dict[str, Any]:
    return {RESOURCE_NAME: resource.properties, DIAGNOSTICS_NAME: auxiliary_input}


class RuleEvaluator:
    """
    Runs every rule of a workflow against one resource.

    Rules are independent: a rule that fails to compile or evaluate yields a
    miss (output None, error set) and the remaining rules still run.
    """

    def evaluate(
        self,
        workflow: Workflow,
        resource: Resource,
        auxiliary_input: Optional[int] = None,
    ) -> List[RuleResult]:
        context = build_context(resource, auxiliary_input)
        return [self._run_rule(rule, context, workflow.name, resource) for rule in workflow.rules]

    def _run_rule(self, rule: Rule, context: Dict[str, Any], workflow: str, resource: Resource) -> RuleResult:
        try:
            value = rule.expression.evaluate(context)
            if value and rule.on_success is not None:
                value = rule.on_success.evaluate(context)
            elif not value and rule.on_failure is not None:
                value = rule.on_failure.evaluate(context)
        except EvaluationError as e:
            LOG.debug(
                "Rule evaluation missed",
                extra={"workflow": workflow, "rule": rule.name, "resource_id": resource.resource_id, "error": str(e)},
            )
            return RuleResult(rule_name=rule.name, output=None, error=str(e))
        return RuleResult(rule_name=rule.name, output=value)
