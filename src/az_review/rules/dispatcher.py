from __future__ import annotations

from typing import List, Optional, Sequence

from ..inventory.base import Resource
from ..logging import get_logger
from .catalog import WorkflowCatalog
from .evaluator import RuleEvaluator
from .models import Result

LOG = get_logger(__name__)


class Dispatcher:
    def __init__(self, catalog: WorkflowCatalog, evaluator: Optional[RuleEvaluator] = None) -> None:
        self._catalog = catalog
        self._evaluator = evaluator or RuleEvaluator()

    def accepts(self, workflow_name: str) -> bool:
        return workflow_name in self._catalog

    def evaluate_batch(
        self,
        workflow_name: str,
        resources: Sequence[Resource],
        auxiliary_inputs: Optional[Sequence[Optional[int]]] = None,
    ) -> List[Result]:
        """
        Evaluate a batch of resources sharing one workflow label.

        An unknown workflow is not an error: the batch contributes no results.
        `auxiliary_inputs`, when given, must be index-aligned with `resources`.
        """
        workflow = self._catalog.get(workflow_name)
        if workflow is None:
            LOG.debug("No workflow for batch; skipping", extra={"workflow": workflow_name, "resources": len(resources)})
            return []
        if auxiliary_inputs is not None and len(auxiliary_inputs) != len(resources):
            raise ValueError(
                f"auxiliary_inputs has {len(auxiliary_inputs)} items for {len(resources)} resources"
            )

        results: List[Result] = []
        for i, resource in enumerate(resources):
            aux = auxiliary_inputs[i] if auxiliary_inputs is not None else None
            rule_results = self._evaluator.evaluate(workflow, resource, aux)
            results.append(
                Result(
                    subscription_id=resource.subscription_id,
                    resource_group=resource.resource_group,
                    type=resource.type,
                    service_name=resource.name,
                    rule_results=tuple(rule_results),
                    resource_id=resource.resource_id,
                    location=resource.location,
                )
            )
        return results
