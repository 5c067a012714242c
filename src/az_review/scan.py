from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .inventory.base import WORKFLOW_ORDER, InventoryProvider, Resource
from .logging import get_logger
from .rules.dispatcher import Dispatcher
from .rules.models import Result

LOG = get_logger(__name__)

ProgressCallback = Callable[[str, int], None]


@dataclass
class ScanStats:
    resource_groups: int = 0
    resources_discovered: int = 0
    resources_evaluated: int = 0
    resources_skipped: int = 0
    rule_misses: int = 0


def order_batches(resources: List[Resource]) -> List[List[Resource]]:
    """
    Group resources by workflow label. Known labels come first in WORKFLOW_ORDER,
    any other label follows in first-seen order; resources keep provider order.
    """
    batches: Dict[str, List[Resource]] = {}
    for resource in resources:
        batches.setdefault(resource.workflow, []).append(resource)
    labels = [label for label in WORKFLOW_ORDER if label in batches]
    labels.extend(label for label in batches if label not in WORKFLOW_ORDER)
    return [batches[label] for label in labels]


class ReviewScanner:
    def __init__(self, provider: InventoryProvider, dispatcher: Dispatcher) -> None:
        self._provider = provider
        self._dispatcher = dispatcher
        self.stats = ScanStats()

    def scan(
        self,
        subscription_id: str,
        resource_group: Optional[str] = None,
        *,
        progress: Optional[ProgressCallback] = None,
    ) -> List[Result]:
        """
        Evaluate every resource of the subscription (or of one resource group).

        Groups are visited in provider order; within a group, batches follow
        order_batches. Diagnostic settings are fetched only for batches that a
        workflow accepts. Provider failures propagate and abort the scan.
        """
        self.stats = ScanStats()
        groups = [resource_group] if resource_group else self._provider.list_resource_groups(subscription_id)
        results: List[Result] = []
        for group in groups:
            resources = list(self._provider.list_resources(subscription_id, group))
            self.stats.resource_groups += 1
            self.stats.resources_discovered += len(resources)
            for batch in order_batches(resources):
                label = batch[0].workflow
                if not self._dispatcher.accepts(label):
                    LOG.debug(
                        "No workflow for resources; skipping",
                        extra={"resource_group": group, "workflow": label, "resources": len(batch)},
                    )
                    self.stats.resources_skipped += len(batch)
                    continue
                diagnostics = [self._provider.diagnostic_settings_count(r.resource_id) for r in batch]
                batch_results = self._dispatcher.evaluate_batch(label, batch, diagnostics)
                self.stats.resources_evaluated += len(batch_results)
                self.stats.rule_misses += sum(1 for r in batch_results for rr in r.rule_results if rr.missed)
                results.extend(batch_results)
            LOG.info(
                "Scanned resource group",
                extra={"subscription_id": subscription_id, "resource_group": group, "resources": len(resources)},
            )
            if progress is not None:
                progress(group, len(resources))
        return results
