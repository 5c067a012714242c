from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional

from ..logging import get_logger
from .models import Workflow

LOG = get_logger(__name__)


class WorkflowCatalog:
    """
    In-memory index of workflows by name, built once before any evaluation.

    Duplicate workflow names resolve by load order: the last workflow inserted wins.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, Workflow] = {}

    @classmethod
    def from_workflows(cls, workflows: Iterable[Workflow]) -> WorkflowCatalog:
        catalog = cls()
        for wf in workflows:
            catalog._insert(wf)
        return catalog

    def _insert(self, workflow: Workflow) -> None:
        previous = self._workflows.get(workflow.name)
        if previous is not None:
            LOG.warning(
                "Duplicate workflow name; later definition replaces the earlier one",
                extra={
                    "workflow": workflow.name,
                    "replaced_source": previous.source,
                    "source": workflow.source,
                },
            )
        self._workflows[workflow.name] = workflow

    def get(self, name: str) -> Optional[Workflow]:
        return self._workflows.get(name)

    def names(self) -> List[str]:
        return list(self._workflows.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._workflows

    def __len__(self) -> int:
        return len(self._workflows)

    def __iter__(self) -> Iterator[Workflow]:
        return iter(self._workflows.values())
