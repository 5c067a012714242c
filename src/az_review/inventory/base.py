from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

# ARM resource type (lower-cased) -> workflow label used to select a rule workflow.
WORKFLOW_LABELS: Dict[str, str] = {
    "microsoft.storage/storageaccounts": "Storage",
    "microsoft.documentdb/databaseaccounts": "CosmosDB",
    "microsoft.keyvault/vaults": "KeyVault",
    "microsoft.web/serverfarms": "AppServicePlan",
    "microsoft.cache/redis": "Redis",
    "microsoft.apimanagement/service": "ApiManagement",
    "microsoft.containerregistry/registries": "ContainerRegistry",
    "microsoft.containerservice/managedclusters": "AKS",
    "microsoft.signalrservice/signalr": "SignalR",
    "microsoft.servicebus/namespaces": "ServiceBus",
    "microsoft.eventgrid/domains": "EventGrid",
    "microsoft.network/applicationgateways": "ApplicationGateway",
    "microsoft.eventhub/namespaces": "EventHub",
}

# Batch order within a resource group. Labels not listed follow in first-seen order.
WORKFLOW_ORDER: Tuple[str, ...] = (
    "Storage",
    "CosmosDB",
    "KeyVault",
    "AppServicePlan",
    "Redis",
    "ApiManagement",
    "ContainerRegistry",
    "AKS",
    "SignalR",
    "ServiceBus",
    "EventGrid",
    "ApplicationGateway",
    "EventHub",
)


def workflow_label_for(resource_type: str) -> str:
    """
    Map an ARM type to its workflow label; unknown types use the ARM type itself,
    so a rule document can target any type by its full name.
    """
    return WORKFLOW_LABELS.get((resource_type or "").lower(), resource_type or "")


def parse_resource_id(resource_id: str) -> Tuple[str, str]:
    """
    Return (subscription_id, resource_group) from an ARM id; missing segments are "".
    """
    parts = [p for p in (resource_id or "").split("/") if p]
    subscription_id = ""
    resource_group = ""
    for i in range(len(parts) - 1):
        key = parts[i].lower()
        if key == "subscriptions" and not subscription_id:
            subscription_id = parts[i + 1]
        elif key == "resourcegroups" and not resource_group:
            resource_group = parts[i + 1]
    return subscription_id, resource_group


@dataclass(frozen=True)
class Resource:
    """
    One discovered resource. `properties` holds the full ARM record (id, name, type,
    sku, zones, properties, ...) and is exposed to rules as `resource`.
    """

    resource_id: str
    name: str
    type: str
    workflow: str
    subscription_id: str = ""
    resource_group: str = ""
    location: str = ""
    properties: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_record(
        cls,
        record: Mapping[str, Any],
        *,
        subscription_id: Optional[str] = None,
        resource_group: Optional[str] = None,
    ) -> Resource:
        resource_id = str(record.get("id") or "")
        rtype = str(record.get("type") or "")
        id_sub, id_rg = parse_resource_id(resource_id)
        return cls(
            resource_id=resource_id,
            name=str(record.get("name") or ""),
            type=rtype,
            workflow=str(record.get("workflow") or workflow_label_for(rtype)),
            subscription_id=subscription_id or str(record.get("subscriptionId") or "") or id_sub,
            resource_group=resource_group or str(record.get("resourceGroup") or "") or id_rg,
            location=str(record.get("location") or ""),
            properties=MappingProxyType(dict(record)),
        )


@runtime_checkable
class InventoryProvider(Protocol):
    """
    Discovery contract. Calls are synchronous; failures propagate and abort the scan.
    Implementations must return resources in a stable order.
    """

    def list_resource_groups(self, subscription_id: str) -> List[str]:
        ...

    def list_resources(self, subscription_id: str, resource_group: str) -> Iterable[Resource]:
        ...

    def diagnostic_settings_count(self, resource_id: str) -> Optional[int]:
        ...
