from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests
from azure.identity import DefaultAzureCredential
from azure.mgmt.resourcegraph import ResourceGraphClient
from azure.mgmt.resourcegraph.models import QueryRequest, QueryRequestOptions

from ..logging import get_logger
from ..util.errors import map_azure_error
from ..util.pagination import paginate
from .base import Resource

LOG = get_logger(__name__)

ARM = "https://management.azure.com"
RESOURCE_GROUPS_API = "2021-04-01"
DIAGNOSTIC_SETTINGS_API = "2021-05-01-preview"
DEFAULT_TIMEOUT_SECONDS = 60


class ArmSession:
    """
    Minimal ARM REST client: bearer token from an azure-identity credential,
    cached until shortly before expiry. No retries; HTTP errors raise.
    """

    def __init__(self, credential: Any, *, timeout: int = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._credential = credential
        self._timeout = timeout
        self._token: Optional[str] = None
        self._token_expires = 0.0

    def token(self) -> str:
        now = time.time()
        if self._token and now < self._token_expires - 60:
            return self._token
        access_token = self._credential.get_token(f"{ARM}/.default")
        self._token = access_token.token
        self._token_expires = float(access_token.expires_on)
        return self._token

    def get(self, path_or_url: str, api_version: Optional[str] = None) -> Dict[str, Any]:
        url = path_or_url if path_or_url.startswith("https://") else f"{ARM}{path_or_url}"
        # nextLink URLs already carry api-version.
        params = {"api-version": api_version} if api_version else None
        r = requests.get(
            url,
            headers={"Authorization": f"Bearer {self.token()}"},
            params=params,
            timeout=self._timeout,
        )
        r.raise_for_status()
        return r.json()

    def list(self, path: str, api_version: str) -> List[Dict[str, Any]]:
        def _fetch(next_link: Optional[str]) -> Tuple[Sequence[Dict[str, Any]], Optional[str]]:
            data = self.get(next_link) if next_link else self.get(path, api_version)
            return list(data.get("value") or []), data.get("nextLink")

        return list(paginate(_fetch))


def _kql_quote(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


class AzureInventoryProvider:
    """
    Live inventory: resource groups and diagnostic settings through ARM REST,
    resource records through Azure Resource Graph.
    """

    def __init__(
        self,
        credential: Any = None,
        *,
        session: Optional[ArmSession] = None,
        graph_client: Optional[ResourceGraphClient] = None,
    ) -> None:
        self._credential = credential
        self._session = session
        self._graph = graph_client

    def _get_credential(self) -> Any:
        if self._credential is None:
            self._credential = DefaultAzureCredential()
        return self._credential

    def _arm(self) -> ArmSession:
        if self._session is None:
            self._session = ArmSession(self._get_credential())
        return self._session

    def _graph_client(self) -> ResourceGraphClient:
        if self._graph is None:
            self._graph = ResourceGraphClient(self._get_credential())
        return self._graph

    def list_resource_groups(self, subscription_id: str) -> List[str]:
        try:
            groups = self._arm().list(f"/subscriptions/{subscription_id}/resourcegroups", RESOURCE_GROUPS_API)
        except Exception as e:
            mapped = map_azure_error(e, f"Azure error while listing resource groups of {subscription_id}")
            if mapped:
                raise mapped from e
            raise
        names = [str(g.get("name") or "") for g in groups if g.get("name")]
        LOG.debug("Listed resource groups", extra={"subscription_id": subscription_id, "count": len(names)})
        return names

    def list_resources(self, subscription_id: str, resource_group: str) -> List[Resource]:
        query = f"Resources | where resourceGroup =~ {_kql_quote(resource_group)} | order by id asc"
        client = self._graph_client()

        def _fetch(skip_token: Optional[str]) -> Tuple[Sequence[Dict[str, Any]], Optional[str]]:
            request = QueryRequest(
                subscriptions=[subscription_id],
                query=query,
                options=QueryRequestOptions(result_format="objectArray", skip_token=skip_token),
            )
            response = client.resources(request)
            rows = [r for r in (response.data or []) if isinstance(r, dict)]
            return rows, getattr(response, "skip_token", None)

        try:
            rows = list(paginate(_fetch))
        except Exception as e:
            mapped = map_azure_error(e, f"Azure error while querying resources in {resource_group}")
            if mapped:
                raise mapped from e
            raise
        LOG.debug(
            "Listed resources",
            extra={"subscription_id": subscription_id, "resource_group": resource_group, "count": len(rows)},
        )
        return [
            Resource.from_record(r, subscription_id=subscription_id, resource_group=resource_group) for r in rows
        ]

    def diagnostic_settings_count(self, resource_id: str) -> Optional[int]:
        path = f"{resource_id}/providers/microsoft.insights/diagnosticSettings"
        try:
            settings = self._arm().list(path, DIAGNOSTIC_SETTINGS_API)
        except Exception as e:
            # Resource types without diagnostic settings support answer 404.
            if isinstance(e, requests.HTTPError) and e.response is not None and e.response.status_code == 404:
                return None
            mapped = map_azure_error(e, f"Azure error while reading diagnostic settings of {resource_id}")
            if mapped:
                raise mapped from e
            raise
        return len(settings)
