from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict, List, Tuple

from .rules.models import Result

CANONICAL_COLUMNS: Tuple[str, ...] = (
    "SKU",
    "AvailabilityZones",
    "SLA",
    "PrivateEndpoints",
    "DiagnosticSettings",
    "CAFNaming",
)

IDENTITY_COLUMNS: Tuple[str, ...] = ("SubscriptionId", "ResourceGroup", "Type", "ServiceName")

TABLE_COLUMNS: Tuple[str, ...] = IDENTITY_COLUMNS + CANONICAL_COLUMNS

_MASK_PREFIX = "xxxxxxxx-xxxx-xxxx-xxxx-xxxxx"


def mask_subscription_id(subscription_id: str) -> str:
    """
    Hide all but the tail of a subscription GUID, keeping the 36-char shape.
    Ids too short to keep a tail are masked whole.
    """
    keep_from = len(_MASK_PREFIX)
    if len(subscription_id) <= keep_from:
        return _MASK_PREFIX[: len(subscription_id)] if subscription_id else ""
    return _MASK_PREFIX + subscription_id[keep_from:]


def format_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "True" if value else "False"
    return str(value)


def to_canonical(result: Result) -> Dict[str, str]:
    """
    Project a Result onto the canonical columns. The first rule result whose name
    equals the column wins; absent or missed rules become "".
    """
    row: Dict[str, str] = OrderedDict()
    for column in CANONICAL_COLUMNS:
        found = result.find(column)
        row[column] = format_cell(found.output) if found is not None else ""
    return row


def to_row(result: Result, *, mask: bool = False) -> Dict[str, str]:
    subscription_id = mask_subscription_id(result.subscription_id) if mask else result.subscription_id
    row: Dict[str, str] = OrderedDict(
        [
            ("SubscriptionId", subscription_id),
            ("ResourceGroup", result.resource_group),
            ("Type", result.type),
            ("ServiceName", result.service_name),
        ]
    )
    row.update(to_canonical(result))
    return row


def to_rows(results: List[Result], *, mask: bool = False) -> List[Dict[str, str]]:
    return [to_row(r, mask=mask) for r in results]
