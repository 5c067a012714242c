from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utc_now_iso() -> str:
    """
    Return current UTC time in ISO-8601 format with seconds precision.
    """
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def month_year(now: Optional[datetime] = None) -> str:
    """
    Return "<Month name> <year>" for the given moment (local time when omitted).
    """
    when = now or datetime.now()
    return f"{when.strftime('%B')} {when.year}"
