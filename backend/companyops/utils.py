from __future__ import annotations

from datetime import date, time
from typing import Any, Optional, Tuple

from django.conf import settings
from django.http import HttpRequest

# =========================
# Helpers
# =========================

def _get_setting(name: str, default: Any = None) -> Any:
    """Read a Django setting with a fallback."""
    return getattr(settings, name, default)

def _parse_hhmm(value: Any) -> time:
    """Parse 'HH:MM' into a time. Raises ValueError on anything else."""
    if isinstance(value, time):
        return value
    hh, mm = str(value).strip().split(":")[:2]
    h, m = int(hh), int(mm)
    if not (0 <= h <= 23 and 0 <= m <= 59):
        raise ValueError(f"Invalid time {value!r}")
    return time(h, m)

def _parse_iso_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip())

def _get_date_param(request: HttpRequest, name: str, required: bool = False) -> Tuple[Optional[date], Optional[str]]:
    """Pull a YYYY-MM-DD value from the query string or body."""
    qp = getattr(request, "query_params", None) or getattr(request, "GET", {})
    data = getattr(request, "data", None) or {}
    raw = qp.get(name) or (data.get(name) if hasattr(data, "get") else None)
    if not raw:
        if required:
            return None, f"Parameter '{name}' is required (YYYY-MM-DD)."
        return None, None
    try:
        return _parse_iso_date(raw), None
    except ValueError:
        return None, f"Parameter '{name}' must be a date in YYYY-MM-DD format."
