"""
Usage telemetry.

Best-effort run events: which account was reconciled, the mapping template used,
how many bank rows were considered and whether the run succeeded. Delivery
failures never reach the caller.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from .models import ReconciliationResult
from .settings import DEFAULT_SETTINGS, ReconSettings

EVENT_NAME = "reconciliation_run"


def build_run_event(
    account: str,
    result: Optional[ReconciliationResult] = None,
    template_name: Optional[str] = None,
    bank_count: Optional[int] = None,
    success: Optional[bool] = None,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    if success is None:
        success = result is not None
    if result is not None:
        template_name = template_name or result.template_name
        bank_count = result.bank_count if bank_count is None else bank_count
    return {
        "event": EVENT_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "account": account,
        "template_name": template_name,
        "bank_records": int(bank_count or 0),
        "status": "success" if success else "failure",
        "error": error,
    }


def send_run_event(event: Dict[str, Any], settings: ReconSettings = DEFAULT_SETTINGS) -> bool:
    """POST the event; returns False (never raises) when disabled or on any failure."""
    if not settings.telemetry_enabled or not settings.telemetry_url:
        return False
    try:
        response = httpx.post(settings.telemetry_url, json=event, timeout=settings.telemetry_timeout)
        response.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        print(f"[WARN] Telemetry not delivered: {e}")
        return False
    return True
