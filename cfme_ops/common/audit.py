"""Audit trail: best-effort JSON events to an operator webhook."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import requests

from .config import OpsConfig

logger = logging.getLogger("cfme.audit")

AUDIT_TIMEOUT_S = 5


def audit_event(cfg: OpsConfig, event: str, details: dict[str, Any]) -> bool:
    """POST one audit event. Never raises; returns True if the endpoint accepted it."""
    if not cfg.audit_url:
        return False
    headers = {"Content-Type": "application/json"}
    if cfg.audit_token:
        headers["Authorization"] = f"Bearer {cfg.audit_token}"
    try:
        r = requests.post(cfg.audit_url, json={
            "event_type": event,
            "details": details,
            "source": "cfme-ops",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }, headers=headers, timeout=AUDIT_TIMEOUT_S)
    except requests.RequestException as e:
        logger.error(f"Audit log failed: {e}")
        return False
    if not r.ok:
        logger.warning("Audit endpoint rejected %s: HTTP %d", event, r.status_code)
    return r.ok
