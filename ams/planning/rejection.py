"""Who rejected a plan, and why."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC
from typing import Any

import httpx

from ams.backend import audits as audits_api
from ams.backend.client import BackendClient
from ams.backend.schemas import AuditApproval, normalize_status

logger = logging.getLogger(__name__)

# The backend marks a lead auditor rejection "Declined" and a director rejection "Rejected".
REJECTED_BY = {
    "declined": "Lead Auditor",
    "rejected": "Director",
}


@dataclass
class Rejection:
    comment: str | None = None
    rejected_by: str | None = None


def _nested(details: Mapping[str, Any]) -> Mapping[str, Any]:
    audit = details.get("audit")
    return audit if isinstance(audit, Mapping) else {}


def _sort_key(approval: AuditApproval) -> float:
    moment = approval.decided_at
    if moment is None:
        return 0.0
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.timestamp()


def latest_rejection(approvals: list[AuditApproval], audit_id: str) -> AuditApproval | None:
    target = audit_id.strip().lower()
    rejected = [
        a
        for a in approvals
        if a.is_rejection and target and (a.audit_id or "").strip().lower() == target
    ]
    return max(rejected, key=_sort_key, default=None)


async def load_rejection_comment(
    client: BackendClient, audit_id: str, details: Mapping[str, Any]
) -> Rejection:
    """Rejection info for a plan; empty unless the plan is rejected or declined."""
    nested = _nested(details)
    status = normalize_status(details.get("status") or nested.get("status"))
    rejected_by = REJECTED_BY.get(status)
    if rejected_by is None:
        return Rejection()

    comment = details.get("comment") or details.get("note") or nested.get("comment") or nested.get("note")
    if comment:
        return Rejection(comment=str(comment), rejected_by=rejected_by)

    current = str(details.get("auditId") or details.get("id") or nested.get("auditId") or audit_id)
    try:
        approvals = await audits_api.list_audit_approvals(client)
    except httpx.HTTPError as exc:
        logger.warning("Failed to load audit approvals for plan %s: %s", current, exc)
        return Rejection(rejected_by=rejected_by)

    latest = latest_rejection(approvals, current)
    if latest is None:
        logger.info("No rejection approval found for audit %s among %d approvals", current, len(approvals))
        return Rejection(rejected_by=rejected_by)
    return Rejection(comment=latest.any_comment, rejected_by=rejected_by)
