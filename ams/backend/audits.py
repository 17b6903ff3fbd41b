"""Audit plan endpoints: CRUD, period queries and the approval workflow."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

import httpx

from ams.backend.client import BackendClient
from ams.backend.envelope import parse_records, unwrap, unwrap_one
from ams.backend.schemas import (
    AuditApproval,
    AuditPlan,
    DepartmentUniqueness,
    PeriodStatus,
)

logger = logging.getLogger(__name__)


class AuditNotFoundError(LookupError):
    """Raised when an audit id is unknown to the backend."""


def extract_audit_id(response: Any) -> str | None:
    """Read the new audit's id from a create response.

    The backend answers with ``{"auditId": ...}``, ``{"id": ...}`` or the
    bare id.
    """
    body = unwrap_one(response)
    if isinstance(body, dict):
        value = body.get("auditId") or body.get("id")
    else:
        value = body
    if value in (None, "") or isinstance(value, (dict, list)):
        return None
    return str(value)


def _period_params(start_date: date, end_date: date) -> dict[str, str]:
    return {"startDate": start_date.isoformat(), "endDate": end_date.isoformat()}


async def list_audits(client: BackendClient) -> list[AuditPlan]:
    return parse_records(AuditPlan, await client.get("/Audits"))


async def get_audit_plan(client: BackendClient, audit_id: str) -> dict[str, Any]:
    """Fetch the full plan details, falling back to the plan list.

    The detail endpoint returns the plan with its nested scope departments,
    criteria, team and schedules; when it fails the bare plan row is looked
    up in ``GET /Audits``.

    Raises:
        AuditNotFoundError: If neither source knows the audit.
    """
    try:
        body = unwrap_one(await client.get(f"/AuditPlan/{audit_id}"))
        if isinstance(body, dict):
            return body
    except httpx.HTTPError as exc:
        logger.warning("AuditPlan/%s failed (%s), falling back to list filtering", audit_id, exc)

    for raw in unwrap(await client.get("/Audits")):
        if isinstance(raw, dict) and audit_id in (str(raw.get("auditId")), str(raw.get("id"))):
            return raw
    raise AuditNotFoundError(f"Plan with ID {audit_id} not found")


async def create_audit(client: BackendClient, payload: dict[str, Any]) -> str:
    """Create an audit and return its id."""
    audit_id = extract_audit_id(await client.post("/Audits", payload))
    if not audit_id:
        raise ValueError("No auditId returned from the create audit endpoint")
    return audit_id


async def update_audit(client: BackendClient, audit_id: str, payload: dict[str, Any]) -> Any:
    return await client.put(f"/Audits/{audit_id}", payload)


async def complete_update_audit_plan(
    client: BackendClient, audit_id: str, payload: dict[str, Any]
) -> Any:
    """Replace the plan header in one call (edit mode of the wizard)."""
    return await client.put(f"/AuditPlan/{audit_id}", payload)


async def delete_audit(client: BackendClient, audit_id: str) -> Any:
    return await client.delete(f"/Audits/{audit_id}")


async def list_audits_by_period(
    client: BackendClient, start_date: date, end_date: date
) -> list[AuditPlan]:
    """Audits the backend associates with the period ``[start_date, end_date]``."""
    payload = await client.get("/Audits/by-period", params=_period_params(start_date, end_date))
    return parse_records(AuditPlan, payload)


async def get_period_status(client: BackendClient, start_date: date, end_date: date) -> PeriodStatus:
    payload = await client.get("/Audits/period-status", params=_period_params(start_date, end_date))
    return PeriodStatus.model_validate(unwrap_one(payload) or {})


async def validate_department(
    client: BackendClient,
    audit_id: str | None,
    department_ids: list[str],
    start_date: date,
    end_date: date,
) -> DepartmentUniqueness:
    """Ask the backend whether departments are already used in the period."""
    body = {
        "auditId": audit_id,
        "departmentIds": department_ids,
        **_period_params(start_date, end_date),
    }
    payload = await client.post("/Audits/validate-department", body)
    return DepartmentUniqueness.model_validate(unwrap_one(payload) or {})


# -- approval workflow -------------------------------------------------------


async def submit_to_lead_auditor(client: BackendClient, audit_id: str) -> Any:
    return await client.post(f"/Audits/{audit_id}/submit-to-lead-auditor")


async def approve_forward_director(
    client: BackendClient, audit_id: str, comment: str | None = None
) -> Any:
    return await client.post(f"/Audits/{audit_id}/approve-forward-director", {"comment": comment or ""})


async def approve_plan(client: BackendClient, audit_id: str, comment: str | None = None) -> Any:
    return await client.post(f"/Audits/{audit_id}/approve-plan", {"comment": comment or ""})


async def reject_plan_content(client: BackendClient, audit_id: str, comment: str | None = None) -> Any:
    # The backend reads auditId from the body as well as the path.
    return await client.post(
        f"/Audits/{audit_id}/reject-plan-content", {"auditId": audit_id, "comment": comment or ""}
    )


async def list_audit_approvals(client: BackendClient) -> list[AuditApproval]:
    return parse_records(AuditApproval, await client.get("/AuditApproval"))
