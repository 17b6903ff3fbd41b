"""Audit plan routes.

Covers the plan wizard (department validation, conflict check, submit and
journal retry), the plan details view, period and assignment checks, and
the review workflow transitions.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import date
from typing import Any

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.encoders import jsonable_encoder

from ams.api.deps import get_backend_client, get_submitter
from ams.api.schemas.planning import (
    AssignmentValidationRequest,
    ConflictCheckRequest,
    DepartmentValidationRequest,
    PlanDecisionRequest,
)
from ams.backend import audits as audits_api
from ams.backend import criteria as criteria_api
from ams.backend import directory as directory_api
from ams.backend.client import BackendClient
from ams.backend.schemas import Department
from ams.planning.conflicts import (
    check_audit_conflicts,
    departments_in_scope,
    validate_department_with_conditions,
)
from ams.planning.details import load_plan_details
from ams.planning.submission import AuditPlanSubmitter, PlanForm, load_submission_context
from ams.planning.validators import (
    check_period_status,
    validate_assignment_before_create,
    validate_department_uniqueness,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/audit-plans", tags=["audit-plans"])


async def _departments_or_empty(client: BackendClient) -> list[Department]:
    try:
        return await directory_api.list_departments(client)
    except httpx.HTTPError as exc:
        logger.warning("Department names unavailable: %s", exc)
        return []


def _names(departments: list[Department]) -> dict[str, str]:
    return {d.dept_id: d.name for d in departments if d.dept_id and d.name}


@router.get("")
async def list_plans(client: BackendClient = Depends(get_backend_client)) -> list[dict[str, Any]]:
    """List all audit plans."""
    return jsonable_encoder(await audits_api.list_audits(client))


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_plan(
    form: PlanForm,
    response: Response,
    client: BackendClient = Depends(get_backend_client),
    submitter: AuditPlanSubmitter = Depends(get_submitter),
) -> dict[str, Any]:
    """Validate and submit the plan wizard.

    A conflict the caller has not acknowledged comes back with
    ``success: false`` and the conflict details with 409; nothing is written
    then. A plan the backend refused to create answers 502.
    """
    context = await load_submission_context(client)
    result = await submitter.submit(form, context)
    if not result.success:
        response.status_code = (
            status.HTTP_409_CONFLICT if result.conflict is not None else status.HTTP_502_BAD_GATEWAY
        )
    return jsonable_encoder(result)


@router.post("/submissions/{submission_id}/retry")
async def retry_submission(
    submission_id: uuid.UUID,
    submitter: AuditPlanSubmitter = Depends(get_submitter),
) -> dict[str, Any]:
    """Re-send the failed writes of a journaled submission."""
    try:
        result = await submitter.retry(submission_id)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return jsonable_encoder(result)


@router.post("/validate-departments")
async def validate_departments(
    body: DepartmentValidationRequest,
    client: BackendClient = Depends(get_backend_client),
) -> dict[str, Any]:
    """Check departments against other audits overlapping the period."""
    departments = await _departments_or_empty(client)
    result = await validate_department_with_conditions(
        client,
        body.audit_id,
        body.department_ids,
        body.start_date,
        body.end_date,
        body.selected_criteria_ids,
        department_names=_names(departments),
    )
    return jsonable_encoder(result)


@router.post("/validate-uniqueness")
async def validate_uniqueness(
    body: DepartmentValidationRequest,
    client: BackendClient = Depends(get_backend_client),
) -> dict[str, Any]:
    """Ask the backend whether the departments are already used in the period."""
    result = await validate_department_uniqueness(
        client, body.audit_id, body.department_ids, body.start_date, body.end_date
    )
    return jsonable_encoder(result)


@router.post("/conflict-check")
async def conflict_check(
    body: ConflictCheckRequest,
    client: BackendClient = Depends(get_backend_client),
) -> dict[str, Any]:
    """Classify the conflicts a new plan would have."""
    departments, criteria = await asyncio.gather(
        directory_api.list_departments(client),
        criteria_api.list_criteria(client),
    )
    dept_ids = departments_in_scope(
        body.scope_level, body.department_ids, [d.dept_id for d in departments if d.dept_id]
    )
    result = await check_audit_conflicts(
        client,
        department_ids=dept_ids,
        start_date=body.start_date,
        end_date=body.end_date,
        selected_criteria_ids=body.selected_criteria_ids,
        selected_template_ids=body.selected_template_ids,
        criteria=criteria,
        department_names=_names(departments),
    )
    return jsonable_encoder(result)


@router.get("/period-status")
async def period_status(
    start_date: date = Query(...),
    end_date: date = Query(...),
    client: BackendClient = Depends(get_backend_client),
) -> dict[str, Any]:
    """Whether new plans may still be assigned in the period."""
    return jsonable_encoder(await check_period_status(client, start_date, end_date))


@router.post("/validate-assignment")
async def validate_assignment(
    body: AssignmentValidationRequest,
    client: BackendClient = Depends(get_backend_client),
) -> dict[str, Any]:
    """Whether the auditor may be assigned a plan in the period."""
    result = await validate_assignment_before_create(client, body.auditor_id, body.start_date, body.end_date)
    return jsonable_encoder(result)


@router.get("/{audit_id}")
async def get_plan_details(
    audit_id: str,
    client: BackendClient = Depends(get_backend_client),
) -> dict[str, Any]:
    """Plan details with departments, criteria, team, schedule, sensitive areas and rejection."""
    return jsonable_encoder(await load_plan_details(client, audit_id))


@router.delete("/{audit_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_plan(audit_id: str, client: BackendClient = Depends(get_backend_client)) -> None:
    await audits_api.delete_audit(client, audit_id)


# -- Review workflow ---------------------------------------------------------


@router.post("/{audit_id}/submit-to-lead")
async def submit_to_lead(audit_id: str, client: BackendClient = Depends(get_backend_client)) -> dict[str, Any]:
    """Send a draft plan to the lead auditor for review."""
    await audits_api.submit_to_lead_auditor(client, audit_id)
    logger.info("Audit %s submitted to lead auditor", audit_id)
    return {"audit_id": audit_id, "status": "submitted"}


@router.post("/{audit_id}/forward-director")
async def forward_to_director(
    audit_id: str,
    body: PlanDecisionRequest,
    client: BackendClient = Depends(get_backend_client),
) -> dict[str, Any]:
    await audits_api.approve_forward_director(client, audit_id, body.comment)
    logger.info("Audit %s forwarded to director", audit_id)
    return {"audit_id": audit_id, "status": "forwarded"}


@router.post("/{audit_id}/approve")
async def approve(
    audit_id: str,
    body: PlanDecisionRequest,
    client: BackendClient = Depends(get_backend_client),
) -> dict[str, Any]:
    await audits_api.approve_plan(client, audit_id, body.comment)
    logger.info("Audit %s approved", audit_id)
    return {"audit_id": audit_id, "status": "approved"}


@router.post("/{audit_id}/reject")
async def reject(
    audit_id: str,
    body: PlanDecisionRequest,
    client: BackendClient = Depends(get_backend_client),
) -> dict[str, Any]:
    """Reject the plan content; the comment is shown on the plan details."""
    await audits_api.reject_plan_content(client, audit_id, body.comment)
    logger.info("Audit %s rejected", audit_id)
    return {"audit_id": audit_id, "status": "rejected"}
