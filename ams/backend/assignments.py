"""Auditor assignment checks."""

from __future__ import annotations

from datetime import date

from ams.backend.client import BackendClient
from ams.backend.envelope import unwrap_one
from ams.backend.schemas import AssignmentValidation


async def validate_assignment(
    client: BackendClient, auditor_id: str, start_date: date, end_date: date
) -> AssignmentValidation:
    """Ask whether ``auditor_id`` may be given a new plan in the period."""
    body = {
        "auditorId": auditor_id,
        "startDate": start_date.isoformat(),
        "endDate": end_date.isoformat(),
    }
    payload = await client.post("/AuditPlanAssignment/validateAssignment", body)
    return AssignmentValidation.model_validate(unwrap_one(payload) or {})
