"""Audit team members and schedule milestones."""

from __future__ import annotations

from typing import Any

from ams.backend.client import BackendClient
from ams.backend.envelope import parse_records
from ams.backend.schemas import ScheduleMilestone, TeamMember

# -- team --------------------------------------------------------------------


async def add_team_member(
    client: BackendClient, audit_id: str, user_id: str, role_in_team: str, *, is_lead: bool = False
) -> Any:
    body = {"auditId": audit_id, "userId": user_id, "roleInTeam": role_in_team, "isLead": is_lead}
    return await client.post("/AuditTeam", body)


async def list_team(client: BackendClient) -> list[TeamMember]:
    return parse_records(TeamMember, await client.get("/AuditTeam"))


async def list_team_for_audit(client: BackendClient, audit_id: str) -> list[TeamMember]:
    target = str(audit_id).strip().lower()
    return [m for m in await list_team(client) if (m.audit_id or "").strip().lower() == target]


# -- schedule ----------------------------------------------------------------


async def add_schedule(
    client: BackendClient,
    audit_id: str,
    milestone_name: str,
    due_date: str,
    *,
    status: str,
    notes: str = "",
) -> Any:
    body = {
        "auditId": audit_id,
        "milestoneName": milestone_name,
        "dueDate": due_date,
        "status": status,
        "notes": notes,
    }
    return await client.post("/AuditSchedule", body)


async def update_schedule(client: BackendClient, schedule_id: str, payload: dict[str, Any]) -> Any:
    return await client.put(f"/AuditSchedule/{schedule_id}", payload)


async def delete_schedule(client: BackendClient, schedule_id: str) -> Any:
    return await client.delete(f"/AuditSchedule/{schedule_id}")


async def list_schedules_for_audit(client: BackendClient, audit_id: str) -> list[ScheduleMilestone]:
    return parse_records(ScheduleMilestone, await client.get(f"/AuditSchedule/audit/{audit_id}"))
