"""Audit scope departments: which departments an audit covers."""

from __future__ import annotations

from typing import Any

from ams.backend.client import BackendClient
from ams.backend.envelope import parse_records, unwrap_one
from ams.backend.schemas import ScopeDepartment


async def list_scope_departments(client: BackendClient) -> list[ScopeDepartment]:
    return parse_records(ScopeDepartment, await client.get("/AuditScopeDepartment"))


async def list_scope_departments_for_audit(client: BackendClient, audit_id: str) -> list[ScopeDepartment]:
    return parse_records(ScopeDepartment, await client.get(f"/AuditScopeDepartment/audit/{audit_id}"))


async def add_scope_department(client: BackendClient, audit_id: str, dept_id: str) -> ScopeDepartment:
    """Attach a department to an audit and return the created association."""
    body = unwrap_one(await client.post("/AuditScopeDepartment", {"auditId": audit_id, "deptId": dept_id}))
    if not isinstance(body, dict):
        body = {}
    # Some backend versions answer without echoing the department.
    return ScopeDepartment.model_validate({"auditId": audit_id, "deptId": dept_id, **body})


async def delete_scope_department(client: BackendClient, scope_dept_id: str) -> Any:
    return await client.delete(f"/AuditScopeDepartment/{scope_dept_id}")


async def set_sensitive_flag(
    client: BackendClient,
    scope_dept_id: str,
    *,
    sensitive_flag: bool,
    areas: list[str],
    notes: str = "",
) -> Any:
    body = {"sensitiveFlag": sensitive_flag, "areas": areas, "notes": notes}
    return await client.put(f"/AuditScopeDepartment/{scope_dept_id}/sensitive-flag", body)


async def list_sensitive_departments(client: BackendClient, audit_id: str) -> list[ScopeDepartment]:
    return parse_records(
        ScopeDepartment, await client.get(f"/AuditScopeDepartment/audit/{audit_id}/sensitive")
    )
