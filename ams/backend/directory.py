"""Organisation master data: departments, users and sensitive areas."""

from __future__ import annotations

from ams.backend.client import BackendClient
from ams.backend.envelope import parse_records
from ams.backend.schemas import AppUser, Department, SensitiveArea, TeamRole


async def list_departments(client: BackendClient) -> list[Department]:
    return parse_records(Department, await client.get("/admin/AdminDepartments"))


async def list_users(client: BackendClient) -> list[AppUser]:
    return parse_records(AppUser, await client.get("/admin/AdminUsers"))


async def list_auditee_owners(client: BackendClient) -> list[AppUser]:
    """Active users holding the auditee-owner role."""
    return [
        u
        for u in await list_users(client)
        if u.is_active and (u.role_name or "").replace(" ", "").lower() == TeamRole.AUDITEE_OWNER.lower()
    ]


async def list_sensitive_areas(client: BackendClient) -> list[SensitiveArea]:
    return parse_records(SensitiveArea, await client.get("/DepartmentSensitiveArea"))
