"""Audit criteria master data and audit-to-criteria mappings."""

from __future__ import annotations

from typing import Any

from ams.backend.client import BackendClient
from ams.backend.envelope import parse_records, unwrap_one
from ams.backend.schemas import AuditCriteriaMap, Criterion

# -- master data -------------------------------------------------------------


async def list_criteria(client: BackendClient) -> list[Criterion]:
    return parse_records(Criterion, await client.get("/AuditCriteria"))


async def get_criterion(client: BackendClient, criteria_id: str) -> Criterion:
    return Criterion.model_validate(unwrap_one(await client.get(f"/AuditCriteria/{criteria_id}")))


async def create_criterion(client: BackendClient, payload: dict[str, Any]) -> Criterion:
    return Criterion.model_validate(unwrap_one(await client.post("/AuditCriteria", payload)) or payload)


async def update_criterion(client: BackendClient, criteria_id: str, payload: dict[str, Any]) -> Any:
    return await client.put(f"/AuditCriteria/{criteria_id}", payload)


async def delete_criterion(client: BackendClient, criteria_id: str) -> None:
    await client.delete(f"/AuditCriteria/{criteria_id}")


# -- audit mappings ----------------------------------------------------------


async def list_criteria_maps(client: BackendClient) -> list[AuditCriteriaMap]:
    return parse_records(AuditCriteriaMap, await client.get("/AuditCriteriaMap"))


async def list_criteria_for_audit(client: BackendClient, audit_id: str) -> list[AuditCriteriaMap]:
    return parse_records(AuditCriteriaMap, await client.get(f"/AuditCriteriaMap/audit/{audit_id}"))


async def list_criteria_for_audit_department(
    client: BackendClient, audit_id: str, dept_id: str
) -> list[AuditCriteriaMap]:
    """Criteria an audit applies to one of its departments."""
    payload = await client.get(f"/AuditCriteriaMap/audit/{audit_id}/department/{dept_id}")
    return parse_records(AuditCriteriaMap, payload)


async def add_criterion_to_audit(client: BackendClient, audit_id: str, criteria_id: str) -> Any:
    return await client.post("/AuditCriteriaMap", {"auditId": audit_id, "criteriaId": criteria_id})


async def remove_criterion_from_audit(client: BackendClient, audit_id: str, criteria_id: str) -> Any:
    return await client.delete(f"/AuditCriteriaMap/{audit_id}/{criteria_id}")


def criteria_ids(maps: list[AuditCriteriaMap]) -> set[str]:
    return {m.criteria_id for m in maps if m.criteria_id}
