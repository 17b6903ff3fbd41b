"""Checklist templates, their items, and audit-to-template mappings."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from ams.backend.client import BackendClient
from ams.backend.envelope import parse_records, unwrap_one
from ams.backend.schemas import AuditTemplateMap, ChecklistItem, ChecklistTemplate

logger = logging.getLogger(__name__)

DEFAULT_MAP_STATUS = "Active"

# -- templates ---------------------------------------------------------------


async def list_templates(client: BackendClient) -> list[ChecklistTemplate]:
    return parse_records(ChecklistTemplate, await client.get("/ChecklistTemplate"))


async def get_template(client: BackendClient, template_id: str) -> ChecklistTemplate:
    return ChecklistTemplate.model_validate(unwrap_one(await client.get(f"/ChecklistTemplate/{template_id}")))


async def create_template(client: BackendClient, payload: dict[str, Any]) -> ChecklistTemplate:
    body = unwrap_one(await client.post("/ChecklistTemplate", payload))
    return ChecklistTemplate.model_validate(body if isinstance(body, dict) else payload)


async def update_template(client: BackendClient, template_id: str, payload: dict[str, Any]) -> Any:
    return await client.put(f"/ChecklistTemplate/{template_id}", payload)


async def delete_template(client: BackendClient, template_id: str) -> None:
    await client.delete(f"/ChecklistTemplate/{template_id}")


# -- items -------------------------------------------------------------------


async def list_items(client: BackendClient) -> list[ChecklistItem]:
    return parse_records(ChecklistItem, await client.get("/ChecklistItem"))


async def list_items_for_template(client: BackendClient, template_id: str) -> list[ChecklistItem]:
    return parse_records(ChecklistItem, await client.get(f"/ChecklistItem/template/{template_id}"))


async def create_item(client: BackendClient, payload: dict[str, Any]) -> ChecklistItem:
    body = unwrap_one(await client.post("/ChecklistItem", payload))
    return ChecklistItem.model_validate(body if isinstance(body, dict) else payload)


async def update_item(client: BackendClient, item_id: str, payload: dict[str, Any]) -> Any:
    return await client.put(f"/ChecklistItem/{item_id}", payload)


async def delete_item(client: BackendClient, item_id: str) -> None:
    await client.delete(f"/ChecklistItem/{item_id}")


# -- audit/template mappings -------------------------------------------------


def _map_path(audit_id: str, template_id: str) -> str:
    return f"/AuditChecklistTemplateMaps/{quote(str(audit_id), safe='')}/{quote(str(template_id), safe='')}"


async def list_template_maps(client: BackendClient) -> list[AuditTemplateMap]:
    return parse_records(AuditTemplateMap, await client.get("/AuditChecklistTemplateMaps"))


async def list_template_maps_for_audit(client: BackendClient, audit_id: str) -> list[AuditTemplateMap]:
    """Mappings of one audit; the backend has no per-audit endpoint."""
    if not audit_id:
        return []
    target = str(audit_id).strip().lower()
    return [
        m for m in await list_template_maps(client) if (m.audit_id or "").strip().lower() == target
    ]


async def add_template_map(
    client: BackendClient, audit_id: str, template_id: str, status: str = DEFAULT_MAP_STATUS
) -> Any:
    body = {"auditId": audit_id, "templateId": template_id, "status": status}
    return await client.post("/AuditChecklistTemplateMaps", body)


async def delete_template_map(client: BackendClient, audit_id: str, template_id: str) -> Any:
    return await client.delete(_map_path(audit_id, template_id))


@dataclass
class TemplateMapSync:
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)


async def sync_template_maps(
    client: BackendClient,
    audit_id: str,
    template_ids: list[str],
    status: str = DEFAULT_MAP_STATUS,
) -> TemplateMapSync:
    """Make the audit's template mappings equal ``template_ids``.

    Mappings no longer selected are deleted first, then the missing ones are
    added. Any failing call propagates.
    """
    result = TemplateMapSync()
    if not audit_id:
        return result

    wanted = list(dict.fromkeys(str(t).strip() for t in template_ids if str(t).strip()))
    existing = list(
        dict.fromkeys(
            m.template_id.strip()
            for m in await list_template_maps_for_audit(client, audit_id)
            if m.template_id
        )
    )

    result.removed = [t for t in existing if t not in wanted]
    result.added = [t for t in wanted if t not in existing]

    await asyncio.gather(*(delete_template_map(client, audit_id, t) for t in result.removed))
    await asyncio.gather(*(add_template_map(client, audit_id, t, status) for t in result.added))
    logger.info(
        "Synced template maps for audit %s: +%d -%d", audit_id, len(result.added), len(result.removed)
    )
    return result
