"""Checklist template item routes."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.encoders import jsonable_encoder

from ams.api.deps import get_backend_client
from ams.api.schemas.planning import ChecklistItemsRequest
from ams.backend import checklists as checklists_api
from ams.backend.client import BackendClient
from ams.backend.schemas import ChecklistItem
from ams.planning.checklists import create_checklist_items, validate_item_orders

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/checklists", tags=["checklists"])


@router.get("/templates")
async def list_templates(client: BackendClient = Depends(get_backend_client)) -> list[dict[str, Any]]:
    return jsonable_encoder(await checklists_api.list_templates(client))


@router.get("/templates/{template_id}/items")
async def list_template_items(
    template_id: str, client: BackendClient = Depends(get_backend_client)
) -> list[dict[str, Any]]:
    return jsonable_encoder(await checklists_api.list_items_for_template(client, template_id))


@router.post("/templates/{template_id}/items/validate")
async def validate_template_items(
    template_id: str,
    body: ChecklistItemsRequest,
    client: BackendClient = Depends(get_backend_client),
) -> dict[str, Any]:
    """Report order collisions among the template's items and the given ones."""
    existing = await checklists_api.list_items_for_template(client, template_id)
    candidates = [ChecklistItem.model_validate({**item, "templateId": template_id}) for item in body.items]
    errors = validate_item_orders([*existing, *candidates])
    return {"is_valid": not errors, "errors": errors}


@router.post("/templates/{template_id}/items", status_code=status.HTTP_201_CREATED)
async def create_template_items(
    template_id: str,
    body: ChecklistItemsRequest,
    client: BackendClient = Depends(get_backend_client),
) -> list[dict[str, Any]]:
    """Create items; order collisions are rejected with 422 before any write."""
    created = await create_checklist_items(client, template_id, body.items)
    return jsonable_encoder(created)
