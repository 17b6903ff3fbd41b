"""Checklist item ordering rules for template administration."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from ams.backend import checklists as checklists_api
from ams.backend.client import BackendClient
from ams.backend.schemas import ChecklistItem

logger = logging.getLogger(__name__)


def validate_item_orders(items: Iterable[ChecklistItem]) -> list[str]:
    """Report ``order`` values used by more than one item of the same template."""
    seen: dict[tuple[str, int], list[ChecklistItem]] = {}
    for item in items:
        if item.order is None:
            continue
        seen.setdefault((item.template_id or "", item.order), []).append(item)

    errors = []
    for (template_id, order), dupes in sorted(seen.items()):
        if len(dupes) > 1:
            labels = ", ".join(d.question_text or d.item_id or "?" for d in dupes)
            errors.append(f"Order {order} is used by {len(dupes)} items in template {template_id}: {labels}")
    return errors


async def create_checklist_items(
    client: BackendClient,
    template_id: str,
    payloads: list[dict[str, Any]],
    existing: list[ChecklistItem] | None = None,
) -> list[ChecklistItem]:
    """Create items for a template after checking their orders.

    Raises:
        ValueError: If any order collides; nothing is created in that case.
    """
    if existing is None:
        existing = await checklists_api.list_items_for_template(client, template_id)
    new_items = [ChecklistItem.model_validate({**p, "templateId": template_id}) for p in payloads]

    errors = validate_item_orders([*existing, *new_items])
    if errors:
        raise ValueError("; ".join(errors))

    created = []
    for item in new_items:
        body = item.model_dump(by_alias=True, exclude_none=True, exclude={"item_id"})
        created.append(await checklists_api.create_item(client, body))
    logger.info("Created %d checklist item(s) for template %s", len(created), template_id)
    return created


async def update_checklist_item(
    client: BackendClient,
    item_id: str,
    payload: dict[str, Any],
    siblings: list[ChecklistItem],
) -> Any:
    """Update one item; ``siblings`` are the other items of its template.

    Raises:
        ValueError: If the new order collides with a sibling.
    """
    updated = ChecklistItem.model_validate({**payload, "itemId": item_id})
    others = [s for s in siblings if s.item_id != item_id]
    if updated.template_id is None and others:
        updated.template_id = others[0].template_id
    errors = validate_item_orders([*others, updated])
    if errors:
        raise ValueError("; ".join(errors))
    return await checklists_api.update_item(client, item_id, payload)
