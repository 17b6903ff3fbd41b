"""Tests for checklist item order validation."""

from __future__ import annotations

import json

import pytest

from ams.backend.client import BackendClient
from ams.backend.schemas import ChecklistItem
from ams.planning.checklists import create_checklist_items, update_checklist_item, validate_item_orders
from tests.fake_backend import FakeBackend


def _item(item_id: str, order: int | None, template_id: str = "T1") -> ChecklistItem:
    return ChecklistItem(item_id=item_id, template_id=template_id, order=order, question_text=f"Q{item_id}")


class TestValidateItemOrders:
    def test_unique_orders(self) -> None:
        assert validate_item_orders([_item("1", 1), _item("2", 2), _item("3", None), _item("4", None)]) == []

    def test_duplicates_within_template(self) -> None:
        errors = validate_item_orders([_item("1", 1), _item("2", 1), _item("3", 1, "T2")])
        assert errors == ["Order 1 is used by 2 items in template T1: Q1, Q2"]


@pytest.mark.asyncio
class TestCreateChecklistItems:
    async def test_duplicate_blocks_every_write(
        self, fake_backend: FakeBackend, backend_client: BackendClient
    ) -> None:
        fake_backend.on("GET", "/ChecklistItem/template/T1", [{"itemId": 1, "templateId": "T1", "order": 1}])
        fake_backend.on("POST", "/ChecklistItem", {"itemId": 9})

        with pytest.raises(ValueError, match="Order 1"):
            await create_checklist_items(
                backend_client, "T1", [{"questionText": "New", "order": 2}, {"questionText": "Dup", "order": 1}]
            )
        assert fake_backend.calls("POST", "/ChecklistItem") == []

    async def test_items_created_in_order(self, fake_backend: FakeBackend, backend_client: BackendClient) -> None:
        fake_backend.on("POST", "/ChecklistItem", lambda r: {"itemId": 9, **json.loads(r.content)})

        created = await create_checklist_items(
            backend_client, "T1", [{"questionText": "A", "order": 1}, {"questionText": "B", "order": 2}], existing=[]
        )

        assert [c.question_text for c in created] == ["A", "B"]
        assert [b["order"] for b in fake_backend.bodies("POST", "/ChecklistItem")] == [1, 2]
        assert all(b["templateId"] == "T1" for b in fake_backend.bodies("POST", "/ChecklistItem"))

    async def test_update_checks_siblings(self, fake_backend: FakeBackend, backend_client: BackendClient) -> None:
        siblings = [_item("1", 1), _item("2", 2)]
        with pytest.raises(ValueError):
            await update_checklist_item(backend_client, "2", {"order": 1}, siblings)

        fake_backend.on("PUT", "/ChecklistItem/2", None)
        await update_checklist_item(backend_client, "2", {"order": 3}, siblings)
        assert fake_backend.bodies("PUT", "/ChecklistItem/2") == [{"order": 3}]
