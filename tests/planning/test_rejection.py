"""Tests for rejection comment lookup."""

from __future__ import annotations

import pytest

from ams.backend.client import BackendClient
from ams.backend.schemas import AuditApproval
from ams.planning.rejection import latest_rejection, load_rejection_comment
from tests.fake_backend import FakeBackend


class TestLatestRejection:
    def test_picks_most_recent_for_audit(self) -> None:
        approvals = [
            AuditApproval.model_validate(
                {"auditId": "A1", "status": "Rejected", "comment": "old", "approvedAt": "2025-01-01T08:00:00"}
            ),
            AuditApproval.model_validate(
                {"auditId": "a1", "status": "Rejected", "comment": "new", "createdAt": "2025-02-01T08:00:00Z"}
            ),
            AuditApproval.model_validate(
                {"auditId": "A1", "status": "Approved", "comment": "ok", "approvedAt": "2025-03-01T08:00:00"}
            ),
            AuditApproval.model_validate({"audit": {"auditId": "A2"}, "status": "Declined", "comment": "other"}),
        ]
        assert latest_rejection(approvals, "A1").comment == "new"
        assert latest_rejection(approvals, "A2").comment == "other"
        assert latest_rejection(approvals, "A3") is None


@pytest.mark.asyncio
class TestLoadRejectionComment:
    async def test_not_rejected(self, fake_backend: FakeBackend, backend_client: BackendClient) -> None:
        result = await load_rejection_comment(backend_client, "A1", {"status": "Draft"})
        assert result.comment is None
        assert result.rejected_by is None
        assert fake_backend.requests == []

    async def test_declined_by_lead_with_inline_comment(self, backend_client: BackendClient) -> None:
        result = await load_rejection_comment(
            backend_client, "A1", {"audit": {"status": "Declined", "comment": "Scope too wide"}}
        )
        assert result.rejected_by == "Lead Auditor"
        assert result.comment == "Scope too wide"

    async def test_rejected_by_director_from_approvals(
        self, fake_backend: FakeBackend, backend_client: BackendClient
    ) -> None:
        fake_backend.on(
            "GET",
            "/AuditApproval",
            {"$values": [{"auditId": "A1", "status": "Rejected", "rejectionComment": "Missing criteria"}]},
        )
        result = await load_rejection_comment(backend_client, "A1", {"auditId": "A1", "status": "Rejected"})
        assert result.rejected_by == "Director"
        assert result.comment == "Missing criteria"

    async def test_approvals_unavailable(self, fake_backend: FakeBackend, backend_client: BackendClient) -> None:
        fake_backend.fail("GET", "/AuditApproval", 503)
        result = await load_rejection_comment(backend_client, "A1", {"status": "Rejected"})
        assert result.rejected_by == "Director"
        assert result.comment is None
