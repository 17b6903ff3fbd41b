"""Tests for the plan submission orchestrator and its journal."""

from __future__ import annotations

import json
import uuid
from datetime import date
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from ams.backend.client import BackendClient
from ams.backend.schemas import AppUser, ChecklistTemplate, Department, MilestoneName, ScopeLevel
from ams.core.errors import SubmissionError
from ams.core.models import StepStatus, SubmissionPhase, SubmissionStep
from ams.planning.submission import (
    AuditPlanSubmitter,
    PlanForm,
    SubmissionContext,
    build_audit_payload,
    plan_team_steps,
    sensitive_areas_by_department,
)
from tests.fake_backend import FakeBackend

START = date(2025, 3, 1)
END = date(2025, 3, 31)


@pytest.fixture
def context() -> SubmissionContext:
    return SubmissionContext(
        departments=[
            Department(dept_id="D1", name="IT"),
            Department(dept_id="D2", name="Finance"),
            Department(dept_id="D3", name="Library"),
        ],
        auditee_owners=[
            AppUser(user_id="owner-1", dept_id="D1", role_name="AuditeeOwner"),
            AppUser(user_id="owner-9", dept_id="D9", role_name="AuditeeOwner"),
        ],
        templates=[
            ChecklistTemplate(template_id="T1", dept_id="D1"),
            ChecklistTemplate(template_id="T2", dept_id="D2"),
            ChecklistTemplate(template_id="T3", dept_id="D3"),
        ],
    )


def _form(**overrides: Any) -> PlanForm:
    values: dict[str, Any] = {
        "title": "Spring internal audit",
        "start_date": START,
        "end_date": END,
        "scope_level": ScopeLevel.DEPARTMENT,
        "selected_template_ids": ["T1", "T2", "T3"],
        "selected_dept_ids": ["D1", "D2", "D3"],
        "criteria_by_dept": {"D1": ["C1"], "D2": ["C1", "C2"]},
        "auditor_ids": ["aud-1"],
        "lead_auditor_id": "lead-1",
        "schedule": {MilestoneName.KICKOFF: date(2025, 3, 2), MilestoneName.CAPA: date(2025, 3, 30)},
    }
    values.update(overrides)
    return PlanForm(**values)


def _scope_department(request: httpx.Request) -> Any:
    body = json.loads(request.content)
    if body["deptId"] == "D2":
        return httpx.Response(500, json={"message": "Department locked"})
    return {"auditScopeId": f"s-{body['deptId']}"}


@pytest.fixture
def happy_backend(fake_backend: FakeBackend) -> FakeBackend:
    """Backend where every write succeeds and no other audit is planned."""
    fake_backend.on("GET", "/Audits/by-period", [])
    fake_backend.on("POST", "/Audits", {"auditId": "A-NEW"})
    fake_backend.on("GET", "/Audits", [{"auditId": "A-NEW", "title": "Spring internal audit"}])
    fake_backend.on("GET", "/AuditChecklistTemplateMaps", [])
    fake_backend.on("POST", "/AuditChecklistTemplateMaps", {})
    fake_backend.on("POST", "/AuditScopeDepartment", lambda r: {"auditScopeId": f"s-{json.loads(r.content)['deptId']}"})
    fake_backend.on("POST", "/AuditCriteriaMap", {})
    fake_backend.on("POST", "/AuditTeam", {})
    fake_backend.on("POST", "/AuditSchedule", {})
    return fake_backend


# =============================================================================
# Payload and step planning
# =============================================================================


class TestPlanning:
    def test_audit_payload(self) -> None:
        payload = build_audit_payload(_form(title=""))
        assert payload["title"] == "Untitled Plan"
        assert payload["status"] == "Draft"
        assert payload["isPublished"] is False
        assert payload["templateId"] == "T1"
        assert payload["startDate"] == "2025-03-01T00:00:00+00:00"

    def test_sensitive_areas_grouped_by_department(self) -> None:
        departments = [Department(dept_id="D1", name="IT"), Department(dept_id="D2", name="R - D")]
        grouped = sensitive_areas_by_department(
            ["Server room - IT", "Vault - R - D", "no separator"], departments
        )
        assert grouped == {"D1": ["Server room - IT"], "D2": ["Vault - R - D"]}

    def test_team_steps_dedupe_and_owner_scope(self, context: SubmissionContext) -> None:
        form = _form(auditor_ids=["aud-1", "lead-1", "aud-1"])
        steps = plan_team_steps(form, context)
        assert [s.item_key for s in steps] == ["aud-1", "lead-1", "owner-1"]
        assert steps[1].payload == {"userId": "lead-1", "roleInTeam": "Auditor", "isLead": True}
        assert steps[2].payload["roleInTeam"] == "AuditeeOwner"

    def test_academy_scope_adds_every_owner(self, context: SubmissionContext) -> None:
        steps = plan_team_steps(_form(scope_level=ScopeLevel.ACADEMY), context)
        assert {"owner-1", "owner-9"} <= {s.item_key for s in steps}


# =============================================================================
# submit
# =============================================================================


@pytest.mark.asyncio
class TestSubmit:
    async def test_happy_path(
        self, happy_backend: FakeBackend, backend_client: BackendClient, context: SubmissionContext
    ) -> None:
        result = await AuditPlanSubmitter(backend_client).submit(_form(), context)

        assert result.success
        assert result.audit_id == "A-NEW"
        assert result.submission_id is None
        assert not result.has_failures
        assert [p.phase for p in result.phases] == [
            SubmissionPhase.TEMPLATES,
            SubmissionPhase.DEPARTMENTS,
            SubmissionPhase.CRITERIA,
            SubmissionPhase.TEAM,
            SubmissionPhase.SCHEDULE,
        ]
        assert sorted(b["criteriaId"] for b in happy_backend.bodies("POST", "/AuditCriteriaMap")) == ["C1", "C2"]
        assert len(happy_backend.calls("POST", "/AuditSchedule")) == 2
        assert [p.audit_id for p in result.plans] == ["A-NEW"]

    async def test_partial_department_failure_keeps_audit(
        self, happy_backend: FakeBackend, backend_client: BackendClient, context: SubmissionContext
    ) -> None:
        happy_backend.on("POST", "/AuditScopeDepartment", _scope_department)

        result = await AuditPlanSubmitter(backend_client).submit(_form(), context)

        assert result.success
        assert result.audit_id == "A-NEW"
        departments = next(p for p in result.phases if p.phase == SubmissionPhase.DEPARTMENTS)
        assert departments.attempted == 3
        assert departments.failed == 1
        assert departments.succeeded == 2
        assert departments.errors == ["D2: Department locked"]
        assert "1 department(s) failed to attach." in result.warnings
        # Later phases still ran.
        assert happy_backend.calls("POST", "/AuditTeam")
        assert happy_backend.calls("DELETE", "/Audits/A-NEW") == []

    async def test_sensitive_flags_follow_department_attach(
        self, happy_backend: FakeBackend, backend_client: BackendClient, context: SubmissionContext
    ) -> None:
        happy_backend.on("PUT", "/AuditScopeDepartment/s-D1/sensitive-flag", None)
        form = _form(sensitive_flag=True, sensitive_areas=["Server room - IT"], sensitive_notes="Badge only")

        result = await AuditPlanSubmitter(backend_client).submit(form, context)

        assert SubmissionPhase.SENSITIVE_FLAGS in [p.phase for p in result.phases]
        assert happy_backend.bodies("PUT", "/AuditScopeDepartment/s-D1/sensitive-flag") == [
            {"sensitiveFlag": True, "areas": ["Server room - IT"], "notes": "Badge only"}
        ]

    async def test_invalid_form_raises_with_step(
        self, fake_backend: FakeBackend, backend_client: BackendClient, context: SubmissionContext
    ) -> None:
        with pytest.raises(SubmissionError) as exc_info:
            await AuditPlanSubmitter(backend_client).submit(_form(selected_template_ids=[]), context)
        assert exc_info.value.step == 3
        assert fake_backend.requests == []

    async def test_unacknowledged_conflict_stops_before_writes(
        self, happy_backend: FakeBackend, backend_client: BackendClient, context: SubmissionContext
    ) -> None:
        happy_backend.on(
            "GET",
            "/Audits/by-period",
            [{"auditId": "A1", "title": "Other", "startDate": "2025-03-10", "endDate": "2025-03-12"}],
        )
        happy_backend.on("GET", "/AuditScopeDepartment/audit/A1", [{"deptId": "D1"}])
        happy_backend.on("GET", "/AuditCriteriaMap/audit/A1/department/D1", [{"criteriaId": "C1"}])

        submitter = AuditPlanSubmitter(backend_client)
        result = await submitter.submit(_form(), context)

        assert not result.success
        assert result.conflict.has_conflict
        assert happy_backend.calls("POST", "/Audits") == []

        acknowledged = await submitter.submit(_form(acknowledge_conflicts=True), context)
        assert acknowledged.success
        assert any(w.startswith("Cảnh báo") for w in acknowledged.warnings)

    async def test_create_failure_is_reported(
        self, happy_backend: FakeBackend, backend_client: BackendClient, context: SubmissionContext
    ) -> None:
        happy_backend.fail("POST", "/Audits", 400, {"message": "Title already used"})
        result = await AuditPlanSubmitter(backend_client).submit(_form(), context)
        assert not result.success
        assert result.error == "Title already used"
        assert happy_backend.calls("POST", "/AuditScopeDepartment") == []

    async def test_no_criteria_warns(
        self, happy_backend: FakeBackend, backend_client: BackendClient, context: SubmissionContext
    ) -> None:
        result = await AuditPlanSubmitter(backend_client).submit(_form(criteria_by_dept={}), context)
        assert "No criteria selected to attach to audit." in result.warnings

    async def test_edit_mode_updates_header_only(
        self, happy_backend: FakeBackend, backend_client: BackendClient, context: SubmissionContext
    ) -> None:
        happy_backend.on("PUT", "/AuditPlan/A1", {})
        result = await AuditPlanSubmitter(backend_client).submit(_form(audit_id="A1"), context)
        assert result.success
        assert result.audit_id == "A1"
        assert happy_backend.calls("GET", "/Audits/by-period") == []
        assert happy_backend.calls("POST", "/AuditScopeDepartment") == []


# =============================================================================
# Journal
# =============================================================================


@pytest.mark.asyncio
class TestJournal:
    async def test_steps_are_journaled(
        self,
        happy_backend: FakeBackend,
        backend_client: BackendClient,
        context: SubmissionContext,
        mock_db_session: AsyncMock,
        mock_session_factory: Any,
    ) -> None:
        submitter = AuditPlanSubmitter(backend_client, mock_session_factory)
        result = await submitter.submit(_form(), context)

        assert isinstance(result.submission_id, uuid.UUID)
        added = [c.args[0] for c in mock_db_session.add.call_args_list]
        assert all(isinstance(s, SubmissionStep) for s in added)
        assert {s.phase for s in added} == {
            SubmissionPhase.TEMPLATES,
            SubmissionPhase.DEPARTMENTS,
            SubmissionPhase.CRITERIA,
            SubmissionPhase.TEAM,
            SubmissionPhase.SCHEDULE,
        }
        assert all(s.status == StepStatus.PENDING for s in added)
        mock_db_session.commit.assert_awaited()

    async def test_retry_resends_only_failed_steps(
        self,
        fake_backend: FakeBackend,
        backend_client: BackendClient,
        mock_db_session: AsyncMock,
        mock_session_factory: Any,
    ) -> None:
        submission_id = uuid.uuid4()
        failed = SubmissionStep(
            submission_id=submission_id,
            audit_id="A1",
            phase=SubmissionPhase.DEPARTMENTS,
            item_key="D2",
            payload={"deptId": "D2"},
            status=StepStatus.FAILED,
            attempt_count=1,
        )
        done = SubmissionStep(
            submission_id=submission_id,
            audit_id="A1",
            phase=SubmissionPhase.DEPARTMENTS,
            item_key="D1",
            payload={"deptId": "D1"},
            status=StepStatus.SUCCEEDED,
            attempt_count=1,
        )
        mock_db_session.execute.return_value.scalars.return_value.all.return_value = [failed, done]
        fake_backend.on("POST", "/AuditScopeDepartment", {"auditScopeId": "s-D2"})

        result = await AuditPlanSubmitter(backend_client, mock_session_factory).retry(submission_id)

        assert result.success
        assert result.audit_id == "A1"
        assert fake_backend.bodies("POST", "/AuditScopeDepartment") == [{"auditId": "A1", "deptId": "D2"}]
        assert failed.status == StepStatus.SUCCEEDED
        assert failed.attempt_count == 2

    async def test_repeated_failure_is_abandoned(
        self,
        fake_backend: FakeBackend,
        backend_client: BackendClient,
        mock_db_session: AsyncMock,
        mock_session_factory: Any,
    ) -> None:
        step = SubmissionStep(
            submission_id=uuid.uuid4(),
            audit_id="A1",
            phase=SubmissionPhase.TEAM,
            item_key="u-1",
            payload={"userId": "u-1", "roleInTeam": "Auditor", "isLead": False},
            status=StepStatus.FAILED,
            attempt_count=1,
        )
        mock_db_session.execute.return_value.scalars.return_value.all.return_value = [step]
        fake_backend.fail("POST", "/AuditTeam", 500)

        result = await AuditPlanSubmitter(backend_client, mock_session_factory, max_attempts=2).retry(
            step.submission_id
        )

        assert not result.success
        assert result.warnings == ["1 team member(s) could not be added."]
        assert step.status == StepStatus.ABANDONED

    async def test_abandoned_steps_are_reported(
        self,
        fake_backend: FakeBackend,
        backend_client: BackendClient,
        mock_db_session: AsyncMock,
        mock_session_factory: Any,
    ) -> None:
        step = SubmissionStep(
            submission_id=uuid.uuid4(),
            audit_id="A1",
            phase=SubmissionPhase.TEAM,
            item_key="u-1",
            payload={"userId": "u-1", "roleInTeam": "Auditor", "isLead": False},
            status=StepStatus.ABANDONED,
            attempt_count=5,
        )
        mock_db_session.execute.return_value.scalars.return_value.all.return_value = [step]

        result = await AuditPlanSubmitter(backend_client, mock_session_factory).retry(step.submission_id)

        assert not result.success
        assert result.phases == []
        assert result.warnings == ["1 team step(s) were abandoned and must be completed manually."]
        assert fake_backend.requests == []

    async def test_abandoned_steps_fail_an_otherwise_clean_retry(
        self,
        fake_backend: FakeBackend,
        backend_client: BackendClient,
        mock_db_session: AsyncMock,
        mock_session_factory: Any,
    ) -> None:
        submission_id = uuid.uuid4()
        rows = [
            SubmissionStep(
                submission_id=submission_id,
                audit_id="A1",
                phase=SubmissionPhase.CRITERIA,
                item_key="C1",
                payload={"criteriaId": "C1"},
                status=StepStatus.FAILED,
                attempt_count=1,
            ),
            SubmissionStep(
                submission_id=submission_id,
                audit_id="A1",
                phase=SubmissionPhase.SCHEDULE,
                item_key="CAPA Due",
                payload={},
                status=StepStatus.ABANDONED,
                attempt_count=5,
            ),
        ]
        mock_db_session.execute.return_value.scalars.return_value.all.return_value = rows
        fake_backend.on("POST", "/AuditCriteriaMap", {})

        result = await AuditPlanSubmitter(backend_client, mock_session_factory).retry(submission_id)

        assert not result.success
        assert [p.phase for p in result.phases] == [SubmissionPhase.CRITERIA]
        assert result.warnings == ["1 schedule step(s) were abandoned and must be completed manually."]

    async def test_retry_without_journal(self, backend_client: BackendClient) -> None:
        with pytest.raises(RuntimeError):
            await AuditPlanSubmitter(backend_client).retry(uuid.uuid4())

    async def test_retry_unknown_submission(
        self, backend_client: BackendClient, mock_session_factory: Any
    ) -> None:
        with pytest.raises(LookupError):
            await AuditPlanSubmitter(backend_client, mock_session_factory).retry(uuid.uuid4())
