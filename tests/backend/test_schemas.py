"""Tests for the lenient backend record models."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from ams.backend.schemas import (
    AuditApproval,
    AuditPlan,
    AuditStatus,
    AuditTemplateMap,
    Criterion,
    Department,
    DepartmentUniqueness,
    MilestoneName,
    PeriodStatus,
    ScheduleMilestone,
    ScopeDepartment,
    ScopeLevel,
    TeamMember,
    normalize_status,
    parse_backend_date,
    parse_string_list,
)


class TestEnums:
    def test_case_and_space_insensitive_lookup(self) -> None:
        assert AuditStatus("pending review") is AuditStatus.PENDING_REVIEW
        assert ScopeLevel("academy") is ScopeLevel.ACADEMY
        assert MilestoneName("capadue") is MilestoneName.CAPA

    def test_unknown_value_raises(self) -> None:
        with pytest.raises(ValueError):
            AuditStatus("Archived")

    def test_milestone_order(self) -> None:
        assert [m.value for m in MilestoneName] == [
            "Kickoff Meeting",
            "Fieldwork Start",
            "Evidence Due",
            "Draft Report Due",
            "CAPA Due",
        ]

    def test_normalize_status(self) -> None:
        assert normalize_status(" Declined Plan ") == "declinedplan"
        assert normalize_status(None) == ""


class TestFieldParsers:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("2025-03-01", date(2025, 3, 1)),
            ("2025-03-01T00:00:00Z", date(2025, 3, 1)),
            ("2025-03-01T10:15:00.1234567", date(2025, 3, 1)),
            (datetime(2025, 3, 1, 9), date(2025, 3, 1)),
            ("", None),
            ("not a date", None),
            (None, None),
        ],
    )
    def test_parse_backend_date(self, value: object, expected: date | None) -> None:
        assert parse_backend_date(value) == expected

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (["Server room", " Vault "], ["Server room", "Vault"]),
            ({"$values": ["A"]}, ["A"]),
            ('["A", "B"]', ["A", "B"]),
            ("Lab", ["Lab"]),
            ("", []),
            (None, []),
            (5, []),
        ],
    )
    def test_parse_string_list(self, value: object, expected: list[str]) -> None:
        assert parse_string_list(value) == expected


class TestRecords:
    def test_audit_plan_aliases_and_numeric_ids(self) -> None:
        plan = AuditPlan.model_validate(
            {"id": 12, "title": "Q1", "startDate": "2025-01-01T00:00:00", "status": "Inactive", "extra": 1}
        )
        assert plan.audit_id == "12"
        assert plan.start_date == date(2025, 1, 1)
        assert plan.excluded_from_conflicts
        assert plan.model_extra == {"extra": 1}

    def test_audit_plan_dump_uses_camel_case(self) -> None:
        dumped = AuditPlan(audit_id="a", title="T").model_dump(by_alias=True)
        assert dumped["auditId"] == "a"

    def test_scope_department_areas_variants(self) -> None:
        sd = ScopeDepartment.model_validate({"auditScopeId": 3, "deptId": 9, "Areas": '["Vault"]'})
        assert sd.scope_dept_id == "3"
        assert sd.dept_id == "9"
        assert sd.areas == ["Vault"]

    def test_template_map_lifts_nested_template(self) -> None:
        m = AuditTemplateMap.model_validate({"auditId": "a", "template": {"templateId": "t-1"}})
        assert m.template_id == "t-1"

    def test_approval_helpers(self) -> None:
        approval = AuditApproval.model_validate(
            {
                "audit": {"auditId": "a-1"},
                "status": "Rejected",
                "note": "Fix scope",
                "createdAt": "2025-02-01T08:00:00",
            }
        )
        assert approval.audit_id == "a-1"
        assert approval.is_rejection
        assert approval.any_comment == "Fix scope"
        assert approval.decided_at == datetime(2025, 2, 1, 8)


class TestNullFields:
    """Explicit JSON nulls fall back to the field default instead of failing."""

    def test_audit_plan_null_title(self) -> None:
        plan = AuditPlan.model_validate({"auditId": "A1", "title": None, "isPublished": None})
        assert plan.audit_id == "A1"
        assert plan.title == ""
        assert plan.is_published is None

    def test_scope_department_null_flag_and_areas(self) -> None:
        sd = ScopeDepartment.model_validate({"deptId": "D1", "sensitiveFlag": None, "Areas": None})
        assert sd.sensitive_flag is False
        assert sd.areas == []

    @pytest.mark.parametrize(
        ("model", "payload", "field", "expected"),
        [
            (Criterion, {"criteriaId": "C1", "name": None}, "name", ""),
            (Department, {"deptId": "D1", "name": None}, "name", ""),
            (TeamMember, {"userId": "u1", "isLead": None}, "is_lead", False),
            (ScheduleMilestone, {"milestoneName": None}, "milestone_name", ""),
            (PeriodStatus, {"canAssignNewPlans": None, "remainingSlots": None}, "can_assign_new_plans", True),
            (PeriodStatus, {"remainingSlots": None}, "remaining_slots", 0),
        ],
    )
    def test_null_scalars_use_defaults(self, model: type, payload: dict, field: str, expected: object) -> None:
        assert getattr(model.model_validate(payload), field) == expected

    def test_uniqueness_null_lists(self) -> None:
        result = DepartmentUniqueness.model_validate(
            {"isValid": None, "conflictingDepartments": None, "conflictingAudits": None}
        )
        assert result.is_valid is True
        assert result.conflicting_departments == []
        assert result.conflicting_audits == []
