"""Typed records for the AMS backend resources.

The backend is inconsistent about id keys (``auditId`` vs ``id``), numeric
vs string ids, PascalCase vs camelCase and date formats. Each model accepts
those variants, stores ids as strings and keeps unknown fields in
``model_extra`` so nothing the backend sends is lost.
"""

from __future__ import annotations

import enum
import json
import logging
from datetime import date, datetime
from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class _CaseInsensitiveEnum(enum.StrEnum):
    @classmethod
    def _missing_(cls, value: object) -> Any:
        if isinstance(value, str):
            wanted = value.replace(" ", "").lower()
            for member in cls:
                if member.value.replace(" ", "").lower() == wanted:
                    return member
        return None


class AuditStatus(_CaseInsensitiveEnum):
    """Audit plan lifecycle states reported by the backend."""

    DRAFT = "Draft"
    PENDING_REVIEW = "PendingReview"
    PENDING_DIRECTOR_APPROVAL = "PendingDirectorApproval"
    APPROVED = "Approved"
    PUBLISHED = "Published"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    REJECTED = "Rejected"
    DECLINED = "Declined"
    INACTIVE = "Inactive"
    DELETED = "Deleted"


class ScopeLevel(_CaseInsensitiveEnum):
    ACADEMY = "Academy"
    DEPARTMENT = "Department"


class TeamRole(_CaseInsensitiveEnum):
    AUDITOR = "Auditor"
    LEAD_AUDITOR = "LeadAuditor"
    AUDITEE_OWNER = "AuditeeOwner"


class MilestoneName(_CaseInsensitiveEnum):
    """Schedule milestones, in the order they must occur."""

    KICKOFF = "Kickoff Meeting"
    FIELDWORK = "Fieldwork Start"
    EVIDENCE = "Evidence Due"
    DRAFT = "Draft Report Due"
    CAPA = "CAPA Due"


class ScheduleStatus(_CaseInsensitiveEnum):
    PLANNED = "Planned"
    COMPLETED = "Completed"
    OVERDUE = "Overdue"


EXCLUDED_FROM_CONFLICTS = frozenset({"deleted", "inactive"})


def normalize_status(value: str | None) -> str:
    """Lower-case a status and drop whitespace ("Declined Plan" -> "declinedplan")."""
    return "".join((value or "").split()).lower()


# ---------------------------------------------------------------------------
# Lenient field parsers
# ---------------------------------------------------------------------------


def parse_backend_datetime(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text[:10])
        except ValueError:
            logger.debug("Unparseable backend date %r", value)
            return None
    return None


def parse_backend_date(value: Any) -> date | None:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = parse_backend_datetime(value)
    return parsed.date() if parsed else None


def parse_string_list(value: Any) -> list[str]:
    """Accept a list, a ``$values`` wrapper, a JSON-encoded list or a bare string."""
    if value is None:
        return []
    if isinstance(value, dict):
        value = value.get("$values", value.get("values", []))
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            return [text]
        value = parsed if isinstance(parsed, list) else [text]
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


BackendDate = Annotated[date | None, BeforeValidator(parse_backend_date)]
BackendDateTime = Annotated[datetime | None, BeforeValidator(parse_backend_datetime)]
StringList = Annotated[list[str], BeforeValidator(parse_string_list)]


def _default_if_none(default: Any) -> BeforeValidator:
    """Treat an explicit JSON null like a missing field."""
    return BeforeValidator(lambda value: default if value is None else value)


Text = Annotated[str, _default_if_none("")]
Flag = Annotated[bool, _default_if_none(False)]
Count = Annotated[int, _default_if_none(0)]


def _ids(*names: str) -> AliasChoices:
    return AliasChoices(*names)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class BackendRecord(BaseModel):
    """Base for all backend records."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        coerce_numbers_to_str=True,
    )


class AuditPlan(BackendRecord):
    audit_id: str | None = Field(default=None, validation_alias=_ids("auditId", "AuditId", "id"))
    title: Text = ""
    type: str | None = None
    scope: str | None = None
    start_date: BackendDate = None
    end_date: BackendDate = None
    status: str | None = None
    objective: str | None = None
    template_id: str | None = None
    is_published: bool | None = None

    @property
    def excluded_from_conflicts(self) -> bool:
        return normalize_status(self.status) in EXCLUDED_FROM_CONFLICTS


class ScopeDepartment(BackendRecord):
    scope_dept_id: str | None = Field(
        default=None,
        validation_alias=_ids(
            "auditScopeId", "AuditScopeId", "scopeDeptId", "id", "auditScopeDepartmentId"
        ),
    )
    audit_id: str | None = Field(default=None, validation_alias=_ids("auditId", "AuditId"))
    dept_id: str | None = Field(default=None, validation_alias=_ids("deptId", "DeptId", "departmentId"))
    dept_name: str | None = Field(
        default=None, validation_alias=_ids("deptName", "departmentName", "DepartmentName", "name")
    )
    sensitive_flag: Flag = False
    areas: StringList = Field(default_factory=list, validation_alias=_ids("Areas", "areas"))
    notes: str | None = None
    department_sensitive_area_ids: StringList = Field(default_factory=list)


class AuditCriteriaMap(BackendRecord):
    audit_id: str | None = Field(default=None, validation_alias=_ids("auditId", "AuditId"))
    criteria_id: str | None = Field(
        default=None, validation_alias=_ids("criteriaId", "criterionId", "CriteriaId", "id")
    )
    dept_id: str | None = Field(default=None, validation_alias=_ids("deptId", "DeptId"))
    name: str | None = Field(default=None, validation_alias=_ids("name", "criterionName", "criteriaName"))
    status: str | None = None


class Criterion(BackendRecord):
    criteria_id: str | None = Field(default=None, validation_alias=_ids("criteriaId", "id", "$id"))
    name: Text = ""
    reference_code: str | None = None
    description: str | None = None
    published_by: str | None = None
    status: str | None = None


class ChecklistTemplate(BackendRecord):
    template_id: str | None = Field(default=None, validation_alias=_ids("templateId", "id", "$id"))
    name: str | None = Field(default=None, validation_alias=_ids("name", "title"))
    description: str | None = None
    dept_id: str | None = Field(default=None, validation_alias=_ids("deptId", "DeptId"))
    version: str | None = None
    status: str | None = None


class ChecklistItem(BackendRecord):
    item_id: str | None = Field(default=None, validation_alias=_ids("itemId", "id"))
    template_id: str | None = None
    section: str | None = None
    order: int | None = None
    question_text: Text = ""
    answer_type: str | None = None
    status: str | None = None
    severity_default: str | None = None


class AuditTemplateMap(BackendRecord):
    audit_id: str | None = Field(default=None, validation_alias=_ids("auditId", "AuditId"))
    template_id: str | None = Field(
        default=None, validation_alias=_ids("templateId", "checklistTemplateId")
    )
    status: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _lift_nested_template(cls, data: Any) -> Any:
        if isinstance(data, dict) and not (data.get("templateId") or data.get("checklistTemplateId")):
            template = data.get("template")
            if isinstance(template, dict):
                return {**data, "templateId": template.get("templateId") or template.get("id")}
        return data


class TeamMember(BackendRecord):
    audit_id: str | None = Field(default=None, validation_alias=_ids("auditId", "AuditId"))
    user_id: str | None = Field(default=None, validation_alias=_ids("userId", "UserId"))
    role_in_team: str | None = None
    is_lead: Flag = False
    full_name: str | None = None


class ScheduleMilestone(BackendRecord):
    schedule_id: str | None = Field(default=None, validation_alias=_ids("scheduleId", "id"))
    audit_id: str | None = Field(default=None, validation_alias=_ids("auditId", "AuditId"))
    milestone_name: Text = ""
    due_date: BackendDate = None
    status: str | None = None
    notes: str | None = None


class Finding(BackendRecord):
    finding_id: str | None = Field(default=None, validation_alias=_ids("findingId", "id"))
    audit_id: str | None = None
    dept_id: str | None = None
    title: Text = ""
    description: str | None = None
    severity: str | None = None
    status: str | None = None
    deadline: BackendDate = None
    created_at: BackendDateTime = None


class Action(BackendRecord):
    action_id: str | None = Field(default=None, validation_alias=_ids("actionId", "id"))
    finding_id: str | None = None
    title: Text = ""
    description: str | None = None
    assigned_by: str | None = None
    assigned_to: str | None = None
    assigned_dept_id: str | None = None
    status: str | None = None
    progress_percent: int | None = None
    due_date: BackendDate = None
    review_feedback: str | None = None


class Department(BackendRecord):
    dept_id: str | None = Field(default=None, validation_alias=_ids("deptId", "DeptId", "id"))
    name: Text = ""
    code: str | None = None
    description: str | None = None


class AppUser(BackendRecord):
    user_id: str | None = Field(default=None, validation_alias=_ids("userId", "UserId", "id"))
    email: str | None = None
    full_name: str | None = None
    role_name: str | None = None
    dept_id: str | None = None
    is_active: Annotated[bool, _default_if_none(True)] = True


class SensitiveArea(BackendRecord):
    id: str | None = Field(default=None, validation_alias=_ids("id", "Id"))
    dept_id: str | None = Field(default=None, validation_alias=_ids("deptId", "DeptId"))
    dept_name: str | None = Field(
        default=None, validation_alias=_ids("departmentName", "DepartmentName", "deptName")
    )
    sensitive_area: str | None = Field(
        default=None, validation_alias=_ids("sensitiveArea", "SensitiveArea", "name")
    )
    level: str | None = Field(default=None, validation_alias=_ids("level", "Level", "levelName"))
    default_notes: str | None = Field(
        default=None, validation_alias=_ids("defaultNotes", "DefaultNotes", "notes")
    )


class AuditApproval(BackendRecord):
    approval_id: str | None = Field(default=None, validation_alias=_ids("approvalId", "id"))
    audit_id: str | None = None
    status: str | None = None
    comment: str | None = None
    rejection_comment: str | None = None
    note: str | None = None
    reason: str | None = None
    approved_at: BackendDateTime = None
    created_at: BackendDateTime = None

    @model_validator(mode="before")
    @classmethod
    def _lift_nested_audit_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("auditId"):
            audit = data.get("audit")
            if isinstance(audit, dict):
                return {**data, "auditId": audit.get("auditId") or audit.get("id")}
        return data

    @property
    def is_rejection(self) -> bool:
        status = normalize_status(self.status)
        return "rejected" in status or "declined" in status

    @property
    def decided_at(self) -> datetime | None:
        return self.approved_at or self.created_at

    @property
    def any_comment(self) -> str | None:
        return self.comment or self.rejection_comment or self.note or self.reason or None


class AssignmentValidation(BackendRecord):
    can_create: Flag = False
    reason: str | None = None


class PeriodStatus(BackendRecord):
    is_expired: Flag = False
    can_assign_new_plans: Annotated[bool, _default_if_none(True)] = True
    current_audit_count: Count = 0
    max_audits_allowed: Count = 0
    remaining_slots: Count = 0


class DepartmentUniqueness(BackendRecord):
    """Response of the backend's department-uniqueness check."""

    is_valid: Annotated[bool, _default_if_none(True)] = True
    conflicting_departments: StringList = Field(default_factory=list)
    conflicting_audits: Annotated[list[AuditPlan], _default_if_none([])] = Field(default_factory=list)
