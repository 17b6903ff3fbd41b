"""Department/criteria conflict detection for audit plans.

A candidate plan conflicts with another audit when the two periods overlap,
the other audit covers one of the candidate's departments, and both use at
least one common criterion for that department. Conflicts are advisory:
they produce warnings and never make a plan invalid. Only a failure to load
the data needed for the check yields ``is_valid=False``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import TypeVar

import httpx

from ams.backend import audits as audits_api
from ams.backend import checklists as checklists_api
from ams.backend import criteria as criteria_api
from ams.backend import scope as scope_api
from ams.backend.client import BackendClient
from ams.backend.schemas import AuditPlan, Criterion, ScopeLevel
from ams.core.errors import extract_error_message

logger = logging.getLogger(__name__)

T = TypeVar("T", date, str, int, float)


def periods_overlap(start1: T, end1: T, start2: T, end2: T) -> bool:
    """Closed-interval intersection; touching boundaries overlap."""
    return start1 <= end2 and end1 >= start2


@dataclass
class ConflictingAudit:
    """Another audit that overlaps the candidate period on a shared department."""

    audit_id: str
    title: str
    start_date: date | None
    end_date: date | None
    department_ids: list[str] = field(default_factory=list)
    # Criteria the audit uses for the shared departments.
    criteria_ids: list[str] = field(default_factory=list)
    shared_criteria_ids: list[str] = field(default_factory=list)
    template_ids: list[str] = field(default_factory=list)

    @property
    def has_scope_overlap(self) -> bool:
        return bool(self.shared_criteria_ids)


@dataclass
class ConflictSummary:
    department_ids: list[str] = field(default_factory=list)
    audits: list[ConflictingAudit] = field(default_factory=list)


@dataclass
class DepartmentValidation:
    is_valid: bool
    message: str
    warnings: list[str] = field(default_factory=list)
    requires_approval: bool = False
    has_scope_overlap: bool = False
    conflicts: ConflictSummary | None = None


def overlapping_audits(
    candidates: Iterable[AuditPlan], audit_id: str | None, start_date: date, end_date: date
) -> list[AuditPlan]:
    editing = (audit_id or "").strip().lower()
    result = []
    for audit in candidates:
        if not audit.audit_id or (editing and audit.audit_id.strip().lower() == editing):
            continue
        if audit.excluded_from_conflicts:
            continue
        if audit.start_date is None or audit.end_date is None:
            continue
        if periods_overlap(audit.start_date, audit.end_date, start_date, end_date):
            result.append(audit)
    return result


async def criteria_used_by(client: BackendClient, audit_id: str, dept_id: str) -> set[str]:
    """Criteria ``audit_id`` uses for ``dept_id``, or for the whole audit if unknown."""
    try:
        maps = await criteria_api.list_criteria_for_audit_department(client, audit_id, dept_id)
    except httpx.HTTPStatusError:
        logger.debug("Per-department criteria unavailable for %s/%s, using audit-wide list", audit_id, dept_id)
        maps = await criteria_api.list_criteria_for_audit(client, audit_id)
    return criteria_api.criteria_ids(maps)


def _titles(audits: Iterable[ConflictingAudit]) -> str:
    return ", ".join(a.title or a.audit_id for a in audits)


async def validate_department_with_conditions(
    client: BackendClient,
    audit_id: str | None,
    department_ids: list[str],
    start_date: date,
    end_date: date,
    selected_criteria_ids: Iterable[str],
    department_names: Mapping[str, str] | None = None,
) -> DepartmentValidation:
    """Check candidate departments against audits overlapping the period.

    Args:
        client: Backend client.
        audit_id: Audit being edited (excluded from the comparison), or None.
        department_ids: Candidate departments.
        start_date: Candidate period start.
        end_date: Candidate period end.
        selected_criteria_ids: Criteria the candidate plan will use.
        department_names: Optional id -> display name for warning texts.

    Returns:
        A DepartmentValidation. ``is_valid`` is False only when the backend
        could not be queried.
    """
    department_ids = [str(d) for d in dict.fromkeys(department_ids)]
    if not department_ids:
        return DepartmentValidation(is_valid=True, message="No departments to validate")

    selected = {str(c) for c in selected_criteria_ids}
    names = department_names or {}

    try:
        in_period = await audits_api.list_audits_by_period(client, start_date, end_date)
        others = overlapping_audits(in_period, audit_id, start_date, end_date)
        if not others:
            return DepartmentValidation(is_valid=True, message="No conflicting audits in this period")

        scopes = await asyncio.gather(
            *(scope_api.list_scope_departments_for_audit(client, a.audit_id) for a in others)
        )
        pairs = [
            (dept_id, audit)
            for audit, scope_depts in zip(others, scopes, strict=True)
            for dept_id in department_ids
            if dept_id in {sd.dept_id for sd in scope_depts}
        ]
        used_sets = await asyncio.gather(*(criteria_used_by(client, a.audit_id, d) for d, a in pairs))
    except httpx.HTTPError as exc:
        logger.warning("Department validation failed: %s", exc)
        return DepartmentValidation(
            is_valid=False,
            message=extract_error_message(exc, "Failed to validate departments"),
        )

    by_audit: dict[str, ConflictingAudit] = {}
    overlap_by_dept: dict[str, list[ConflictingAudit]] = {}
    disjoint_by_dept: dict[str, list[ConflictingAudit]] = {}

    for (dept_id, audit), used in zip(pairs, used_sets, strict=True):
        entry = by_audit.setdefault(
            audit.audit_id,
            ConflictingAudit(
                audit_id=audit.audit_id,
                title=audit.title,
                start_date=audit.start_date,
                end_date=audit.end_date,
            ),
        )
        entry.department_ids.append(dept_id)
        entry.criteria_ids = sorted(set(entry.criteria_ids) | used)
        shared = used & selected
        entry.shared_criteria_ids = sorted(set(entry.shared_criteria_ids) | shared)
        target = overlap_by_dept if shared else disjoint_by_dept
        target.setdefault(dept_id, []).append(entry)

    warnings: list[str] = []
    for dept_id, hits in overlap_by_dept.items():
        warnings.append(
            f"Cảnh báo: đã có cuộc kiểm định phòng ban {names.get(dept_id, dept_id)} sử dụng cùng "
            f"tiêu chuẩn trong khoảng thời gian này ({_titles(hits)})."
        )
    for dept_id, hits in disjoint_by_dept.items():
        warnings.append(
            f"Lưu ý: phòng ban {names.get(dept_id, dept_id)} đã được lên kế hoạch trong khoảng "
            f"thời gian này ({_titles(hits)}) với tiêu chuẩn khác."
        )

    has_scope_overlap = bool(overlap_by_dept)
    conflicting = list(by_audit.values())
    if has_scope_overlap:
        message = f"Scope overlap with {len(conflicting)} audit(s) in this period."
    elif conflicting:
        message = "Departments are already planned in this period with different criteria."
    else:
        message = "No conflicting audits for the selected departments"

    return DepartmentValidation(
        is_valid=True,
        message=message,
        warnings=warnings,
        requires_approval=False,
        has_scope_overlap=has_scope_overlap,
        conflicts=ConflictSummary(
            department_ids=sorted({d for a in conflicting for d in a.department_ids}),
            audits=conflicting,
        )
        if conflicting
        else None,
    )


# ---------------------------------------------------------------------------
# Pre-submit conflict check
# ---------------------------------------------------------------------------


@dataclass
class ConflictCheck:
    has_conflict: bool
    severity: str | None = None
    has_scope_overlap: bool = False
    conflicts: ConflictSummary | None = None
    used_criteria_ids: list[str] = field(default_factory=list)
    filtered_criteria: list[Criterion] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def departments_in_scope(
    scope_level: ScopeLevel | str, selected_dept_ids: Iterable[str], all_dept_ids: Iterable[str]
) -> list[str]:
    """Departments a plan covers: all of them for academy scope."""
    if ScopeLevel(scope_level) == ScopeLevel.ACADEMY:
        return [str(d) for d in all_dept_ids]
    return [str(d) for d in selected_dept_ids]


async def _template_ids_by_audit(client: BackendClient, audit_ids: set[str]) -> dict[str, set[str]]:
    result: dict[str, set[str]] = {a.lower(): set() for a in audit_ids}
    try:
        maps = await checklists_api.list_template_maps(client)
    except httpx.HTTPError as exc:
        logger.warning("Could not load checklist template maps: %s", exc)
        return result
    for m in maps:
        key = (m.audit_id or "").strip().lower()
        if key in result and m.template_id:
            result[key].add(m.template_id)
    return result


async def check_audit_conflicts(
    client: BackendClient,
    *,
    department_ids: list[str],
    start_date: date,
    end_date: date,
    selected_criteria_ids: Iterable[str],
    selected_template_ids: Iterable[str],
    criteria: list[Criterion],
    department_names: Mapping[str, str] | None = None,
) -> ConflictCheck:
    """Classify conflicts of a new plan before it is created.

    Conflicting audits that also share a checklist template make the
    conflict ``critical``. Otherwise it is ``medium`` and the criteria used
    by the conflicting audits are filtered out of ``criteria``.
    """
    validation = await validate_department_with_conditions(
        client,
        None,
        department_ids,
        start_date,
        end_date,
        selected_criteria_ids,
        department_names,
    )
    if not validation.is_valid:
        # Warn, don't block: an unavailable check never stops the submission.
        return ConflictCheck(
            has_conflict=False, warnings=[f"Conflict check unavailable: {validation.message}"]
        )
    if validation.conflicts is None or not validation.conflicts.audits:
        return ConflictCheck(has_conflict=False, warnings=validation.warnings)

    conflicts = validation.conflicts
    selected_templates = {str(t) for t in selected_template_ids}
    templates = await _template_ids_by_audit(client, {a.audit_id for a in conflicts.audits})

    same_template: list[ConflictingAudit] = []
    for audit in conflicts.audits:
        audit.template_ids = sorted(templates.get(audit.audit_id.lower(), set()))
        if selected_templates & set(audit.template_ids):
            same_template.append(audit)

    if same_template:
        return ConflictCheck(
            has_conflict=True,
            severity="critical",
            has_scope_overlap=True,
            conflicts=ConflictSummary(department_ids=conflicts.department_ids, audits=same_template),
            warnings=validation.warnings,
        )

    used = {c for a in conflicts.audits for c in a.criteria_ids}
    return ConflictCheck(
        has_conflict=True,
        severity="medium",
        has_scope_overlap=False,
        conflicts=conflicts,
        used_criteria_ids=sorted(used),
        filtered_criteria=[c for c in criteria if c.criteria_id not in used],
        warnings=validation.warnings,
    )
