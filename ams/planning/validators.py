"""Business-rule adapters and wizard form checks for audit plans.

The adapters translate backend validation endpoints into uniform results;
a failing endpoint is reported as an invalid result carrying the backend's
message. The form checks are pure and run before any backend call.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date

import httpx

from ams.backend import assignments as assignments_api
from ams.backend import audits as audits_api
from ams.backend.client import BackendClient
from ams.backend.schemas import (
    AppUser,
    AssignmentValidation,
    ChecklistTemplate,
    DepartmentUniqueness,
    MilestoneName,
    PeriodStatus,
    ScopeLevel,
)
from ams.core.errors import extract_error_message

logger = logging.getLogger(__name__)


@dataclass
class AssignmentCheck:
    is_valid: bool
    message: str
    validation: AssignmentValidation | None = None


@dataclass
class PeriodCheck:
    can_assign: bool
    message: str
    status: PeriodStatus | None = None


@dataclass
class UniquenessCheck:
    is_valid: bool
    message: str
    conflicts: DepartmentUniqueness | None = None


async def validate_assignment_before_create(
    client: BackendClient, auditor_id: str, start_date: date, end_date: date
) -> AssignmentCheck:
    try:
        result = await assignments_api.validate_assignment(client, auditor_id, start_date, end_date)
    except httpx.HTTPError as exc:
        logger.warning("Assignment validation failed for auditor %s: %s", auditor_id, exc)
        return AssignmentCheck(False, extract_error_message(exc, "Failed to validate assignment"))

    if not result.can_create:
        return AssignmentCheck(False, result.reason or "Cannot create assignment", result)
    return AssignmentCheck(True, result.reason or "Assignment can be created", result)


async def check_period_status(client: BackendClient, start_date: date, end_date: date) -> PeriodCheck:
    """Whether new plans may be assigned in the period.

    An expired period always allows assignment: the lead auditor then plans
    the next period.
    """
    try:
        status = await audits_api.get_period_status(client, start_date, end_date)
    except httpx.HTTPError as exc:
        logger.warning("Period status check failed: %s", exc)
        return PeriodCheck(False, extract_error_message(exc, "Failed to check period status"))

    if status.is_expired:
        return PeriodCheck(
            True,
            "Period has expired. Lead Auditor can assign new plans for the next period.",
            status,
        )
    if not status.can_assign_new_plans:
        return PeriodCheck(
            False,
            "Cannot assign new plans. Period is active and all slots are full "
            f"({status.current_audit_count}/{status.max_audits_allowed}).",
            status,
        )
    return PeriodCheck(True, f"Period is active. {status.remaining_slots} slot(s) remaining.", status)


async def validate_department_uniqueness(
    client: BackendClient,
    audit_id: str | None,
    department_ids: list[str],
    start_date: date,
    end_date: date,
) -> UniquenessCheck:
    if not department_ids:
        return UniquenessCheck(True, "No departments to validate")
    try:
        result = await audits_api.validate_department(client, audit_id, department_ids, start_date, end_date)
    except httpx.HTTPError as exc:
        logger.warning("Department uniqueness check failed: %s", exc)
        return UniquenessCheck(False, extract_error_message(exc, "Failed to validate department uniqueness"))

    if not result.is_valid:
        depts = ", ".join(result.conflicting_departments) or "unknown"
        titles = ", ".join(a.title for a in result.conflicting_audits) or "unknown"
        return UniquenessCheck(
            False,
            f"Department(s) {depts} are already used in other audit(s): {titles}. "
            "Departments cannot be duplicated across audits in the same period.",
            result,
        )
    return UniquenessCheck(True, "All departments are valid (no conflicts)", result)


async def validate_before_add_department(
    client: BackendClient, audit_id: str, department_id: str, start_date: date, end_date: date
) -> UniquenessCheck:
    return await validate_department_uniqueness(client, audit_id, [department_id], start_date, end_date)


# ---------------------------------------------------------------------------
# Form checks
# ---------------------------------------------------------------------------


def validate_plan_period(start_date: date | None, end_date: date | None) -> str | None:
    """Return an error message, or None if the period is usable."""
    if start_date is None:
        return "Start date is required"
    if end_date is None:
        return "End date is required"
    if start_date > end_date:
        return "Start date must be before End date"
    return None


def validate_schedule(
    milestones: Mapping[MilestoneName, date | None],
    start_date: date | None,
    end_date: date | None,
) -> dict[MilestoneName, str]:
    """Check milestone dates against the plan period and each other.

    Milestones must fall inside the period and follow the order of
    :class:`MilestoneName`. Missing dates are skipped.
    """
    errors: dict[MilestoneName, str] = {}
    previous: tuple[MilestoneName, date] | None = None
    for name in MilestoneName:
        due = milestones.get(name)
        if due is None:
            continue
        if start_date and due < start_date:
            errors[name] = f"{name} must be on or after the plan start ({start_date.isoformat()})"
        elif end_date and due > end_date:
            errors[name] = f"{name} must be on or before the plan end ({end_date.isoformat()})"
        elif previous and due < previous[1]:
            errors[name] = f"{name} must be on or after {previous[0]} ({previous[1].isoformat()})"
        previous = (name, due)
    return errors


@dataclass
class SubmissionCheck:
    is_valid: bool
    step: int | None = None
    message: str | None = None
    # Set when the plan may proceed only after the user confirms.
    needs_confirmation: bool = False
    errors: list[str] = field(default_factory=list)


def validate_plan_submission(
    *,
    title: str,
    start_date: date | None,
    end_date: date | None,
    scope_level: ScopeLevel,
    selected_template_ids: list[str],
    selected_dept_ids: list[str],
    templates: Iterable[ChecklistTemplate],
    auditee_owners: Iterable[AppUser],
    schedule_errors: Mapping[MilestoneName, str],
    confirmed_without_owner: bool = False,
) -> SubmissionCheck:
    """Required-field checks of the plan wizard, in step order."""
    if not title.strip():
        return SubmissionCheck(False, 1, "Please enter a title for the plan.")
    if start_date is None or end_date is None:
        return SubmissionCheck(False, 1, "Please select the start and end dates.")
    period_error = validate_plan_period(start_date, end_date)
    if period_error:
        return SubmissionCheck(False, 1, period_error)

    if not selected_template_ids:
        return SubmissionCheck(False, 3, "Please select at least one Checklist Template (Step 3).")

    is_department_scope = scope_level == ScopeLevel.DEPARTMENT
    selected_depts = {str(d).strip() for d in selected_dept_ids}
    if is_department_scope and selected_depts:
        wanted = set(selected_template_ids)
        covered = {t.dept_id.strip() for t in templates if t.template_id in wanted and t.dept_id}
        if selected_depts - covered:
            return SubmissionCheck(
                False,
                3,
                "Please select at least one Checklist Template for each selected department (Step 3).",
            )

    if is_department_scope:
        if not selected_depts:
            return SubmissionCheck(
                False, 2, "Please select at least one department for the Department scope (Step 2)."
            )
        has_owner = any((o.dept_id or "") in selected_depts for o in auditee_owners)
        if not has_owner and not confirmed_without_owner:
            return SubmissionCheck(
                False,
                4,
                "The selected departments do not have an Auditee Owner yet.",
                needs_confirmation=True,
            )

    messages = [m for m in schedule_errors.values() if m]
    if messages:
        return SubmissionCheck(False, 5, "Invalid schedule", errors=messages)

    return SubmissionCheck(True)
