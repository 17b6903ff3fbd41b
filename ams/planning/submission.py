"""Audit plan submission.

Submitting the wizard creates (or updates) the audit and then attaches its
parts in ordered phases: checklist templates, scope departments, sensitive
flags, criteria, team members and schedule milestones. Writes inside a
phase run concurrently. A failing write never rolls back earlier ones; it
is reported per phase.

When a session factory is configured every write is journaled as a
:class:`SubmissionStep`, and :meth:`AuditPlanSubmitter.retry` re-sends only
the writes that failed.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from typing import Any

import httpx
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ams.backend import audits as audits_api
from ams.backend import checklists as checklists_api
from ams.backend import criteria as criteria_api
from ams.backend import directory as directory_api
from ams.backend import scope as scope_api
from ams.backend import team as team_api
from ams.backend.client import BackendClient
from ams.backend.schemas import (
    AppUser,
    AuditPlan,
    AuditStatus,
    ChecklistTemplate,
    Criterion,
    Department,
    MilestoneName,
    ScheduleStatus,
    ScopeDepartment,
    ScopeLevel,
    TeamRole,
)
from ams.core.errors import SubmissionError, extract_error_message
from ams.core.models import StepStatus, SubmissionPhase, SubmissionStep
from ams.planning.conflicts import ConflictCheck, check_audit_conflicts, departments_in_scope
from ams.planning.validators import validate_plan_submission, validate_schedule

logger = logging.getLogger(__name__)

PHASE_ORDER = list(SubmissionPhase)
SENSITIVE_AREA_SEPARATOR = " - "


class PlanForm(BaseModel):
    """Everything the user entered in the plan wizard."""

    title: str = ""
    start_date: date | None = None
    end_date: date | None = None
    audit_type: str = "Internal"
    scope_level: ScopeLevel = ScopeLevel.DEPARTMENT
    objective: str = ""
    selected_template_ids: list[str] = Field(default_factory=list)
    selected_dept_ids: list[str] = Field(default_factory=list)
    selected_criteria_ids: list[str] = Field(default_factory=list)
    # Selection map from the scope step; takes precedence over selected_criteria_ids.
    criteria_by_dept: dict[str, list[str]] = Field(default_factory=dict)
    auditor_ids: list[str] = Field(default_factory=list)
    lead_auditor_id: str | None = None
    sensitive_flag: bool = False
    # Formatted as "<area> - <department name>".
    sensitive_areas: list[str] = Field(default_factory=list)
    sensitive_notes: str = ""
    schedule: dict[MilestoneName, date | None] = Field(default_factory=dict)
    # Set when editing an existing plan.
    audit_id: str | None = None
    acknowledge_conflicts: bool = False
    confirmed_without_owner: bool = False

    @property
    def is_edit_mode(self) -> bool:
        return bool(self.audit_id)


@dataclass
class SubmissionContext:
    """Master data the submission needs besides the form."""

    departments: list[Department] = field(default_factory=list)
    auditee_owners: list[AppUser] = field(default_factory=list)
    criteria: list[Criterion] = field(default_factory=list)
    templates: list[ChecklistTemplate] = field(default_factory=list)

    @property
    def department_names(self) -> dict[str, str]:
        return {d.dept_id: d.name for d in self.departments if d.dept_id}


async def load_submission_context(client: BackendClient) -> SubmissionContext:
    departments, owners, criteria, templates = await asyncio.gather(
        directory_api.list_departments(client),
        directory_api.list_auditee_owners(client),
        criteria_api.list_criteria(client),
        checklists_api.list_templates(client),
    )
    return SubmissionContext(departments, owners, criteria, templates)


@dataclass
class PlannedStep:
    phase: SubmissionPhase
    item_key: str
    payload: dict[str, Any]


@dataclass
class PhaseOutcome:
    phase: SubmissionPhase
    attempted: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.attempted - self.failed


@dataclass
class SubmissionResult:
    success: bool
    audit_id: str | None = None
    submission_id: uuid.UUID | None = None
    error: str | None = None
    conflict: ConflictCheck | None = None
    phases: list[PhaseOutcome] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    plans: list[AuditPlan] | None = None

    @property
    def has_failures(self) -> bool:
        return any(p.failed for p in self.phases)


def _iso_midnight(value: date) -> str:
    return datetime.combine(value, time(), tzinfo=UTC).isoformat()


def build_audit_payload(form: PlanForm) -> dict[str, Any]:
    """Backend body for creating or replacing the plan header."""
    return {
        "title": form.title or "Untitled Plan",
        "type": form.audit_type or "Internal",
        "scope": form.scope_level.value,
        "templateId": form.selected_template_ids[0] if form.selected_template_ids else None,
        "startDate": _iso_midnight(form.start_date) if form.start_date else None,
        "endDate": _iso_midnight(form.end_date) if form.end_date else None,
        "status": AuditStatus.DRAFT.value,
        "isPublished": False,
        "objective": form.objective or "",
    }


def sensitive_areas_by_department(
    formatted_areas: Iterable[str], departments: Iterable[Department]
) -> dict[str, list[str]]:
    """Group "<area> - <department name>" strings by department id."""
    by_name: dict[str, list[str]] = {}
    for formatted in formatted_areas:
        parts = formatted.split(SENSITIVE_AREA_SEPARATOR)
        if len(parts) >= 2:
            dept_name = SENSITIVE_AREA_SEPARATOR.join(parts[1:])
            by_name.setdefault(dept_name, []).append(formatted)
    return {d.dept_id: by_name[d.name] for d in departments if d.dept_id and d.name in by_name}


def plan_department_steps(
    form: PlanForm, context: SubmissionContext, dept_ids: list[str]
) -> list[PlannedStep]:
    areas: dict[str, list[str]] = {}
    if form.sensitive_flag and form.sensitive_areas:
        scope_depts = [d for d in context.departments if d.dept_id in set(dept_ids)]
        areas = sensitive_areas_by_department(form.sensitive_areas, scope_depts)
    steps = []
    for dept_id in dept_ids:
        payload: dict[str, Any] = {"deptId": dept_id}
        if dept_id in areas:
            payload["sensitive"] = {"areas": areas[dept_id], "notes": form.sensitive_notes or ""}
        steps.append(PlannedStep(SubmissionPhase.DEPARTMENTS, dept_id, payload))
    return steps


def selected_criteria(form: PlanForm) -> set[str]:
    """Criteria to attach: the scope-step selection map if present, else the flat list."""
    if form.criteria_by_dept:
        return {str(c) for chosen in form.criteria_by_dept.values() for c in chosen}
    return {str(c) for c in form.selected_criteria_ids}


def plan_criteria_steps(form: PlanForm) -> list[PlannedStep]:
    return [
        PlannedStep(SubmissionPhase.CRITERIA, c, {"criteriaId": c}) for c in sorted(selected_criteria(form))
    ]


def plan_team_steps(form: PlanForm, context: SubmissionContext) -> list[PlannedStep]:
    """Auditors, the lead and the auditee owners, one write per user."""
    members: dict[str, dict[str, Any]] = {}
    lead = form.lead_auditor_id or ""
    for user_id in [*form.auditor_ids, lead]:
        if user_id:
            members.setdefault(
                user_id,
                {"userId": user_id, "roleInTeam": TeamRole.AUDITOR.value, "isLead": user_id == lead},
            )

    owners = context.auditee_owners
    if form.scope_level != ScopeLevel.ACADEMY:
        selected = set(form.selected_dept_ids)
        owners = [o for o in owners if o.dept_id in selected]
    for owner in owners:
        if owner.user_id:
            members.setdefault(
                owner.user_id,
                {"userId": owner.user_id, "roleInTeam": TeamRole.AUDITEE_OWNER.value, "isLead": False},
            )
    return [PlannedStep(SubmissionPhase.TEAM, uid, payload) for uid, payload in members.items()]


def plan_schedule_steps(form: PlanForm) -> list[PlannedStep]:
    steps = []
    for name in MilestoneName:
        due = form.schedule.get(name)
        if due is None:
            continue
        payload = {
            "milestoneName": name.value,
            "dueDate": _iso_midnight(due),
            "status": ScheduleStatus.PLANNED.value,
            "notes": "",
        }
        steps.append(PlannedStep(SubmissionPhase.SCHEDULE, name.value, payload))
    return steps


def _failure_warning(outcome: PhaseOutcome) -> str | None:
    if not outcome.failed:
        return None
    match outcome.phase:
        case SubmissionPhase.TEMPLATES:
            return "Failed to save checklist template mappings. Please retry from Step 3."
        case SubmissionPhase.DEPARTMENTS:
            return f"{outcome.failed} department(s) failed to attach."
        case SubmissionPhase.SENSITIVE_FLAGS:
            return "Plan created but sensitive flags could not be saved. Please update manually."
        case SubmissionPhase.CRITERIA:
            return f"{outcome.failed} criteria failed to attach to the audit."
        case SubmissionPhase.TEAM:
            return f"{outcome.failed} team member(s) could not be added."
        case SubmissionPhase.SCHEDULE:
            return f"{outcome.failed} schedule milestone(s) could not be saved."
    return None


class AuditPlanSubmitter:
    """Runs plan submissions against the backend.

    Args:
        client: Backend client carrying the caller's token.
        session_factory: Journal database sessions; None disables the journal.
        max_attempts: Attempts after which a failing step is abandoned.
    """

    def __init__(
        self,
        client: BackendClient,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        max_attempts: int = 5,
    ) -> None:
        self.client = client
        self.session_factory = session_factory
        self.max_attempts = max_attempts

    # -- step execution -----------------------------------------------------

    async def _execute(self, audit_id: str, step: PlannedStep) -> Any:
        p = step.payload
        match step.phase:
            case SubmissionPhase.TEMPLATES:
                return await checklists_api.sync_template_maps(self.client, audit_id, p["templateIds"])
            case SubmissionPhase.DEPARTMENTS:
                return await scope_api.add_scope_department(self.client, audit_id, p["deptId"])
            case SubmissionPhase.SENSITIVE_FLAGS:
                return await scope_api.set_sensitive_flag(
                    self.client, p["scopeDeptId"], sensitive_flag=True, areas=p["areas"], notes=p["notes"]
                )
            case SubmissionPhase.CRITERIA:
                return await criteria_api.add_criterion_to_audit(self.client, audit_id, p["criteriaId"])
            case SubmissionPhase.TEAM:
                return await team_api.add_team_member(
                    self.client, audit_id, p["userId"], p["roleInTeam"], is_lead=p["isLead"]
                )
            case SubmissionPhase.SCHEDULE:
                return await team_api.add_schedule(
                    self.client,
                    audit_id,
                    p["milestoneName"],
                    p["dueDate"],
                    status=p["status"],
                    notes=p.get("notes", ""),
                )
        raise ValueError(f"Unknown submission phase: {step.phase}")

    @staticmethod
    def _follow_ups(step: PlannedStep, result: Any) -> list[PlannedStep]:
        """Steps that depend on the result of ``step`` (sensitive flags need the scope row id)."""
        sensitive = step.payload.get("sensitive")
        if step.phase != SubmissionPhase.DEPARTMENTS or not sensitive:
            return []
        if not isinstance(result, ScopeDepartment) or not result.scope_dept_id:
            logger.warning("No scope id returned for department %s; sensitive flag skipped", step.item_key)
            return []
        payload = {"scopeDeptId": result.scope_dept_id, **sensitive}
        return [PlannedStep(SubmissionPhase.SENSITIVE_FLAGS, step.item_key, payload)]

    async def _run_phase(
        self,
        submission_id: uuid.UUID | None,
        audit_id: str,
        phase: SubmissionPhase,
        steps: list[PlannedStep],
    ) -> tuple[PhaseOutcome, list[PlannedStep]]:
        outcome = PhaseOutcome(phase, attempted=len(steps))
        if not steps:
            return outcome, []

        await self._journal_pending(submission_id, audit_id, phase, steps)
        results = await asyncio.gather(
            *(self._execute(audit_id, s) for s in steps), return_exceptions=True
        )

        recorded: list[tuple[PlannedStep, str | None]] = []
        follow_ups: list[PlannedStep] = []
        for step, result in zip(steps, results, strict=True):
            if isinstance(result, Exception):
                message = extract_error_message(result)
                logger.warning("%s step %s failed for audit %s: %s", phase, step.item_key, audit_id, message)
                outcome.failed += 1
                outcome.errors.append(f"{step.item_key}: {message}")
                recorded.append((step, message))
            elif isinstance(result, BaseException):
                raise result
            else:
                recorded.append((step, None))
                follow_ups.extend(self._follow_ups(step, result))

        await self._journal_results(submission_id, phase, recorded)
        return outcome, follow_ups

    async def _run_phases(
        self,
        submission_id: uuid.UUID | None,
        audit_id: str,
        planned: dict[SubmissionPhase, list[PlannedStep]],
    ) -> list[PhaseOutcome]:
        outcomes = []
        for phase in PHASE_ORDER:
            steps = planned.get(phase, [])
            if not steps:
                continue
            outcome, follow_ups = await self._run_phase(submission_id, audit_id, phase, steps)
            outcomes.append(outcome)
            for extra in follow_ups:
                planned.setdefault(extra.phase, []).append(extra)
        return outcomes

    # -- journal ------------------------------------------------------------

    @property
    def journal_enabled(self) -> bool:
        return self.session_factory is not None

    async def _journal_pending(
        self,
        submission_id: uuid.UUID | None,
        audit_id: str,
        phase: SubmissionPhase,
        steps: list[PlannedStep],
    ) -> None:
        if self.session_factory is None or submission_id is None:
            return
        try:
            async with self.session_factory() as session:
                existing = await session.execute(
                    select(SubmissionStep.item_key).where(
                        SubmissionStep.submission_id == submission_id,
                        SubmissionStep.phase == phase,
                    )
                )
                known = set(existing.scalars().all())
                for step in steps:
                    if step.item_key in known:
                        continue
                    session.add(
                        SubmissionStep(
                            submission_id=submission_id,
                            audit_id=audit_id,
                            phase=phase,
                            item_key=step.item_key,
                            payload=step.payload,
                            status=StepStatus.PENDING,
                            attempt_count=0,
                        )
                    )
                await session.commit()
        except SQLAlchemyError:
            logger.exception("Could not journal %s steps of submission %s", phase, submission_id)

    async def _journal_results(
        self,
        submission_id: uuid.UUID | None,
        phase: SubmissionPhase,
        recorded: list[tuple[PlannedStep, str | None]],
    ) -> None:
        if self.session_factory is None or submission_id is None:
            return
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(SubmissionStep).where(
                        SubmissionStep.submission_id == submission_id,
                        SubmissionStep.phase == phase,
                    )
                )
                rows = {row.item_key: row for row in result.scalars().all()}
                for step, error in recorded:
                    row = rows.get(step.item_key)
                    if row is None:
                        continue
                    row.attempt_count = (row.attempt_count or 0) + 1
                    row.last_error = error
                    if error is None:
                        row.status = StepStatus.SUCCEEDED
                    elif row.attempt_count >= self.max_attempts:
                        row.status = StepStatus.ABANDONED
                    else:
                        row.status = StepStatus.FAILED
                await session.commit()
        except SQLAlchemyError:
            logger.exception("Could not record %s results of submission %s", phase, submission_id)

    # -- public API ---------------------------------------------------------

    async def submit(self, form: PlanForm, context: SubmissionContext) -> SubmissionResult:
        """Validate and submit a plan.

        Raises:
            SubmissionError: If the form fails validation; ``step`` names the
                wizard step to return to.
        """
        schedule_errors = validate_schedule(form.schedule, form.start_date, form.end_date)
        check = validate_plan_submission(
            title=form.title,
            start_date=form.start_date,
            end_date=form.end_date,
            scope_level=form.scope_level,
            selected_template_ids=form.selected_template_ids,
            selected_dept_ids=form.selected_dept_ids,
            templates=context.templates,
            auditee_owners=context.auditee_owners,
            schedule_errors=schedule_errors,
            confirmed_without_owner=form.confirmed_without_owner,
        )
        if not check.is_valid:
            message = check.message or "Validation failed"
            if check.errors:
                message = f"{message}: " + "; ".join(check.errors)
            raise SubmissionError(message, step=check.step or 1)

        start_date, end_date = form.start_date, form.end_date
        if start_date is None or end_date is None:
            raise SubmissionError("Please select the start and end dates.", step=1)

        all_dept_ids = [d.dept_id for d in context.departments if d.dept_id]
        dept_ids = departments_in_scope(form.scope_level, form.selected_dept_ids, all_dept_ids)
        warnings: list[str] = []

        if not form.is_edit_mode:
            conflict = await check_audit_conflicts(
                self.client,
                department_ids=dept_ids,
                start_date=start_date,
                end_date=end_date,
                selected_criteria_ids=selected_criteria(form),
                selected_template_ids=form.selected_template_ids,
                criteria=context.criteria,
                department_names=context.department_names,
            )
            if conflict.has_conflict and not form.acknowledge_conflicts:
                return SubmissionResult(success=False, conflict=conflict, warnings=conflict.warnings)
            warnings.extend(conflict.warnings)

        payload = build_audit_payload(form)
        try:
            if form.audit_id:
                await audits_api.complete_update_audit_plan(self.client, form.audit_id, payload)
                audit_id = form.audit_id
            else:
                audit_id = await audits_api.create_audit(self.client, payload)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Saving audit plan %r failed: %s", form.title, exc)
            return SubmissionResult(success=False, error=extract_error_message(exc), warnings=warnings)

        if form.is_edit_mode:
            logger.info("Updated audit plan %s", audit_id)
            return SubmissionResult(success=True, audit_id=audit_id, warnings=warnings)

        submission_id = uuid.uuid4() if self.journal_enabled else None
        planned = {
            SubmissionPhase.TEMPLATES: [
                PlannedStep(
                    SubmissionPhase.TEMPLATES, "sync", {"templateIds": list(form.selected_template_ids)}
                )
            ],
            SubmissionPhase.DEPARTMENTS: plan_department_steps(form, context, dept_ids),
            SubmissionPhase.CRITERIA: plan_criteria_steps(form),
            SubmissionPhase.TEAM: plan_team_steps(form, context),
            SubmissionPhase.SCHEDULE: plan_schedule_steps(form),
        }
        if not planned[SubmissionPhase.CRITERIA]:
            warnings.append("No criteria selected to attach to audit.")

        phases = await self._run_phases(submission_id, audit_id, planned)
        warnings.extend(w for w in (_failure_warning(p) for p in phases) if w)

        plans = await self._refresh_plans(warnings)
        logger.info(
            "Submitted audit plan %s (%d phase(s), %d failed write(s))",
            audit_id,
            len(phases),
            sum(p.failed for p in phases),
        )
        return SubmissionResult(
            success=True,
            audit_id=audit_id,
            submission_id=submission_id,
            phases=phases,
            warnings=warnings,
            plans=plans,
        )

    async def retry(self, submission_id: uuid.UUID) -> SubmissionResult:
        """Re-send the failed writes of an earlier submission.

        Raises:
            RuntimeError: If no journal is configured.
            LookupError: If the journal has no steps for ``submission_id``.
        """
        if self.session_factory is None:
            raise RuntimeError("Submission journal is not configured")

        async with self.session_factory() as session:
            result = await session.execute(
                select(SubmissionStep).where(SubmissionStep.submission_id == submission_id)
            )
            rows = list(result.scalars().all())
        if not rows:
            raise LookupError(f"Unknown submission {submission_id}")

        audit_id = rows[0].audit_id
        planned: dict[SubmissionPhase, list[PlannedStep]] = {}
        abandoned: dict[SubmissionPhase, int] = {}
        for row in rows:
            if row.status in (StepStatus.FAILED, StepStatus.PENDING):
                planned.setdefault(row.phase, []).append(
                    PlannedStep(row.phase, row.item_key, dict(row.payload or {}))
                )
            elif row.status == StepStatus.ABANDONED:
                abandoned[row.phase] = abandoned.get(row.phase, 0) + 1

        # Abandoned writes are not re-sent.
        abandoned_warnings = [
            f"{count} {phase} step(s) were abandoned and must be completed manually."
            for phase, count in sorted(abandoned.items(), key=lambda item: PHASE_ORDER.index(item[0]))
        ]
        if abandoned:
            logger.warning("Submission %s has abandoned steps: %s", submission_id, abandoned)

        if not planned:
            logger.info("Submission %s has nothing to retry", submission_id)
            return SubmissionResult(
                success=not abandoned,
                audit_id=audit_id,
                submission_id=submission_id,
                warnings=abandoned_warnings,
            )

        logger.info(
            "Retrying %d step(s) of submission %s",
            sum(len(s) for s in planned.values()),
            submission_id,
        )
        phases = await self._run_phases(submission_id, audit_id, planned)
        warnings = [w for w in (_failure_warning(p) for p in phases) if w]
        warnings.extend(abandoned_warnings)
        return SubmissionResult(
            success=not abandoned and not any(p.failed for p in phases),
            audit_id=audit_id,
            submission_id=submission_id,
            phases=phases,
            warnings=warnings,
        )

    async def _refresh_plans(self, warnings: list[str]) -> list[AuditPlan] | None:
        try:
            return await audits_api.list_audits(self.client)
        except httpx.HTTPError as exc:
            logger.warning("Could not refresh plan list: %s", exc)
            warnings.append("Plan saved, but the plan list could not be refreshed.")
            return None
